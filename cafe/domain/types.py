# cafe/domain/types.py
from enum import Enum


class OrderType(str, Enum):
    COLLECTION = "collection"
    DELIVERY = "delivery"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


#dozwolone przejscia statusu zamowienia, tylko do przodu
ORDER_STATUS_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}


class PaymentStatus(str, Enum):
    """Statusy PaymentIntent po stronie procesora platnosci."""

    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


class AttemptStatus(str, Enum):
    """
    Stan proby checkoutu w lokalnej kolejce rekonsyliacji:
    created -> intent_created -> charged -> recorded
    oraz failed gdy platnosc nie przeszla
    """

    CREATED = "created"
    INTENT_CREATED = "intent_created"
    CHARGED = "charged"
    RECORDED = "recorded"
    FAILED = "failed"


class AttemptKind(str, Enum):
    """Co kupuje proba checkoutu: zamowienie z menu albo bilety na wydarzenie."""

    ORDER = "order"
    TICKETS = "tickets"


class TicketSaleStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
