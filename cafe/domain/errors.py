# cafe/domain/errors.py


class CheckoutError(Exception):
    """Bazowy blad checkoutu."""

    code = "CHECKOUT_ERROR"


#walidacja - przed jakimkolwiek ruchem pieniedzy, zawsze do naprawienia przez klienta
class ValidationError(CheckoutError):
    code = "VALIDATION_FAILED"


class EmptyCart(ValidationError):
    code = "EMPTY_CART"

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class InvalidLineItem(ValidationError):
    code = "INVALID_LINE_ITEM"


class AmountMismatch(ValidationError):
    code = "AMOUNT_MISMATCH"

    def __init__(self, expected, declared):
        self.expected = expected
        self.declared = declared
        super().__init__(
            f"Amount mismatch: calculated amount {expected} does not match provided amount {declared}"
        )


class PaymentGatewayError(CheckoutError):
    """Procesor nieosiagalny albo odrzucil request (nie-2xx)."""

    code = "PAYMENT_GATEWAY_ERROR"

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class PaymentDeclined(CheckoutError):
    """Platnosc zakonczona innym statusem niz succeeded albo karta odrzucona."""

    code = "PAYMENT_DECLINED"

    def __init__(self, message: str, status: str | None = None):
        self.status = status
        super().__init__(message)


class PaymentNotCompleted(PaymentDeclined):
    code = "PAYMENT_NOT_COMPLETED"


class PersistenceError(CheckoutError):
    """
    Zapis do data store nie powiodl sie.
    Po udanej platnosci to jest incydent - klient zaplacil, zamowienia brak.
    """

    code = "PERSISTENCE_FAILED"

    def __init__(self, message: str, payment_reference: str | None = None):
        self.payment_reference = payment_reference
        super().__init__(message)


class PartialPersistenceError(PersistenceError):
    """Naglowek zamowienia zapisany, pozycje albo potwierdzenie nie."""

    code = "PARTIAL_PERSISTENCE"

    def __init__(self, message: str, order_id: int, payment_reference: str | None = None):
        self.order_id = order_id
        super().__init__(message, payment_reference=payment_reference)


class CheckoutInProgress(CheckoutError):
    code = "CHECKOUT_IN_PROGRESS"


class AttemptNotFound(CheckoutError):
    code = "ATTEMPT_NOT_FOUND"


class OrderNotFound(CheckoutError):
    code = "ORDER_NOT_FOUND"


class InvalidStatusTransition(CheckoutError):
    code = "INVALID_STATUS_TRANSITION"


class AuthenticationError(CheckoutError):
    code = "UNAUTHENTICATED"


class CatalogUnavailable(CheckoutError):
    code = "CATALOG_UNAVAILABLE"


class EventNotFound(CheckoutError):
    code = "EVENT_NOT_FOUND"


class EventUnavailable(ValidationError):
    """Wydarzenie nieopublikowane, bez sprzedazy biletow albo bez wolnych miejsc."""

    code = "EVENT_UNAVAILABLE"
