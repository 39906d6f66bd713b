# cafe/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict, EmailStr, model_validator
from typing import List, Dict
from decimal import Decimal
from datetime import datetime
from enum import Enum

from cafe.domain.types import OrderType, OrderStatus


class LineItemIn(BaseModel):
    """Pozycja koszyka przyslana przez klienta (CartItem)."""

    id: int = Field(..., description="ID pozycji menu")
    name: str = Field(..., min_length=1, max_length=200)
    price: Decimal = Field(..., description="Cena jednostkowa w walucie glownej (np. funty)")
    quantity: int = Field(..., description="Ilosc")
    special_requests: str | None = Field(None, max_length=500)


class CustomerIn(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=200)
    phone: str | None = Field(None, max_length=50)


class CreateIntentIn(BaseModel):
    """Schema dla utworzenia PaymentIntent."""

    idempotency_key: str = Field(..., min_length=8, max_length=255, description="Klucz jednej proby checkoutu")
    items: List[LineItemIn]
    customer: CustomerIn
    order_type: OrderType
    amount: Decimal = Field(..., description="Kwota zadeklarowana przez klienta")
    currency: str | None = Field(None, min_length=3, max_length=3)
    delivery_address: str | None = Field(None, max_length=500)
    special_instructions: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def delivery_needs_address(self):
        if self.order_type == OrderType.DELIVERY and not (self.delivery_address or "").strip():
            raise ValueError("Delivery address is required for delivery orders")
        return self


class IntentOut(BaseModel):
    attempt_id: int
    payment_intent_id: str
    client_secret: str
    amount: Decimal
    amount_minor: int
    currency: str


class BillingDetailsIn(BaseModel):
    name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    address: Dict[str, str] | None = None


class ConfirmOrderIn(BaseModel):
    """
    Schema dla potwierdzenia zamowienia.
    Bez payment_method zakladamy ze klient potwierdzil platnosc po swojej stronie (Stripe.js).
    """

    idempotency_key: str = Field(..., min_length=8, max_length=255)
    payment_intent_id: str = Field(..., min_length=1)
    payment_method: str | None = None
    billing_details: BillingDetailsIn | None = None


class ConfirmOrderOut(BaseModel):
    success: bool
    order_id: int
    status: str
    payment_intent_id: str
    total_amount: Decimal


class OrderLine(BaseModel):
    """Zamrozona pozycja zamowienia - cena z momentu tworzenia intentu."""

    menu_item_id: int
    name: str
    quantity: int
    price_at_time: Decimal
    special_requests: str | None = None

    model_config = ConfigDict(frozen=True)


class ProcessorMetadata(BaseModel):
    def to_params(self) -> Dict[str, str]:
        #procesor przyjmuje tylko stringi
        return {
            key: (value.value if isinstance(value, Enum) else str(value))
            for key, value in self.model_dump().items()
        }


class PaymentMetadata(ProcessorMetadata):
    """Stala struktura metadanych wysylana do procesora platnosci."""

    customer_email: str
    customer_name: str
    customer_phone: str = ""
    order_type: OrderType
    delivery_address: str = ""
    special_instructions: str = ""
    cart_items_count: int
    total_items: int
    idempotency_key: str


class OrderOut(BaseModel):
    id: int
    customer_email: str
    customer_name: str
    customer_phone: str | None = None
    order_type: OrderType
    total_amount: Decimal
    status: OrderStatus
    payment_reference: str | None = None
    special_instructions: str | None = None
    delivery_address: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class OrderItemOut(BaseModel):
    id: int | None = None
    order_id: int
    menu_item_id: int
    quantity: int
    price_at_time: Decimal
    special_requests: str | None = None


class OrderSummaryOut(BaseModel):
    subtotal: Decimal
    total: Decimal
    item_count: int
    total_quantity: int


class OrderDetailsOut(BaseModel):
    order: OrderOut
    items: List[OrderItemOut]
    summary: OrderSummaryOut


class OrderStatusUpdateIn(BaseModel):
    status: OrderStatus
    notes: str | None = Field(None, max_length=500)


class AttemptOut(BaseModel):
    """Schema dla proby checkoutu w kolejce rekonsyliacji (response)."""

    id: int
    idempotency_key: str
    status: str
    payment_intent_id: str | None = None
    amount: Decimal
    currency: str
    kind: str
    order_type: str | None = None
    order_id: int | None = None
    ticket_sale_id: int | None = None
    attempts: int
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class AdminLoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AdminSessionOut(BaseModel):
    token: str
    expires_in: int


class PaymentIntent(BaseModel):
    """Obiekt PaymentIntent procesora - tylko pola, ktorych uzywamy."""

    id: str
    client_secret: str | None = None
    status: str
    amount: int
    currency: str | None = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")


#bilety na wydarzenia
class TicketIntentIn(BaseModel):
    idempotency_key: str = Field(..., min_length=8, max_length=255)
    event_id: int
    quantity: int = Field(..., description="Liczba biletow, 1..MAX_TICKETS_PER_PURCHASE")
    customer: CustomerIn
    amount: Decimal | None = Field(None, description="Kwota pokazana klientowi, jesli podana musi sie zgadzac")
    currency: str | None = Field(None, min_length=3, max_length=3)


class TicketLine(BaseModel):
    """Zamrozony snapshot wydarzenia z momentu tworzenia intentu."""

    event_id: int
    title: str
    event_date: str | None = None
    quantity: int
    ticket_price: Decimal

    model_config = ConfigDict(frozen=True)


class TicketMetadata(ProcessorMetadata):
    event_id: int
    event_title: str
    event_date: str = ""
    quantity: int
    ticket_price: str
    customer_name: str
    customer_email: str
    customer_phone: str = ""
    idempotency_key: str


class TicketIntentOut(IntentOut):
    event_id: int
    event_title: str
    event_date: str | None = None
    quantity: int


class TicketPurchaseOut(BaseModel):
    success: bool
    ticket_sale_id: int
    confirmation_number: str
    event_id: int
    event_title: str
    event_date: str | None = None
    quantity: int
    total_amount: Decimal
    payment_intent_id: str
    customer_name: str
    customer_email: str


class TicketSaleOut(BaseModel):
    id: int
    event_id: int
    customer_name: str
    customer_email: str
    customer_phone: str | None = None
    quantity: int
    total_amount: Decimal
    status: str
    payment_reference: str | None = None
    purchase_date: datetime | None = None
