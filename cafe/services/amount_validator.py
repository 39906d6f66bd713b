# cafe/services/amount_validator.py
"""
Weryfikacja kwoty platnosci.

Kwota deklarowana przez klienta nigdy nie jest brana na slowo - zawsze liczymy
ja od nowa z pozycji koszyka i oplaty za dostawe, zanim powstanie jakikolwiek charge.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable

from cafe.domain.errors import EmptyCart, InvalidLineItem, AmountMismatch
from cafe.domain.types import OrderType
from cafe.utils.settings import DELIVERY_FEE, AMOUNT_TOLERANCE, MAX_TICKETS_PER_PURCHASE

_CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    #float -> str -> Decimal, zeby nie ciagnac bledow binarnych (4.1 != 4.0999...)
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidLineItem(f"Invalid amount: {value!r}") from e


def delivery_fee(order_type: OrderType, fee: Decimal = DELIVERY_FEE) -> Decimal:
    if OrderType(order_type) == OrderType.DELIVERY:
        return fee
    return Decimal("0.00")


def compute_expected(items: Iterable, order_type: OrderType, fee: Decimal = DELIVERY_FEE) -> Decimal:
    """
    expected = suma(price * quantity) + oplata za dostawe

    Pozycje to dowolne obiekty z atrybutami price i quantity (LineItemIn, OrderLine).
    """
    items = list(items)
    if not items:
        raise EmptyCart()

    subtotal = Decimal("0.00")
    for item in items:
        price = to_decimal(getattr(item, "price", getattr(item, "price_at_time", None)))
        quantity = item.quantity

        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidLineItem(f"Quantity must be a positive integer, got {quantity!r}")
        if price <= 0:
            raise InvalidLineItem(f"Price must be positive, got {price}")

        subtotal += price * quantity

    return (subtotal + delivery_fee(order_type, fee)).quantize(_CENT, rounding=ROUND_HALF_UP)


def validate_amount(
    items: Iterable,
    order_type: OrderType,
    declared_amount,
    fee: Decimal = DELIVERY_FEE,
    tolerance: Decimal = AMOUNT_TOLERANCE,
) -> Decimal:
    """Zwraca przeliczona kwote albo rzuca AmountMismatch."""
    return check_declared(compute_expected(items, order_type, fee), declared_amount, tolerance)


def ticket_quantity(quantity, max_quantity: int = MAX_TICKETS_PER_PURCHASE) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or not 1 <= quantity <= max_quantity:
        raise InvalidLineItem(f"Invalid quantity. Must be between 1 and {max_quantity}")
    return quantity


def ticket_total(ticket_price, quantity, max_quantity: int = MAX_TICKETS_PER_PURCHASE) -> Decimal:
    quantity = ticket_quantity(quantity, max_quantity)
    price = to_decimal(ticket_price)
    if price <= 0:
        raise InvalidLineItem("This event does not sell tickets")

    return (price * quantity).quantize(_CENT, rounding=ROUND_HALF_UP)


def check_declared(expected: Decimal, declared_amount, tolerance: Decimal = AMOUNT_TOLERANCE) -> Decimal:
    declared = to_decimal(declared_amount)
    if abs(expected - declared) > tolerance:
        raise AmountMismatch(expected=expected, declared=declared)
    return expected


def to_minor_units(amount) -> int:
    """12.50 -> 1250, zaokraglenie a nie obciecie."""
    minor = int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if minor <= 0:
        raise InvalidLineItem(f"Amount must be positive, got {amount}")
    return minor
