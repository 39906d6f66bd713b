# cafe/services/order_persister.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import List

from cafe.domain.errors import PersistenceError, PartialPersistenceError
from cafe.domain.schemas import OrderLine
from cafe.domain.types import OrderStatus, OrderType
from cafe.services.datastore_client import DataStoreClient, DataStoreError
from cafe.utils.logging import get_logger

logger = get_logger(__name__)

ORDERS_TABLE = "orders"
ORDER_ITEMS_TABLE = "order_items"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrderPersister:
    """
    Zapis zamowienia po potwierdzonej platnosci.

    Kolejnosc: naglowek (pending) -> pozycje -> naglowek confirmed.
    Zamowienie pending z referencja platnosci = wymaga rekonsyliacji.
    Ponowne wywolanie dla tej samej platnosci niczego nie dubluje.
    """

    def __init__(self, store: DataStoreClient):
        self.store = store

    def persist(
        self,
        payment_reference: str,
        customer: dict,
        order_type: OrderType,
        lines: List[OrderLine],
        total_amount: Decimal,
        delivery_address: str | None = None,
        special_instructions: str | None = None,
    ) -> int:
        try:
            existing = self.store.select(
                ORDERS_TABLE,
                columns="id,status",
                filters={"stripe_payment_intent_id": payment_reference},
            )
        except DataStoreError as e:
            raise PersistenceError(f"Failed to look up order: {e}", payment_reference=payment_reference) from e

        if existing:
            order_id = existing[0]["id"]
            status = existing[0]["status"]
            logger.info(f"Order {order_id} already exists for payment {payment_reference} ({status})")
            if status != OrderStatus.PENDING.value:
                return order_id
            items_written = self._has_items(order_id, payment_reference)
        else:
            order_id = self._insert_header(
                payment_reference,
                customer,
                OrderType(order_type),
                total_amount,
                delivery_address,
                special_instructions,
            )
            items_written = False

        if not items_written:
            self._insert_items(order_id, lines, payment_reference)

        try:
            self.store.update(
                ORDERS_TABLE,
                {"status": OrderStatus.CONFIRMED.value, "updated_at": _now()},
                filters={"id": order_id},
            )
        except DataStoreError as e:
            raise PartialPersistenceError(
                f"Order {order_id} written but could not be confirmed: {e}",
                order_id=order_id,
                payment_reference=payment_reference,
            ) from e

        logger.info(f"Order {order_id} recorded with {len(lines)} items")
        return order_id

    def _insert_header(
        self,
        payment_reference: str,
        customer: dict,
        order_type: OrderType,
        total_amount: Decimal,
        delivery_address: str | None,
        special_instructions: str | None,
    ) -> int:
        now = _now()
        row = {
            "customer_email": customer["email"],
            "customer_name": customer["name"],
            "customer_phone": customer.get("phone") or None,
            "order_type": order_type.value,
            "total_amount": str(total_amount),
            "status": OrderStatus.PENDING.value,
            "stripe_payment_intent_id": payment_reference,
            "special_instructions": special_instructions or None,
            "delivery_address": delivery_address or None,
            "created_at": now,
            "updated_at": now,
        }

        try:
            created = self.store.insert(ORDERS_TABLE, row)
        except DataStoreError as e:
            raise PersistenceError(f"Failed to create order: {e}", payment_reference=payment_reference) from e

        if not created or "id" not in created[0]:
            raise PersistenceError("Data store did not return the created order", payment_reference=payment_reference)

        return created[0]["id"]

    def _has_items(self, order_id: int, payment_reference: str) -> bool:
        try:
            return bool(self.store.select(ORDER_ITEMS_TABLE, columns="id", filters={"order_id": order_id}, limit=1))
        except DataStoreError as e:
            raise PartialPersistenceError(
                f"Failed to check items of order {order_id}: {e}",
                order_id=order_id,
                payment_reference=payment_reference,
            ) from e

    def _insert_items(self, order_id: int, lines: List[OrderLine], payment_reference: str) -> None:
        now = _now()
        rows = [
            {
                "order_id": order_id,
                "menu_item_id": line.menu_item_id,
                "quantity": line.quantity,
                "price_at_time": str(line.price_at_time),
                "special_requests": line.special_requests or None,
                "created_at": now,
            }
            for line in lines
        ]

        try:
            self.store.insert(ORDER_ITEMS_TABLE, rows, returning=False)
        except DataStoreError as e:
            raise PartialPersistenceError(
                f"Order {order_id} created but order items failed: {e}",
                order_id=order_id,
                payment_reference=payment_reference,
            ) from e
