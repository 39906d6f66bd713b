# cafe/services/order_service.py
from decimal import Decimal
from datetime import datetime, timezone
from typing import Dict, Any, List

from cafe.domain.errors import OrderNotFound, InvalidStatusTransition
from cafe.domain.types import OrderStatus, ORDER_STATUS_TRANSITIONS
from cafe.services.activity_log import ActivityLog
from cafe.services.amount_validator import to_decimal
from cafe.services.datastore_client import DataStoreClient
from cafe.services.order_persister import ORDERS_TABLE, ORDER_ITEMS_TABLE
from cafe.utils.logging import get_logger

logger = get_logger(__name__)


def _order_out(row: dict) -> Dict[str, Any]:
    #w data store kolumna nazywa sie stripe_payment_intent_id
    order = dict(row)
    order["payment_reference"] = order.pop("stripe_payment_intent_id", None)
    return order


class OrderService:
    """
    Serwis zamowien dla panelu admina (odczyt i zmiana statusu).
    Zapis nowych zamowien jest w CheckoutService / OrderPersister.
    """

    def __init__(self, store: DataStoreClient, activity_log: ActivityLog | None = None):
        self.store = store
        self.activity_log = activity_log or ActivityLog()

    def list_orders(self, limit: int = 50) -> List[Dict[str, Any]]:
        rows = self.store.select(ORDERS_TABLE, order="created_at.desc", limit=limit)
        return [_order_out(row) for row in rows]

    def get_order(self, order_id: int) -> Dict[str, Any]:
        rows = self.store.select(ORDERS_TABLE, filters={"id": order_id})

        if not rows:
            raise OrderNotFound(f"Order {order_id} not found")

        return _order_out(rows[0])

    def get_order_details(self, order_id: int) -> Dict[str, Any]:
        """
        Use Case: zamowienie + pozycje + podsumowanie.
        """
        order = self.get_order(order_id)
        items = self.store.select(ORDER_ITEMS_TABLE, filters={"order_id": order_id}, order="id")

        subtotal = sum(
            (to_decimal(i["price_at_time"]) * i["quantity"] for i in items),
            Decimal("0.00"),
        )

        return {
            "order": order,
            "items": items,
            "summary": {
                "subtotal": subtotal,
                "total": to_decimal(order["total_amount"]),
                "item_count": len(items),
                "total_quantity": sum(i["quantity"] for i in items),
            },
        }

    def update_order_status(
        self,
        order_id: int,
        status: OrderStatus,
        admin_email: str,
        notes: str | None = None,
    ) -> Dict[str, Any]:
        """
        Use Case: zmiana statusu, tylko do przodu (pending -> confirmed -> completed, albo cancelled).
        """
        order = self.get_order(order_id)
        current = OrderStatus(order["status"])
        status = OrderStatus(status)

        if status not in ORDER_STATUS_TRANSITIONS[current]:
            raise InvalidStatusTransition(
                f"Order {order_id} cannot move from {current.value} to {status.value}"
            )

        rows = self.store.update(
            ORDERS_TABLE,
            {"status": status.value, "updated_at": datetime.now(timezone.utc).isoformat()},
            filters={"id": order_id},
        )

        logger.info(f"Order {order_id} status {current.value} -> {status.value} by {admin_email}")

        description = f"Updated order #{order_id} status to {status.value}"
        if notes:
            description += f" with notes: {notes}"
        self.activity_log.log(
            "order_status_updated",
            description,
            admin_email=admin_email,
            target_type="order",
            target_id=order_id,
        )

        return _order_out(rows[0]) if rows else {**order, "status": status.value}
