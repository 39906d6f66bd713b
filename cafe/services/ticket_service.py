# cafe/services/ticket_service.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Dict, Any

from cafe.domain.errors import (
    CatalogUnavailable,
    EventNotFound,
    EventUnavailable,
    PersistenceError,
)
from cafe.domain.schemas import TicketLine
from cafe.domain.types import TicketSaleStatus
from cafe.services.amount_validator import to_decimal
from cafe.services.datastore_client import DataStoreClient, DataStoreError
from cafe.utils.logging import get_logger

logger = get_logger(__name__)

EVENTS_TABLE = "events"
TICKET_SALES_TABLE = "event_ticket_sales"


def confirmation_number(ticket_sale_id: int) -> str:
    return f"TKT-{ticket_sale_id:06d}"


class TicketService:
    """
    Sprzedaz biletow na wydarzenia w data store:
    - quote: snapshot wydarzenia + sprawdzenie publikacji i wolnych miejsc (przed platnoscia)
    - record_sale: wiersz event_ticket_sales po udanej platnosci, idempotentnie po referencji platnosci
    """

    def __init__(self, store: DataStoreClient):
        self.store = store

    def quote(self, event_id: int, quantity: int) -> TicketLine:
        try:
            events = self.store.select(EVENTS_TABLE, filters={"id": event_id}, limit=1)
        except DataStoreError as e:
            logger.error(f"Failed to fetch event {event_id}: {e}")
            raise CatalogUnavailable(f"Failed to fetch event details: {e}") from e

        if not events:
            raise EventNotFound(f"Event {event_id} not found")

        event = events[0]

        if not event.get("is_published"):
            raise EventUnavailable("Event is not available for booking")

        price = to_decimal(event.get("ticket_price") or 0)
        if price <= 0:
            raise EventUnavailable("This event does not sell tickets")

        max_attendees = event.get("max_attendees")
        current = event.get("current_attendees") or 0
        if max_attendees and current + quantity > max_attendees:
            remaining = max(max_attendees - current, 0)
            raise EventUnavailable(f"Only {remaining} tickets remaining")

        return TicketLine(
            event_id=event["id"],
            title=event.get("title") or f"Event {event_id}",
            event_date=event.get("event_date"),
            quantity=quantity,
            ticket_price=price,
        )

    def record_sale(self, payment_reference: str, customer: dict, line: TicketLine, total_amount: Decimal) -> int:
        try:
            existing = self.store.select(
                TICKET_SALES_TABLE,
                columns="id",
                filters={"stripe_payment_intent_id": payment_reference},
            )
        except DataStoreError as e:
            raise PersistenceError(f"Failed to look up ticket sale: {e}", payment_reference=payment_reference) from e

        if existing:
            logger.info(f"Ticket sale {existing[0]['id']} already exists for payment {payment_reference}")
            return existing[0]["id"]

        row = {
            "event_id": line.event_id,
            "customer_name": customer["name"],
            "customer_email": customer["email"],
            "customer_phone": customer.get("phone") or None,
            "quantity": line.quantity,
            "total_amount": str(total_amount),
            "stripe_payment_intent_id": payment_reference,
            "status": TicketSaleStatus.CONFIRMED.value,
            "purchase_date": datetime.now(timezone.utc).isoformat(),
        }

        try:
            created = self.store.insert(TICKET_SALES_TABLE, row)
        except DataStoreError as e:
            raise PersistenceError(f"Failed to create ticket sale: {e}", payment_reference=payment_reference) from e

        if not created or "id" not in created[0]:
            raise PersistenceError("Data store did not return the ticket sale", payment_reference=payment_reference)

        sale_id = created[0]["id"]
        logger.info(f"Ticket sale {sale_id} recorded: {line.quantity} x event {line.event_id}")

        self._refresh_attendance(line.event_id)
        return sale_id

    def _refresh_attendance(self, event_id: int) -> None:
        #liczone od nowa z potwierdzonych sprzedazy, nie inkrementowane
        try:
            sales = self.store.select(
                TICKET_SALES_TABLE,
                columns="quantity",
                filters={"event_id": event_id, "status": TicketSaleStatus.CONFIRMED.value},
            )
            self.store.update(
                EVENTS_TABLE,
                {
                    "current_attendees": sum(int(sale["quantity"]) for sale in sales),
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                },
                filters={"id": event_id},
            )
        except DataStoreError as e:
            #sprzedaz jest zapisana, licznik da sie przeliczyc pozniej
            logger.error(f"Failed to update attendee count of event {event_id}: {e}")

    #query
    def list_sales(self, limit: int = 100) -> List[Dict[str, Any]]:
        rows = self.store.select(TICKET_SALES_TABLE, order="purchase_date.desc", limit=limit)
        return [
            {**{k: v for k, v in row.items() if k != "stripe_payment_intent_id"},
             "payment_reference": row.get("stripe_payment_intent_id")}
            for row in rows
        ]
