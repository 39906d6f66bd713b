# tests/test_ticket_service.py
from decimal import Decimal

import pytest

from cafe.domain.errors import CatalogUnavailable, EventNotFound, EventUnavailable, PersistenceError
from cafe.domain.schemas import TicketLine
from cafe.services.ticket_service import TicketService, confirmation_number

from conftest import add_event

CUSTOMER = {"email": "jane@example.com", "name": "Jane Doe", "phone": None}


@pytest.fixture
def tickets(store):
    return TicketService(store)


def test_quote_snapshots_event(tickets, store):
    add_event(store, id=7, ticket_price=15.0, max_attendees=40, current_attendees=10)

    line = tickets.quote(7, 3)

    assert line.event_id == 7
    assert line.title == "Jazz Night"
    assert line.quantity == 3
    assert line.ticket_price == Decimal("15.0")


def test_quote_unknown_event(tickets):
    with pytest.raises(EventNotFound):
        tickets.quote(99, 1)


def test_quote_unpublished_event(tickets, store):
    add_event(store, id=7, is_published=False)

    with pytest.raises(EventUnavailable) as exc:
        tickets.quote(7, 1)
    assert "not available for booking" in str(exc.value)


def test_quote_free_event(tickets, store):
    add_event(store, id=7, ticket_price=0)

    with pytest.raises(EventUnavailable) as exc:
        tickets.quote(7, 1)
    assert "does not sell tickets" in str(exc.value)


def test_quote_over_capacity(tickets, store):
    add_event(store, id=7, max_attendees=40, current_attendees=38)

    with pytest.raises(EventUnavailable) as exc:
        tickets.quote(7, 3)
    assert str(exc.value) == "Only 2 tickets remaining"

    assert tickets.quote(7, 2).quantity == 2


def test_quote_without_capacity_limit(tickets, store):
    add_event(store, id=7, max_attendees=None, current_attendees=500)

    assert tickets.quote(7, 10).quantity == 10


def test_quote_store_down(tickets, store):
    store.fail_on("select", "events")

    with pytest.raises(CatalogUnavailable):
        tickets.quote(7, 1)


def test_record_sale_writes_row_and_recounts_attendees(tickets, store):
    add_event(store, id=7, current_attendees=0)
    line = TicketLine(event_id=7, title="Jazz Night", quantity=2, ticket_price=Decimal("15.00"))

    sale_id = tickets.record_sale("pi_1", CUSTOMER, line, Decimal("30.00"))
    tickets.record_sale("pi_2", CUSTOMER, line, Decimal("30.00"))

    sale = store.tables["event_ticket_sales"][0]
    assert sale["id"] == sale_id
    assert sale["stripe_payment_intent_id"] == "pi_1"
    assert sale["status"] == "confirmed"
    assert sale["total_amount"] == "30.00"
    assert store.tables["events"][0]["current_attendees"] == 4


def test_record_sale_is_idempotent(tickets, store):
    add_event(store, id=7)
    line = TicketLine(event_id=7, title="Jazz Night", quantity=2, ticket_price=Decimal("15.00"))

    first = tickets.record_sale("pi_1", CUSTOMER, line, Decimal("30.00"))
    second = tickets.record_sale("pi_1", CUSTOMER, line, Decimal("30.00"))

    assert first == second
    assert len(store.tables["event_ticket_sales"]) == 1


def test_record_sale_failure_is_persistence_error(tickets, store):
    store.fail_on("insert", "event_ticket_sales")
    line = TicketLine(event_id=7, title="Jazz Night", quantity=1, ticket_price=Decimal("15.00"))

    with pytest.raises(PersistenceError) as exc:
        tickets.record_sale("pi_1", CUSTOMER, line, Decimal("15.00"))
    assert exc.value.payment_reference == "pi_1"


def test_attendee_count_failure_keeps_the_sale(tickets, store):
    add_event(store, id=7)
    store.fail_on("update", "events")
    line = TicketLine(event_id=7, title="Jazz Night", quantity=1, ticket_price=Decimal("15.00"))

    sale_id = tickets.record_sale("pi_1", CUSTOMER, line, Decimal("15.00"))

    assert store.tables["event_ticket_sales"][0]["id"] == sale_id


def test_confirmation_number():
    assert confirmation_number(42) == "TKT-000042"
