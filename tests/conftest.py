# tests/conftest.py
import os

# przed importem cafe.*, engine tworzy sie przy imporcie
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CATALOG_SERVICE_URL"] = ""

from collections import defaultdict
from contextlib import contextmanager
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cafe.data.database import Base
from cafe.data.models import CheckoutAttemptModel  # rejestracja w metadata
from cafe.domain.errors import CheckoutInProgress, InvalidLineItem
from cafe.domain.schemas import PaymentIntent, CreateIntentIn, ConfirmOrderIn, TicketIntentIn
from cafe.services.checkout_service import CheckoutService
from cafe.services.datastore_client import DataStoreError
from cafe.services.order_persister import OrderPersister


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


class FakeGateway:
    def __init__(self, status: str = "succeeded"):
        self.status = status
        self.calls = []
        self.create_error = None
        self.confirm_error = None
        self._n = 0

    def create_intent(self, amount_minor, currency, metadata, idempotency_key):
        self.calls.append(("create", amount_minor, currency, metadata, idempotency_key))
        if self.create_error:
            raise self.create_error
        self._n += 1
        return PaymentIntent(
            id=f"pi_{self._n}",
            client_secret=f"pi_{self._n}_secret",
            status="requires_payment_method",
            amount=amount_minor,
            currency=currency,
        )

    def retrieve_intent(self, intent_id):
        self.calls.append(("retrieve", intent_id))
        if self.confirm_error:
            raise self.confirm_error
        return PaymentIntent(id=intent_id, status=self.status, amount=0)

    def confirm_intent(self, intent_id, payment_method, idempotency_key, receipt_email=None):
        self.calls.append(("confirm", intent_id, payment_method, idempotency_key))
        if self.confirm_error:
            raise self.confirm_error
        return PaymentIntent(id=intent_id, status=self.status, amount=0)

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)


class FakeStore:
    """Data store w pamieci, z mozliwoscia wymuszenia bledu na (operacja, tabela)."""

    def __init__(self):
        self.tables = defaultdict(list)
        self.next_id = {"orders": 1001}
        self.failures = set()
        self.writes = []

    def fail_on(self, op: str, table: str):
        self.failures.add((op, table))

    def heal(self):
        self.failures.clear()

    def _check(self, op, table):
        if (op, table) in self.failures:
            raise DataStoreError(f"{op} on {table} failed", status_code=500, body="boom")

    def _new_id(self, table):
        value = self.next_id.get(table, 1)
        self.next_id[table] = value + 1
        return value

    @staticmethod
    def _match(row, filters):
        return all(str(row.get(col)) == str(val) for col, val in (filters or {}).items())

    def insert(self, table, rows, returning=True):
        self._check("insert", table)
        rows = rows if isinstance(rows, list) else [rows]
        created = []
        for row in rows:
            row = {"id": self._new_id(table), **row}
            self.tables[table].append(row)
            created.append(dict(row))
        self.writes.append(("insert", table))
        return created if returning else []

    def update(self, table, values, filters):
        self._check("update", table)
        updated = []
        for row in self.tables[table]:
            if self._match(row, filters):
                row.update(values)
                updated.append(dict(row))
        self.writes.append(("update", table))
        return updated

    def select(self, table, columns="*", filters=None, order=None, limit=None):
        self._check("select", table)
        rows = [dict(r) for r in self.tables[table] if self._match(r, filters)]
        if order == "created_at.desc":
            rows.reverse()
        return rows[:limit] if limit else rows


class FakeLock:
    def __init__(self):
        self.busy = False
        self.held = []

    @contextmanager
    def hold(self, idempotency_key, ttl=None):
        if self.busy:
            raise CheckoutInProgress("This checkout is already being processed")
        self.held.append(idempotency_key)
        yield "owner"


class FakeActivityLog:
    def __init__(self):
        self.entries = []

    def log(self, action_type, description, admin_email="system@checkout", target_type=None, target_id=None):
        self.entries.append(
            {
                "action_type": action_type,
                "description": description,
                "admin_email": admin_email,
                "target_type": target_type,
                "target_id": target_id,
            }
        )

    def actions(self):
        return [e["action_type"] for e in self.entries]


class FakeCatalog:
    def __init__(self, prices: dict):
        self.prices = dict(prices)

    def fetch_menu_item(self, menu_item_id):
        if menu_item_id not in self.prices:
            raise InvalidLineItem(f"Menu item {menu_item_id} does not exist")
        return {"id": menu_item_id, "name": f"Item {menu_item_id}", "price": self.prices[menu_item_id], "available": True}


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def lock():
    return FakeLock()


@pytest.fixture
def activity():
    return FakeActivityLog()


@pytest.fixture
def make_service(db, gateway, store, lock, activity):
    def _make(catalog=None):
        return CheckoutService(
            db=db,
            gateway=gateway,
            persister=OrderPersister(store),
            lock_service=lock,
            catalog=catalog,
            activity_log=activity,
        )
    return _make


@pytest.fixture
def service(make_service):
    return make_service()


CART = [
    {"id": 1, "name": "Victoria Sponge", "price": "4.50", "quantity": 2},
    {"id": 2, "name": "Flat White", "price": "3.00", "quantity": 1, "special_requests": "oat milk"},
]


def intent_payload(order_type="collection", amount="12.00", key="checkout-0001", items=None, **extra):
    data = {
        "idempotency_key": key,
        "items": CART if items is None else items,
        "customer": {"email": "jane@example.com", "name": "Jane Doe", "phone": "07700900123"},
        "order_type": order_type,
        "amount": amount,
    }
    if order_type == "delivery":
        data["delivery_address"] = "1 High Street, Clifton"
    data.update(extra)
    return CreateIntentIn.model_validate(data)


def confirm_payload(intent_id="pi_1", key="checkout-0001", **extra):
    return ConfirmOrderIn.model_validate({"idempotency_key": key, "payment_intent_id": intent_id, **extra})


def as_decimal(value) -> Decimal:
    return Decimal(str(value))


def add_event(store, **fields):
    event = {
        "id": 7,
        "title": "Jazz Night",
        "event_date": "2026-11-20T19:00:00",
        "is_published": True,
        "ticket_price": 15.0,
        "max_attendees": 40,
        "current_attendees": 0,
        **fields,
    }
    store.tables["events"].append(event)
    return event


def ticket_payload(event_id=7, quantity=2, key="tickets-0001", **extra):
    data = {
        "idempotency_key": key,
        "event_id": event_id,
        "quantity": quantity,
        "customer": {"email": "jane@example.com", "name": "Jane Doe", "phone": "07700900123"},
        **extra,
    }
    return TicketIntentIn.model_validate(data)
