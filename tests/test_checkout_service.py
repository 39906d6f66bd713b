# tests/test_checkout_service.py
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from cafe.domain.errors import (
    AmountMismatch,
    AttemptNotFound,
    CheckoutInProgress,
    EmptyCart,
    InvalidStatusTransition,
    PartialPersistenceError,
    PaymentDeclined,
    PaymentGatewayError,
    PaymentNotCompleted,
    PersistenceError,
    ValidationError,
)
from cafe.domain.types import AttemptStatus
from cafe.services import datastore_client
from cafe.services.checkout_service import CheckoutService
from cafe.services.datastore_client import DataStoreClient
from cafe.services.order_persister import OrderPersister

from conftest import FakeCatalog, confirm_payload, intent_payload


def test_collection_checkout_end_to_end(service, gateway, store):
    intent = service.create_intent(intent_payload("collection", "12.00"))

    assert intent["amount"] == Decimal("12.00")
    assert intent["amount_minor"] == 1200
    assert intent["payment_intent_id"] == "pi_1"
    assert intent["client_secret"] == "pi_1_secret"

    result = service.confirm_order(confirm_payload("pi_1"))

    assert result["success"] is True
    assert result["order_id"] == 1001
    assert result["status"] == "confirmed"

    order = store.tables["orders"][0]
    assert order["status"] == "confirmed"
    assert order["stripe_payment_intent_id"] == "pi_1"
    assert order["total_amount"] == "12.00"
    assert len(store.tables["order_items"]) == 2


def test_delivery_amount_mismatch_fails_before_any_gateway_call(service, gateway, db):
    with pytest.raises(AmountMismatch) as exc:
        service.create_intent(intent_payload("delivery", "12.00"))

    assert exc.value.expected == Decimal("14.50")
    assert gateway.calls == []
    assert service.repo.get_by_key("checkout-0001") is None


def test_delivery_charges_fee(service, gateway):
    intent = service.create_intent(intent_payload("delivery", "14.50"))

    assert intent["amount_minor"] == 1450
    _, amount_minor, currency, metadata, key = gateway.calls[0]
    assert amount_minor == 1450
    assert currency == "gbp"
    assert metadata.order_type.value == "delivery"
    assert metadata.cart_items_count == 2
    assert metadata.total_items == 3
    assert metadata.delivery_address == "1 High Street, Clifton"
    assert key == "checkout-0001"


def test_empty_cart_is_rejected(service, gateway):
    with pytest.raises(EmptyCart):
        service.create_intent(intent_payload(items=[]))
    assert gateway.calls == []


def test_repeated_intent_request_reuses_existing_intent(service, gateway):
    first = service.create_intent(intent_payload())
    second = service.create_intent(intent_payload())

    assert first["payment_intent_id"] == second["payment_intent_id"]
    assert gateway.count("create") == 1


def test_idempotency_key_cannot_be_reused_for_other_cart(service):
    service.create_intent(intent_payload())

    other = [{"id": 3, "name": "Avocado Toast", "price": "7.25", "quantity": 1}]
    with pytest.raises(ValidationError):
        service.create_intent(intent_payload(items=other, amount="7.25"))


def test_idempotency_key_cannot_be_reused_for_same_total_other_items(service, gateway):
    service.create_intent(intent_payload())

    #ten sam total 12.00, inne pozycje
    other = [{"id": 3, "name": "Scone", "price": "4.00", "quantity": 3}]
    with pytest.raises(ValidationError):
        service.create_intent(intent_payload(items=other))
    assert gateway.count("create") == 1


def test_idempotency_key_cannot_be_reused_for_other_customer(service, gateway):
    service.create_intent(intent_payload())

    with pytest.raises(ValidationError):
        service.create_intent(
            intent_payload(customer={"email": "someone.com", "name": "Someone Else"})
        )
    assert gateway.count("create") == 1


def test_gateway_failure_is_propagated_and_recorded(service, gateway):
    gateway.create_error = PaymentGatewayError("Payment processing failed: {...}", status_code=400, body="{...}")

    with pytest.raises(PaymentGatewayError):
        service.create_intent(intent_payload())

    attempt = service.repo.get_by_key("checkout-0001")
    assert attempt.status == AttemptStatus.CREATED.value
    assert "Payment processing failed" in attempt.last_error

    # jawne ponowienie z tym samym kluczem
    gateway.create_error = None
    intent = service.create_intent(intent_payload())
    assert intent["payment_intent_id"] == "pi_1"
    assert gateway.count("create") == 2


@pytest.mark.parametrize("status", ["requires_payment_method", "requires_action", "processing", "canceled"])
def test_unsuccessful_payment_never_writes_order(service, gateway, store, status):
    service.create_intent(intent_payload())
    gateway.status = status

    with pytest.raises(PaymentNotCompleted) as exc:
        service.confirm_order(confirm_payload("pi_1"))

    assert exc.value.status == status
    assert store.writes == []
    assert service.repo.get_by_key("checkout-0001").status == AttemptStatus.FAILED.value


def test_declined_card_surfaces_processor_message(service, gateway, store):
    service.create_intent(intent_payload())
    gateway.confirm_error = PaymentDeclined("Your card was declined.", status="card_declined")

    with pytest.raises(PaymentDeclined) as exc:
        service.confirm_order(confirm_payload("pi_1", payment_method="pm_card_visa"))

    assert str(exc.value) == "Your card was declined."
    assert store.writes == []


def test_retry_with_another_card_after_decline(service, gateway):
    service.create_intent(intent_payload())
    gateway.status = "requires_payment_method"
    with pytest.raises(PaymentNotCompleted):
        service.confirm_order(confirm_payload("pi_1", payment_method="pm_card_declined"))

    gateway.status = "succeeded"
    result = service.confirm_order(confirm_payload("pi_1", payment_method="pm_card_visa"))

    assert result["order_id"] == 1001
    assert gateway.calls[-1] == ("confirm", "pi_1", "pm_card_visa", "checkout-0001")


def test_header_write_failure_is_persistence_error(service, store, activity):
    service.create_intent(intent_payload())
    store.fail_on("insert", "orders")

    with pytest.raises(PersistenceError) as exc:
        service.confirm_order(confirm_payload("pi_1"))

    assert not isinstance(exc.value, PaymentDeclined)
    assert not isinstance(exc.value, PartialPersistenceError)
    assert exc.value.payment_reference == "pi_1"

    attempt = service.repo.get_by_key("checkout-0001")
    assert attempt.status == AttemptStatus.CHARGED.value
    assert attempt.attempts == 1
    assert attempt.order_id is None
    assert "reconciliation_required" in activity.actions()


def test_item_write_failure_is_partial_and_leaves_order_pending(service, store):
    service.create_intent(intent_payload())
    store.fail_on("insert", "order_items")

    with pytest.raises(PartialPersistenceError) as exc:
        service.confirm_order(confirm_payload("pi_1"))

    assert exc.value.order_id == 1001
    assert store.tables["orders"][0]["status"] == "pending"

    attempt = service.repo.get_by_key("checkout-0001")
    assert attempt.status == AttemptStatus.CHARGED.value
    assert attempt.order_id == 1001


def test_confirm_after_persistence_failure_does_not_recharge(service, gateway, store):
    service.create_intent(intent_payload())
    store.fail_on("insert", "orders")
    with pytest.raises(PersistenceError):
        service.confirm_order(confirm_payload("pi_1"))

    store.heal()
    result = service.confirm_order(confirm_payload("pi_1"))

    assert result["order_id"] == 1001
    assert gateway.count("retrieve") == 1


def test_confirm_is_idempotent_once_recorded(service, gateway, store):
    service.create_intent(intent_payload())
    first = service.confirm_order(confirm_payload("pi_1"))
    second = service.confirm_order(confirm_payload("pi_1"))

    assert first == second
    assert len(store.tables["orders"]) == 1
    assert gateway.count("retrieve") == 1


def test_order_items_keep_price_from_intent_time(make_service, store):
    catalog = FakeCatalog({1: "4.50", 2: "3.00"})
    service = make_service(catalog=catalog)
    service.create_intent(intent_payload())

    # cena w katalogu zmienia sie miedzy intentem a zapisem
    catalog.prices[1] = "5.25"
    service.confirm_order(confirm_payload("pi_1"))

    prices = {row["menu_item_id"]: row["price_at_time"] for row in store.tables["order_items"]}
    assert prices == {1: "4.50", 2: "3.00"}


def test_catalog_price_overrides_client_price(make_service, gateway):
    service = make_service(catalog=FakeCatalog({1: "5.00", 2: "3.00"}))

    # klient twierdzi 4.50, katalog mowi 5.00
    with pytest.raises(AmountMismatch):
        service.create_intent(intent_payload(amount="12.00"))
    assert gateway.calls == []

    intent = service.create_intent(intent_payload(amount="13.00", key="checkout-0002"))
    assert intent["amount_minor"] == 1300


def test_confirm_unknown_attempt(service):
    with pytest.raises(AttemptNotFound):
        service.confirm_order(confirm_payload("pi_1", key="never-created"))


def test_confirm_with_foreign_intent(service, store):
    service.create_intent(intent_payload())
    with pytest.raises(ValidationError):
        service.confirm_order(confirm_payload("pi_999"))
    assert store.writes == []


def test_concurrent_confirm_is_rejected(service, lock, store):
    service.create_intent(intent_payload())
    lock.busy = True

    with pytest.raises(CheckoutInProgress):
        service.confirm_order(confirm_payload("pi_1"))
    assert store.writes == []


def test_reconcile_replays_charged_attempt(service, store, activity):
    service.create_intent(intent_payload())
    store.fail_on("insert", "order_items")
    with pytest.raises(PartialPersistenceError):
        service.confirm_order(confirm_payload("pi_1"))

    store.heal()
    attempt = service.repo.get_by_key("checkout-0001")
    order_id = service.reconcile(attempt.id)

    assert order_id == 1001
    assert len(store.tables["orders"]) == 1
    assert store.tables["orders"][0]["status"] == "confirmed"
    assert len(store.tables["order_items"]) == 2
    assert service.repo.get(attempt.id).status == AttemptStatus.RECORDED.value
    assert "order_reconciled" in activity.actions()


def test_reconcile_only_for_charged(service):
    service.create_intent(intent_payload())
    attempt = service.repo.get_by_key("checkout-0001")

    with pytest.raises(InvalidStatusTransition):
        service.reconcile(attempt.id)


def test_list_attempts_returns_charged_only(service, store):
    service.create_intent(intent_payload())
    service.create_intent(intent_payload(key="checkout-0002"))
    store.fail_on("insert", "orders")
    with pytest.raises(PersistenceError):
        service.confirm_order(confirm_payload("pi_1"))

    stuck = service.list_attempts()
    assert [a.idempotency_key for a in stuck] == ["checkout-0001"]


def test_unreadable_store_reply_after_payment_goes_to_reconciliation(db, gateway, lock, activity, monkeypatch):
    html = MagicMock(status_code=201, ok=True, text="<html>Bad gateway</html>")
    html.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
    empty = MagicMock(status_code=200, ok=True, text="[]")
    empty.json.return_value = []
    monkeypatch.setattr(datastore_client.requests, "post", MagicMock(return_value=html))
    monkeypatch.setattr(datastore_client.requests, "get", MagicMock(return_value=empty))

    service = CheckoutService(
        db=db,
        gateway=gateway,
        persister=OrderPersister(DataStoreClient(base_url="https://db.test", service_key="service-key")),
        lock_service=lock,
        activity_log=activity,
    )
    service.create_intent(intent_payload())

    with pytest.raises(PersistenceError) as exc:
        service.confirm_order(confirm_payload("pi_1"))

    assert exc.value.payment_reference == "pi_1"
    attempt = service.repo.get_by_key("checkout-0001")
    assert attempt.status == AttemptStatus.CHARGED.value
    assert attempt.attempts == 1
    assert "reconciliation_required" in activity.actions()
