# cafe/services/checkout_service.py
from typing import Dict, Any, List
from sqlalchemy.orm import Session

from cafe.data.models.checkout_attempt import CheckoutAttemptModel
from cafe.domain.errors import (
    EmptyCart,
    ValidationError,
    PaymentDeclined,
    PaymentGatewayError,
    PersistenceError,
    PartialPersistenceError,
    AttemptNotFound,
    InvalidStatusTransition,
)
from cafe.domain.schemas import (
    CreateIntentIn,
    ConfirmOrderIn,
    OrderLine,
    PaymentMetadata,
    ProcessorMetadata,
    LineItemIn,
    TicketIntentIn,
    TicketLine,
    TicketMetadata,
)
from cafe.domain.types import AttemptKind, AttemptStatus, OrderType, OrderStatus, PaymentStatus
from cafe.repos.checkout_attempt_repo import CheckoutAttemptRepo
from cafe.services.activity_log import ActivityLog
from cafe.services.amount_validator import (
    validate_amount,
    ticket_quantity,
    ticket_total,
    check_declared,
    to_minor_units,
    to_decimal,
)
from cafe.services.catalog_client import CatalogClient
from cafe.services.datastore_client import DataStoreClient
from cafe.services.lock_service import LockService
from cafe.services.order_persister import OrderPersister
from cafe.services.payment_confirmer import PaymentConfirmer
from cafe.services.payment_gateway import PaymentGateway
from cafe.services.ticket_service import TicketService, confirmation_number
from cafe.utils.settings import CURRENCY, CATALOG_SERVICE_URL
from cafe.utils.logging import get_logger

logger = get_logger(__name__)


class CheckoutService:
    """
    Orkiestracja checkoutu (zamowienia z menu i bilety na wydarzenia):

    INIT -> AMOUNT_OK -> INTENT_CREATED -> PAYMENT_SUCCEEDED | PAYMENT_FAILED
    PAYMENT_SUCCEEDED -> ORDER_RECORDED | PERSIST_FAILED

    Kazda proba ma trwaly rekord (checkout_attempts) zapisany PRZED obciazeniem karty.
    Zamowienie zapisujemy dopiero po potwierdzonej platnosci.
    Zaden krok nie ma automatycznego retry. Sweeper ponawia zapis dla prob "charged"
    i pyta procesora o stare "intent_created", ktore klient mogl oplacic bez /confirm.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        persister: OrderPersister,
        lock_service: LockService,
        catalog: CatalogClient | None = None,
        activity_log: ActivityLog | None = None,
        tickets: TicketService | None = None,
    ):
        self.repo = CheckoutAttemptRepo(db)
        self.gateway = gateway
        self.confirmer = PaymentConfirmer(gateway)
        self.persister = persister
        self.lock_service = lock_service
        self.catalog = catalog
        self.activity_log = activity_log or ActivityLog()
        self.tickets = tickets or TicketService(persister.store)

    #commands
    def create_intent(self, payload: CreateIntentIn) -> Dict[str, Any]:
        """
        Use Case: rezerwacja platnosci za zamowienie.

        1. Zamraza pozycje (ceny z katalogu jesli dostepny)
        2. Przelicza kwote i porownuje z deklarowana - bez tego zadnego wywolania procesora
        3. Zapisuje trwaly rekord checkoutu
        4. Tworzy PaymentIntent z Idempotency-Key
        """
        if not payload.items:
            raise EmptyCart()

        lines = self._freeze_lines(payload.items)
        expected = validate_amount(lines, payload.order_type, payload.amount)
        currency = (payload.currency or CURRENCY).lower()

        logger.info(f"Checkout {payload.idempotency_key}: amount verified {expected} {currency}")

        attempt = self._open_attempt(
            CheckoutAttemptModel(
                idempotency_key=payload.idempotency_key,
                kind=AttemptKind.ORDER.value,
                amount=expected,
                amount_minor=to_minor_units(expected),
                currency=currency,
                order_type=payload.order_type.value,
                customer=_customer(payload.customer),
                items=[line.model_dump(mode="json") for line in lines],
                delivery_address=payload.delivery_address,
                special_instructions=payload.special_instructions,
            ),
            PaymentMetadata(
                customer_email=str(payload.customer.email),
                customer_name=payload.customer.name,
                customer_phone=payload.customer.phone or "",
                order_type=payload.order_type,
                delivery_address=payload.delivery_address or "",
                special_instructions=payload.special_instructions or "",
                cart_items_count=len(lines),
                total_items=sum(line.quantity for line in lines),
                idempotency_key=payload.idempotency_key,
            ),
        )
        return self._intent_result(attempt)

    def create_ticket_intent(self, payload: TicketIntentIn) -> Dict[str, Any]:
        """
        Use Case: rezerwacja platnosci za bilety.
        Cena z wydarzenia w data store, nigdy od klienta. Miejsca sprawdzane przed platnoscia.
        """
        line = self.tickets.quote(payload.event_id, ticket_quantity(payload.quantity))
        total = ticket_total(line.ticket_price, line.quantity)
        if payload.amount is not None:
            check_declared(total, payload.amount)
        currency = (payload.currency or CURRENCY).lower()

        logger.info(f"Checkout {payload.idempotency_key}: {line.quantity} tickets for event {line.event_id} = {total}")

        attempt = self._open_attempt(
            CheckoutAttemptModel(
                idempotency_key=payload.idempotency_key,
                kind=AttemptKind.TICKETS.value,
                amount=total,
                amount_minor=to_minor_units(total),
                currency=currency,
                customer=_customer(payload.customer),
                items=[line.model_dump(mode="json")],
            ),
            TicketMetadata(
                event_id=line.event_id,
                event_title=line.title,
                event_date=line.event_date or "",
                quantity=line.quantity,
                ticket_price=str(line.ticket_price),
                customer_name=payload.customer.name,
                customer_email=str(payload.customer.email),
                customer_phone=payload.customer.phone or "",
                idempotency_key=payload.idempotency_key,
            ),
        )
        return {
            **self._intent_result(attempt),
            "event_id": line.event_id,
            "event_title": line.title,
            "event_date": line.event_date,
            "quantity": line.quantity,
        }

    def confirm_order(self, payload: ConfirmOrderIn) -> Dict[str, Any]:
        """
        Use Case: potwierdzenie platnosci i zapis zamowienia.

        Zamowienie powstaje tylko gdy procesor zwroci succeeded.
        Pozycje zamowienia biora sie z zamrozonego snapshotu proby, nie z requestu.
        """
        return self._order_result(self._settle(payload, AttemptKind.ORDER))

    def confirm_tickets(self, payload: ConfirmOrderIn) -> Dict[str, Any]:
        return self._ticket_result(self._settle(payload, AttemptKind.TICKETS))

    def reconcile(self, attempt_id: int) -> int:
        """
        Use Case: ponowny zapis zamowienia albo sprzedazy biletow dla proby "charged" (sweeper albo admin).
        """
        attempt = self.get_attempt(attempt_id)

        if attempt.status == AttemptStatus.RECORDED.value:
            return _record_id(attempt)

        if attempt.status != AttemptStatus.CHARGED.value:
            raise InvalidStatusTransition(
                f"Checkout attempt {attempt_id} is {attempt.status}, only charged attempts can be reconciled"
            )

        with self.lock_service.hold(attempt.idempotency_key):
            self.repo.db.refresh(attempt)
            if attempt.status == AttemptStatus.RECORDED.value:
                return _record_id(attempt)

            record_id = self._record(attempt)

        if attempt.kind == AttemptKind.TICKETS.value:
            self.activity_log.log(
                "ticket_sale_reconciled",
                f"Ticket sale #{record_id} recorded for payment {attempt.payment_intent_id} "
                f"after {attempt.attempts} failed attempts",
                target_type="ticket_sale",
                target_id=record_id,
            )
        else:
            self.activity_log.log(
                "order_reconciled",
                f"Order #{record_id} recorded for payment {attempt.payment_intent_id} "
                f"after {attempt.attempts} failed attempts",
                target_type="order",
                target_id=record_id,
            )
        return record_id

    def sync_intent(self, attempt_id: int) -> str:
        """
        Use Case: proba "intent_created", dla ktorej klient nie wrocil z /confirm.

        Pyta procesora o status: succeeded -> charged + zapis, canceled -> failed,
        reszta zostaje bez zmian (klient moze jeszcze zaplacic).
        Zwraca status proby po synchronizacji.
        """
        attempt = self.get_attempt(attempt_id)

        with self.lock_service.hold(attempt.idempotency_key):
            self.repo.db.refresh(attempt)
            if attempt.status != AttemptStatus.INTENT_CREATED.value:
                return attempt.status

            intent = self.gateway.retrieve_intent(attempt.payment_intent_id)

            if intent.status == PaymentStatus.SUCCEEDED.value:
                attempt.status = AttemptStatus.CHARGED.value
                attempt.last_error = None
                self.repo.save(attempt)
                logger.warning(
                    f"Checkout {attempt.idempotency_key}: payment {attempt.payment_intent_id} "
                    f"succeeded without confirmation, recording"
                )
                self._record(attempt)
            elif intent.status == PaymentStatus.CANCELED.value:
                attempt.status = AttemptStatus.FAILED.value
                attempt.last_error = f"Payment intent {intent.status}"
                self.repo.save(attempt)
                logger.info(f"Checkout {attempt.idempotency_key}: payment {attempt.payment_intent_id} canceled")

        return attempt.status

    #query
    def get_attempt(self, attempt_id: int) -> CheckoutAttemptModel:
        attempt = self.repo.get(attempt_id)
        if not attempt:
            raise AttemptNotFound(f"Checkout attempt {attempt_id} does not exist")
        return attempt

    def list_attempts(self, status: AttemptStatus = AttemptStatus.CHARGED) -> List[CheckoutAttemptModel]:
        return self.repo.list_by_status(status.value)

    def _open_attempt(self, draft: CheckoutAttemptModel, metadata: ProcessorMetadata) -> CheckoutAttemptModel:
        key = draft.idempotency_key

        with self.lock_service.hold(key):
            attempt = self.repo.get_by_key(key)

            if attempt:
                if not _same_checkout(attempt, draft):
                    raise ValidationError("Idempotency key was already used for a different checkout")

                if attempt.payment_intent_id:
                    logger.info(f"Checkout {key} already has intent {attempt.payment_intent_id}")
                    return attempt
            else:
                draft.status = AttemptStatus.CREATED.value
                draft.attempts = 0
                attempt = self.repo.create(draft)

            try:
                intent = self.gateway.create_intent(
                    amount_minor=attempt.amount_minor,
                    currency=attempt.currency,
                    metadata=metadata,
                    idempotency_key=key,
                )
            except PaymentGatewayError as e:
                attempt.last_error = str(e)
                self.repo.save(attempt)
                raise

            attempt.payment_intent_id = intent.id
            attempt.client_secret = intent.client_secret
            attempt.status = AttemptStatus.INTENT_CREATED.value
            self.repo.save(attempt)

        logger.info(f"Checkout {key}: intent {intent.id} created")
        return attempt

    def _settle(self, payload: ConfirmOrderIn, kind: AttemptKind) -> CheckoutAttemptModel:
        attempt = self.repo.get_by_key(payload.idempotency_key)

        if not attempt or attempt.kind != kind.value:
            raise AttemptNotFound("Checkout attempt does not exist")

        if attempt.payment_intent_id != payload.payment_intent_id:
            raise ValidationError("Payment intent does not belong to this checkout")

        if attempt.status == AttemptStatus.RECORDED.value:
            logger.info(f"Checkout {attempt.idempotency_key} already recorded as #{_record_id(attempt)}")
            return attempt

        with self.lock_service.hold(attempt.idempotency_key):
            #sweeper mogl cos zmienic zanim dostalismy locka
            self.repo.db.refresh(attempt)

            if attempt.status == AttemptStatus.RECORDED.value:
                return attempt

            if attempt.status != AttemptStatus.CHARGED.value:
                try:
                    self.confirmer.confirm(
                        attempt.payment_intent_id,
                        idempotency_key=attempt.idempotency_key,
                        payment_method=payload.payment_method,
                        billing_details=payload.billing_details,
                    )
                except PaymentDeclined as e:
                    attempt.status = AttemptStatus.FAILED.value
                    attempt.last_error = str(e)
                    self.repo.save(attempt)
                    raise
                except PaymentGatewayError as e:
                    attempt.last_error = str(e)
                    self.repo.save(attempt)
                    raise

                attempt.status = AttemptStatus.CHARGED.value
                attempt.last_error = None
                self.repo.save(attempt)
                logger.info(f"Checkout {attempt.idempotency_key}: payment {attempt.payment_intent_id} succeeded")

            self._record(attempt)

        return attempt

    def _record(self, attempt: CheckoutAttemptModel) -> int:
        try:
            if attempt.kind == AttemptKind.TICKETS.value:
                record_id = self.tickets.record_sale(
                    payment_reference=attempt.payment_intent_id,
                    customer=attempt.customer,
                    line=TicketLine.model_validate(attempt.items[0]),
                    total_amount=to_decimal(attempt.amount),
                )
            else:
                record_id = self.persister.persist(
                    payment_reference=attempt.payment_intent_id,
                    customer=attempt.customer,
                    order_type=OrderType(attempt.order_type),
                    lines=[OrderLine.model_validate(item) for item in attempt.items],
                    total_amount=to_decimal(attempt.amount),
                    delivery_address=attempt.delivery_address,
                    special_instructions=attempt.special_instructions,
                )
        except PersistenceError as e:
            attempt.attempts += 1
            attempt.last_error = str(e)
            if isinstance(e, PartialPersistenceError):
                attempt.order_id = e.order_id
            self.repo.save(attempt)

            logger.critical(
                f"PAYMENT CAPTURED WITHOUT RECORD: {attempt.kind} checkout {attempt.idempotency_key}, "
                f"payment {attempt.payment_intent_id}, amount {attempt.amount} {attempt.currency}, "
                f"attempt {attempt.attempts}: {e}"
            )
            self.activity_log.log(
                "reconciliation_required",
                f"Payment {attempt.payment_intent_id} ({attempt.amount} {attempt.currency.upper()}) "
                f"for {attempt.customer.get('email')} captured but {attempt.kind} not recorded: {e}",
                target_type="checkout_attempt",
                target_id=attempt.id,
            )
            raise

        if attempt.kind == AttemptKind.TICKETS.value:
            attempt.ticket_sale_id = record_id
        else:
            attempt.order_id = record_id
        attempt.status = AttemptStatus.RECORDED.value
        attempt.last_error = None
        self.repo.save(attempt)

        logger.info(f"Checkout {attempt.idempotency_key}: {attempt.kind} #{record_id} recorded")
        return record_id

    def _freeze_lines(self, items: List[LineItemIn]) -> List[OrderLine]:
        lines = []
        for item in items:
            name, price = item.name, item.price

            #cena z katalogu wygrywa z cena klienta
            if self.catalog is not None:
                menu_item = self.catalog.fetch_menu_item(item.id)
                name = menu_item.get("name", name)
                price = to_decimal(menu_item["price"])

            lines.append(
                OrderLine(
                    menu_item_id=item.id,
                    name=name,
                    quantity=item.quantity,
                    price_at_time=price,
                    special_requests=item.special_requests,
                )
            )
        return lines

    @staticmethod
    def _intent_result(attempt: CheckoutAttemptModel) -> Dict[str, Any]:
        return {
            "attempt_id": attempt.id,
            "payment_intent_id": attempt.payment_intent_id,
            "client_secret": attempt.client_secret,
            "amount": to_decimal(attempt.amount),
            "amount_minor": attempt.amount_minor,
            "currency": attempt.currency,
        }

    @staticmethod
    def _order_result(attempt: CheckoutAttemptModel) -> Dict[str, Any]:
        return {
            "success": True,
            "order_id": attempt.order_id,
            "status": OrderStatus.CONFIRMED.value,
            "payment_intent_id": attempt.payment_intent_id,
            "total_amount": to_decimal(attempt.amount),
        }

    @staticmethod
    def _ticket_result(attempt: CheckoutAttemptModel) -> Dict[str, Any]:
        line = TicketLine.model_validate(attempt.items[0])
        return {
            "success": True,
            "ticket_sale_id": attempt.ticket_sale_id,
            "confirmation_number": confirmation_number(attempt.ticket_sale_id),
            "event_id": line.event_id,
            "event_title": line.title,
            "event_date": line.event_date,
            "quantity": line.quantity,
            "total_amount": to_decimal(attempt.amount),
            "payment_intent_id": attempt.payment_intent_id,
            "customer_name": attempt.customer["name"],
            "customer_email": attempt.customer["email"],
        }


def _customer(customer) -> Dict[str, Any]:
    return {"email": str(customer.email), "name": customer.name, "phone": customer.phone}


def _same_checkout(attempt: CheckoutAttemptModel, draft: CheckoutAttemptModel) -> bool:
    #ten sam klucz = ta sama kwota, te same pozycje, ten sam klient
    return (
        attempt.kind == draft.kind
        and to_decimal(attempt.amount) == to_decimal(draft.amount)
        and attempt.order_type == draft.order_type
        and attempt.items == draft.items
        and (attempt.customer or {}).get("email") == draft.customer["email"]
    )


def _record_id(attempt: CheckoutAttemptModel) -> int | None:
    if attempt.kind == AttemptKind.TICKETS.value:
        return attempt.ticket_sale_id
    return attempt.order_id


def build_checkout_service(db: Session) -> CheckoutService:
    store = DataStoreClient()
    return CheckoutService(
        db=db,
        gateway=PaymentGateway(),
        persister=OrderPersister(store),
        lock_service=LockService(),
        catalog=CatalogClient() if CATALOG_SERVICE_URL else None,
        tickets=TicketService(store),
    )
