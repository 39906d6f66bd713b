# cafe/api/routers/admin.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from cafe.api.deps import bearer, get_session_service, require_admin
from cafe.data.database import get_db
from cafe.domain.errors import (
    AuthenticationError,
    OrderNotFound,
    InvalidStatusTransition,
    AttemptNotFound,
    CheckoutInProgress,
    PersistenceError,
)
from cafe.domain.schemas import (
    AdminLoginIn,
    AdminSessionOut,
    OrderOut,
    OrderDetailsOut,
    OrderStatusUpdateIn,
    AttemptOut,
    TicketSaleOut,
)
from cafe.services.checkout_service import CheckoutService, build_checkout_service
from cafe.services.datastore_client import DataStoreClient, DataStoreError
from cafe.services.order_service import OrderService
from cafe.services.session_service import SessionService
from cafe.services.ticket_service import TicketService

router = APIRouter(prefix="/admin", tags=["admin"])

_RECORD_FIELD = {"order": "order_id", "tickets": "ticket_sale_id"}


def get_order_service() -> OrderService:
    return OrderService(DataStoreClient())


def get_ticket_service() -> TicketService:
    return TicketService(DataStoreClient())


def get_checkout_service(db: Session = Depends(get_db)) -> CheckoutService:
    return build_checkout_service(db)


#sesje
@router.post("/sessions", response_model=AdminSessionOut, status_code=201)
def login(payload: AdminLoginIn, sessions: SessionService = Depends(get_session_service)):
    try:
        token = sessions.login(payload.email, payload.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return {"token": token, "expires_in": sessions.ttl}


@router.delete("/sessions", status_code=204)
def logout(
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
    admin_email: str = Depends(require_admin),
    sessions: SessionService = Depends(get_session_service),
):
    sessions.logout(credentials.credentials)


#zamowienia
@router.get("/orders", response_model=List[OrderOut])
def list_orders(
    admin_email: str = Depends(require_admin),
    svc: OrderService = Depends(get_order_service),
):
    try:
        return svc.list_orders()
    except DataStoreError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/orders/{order_id}", response_model=OrderDetailsOut)
def get_order(
    order_id: int,
    admin_email: str = Depends(require_admin),
    svc: OrderService = Depends(get_order_service),
):
    try:
        return svc.get_order_details(order_id)
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DataStoreError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.patch("/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: int,
    payload: OrderStatusUpdateIn,
    admin_email: str = Depends(require_admin),
    svc: OrderService = Depends(get_order_service),
):
    try:
        return svc.update_order_status(order_id, payload.status, admin_email, payload.notes)
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except DataStoreError as e:
        raise HTTPException(status_code=502, detail=str(e))


#bilety
@router.get("/ticket-sales", response_model=List[TicketSaleOut])
def list_ticket_sales(
    admin_email: str = Depends(require_admin),
    svc: TicketService = Depends(get_ticket_service),
):
    try:
        return svc.list_sales()
    except DataStoreError as e:
        raise HTTPException(status_code=502, detail=str(e))


#rekonsyliacja
@router.get("/reconciliation", response_model=List[AttemptOut])
def list_unreconciled(
    admin_email: str = Depends(require_admin),
    svc: CheckoutService = Depends(get_checkout_service),
):
    """Proby oplacone, dla ktorych zamowienie albo sprzedaz biletow nie zostaly zapisane."""
    return svc.list_attempts()


@router.post("/reconciliation/{attempt_id}/replay")
def replay(
    attempt_id: int,
    admin_email: str = Depends(require_admin),
    svc: CheckoutService = Depends(get_checkout_service),
):
    try:
        record_id = svc.reconcile(attempt_id)
    except AttemptNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InvalidStatusTransition, CheckoutInProgress) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    attempt = svc.get_attempt(attempt_id)
    return {"attempt_id": attempt_id, "kind": attempt.kind, _RECORD_FIELD[attempt.kind]: record_id}
