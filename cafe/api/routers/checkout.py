# cafe/api/routers/checkout.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from cafe.data.database import get_db
from cafe.domain.errors import (
    ValidationError,
    PaymentGatewayError,
    PaymentDeclined,
    PersistenceError,
    CheckoutInProgress,
    CatalogUnavailable,
    AttemptNotFound,
    EventNotFound,
)
from cafe.domain.schemas import (
    CreateIntentIn,
    IntentOut,
    ConfirmOrderIn,
    ConfirmOrderOut,
    TicketIntentIn,
    TicketIntentOut,
    TicketPurchaseOut,
)
from cafe.services.checkout_service import CheckoutService, build_checkout_service
from cafe.utils.settings import SUPPORT_CONTACT

router = APIRouter(prefix="/checkout", tags=["checkout"])


def get_service(db: Session = Depends(get_db)) -> CheckoutService:
    return build_checkout_service(db)


def _detail(e, message: str | None = None) -> dict:
    return {"code": e.code, "message": message or str(e)}


@router.post("/intents", response_model=IntentOut, status_code=201)
def create_intent(payload: CreateIntentIn, svc: CheckoutService = Depends(get_service)):
    """
    Weryfikuje kwote i rezerwuje platnosc u procesora.
    """
    try:
        return svc.create_intent(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=_detail(e))
    except CheckoutInProgress as e:
        raise HTTPException(status_code=409, detail=_detail(e))
    except CatalogUnavailable as e:
        raise HTTPException(status_code=503, detail=_detail(e, "Menu is temporarily unavailable, please try again"))
    except PaymentGatewayError as e:
        raise HTTPException(status_code=502, detail=_detail(e))


@router.post("/confirm", response_model=ConfirmOrderOut)
def confirm_order(payload: ConfirmOrderIn, svc: CheckoutService = Depends(get_service)):
    """
    Potwierdza platnosc i zapisuje zamowienie.
    Blad zapisu po udanej platnosci ma osobny komunikat - klient zaplacil.
    """
    return _settle(svc.confirm_order, payload, "order")


@router.post("/tickets/intents", response_model=TicketIntentOut, status_code=201)
def create_ticket_intent(payload: TicketIntentIn, svc: CheckoutService = Depends(get_service)):
    try:
        return svc.create_ticket_intent(payload)
    except EventNotFound as e:
        raise HTTPException(status_code=404, detail=_detail(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=_detail(e))
    except CheckoutInProgress as e:
        raise HTTPException(status_code=409, detail=_detail(e))
    except CatalogUnavailable as e:
        raise HTTPException(status_code=503, detail=_detail(e, "Event details are temporarily unavailable, please try again"))
    except PaymentGatewayError as e:
        raise HTTPException(status_code=502, detail=_detail(e))


@router.post("/tickets/confirm", response_model=TicketPurchaseOut)
def confirm_tickets(payload: ConfirmOrderIn, svc: CheckoutService = Depends(get_service)):
    return _settle(svc.confirm_tickets, payload, "tickets")


def _settle(confirm, payload: ConfirmOrderIn, what: str):
    try:
        return confirm(payload)
    except AttemptNotFound as e:
        raise HTTPException(status_code=404, detail=_detail(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=_detail(e))
    except PaymentDeclined as e:
        raise HTTPException(status_code=402, detail={**_detail(e), "payment_status": e.status})
    except CheckoutInProgress as e:
        raise HTTPException(status_code=409, detail=_detail(e))
    except PaymentGatewayError as e:
        raise HTTPException(status_code=502, detail=_detail(e, "Payment service is unavailable, please try again"))
    except PersistenceError as e:
        raise HTTPException(
            status_code=500,
            detail={
                "code": e.code,
                "message": (
                    f"Your payment succeeded but we could not record your {what}. "
                    f"Please contact support at {SUPPORT_CONTACT} quoting reference {e.payment_reference}."
                ),
                "payment_reference": e.payment_reference,
                "support_contact": SUPPORT_CONTACT,
            },
        )
