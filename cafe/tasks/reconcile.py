# cafe/tasks/reconcile.py
from datetime import datetime, timedelta, timezone

from cafe.celery_worker import celery_app
from cafe.data.database import SessionLocal
from cafe.domain.errors import PersistenceError, CheckoutInProgress, PaymentGatewayError
from cafe.domain.types import AttemptStatus
from cafe.repos.checkout_attempt_repo import CheckoutAttemptRepo
from cafe.services.checkout_service import build_checkout_service
from cafe.utils.settings import (
    RECONCILE_MAX_ATTEMPTS,
    RECONCILE_GRACE_SECONDS,
    RECONCILE_PENDING_MAX_AGE_SECONDS,
)
from cafe.utils.logging import get_logger

logger = get_logger(__name__)


def sweep_checkouts(db, service, now: datetime | None = None) -> dict:
    """
    Jeden przebieg sweepera:
    1. "charged" - ponawia zapis zamowienia / sprzedazy biletow
    2. "intent_created" starsze niz grace - pyta procesora, czy klient zaplacil bez /confirm

    Blad jednej proby nie zatrzymuje reszty.
    """
    now = now or datetime.now(timezone.utc)
    repo = CheckoutAttemptRepo(db)
    summary = {"recorded": 0, "failed": 0, "busy": 0, "canceled": 0}

    charged = repo.list_by_status(AttemptStatus.CHARGED.value, max_attempts=RECONCILE_MAX_ATTEMPTS)
    logger.info(f"Found {len(charged)} charged checkouts to reconcile")

    for attempt_id in [a.id for a in charged]:
        if _sweep_one(repo, attempt_id, service.reconcile, summary) is not None:
            summary["recorded"] += 1

    pending = repo.list_stale(
        AttemptStatus.INTENT_CREATED.value,
        updated_before=now - timedelta(seconds=RECONCILE_GRACE_SECONDS),
        created_after=now - timedelta(seconds=RECONCILE_PENDING_MAX_AGE_SECONDS),
        max_attempts=RECONCILE_MAX_ATTEMPTS,
    )
    logger.info(f"Found {len(pending)} unconfirmed checkouts to check with the payment processor")

    for attempt_id in [a.id for a in pending]:
        status = _sweep_one(repo, attempt_id, service.sync_intent, summary)
        if status == AttemptStatus.RECORDED.value:
            summary["recorded"] += 1
        elif status == AttemptStatus.FAILED.value:
            summary["canceled"] += 1

    return summary


def _sweep_one(repo: CheckoutAttemptRepo, attempt_id: int, action, summary: dict):
    try:
        return action(attempt_id)
    except CheckoutInProgress:
        #request klienta wlasnie to robi
        summary["busy"] += 1
    except PersistenceError as e:
        summary["failed"] += 1
        logger.warning(f"Reconciliation of checkout {attempt_id} failed again: {e}")
    except PaymentGatewayError as e:
        #awaria procesora, nie wina tej proby - bez liczenia do limitu
        summary["failed"] += 1
        logger.warning(f"Payment processor unavailable for checkout {attempt_id}: {e}")
    except Exception as e:
        summary["failed"] += 1
        logger.exception(f"Reconciliation of checkout {attempt_id} crashed")
        _count_failure(repo, attempt_id, e)
    return None


def _count_failure(repo: CheckoutAttemptRepo, attempt_id: int, error: Exception) -> None:
    #nieznany blad tez liczy sie do RECONCILE_MAX_ATTEMPTS, inaczej proba blokuje kazdy przebieg
    try:
        repo.rollback()
        attempt = repo.get(attempt_id)
        if attempt is None:
            return
        attempt.attempts += 1
        attempt.last_error = f"{type(error).__name__}: {error}"
        repo.save(attempt)
    except Exception:
        logger.exception(f"Could not record failure of checkout {attempt_id}")


@celery_app.task(name="cafe.tasks.reconcile.sweep_checkouts_task")
def sweep_checkouts_task():
    logger.info("Sweep checkouts task started")

    db = SessionLocal()
    try:
        return sweep_checkouts(db, build_checkout_service(db))
    finally:
        db.close()
