# cafe/services/activity_log.py
from datetime import datetime, timezone

from kombu.exceptions import OperationalError

from cafe.celery_worker import celery_app
from cafe.services.datastore_client import DataStoreClient, DataStoreError
from cafe.utils.logging import get_logger

logger = get_logger(__name__)

ACTIVITY_LOG_TABLE = "admin_activity_log"
SYSTEM_ACTOR = "system@checkout"


class ActivityLog:
    """
    Log aktywnosci w panelu admina.
    Fire-and-forget przez Celery - nie blokuje checkoutu, blad brokera tylko logujemy.
    """

    @staticmethod
    def log(
        action_type: str,
        description: str,
        admin_email: str = SYSTEM_ACTOR,
        target_type: str | None = None,
        target_id: int | None = None,
    ) -> None:
        entry = {
            "admin_email": admin_email,
            "action_type": action_type,
            "action_description": description,
            "target_type": target_type,
            "target_id": target_id,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            log_activity_task.delay(entry)
        except OperationalError as e:
            logger.warning(f"Activity log not enqueued ({action_type}): {e} | {description}")


@celery_app.task(
    name="cafe.services.activity_log.log_activity_task",
    autoretry_for=(DataStoreError,),
    retry_backoff=True,
    max_retries=3,
)
def log_activity_task(entry: dict):
    DataStoreClient().insert(ACTIVITY_LOG_TABLE, entry, returning=False)
    logger.info(f"[ACTIVITY] {entry['action_type']}: {entry['action_description']}")
    return {"action_type": entry["action_type"], "status": "logged"}
