# cafe/celery_worker.py
from celery import Celery

from cafe.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, RECONCILE_INTERVAL_SECONDS

celery_app = Celery(
    "cafe",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# WAZNE: explicite importuj taski, zeby Celery je zarejestrowal
celery_app.conf.imports = (
    "cafe.tasks.reconcile",
    "cafe.services.activity_log",
)

celery_app.conf.beat_schedule = {
    "sweep-checkouts": {
        "task": "cafe.tasks.reconcile.sweep_checkouts_task",
        "schedule": RECONCILE_INTERVAL_SECONDS,
    },
}

celery_app.conf.timezone = "UTC"
