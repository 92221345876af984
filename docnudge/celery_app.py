"""Celery application instance shared across the backend.

Start a worker (with the beat schedule embedded) with:
    celery -A docnudge.celery_app worker -B -Q ledger -l info --concurrency=1
"""

from celery import Celery
from celery.schedules import crontab

from config import settings

BROKER_URL = settings.REDIS_URL

celery_app = Celery("docnudge", broker=BROKER_URL, backend=BROKER_URL)

# Global task settings
celery_app.conf.task_acks_late = True
celery_app.conf.task_reject_on_worker_lost = True
celery_app.conf.task_default_retry_delay = 30  # seconds
celery_app.conf.timezone = settings.DEFAULT_TIMEZONE

celery_app.conf.task_routes = {
    "docnudge.workers.ledger.*": {"queue": "ledger"},
}

# Beat schedule: nightly duplicate-record cleanup for the current month
celery_app.conf.beat_schedule = {
    "cleanup-duplicate-records": {
        "task": "docnudge.workers.ledger.cleanup_duplicates",
        "schedule": crontab(hour=2, minute=0),
    }
}

# --- Ensure tasks are registered ---
import docnudge.workers.ledger  # noqa: E402,F401
