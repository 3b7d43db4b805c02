"""
Celery application configuration for scheduled ledger tasks.
"""
import os
from celery import Celery
from celery.schedules import crontab

from ledger.config import get_settings

settings = get_settings()

# Redis URL for broker and backend
REDIS_URL = settings.redis_url

# Create Celery app
celery_app = Celery(
    "ledger_tasks",
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=["tasks.recurring_tasks"],
)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, low: int, high: int) -> int:
    try:
        value = int(os.getenv(name, str(default)))
    except ValueError:
        value = default
    # Keep the value in a safe cron range.
    return max(low, min(high, value))


def _build_beat_schedule() -> dict:
    schedule = {}

    if _env_bool("RECURRING_SCAN_ENABLED", default=True):
        scan_hour_utc = _env_int("RECURRING_SCAN_HOUR_UTC", settings.recurring_scan_hour_utc, 0, 23)
        scan_minute_utc = _env_int("RECURRING_SCAN_MINUTE_UTC", settings.recurring_scan_minute_utc, 0, 59)
        schedule["recurring-transactions-daily"] = {
            "task": "tasks.recurring_tasks.trigger_recurring_transactions",
            "schedule": crontab(minute=scan_minute_utc, hour=scan_hour_utc),
        }

    return schedule

# Celery configuration
celery_app.conf.update(
    # Task result settings
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task settings
    task_track_started=True,
    task_acks_late=True,  # Redeliver jobs whose worker died mid-run
    task_time_limit=600,
    task_soft_time_limit=540,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Beat schedule for periodic tasks
    beat_schedule=_build_beat_schedule(),
)

celery_app.autodiscover_tasks(["tasks"])


if __name__ == "__main__":
    celery_app.start()
