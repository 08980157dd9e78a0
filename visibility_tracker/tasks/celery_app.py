from celery import Celery
from celery.schedules import crontab

from visibility_tracker.core.config import settings

celery_app = Celery(
    "visibility_tracker",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
)

# Celery Beat schedule: provider health hourly, visibility snapshots daily.
celery_app.conf.beat_schedule = {
    "check-provider-health": {
        "task": "check_provider_health",
        "schedule": crontab(minute=0),  # every hour
    },
    "recalculate-visibility": {
        "task": "recalculate_visibility",
        "schedule": crontab(hour=2, minute=30),  # daily at 02:30
    },
}

celery_app.autodiscover_tasks(["visibility_tracker.tasks"])

# Explicit include as fallback for autodiscover (needed for CLI worker startup)
celery_app.conf.include = [
    "visibility_tracker.tasks.analysis_tasks",
]
