"""Celery application and beat schedule.

Start a worker with:
    celery -A workers.celery_app worker -l info
and the scheduler with:
    celery -A workers.celery_app beat -l info
"""

from celery import Celery

from config import get_settings

settings = get_settings()

celery_app = Celery(
    "partmatch",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["workers.matching_tasks", "rules.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

celery_app.conf.beat_schedule = {
    "advance-active-jobs": {
        "task": "jobs.advance_active_jobs",
        "schedule": float(settings.JOB_TICK_INTERVAL_SECONDS),
        "options": {
            "expires": settings.JOB_TICK_INTERVAL_SECONDS,  # A missed tick is superseded by the next one
        },
    },
    "mine-patterns": {
        "task": "rules.mine_patterns",
        "schedule": float(settings.PATTERN_MINING_INTERVAL_SECONDS),
    },
}
