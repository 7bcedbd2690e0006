"""Celery application for the analytics worker."""

from celery import Celery
from celery.schedules import crontab

from analytics_service.config import get_settings

settings = get_settings()

app = Celery(
    "analytics_worker",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=[
        "analytics_worker.tasks.regenerate",
    ],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=1800,  # 30 minutes
    task_soft_time_limit=1740,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="analytics",
    task_routes={
        "analytics_worker.tasks.*": {"queue": "analytics"},
    },
)

app.conf.beat_schedule = {
    # Repair every customer summary from the order log once a day
    "regenerate-customer-analytics": {
        "task": "analytics_worker.tasks.regenerate.regenerate_all_customer_summaries",
        "schedule": crontab(minute=0, hour=settings.regeneration_hour_utc),
    },
}


def run() -> None:
    """Run the Celery worker."""
    app.worker_main(["worker", "--loglevel=info", "-Q", "analytics"])


if __name__ == "__main__":
    run()
