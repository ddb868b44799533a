import logging

from celery import Celery
from celery.signals import setup_logging

from dosetrack.core.config import settings


broker_url = settings.CELERY_BROKER_URL or "memory://"
result_backend = settings.CELERY_RESULT_BACKEND or None

celery_app = Celery(
    "dosetrack",
    broker=broker_url,
    backend=result_backend,
)

celery_app.conf.update(
    task_acks_late=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_CONCURRENCY,
    include=["dosetrack.reminders.tasks"],
)

# Celery Beat is the external timer driving every sweep
celery_app.conf.beat_schedule = {
    "process-due-notifications": {
        "task": "dosetrack.process_due_notifications",
        "schedule": settings.SCHEDULER_SCAN_INTERVAL_SECONDS,
    },
    "mark-missed-doses": {
        "task": "dosetrack.mark_missed_doses",
        "schedule": settings.MISSED_SWEEP_INTERVAL_SECONDS,
    },
    "schedule-dose-reminders": {
        "task": "dosetrack.schedule_dose_reminders",
        "schedule": settings.SCHEDULER_SCAN_INTERVAL_SECONDS,
    },
    "schedule-low-stock-alerts": {
        "task": "dosetrack.schedule_low_stock_alerts",
        "schedule": settings.LOW_STOCK_SCAN_INTERVAL_SECONDS,
    },
}


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
