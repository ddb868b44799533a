import logging
from datetime import datetime
from typing import Optional

from celery import shared_task
from sqlalchemy.orm import Session

from dosetrack.db.session import SessionLocal
from dosetrack.services.dose_state_machine import DoseStateMachine
from .scheduler import NotificationScheduler

logger = logging.getLogger(__name__)


def _parse_now(now: Optional[str]) -> Optional[datetime]:
    # Celery serializes as JSON, so timestamps arrive as ISO strings
    return datetime.fromisoformat(now.replace("Z", "+00:00")) if now else None


@shared_task(name="dosetrack.process_due_notifications")
def process_due_notifications_task(now: Optional[str] = None, batch_limit: Optional[int] = None) -> dict:
    """Sweep one batch of due notifications. Returns the sweep summary."""
    db: Session = SessionLocal()
    scheduler = NotificationScheduler(db)
    try:
        summary = scheduler.sweep(_parse_now(now), batch_limit)
        return summary.model_dump()
    finally:
        scheduler.close()
        db.close()


@shared_task(name="dosetrack.mark_missed_doses")
def mark_missed_doses_task(now: Optional[str] = None, grace_minutes: Optional[int] = None) -> int:
    db: Session = SessionLocal()
    try:
        return DoseStateMachine(db).mark_missed(_parse_now(now), grace_minutes)
    finally:
        db.close()


@shared_task(name="dosetrack.schedule_dose_reminders")
def schedule_dose_reminders_task(now: Optional[str] = None, horizon_hours: Optional[int] = None) -> int:
    db: Session = SessionLocal()
    scheduler = NotificationScheduler(db)
    try:
        return scheduler.schedule_dose_reminders(_parse_now(now), horizon_hours)
    finally:
        scheduler.close()
        db.close()


@shared_task(name="dosetrack.schedule_low_stock_alerts")
def schedule_low_stock_alerts_task(now: Optional[str] = None, horizon_days: Optional[int] = None) -> int:
    db: Session = SessionLocal()
    scheduler = NotificationScheduler(db)
    try:
        return scheduler.schedule_low_stock_alerts(_parse_now(now), horizon_days)
    finally:
        scheduler.close()
        db.close()
