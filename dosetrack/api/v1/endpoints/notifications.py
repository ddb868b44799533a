from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from dosetrack.api import deps
from dosetrack.core.exceptions import NotFoundError
from dosetrack.crud.notification import NotificationRepository
from dosetrack.models.notification import DeliveryStatus
from dosetrack.reminders.scheduler import NotificationScheduler
from dosetrack.schemas.notification import (
    NotificationCreate,
    NotificationQueued,
    NotificationRead,
    ProcessDueRequest,
    SweepSummary,
)


router = APIRouter()


# ---- internal endpoints (API key) ----

@router.post(
    "",
    response_model=NotificationQueued,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(deps.verify_api_key_dependency)],
)
def schedule_notification(
    payload: NotificationCreate,
    scheduler: NotificationScheduler = Depends(deps.get_notification_scheduler),
):
    notification_id = scheduler.schedule_notification(payload)
    return NotificationQueued(notification_id=notification_id, scheduled_at=payload.scheduled_at)


@router.post(
    "/process-due",
    response_model=SweepSummary,
    dependencies=[Depends(deps.verify_api_key_dependency)],
)
def process_due_notifications(
    payload: Optional[ProcessDueRequest] = None,
    scheduler: NotificationScheduler = Depends(deps.get_notification_scheduler),
):
    payload = payload or ProcessDueRequest()
    return scheduler.sweep(payload.now, payload.batch_limit)


@router.post("/schedule-dose-reminders", dependencies=[Depends(deps.verify_api_key_dependency)])
def schedule_dose_reminders(
    horizon_hours: Optional[int] = Query(None, ge=1, le=168),
    scheduler: NotificationScheduler = Depends(deps.get_notification_scheduler),
):
    return {"created": scheduler.schedule_dose_reminders(horizon_hours=horizon_hours)}


@router.post("/schedule-low-stock", dependencies=[Depends(deps.verify_api_key_dependency)])
def schedule_low_stock_alerts(
    horizon_days: Optional[int] = Query(None, ge=1, le=90),
    scheduler: NotificationScheduler = Depends(deps.get_notification_scheduler),
):
    return {"created": scheduler.schedule_low_stock_alerts(horizon_days=horizon_days)}


# ---- user endpoints ----

@router.get("", response_model=List[NotificationRead])
def list_notifications(
    delivery_status: Optional[DeliveryStatus] = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.get_current_user_id),
):
    return NotificationRepository(db).list_for_user(
        user_id, status=delivery_status.value if delivery_status else None, limit=limit
    )


@router.get("/{notification_id}", response_model=NotificationRead)
def get_notification(
    notification_id: str,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.get_current_user_id),
):
    row = NotificationRepository(db).get(notification_id)
    if row is None or row.user_id != user_id:
        raise NotFoundError("Notification not found")
    return row
