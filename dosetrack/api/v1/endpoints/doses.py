from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from dosetrack.api import deps
from dosetrack.crud.dose import DoseRepository
from dosetrack.models.dose import DoseStatus
from dosetrack.schemas.dose import (
    DoseRead,
    MarkTakenRequest,
    MarkTakenResponse,
    SkipDoseRequest,
    SkipDoseResponse,
    SnoozeRequest,
    SnoozeResponse,
    StreakRead,
)
from dosetrack.services.dose_state_machine import DoseStateMachine
from dosetrack.services.streak import StreakCalculator
from dosetrack.utils.timezone import utcnow


router = APIRouter()


@router.get("", response_model=List[DoseRead])
def list_doses(
    status: Optional[DoseStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.get_current_user_id),
):
    return DoseRepository(db).list_for_user(
        user_id, status=status.value if status else None, start=start, end=end, limit=limit
    )


@router.post("/{dose_id}/take", response_model=MarkTakenResponse)
def mark_dose_taken(
    dose_id: str,
    payload: Optional[MarkTakenRequest] = None,
    machine: DoseStateMachine = Depends(deps.get_dose_state_machine),
    user_id: str = Depends(deps.get_current_user_id),
):
    actor_timestamp = payload.actor_timestamp if payload else None
    return machine.mark_taken(dose_id, user_id, actor_timestamp)


@router.post("/{dose_id}/skip", response_model=SkipDoseResponse)
def skip_dose(
    dose_id: str,
    payload: SkipDoseRequest,
    machine: DoseStateMachine = Depends(deps.get_dose_state_machine),
    user_id: str = Depends(deps.get_current_user_id),
):
    return machine.skip_dose(dose_id, user_id, payload.reason)


@router.post("/{dose_id}/snooze", response_model=SnoozeResponse)
def snooze_dose(
    dose_id: str,
    payload: SnoozeRequest,
    machine: DoseStateMachine = Depends(deps.get_dose_state_machine),
    user_id: str = Depends(deps.get_current_user_id),
):
    return machine.snooze(dose_id, user_id, payload.minutes_delta)


@router.get("/items/{item_id}/streak", response_model=StreakRead)
def get_streak(
    item_id: str,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.get_current_user_id),
):
    deps.get_owned_item(db, item_id, user_id)
    return StreakRead(item_id=item_id, streak=StreakCalculator(db).recompute(item_id, as_of=utcnow()))


@router.post("/mark-missed", dependencies=[Depends(deps.verify_api_key_dependency)])
def mark_missed_doses(
    grace_minutes: Optional[int] = Query(None, ge=0),
    machine: DoseStateMachine = Depends(deps.get_dose_state_machine),
):
    """Run the missed-dose timeout sweep now."""
    return {"missed": machine.mark_missed(grace_minutes=grace_minutes)}
