"""
Dose lifecycle.

    scheduled --take-->   taken     (terminal)
    scheduled --skip-->   skipped   (terminal)
    scheduled --snooze--> scheduled (due_at shifted)
    scheduled --timeout-> missed    (sweep only)

Every transition is a conditional UPDATE on status='scheduled', so a double
submission resolves to one winner and a ConflictError for the other caller.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from dosetrack.core.config import settings
from dosetrack.core.exceptions import ConflictError, NotFoundError
from dosetrack.crud.dose import DoseRepository
from dosetrack.crud.notification import NotificationRepository
from dosetrack.models.dose import DoseInstance, DoseStatus
from dosetrack.reminders.metrics import dose_actions_total, doses_missed_total, stock_deductions_failed_total
from dosetrack.schemas.dose import MarkTakenResponse, SkipDoseResponse, SnoozeResponse
from dosetrack.services.collaborators import ItemCatalog, SqlItemCatalog
from dosetrack.services.stock_ledger import StockLedger
from dosetrack.services.streak import StreakCalculator
from dosetrack.utils.timezone import to_utc_aware, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MEDICATION_NAME = "Medication"


def delay_in_minutes(taken_at: datetime, due_at: datetime) -> int:
    """Signed delay, negative when taken early."""
    return math.floor((to_utc_aware(taken_at) - to_utc_aware(due_at)).total_seconds() / 60 + 0.5)


class DoseStateMachine:
    def __init__(
        self,
        db: Session,
        *,
        doses: Optional[DoseRepository] = None,
        notifications: Optional[NotificationRepository] = None,
        ledger: Optional[StockLedger] = None,
        streaks: Optional[StreakCalculator] = None,
        catalog: Optional[ItemCatalog] = None,
    ):
        self.db = db
        self.doses = doses or DoseRepository(db)
        self.notifications = notifications or NotificationRepository(db)
        self.ledger = ledger or StockLedger(db, dose_repo=self.doses)
        self.streaks = streaks or StreakCalculator(db, dose_repo=self.doses)
        self.catalog = catalog or SqlItemCatalog(db)

    def mark_taken(
        self,
        dose_id: str,
        user_id: str,
        actor_timestamp: Optional[datetime] = None,
    ) -> MarkTakenResponse:
        dose = self._resolve(dose_id, user_id)
        self._ensure_scheduled(dose, "take")

        taken_at = to_utc_aware(actor_timestamp) if actor_timestamp else utcnow()
        delay = delay_in_minutes(taken_at, dose.due_at)
        won = self.doses.transition_from_scheduled(
            dose.id,
            {"status": DoseStatus.TAKEN.value, "taken_at": taken_at, "delay_minutes": delay},
        )
        if not won:
            dose_actions_total.labels(action="take", outcome="conflict").inc()
            raise ConflictError("Dose already actioned", detail={"dose_id": dose.id})

        dose_actions_total.labels(action="take", outcome="ok").inc()
        logger.info(f"[DoseAction] take dose={dose.id} item={dose.item_id} delay_minutes={delay}")

        # The status change is already committed; stock is best-effort from here.
        try:
            self.ledger.deduct(dose.item_id, 1, taken_at)
        except Exception as e:
            stock_deductions_failed_total.inc()
            logger.error(f"[DoseAction] stock deduction failed for item={dose.item_id}: {e!r}")

        streak = self.streaks.recompute(dose.item_id, as_of=max(taken_at, utcnow()))
        return MarkTakenResponse(
            success=True,
            streak=streak,
            medication_name=self._name(dose),
            delay_minutes=delay,
        )

    def skip_dose(self, dose_id: str, user_id: str, reason: str) -> SkipDoseResponse:
        dose = self._resolve(dose_id, user_id)
        self._ensure_scheduled(dose, "skip")

        won = self.doses.transition_from_scheduled(
            dose.id, {"status": DoseStatus.SKIPPED.value, "skip_reason": reason}
        )
        if not won:
            dose_actions_total.labels(action="skip", outcome="conflict").inc()
            raise ConflictError("Dose already actioned", detail={"dose_id": dose.id})

        dose_actions_total.labels(action="skip", outcome="ok").inc()
        logger.info(f"[DoseAction] skip dose={dose.id} item={dose.item_id}")
        return SkipDoseResponse(success=True, medication_name=self._name(dose))

    def snooze(self, dose_id: str, user_id: str, minutes_delta: int) -> SnoozeResponse:
        dose = self._resolve(dose_id, user_id)
        self._ensure_scheduled(dose, "snooze")

        delta = timedelta(minutes=minutes_delta)
        new_due_at = to_utc_aware(dose.due_at) + delta
        if not self.doses.shift_due(dose.id, dose.due_at, new_due_at):
            dose_actions_total.labels(action="snooze", outcome="conflict").inc()
            raise ConflictError("Dose changed concurrently", detail={"dose_id": dose.id})

        shifted = self.notifications.reschedule_for_dose(dose.id, delta)
        dose_actions_total.labels(action="snooze", outcome="ok").inc()
        logger.info(
            f"[DoseAction] snooze dose={dose.id} by {minutes_delta}m "
            f"new_due_at={new_due_at.isoformat()} reminders_shifted={shifted}"
        )
        return SnoozeResponse(success=True, new_due_at=new_due_at)

    def mark_missed(self, now: Optional[datetime] = None, grace_minutes: Optional[int] = None) -> int:
        """Timeout sweep. Only entry point into `missed`."""
        now = to_utc_aware(now) if now else utcnow()
        grace = settings.MISSED_DOSE_GRACE_MINUTES if grace_minutes is None else grace_minutes
        count = self.doses.mark_missed(now - timedelta(minutes=grace))
        if count:
            doses_missed_total.inc(count)
            logger.info(f"[MissedSweep] {count} dose(s) marked missed (grace={grace}m)")
        return count

    def _resolve(self, dose_id: str, user_id: str) -> DoseInstance:
        dose = self.doses.get_owned(dose_id, user_id)
        if dose is None:
            raise NotFoundError("Dose not found")
        return dose

    @staticmethod
    def _ensure_scheduled(dose: DoseInstance, action: str) -> None:
        if dose.status != DoseStatus.SCHEDULED.value:
            dose_actions_total.labels(action=action, outcome="conflict").inc()
            raise ConflictError(
                f"Dose is already {dose.status}",
                detail={"dose_id": dose.id, "status": dose.status},
            )

    def _name(self, dose: DoseInstance) -> str:
        return self.catalog.display_name(dose.item_id) or DEFAULT_MEDICATION_NAME
