"""
Notification scheduling and the due-notification sweep.

The sweep is driven by an external timer (Celery beat) and handles one bounded
batch per call. Every row is claimed before dispatch and finalized through the
DeliveryLog before the next row is looked at.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy.orm import Session

from dosetrack.core.config import settings
from dosetrack.crud.dose import DoseRepository
from dosetrack.crud.notification import NotificationRepository
from dosetrack.crud.stock import StockRepository
from dosetrack.models.dose import DoseStatus
from dosetrack.models.notification import NotificationPriority, NotificationType
from dosetrack.schemas.notification import DispatchOutcome, NotificationCreate, SweepSummary
from dosetrack.services.collaborators import (
    IdentityProvider,
    SqlIdentityProvider,
    SqlPreferencesStore,
    UserPreferencesStore,
)
from dosetrack.utils.timezone import to_local, to_utc_aware, utcnow
from .delivery_log import DeliveryLog
from .dispatcher import ChannelDispatcher
from .metrics import notifications_scheduled_total, scheduler_scans_total

logger = logging.getLogger(__name__)

DOSE_ACTIONED_MESSAGE = "dose already actioned"

# (offset from due_at, priority, kind)
REMINDER_SLOTS = (
    (timedelta(minutes=-5), NotificationPriority.NORMAL, "pre"),
    (timedelta(0), NotificationPriority.HIGH, "due"),
    (timedelta(minutes=5), NotificationPriority.NORMAL, "follow_up"),
)


def low_stock_priority(days_left: float) -> NotificationPriority:
    if days_left <= 2:
        return NotificationPriority.HIGH
    if days_left <= 5:
        return NotificationPriority.MEDIUM
    return NotificationPriority.LOW


class NotificationScheduler:
    def __init__(
        self,
        db: Session,
        *,
        dispatcher: Optional[ChannelDispatcher] = None,
        preferences: Optional[UserPreferencesStore] = None,
        identity: Optional[IdentityProvider] = None,
        notifications: Optional[NotificationRepository] = None,
    ):
        self.db = db
        self.notifications = notifications or NotificationRepository(db)
        self.doses = DoseRepository(db)
        self._owns_dispatcher = dispatcher is None
        self.dispatcher = dispatcher or ChannelDispatcher()
        self.preferences = preferences or SqlPreferencesStore(db)
        self.identity = identity or SqlIdentityProvider(db)
        self.delivery_log = DeliveryLog(db, self.notifications)

    def close(self) -> None:
        if self._owns_dispatcher:
            self.dispatcher.close()

    # ---- sweep ----

    def sweep(self, now: Optional[datetime] = None, batch_limit: Optional[int] = None) -> SweepSummary:
        now = to_utc_aware(now) if now else utcnow()
        limit = batch_limit or settings.SCHEDULER_BATCH_SIZE
        lease_cutoff = now - timedelta(seconds=settings.CLAIM_LEASE_SECONDS)
        summary = SweepSummary()
        scheduler_scans_total.inc()

        due = self.notifications.fetch_due(now, limit, lease_cutoff)
        logger.info(f"[Sweep] {len(due)} due notification(s) at {now.isoformat()} (limit={limit})")

        for row in due:
            token = str(uuid.uuid4())
            if not self.notifications.claim(row.id, token, now, lease_cutoff):
                summary.skipped += 1
                continue

            if self._dose_already_actioned(row):
                outcome = DispatchOutcome(success=False, channel_results=[], error_message=DOSE_ACTIONED_MESSAGE)
                if self.delivery_log.record(row.id, token, outcome):
                    summary.cancelled += 1
                else:
                    summary.skipped += 1
                continue

            outcome = self._deliver(row)
            if not self.delivery_log.record(row.id, token, outcome):
                summary.skipped += 1
                continue

            summary.processed += 1
            if outcome.success:
                summary.succeeded += 1
            else:
                summary.failed += 1

        logger.info(
            f"[Sweep] processed={summary.processed} succeeded={summary.succeeded} "
            f"failed={summary.failed} skipped={summary.skipped} cancelled={summary.cancelled}"
        )
        return summary

    def _dose_already_actioned(self, row) -> bool:
        if row.notification_type != NotificationType.DOSE_REMINDER.value or not row.dose_id:
            return False
        dose = self.doses.get(row.dose_id)
        return dose is not None and dose.status != DoseStatus.SCHEDULED.value

    def _deliver(self, row) -> DispatchOutcome:
        try:
            prefs = self.preferences.get_preferences(row.user_id)
            email = self.identity.resolve_email(row.user_id)
            return self.dispatcher.dispatch(row, prefs, email)
        except Exception as e:
            # Finalize as failed rather than leave the claim to expire.
            logger.exception(f"[Sweep] notification={row.id} could not be dispatched")
            return DispatchOutcome(success=False, channel_results=[], error_message=f"internal: {e}")

    # ---- scheduling ----

    def schedule_notification(self, data: NotificationCreate) -> str:
        row = self.notifications.create(data)
        notifications_scheduled_total.labels(notification_type=data.notification_type.value).inc()
        logger.info(
            f"[Schedule] notification={row.id} type={data.notification_type.value} "
            f"user={data.user_id} at={to_utc_aware(data.scheduled_at).isoformat()}"
        )
        return row.id

    def schedule_dose_reminders(self, now: Optional[datetime] = None, horizon_hours: Optional[int] = None) -> int:
        """Create the pre/due/follow-up reminders for doses due within the horizon."""
        now = to_utc_aware(now) if now else utcnow()
        horizon = timedelta(hours=horizon_hours or settings.REMINDER_HORIZON_HOURS)
        earliest_offset = REMINDER_SLOTS[0][0]
        latest_offset = REMINDER_SLOTS[-1][0]

        doses = self.doses.scheduled_between(now - latest_offset, now + horizon - earliest_offset)
        created = 0
        for dose in doses:
            item = dose.item
            due_at = to_utc_aware(dose.due_at)
            tz_name = item.user.timezone if item.user else None
            local_due = to_local(due_at, tz_name).strftime("%H:%M")
            label = f"{item.name} ({item.dose_text})" if item.dose_text else item.name

            for offset, priority, kind in REMINDER_SLOTS:
                at = due_at + offset
                if at < now or self.notifications.exists_for_dose_at(dose.id, at):
                    continue
                title, body = self._reminder_text(kind, item.name, label, local_due)
                self.schedule_notification(
                    NotificationCreate(
                        user_id=item.user_id,
                        dose_id=dose.id,
                        notification_type=NotificationType.DOSE_REMINDER,
                        title=title,
                        body=body,
                        scheduled_at=at,
                        priority=priority,
                        metadata={"item_id": item.id, "kind": kind},
                    )
                )
                created += 1
        logger.info(f"[Schedule] {created} dose reminder(s) created for {len(doses)} dose(s)")
        return created

    @staticmethod
    def _reminder_text(kind: str, name: str, label: str, local_due: str):
        if kind == "pre":
            return f"{name} in 5 minutes", f"{label} is due at {local_due}."
        if kind == "due":
            return f"Time to take {name}", f"{label} is due now ({local_due})."
        return f"Did you take {name}?", f"{label} was due at {local_due} and is not marked as taken yet."

    def schedule_low_stock_alerts(self, now: Optional[datetime] = None, horizon_days: Optional[int] = None) -> int:
        now = to_utc_aware(now) if now else utcnow()
        days = horizon_days or settings.LOW_STOCK_HORIZON_DAYS
        stocks = StockRepository(self.db).ending_before(now + timedelta(days=days))

        cooldown_start = now - timedelta(hours=settings.LOW_STOCK_ALERT_COOLDOWN_HOURS)
        recent: Dict[str, Dict[str, Optional[datetime]]] = {}
        created = 0
        for stock in stocks:
            item = stock.item
            if item is None or not item.is_active:
                continue
            if item.user_id not in recent:
                recent[item.user_id] = self.notifications.recent_low_stock_alerts(item.user_id, cooldown_start)
            if self._alerted_recently(recent[item.user_id], item.id, stock, cooldown_start):
                continue

            end_at = to_utc_aware(stock.projected_end_at)
            days_left = max(0.0, (end_at - now).total_seconds() / 86400)
            units = float(stock.units_left)
            if units <= 0:
                body = f"You are out of {item.name}. Time to refill."
            else:
                body = f"About {units:g} left of {item.name}, enough for roughly {days_left:.0f} day(s). Time to refill."
            self.schedule_notification(
                NotificationCreate(
                    user_id=item.user_id,
                    dose_id=None,
                    notification_type=NotificationType.LOW_STOCK,
                    title=f"Running low on {item.name}",
                    body=body,
                    scheduled_at=now,
                    priority=low_stock_priority(days_left),
                    metadata={
                        "item_id": item.id,
                        "units_left": units,
                        "projected_end_at": end_at.isoformat(),
                    },
                )
            )
            recent[item.user_id][item.id] = None
            created += 1
        logger.info(f"[Schedule] {created} low-stock alert(s) created")
        return created

    @staticmethod
    def _alerted_recently(alerts: Dict[str, Optional[datetime]], item_id: str, stock, cooldown_start: datetime) -> bool:
        """An undelivered alert, or one sent since max(cooldown start, last refill), blocks a new one."""
        if item_id not in alerts:
            return False
        last_alert = alerts[item_id]
        if last_alert is None:
            return True
        since = cooldown_start
        if stock.last_refill_at is not None:
            since = max(since, to_utc_aware(stock.last_refill_at))
        return last_alert >= since
