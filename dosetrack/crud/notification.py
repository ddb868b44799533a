from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, or_, and_
from sqlalchemy.orm import Session

from dosetrack.models.notification import NotificationLog, DeliveryStatus, NotificationType
from dosetrack.schemas.notification import NotificationCreate
from dosetrack.utils.timezone import to_utc_aware, utcnow


PENDING_STATUSES = (DeliveryStatus.SCHEDULED.value, DeliveryStatus.PROCESSING.value)


class NotificationRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, data: NotificationCreate) -> NotificationLog:
        row = NotificationLog(
            user_id=data.user_id,
            dose_id=data.dose_id,
            notification_type=data.notification_type.value,
            title=data.title,
            body=data.body,
            priority=data.priority.value,
            metadata_=dict(data.metadata),
            scheduled_at=to_utc_aware(data.scheduled_at),
            delivery_status=DeliveryStatus.SCHEDULED.value,
            channel_results=[],
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def get(self, notification_id: str) -> Optional[NotificationLog]:
        return self.db.get(NotificationLog, notification_id, populate_existing=True)

    def list_for_user(self, user_id: str, status: Optional[str] = None, limit: int = 100) -> List[NotificationLog]:
        stmt = (
            select(NotificationLog)
            .where(NotificationLog.user_id == user_id)
            .order_by(NotificationLog.scheduled_at.desc())
            .limit(limit)
        )
        if status:
            stmt = stmt.where(NotificationLog.delivery_status == status)
        return list(self.db.execute(stmt).scalars())

    def exists_for_dose_at(self, dose_id: str, scheduled_at: datetime) -> bool:
        stmt = select(NotificationLog.id).where(
            NotificationLog.dose_id == dose_id,
            NotificationLog.scheduled_at == to_utc_aware(scheduled_at),
        )
        return self.db.execute(stmt).first() is not None

    def recent_low_stock_alerts(self, user_id: str, since: datetime) -> Dict[str, Optional[datetime]]:
        """Latest low-stock alert per item_id, in any status, scheduled at or after since.

        Undelivered alerts are always included and map to None.
        """
        stmt = select(
            NotificationLog.metadata_, NotificationLog.scheduled_at, NotificationLog.delivery_status
        ).where(
            NotificationLog.user_id == user_id,
            NotificationLog.notification_type == NotificationType.LOW_STOCK.value,
            or_(
                NotificationLog.delivery_status.in_(PENDING_STATUSES),
                NotificationLog.scheduled_at >= to_utc_aware(since),
            ),
        )
        latest: Dict[str, Optional[datetime]] = {}
        for metadata, scheduled_at, status in self.db.execute(stmt):
            item_id = (metadata or {}).get("item_id")
            if item_id is None:
                continue
            if status in PENDING_STATUSES:
                latest[item_id] = None
            elif item_id not in latest:
                latest[item_id] = to_utc_aware(scheduled_at)
            elif latest[item_id] is not None:
                latest[item_id] = max(latest[item_id], to_utc_aware(scheduled_at))
        return latest

    def _claimable(self, lease_cutoff: datetime):
        return or_(
            NotificationLog.delivery_status == DeliveryStatus.SCHEDULED.value,
            and_(
                NotificationLog.delivery_status == DeliveryStatus.PROCESSING.value,
                NotificationLog.claimed_at < to_utc_aware(lease_cutoff),
            ),
        )

    def fetch_due(self, now: datetime, limit: int, lease_cutoff: datetime) -> List[NotificationLog]:
        """Due rows, oldest first. Stale `processing` claims count as due again."""
        stmt = (
            select(NotificationLog)
            .where(self._claimable(lease_cutoff))
            .where(NotificationLog.scheduled_at <= to_utc_aware(now))
            .order_by(NotificationLog.scheduled_at.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(self.db.execute(stmt).scalars())

    def claim(self, notification_id: str, token: str, now: datetime, lease_cutoff: datetime) -> bool:
        """Compare-and-swap the row into `processing` under our token."""
        result = self.db.execute(
            update(NotificationLog)
            .where(NotificationLog.id == notification_id)
            .where(self._claimable(lease_cutoff))
            .values(
                delivery_status=DeliveryStatus.PROCESSING.value,
                claim_token=token,
                claimed_at=to_utc_aware(now),
                attempt_count=NotificationLog.attempt_count + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def finalize(self, notification_id: str, token: str, values: Dict[str, Any]) -> bool:
        """Move a row we hold from `processing` to a terminal status, exactly once."""
        result = self.db.execute(
            update(NotificationLog)
            .where(
                NotificationLog.id == notification_id,
                NotificationLog.delivery_status == DeliveryStatus.PROCESSING.value,
                NotificationLog.claim_token == token,
            )
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def reschedule_for_dose(self, dose_id: str, delta: timedelta) -> int:
        """Shift every still-scheduled reminder for a dose by delta (snooze hook)."""
        rows = list(
            self.db.execute(
                select(NotificationLog)
                .where(
                    NotificationLog.dose_id == dose_id,
                    NotificationLog.delivery_status == DeliveryStatus.SCHEDULED.value,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )
        for row in rows:
            row.scheduled_at = to_utc_aware(row.scheduled_at) + delta
        self.db.commit()
        return len(rows)
