from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, func, or_, and_
from sqlalchemy.orm import Session, joinedload

from dosetrack.models.dose import DoseInstance, DoseStatus
from dosetrack.models.item import Item
from dosetrack.utils.timezone import to_utc_aware, utcnow


class DoseRepository:
    """Persistence access for dose instances.

    State changes go through conditional UPDATEs keyed on the current status so
    the check and the transition happen in one statement.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, dose_id: str) -> Optional[DoseInstance]:
        return self.db.get(DoseInstance, dose_id, populate_existing=True)

    def get_owned(self, dose_id: str, user_id: str) -> Optional[DoseInstance]:
        """Return the dose only if its item belongs to user_id."""
        stmt = (
            select(DoseInstance)
            .join(Item, Item.id == DoseInstance.item_id)
            .options(joinedload(DoseInstance.item))
            .where(DoseInstance.id == dose_id, Item.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalars().first()

    def transition_from_scheduled(self, dose_id: str, values: Dict[str, Any]) -> bool:
        """Apply values only while the dose is still scheduled. Returns True if this call won."""
        result = self.db.execute(
            update(DoseInstance)
            .where(DoseInstance.id == dose_id, DoseInstance.status == DoseStatus.SCHEDULED.value)
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def shift_due(self, dose_id: str, expected_due_at: datetime, new_due_at: datetime) -> bool:
        """Compare-and-swap due_at; fails if the dose left `scheduled` or was snoozed concurrently."""
        result = self.db.execute(
            update(DoseInstance)
            .where(
                DoseInstance.id == dose_id,
                DoseInstance.status == DoseStatus.SCHEDULED.value,
                DoseInstance.due_at == expected_due_at,
            )
            .values(due_at=to_utc_aware(new_due_at), updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def refresh(self, dose: DoseInstance) -> DoseInstance:
        self.db.refresh(dose)
        return dose

    def count_taken_between(self, item_id: str, start: datetime, end: datetime) -> int:
        stmt = select(func.count(DoseInstance.id)).where(
            DoseInstance.item_id == item_id,
            DoseInstance.status == DoseStatus.TAKEN.value,
            DoseInstance.taken_at >= to_utc_aware(start),
            DoseInstance.taken_at <= to_utc_aware(end),
        )
        return int(self.db.execute(stmt).scalar() or 0)

    def recent_for_item(self, item_id: str, limit: int = 30, as_of: Optional[datetime] = None) -> List[DoseInstance]:
        """Most recent doses by due_at desc; pending doses due after as_of are left out."""
        stmt = select(DoseInstance).where(DoseInstance.item_id == item_id)
        if as_of is not None:
            stmt = stmt.where(
                or_(
                    DoseInstance.status != DoseStatus.SCHEDULED.value,
                    DoseInstance.due_at <= to_utc_aware(as_of),
                )
            )
        stmt = stmt.order_by(DoseInstance.due_at.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars())

    def mark_missed(self, cutoff: datetime) -> int:
        """Timeout sweep: scheduled doses due at or before cutoff become missed."""
        result = self.db.execute(
            update(DoseInstance)
            .where(
                DoseInstance.status == DoseStatus.SCHEDULED.value,
                DoseInstance.due_at <= to_utc_aware(cutoff),
            )
            .values(status=DoseStatus.MISSED.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount or 0

    def scheduled_between(self, start: datetime, end: datetime, limit: int = 1000) -> List[DoseInstance]:
        stmt = (
            select(DoseInstance)
            .join(Item, Item.id == DoseInstance.item_id)
            .options(joinedload(DoseInstance.item))
            .where(
                and_(
                    DoseInstance.status == DoseStatus.SCHEDULED.value,
                    DoseInstance.due_at >= to_utc_aware(start),
                    DoseInstance.due_at <= to_utc_aware(end),
                    Item.is_active.is_(True),
                )
            )
            .order_by(DoseInstance.due_at.asc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars())

    def list_for_user(
        self,
        user_id: str,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[DoseInstance]:
        stmt = (
            select(DoseInstance)
            .join(Item, Item.id == DoseInstance.item_id)
            .where(Item.user_id == user_id)
            .order_by(DoseInstance.due_at.desc())
            .limit(limit)
        )
        if status:
            stmt = stmt.where(DoseInstance.status == status)
        if start:
            stmt = stmt.where(DoseInstance.due_at >= to_utc_aware(start))
        if end:
            stmt = stmt.where(DoseInstance.due_at <= to_utc_aware(end))
        return list(self.db.execute(stmt).scalars())
