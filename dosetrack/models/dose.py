from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Index
from sqlalchemy.orm import relationship

from dosetrack.db.base import Base


class DoseStatus(str, Enum):
    """Lifecycle of a dose instance"""
    SCHEDULED = "scheduled"
    TAKEN = "taken"
    SKIPPED = "skipped"
    MISSED = "missed"  # only reachable through the timeout sweep


TERMINAL_DOSE_STATUSES = frozenset({DoseStatus.TAKEN.value, DoseStatus.SKIPPED.value})


class DoseInstance(Base):
    """One scheduled administration of an item at a specific due time"""
    __tablename__ = "dose_instances"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    item_id = Column(String(36), ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    due_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, nullable=False, default=DoseStatus.SCHEDULED.value)
    taken_at = Column(DateTime(timezone=True), nullable=True)
    delay_minutes = Column(Integer, nullable=True)  # negative when taken early
    skip_reason = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    item = relationship("Item", back_populates="doses")

    __table_args__ = (
        Index("ix_dose_instances_item_due", "item_id", "due_at"),
        Index("ix_dose_instances_status_due", "status", "due_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_DOSE_STATUSES
