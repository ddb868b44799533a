"""
Notification log rows and per-user channel preferences
"""
from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Text, ForeignKey, Index
from sqlalchemy.orm import relationship

from dosetrack.db.base import Base, JSONType


class DeliveryStatus(str, Enum):
    SCHEDULED = "scheduled"
    PROCESSING = "processing"  # claimed by a sweep, not yet finalized
    DELIVERED = "delivered"
    FAILED = "failed"


class NotificationType(str, Enum):
    DOSE_REMINDER = "dose_reminder"
    MISSED_DOSE = "missed_dose"
    LOW_STOCK = "low_stock"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationLog(Base):
    """A scheduled reminder and, once processed, its delivery outcome"""
    __tablename__ = "notification_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    dose_id = Column(String(36), ForeignKey("dose_instances.id", ondelete="SET NULL"), nullable=True, index=True)
    notification_type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    priority = Column(String, nullable=False, default=NotificationPriority.NORMAL.value)
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    delivery_status = Column(String, nullable=False, default=DeliveryStatus.SCHEDULED.value)
    # Ordered list of {"channel": str, "success": bool, "error": str | None}
    channel_results = Column(JSONType, nullable=False, default=list)
    error_message = Column(Text, nullable=True)

    # Claiming (compare-and-swap before dispatch)
    claim_token = Column(String(36), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_notification_logs_status_scheduled", "delivery_status", "scheduled_at"),
        Index("ix_notification_logs_dose_scheduled", "dose_id", "scheduled_at"),
    )


class NotificationPreference(Base):
    """Which channels a user accepts and where to reach them"""
    __tablename__ = "notification_preferences"

    user_id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    push_enabled = Column(Boolean, nullable=False, default=False)
    push_token = Column(String, nullable=True)
    email_enabled = Column(Boolean, nullable=False, default=True)
    chat_enabled = Column(Boolean, nullable=False, default=False)
    chat_address = Column(String, nullable=True)  # E.164 phone number for the WhatsApp gateway

    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="notification_preference")
