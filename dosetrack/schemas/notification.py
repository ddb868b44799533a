"""
Notification request/response schemas and the channel result structs
shared by the dispatcher, the scheduler and the delivery log.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Literal
from pydantic import BaseModel, Field

from dosetrack.models.notification import NotificationPriority, NotificationType


class NotificationCreate(BaseModel):
    """Schema for scheduling a notification"""
    user_id: str = Field(..., min_length=1)
    dose_id: Optional[str] = None
    notification_type: NotificationType = NotificationType.DOSE_REMINDER
    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1, max_length=2000)
    scheduled_at: datetime
    priority: NotificationPriority = NotificationPriority.NORMAL
    metadata: Dict[str, Any] = Field(default_factory=dict)


class NotificationQueued(BaseModel):
    notification_id: str
    scheduled_at: datetime


class NotificationRead(BaseModel):
    id: str
    user_id: str
    dose_id: Optional[str] = None
    notification_type: str
    title: str
    body: str
    priority: str
    scheduled_at: datetime
    delivery_status: str
    channel_results: List[Dict[str, Any]] = Field(default_factory=list)
    error_message: Optional[str] = None
    attempt_count: int = 0
    sent_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ChannelPreferences(BaseModel):
    """A user's channel settings as returned by the preferences store"""
    push_enabled: bool = False
    push_token: Optional[str] = None
    email_enabled: bool = True
    chat_enabled: bool = False
    chat_address: Optional[str] = None


class ChannelResult(BaseModel):
    channel: str
    success: bool
    error: Optional[str] = None


class DispatchOutcome(BaseModel):
    """Aggregated result of fanning one notification out to every channel"""
    success: bool
    channel_results: List[ChannelResult] = Field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def delivery_status(self) -> Literal["delivered", "failed"]:
        return "delivered" if self.success else "failed"


class ProcessDueRequest(BaseModel):
    now: Optional[datetime] = None
    batch_limit: int = Field(default=50, ge=1, le=500)


class SweepSummary(BaseModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0  # rows claimed by another worker between fetch and claim
    cancelled: int = 0  # dose reminders whose dose was already taken, skipped or missed
