from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator


class MarkTakenRequest(BaseModel):
    """Mark a dose as taken; actor_timestamp defaults to server time"""
    actor_timestamp: Optional[datetime] = None


class SkipDoseRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reason must not be blank")
        return v


class SnoozeRequest(BaseModel):
    minutes_delta: int = Field(default=15, ge=-1440, le=1440)

    @field_validator("minutes_delta")
    @classmethod
    def non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("minutes_delta must not be zero")
        return v


class MarkTakenResponse(BaseModel):
    success: bool = True
    streak: int
    medication_name: str
    delay_minutes: Optional[int] = None


class SkipDoseResponse(BaseModel):
    success: bool = True
    medication_name: str


class SnoozeResponse(BaseModel):
    success: bool = True
    new_due_at: datetime


class DoseRead(BaseModel):
    id: str
    item_id: str
    due_at: datetime
    status: str
    taken_at: Optional[datetime] = None
    delay_minutes: Optional[int] = None
    skip_reason: Optional[str] = None

    class Config:
        from_attributes = True


class StreakRead(BaseModel):
    item_id: str
    streak: int
