from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field


class StockRead(BaseModel):
    id: str
    item_id: str
    units_left: float
    units_total: float
    projected_end_at: Optional[datetime] = None
    last_refill_at: Optional[datetime] = None
    consumption_history: List[Dict[str, Any]] = Field(default_factory=list)

    class Config:
        from_attributes = True


class RefillRequest(BaseModel):
    amount: float = Field(..., gt=0)
    at: Optional[datetime] = None


class AdjustRequest(BaseModel):
    units_left: float = Field(..., ge=0)
    reason: Literal["adjusted", "lost"] = "adjusted"
    at: Optional[datetime] = None


class StockProjection(BaseModel):
    item_id: str
    units_left: float
    taken_count: int
    daily_rate: float
    days_remaining: Optional[float] = None
    projected_end_at: Optional[datetime] = None
