from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import Column, String, DateTime, Float, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from dosetrack.db.base import Base, JSONType


class ConsumptionReason(str, Enum):
    """Why units were added to or removed from a stock"""
    TAKEN = "taken"
    ADJUSTED = "adjusted"
    REFILL = "refill"
    LOST = "lost"


class Stock(Base):
    """Inventory of an item plus its projected depletion date"""
    __tablename__ = "stock"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    item_id = Column(String(36), ForeignKey("items.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    units_left = Column(Float, nullable=False, default=0)
    units_total = Column(Float, nullable=False, default=0)
    # Ordered list of {"date": iso8601, "amount": float, "reason": ConsumptionReason}
    consumption_history = Column(JSONType, nullable=False, default=list)
    projected_end_at = Column(DateTime(timezone=True), nullable=True, index=True)
    last_refill_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    item = relationship("Item", back_populates="stock")

    __table_args__ = (
        CheckConstraint("units_left >= 0", name="ck_stock_units_left_non_negative"),
    )
