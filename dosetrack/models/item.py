from datetime import datetime
import uuid

from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from dosetrack.db.base import Base


class Item(Base):
    """A medication (or supplement) the user takes on a schedule"""
    __tablename__ = "items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    dose_text = Column(String, nullable=True)  # e.g. "1 tablet", shown in reminders
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="items")
    doses = relationship("DoseInstance", back_populates="item")
    stock = relationship("Stock", back_populates="item", uselist=False)
