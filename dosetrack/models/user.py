from datetime import datetime
import uuid

from sqlalchemy import Column, String, DateTime, Boolean
from sqlalchemy.orm import relationship

from dosetrack.db.base import Base


class User(Base):
    """Identity record mirrored from the external auth provider (id + email only)."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, index=True, nullable=True)
    timezone = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    # Relationships
    items = relationship("Item", back_populates="user")
    notification_preference = relationship("NotificationPreference", back_populates="user", uselist=False)
