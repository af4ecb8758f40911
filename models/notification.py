import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, Enum
from sqlalchemy.orm import relationship
from database.base import Base
import enum

class NotificationType(str, enum.Enum):
    ORDER = "order"
    DELIVERY = "delivery"
    PAYMENT = "payment"
    VENDOR_PAYMENT = "vendor_payment"
    SYSTEM = "system"

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)

    # Notification content
    event_kind = Column(String(100), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(Enum(NotificationType), nullable=False, index=True)

    # Related entities
    related_id = Column(String, nullable=True, index=True)
    related_type = Column(String(50), nullable=True)

    # Tracking
    is_read = Column(Boolean, default=False, index=True)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    user = relationship("User", back_populates="notifications")
