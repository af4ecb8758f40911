import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Enum, ForeignKey, Integer
from sqlalchemy.orm import relationship
from database.base import Base
import enum

class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    CUSTOMER = "CUSTOMER"
    VENDOR = "VENDOR"
    VENDOR_PLUS = "VENDOR_PLUS"
    VENDOR_PRO = "VENDOR_PRO"
    DELIVERY = "DELIVERY"
    ORDER_MANAGER = "ORDER_MANAGER"
    SUPPORT = "SUPPORT"

    @property
    def is_vendor(self) -> bool:
        """Vendor tier capability: every vendor tier sells and fulfils orders."""
        return self in VENDOR_ROLES

    @property
    def is_staff(self) -> bool:
        return self in STAFF_ROLES


VENDOR_ROLES = frozenset({UserRole.VENDOR, UserRole.VENDOR_PLUS, UserRole.VENDOR_PRO})
STAFF_ROLES = frozenset({UserRole.ADMIN, UserRole.ORDER_MANAGER, UserRole.SUPPORT})

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String, unique=True, index=True, nullable=True)
    name = Column(String, nullable=False)
    role = Column(Enum(UserRole), nullable=False, index=True)
    vendor_type_id = Column(Integer, ForeignKey("vendor_types.id"), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    vendor_type = relationship("VendorType")
    delivery_profile = relationship("DeliveryPersonnel", uselist=False, back_populates="user")
    notifications = relationship("Notification", back_populates="user")
