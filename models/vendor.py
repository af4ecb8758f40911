import uuid
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Numeric, Integer
from sqlalchemy.orm import relationship
from database.base import Base

class VendorType(Base):
    __tablename__ = "vendor_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=False, default=10)
    created_at = Column(DateTime, default=datetime.utcnow)

    packages = relationship("SubscriptionPackage", back_populates="vendor_type")

class SubscriptionPackage(Base):
    __tablename__ = "subscription_packages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vendor_type_id = Column(Integer, ForeignKey("vendor_types.id"), nullable=False)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    duration_months = Column(Integer, nullable=False, default=1)
    # Overrides the vendor type rate while the subscription is active
    commission_rate = Column(Numeric(5, 2), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    vendor_type = relationship("VendorType", back_populates="packages")

class VendorSubscription(Base):
    __tablename__ = "vendor_subscriptions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    vendor_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    package_id = Column(Integer, ForeignKey("subscription_packages.id"), nullable=False)
    is_active = Column(Boolean, default=True)
    starts_at = Column(DateTime, default=datetime.utcnow)
    ends_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    package = relationship("SubscriptionPackage")
