import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Numeric, Integer, Float, Text, Enum, Index, text
)
from sqlalchemy.orm import relationship
from database.base import Base
import enum

class AssignmentStatus(str, enum.Enum):
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class ClaimStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

ACTIVE_CLAIM_STATUSES = frozenset({ClaimStatus.PENDING, ClaimStatus.APPROVED})

class EarningStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class TrackingStatus(str, enum.Enum):
    """Tracking rows mirror order statuses plus failed delivery attempts."""
    PENDING = "pending"
    PROCESSING = "processing"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"
    RETURNED = "returned"
    CLAIM_CANCELLED = "claim_cancelled"

class DeliveryZone(Base):
    __tablename__ = "delivery_zones"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=0)
    estimated_delivery_hours = Column(Integer, nullable=False, default=24)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    personnel = relationship("DeliveryPersonnel", back_populates="zone")

class DeliveryPersonnel(Base):
    __tablename__ = "delivery_personnel"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, unique=True)
    zone_id = Column(Integer, ForeignKey("delivery_zones.id"), nullable=True, index=True)
    vehicle_type = Column(String(50), nullable=True)
    vehicle_number = Column(String(50), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    rating = Column(Float, default=0.0, nullable=False)
    total_deliveries = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="delivery_profile")
    zone = relationship("DeliveryZone", back_populates="personnel")

class DeliveryAssignment(Base):
    __tablename__ = "delivery_assignments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, index=True)
    delivery_id = Column(String, ForeignKey("delivery_personnel.id"), nullable=False, index=True)
    assigned_by = Column(String, ForeignKey("users.id"), nullable=False)
    status = Column(Enum(AssignmentStatus), default=AssignmentStatus.ASSIGNED, nullable=False)
    notes = Column(Text, nullable=True)
    assigned_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    order = relationship("Order")
    courier = relationship("DeliveryPersonnel")

# At most one non-cancelled assignment per order
Index(
    "uq_delivery_assignments_active_order",
    DeliveryAssignment.order_id,
    unique=True,
    sqlite_where=text("status != 'CANCELLED'"),
    postgresql_where=text("status != 'CANCELLED'"),
)

class DeliveryClaimRequest(Base):
    __tablename__ = "delivery_claim_requests"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, index=True)
    delivery_id = Column(String, ForeignKey("delivery_personnel.id"), nullable=False, index=True)
    claim_status = Column(Enum(ClaimStatus), default=ClaimStatus.PENDING, nullable=False)
    notes = Column(Text, nullable=True)
    claimed_at = Column(DateTime, default=datetime.utcnow)
    approved_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    order = relationship("Order")
    courier = relationship("DeliveryPersonnel")

# At most one pending/approved claim per order; the race guard for claiming
Index(
    "uq_delivery_claims_active_order",
    DeliveryClaimRequest.order_id,
    unique=True,
    sqlite_where=text("claim_status IN ('PENDING', 'APPROVED')"),
    postgresql_where=text("claim_status IN ('PENDING', 'APPROVED')"),
)

class DeliveryTracking(Base):
    """Append-only status log; rows are never updated."""
    __tablename__ = "delivery_tracking"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, index=True)
    delivery_id = Column(String, ForeignKey("delivery_personnel.id"), nullable=True)
    status = Column(Enum(TrackingStatus), nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(String, ForeignKey("users.id"), nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    order = relationship("Order", back_populates="tracking")

class DeliveryEarning(Base):
    __tablename__ = "delivery_earnings"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    delivery_id = Column(String, ForeignKey("delivery_personnel.id"), nullable=False, index=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, index=True)
    zone_id = Column(Integer, ForeignKey("delivery_zones.id"), nullable=True)
    delivery_fee = Column(Numeric(10, 2), nullable=False)
    earnings_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(EarningStatus), default=EarningStatus.PENDING, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    earned_at = Column(DateTime, nullable=True)
