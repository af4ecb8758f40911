import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Text, Enum
from sqlalchemy.orm import relationship
from database.base import Base
from models.order import PaymentMethod
import enum

class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PENDING_COD = "pending_cod"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

class VendorPaymentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"

class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False)
    method = Column(Enum(PaymentMethod), nullable=False)
    status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    order = relationship("Order", back_populates="payment")

class PaymentConfirmation(Base):
    """Cash-on-delivery receipt, at most one per order."""
    __tablename__ = "payment_confirmations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, unique=True)
    delivery_id = Column(String, ForeignKey("delivery_personnel.id"), nullable=False)
    payment_received = Column(Numeric(10, 2), nullable=False)
    customer_signature = Column(String(500), nullable=True)
    delivery_photo = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    confirmed_at = Column(DateTime, default=datetime.utcnow)

class VendorPayment(Base):
    __tablename__ = "vendor_payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    vendor_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=False)
    commission_amount = Column(Numeric(10, 2), nullable=False)
    net_amount = Column(Numeric(10, 2), nullable=False)
    payment_status = Column(Enum(VendorPaymentStatus), default=VendorPaymentStatus.PENDING, nullable=False, index=True)
    payment_method = Column(String(50), nullable=True)
    transaction_id = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    payment_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    order = relationship("Order", back_populates="vendor_payment")
    vendor = relationship("User")
