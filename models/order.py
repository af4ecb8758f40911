import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Text, Integer, Enum
from sqlalchemy.orm import relationship
from database.base import Base
import enum

class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"

class ConfirmationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"

class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"

# A courier is bound to the order exactly while it is in one of these states
COURIER_BOUND_STATUSES = frozenset({
    OrderStatus.ASSIGNED,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
    OrderStatus.RETURNED,
})

ACTIVE_DELIVERY_STATUSES = frozenset({
    OrderStatus.ASSIGNED,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
})

TERMINAL_STATUSES = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.RETURNED,
})

class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    customer_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    vendor_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    split_group_id = Column(String(36), nullable=False, index=True)
    coupon_id = Column(String, ForeignKey("coupons.id"), nullable=True)

    # Vendor share after discount, including the delivery fee
    total = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=0)
    payment_method = Column(Enum(PaymentMethod), nullable=False)

    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    confirmation_status = Column(Enum(ConfirmationStatus), default=ConfirmationStatus.PENDING, nullable=False)

    address_id = Column(String, nullable=True)
    delivery_zone_id = Column(Integer, ForeignKey("delivery_zones.id"), nullable=True, index=True)
    delivery_id = Column(String, ForeignKey("delivery_personnel.id"), nullable=True, index=True)

    delivery_confirmation_image = Column(String(500), nullable=True)
    delivery_confirmation_notes = Column(Text, nullable=True)
    delivery_confirmed_at = Column(DateTime, nullable=True)

    placed_at = Column(DateTime, default=datetime.utcnow, index=True)
    confirmed_at = Column(DateTime, nullable=True)
    picked_up_at = Column(DateTime, nullable=True)
    in_transit_at = Column(DateTime, nullable=True)
    estimated_delivery_time = Column(DateTime, nullable=True)
    actual_delivery_time = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    customer = relationship("User", foreign_keys=[customer_id])
    vendor = relationship("User", foreign_keys=[vendor_id])
    zone = relationship("DeliveryZone")
    courier = relationship("DeliveryPersonnel", foreign_keys=[delivery_id])
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    tracking = relationship(
        "DeliveryTracking",
        back_populates="order",
        order_by="DeliveryTracking.id",
        cascade="all, delete-orphan"
    )
    payment = relationship("Payment", uselist=False, back_populates="order")
    vendor_payment = relationship("VendorPayment", uselist=False, back_populates="order")

class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    # Price frozen at order time (discounted price when one applied)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    order = relationship("Order", back_populates="items")
    product = relationship("Product", back_populates="order_items")
