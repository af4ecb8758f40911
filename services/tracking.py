from typing import Optional
from sqlalchemy.orm import Session

from models.order import Order, OrderStatus
from models.delivery import DeliveryTracking, TrackingStatus

DELIVERY_STATUS_LABELS = {
    OrderStatus.PENDING: "Order Placed",
    OrderStatus.PROCESSING: "Being Prepared",
    OrderStatus.ASSIGNED: "Courier Assigned",
    OrderStatus.PICKED_UP: "Picked Up",
    OrderStatus.IN_TRANSIT: "On the Way",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
    OrderStatus.RETURNED: "Returned",
}

DELIVERY_PROGRESS = {
    OrderStatus.PENDING: 10,
    OrderStatus.PROCESSING: 25,
    OrderStatus.ASSIGNED: 40,
    OrderStatus.PICKED_UP: 60,
    OrderStatus.IN_TRANSIT: 80,
    OrderStatus.DELIVERED: 100,
}

def delivery_status_label(status: OrderStatus) -> str:
    return DELIVERY_STATUS_LABELS.get(status, "Unknown")

def delivery_progress(status: OrderStatus) -> int:
    return DELIVERY_PROGRESS.get(status, 0)

def add_tracking(
    db: Session,
    order: Order,
    status: TrackingStatus,
    notes: Optional[str] = None,
    created_by: Optional[str] = None,
    delivery_id: Optional[str] = None
) -> DeliveryTracking:
    """Append one row to the order's tracking log."""
    entry = DeliveryTracking(
        order_id=order.id,
        delivery_id=delivery_id or order.delivery_id,
        status=status,
        notes=notes,
        created_by=created_by
    )
    db.add(entry)
    return entry
