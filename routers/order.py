from fastapi import APIRouter, Depends, status, Query, Form, File, UploadFile
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from database.connection import get_db
from routers.auth import get_current_user, require_customer
from schemas.user import Principal
from schemas.order import (
    CheckoutRequest,
    CheckoutResponse,
    CancelOrderRequest,
    RejectOrderRequest,
    BulkConfirmRequest,
    OrderResponse,
    TrackingEntry,
)
from models.order import Order, OrderStatus
from models.delivery import DeliveryTracking
from services.order_splitter import OrderSplitter
from services.order_lifecycle import OrderLifecycleService
from services.zone_matcher import ZoneMatcher
from services.notification import NotificationService
from services.media import ConfirmationPhoto
from services.tracking import delivery_status_label, delivery_progress
from core.exceptions import AuthorizationError
from core.response import success_response, paginated_response

logger = logging.getLogger(__name__)
router = APIRouter()

def serialize_order(order: Order, tracking: Optional[List[DeliveryTracking]] = None) -> OrderResponse:
    response = OrderResponse.model_validate(order)
    response.delivery_status = delivery_status_label(order.status)
    response.delivery_progress = delivery_progress(order.status)
    # Tracking is only embedded when the caller passes the newest-first log
    response.tracking = [TrackingEntry.model_validate(entry) for entry in tracking] if tracking is not None else None
    return response

def read_photo(upload: Optional[UploadFile]) -> Optional[ConfirmationPhoto]:
    if upload is None or not upload.filename:
        return None
    return ConfirmationPhoto(upload.file.read(), upload.filename, upload.content_type)

def get_lifecycle(db: Session = Depends(get_db)) -> OrderLifecycleService:
    return OrderLifecycleService(db, NotificationService(db))

@router.post("", status_code=status.HTTP_201_CREATED)
def place_order(
    request: CheckoutRequest,
    current_user: Principal = Depends(require_customer),
    db: Session = Depends(get_db)
):
    """Checkout: split the cart into one order per vendor."""
    result = OrderSplitter(db, NotificationService(db)).checkout(current_user, request)
    return success_response(
        data=CheckoutResponse(**result),
        message=f"{len(result['orders'])} order(s) created successfully"
    )

@router.get("")
def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    current_user: Principal = Depends(get_current_user),
    lifecycle: OrderLifecycleService = Depends(get_lifecycle)
):
    orders, total = lifecycle.list_orders(current_user, status_filter, page, per_page)
    return paginated_response(
        data=[serialize_order(order) for order in orders],
        page=page,
        per_page=per_page,
        total_items=total,
        message="Orders retrieved successfully"
    )

@router.post("/vendor-bulk-confirm")
def vendor_bulk_confirm(
    request: BulkConfirmRequest,
    current_user: Principal = Depends(get_current_user),
    lifecycle: OrderLifecycleService = Depends(get_lifecycle)
):
    """Confirm several pending orders; each is confirmed independently."""
    if not current_user.is_vendor:
        raise AuthorizationError("Only vendors can confirm orders in bulk")
    result = lifecycle.vendor_bulk_confirm(request.order_ids, current_user)
    return success_response(data=result, message=f"{result['updated']} order(s) confirmed")

@router.get("/{order_id}")
def get_order(
    order_id: str,
    current_user: Principal = Depends(get_current_user),
    lifecycle: OrderLifecycleService = Depends(get_lifecycle)
):
    order = lifecycle.get_order(order_id)
    lifecycle.check_read_access(order, current_user)
    return success_response(
        data=serialize_order(order, lifecycle.tracking_log(order.id)),
        message="Order retrieved successfully"
    )

@router.get("/{order_id}/tracking")
def get_order_tracking(
    order_id: str,
    current_user: Principal = Depends(get_current_user),
    lifecycle: OrderLifecycleService = Depends(get_lifecycle)
):
    order = lifecycle.get_order(order_id)
    lifecycle.check_read_access(order, current_user)
    return success_response(
        data={
            "order_id": order.id,
            "status": order.status.value,
            "delivery_status": delivery_status_label(order.status),
            "delivery_progress": delivery_progress(order.status),
            "tracking": [TrackingEntry.model_validate(t) for t in lifecycle.tracking_log(order.id)]
        },
        message="Tracking retrieved successfully"
    )

@router.get("/{order_id}/delivery-candidates")
def get_delivery_candidates(
    order_id: str,
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
    lifecycle: OrderLifecycleService = Depends(get_lifecycle)
):
    """Couriers eligible for push-assignment, best candidates first."""
    order = lifecycle.get_order(order_id)
    if not current_user.is_staff and not (current_user.is_vendor and order.vendor_id == current_user.user_id):
        raise AuthorizationError("Only staff or the order's vendor can list delivery candidates")

    candidates = ZoneMatcher(db).candidates_for_order(order)
    return success_response(
        data=[
            {
                "delivery_id": c.id,
                "name": c.user.name if c.user else None,
                "zone_id": c.zone_id,
                "rating": c.rating,
                "total_deliveries": c.total_deliveries,
                "vehicle_type": c.vehicle_type,
            }
            for c in candidates
        ],
        message="Delivery candidates retrieved successfully"
    )

@router.put("/{order_id}/confirm")
def confirm_order(
    order_id: str,
    current_user: Principal = Depends(get_current_user),
    lifecycle: OrderLifecycleService = Depends(get_lifecycle)
):
    order = lifecycle.confirm_order(order_id, current_user)
    return success_response(data=serialize_order(order), message="Order confirmed successfully")

@router.put("/{order_id}/reject")
def reject_order(
    order_id: str,
    request: Optional[RejectOrderRequest] = None,
    current_user: Principal = Depends(get_current_user),
    lifecycle: OrderLifecycleService = Depends(get_lifecycle)
):
    order = lifecycle.reject_order(order_id, current_user, request.reason if request else None)
    return success_response(data=serialize_order(order), message="Order rejected")

@router.patch("/{order_id}/cancel")
def cancel_order(
    order_id: str,
    request: Optional[CancelOrderRequest] = None,
    current_user: Principal = Depends(get_current_user),
    lifecycle: OrderLifecycleService = Depends(get_lifecycle)
):
    order = lifecycle.cancel_order(order_id, current_user, request.reason if request else None)
    return success_response(data=serialize_order(order), message="Order cancelled successfully")

@router.put("/{order_id}/status")
def update_order_status(
    order_id: str,
    status_value: str = Form(..., alias="status"),
    notes: Optional[str] = Form(None),
    delivery_image: Optional[UploadFile] = File(None),
    current_user: Principal = Depends(get_current_user),
    lifecycle: OrderLifecycleService = Depends(get_lifecycle)
):
    """Role-gated status change; `delivered` needs `delivery_image`."""
    order = lifecycle.change_status(order_id, current_user, status_value.strip().lower(), notes, read_photo(delivery_image))
    return success_response(data=serialize_order(order), message=f"Order status updated to {order.status.value}")
