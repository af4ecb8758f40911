from fastapi import APIRouter, Depends, status, Query, Form, File, UploadFile
from sqlalchemy.orm import Session
from typing import Optional
import logging

from database.connection import get_db
from routers.auth import get_current_user, require_roles, require_staff, require_delivery
from routers.order import serialize_order, read_photo
from schemas.user import Principal
from schemas.delivery import (
    AssignOrderRequest,
    ClaimOrderRequest,
    AvailabilityUpdate,
    PersonnelCreate,
    PersonnelResponse,
    PersonnelDetail,
    AssignmentResponse,
    ClaimResponse,
    ZoneResponse,
)
from schemas.payment import PaymentConfirmationRequest, PaymentConfirmationResponse
from models.user import UserRole
from models.delivery import DeliveryPersonnel
from services.delivery_assignment import DeliveryAssignmentService
from services.order_lifecycle import OrderLifecycleService
from services.payment_confirmation import PaymentConfirmationService
from services.zone_matcher import ZoneMatcher
from services.commission import DeliveryEarningsService
from services.notification import NotificationService
from core.exceptions import AuthorizationError
from core.response import success_response, paginated_response

logger = logging.getLogger(__name__)
router = APIRouter()

require_assigner = require_roles(
    UserRole.ADMIN, UserRole.ORDER_MANAGER,
    UserRole.VENDOR, UserRole.VENDOR_PLUS, UserRole.VENDOR_PRO
)

def get_assignments(db: Session = Depends(get_db)) -> DeliveryAssignmentService:
    return DeliveryAssignmentService(db, NotificationService(db))

def personnel_summary(courier: DeliveryPersonnel) -> dict:
    data = PersonnelResponse.model_validate(courier).model_dump()
    data["name"] = courier.user.name if courier.user else None
    return data

# Zones

@router.get("/zones")
def list_zones(db: Session = Depends(get_db)):
    """Active delivery zones, cheapest first."""
    zones = ZoneMatcher(db).active_zones()
    return success_response(
        data=[ZoneResponse.model_validate(zone) for zone in zones],
        message="Delivery zones retrieved successfully"
    )

@router.get("/zones/{zone_id}/quote")
def quote_zone(zone_id: int, db: Session = Depends(get_db)):
    return success_response(data=ZoneMatcher(db).quote(zone_id), message="Delivery fee calculated")

@router.get("/zones/{zone_id}/personnel")
def browse_zone_personnel(
    zone_id: int,
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    couriers = ZoneMatcher(db).browse_zone(zone_id)
    return success_response(
        data=[personnel_summary(c) for c in couriers],
        message="Zone delivery personnel retrieved successfully"
    )

# Courier profiles

@router.put("/availability")
def update_availability(
    request: AvailabilityUpdate,
    current_user: Principal = Depends(require_delivery),
    assignments: DeliveryAssignmentService = Depends(get_assignments)
):
    courier = assignments.set_availability(current_user, request.is_available)
    return success_response(
        data=PersonnelResponse.model_validate(courier),
        message="Availability updated successfully"
    )

@router.post("/personnel/me")
def ensure_my_profile(
    current_user: Principal = Depends(require_delivery),
    assignments: DeliveryAssignmentService = Depends(get_assignments)
):
    """Create the caller's delivery profile if it does not exist yet."""
    profile, created = assignments.ensure_agent_profile(current_user.user_id)
    return success_response(
        data=PersonnelResponse.model_validate(profile),
        message="Delivery profile created" if created else "Delivery profile already exists",
        meta={"created": created}
    )

@router.post("/personnel", status_code=status.HTTP_201_CREATED)
def register_personnel(
    request: PersonnelCreate,
    current_user: Principal = Depends(require_staff),
    assignments: DeliveryAssignmentService = Depends(get_assignments)
):
    profile = assignments.register_personnel(
        user_id=request.user_id,
        zone_id=request.zone_id,
        vehicle_type=request.vehicle_type,
        vehicle_number=request.vehicle_number,
        is_verified=request.is_verified,
        is_available=request.is_available
    )
    return success_response(
        data=PersonnelResponse.model_validate(profile),
        message="Delivery personnel registered successfully"
    )

@router.get("/personnel/available")
def list_available_personnel(
    current_user: Principal = Depends(require_staff),
    db: Session = Depends(get_db)
):
    couriers = ZoneMatcher(db).available_personnel()
    return success_response(
        data=[personnel_summary(c) for c in couriers],
        message="Available delivery personnel retrieved successfully"
    )

@router.get("/personnel/{delivery_id}")
def get_personnel(
    delivery_id: str,
    current_user: Principal = Depends(get_current_user),
    assignments: DeliveryAssignmentService = Depends(get_assignments)
):
    """Courier profile with the number of orders currently in their hands."""
    if not current_user.is_staff and current_user.delivery_id != delivery_id:
        raise AuthorizationError("You can only view your own delivery profile")

    courier = assignments.get_personnel(delivery_id)
    detail = PersonnelDetail(
        **personnel_summary(courier),
        active_orders=assignments.active_order_count(delivery_id)
    )
    return success_response(data=detail, message="Delivery personnel retrieved successfully")

@router.put("/personnel/{delivery_id}/verify")
def verify_personnel(
    delivery_id: str,
    current_user: Principal = Depends(require_staff),
    assignments: DeliveryAssignmentService = Depends(get_assignments)
):
    courier = assignments.verify_personnel(delivery_id)
    return success_response(data=PersonnelResponse.model_validate(courier), message="Delivery personnel verified")

# Courier work queues

@router.get("/my-deliveries")
def my_deliveries(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    current_user: Principal = Depends(require_delivery),
    assignments: DeliveryAssignmentService = Depends(get_assignments)
):
    orders, total = assignments.my_deliveries(current_user, status_filter, page, per_page)
    return paginated_response(
        data=[serialize_order(order) for order in orders],
        page=page,
        per_page=per_page,
        total_items=total,
        message="Deliveries retrieved successfully"
    )

@router.get("/available-orders")
def available_orders(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    current_user: Principal = Depends(require_delivery),
    assignments: DeliveryAssignmentService = Depends(get_assignments)
):
    """Unclaimed processing orders in the caller's zone, oldest first."""
    orders, total = assignments.available_orders(current_user, page, per_page)
    return paginated_response(
        data=[serialize_order(order) for order in orders],
        page=page,
        per_page=per_page,
        total_items=total,
        message="Available orders retrieved successfully"
    )

@router.get("/my-claimed-orders")
def my_claimed_orders(
    current_user: Principal = Depends(require_delivery),
    assignments: DeliveryAssignmentService = Depends(get_assignments)
):
    claims = assignments.my_claims(current_user)
    return success_response(
        data=[ClaimResponse.model_validate(claim) for claim in claims],
        message="Claimed orders retrieved successfully"
    )

@router.get("/orders/unassigned")
def unassigned_orders(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    current_user: Principal = Depends(require_staff),
    assignments: DeliveryAssignmentService = Depends(get_assignments)
):
    orders, total = assignments.unassigned_orders(page, per_page)
    return paginated_response(
        data=[serialize_order(order) for order in orders],
        page=page,
        per_page=per_page,
        total_items=total,
        message="Unassigned orders retrieved successfully"
    )

# Assignment

@router.post("/orders/assign")
def assign_order(
    request: AssignOrderRequest,
    current_user: Principal = Depends(require_assigner),
    assignments: DeliveryAssignmentService = Depends(get_assignments)
):
    assignment = assignments.assign_order(
        request.order_id,
        request.delivery_id,
        current_user,
        notes=request.notes,
        pickup_time=request.pickup_time
    )
    return success_response(
        data=AssignmentResponse.model_validate(assignment),
        message="Order assigned to delivery personnel successfully"
    )

@router.get("/orders/{order_id}/can-claim")
def can_claim(
    order_id: str,
    current_user: Principal = Depends(require_delivery),
    assignments: DeliveryAssignmentService = Depends(get_assignments)
):
    return success_response(data=assignments.can_claim(order_id, current_user), message="Claim check completed")

@router.post("/orders/{order_id}/claim")
def claim_order(
    order_id: str,
    request: Optional[ClaimOrderRequest] = None,
    current_user: Principal = Depends(require_delivery),
    assignments: DeliveryAssignmentService = Depends(get_assignments)
):
    claim = assignments.claim_order(order_id, current_user, request.notes if request else None)
    return success_response(data=ClaimResponse.model_validate(claim), message="Order claimed successfully")

@router.post("/orders/{order_id}/cancel-claim")
def cancel_claim(
    order_id: str,
    current_user: Principal = Depends(require_delivery),
    assignments: DeliveryAssignmentService = Depends(get_assignments)
):
    order = assignments.cancel_claim(order_id, current_user)
    return success_response(data=serialize_order(order), message="Claim cancelled successfully")

# Delivery progress and cash collection

@router.put("/orders/status")
def update_delivery_status(
    order_id: str = Form(...),
    status_value: str = Form(..., alias="status"),
    notes: Optional[str] = Form(None),
    delivery_image: Optional[UploadFile] = File(None),
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Courier status update; `delivered` requires `delivery_image`."""
    lifecycle = OrderLifecycleService(db, NotificationService(db))
    order = lifecycle.update_delivery_status(
        order_id,
        current_user,
        status_value.strip().lower(),
        notes,
        read_photo(delivery_image)
    )
    return success_response(data=serialize_order(order), message=f"Delivery status updated to {order.status.value}")

@router.post("/orders/{order_id}/confirm-payment")
def confirm_payment(
    order_id: str,
    request: PaymentConfirmationRequest,
    current_user: Principal = Depends(require_delivery),
    db: Session = Depends(get_db)
):
    confirmation = PaymentConfirmationService(db, NotificationService(db)).confirm_payment(
        order_id,
        current_user,
        request.payment_received,
        customer_signature=request.customer_signature,
        delivery_photo=request.delivery_photo,
        notes=request.notes
    )
    return success_response(
        data=PaymentConfirmationResponse.model_validate(confirmation),
        message="Payment confirmed successfully"
    )

@router.get("/earnings")
def my_earnings(
    current_user: Principal = Depends(require_delivery),
    db: Session = Depends(get_db)
):
    if not current_user.delivery_id:
        raise AuthorizationError("Delivery profile not found. Please contact administrator.")
    return success_response(
        data=DeliveryEarningsService(db).summary(current_user.delivery_id),
        message="Earnings retrieved successfully"
    )
