from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any, Tuple
from sqlalchemy import exists, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from models.order import Order, OrderStatus, ConfirmationStatus, ACTIVE_DELIVERY_STATUSES
from models.user import User, UserRole
from models.delivery import (
    DeliveryPersonnel,
    DeliveryZone,
    DeliveryAssignment,
    DeliveryClaimRequest,
    AssignmentStatus,
    ClaimStatus,
    TrackingStatus,
)
from schemas.user import Principal
from core.config import settings
from core.exceptions import (
    BaseCustomException,
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    ResourceNotFoundError,
    ValidationError,
)
from database.session import transaction
from services.commission import DeliveryEarningsService
from services.tracking import add_tracking

logger = logging.getLogger(__name__)

# Roles allowed to push-assign besides the vendor tiers
ASSIGNER_ROLES = frozenset({UserRole.ADMIN, UserRole.ORDER_MANAGER})

ASSIGNABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})

class DeliveryAssignmentService:
    def __init__(self, db: Session, notifier=None):
        self.db = db
        self.notifier = notifier
        self.earnings = DeliveryEarningsService(db)

    # Lookups

    def _get_order_for_update(self, order_id: str) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).with_for_update().first()
        if not order:
            raise ResourceNotFoundError("Order", order_id)
        return order

    def get_personnel(self, delivery_id: str, for_update: bool = False) -> DeliveryPersonnel:
        query = self.db.query(DeliveryPersonnel).filter(DeliveryPersonnel.id == delivery_id)
        if for_update:
            query = query.with_for_update()
        courier = query.first()
        if not courier:
            raise ResourceNotFoundError("Delivery personnel", delivery_id)
        return courier

    def _require_profile(self, principal: Principal, for_update: bool = False) -> DeliveryPersonnel:
        if not principal.delivery_id:
            raise AuthorizationError("Delivery profile not found. Please contact administrator.")
        return self.get_personnel(principal.delivery_id, for_update=for_update)

    def _active_assignment(self, order_id: str) -> Optional[DeliveryAssignment]:
        return self.db.query(DeliveryAssignment).filter(
            DeliveryAssignment.order_id == order_id,
            DeliveryAssignment.status != AssignmentStatus.CANCELLED
        ).first()

    def _active_claim(self, order_id: str) -> Optional[DeliveryClaimRequest]:
        return self.db.query(DeliveryClaimRequest).filter(
            DeliveryClaimRequest.order_id == order_id,
            DeliveryClaimRequest.claim_status.in_([ClaimStatus.PENDING, ClaimStatus.APPROVED])
        ).first()

    # Binding primitives, always called inside the caller's transaction

    def bind_courier(
        self,
        order: Order,
        courier: DeliveryPersonnel,
        assigned_by: str,
        notes: Optional[str] = None,
        pickup_time: Optional[datetime] = None
    ) -> DeliveryAssignment:
        """Assignment row, tracking row and order update, written together."""
        assignment = DeliveryAssignment(
            order_id=order.id,
            delivery_id=courier.id,
            assigned_by=assigned_by,
            status=AssignmentStatus.ASSIGNED,
            notes=notes
        )
        self.db.add(assignment)

        order.status = OrderStatus.ASSIGNED
        order.delivery_id = courier.id
        order.estimated_delivery_time = (pickup_time or datetime.utcnow()) + timedelta(hours=settings.ESTIMATED_DELIVERY_HOURS)

        add_tracking(
            self.db, order, TrackingStatus.ASSIGNED,
            notes or "Order assigned to delivery personnel",
            created_by=assigned_by,
            delivery_id=courier.id
        )
        self.earnings.open_earning(order, courier.id)

        try:
            self.db.flush()
        except IntegrityError as e:
            logger.warning(f"Concurrent assignment detected for order {order.id}")
            raise ConflictError("Order already has an active delivery assignment", details={"order_id": order.id}) from e
        return assignment

    def unbind_courier(self, order: Order) -> Optional[str]:
        """Undo the courier binding: cancel assignment, claims and pending
        earnings, and make the courier available again."""
        delivery_id = order.delivery_id
        now = datetime.utcnow()

        for assignment in self.db.query(DeliveryAssignment).filter(
            DeliveryAssignment.order_id == order.id,
            DeliveryAssignment.status == AssignmentStatus.ASSIGNED
        ).all():
            assignment.status = AssignmentStatus.CANCELLED

        for claim in self.db.query(DeliveryClaimRequest).filter(
            DeliveryClaimRequest.order_id == order.id,
            DeliveryClaimRequest.claim_status.in_([ClaimStatus.PENDING, ClaimStatus.APPROVED])
        ).all():
            claim.claim_status = ClaimStatus.CANCELLED
            claim.cancelled_at = now

        self.earnings.cancel(order.id)

        if delivery_id:
            courier = self.db.query(DeliveryPersonnel).filter(DeliveryPersonnel.id == delivery_id).first()
            if courier:
                courier.is_available = True

        order.delivery_id = None
        return delivery_id

    def complete_assignment(self, order: Order) -> bool:
        """Close the active assignment after a successful delivery. Returns
        False when there is nothing left to complete."""
        assignment = self.db.query(DeliveryAssignment).filter(
            DeliveryAssignment.order_id == order.id,
            DeliveryAssignment.status == AssignmentStatus.ASSIGNED
        ).first()
        if not assignment:
            return False

        assignment.status = AssignmentStatus.COMPLETED
        assignment.completed_at = datetime.utcnow()

        courier = self.get_personnel(assignment.delivery_id)
        courier.is_available = True
        courier.total_deliveries = (courier.total_deliveries or 0) + 1

        self.earnings.complete(order.id, assignment.delivery_id)
        logger.info(f"Assignment for order {order.id} completed by courier {courier.id}")
        return True

    # Push path

    def assign_order(
        self,
        order_id: str,
        delivery_id: str,
        principal: Principal,
        notes: Optional[str] = None,
        pickup_time: Optional[datetime] = None
    ) -> DeliveryAssignment:
        """Admin, order manager or vendor binds an order to a courier."""
        if principal.role not in ASSIGNER_ROLES and not principal.is_vendor:
            raise AuthorizationError("Only admins, order managers and vendors can assign deliveries")

        with transaction(self.db):
            courier = self.get_personnel(delivery_id, for_update=True)
            if not courier.is_available:
                raise ConflictError("Delivery personnel is not available", details={"delivery_id": delivery_id})

            order = self._get_order_for_update(order_id)

            if principal.is_vendor:
                if order.vendor_id != principal.user_id:
                    raise AuthorizationError("You can only assign your own orders")
                if not courier.is_verified:
                    raise ValidationError("Delivery personnel is not verified", field="delivery_id")
                if order.delivery_zone_id != courier.zone_id:
                    raise ValidationError(
                        "Delivery personnel must belong to the order's delivery zone",
                        field="delivery_id",
                        details={"order_zone_id": order.delivery_zone_id, "personnel_zone_id": courier.zone_id}
                    )

            if order.delivery_id or self._active_assignment(order.id):
                raise ConflictError("Order is already assigned to delivery personnel", details={"order_id": order.id})
            if order.status not in ASSIGNABLE_STATUSES:
                raise InvalidTransitionError(order.status.value, OrderStatus.ASSIGNED.value)

            assignment = self.bind_courier(order, courier, principal.user_id, notes, pickup_time)

        logger.info(f"Order {order.id} assigned to courier {courier.id} by {principal.user_id}")
        self._notify_assigned(order, courier)
        return assignment

    # Pull path

    def _check_claimable(self, order: Order, courier: DeliveryPersonnel) -> None:
        if not courier.is_available:
            raise ConflictError("You are currently not available for deliveries")
        if courier.zone_id is None:
            raise ValidationError("Delivery zone not set for your profile", field="zone_id")
        if order.delivery_id:
            raise ConflictError("Order has already been claimed", details={"order_id": order.id})
        if self._active_claim(order.id):
            raise ConflictError("Order already has an active claim", details={"order_id": order.id})
        if order.status != OrderStatus.PROCESSING:
            raise InvalidTransitionError(
                order.status.value, OrderStatus.ASSIGNED.value,
                "Order is not available for claiming"
            )
        if order.delivery_zone_id != courier.zone_id:
            raise AuthorizationError("Order is not in your delivery zone")

    def claim_order(self, order_id: str, principal: Principal, notes: Optional[str] = None) -> DeliveryClaimRequest:
        with transaction(self.db):
            courier = self._require_profile(principal, for_update=True)
            order = self._get_order_for_update(order_id)
            self._check_claimable(order, courier)

            claim = DeliveryClaimRequest(
                order_id=order.id,
                delivery_id=courier.id,
                claim_status=ClaimStatus.APPROVED,
                approved_at=datetime.utcnow(),
                notes=notes
            )
            self.db.add(claim)
            try:
                self.db.flush()
            except IntegrityError as e:
                logger.warning(f"Claim race lost on order {order.id} by courier {courier.id}")
                raise ConflictError("Order already has an active claim", details={"order_id": order.id}) from e

            self.bind_courier(order, courier, principal.user_id, notes or "Order claimed by delivery personnel")
            courier.is_available = False

        logger.info(f"Order {order.id} claimed by courier {courier.id}")
        self._notify_assigned(order, courier)
        return claim

    def cancel_claim(self, order_id: str, principal: Principal) -> Order:
        """Courier gives an approved claim back before pickup."""
        with transaction(self.db):
            courier = self._require_profile(principal)
            order = self._get_order_for_update(order_id)

            claim = self.db.query(DeliveryClaimRequest).filter(
                DeliveryClaimRequest.order_id == order.id,
                DeliveryClaimRequest.delivery_id == courier.id,
                DeliveryClaimRequest.claim_status == ClaimStatus.APPROVED
            ).first()
            if not claim:
                raise ResourceNotFoundError("Approved claim for order", order_id)
            if order.status != OrderStatus.ASSIGNED:
                raise InvalidTransitionError(
                    order.status.value, OrderStatus.PENDING.value,
                    "Claim can only be cancelled before pickup"
                )

            self.unbind_courier(order)
            order.status = OrderStatus.PENDING
            # Back in the vendor queue; the next claim needs a fresh confirmation
            order.confirmation_status = ConfirmationStatus.PENDING
            order.confirmed_at = None
            add_tracking(
                self.db, order, TrackingStatus.CLAIM_CANCELLED,
                "Order claim cancelled by delivery personnel",
                created_by=principal.user_id,
                delivery_id=courier.id
            )

        logger.info(f"Courier {courier.id} cancelled claim on order {order.id}")
        if self.notifier:
            self.notifier.notify_many([order.customer_id, order.vendor_id], "claim_cancelled", {"order_id": order.id})
        return order

    def can_claim(self, order_id: str, principal: Principal) -> Dict[str, Any]:
        """Dry run of the claim guards; writes nothing."""
        try:
            courier = self._require_profile(principal)
            order = self.db.query(Order).filter(Order.id == order_id).first()
            if not order:
                raise ResourceNotFoundError("Order", order_id)
            self._check_claimable(order, courier)
        except BaseCustomException as e:
            return {"order_id": order_id, "can_claim": False, "reason": e.message}
        return {"order_id": order_id, "can_claim": True, "reason": None}

    # Read side

    def available_orders(self, principal: Principal, page: int = 1, per_page: int = 20) -> Tuple[List[Order], int]:
        courier = self._require_profile(principal)
        if courier.zone_id is None:
            return [], 0

        active_claim = exists().where(and_(
            DeliveryClaimRequest.order_id == Order.id,
            DeliveryClaimRequest.claim_status.in_([ClaimStatus.PENDING, ClaimStatus.APPROVED])
        ))
        query = self.db.query(Order).filter(
            Order.status == OrderStatus.PROCESSING,
            Order.delivery_id.is_(None),
            Order.delivery_zone_id == courier.zone_id,
            ~active_claim
        )
        total = query.count()
        orders = query.order_by(Order.placed_at.asc()).offset((page - 1) * per_page).limit(per_page).all()
        return orders, total

    def my_claims(self, principal: Principal) -> List[DeliveryClaimRequest]:
        courier = self._require_profile(principal)
        return (
            self.db.query(DeliveryClaimRequest)
            .filter(DeliveryClaimRequest.delivery_id == courier.id)
            .order_by(DeliveryClaimRequest.claimed_at.desc())
            .all()
        )

    def my_deliveries(
        self,
        principal: Principal,
        status: Optional[str] = None,
        page: int = 1,
        per_page: int = 20
    ) -> Tuple[List[Order], int]:
        courier = self._require_profile(principal)
        query = self.db.query(Order).filter(Order.delivery_id == courier.id)
        if status == "active":
            query = query.filter(Order.status.in_(list(ACTIVE_DELIVERY_STATUSES)))
        elif status == "completed":
            query = query.filter(Order.status == OrderStatus.DELIVERED)
        elif status:
            try:
                query = query.filter(Order.status == OrderStatus(status))
            except ValueError:
                raise ValidationError(f"Unknown status filter '{status}'", field="status")

        total = query.count()
        orders = query.order_by(Order.placed_at.desc()).offset((page - 1) * per_page).limit(per_page).all()
        return orders, total

    def unassigned_orders(self, page: int = 1, per_page: int = 20) -> Tuple[List[Order], int]:
        query = self.db.query(Order).filter(
            Order.status.in_(list(ASSIGNABLE_STATUSES)),
            Order.delivery_id.is_(None)
        )
        total = query.count()
        orders = query.order_by(Order.placed_at.asc()).offset((page - 1) * per_page).limit(per_page).all()
        return orders, total

    def active_order_count(self, delivery_id: str) -> int:
        return self.db.query(Order).filter(
            Order.delivery_id == delivery_id,
            Order.status.in_(list(ACTIVE_DELIVERY_STATUSES))
        ).count()

    # Courier profiles

    def ensure_agent_profile(self, user_id: str) -> Tuple[DeliveryPersonnel, bool]:
        """Create the delivery profile for a DELIVERY user if it is missing.
        Returns (profile, created)."""
        with transaction(self.db):
            user = self.db.query(User).filter(User.id == user_id).first()
            if not user:
                raise ResourceNotFoundError("User", user_id)
            if user.role != UserRole.DELIVERY:
                raise AuthorizationError("Only delivery accounts can have a delivery profile")

            profile = self.db.query(DeliveryPersonnel).filter(DeliveryPersonnel.user_id == user_id).first()
            if profile:
                return profile, False

            zone_id = settings.DEFAULT_AGENT_ZONE_ID
            if not self.db.query(DeliveryZone.id).filter(DeliveryZone.id == zone_id).scalar():
                zone_id = None

            profile = DeliveryPersonnel(
                user_id=user_id,
                zone_id=zone_id,
                is_available=True,
                is_verified=False
            )
            self.db.add(profile)

        logger.info(f"Delivery profile {profile.id} provisioned for user {user_id} in zone {zone_id}")
        return profile, True

    def register_personnel(
        self,
        user_id: str,
        zone_id: Optional[int],
        vehicle_type: Optional[str] = None,
        vehicle_number: Optional[str] = None,
        is_verified: bool = False,
        is_available: bool = True
    ) -> DeliveryPersonnel:
        with transaction(self.db):
            user = self.db.query(User).filter(User.id == user_id).first()
            if not user:
                raise ResourceNotFoundError("User", user_id)
            if user.role != UserRole.DELIVERY:
                raise ValidationError("User does not have the delivery role", field="user_id")
            if self.db.query(DeliveryPersonnel.id).filter(DeliveryPersonnel.user_id == user_id).scalar():
                raise ConflictError("User already has a delivery profile", details={"user_id": user_id})
            if zone_id is not None and not self.db.query(DeliveryZone.id).filter(DeliveryZone.id == zone_id).scalar():
                raise ResourceNotFoundError("Delivery zone", zone_id)

            profile = DeliveryPersonnel(
                user_id=user_id,
                zone_id=zone_id,
                vehicle_type=vehicle_type,
                vehicle_number=vehicle_number,
                is_verified=is_verified,
                is_available=is_available
            )
            self.db.add(profile)

        logger.info(f"Delivery profile {profile.id} registered for user {user_id}")
        return profile

    def verify_personnel(self, delivery_id: str) -> DeliveryPersonnel:
        with transaction(self.db):
            courier = self.get_personnel(delivery_id, for_update=True)
            courier.is_verified = True
        logger.info(f"Delivery personnel {delivery_id} verified")
        return courier

    def set_availability(self, principal: Principal, is_available: bool) -> DeliveryPersonnel:
        with transaction(self.db):
            courier = self._require_profile(principal, for_update=True)
            courier.is_available = is_available
        logger.info(f"Courier {courier.id} availability set to {is_available}")
        return courier

    def _notify_assigned(self, order: Order, courier: DeliveryPersonnel) -> None:
        if not self.notifier:
            return
        self.notifier.notify_many([order.customer_id, order.vendor_id], "order_assigned", {"order_id": order.id})
        self.notifier.notify(courier.user_id, "delivery_assigned", {"order_id": order.id})
