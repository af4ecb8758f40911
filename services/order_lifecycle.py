from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple
from sqlalchemy.orm import Session
import logging

from models.order import (
    Order,
    OrderStatus,
    ConfirmationStatus,
    PaymentMethod,
    ACTIVE_DELIVERY_STATUSES,
    TERMINAL_STATUSES,
)
from models.user import UserRole
from models.delivery import DeliveryPersonnel, DeliveryTracking, TrackingStatus
from schemas.user import Principal
from core.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    ResourceNotFoundError,
    ValidationError,
)
from database.session import transaction
from services.catalog import CatalogGateway
from services.delivery_assignment import DeliveryAssignmentService
from services.media import ConfirmationPhoto, validate_image, save_confirmation_photo, remove_stored_photo
from services.tracking import add_tracking

logger = logging.getLogger(__name__)

# Courier-issued status -> statuses it may be issued from
DELIVERY_TRANSITIONS = {
    "picked_up": frozenset({OrderStatus.ASSIGNED}),
    "in_transit": frozenset({OrderStatus.ASSIGNED, OrderStatus.PICKED_UP}),
    "delivered": ACTIVE_DELIVERY_STATUSES,
    "failed": ACTIVE_DELIVERY_STATUSES,
    "returned": ACTIVE_DELIVERY_STATUSES,
}

DEFAULT_TRACKING_NOTES = {
    "picked_up": "Order picked up from vendor",
    "in_transit": "Order is on the way",
    "delivered": "Order delivered to customer",
    "failed": "Delivery attempt failed",
    "returned": "Order returned to vendor",
}

class OrderLifecycleService:
    """Owns the order status state machine. Every transition runs in one
    transaction, appends one tracking row and notifies the parties after
    commit."""

    def __init__(self, db: Session, notifier=None):
        self.db = db
        self.notifier = notifier
        self.catalog = CatalogGateway(db)
        self.assignments = DeliveryAssignmentService(db, notifier)

    def get_order(self, order_id: str) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise ResourceNotFoundError("Order", order_id)
        return order

    def _get_for_update(self, order_id: str) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).with_for_update().first()
        if not order:
            raise ResourceNotFoundError("Order", order_id)
        return order

    def _check_vendor_access(self, order: Order, principal: Principal) -> None:
        if principal.is_staff:
            return
        if not principal.is_vendor or order.vendor_id != principal.user_id:
            raise AuthorizationError("Only the order's vendor can perform this action")

    def check_read_access(self, order: Order, principal: Principal) -> None:
        if principal.is_staff:
            return
        if principal.role == UserRole.CUSTOMER and order.customer_id == principal.user_id:
            return
        if principal.is_vendor and order.vendor_id == principal.user_id:
            return
        if principal.delivery_id and order.delivery_id == principal.delivery_id:
            return
        raise AuthorizationError("You do not have access to this order")

    # Vendor confirmation

    def confirm_order(self, order_id: str, principal: Principal) -> Order:
        with transaction(self.db):
            order = self._get_for_update(order_id)
            self._check_vendor_access(order, principal)
            if order.status != OrderStatus.PENDING or order.confirmation_status != ConfirmationStatus.PENDING:
                raise InvalidTransitionError(
                    order.status.value, OrderStatus.PROCESSING.value,
                    "Order is not awaiting confirmation"
                )

            order.status = OrderStatus.PROCESSING
            order.confirmation_status = ConfirmationStatus.CONFIRMED
            order.confirmed_at = datetime.utcnow()
            add_tracking(self.db, order, TrackingStatus.PROCESSING, "Order confirmed by vendor", created_by=principal.user_id)

        logger.info(f"Order {order_id} confirmed by {principal.user_id}")
        self._notify(order, "order_confirmed", include_vendor=False)
        return order

    def reject_order(self, order_id: str, principal: Principal, reason: Optional[str] = None) -> Order:
        """pending -> cancelled with confirmation_status rejected. Stock is
        not released on rejection."""
        with transaction(self.db):
            order = self._get_for_update(order_id)
            self._check_vendor_access(order, principal)
            if order.status != OrderStatus.PENDING or order.confirmation_status != ConfirmationStatus.PENDING:
                raise InvalidTransitionError(
                    order.status.value, OrderStatus.CANCELLED.value,
                    "Order is not awaiting confirmation"
                )

            order.status = OrderStatus.CANCELLED
            order.confirmation_status = ConfirmationStatus.REJECTED
            add_tracking(self.db, order, TrackingStatus.CANCELLED, reason or "Order rejected by vendor", created_by=principal.user_id)

        logger.info(f"Order {order_id} rejected by {principal.user_id}")
        self._notify(order, "order_rejected", include_vendor=False)
        return order

    def vendor_bulk_confirm(self, order_ids: List[str], principal: Principal) -> Dict[str, Any]:
        """Confirm each order in its own transaction and report the outcome."""
        if not order_ids:
            raise ValidationError("order_ids must not be empty", field="order_ids")

        result = {"updated": 0, "denied": 0, "invalid_status": 0, "updated_ids": []}
        for order_id in dict.fromkeys(order_ids):
            try:
                self.confirm_order(order_id, principal)
            except (AuthorizationError, ResourceNotFoundError):
                result["denied"] += 1
            except InvalidTransitionError:
                result["invalid_status"] += 1
            else:
                result["updated"] += 1
                result["updated_ids"].append(order_id)

        logger.info(f"Bulk confirm by {principal.user_id}: {result['updated']} updated, {result['denied']} denied, {result['invalid_status']} invalid")
        return result

    # Cancellation

    def cancel_order(self, order_id: str, principal: Principal, reason: Optional[str] = None) -> Order:
        """Cancel a non-terminal order and put its items back in stock."""
        with transaction(self.db):
            order = self._get_for_update(order_id)
            if principal.role == UserRole.CUSTOMER:
                if order.customer_id != principal.user_id:
                    raise AuthorizationError("You can only cancel your own orders")
            elif not principal.is_staff:
                raise AuthorizationError("Only the customer or an admin can cancel an order")

            # Terminal orders were already settled or restocked
            if order.status in TERMINAL_STATUSES:
                raise InvalidTransitionError(order.status.value, OrderStatus.CANCELLED.value)

            courier_id = order.delivery_id
            if courier_id:
                self.assignments.unbind_courier(order)

            order.status = OrderStatus.CANCELLED
            for item in order.items:
                self.catalog.increment_stock(item.product_id, item.quantity)

            add_tracking(
                self.db, order, TrackingStatus.CANCELLED,
                reason or "Order cancelled",
                created_by=principal.user_id,
                delivery_id=courier_id
            )

        logger.info(f"Order {order_id} cancelled by {principal.user_id}, {len(order.items)} items restocked")
        self._notify(order, "order_cancelled", courier_id=courier_id)
        return order

    # Delivery progress

    def update_delivery_status(
        self,
        order_id: str,
        principal: Principal,
        status: str,
        notes: Optional[str] = None,
        photo: Optional[ConfirmationPhoto] = None
    ) -> Order:
        """Courier (or admin) moves a bound order forward. `delivered` needs a
        confirmation photo in the same call."""
        if status not in DELIVERY_TRANSITIONS:
            raise ValidationError(
                f"Invalid delivery status '{status}'. Allowed: {', '.join(DELIVERY_TRANSITIONS)}",
                field="status"
            )
        if photo is not None:
            validate_image(photo)

        image_url = None
        try:
            with transaction(self.db):
                order = self._get_for_update(order_id)
                if not principal.is_admin and (not principal.delivery_id or principal.delivery_id != order.delivery_id):
                    raise AuthorizationError("Only the assigned delivery personnel can update this order")
                if order.status not in DELIVERY_TRANSITIONS[status]:
                    raise InvalidTransitionError(order.status.value, status)
                if status == "delivered" and photo is None:
                    raise ValidationError(
                        "Delivery confirmation image is required when marking an order as delivered",
                        field="delivery_image"
                    )

                courier_id = order.delivery_id
                now = datetime.utcnow()

                if status == "picked_up":
                    order.status = OrderStatus.PICKED_UP
                    order.picked_up_at = now
                elif status == "in_transit":
                    order.status = OrderStatus.IN_TRANSIT
                    order.in_transit_at = now
                elif status == "delivered":
                    image_url = save_confirmation_photo(photo, order.id)
                    order.status = OrderStatus.DELIVERED
                    order.actual_delivery_time = now
                    order.delivery_confirmation_image = image_url
                    order.delivery_confirmation_notes = notes
                    order.delivery_confirmed_at = now
                    # Cash orders complete when the payment is confirmed
                    if order.payment_method != PaymentMethod.CASH:
                        self.assignments.complete_assignment(order)
                elif status == "failed":
                    self.assignments.unbind_courier(order)
                    order.status = OrderStatus.PROCESSING
                elif status == "returned":
                    self.assignments.unbind_courier(order)
                    # A returned order keeps its courier on record
                    order.delivery_id = courier_id
                    order.status = OrderStatus.RETURNED

                add_tracking(
                    self.db, order, TrackingStatus(status),
                    notes or DEFAULT_TRACKING_NOTES[status],
                    created_by=principal.user_id,
                    delivery_id=courier_id
                )
        except Exception:
            remove_stored_photo(image_url)
            raise

        logger.info(f"Order {order_id} delivery status -> {status} by {principal.user_id}")
        self._notify(order, "delivery_status", courier_id=courier_id, extra={"status": status.replace("_", " ")})
        return order

    def change_status(
        self,
        order_id: str,
        principal: Principal,
        status: str,
        notes: Optional[str] = None,
        photo: Optional[ConfirmationPhoto] = None
    ) -> Order:
        """Generic status endpoint: routes to the transition that owns `status`."""
        if status == OrderStatus.PROCESSING.value:
            return self.confirm_order(order_id, principal)
        if status == OrderStatus.CANCELLED.value:
            return self.cancel_order(order_id, principal, notes)
        if status in DELIVERY_TRANSITIONS:
            return self.update_delivery_status(order_id, principal, status, notes, photo)
        raise ValidationError(f"Status '{status}' cannot be set directly", field="status")

    # Read side

    def list_orders(
        self,
        principal: Principal,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        per_page: int = 20
    ) -> Tuple[List[Order], int]:
        query = self.db.query(Order)
        if principal.is_staff:
            pass
        elif principal.is_vendor:
            query = query.filter(Order.vendor_id == principal.user_id)
        elif principal.role == UserRole.DELIVERY:
            query = query.filter(Order.delivery_id == principal.delivery_id)
        else:
            query = query.filter(Order.customer_id == principal.user_id)

        if status:
            query = query.filter(Order.status == status)

        total = query.count()
        orders = query.order_by(Order.placed_at.desc()).offset((page - 1) * per_page).limit(per_page).all()
        return orders, total

    def tracking_log(self, order_id: str) -> List[DeliveryTracking]:
        return (
            self.db.query(DeliveryTracking)
            .filter(DeliveryTracking.order_id == order_id)
            .order_by(DeliveryTracking.id.desc())
            .all()
        )

    def _notify(
        self,
        order: Order,
        event_kind: str,
        include_vendor: bool = True,
        courier_id: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ) -> None:
        if not self.notifier:
            return
        recipients = [order.customer_id]
        if include_vendor:
            recipients.append(order.vendor_id)
        courier_id = courier_id or order.delivery_id
        if courier_id:
            courier_user = self.db.query(DeliveryPersonnel.user_id).filter(DeliveryPersonnel.id == courier_id).scalar()
            recipients.append(courier_user)
        payload = {"order_id": order.id}
        payload.update(extra or {})
        self.notifier.notify_many(recipients, event_kind, payload)
