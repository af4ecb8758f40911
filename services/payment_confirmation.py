from datetime import datetime
from decimal import InvalidOperation
from typing import Optional, Any
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from models.order import Order, OrderStatus, PaymentMethod
from models.payment import Payment, PaymentConfirmation, PaymentStatus
from models.delivery import TrackingStatus
from schemas.user import Principal
from core.exceptions import (
    AuthorizationError,
    ConflictError,
    InsufficientFundsError,
    InvalidTransitionError,
    ResourceNotFoundError,
    ValidationError,
)
from database.session import transaction
from services.commission import CommissionService, to_money
from services.delivery_assignment import DeliveryAssignmentService
from services.tracking import add_tracking

logger = logging.getLogger(__name__)

CONFIRMABLE_STATUSES = frozenset({
    OrderStatus.ASSIGNED,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
})

class PaymentConfirmationService:
    """Closes cash-on-delivery orders once the courier hands over the exact
    order total."""

    def __init__(self, db: Session, notifier=None):
        self.db = db
        self.notifier = notifier
        self.assignments = DeliveryAssignmentService(db, notifier)
        self.commission = CommissionService(db, notifier)

    def confirm_payment(
        self,
        order_id: str,
        principal: Principal,
        payment_received: Any,
        customer_signature: Optional[str] = None,
        delivery_photo: Optional[str] = None,
        notes: Optional[str] = None
    ) -> PaymentConfirmation:
        try:
            received = to_money(payment_received)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError("payment_received must be a valid amount", field="payment_received")

        with transaction(self.db):
            order = self.db.query(Order).filter(Order.id == order_id).with_for_update().first()
            if not order:
                raise ResourceNotFoundError("Order", order_id)
            if order.payment_method != PaymentMethod.CASH:
                raise ValidationError("Payment confirmation applies to cash orders only", field="payment_method")
            if not principal.delivery_id or order.delivery_id != principal.delivery_id:
                raise AuthorizationError("Only the assigned delivery personnel can confirm payment")
            if order.status not in CONFIRMABLE_STATUSES:
                raise InvalidTransitionError(order.status.value, OrderStatus.DELIVERED.value)
            if self.db.query(PaymentConfirmation.id).filter(PaymentConfirmation.order_id == order.id).scalar():
                raise ConflictError("Payment already confirmed for this order", details={"order_id": order.id})
            # No partial payments
            if received != to_money(order.total):
                raise InsufficientFundsError(to_money(order.total), received)

            now = datetime.utcnow()
            confirmation = PaymentConfirmation(
                order_id=order.id,
                delivery_id=principal.delivery_id,
                payment_received=received,
                customer_signature=customer_signature,
                delivery_photo=delivery_photo,
                notes=notes,
                confirmed_at=now
            )
            self.db.add(confirmation)
            try:
                self.db.flush()
            except IntegrityError as e:
                raise ConflictError("Payment already confirmed for this order", details={"order_id": order.id}) from e

            payment = self.db.query(Payment).filter(Payment.order_id == order.id).first()
            if payment is None:
                payment = Payment(order_id=order.id, amount=order.total, method=PaymentMethod.CASH)
                self.db.add(payment)
            payment.status = PaymentStatus.PAID
            payment.processed_at = now

            if order.status != OrderStatus.DELIVERED:
                order.status = OrderStatus.DELIVERED
                order.actual_delivery_time = now
            add_tracking(
                self.db, order, TrackingStatus.DELIVERED,
                notes or f"Cash payment of {received} confirmed",
                created_by=principal.user_id
            )

            self.assignments.complete_assignment(order)
            self.commission.approve_for_order(order.id)

        logger.info(f"Cash payment {received} confirmed for order {order_id} by courier {principal.delivery_id}")
        if self.notifier:
            self.notifier.notify_many([order.customer_id, order.vendor_id], "payment_confirmed", {"order_id": order.id})
        return confirmation
