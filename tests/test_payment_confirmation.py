from decimal import Decimal

import pytest

from core.exceptions import (
    AuthorizationError,
    ConflictError,
    InsufficientFundsError,
    InvalidTransitionError,
    ValidationError,
)
from models.delivery import DeliveryAssignment, AssignmentStatus, DeliveryEarning, EarningStatus
from models.order import OrderStatus
from models.payment import Payment, PaymentConfirmation, PaymentStatus, VendorPayment, VendorPaymentStatus
from services.delivery_assignment import DeliveryAssignmentService
from services.media import ConfirmationPhoto
from services.order_lifecycle import OrderLifecycleService
from services.payment_confirmation import PaymentConfirmationService


@pytest.fixture
def bound_order(db, factory):
    """A 5000.00 cash order bound to a courier, plus that courier."""
    zone = factory.zone(fee="0.00")
    courier = factory.courier(zone=zone)
    order = factory.order(zone=zone, payment_method="cash", price="5000.00")
    DeliveryAssignmentService(db).assign_order(order.id, courier.id, factory.principal(factory.admin()))
    db.refresh(order)
    return order, courier


def test_short_payment_is_rejected(db, factory, bound_order):
    order, courier = bound_order

    with pytest.raises(InsufficientFundsError) as exc:
        PaymentConfirmationService(db).confirm_payment(order.id, factory.principal(courier.user), Decimal("4500"))

    assert exc.value.status_code == 400
    assert db.query(PaymentConfirmation).count() == 0
    db.refresh(order)
    assert order.status == OrderStatus.ASSIGNED
    assert db.query(Payment).filter(Payment.order_id == order.id).one().status == PaymentStatus.PENDING_COD


def test_over_payment_is_rejected(db, factory, bound_order):
    order, courier = bound_order
    with pytest.raises(InsufficientFundsError):
        PaymentConfirmationService(db).confirm_payment(order.id, factory.principal(courier.user), "5000.50")


def test_exact_payment_closes_the_order(db, factory, bound_order):
    order, courier = bound_order

    confirmation = PaymentConfirmationService(db).confirm_payment(
        order.id, factory.principal(courier.user), "5000",
        customer_signature="signed", notes="Paid in full"
    )

    assert confirmation.payment_received == Decimal("5000.00")
    assert confirmation.delivery_id == courier.id

    db.refresh(order)
    assert order.status == OrderStatus.DELIVERED
    assert order.actual_delivery_time is not None
    assert db.query(Payment).filter(Payment.order_id == order.id).one().status == PaymentStatus.PAID
    vendor_payment = db.query(VendorPayment).filter(VendorPayment.order_id == order.id).one()
    assert vendor_payment.payment_status == VendorPaymentStatus.APPROVED
    assert vendor_payment.approved_at is not None

    assignment = db.query(DeliveryAssignment).filter(DeliveryAssignment.order_id == order.id).one()
    assert assignment.status == AssignmentStatus.COMPLETED
    db.refresh(courier)
    assert courier.total_deliveries == 1
    assert courier.is_available is True
    earning = db.query(DeliveryEarning).filter(DeliveryEarning.order_id == order.id).one()
    assert earning.status == EarningStatus.COMPLETED


def test_confirmation_after_photo_delivery_keeps_delivery_time(db, factory, bound_order, jpeg_bytes):
    order, courier = bound_order
    principal = factory.principal(courier.user)
    OrderLifecycleService(db).update_delivery_status(
        order.id, principal, "delivered",
        photo=ConfirmationPhoto(jpeg_bytes, "proof.jpg", "image/jpeg")
    )
    db.refresh(order)
    delivered_at = order.actual_delivery_time

    PaymentConfirmationService(db).confirm_payment(order.id, principal, Decimal("5000.00"))

    db.refresh(order)
    assert order.actual_delivery_time == delivered_at
    assignment = db.query(DeliveryAssignment).filter(DeliveryAssignment.order_id == order.id).one()
    assert assignment.status == AssignmentStatus.COMPLETED


def test_payment_is_confirmed_only_once(db, factory, bound_order):
    order, courier = bound_order
    service = PaymentConfirmationService(db)
    principal = factory.principal(courier.user)
    service.confirm_payment(order.id, principal, "5000.00")

    with pytest.raises(ConflictError):
        service.confirm_payment(order.id, principal, "5000.00")
    assert db.query(PaymentConfirmation).count() == 1


def test_only_bound_courier_confirms(db, factory, bound_order):
    order, _ = bound_order
    stranger = factory.courier(zone=None)
    with pytest.raises(AuthorizationError):
        PaymentConfirmationService(db).confirm_payment(order.id, factory.principal(stranger.user), "5000.00")


def test_card_orders_are_not_cash_confirmed(db, factory):
    zone = factory.zone(fee="0.00")
    courier = factory.courier(zone=zone)
    order = factory.order(zone=zone, payment_method="card", price="5000.00")
    DeliveryAssignmentService(db).assign_order(order.id, courier.id, factory.principal(factory.admin()))

    with pytest.raises(ValidationError):
        PaymentConfirmationService(db).confirm_payment(order.id, factory.principal(courier.user), "5000.00")


def test_returned_order_cannot_be_confirmed(db, factory, bound_order):
    order, courier = bound_order
    principal = factory.principal(courier.user)
    OrderLifecycleService(db).update_delivery_status(order.id, principal, "returned")

    with pytest.raises(InvalidTransitionError):
        PaymentConfirmationService(db).confirm_payment(order.id, principal, "5000.00")


def test_garbage_amount_is_a_validation_error(db, factory, bound_order):
    order, courier = bound_order
    with pytest.raises(ValidationError):
        PaymentConfirmationService(db).confirm_payment(order.id, factory.principal(courier.user), "five thousand")
