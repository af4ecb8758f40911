import threading

import pytest
from sqlalchemy.exc import IntegrityError

from core.config import settings
from core.exceptions import (
    BaseCustomException,
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    ResourceNotFoundError,
    ValidationError,
)
from models.delivery import (
    DeliveryAssignment,
    AssignmentStatus,
    DeliveryClaimRequest,
    ClaimStatus,
    DeliveryEarning,
    EarningStatus,
    TrackingStatus,
)
from models.notification import Notification
from models.order import ConfirmationStatus, Order, OrderStatus
from models.user import UserRole
from services.delivery_assignment import DeliveryAssignmentService
from services.notification import NotificationService
from services.order_lifecycle import OrderLifecycleService


def processing_order(db, factory, zone, vendor=None):
    vendor = vendor or factory.vendor()
    order = factory.order(vendor=vendor, zone=zone)
    OrderLifecycleService(db).confirm_order(order.id, factory.principal(vendor))
    db.refresh(order)
    return order


def test_admin_assigns_order(db, factory):
    zone = factory.zone()
    courier = factory.courier(zone=zone)
    order = factory.order(zone=zone)
    admin = factory.admin()

    assignment = DeliveryAssignmentService(db).assign_order(order.id, courier.id, factory.principal(admin), notes="Fragile")

    assert assignment.status == AssignmentStatus.ASSIGNED
    assert assignment.assigned_by == admin.id
    db.refresh(order)
    assert order.status == OrderStatus.ASSIGNED
    assert order.delivery_id == courier.id
    assert order.tracking[-1].status == TrackingStatus.ASSIGNED
    earning = db.query(DeliveryEarning).filter(DeliveryEarning.order_id == order.id).one()
    assert earning.status == EarningStatus.PENDING


def test_second_assignment_conflicts(db, factory):
    zone = factory.zone()
    courier_a = factory.courier(zone=zone)
    courier_b = factory.courier(zone=zone)
    order = factory.order(zone=zone)
    service = DeliveryAssignmentService(db)
    principal = factory.principal(factory.admin())

    service.assign_order(order.id, courier_a.id, principal)
    with pytest.raises(ConflictError):
        service.assign_order(order.id, courier_b.id, principal)

    db.refresh(order)
    assert order.delivery_id == courier_a.id
    assert db.query(DeliveryAssignment).filter(DeliveryAssignment.order_id == order.id).count() == 1
    assert service.active_order_count(courier_a.id) == 1
    assert service.active_order_count(courier_b.id) == 0


def test_unavailable_courier_cannot_be_assigned(db, factory):
    zone = factory.zone()
    courier = factory.courier(zone=zone, available=False)
    order = factory.order(zone=zone)

    with pytest.raises(ConflictError):
        DeliveryAssignmentService(db).assign_order(order.id, courier.id, factory.principal(factory.admin()))


def test_vendor_assignment_requires_zone_match_and_verification(db, factory):
    zone, other_zone = factory.zone(), factory.zone()
    vendor = factory.vendor()
    order = factory.order(vendor=vendor, zone=zone)
    service = DeliveryAssignmentService(db)
    principal = factory.principal(vendor)

    with pytest.raises(ValidationError):
        service.assign_order(order.id, factory.courier(zone=other_zone).id, principal)
    with pytest.raises(ValidationError):
        service.assign_order(order.id, factory.courier(zone=zone, verified=False).id, principal)

    courier = factory.courier(zone=zone)
    service.assign_order(order.id, courier.id, principal)
    db.refresh(order)
    assert order.delivery_id == courier.id


def test_vendor_cannot_assign_foreign_order(db, factory):
    zone = factory.zone()
    order = factory.order(zone=zone)
    with pytest.raises(AuthorizationError):
        DeliveryAssignmentService(db).assign_order(
            order.id, factory.courier(zone=zone).id, factory.principal(factory.vendor())
        )


def test_customer_cannot_assign(db, factory):
    zone = factory.zone()
    order = factory.order(zone=zone)
    with pytest.raises(AuthorizationError):
        DeliveryAssignmentService(db).assign_order(
            order.id, factory.courier(zone=zone).id, factory.principal(factory.customer())
        )


def test_cancelled_order_cannot_be_assigned(db, factory):
    zone = factory.zone()
    order = factory.order(zone=zone)
    admin = factory.principal(factory.admin())
    OrderLifecycleService(db).cancel_order(order.id, admin)

    with pytest.raises(InvalidTransitionError):
        DeliveryAssignmentService(db).assign_order(order.id, factory.courier(zone=zone).id, admin)


def test_courier_claims_processing_order(db, factory):
    zone = factory.zone()
    courier = factory.courier(zone=zone)
    order = processing_order(db, factory, zone)
    service = DeliveryAssignmentService(db, NotificationService(db))

    claim = service.claim_order(order.id, factory.principal(courier.user), notes="On my way")

    assert claim.claim_status == ClaimStatus.APPROVED
    assert claim.approved_at is not None
    db.refresh(order)
    db.refresh(courier)
    assert order.status == OrderStatus.ASSIGNED
    assert order.delivery_id == courier.id
    assert courier.is_available is False
    assert db.query(Notification).filter(
        Notification.user_id == courier.user_id,
        Notification.event_kind == "delivery_assigned"
    ).count() == 1


def test_claim_guards(db, factory):
    zone, other_zone = factory.zone(), factory.zone()
    service = DeliveryAssignmentService(db)

    pending = factory.order(zone=zone)
    courier = factory.courier(zone=zone)
    with pytest.raises(InvalidTransitionError):
        service.claim_order(pending.id, factory.principal(courier.user))

    elsewhere = processing_order(db, factory, other_zone)
    with pytest.raises(AuthorizationError):
        service.claim_order(elsewhere.id, factory.principal(courier.user))

    resting = factory.courier(zone=zone, available=False)
    order = processing_order(db, factory, zone)
    with pytest.raises(ConflictError):
        service.claim_order(order.id, factory.principal(resting.user))

    zoneless = factory.courier(zone=None)
    with pytest.raises(ValidationError):
        service.claim_order(order.id, factory.principal(zoneless.user))

    no_profile = factory.user(UserRole.DELIVERY)
    with pytest.raises(AuthorizationError):
        service.claim_order(order.id, factory.principal(no_profile))


def test_second_claim_conflicts(db, factory):
    zone = factory.zone()
    first, second = factory.courier(zone=zone), factory.courier(zone=zone)
    order = processing_order(db, factory, zone)
    service = DeliveryAssignmentService(db)

    service.claim_order(order.id, factory.principal(first.user))
    with pytest.raises(ConflictError):
        service.claim_order(order.id, factory.principal(second.user))

    db.refresh(second)
    assert second.is_available is True
    assert db.query(DeliveryClaimRequest).filter(DeliveryClaimRequest.order_id == order.id).count() == 1


def test_active_claim_index_rejects_concurrent_insert(db, factory):
    zone = factory.zone()
    first, second = factory.courier(zone=zone), factory.courier(zone=zone)
    order = processing_order(db, factory, zone)
    DeliveryAssignmentService(db).claim_order(order.id, factory.principal(first.user))

    db.add(DeliveryClaimRequest(order_id=order.id, delivery_id=second.id, claim_status=ClaimStatus.PENDING))
    with pytest.raises(IntegrityError):
        db.flush()
    db.rollback()

    db.add(DeliveryClaimRequest(order_id=order.id, delivery_id=second.id, claim_status=ClaimStatus.REJECTED))
    db.commit()


def test_concurrent_claims_bind_exactly_one_courier(file_sessions, file_factory):
    zone = file_factory.zone()
    couriers = [file_factory.courier(zone=zone) for _ in range(2)]
    order_id = processing_order(file_factory.db, file_factory, zone).id
    principals = [file_factory.principal(c.user) for c in couriers]
    barrier = threading.Barrier(len(principals))
    winners, losers = [], []

    def claim(principal):
        session = file_sessions()
        try:
            barrier.wait()
            winners.append(DeliveryAssignmentService(session).claim_order(order_id, principal).delivery_id)
        except BaseCustomException as e:
            losers.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=claim, args=(p,)) for p in principals]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], ConflictError)

    db = file_factory.db
    db.expire_all()
    assert db.query(DeliveryClaimRequest).filter(
        DeliveryClaimRequest.order_id == order_id,
        DeliveryClaimRequest.claim_status.in_([ClaimStatus.PENDING, ClaimStatus.APPROVED])
    ).count() == 1
    assert db.query(DeliveryAssignment).filter(
        DeliveryAssignment.order_id == order_id,
        DeliveryAssignment.status != AssignmentStatus.CANCELLED
    ).count() == 1
    assert db.query(Order).filter(Order.id == order_id).one().delivery_id == winners[0]


def test_active_assignment_index_rejects_second_row(db, factory):
    zone = factory.zone()
    first, second = factory.courier(zone=zone), factory.courier(zone=zone)
    order = factory.order(zone=zone)
    admin = factory.admin()
    DeliveryAssignmentService(db).assign_order(order.id, first.id, factory.principal(admin))

    db.add(DeliveryAssignment(order_id=order.id, delivery_id=second.id, assigned_by=admin.id))
    with pytest.raises(IntegrityError):
        db.flush()
    db.rollback()


def test_cancel_claim_returns_order_to_pending(db, factory):
    zone = factory.zone()
    courier = factory.courier(zone=zone)
    order = processing_order(db, factory, zone)
    service = DeliveryAssignmentService(db)
    principal = factory.principal(courier.user)
    service.claim_order(order.id, principal)

    cancelled = service.cancel_claim(order.id, principal)

    assert cancelled.status == OrderStatus.PENDING
    assert cancelled.delivery_id is None
    assert cancelled.tracking[-1].status == TrackingStatus.CLAIM_CANCELLED
    db.refresh(courier)
    assert courier.is_available is True
    claim = db.query(DeliveryClaimRequest).filter(DeliveryClaimRequest.order_id == order.id).one()
    assert claim.claim_status == ClaimStatus.CANCELLED
    assert claim.cancelled_at is not None
    assert db.query(DeliveryEarning).filter(
        DeliveryEarning.order_id == order.id,
        DeliveryEarning.status == EarningStatus.PENDING
    ).count() == 0

    # Staff can push-assign it again
    other = factory.courier(zone=zone)
    service.assign_order(order.id, other.id, factory.principal(factory.admin()))
    db.refresh(order)
    assert order.delivery_id == other.id


def test_cancelled_claim_returns_to_pool_after_reconfirmation(db, factory):
    zone = factory.zone()
    vendor = factory.vendor()
    first, second = factory.courier(zone=zone), factory.courier(zone=zone)
    order = processing_order(db, factory, zone, vendor=vendor)
    service = DeliveryAssignmentService(db)
    service.claim_order(order.id, factory.principal(first.user))

    service.cancel_claim(order.id, factory.principal(first.user))

    db.refresh(order)
    assert order.confirmation_status == ConfirmationStatus.PENDING
    assert order.confirmed_at is None
    rival = factory.principal(second.user)
    assert service.available_orders(rival) == ([], 0)

    OrderLifecycleService(db).confirm_order(order.id, factory.principal(vendor))

    orders, total = service.available_orders(rival)
    assert total == 1
    assert orders[0].id == order.id
    assert service.can_claim(order.id, rival)["can_claim"] is True

    claim = service.claim_order(order.id, rival)
    assert claim.claim_status == ClaimStatus.APPROVED
    db.refresh(order)
    assert order.status == OrderStatus.ASSIGNED
    assert order.delivery_id == second.id


def test_cancel_claim_after_pickup_is_rejected(db, factory):
    zone = factory.zone()
    courier = factory.courier(zone=zone)
    order = processing_order(db, factory, zone)
    service = DeliveryAssignmentService(db)
    principal = factory.principal(courier.user)
    service.claim_order(order.id, principal)
    OrderLifecycleService(db).update_delivery_status(order.id, principal, "picked_up")

    with pytest.raises(InvalidTransitionError):
        service.cancel_claim(order.id, principal)


def test_cancel_claim_without_claim(db, factory):
    zone = factory.zone()
    courier = factory.courier(zone=zone)
    order = processing_order(db, factory, zone)
    with pytest.raises(ResourceNotFoundError):
        DeliveryAssignmentService(db).cancel_claim(order.id, factory.principal(courier.user))


def test_can_claim_is_a_dry_run(db, factory):
    zone = factory.zone()
    courier = factory.courier(zone=zone)
    order = processing_order(db, factory, zone)
    service = DeliveryAssignmentService(db)
    principal = factory.principal(courier.user)

    assert service.can_claim(order.id, principal)["can_claim"] is True
    assert db.query(DeliveryClaimRequest).count() == 0

    service.claim_order(order.id, principal)
    check = service.can_claim(order.id, factory.principal(factory.courier(zone=zone).user))
    assert check["can_claim"] is False
    assert check["reason"]


def test_available_orders_lists_unclaimed_orders_in_zone(db, factory):
    zone, other_zone = factory.zone(), factory.zone()
    courier = factory.courier(zone=zone)
    open_order = processing_order(db, factory, zone)
    processing_order(db, factory, other_zone)
    factory.order(zone=zone)
    claimed = processing_order(db, factory, zone)
    DeliveryAssignmentService(db).claim_order(claimed.id, factory.principal(factory.courier(zone=zone).user))

    orders, total = DeliveryAssignmentService(db).available_orders(factory.principal(courier.user))

    assert total == 1
    assert [o.id for o in orders] == [open_order.id]


def test_my_deliveries_filters(db, factory):
    zone = factory.zone()
    courier = factory.courier(zone=zone)
    order = processing_order(db, factory, zone)
    service = DeliveryAssignmentService(db)
    principal = factory.principal(courier.user)
    service.claim_order(order.id, principal)

    active, total = service.my_deliveries(principal, "active")
    assert total == 1 and active[0].id == order.id
    assert service.my_deliveries(principal, "completed")[1] == 0
    with pytest.raises(ValidationError):
        service.my_deliveries(principal, "teleported")


def test_unassigned_orders(db, factory):
    zone = factory.zone()
    waiting = factory.order(zone=zone)
    taken = factory.order(zone=zone)
    service = DeliveryAssignmentService(db)
    service.assign_order(taken.id, factory.courier(zone=zone).id, factory.principal(factory.admin()))

    orders, total = service.unassigned_orders()
    assert total == 1
    assert orders[0].id == waiting.id


def test_ensure_agent_profile_uses_default_zone(db, factory, monkeypatch):
    zone = factory.zone()
    monkeypatch.setattr(settings, "DEFAULT_AGENT_ZONE_ID", zone.id)
    agent = factory.user(UserRole.DELIVERY)
    service = DeliveryAssignmentService(db)

    profile, created = service.ensure_agent_profile(agent.id)
    assert created is True
    assert profile.zone_id == zone.id
    assert profile.is_verified is False

    again, created_again = service.ensure_agent_profile(agent.id)
    assert created_again is False
    assert again.id == profile.id

    with pytest.raises(AuthorizationError):
        service.ensure_agent_profile(factory.customer().id)


def test_register_and_verify_personnel(db, factory):
    zone = factory.zone()
    agent = factory.user(UserRole.DELIVERY)
    service = DeliveryAssignmentService(db)

    profile = service.register_personnel(agent.id, zone.id, vehicle_type="Motorbike")
    assert profile.is_verified is False
    with pytest.raises(ConflictError):
        service.register_personnel(agent.id, zone.id)
    with pytest.raises(ValidationError):
        service.register_personnel(factory.customer().id, zone.id)

    assert service.verify_personnel(profile.id).is_verified is True


def test_set_availability(db, factory):
    courier = factory.courier(zone=factory.zone())
    service = DeliveryAssignmentService(db)
    assert service.set_availability(factory.principal(courier.user), False).is_available is False
