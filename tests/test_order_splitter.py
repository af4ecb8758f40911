from decimal import Decimal

import pytest

from core.exceptions import (
    AuthorizationError,
    EmptyCartError,
    InsufficientStockError,
    InvalidCartTotalError,
    InvalidCouponError,
    InvalidPaymentMethodError,
    NoResolvableVendorItemsError,
)
from models.coupon import Coupon
from models.delivery import DeliveryTracking, TrackingStatus
from models.order import Order, OrderStatus, ConfirmationStatus
from models.payment import Payment, PaymentStatus, VendorPayment
from models.product import Product
from schemas.order import CheckoutRequest
from services.order_splitter import OrderSplitter, allocate_discount


def test_allocate_discount_last_group_takes_remainder():
    shares = allocate_discount(
        [Decimal("10.00"), Decimal("10.00"), Decimal("10.00")],
        Decimal("30.00"),
        Decimal("10.00")
    )
    assert shares == [Decimal("3.33"), Decimal("3.33"), Decimal("3.34")]
    assert sum(shares) == Decimal("10.00")


def test_allocate_discount_without_discount():
    assert allocate_discount([Decimal("5"), Decimal("7")], Decimal("12"), Decimal("0")) == [Decimal("0.00"), Decimal("0.00")]
    assert allocate_discount([], Decimal("0"), Decimal("5")) == []


def test_checkout_splits_cart_by_vendor(db, factory):
    customer = factory.customer()
    vendor_a, vendor_b = factory.vendor(), factory.vendor()
    shoes = factory.product(vendor_a, price="100.00", stock=5)
    socks = factory.product(vendor_a, price="20.00", stock=5)
    hat = factory.product(vendor_b, price="50.00", stock=5)

    result = factory.checkout(customer, [(shoes, 2), (hat, 1), (socks, 1)])

    assert len(result["orders"]) == 2
    assert result["subtotal"] == Decimal("270.00")
    assert result["grand_total"] == Decimal("270.00")

    orders = db.query(Order).filter(Order.split_group_id == result["split_group_id"]).all()
    by_vendor = {o.vendor_id: o for o in orders}
    assert by_vendor[vendor_a.id].subtotal == Decimal("220.00")
    assert len(by_vendor[vendor_a.id].items) == 2
    assert by_vendor[vendor_b.id].subtotal == Decimal("50.00")
    assert sum(o.subtotal for o in orders) == result["subtotal"]

    for order in orders:
        assert order.status == OrderStatus.PENDING
        assert order.confirmation_status == ConfirmationStatus.PENDING
        assert order.customer_id == customer.id
        assert order.delivery_id is None

    db.refresh(shoes)
    db.refresh(hat)
    assert shoes.stock_quantity == 3
    assert hat.stock_quantity == 4


def test_checkout_distributes_coupon_discount_exactly(db, factory):
    customer = factory.customer()
    products = [
        factory.product(factory.vendor(), price="33.33"),
        factory.product(factory.vendor(), price="33.33"),
        factory.product(factory.vendor(), price="33.34"),
    ]
    coupon = factory.coupon(code="TEN", percentage="10")

    result = factory.checkout(customer, [(p, 1) for p in products], coupon_code="TEN")

    assert result["discount"] == Decimal("10.00")
    orders = db.query(Order).filter(Order.split_group_id == result["split_group_id"]).all()
    assert len(orders) == 3
    assert sum(o.discount for o in orders) == Decimal("10.00")
    assert sum(o.total for o in orders) == Decimal("90.00")
    assert all(o.coupon_id == coupon.id for o in orders)

    db.refresh(coupon)
    assert coupon.used_count == 1


def test_checkout_charges_zone_fee_on_each_vendor_order(db, factory):
    customer = factory.customer()
    zone = factory.zone(fee="1000.00", hours=48)
    a = factory.product(factory.vendor(), price="100.00")
    b = factory.product(factory.vendor(), price="200.00")

    result = factory.checkout(customer, [(a, 1), (b, 1)], delivery_zone_id=zone.id)

    assert result["delivery_fee"] == Decimal("1000.00")
    assert result["grand_total"] == Decimal("2300.00")
    orders = db.query(Order).filter(Order.split_group_id == result["split_group_id"]).all()
    for order in orders:
        assert order.delivery_zone_id == zone.id
        assert order.total == order.subtotal + Decimal("1000.00")
        assert order.estimated_delivery_time is not None


def test_checkout_records_payments_commission_and_tracking(db, factory):
    order = factory.order(payment_method="cash", price="250.00")

    payment = db.query(Payment).filter(Payment.order_id == order.id).one()
    assert payment.status == PaymentStatus.PENDING_COD
    assert payment.amount == order.total

    vendor_payment = db.query(VendorPayment).filter(VendorPayment.order_id == order.id).one()
    assert vendor_payment.commission_amount + vendor_payment.net_amount == vendor_payment.amount

    tracking = db.query(DeliveryTracking).filter(DeliveryTracking.order_id == order.id).all()
    assert [t.status for t in tracking] == [TrackingStatus.PENDING]


def test_checkout_card_payment_starts_pending(db, factory):
    order = factory.order(payment_method="card")
    payment = db.query(Payment).filter(Payment.order_id == order.id).one()
    assert payment.status == PaymentStatus.PENDING


def test_checkout_drops_unresolvable_lines(db, factory):
    customer = factory.customer()
    product = factory.product(factory.vendor(), price="40.00")
    orphan = factory.product(None, price="10.00")
    request = CheckoutRequest(
        items=[
            {"product_id": product.id, "quantity": 1},
            {"product_id": "missing-product", "quantity": 1, "unit_price": "15.00"},
            {"product_id": orphan.id, "quantity": 1},
        ],
        payment_method="cash"
    )

    result = OrderSplitter(db).checkout(factory.principal(customer), request)

    assert len(result["orders"]) == 1
    assert result["subtotal"] == Decimal("40.00")


def test_checkout_rejects_cart_with_no_resolvable_lines(db, factory):
    customer = factory.customer()
    request = CheckoutRequest(
        items=[{"product_id": "missing-product", "quantity": 1, "unit_price": "15.00"}],
        payment_method="cash"
    )
    with pytest.raises(NoResolvableVendorItemsError):
        OrderSplitter(db).checkout(factory.principal(customer), request)
    assert db.query(Order).count() == 0


def test_checkout_validation_errors(db, factory):
    customer = factory.customer()
    principal = factory.principal(customer)
    product = factory.product(factory.vendor())
    splitter = OrderSplitter(db)

    with pytest.raises(EmptyCartError):
        splitter.checkout(principal, CheckoutRequest(items=[], payment_method="cash"))

    with pytest.raises(InvalidPaymentMethodError):
        splitter.checkout(principal, CheckoutRequest(
            items=[{"product_id": product.id, "quantity": 1}],
            payment_method="bitcoin"
        ))

    with pytest.raises(InvalidCartTotalError):
        splitter.checkout(principal, CheckoutRequest(
            items=[{"product_id": product.id, "quantity": 1, "unit_price": "0"}],
            payment_method="cash"
        ))


def test_checkout_requires_customer(db, factory):
    vendor = factory.vendor()
    product = factory.product(vendor)
    with pytest.raises(AuthorizationError):
        OrderSplitter(db).checkout(
            factory.principal(vendor),
            CheckoutRequest(items=[{"product_id": product.id, "quantity": 1}], payment_method="cash")
        )


def test_insufficient_stock_rolls_back_whole_checkout(db, factory):
    customer = factory.customer()
    plenty = factory.product(factory.vendor(), stock=10)
    scarce = factory.product(factory.vendor(), stock=1)

    with pytest.raises(InsufficientStockError):
        factory.checkout(customer, [(plenty, 1), (scarce, 5)])

    assert db.query(Order).count() == 0
    assert db.query(Payment).count() == 0
    assert db.get(Product, plenty.id).stock_quantity == 10
    assert db.get(Product, scarce.id).stock_quantity == 1


def test_invalid_coupon_rejects_checkout(db, factory):
    customer = factory.customer()
    product = factory.product(factory.vendor(), price="20.00", stock=3)
    factory.coupon(code="BIG", amount="5.00", min_order_amount=Decimal("100.00"))

    with pytest.raises(InvalidCouponError):
        factory.checkout(customer, [(product, 1)], coupon_code="BIG")
    with pytest.raises(InvalidCouponError):
        factory.checkout(customer, [(product, 1)], coupon_code="NOPE")

    assert db.query(Order).count() == 0
    assert db.get(Product, product.id).stock_quantity == 3
    assert db.query(Coupon).filter(Coupon.code == "BIG").one().used_count == 0
