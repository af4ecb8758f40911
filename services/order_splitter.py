from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List, Dict, Any
import logging
import uuid

from sqlalchemy.orm import Session

from models.order import Order, OrderItem, OrderStatus, ConfirmationStatus, PaymentMethod
from models.payment import Payment, PaymentStatus
from models.delivery import DeliveryZone, TrackingStatus
from models.user import UserRole
from schemas.order import CheckoutRequest, CartItem
from schemas.user import Principal
from core.exceptions import (
    AuthorizationError,
    EmptyCartError,
    InvalidCartTotalError,
    InvalidPaymentMethodError,
    NoResolvableVendorItemsError,
    ResourceNotFoundError,
)
from database.session import transaction, savepoint
from services.catalog import CatalogGateway
from services.commission import CommissionService, to_money
from services.coupon import CouponService
from services.tracking import add_tracking

logger = logging.getLogger(__name__)

class _ResolvedLine:
    __slots__ = ("product_id", "vendor_id", "quantity", "price")

    def __init__(self, product_id: str, vendor_id: str, quantity: int, price: Decimal):
        self.product_id = product_id
        self.vendor_id = vendor_id
        self.quantity = quantity
        self.price = price

    @property
    def line_total(self) -> Decimal:
        return to_money(self.price * self.quantity)

def allocate_discount(group_subtotals: List[Decimal], cart_subtotal: Decimal, discount: Decimal) -> List[Decimal]:
    """Share a cart-level discount across vendor groups by subtotal weight.

    Shares are rounded to cents; the last group absorbs the rounding remainder
    so the shares always add up to the discount.
    """
    if not group_subtotals:
        return []
    if discount <= 0 or cart_subtotal <= 0:
        return [Decimal("0.00")] * len(group_subtotals)

    shares = [to_money(sub / cart_subtotal * discount) for sub in group_subtotals[:-1]]
    shares.append(to_money(discount) - sum(shares, Decimal("0.00")))
    return shares

class OrderSplitter:
    """Turns one checkout into one pending order per vendor.

    The whole split is a single transaction: stock decrements, coupon use,
    orders, items and payment records commit together or not at all.
    Commission is recorded per order in a savepoint so a failure there is
    logged without failing the checkout.
    """

    def __init__(self, db: Session, notifier=None):
        self.db = db
        self.notifier = notifier
        self.catalog = CatalogGateway(db)
        self.coupons = CouponService(db)
        self.commission = CommissionService(db, notifier)

    def _resolve_payment_method(self, value: str) -> PaymentMethod:
        try:
            return PaymentMethod(value)
        except ValueError:
            raise InvalidPaymentMethodError(value)

    def _resolve_line(self, item: CartItem) -> Optional[_ResolvedLine]:
        product = self.catalog.get_product(item.product_id)
        if product is None:
            return None
        vendor_id = item.vendor_id or product.vendor_id
        if not vendor_id:
            return None
        price = item.effective_price
        if price is None:
            price = self.catalog.catalog_price(product)
        return _ResolvedLine(item.product_id, vendor_id, item.quantity, to_money(price))

    def _resolve_delivery(self, request: CheckoutRequest):
        zone = None
        if request.delivery_zone_id is not None:
            zone = self.db.query(DeliveryZone).filter(
                DeliveryZone.id == request.delivery_zone_id,
                DeliveryZone.is_active == True
            ).first()
            if not zone:
                raise ResourceNotFoundError("Delivery zone", request.delivery_zone_id)

        if request.delivery_fee is not None:
            fee = to_money(request.delivery_fee)
        elif zone is not None:
            fee = to_money(zone.delivery_fee)
        else:
            fee = Decimal("0.00")
        return zone, fee

    def checkout(self, principal: Principal, request: CheckoutRequest) -> Dict[str, Any]:
        if principal.role != UserRole.CUSTOMER:
            raise AuthorizationError("Only customers can place orders")

        payment_method = self._resolve_payment_method(request.payment_method)
        if not request.items:
            raise EmptyCartError()

        submitted_total = sum(
            ((item.effective_price or Decimal(0)) * item.quantity for item in request.items),
            Decimal(0)
        )
        # Lines without a client price are priced from the catalog below
        if submitted_total <= 0 and all(item.effective_price is not None for item in request.items):
            raise InvalidCartTotalError(submitted_total)

        with transaction(self.db):
            lines: List[_ResolvedLine] = []
            unresolved: List[str] = []
            for item in request.items:
                line = self._resolve_line(item)
                if line is None:
                    unresolved.append(item.product_id)
                else:
                    lines.append(line)

            if unresolved:
                logger.warning(f"Dropping unresolvable cart lines: {unresolved}")
            if not lines:
                raise NoResolvableVendorItemsError(unresolved)

            cart_subtotal = sum((line.line_total for line in lines), Decimal("0.00"))
            if cart_subtotal <= 0:
                raise InvalidCartTotalError(cart_subtotal)

            groups: Dict[str, List[_ResolvedLine]] = {}
            for line in lines:
                groups.setdefault(line.vendor_id, []).append(line)

            coupon = None
            discount = Decimal("0.00")
            if request.coupon_code:
                coupon, discount = self.coupons.resolve(request.coupon_code, cart_subtotal)

            zone, delivery_fee = self._resolve_delivery(request)

            vendor_ids = list(groups)
            group_subtotals = [
                sum((line.line_total for line in groups[vendor_id]), Decimal("0.00"))
                for vendor_id in vendor_ids
            ]
            shares = allocate_discount(group_subtotals, cart_subtotal, discount)

            split_group_id = str(uuid.uuid4())
            placed_at = datetime.utcnow()
            estimated = None
            if zone is not None:
                estimated = placed_at + timedelta(hours=zone.estimated_delivery_hours)

            created: List[Order] = []
            for vendor_id, group_subtotal, share in zip(vendor_ids, group_subtotals, shares):
                order = Order(
                    customer_id=principal.user_id,
                    vendor_id=vendor_id,
                    split_group_id=split_group_id,
                    coupon_id=coupon.id if coupon else None,
                    subtotal=group_subtotal,
                    discount=share,
                    # Each vendor sub-order carries the full delivery fee
                    delivery_fee=delivery_fee,
                    total=group_subtotal - share + delivery_fee,
                    payment_method=payment_method,
                    status=OrderStatus.PENDING,
                    confirmation_status=ConfirmationStatus.PENDING,
                    address_id=request.address_id,
                    delivery_zone_id=zone.id if zone else None,
                    placed_at=placed_at,
                    estimated_delivery_time=estimated
                )
                self.db.add(order)

                for line in groups[vendor_id]:
                    order.items.append(OrderItem(
                        product_id=line.product_id,
                        quantity=line.quantity,
                        unit_price=line.price,
                        total_price=line.line_total
                    ))
                    self.catalog.decrement_stock(line.product_id, line.quantity)

                self.db.add(Payment(
                    order=order,
                    amount=order.total,
                    method=payment_method,
                    status=PaymentStatus.PENDING_COD if payment_method == PaymentMethod.CASH else PaymentStatus.PENDING
                ))
                self.db.flush()
                add_tracking(self.db, order, TrackingStatus.PENDING, "Order placed", created_by=principal.user_id)
                created.append(order)

            if coupon:
                self.coupons.mark_used(coupon)

            self.db.flush()
            for order in created:
                try:
                    with savepoint(self.db):
                        self.commission.record_vendor_payment(order)
                except Exception as e:
                    logger.error(f"Commission calculation failed for order {order.id}: {str(e)}")

        grand_total = sum((order.total for order in created), Decimal("0.00"))
        logger.info(
            f"Checkout {split_group_id} by {principal.user_id}: {len(created)} orders, "
            f"subtotal {cart_subtotal}, discount {discount}, total {grand_total}"
        )

        if self.notifier:
            for order in created:
                self.notifier.notify(order.customer_id, "order_placed", {"order_id": order.id})
                self.notifier.notify(order.vendor_id, "new_order", {"order_id": order.id})

        return {
            "split_group_id": split_group_id,
            "orders": [
                {"order_id": order.id, "vendor_id": order.vendor_id, "total": order.total}
                for order in created
            ],
            "subtotal": cart_subtotal,
            "discount": discount,
            "delivery_fee": delivery_fee,
            "grand_total": grand_total
        }
