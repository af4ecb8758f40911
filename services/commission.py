from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Any, Tuple
from sqlalchemy import func, case
from sqlalchemy.orm import Session
import logging

from models.order import Order, OrderStatus, PaymentMethod
from models.payment import VendorPayment, VendorPaymentStatus, PaymentConfirmation
from models.vendor import VendorType, SubscriptionPackage, VendorSubscription
from models.user import User
from models.delivery import DeliveryEarning, EarningStatus
from core.config import settings
from core.exceptions import ResourceNotFoundError, AlreadyProcessedError, NotApprovedError, ConflictError, ValidationError
from database.session import transaction

logger = logging.getLogger(__name__)

# Orders that never reach the customer owe the vendor nothing
UNPAYABLE_ORDER_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.RETURNED})

CENT = Decimal("0.01")

def to_money(value: Any) -> Decimal:
    """Quantize to cents, half-up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)

def calculate_commission(amount: Any, commission_rate: Any) -> Tuple[Decimal, Decimal]:
    """Split an order amount into (commission_amount, net_amount).

    The net amount is derived by subtraction so the two always add back up to
    the rounded amount.
    """
    amount = to_money(amount)
    commission_amount = to_money(amount * Decimal(str(commission_rate)) / Decimal(100))
    return commission_amount, amount - commission_amount

def calculate_delivery_earnings(delivery_fee: Any, rate: Optional[Any] = None) -> Decimal:
    rate = settings.DELIVERY_EARNINGS_RATE if rate is None else rate
    return to_money(to_money(delivery_fee) * Decimal(str(rate)) / Decimal(100))

class CommissionRateProvider:
    """Commission rate per vendor: active subscription package, then vendor
    type, then the platform default."""

    def __init__(self, db: Session):
        self.db = db

    def rate_for_vendor(self, vendor_id: str) -> Decimal:
        now = datetime.utcnow()
        package_rate = (
            self.db.query(SubscriptionPackage.commission_rate)
            .join(VendorSubscription, VendorSubscription.package_id == SubscriptionPackage.id)
            .filter(
                VendorSubscription.vendor_id == vendor_id,
                VendorSubscription.is_active == True,
                (VendorSubscription.ends_at.is_(None)) | (VendorSubscription.ends_at > now),
                SubscriptionPackage.commission_rate.isnot(None)
            )
            .order_by(VendorSubscription.starts_at.desc())
            .first()
        )
        if package_rate is not None:
            return Decimal(package_rate[0])

        type_rate = (
            self.db.query(VendorType.commission_rate)
            .join(User, User.vendor_type_id == VendorType.id)
            .filter(User.id == vendor_id)
            .scalar()
        )
        if type_rate is not None:
            return Decimal(type_rate)

        return Decimal(str(settings.DEFAULT_COMMISSION_RATE))

class CommissionService:
    def __init__(self, db: Session, notifier=None, rate_provider: Optional[CommissionRateProvider] = None):
        self.db = db
        self.notifier = notifier
        self.rate_provider = rate_provider or CommissionRateProvider(db)

    # Vendor payables

    def record_vendor_payment(self, order: Order) -> VendorPayment:
        """Create the order's VendorPayment once; later calls return the
        existing row. Runs inside the caller's transaction."""
        existing = self.db.query(VendorPayment).filter(VendorPayment.order_id == order.id).first()
        if existing:
            return existing

        rate = self.rate_provider.rate_for_vendor(order.vendor_id)
        commission_amount, net_amount = calculate_commission(order.total, rate)
        payment = VendorPayment(
            vendor_id=order.vendor_id,
            order_id=order.id,
            amount=to_money(order.total),
            commission_rate=rate,
            commission_amount=commission_amount,
            net_amount=net_amount,
            payment_status=VendorPaymentStatus.PENDING
        )
        self.db.add(payment)
        self.db.flush()
        logger.info(f"Vendor payment recorded for order {order.id}: amount {payment.amount}, commission {commission_amount} at {rate}%")
        return payment

    def approve_for_order(self, order_id: str) -> Optional[VendorPayment]:
        """pending -> approved once the customer's payment is settled."""
        payment = self.db.query(VendorPayment).filter(VendorPayment.order_id == order_id).first()
        if payment and payment.payment_status == VendorPaymentStatus.PENDING:
            payment.payment_status = VendorPaymentStatus.APPROVED
            payment.approved_at = datetime.utcnow()
        return payment

    def _get_for_update(self, payment_id: str) -> VendorPayment:
        payment = (
            self.db.query(VendorPayment)
            .filter(VendorPayment.id == payment_id)
            .with_for_update()
            .first()
        )
        if not payment:
            raise ResourceNotFoundError("Vendor payment", payment_id)
        return payment

    def _check_payable(self, payment: VendorPayment) -> None:
        if payment.order.status in UNPAYABLE_ORDER_STATUSES:
            raise ConflictError(
                f"Order is {payment.order.status.value}; its vendor payment cannot be settled",
                details={"payment_id": payment.id, "order_id": payment.order_id}
            )

    def approve(self, payment_id: str) -> VendorPayment:
        with transaction(self.db):
            payment = self._get_for_update(payment_id)
            if payment.payment_status != VendorPaymentStatus.PENDING:
                raise AlreadyProcessedError("Vendor payment", payment_id)
            self._check_payable(payment)
            payment.payment_status = VendorPaymentStatus.APPROVED
            payment.approved_at = datetime.utcnow()

        logger.info(f"Vendor payment {payment_id} approved")
        self._notify_vendor(payment, "vendor_payment_approved")
        return payment

    def _mark_paid(self, payment: VendorPayment, payment_method: Optional[str], transaction_id: Optional[str], notes: Optional[str]) -> None:
        if payment.payment_status == VendorPaymentStatus.PAID:
            raise AlreadyProcessedError("Vendor payment", payment.id)
        if payment.payment_status != VendorPaymentStatus.APPROVED:
            raise NotApprovedError("Vendor payment", payment.id, payment.payment_status.value)

        payment.payment_status = VendorPaymentStatus.PAID
        payment.payment_date = datetime.utcnow()
        payment.payment_method = payment_method
        payment.transaction_id = transaction_id
        payment.notes = notes

    def process(
        self,
        payment_id: str,
        payment_method: Optional[str] = None,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> VendorPayment:
        """approved -> paid for a single payout."""
        with transaction(self.db):
            payment = self._get_for_update(payment_id)
            self._check_payable(payment)
            self._mark_paid(payment, payment_method, transaction_id, notes)

        logger.info(f"Vendor payment {payment_id} processed: {payment.net_amount} to vendor {payment.vendor_id}")
        self._notify_vendor(payment, "vendor_payment_processed")
        return payment

    def bulk_process(
        self,
        payment_ids: List[str],
        payment_method: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Dict[str, Any]:
        """Pay out every approved payment in the list in one transaction.
        Rows that are not approved are reported and left untouched."""
        if not payment_ids:
            raise ValidationError("payment_ids must not be empty", field="payment_ids")

        processed: List[VendorPayment] = []
        skipped: List[Dict[str, Any]] = []
        with transaction(self.db):
            payments = (
                self.db.query(VendorPayment)
                .filter(VendorPayment.id.in_(payment_ids))
                .with_for_update()
                .all()
            )
            found = {p.id: p for p in payments}
            for payment_id in dict.fromkeys(payment_ids):
                payment = found.get(payment_id)
                if payment is None:
                    skipped.append({"id": payment_id, "reason": "not_found"})
                elif payment.payment_status != VendorPaymentStatus.APPROVED:
                    skipped.append({"id": payment_id, "reason": payment.payment_status.value})
                elif payment.order.status in UNPAYABLE_ORDER_STATUSES:
                    skipped.append({"id": payment_id, "reason": f"order_{payment.order.status.value}"})
                else:
                    self._mark_paid(payment, payment_method, None, notes)
                    processed.append(payment)

        logger.info(f"Bulk processed {len(processed)} vendor payments, skipped {len(skipped)}")
        for payment in processed:
            self._notify_vendor(payment, "vendor_payment_processed")

        return {
            "processed": [p.id for p in processed],
            "processed_count": len(processed),
            "total_amount": str(sum((Decimal(p.net_amount) for p in processed), Decimal("0.00"))),
            "skipped": skipped
        }

    def _notify_vendor(self, payment: VendorPayment, event_kind: str) -> None:
        if self.notifier:
            self.notifier.notify(payment.vendor_id, event_kind, {
                "order_id": payment.order_id,
                "net_amount": payment.net_amount
            })

    # Read side

    def list_payments(
        self,
        vendor_id: Optional[str] = None,
        status: Optional[VendorPaymentStatus] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        page: int = 1,
        per_page: int = 20
    ) -> Tuple[List[VendorPayment], int]:
        query = self.db.query(VendorPayment)
        if vendor_id:
            query = query.filter(VendorPayment.vendor_id == vendor_id)
        if status:
            query = query.filter(VendorPayment.payment_status == status)
        if date_from:
            query = query.filter(VendorPayment.created_at >= date_from)
        if date_to:
            query = query.filter(VendorPayment.created_at <= date_to)

        total = query.count()
        items = (
            query.order_by(VendorPayment.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return items, total

    def vendor_summary(self, vendor_id: str) -> Dict[str, Any]:
        def status_sum(status: VendorPaymentStatus):
            return func.coalesce(func.sum(case((VendorPayment.payment_status == status, VendorPayment.net_amount), else_=0)), 0)

        row = (
            self.db.query(
                func.count(VendorPayment.id),
                func.coalesce(func.sum(VendorPayment.amount), 0),
                func.coalesce(func.sum(VendorPayment.commission_amount), 0),
                func.coalesce(func.sum(VendorPayment.net_amount), 0),
                status_sum(VendorPaymentStatus.PENDING),
                status_sum(VendorPaymentStatus.APPROVED),
                status_sum(VendorPaymentStatus.PAID),
            )
            .filter(VendorPayment.vendor_id == vendor_id)
            .one()
        )
        return {
            "vendor_id": vendor_id,
            "total_payments": row[0],
            "total_amount": str(to_money(row[1])),
            "total_commission": str(to_money(row[2])),
            "total_net": str(to_money(row[3])),
            "pending_amount": str(to_money(row[4])),
            "approved_amount": str(to_money(row[5])),
            "paid_amount": str(to_money(row[6])),
        }

    def cod_summary(self, recent_limit: int = 10) -> Dict[str, Any]:
        approved = VendorPayment.payment_status == VendorPaymentStatus.APPROVED
        paid = VendorPayment.payment_status == VendorPaymentStatus.PAID
        row = (
            self.db.query(
                func.count(VendorPayment.id),
                func.coalesce(func.sum(case((approved, 1), else_=0)), 0),
                func.coalesce(func.sum(case((paid, 1), else_=0)), 0),
                func.coalesce(func.sum(case((approved, VendorPayment.net_amount), else_=0)), 0),
                func.coalesce(func.sum(case((paid, VendorPayment.net_amount), else_=0)), 0),
            )
            .join(Order, Order.id == VendorPayment.order_id)
            .filter(Order.payment_method == PaymentMethod.CASH)
            .one()
        )

        recent = (
            self.db.query(Order, VendorPayment, PaymentConfirmation)
            .join(VendorPayment, VendorPayment.order_id == Order.id)
            .outerjoin(PaymentConfirmation, PaymentConfirmation.order_id == Order.id)
            .filter(Order.payment_method == PaymentMethod.CASH)
            .order_by(Order.placed_at.desc())
            .limit(recent_limit)
            .all()
        )

        return {
            "summary": {
                "total_cod_orders": row[0],
                "pending_vendor_payments": row[1],
                "processed_vendor_payments": row[2],
                "total_pending_amount": str(to_money(row[3])),
                "total_processed_amount": str(to_money(row[4])),
            },
            "recent_orders": [
                {
                    "order_id": order.id,
                    "order_total": str(order.total),
                    "order_status": order.status.value,
                    "vendor_payment_status": vp.payment_status.value,
                    "vendor_payment_amount": str(vp.net_amount),
                    "payment_received": str(pc.payment_received) if pc else None,
                    "payment_confirmed_at": pc.confirmed_at.isoformat() if pc else None,
                }
                for order, vp, pc in recent
            ]
        }

class DeliveryEarningsService:
    """Courier payables: pending on bind, completed on completion, cancelled
    when the binding is undone."""

    def __init__(self, db: Session):
        self.db = db

    def open_earning(self, order: Order, delivery_id: str) -> DeliveryEarning:
        earning = DeliveryEarning(
            delivery_id=delivery_id,
            order_id=order.id,
            zone_id=order.delivery_zone_id,
            delivery_fee=to_money(order.delivery_fee or 0),
            earnings_amount=calculate_delivery_earnings(order.delivery_fee or 0),
            status=EarningStatus.PENDING
        )
        self.db.add(earning)
        return earning

    def _pending(self, order_id: str, delivery_id: Optional[str] = None) -> List[DeliveryEarning]:
        query = self.db.query(DeliveryEarning).filter(
            DeliveryEarning.order_id == order_id,
            DeliveryEarning.status == EarningStatus.PENDING
        )
        if delivery_id:
            query = query.filter(DeliveryEarning.delivery_id == delivery_id)
        return query.all()

    def complete(self, order_id: str, delivery_id: str) -> None:
        for earning in self._pending(order_id, delivery_id):
            earning.status = EarningStatus.COMPLETED
            earning.earned_at = datetime.utcnow()

    def cancel(self, order_id: str) -> None:
        for earning in self._pending(order_id):
            earning.status = EarningStatus.CANCELLED

    def summary(self, delivery_id: str, recent_limit: int = 20) -> Dict[str, Any]:
        def status_sum(status: EarningStatus):
            return func.coalesce(func.sum(case((DeliveryEarning.status == status, DeliveryEarning.earnings_amount), else_=0)), 0)

        row = (
            self.db.query(
                func.count(DeliveryEarning.id),
                status_sum(EarningStatus.COMPLETED),
                status_sum(EarningStatus.PENDING),
            )
            .filter(DeliveryEarning.delivery_id == delivery_id)
            .one()
        )
        recent = (
            self.db.query(DeliveryEarning)
            .filter(DeliveryEarning.delivery_id == delivery_id)
            .order_by(DeliveryEarning.created_at.desc())
            .limit(recent_limit)
            .all()
        )
        return {
            "delivery_id": delivery_id,
            "total_records": row[0],
            "total_earned": str(to_money(row[1])),
            "pending_earnings": str(to_money(row[2])),
            "recent": [
                {
                    "order_id": e.order_id,
                    "delivery_fee": str(e.delivery_fee),
                    "earnings_amount": str(e.earnings_amount),
                    "status": e.status.value,
                    "earned_at": e.earned_at.isoformat() if e.earned_at else None,
                }
                for e in recent
            ]
        }
