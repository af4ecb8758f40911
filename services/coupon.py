from datetime import datetime
from decimal import Decimal
from typing import Tuple
from sqlalchemy import update, or_
from sqlalchemy.orm import Session
import logging

from models.coupon import Coupon
from core.exceptions import InvalidCouponError
from services.commission import to_money

logger = logging.getLogger(__name__)

class CouponService:
    def __init__(self, db: Session):
        self.db = db

    def resolve(self, code: str, subtotal: Decimal) -> Tuple[Coupon, Decimal]:
        """Validate a coupon against the cart subtotal and return the discount."""
        coupon = self.db.query(Coupon).filter(Coupon.code == code.strip()).first()
        if not coupon:
            raise InvalidCouponError(code, "not found")
        if not coupon.is_active:
            raise InvalidCouponError(code, "inactive")
        if coupon.expire_at and coupon.expire_at < datetime.utcnow():
            raise InvalidCouponError(code, "expired")
        if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
            raise InvalidCouponError(code, "usage limit reached")
        if coupon.min_order_amount is not None and subtotal < Decimal(coupon.min_order_amount):
            raise InvalidCouponError(code, f"minimum order amount is {coupon.min_order_amount}")

        if coupon.discount_percentage:
            discount = subtotal * Decimal(coupon.discount_percentage) / Decimal(100)
        elif coupon.discount_amount:
            discount = Decimal(coupon.discount_amount)
        else:
            discount = Decimal(0)

        return coupon, to_money(min(discount, subtotal))

    def mark_used(self, coupon: Coupon) -> None:
        result = self.db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon.id,
                or_(Coupon.max_uses.is_(None), Coupon.used_count < Coupon.max_uses)
            )
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise InvalidCouponError(coupon.code, "usage limit reached")
        logger.info(f"Coupon {coupon.code} used")
