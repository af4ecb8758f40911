from decimal import Decimal
from typing import Optional
from sqlalchemy import update
from sqlalchemy.orm import Session
import logging

from models.product import Product
from core.exceptions import InsufficientStockError, ValidationError

logger = logging.getLogger(__name__)

class CatalogGateway:
    """Narrow view of the product catalog used during fulfillment."""

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: str) -> Optional[Product]:
        return self.db.query(Product).filter(
            Product.id == product_id,
            Product.is_active == True
        ).first()

    def catalog_price(self, product: Product) -> Decimal:
        return Decimal(product.final_price if product.final_price is not None else product.price)

    def decrement_stock(self, product_id: str, quantity: int) -> None:
        """Atomic conditional decrement; never lets stock go below zero."""
        if quantity <= 0:
            raise ValidationError("Quantity must be positive", field="quantity")

        result = self.db.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= quantity)
            .values(stock_quantity=Product.stock_quantity - quantity)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            available = self.db.query(Product.stock_quantity).filter(Product.id == product_id).scalar()
            logger.warning(f"Stock decrement refused for product {product_id}: requested {quantity}, available {available}")
            raise InsufficientStockError(product_id, quantity, details={"available": available})

    def increment_stock(self, product_id: str, quantity: int) -> None:
        self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + quantity)
            .execution_options(synchronize_session="fetch")
        )
