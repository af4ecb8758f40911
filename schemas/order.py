from pydantic import BaseModel, Field, validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from models.order import OrderStatus, ConfirmationStatus, PaymentMethod

class CartItem(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0, description="Quantity must be at least 1")
    unit_price: Optional[Decimal] = Field(None, ge=0)
    final_price: Optional[Decimal] = Field(None, ge=0, description="Discounted price when a promotion applies")
    vendor_id: Optional[str] = None

    @property
    def effective_price(self) -> Optional[Decimal]:
        return self.final_price if self.final_price is not None else self.unit_price

class CheckoutRequest(BaseModel):
    items: List[CartItem] = Field(default_factory=list)
    payment_method: str = Field(..., description="cash, card or transfer")
    coupon_code: Optional[str] = None
    address_id: Optional[str] = None
    delivery_zone_id: Optional[int] = None
    delivery_fee: Optional[Decimal] = Field(None, ge=0, description="Defaults to the zone fee")

    @validator('payment_method')
    def normalize_payment_method(cls, v):
        return v.strip().lower() if v else v

    @validator('coupon_code')
    def normalize_coupon_code(cls, v):
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v

class CreatedOrder(BaseModel):
    order_id: str
    vendor_id: str
    total: Decimal

class CheckoutResponse(BaseModel):
    split_group_id: str
    orders: List[CreatedOrder]
    subtotal: Decimal
    discount: Decimal
    delivery_fee: Decimal
    grand_total: Decimal

class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

class RejectOrderRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

class BulkConfirmRequest(BaseModel):
    order_ids: List[str] = Field(..., min_length=1)

class OrderItemResponse(BaseModel):
    id: str
    product_id: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal

    class Config:
        from_attributes = True

class TrackingEntry(BaseModel):
    id: int
    status: str
    notes: Optional[str] = None
    delivery_id: Optional[str] = None
    timestamp: datetime

    @validator('status', pre=True)
    def status_value(cls, v):
        return getattr(v, "value", v)

    class Config:
        from_attributes = True

class OrderResponse(BaseModel):
    id: str
    customer_id: str
    vendor_id: str
    split_group_id: str
    coupon_id: Optional[str] = None
    subtotal: Decimal
    discount: Decimal
    delivery_fee: Decimal
    total: Decimal
    payment_method: PaymentMethod
    status: OrderStatus
    confirmation_status: ConfirmationStatus
    delivery_status: str = ""
    delivery_progress: int = 0
    address_id: Optional[str] = None
    delivery_zone_id: Optional[int] = None
    delivery_id: Optional[str] = None
    delivery_confirmation_image: Optional[str] = None
    placed_at: datetime
    confirmed_at: Optional[datetime] = None
    estimated_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    items: List[OrderItemResponse] = []
    tracking: Optional[List[TrackingEntry]] = None

    class Config:
        from_attributes = True
