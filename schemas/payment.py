from pydantic import BaseModel, Field, validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

class PaymentConfirmationRequest(BaseModel):
    payment_received: Decimal = Field(..., ge=0, description="Cash collected; must equal the order total")
    customer_signature: Optional[str] = Field(None, max_length=500)
    delivery_photo: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)

class PaymentConfirmationResponse(BaseModel):
    id: str
    order_id: str
    delivery_id: str
    payment_received: Decimal
    confirmed_at: datetime

    class Config:
        from_attributes = True

class ProcessPaymentRequest(BaseModel):
    payment_method: Optional[str] = Field(None, max_length=50)
    transaction_id: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)

class BulkProcessRequest(BaseModel):
    payment_ids: List[str] = Field(..., min_length=1)
    payment_method: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=1000)

class VendorPaymentResponse(BaseModel):
    id: str
    vendor_id: str
    order_id: str
    amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    net_amount: Decimal
    payment_status: str
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    approved_at: Optional[datetime] = None
    payment_date: Optional[datetime] = None
    created_at: datetime

    @validator('payment_status', pre=True)
    def status_value(cls, v):
        return getattr(v, "value", v)

    class Config:
        from_attributes = True
