from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import datetime
from decimal import Decimal

def _enum_value(v):
    return getattr(v, "value", v)

class AssignOrderRequest(BaseModel):
    order_id: str = Field(..., min_length=1)
    delivery_id: str = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=1000)
    pickup_time: Optional[datetime] = None

class ClaimOrderRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)

class AvailabilityUpdate(BaseModel):
    is_available: bool

class PersonnelCreate(BaseModel):
    user_id: str
    zone_id: Optional[int] = None
    vehicle_type: Optional[str] = Field(None, max_length=50)
    vehicle_number: Optional[str] = Field(None, max_length=50)
    is_verified: bool = False
    is_available: bool = True

    @validator('vehicle_type', 'vehicle_number')
    def strip_text(cls, v):
        return v.strip() if v else v

class PersonnelResponse(BaseModel):
    id: str
    user_id: str
    zone_id: Optional[int] = None
    vehicle_type: Optional[str] = None
    vehicle_number: Optional[str] = None
    is_available: bool
    is_verified: bool
    rating: float
    total_deliveries: int

    class Config:
        from_attributes = True

class PersonnelDetail(PersonnelResponse):
    name: Optional[str] = None
    active_orders: int = 0

class AssignmentResponse(BaseModel):
    id: str
    order_id: str
    delivery_id: str
    assigned_by: str
    status: str
    notes: Optional[str] = None
    assigned_at: datetime

    @validator('status', pre=True)
    def status_value(cls, v):
        return _enum_value(v)

    class Config:
        from_attributes = True

class ClaimResponse(BaseModel):
    id: str
    order_id: str
    delivery_id: str
    claim_status: str
    notes: Optional[str] = None
    claimed_at: datetime
    approved_at: Optional[datetime] = None

    @validator('claim_status', pre=True)
    def claim_status_value(cls, v):
        return _enum_value(v)

    class Config:
        from_attributes = True

class ZoneResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    delivery_fee: Decimal
    estimated_delivery_hours: int

    class Config:
        from_attributes = True
