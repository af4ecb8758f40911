from pydantic import BaseModel, EmailStr, validator, Field
from typing import Optional, Union
from datetime import datetime
from models.user import UserRole

# Token payload
class TokenData(BaseModel):
    user_id: str
    role: Optional[str] = None

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int

# Authenticated caller as seen by the fulfillment services
class Principal(BaseModel):
    user_id: str
    role: UserRole
    delivery_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role.is_staff

    @property
    def is_vendor(self) -> bool:
        return self.role.is_vendor

class UserCreate(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=2, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    role: Union[UserRole, str]
    vendor_type_id: Optional[int] = None

    @validator('name')
    def validate_name(cls, v):
        if not v or len(v.strip()) < 2:
            raise ValueError('Name must be at least 2 characters long')
        return v.strip()

    @validator('role')
    def validate_role(cls, v):
        if isinstance(v, str):
            try:
                return UserRole(v.upper())
            except ValueError:
                valid_roles = [role.value for role in UserRole]
                raise ValueError(f'Invalid role. Must be one of: {valid_roles}')
        return v

class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    phone: Optional[str] = None
    role: UserRole
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True
