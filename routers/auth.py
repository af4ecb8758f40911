from fastapi import APIRouter, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional
import logging

from database.connection import get_db
from services.auth import verify_token, get_user_by_id, build_principal
from schemas.user import Principal, UserResponse
from models.user import UserRole, STAFF_ROLES, VENDOR_ROLES
from core.exceptions import AuthenticationError, AuthorizationError
from core.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter()
security = HTTPBearer(auto_error=False)

def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Principal:
    """Resolve the bearer token into the calling Principal."""
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Authentication credentials required")

    token_data = verify_token(credentials.credentials)
    if token_data is None:
        raise AuthenticationError("Could not validate credentials")

    user = get_user_by_id(db, token_data.user_id)
    if user is None:
        logger.warning(f"Token valid but user not found: {token_data.user_id}")
        raise AuthenticationError("User not found")
    if not user.is_active:
        logger.warning(f"Inactive user attempted access: {user.id}")
        raise AuthenticationError("User account is inactive")

    return build_principal(db, user)

def require_roles(*roles: UserRole):
    """Dependency factory that only lets the given roles through."""
    allowed = frozenset(roles)

    def dependency(current_user: Principal = Depends(get_current_user)) -> Principal:
        if current_user.role not in allowed:
            logger.warning(f"User {current_user.user_id} with role {current_user.role.value} denied")
            raise AuthorizationError(
                "Insufficient permissions",
                details={"required_roles": sorted(r.value for r in allowed)}
            )
        return current_user

    return dependency

require_staff = require_roles(*STAFF_ROLES)
require_admin = require_roles(UserRole.ADMIN)
require_vendor = require_roles(*VENDOR_ROLES)
require_customer = require_roles(UserRole.CUSTOMER)
require_delivery = require_roles(UserRole.DELIVERY)

@router.get("/me")
async def get_me(
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Return the authenticated user with their role and delivery profile."""
    user = UserResponse.model_validate(get_user_by_id(db, current_user.user_id))
    return success_response(
        data={
            **user.model_dump(mode="json"),
            "user_id": current_user.user_id,
            "role": current_user.role.value,
            "delivery_id": current_user.delivery_id
        },
        message="Current user retrieved"
    )
