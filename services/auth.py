from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from models.user import User
from models.delivery import DeliveryPersonnel
from schemas.user import TokenData, Principal
from core.config import settings
import logging

logger = logging.getLogger(__name__)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token. `sub` carries the user id."""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({
        "exp": expire,
        "iat": datetime.utcnow(),
        "type": "access"
    })

    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    logger.info(f"Access token created for user: {data.get('sub')}")
    return encoded_jwt

def verify_token(token: str) -> Optional[TokenData]:
    """Decode a JWT token; returns None when it is invalid or expired."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {str(e)}")
        return None

    user_id = payload.get("sub")
    if user_id is None:
        logger.warning("Token missing required claims")
        return None

    return TokenData(user_id=user_id, role=payload.get("role"))

def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()

def build_principal(db: Session, user: User) -> Principal:
    """Resolve the caller's role and, for couriers, their delivery profile."""
    delivery_id = (
        db.query(DeliveryPersonnel.id)
        .filter(DeliveryPersonnel.user_id == user.id)
        .scalar()
    )
    return Principal(user_id=user.id, role=user.role, delivery_id=delivery_id)
