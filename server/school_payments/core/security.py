"""
school_payments/core/security.py
Password hashing, JWT access/refresh tokens and role guards
"""
from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from school_payments.core.config import settings
from school_payments.models.schemas import UserRole, TokenPayload, STAFF_ROLES
import logging

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
security = HTTPBearer()


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _encode(data: dict, token_type: str, lifetime: timedelta) -> str:
    claims = {**data, "exp": datetime.utcnow() + lifetime, "type": token_type}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Short-lived token sent as the Bearer credential"""
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(data, "access", lifetime)


def create_refresh_token(data: dict) -> str:
    """Long-lived token accepted only by /auth/refresh"""
    return _encode(data, "refresh", timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def verify_token(token: str, token_type: str = "access") -> TokenPayload:
    """
    Decode a JWT and check it is of the expected type.

    Raises a 401 HTTPException for bad signatures, expired tokens, a
    missing subject or role, or the wrong token type.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.error(f"JWT verification failed: {e}")
        raise _unauthorized("Could not validate credentials")

    if payload.get("type") != token_type:
        raise _unauthorized("Invalid token type")

    try:
        return TokenPayload(
            sub=payload["sub"],
            role=UserRole(payload["role"]),
            exp=datetime.fromtimestamp(payload["exp"])
        )
    except (KeyError, ValueError):
        raise _unauthorized("Invalid token payload")


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    return verify_token(credentials.credentials)


def require_role(*required_roles: UserRole, detail: Optional[str] = None):
    """Build a dependency that admits only the given roles"""
    async def role_checker(current_user: TokenPayload = Depends(get_current_user)):
        if current_user.role not in required_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=detail or f"Access denied. Required roles: {[r.value for r in required_roles]}"
            )
        return current_user
    return role_checker


# Role-based dependencies
require_admin = require_role(UserRole.ADMIN, detail="Admin access required")
require_staff = require_role(*STAFF_ROLES, detail="Accounting staff access required")
require_finance_viewer = require_role(UserRole.ADMIN, UserRole.ACCOUNTING, UserRole.PRINCIPAL)
