from fastapi import APIRouter, HTTPException, status, Depends
from school_payments.models.schemas import RefreshRequest, Token, TokenPayload, UserLogin, UserResponse, UserRole
from school_payments.core.security import (
    verify_password, create_access_token, create_refresh_token, get_current_user, verify_token
)
from school_payments.core.config import settings
from school_payments.core.dependencies import get_db
from school_payments.db.supabase import SupabaseQueries
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


def _issue_tokens(user_id: str, role: str) -> Token:
    token_data = {"sub": user_id, "role": role}
    return Token(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(token_data),
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    )


@router.post("/login", response_model=Token)
async def login(credentials: UserLogin, db: SupabaseQueries = Depends(get_db)):
    """
    Login endpoint - returns JWT tokens
    """
    try:
        user = await db.select_one("users", {"email": credentials.email})

        if not user or not user.get("password_hash") or not verify_password(credentials.password, user["password_hash"]):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password"
            )

        if not user.get("is_active", True):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account is inactive"
            )

        logger.info(f"User logged in: {credentials.email}")
        return _issue_tokens(user["user_id"], user["role"])

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Login error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Login failed"
        )


@router.post("/refresh", response_model=Token)
async def refresh_token(body: RefreshRequest):
    """
    Exchange a refresh token for a new token pair
    """
    payload = verify_token(body.refresh_token, token_type="refresh")
    return _issue_tokens(payload.sub, payload.role.value)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: TokenPayload = Depends(get_current_user),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Get current user information
    """
    try:
        user = await db.select_by_id("users", "user_id", current_user.sub)

        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found"
            )

        return UserResponse(
            user_id=user["user_id"],
            email=user["email"],
            role=UserRole(user["role"]),
            is_active=user.get("is_active", True)
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get user info error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get user information"
        )
