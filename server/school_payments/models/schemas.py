"""
school_payments/models/schemas.py
Pydantic schemas for the fee ledger and payment workflow
"""
from __future__ import annotations

from enum import Enum
from typing import List, Optional, Dict
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, EmailStr, Field


# ============================================
# ENUMS
# ============================================

class UserRole(str, Enum):
    ADMIN = "admin"
    ACCOUNTING = "accounting"
    PRINCIPAL = "principal"
    STUDENT = "student"
    PARENT = "parent"


class FeeStatus(str, Enum):
    OUTSTANDING = "outstanding"
    PAID = "paid"


class PaymentMethod(str, Enum):
    CASH = "cash"
    ONLINE = "online"
    PROMISSORY_NOTE = "promissory_note"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class VerificationDecision(str, Enum):
    """Terminal statuses a verifier may move a pending payment to"""
    VERIFIED = "verified"
    REJECTED = "rejected"


STAFF_ROLES = (UserRole.ADMIN, UserRole.ACCOUNTING)
PAYER_ROLES = (UserRole.STUDENT, UserRole.PARENT)


# ============================================
# USER & AUTH MODELS
# ============================================

class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    user_id: str
    email: EmailStr
    role: UserRole
    is_active: bool

    model_config = {"from_attributes": True}


class TokenPayload(BaseModel):
    sub: str
    role: UserRole
    exp: datetime


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class RefreshRequest(BaseModel):
    refresh_token: str


# ============================================
# FEE MODELS
# ============================================

class FeeResponse(BaseModel):
    fee_id: str
    student_id: str
    student_name: Optional[str] = None
    fee_type: str
    amount: Decimal
    due_date: Optional[date] = None
    status: FeeStatus

    model_config = {"from_attributes": True}


# ============================================
# PAYMENT MODELS
# ============================================

class PaymentCreate(BaseModel):
    fee_id: str
    student_id: Optional[str] = None
    amount_paid: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    payment_method: PaymentMethod
    reference_number: Optional[str] = None
    notes: Optional[str] = None


class PaymentVerify(BaseModel):
    status: VerificationDecision
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    payment_id: str
    fee_id: str
    student_id: str
    student_name: Optional[str] = None
    fee_type: Optional[str] = None
    fee_amount: Optional[Decimal] = None
    amount_paid: Decimal
    payment_date: Optional[datetime] = None
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    reference_number: Optional[str] = None
    receipt_url: Optional[str] = None
    notes: Optional[str] = None
    recorded_by: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ============================================
# FILE STORAGE MODELS
# ============================================

class StoredFile(BaseModel):
    url: str
    pathname: str
    size: Optional[int] = None
    uploaded_at: Optional[datetime] = None


class FileListResponse(BaseModel):
    files: List[StoredFile]
    total: int


# ============================================
# DASHBOARD
# ============================================

class FinanceSummary(BaseModel):
    monthly_revenue: Decimal = Decimal("0")
    yearly_revenue: Decimal = Decimal("0")
    outstanding_amount: Decimal = Decimal("0")
    outstanding_count: int = 0
    pending_verification_count: int = 0
    revenue_by_method: Dict[str, Decimal] = {}


class ComponentStatus(BaseModel):
    status: str
    connection_test: bool = False
    last_error: Optional[str] = None


class SystemStatus(BaseModel):
    timestamp: datetime
    environment: str
    database: ComponentStatus
    storage: ComponentStatus


# ============================================
# EXPORTS
# ============================================

__all__ = [
    # Enums
    "UserRole",
    "FeeStatus",
    "PaymentMethod",
    "PaymentStatus",
    "VerificationDecision",
    "STAFF_ROLES",
    "PAYER_ROLES",
    # User & Auth
    "UserLogin",
    "UserResponse",
    "TokenPayload",
    "Token",
    "RefreshRequest",
    # Fee
    "FeeResponse",
    # Payment
    "PaymentCreate",
    "PaymentVerify",
    "PaymentResponse",
    # Storage
    "StoredFile",
    "FileListResponse",
    # Dashboard
    "FinanceSummary",
    "ComponentStatus",
    "SystemStatus",
]
