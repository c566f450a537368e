"""
school_payments/api/v1/endpoints/payments.py
Payment submission, history and verification endpoints
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query, Form, File, UploadFile
from fastapi.exceptions import RequestValidationError
from decimal import Decimal
from pydantic import ValidationError
from typing import List, Optional
from school_payments.models.schemas import (
    PaymentCreate, PaymentMethod, PaymentResponse, PaymentStatus, PaymentVerify, TokenPayload
)
from school_payments.core.config import settings
from school_payments.core.dependencies import get_db, get_email_service, get_storage
from school_payments.core.exceptions import ServiceError
from school_payments.core.security import get_current_user, require_staff
from school_payments.db.supabase import SupabaseQueries
from school_payments.services import payment_service
from school_payments.services.email_service import EmailService
from school_payments.services.payment_service import ReceiptUpload
from school_payments.services.storage_service import BlobStorage
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def submit_payment(
    fee_id: str = Form(...),
    amount_paid: Decimal = Form(..., gt=0),
    payment_method: PaymentMethod = Form(...),
    student_id: Optional[str] = Form(None),
    reference_number: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    receipt: Optional[UploadFile] = File(None),
    current_user: TokenPayload = Depends(get_current_user),
    db: SupabaseQueries = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
    email_service: EmailService = Depends(get_email_service)
):
    """
    Submit a payment against an outstanding fee (multipart form).
    The payment waits in the pending queue until accounting verifies it.
    """
    try:
        payment_data = PaymentCreate(
            fee_id=fee_id,
            student_id=student_id or None,
            amount_paid=amount_paid,
            payment_method=payment_method,
            reference_number=reference_number or None,
            notes=notes or None
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors())

    try:
        upload = None
        if receipt is not None and receipt.filename:
            content = await receipt.read(settings.RECEIPT_MAX_SIZE + 1)
            upload = ReceiptUpload(
                filename=receipt.filename,
                content_type=receipt.content_type,
                content=content
            )

        payment = await payment_service.submit_payment(
            db, storage, current_user, payment_data, upload, email_service
        )
        return PaymentResponse(**payment)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Submit payment error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to submit payment"
        )


@router.get("/", response_model=List[PaymentResponse])
async def get_payments(
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    fee_id: Optional[str] = None,
    student_id: Optional[str] = None,
    current_user: TokenPayload = Depends(get_current_user),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Payment history; `?status=pending` is the verification queue.
    - Students/Parents only see their own (or their children's).
    """
    try:
        payments = await payment_service.list_payments(
            db, current_user, status_filter, fee_id, student_id
        )
        return [PaymentResponse(**payment) for payment in payments]

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Get payments error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve payments"
        )


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: str,
    current_user: TokenPayload = Depends(get_current_user),
    db: SupabaseQueries = Depends(get_db)
):
    try:
        payment = await payment_service.get_payment(db, current_user, payment_id)
        return PaymentResponse(**payment)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Get payment error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve payment"
        )


@router.patch("/{payment_id}/verify", response_model=PaymentResponse)
async def verify_payment(
    payment_id: str,
    decision: PaymentVerify,
    current_user: TokenPayload = Depends(require_staff),
    db: SupabaseQueries = Depends(get_db),
    email_service: EmailService = Depends(get_email_service)
):
    """
    Verify or reject a pending payment (Accounting/Admin only).
    Verifying marks the fee as paid. Both outcomes are final.
    """
    try:
        payment = await payment_service.verify_payment(
            db, current_user, payment_id, decision, email_service
        )
        return PaymentResponse(**payment)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Verify payment error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update payment status"
        )
