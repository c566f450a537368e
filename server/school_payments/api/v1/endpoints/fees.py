"""
school_payments/api/v1/endpoints/fees.py
Fee ledger endpoints
"""
from fastapi import APIRouter, HTTPException, status, Depends, Query
from typing import List, Optional
from school_payments.models.schemas import FeeResponse, FeeStatus, TokenPayload
from school_payments.core.dependencies import get_db
from school_payments.core.exceptions import ServiceError
from school_payments.core.security import get_current_user
from school_payments.db.supabase import SupabaseQueries
from school_payments.services import fee_service
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=List[FeeResponse])
async def get_fees(
    status_filter: Optional[FeeStatus] = Query(FeeStatus.OUTSTANDING, alias="status"),
    student_id: Optional[str] = None,
    current_user: TokenPayload = Depends(get_current_user),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Get fee records, outstanding ones by default.
    - Students/Parents only see their own (or their children's).
    - Staff may filter by student.
    """
    try:
        fees = await fee_service.list_fees(db, current_user, status_filter, student_id)
        return [FeeResponse(**fee) for fee in fees]

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Get fees error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve fee records"
        )


@router.get("/{fee_id}", response_model=FeeResponse)
async def get_fee(
    fee_id: str,
    current_user: TokenPayload = Depends(get_current_user),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Get a single fee record by ID.
    """
    try:
        fee = await fee_service.get_fee(db, current_user, fee_id)
        return FeeResponse(**fee)

    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Get fee error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve fee record"
        )
