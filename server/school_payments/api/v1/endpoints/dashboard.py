"""
school_payments/api/v1/endpoints/dashboard.py
Finance dashboard and system status endpoints
"""
from fastapi import APIRouter, HTTPException, status, Depends
from school_payments.models.schemas import FinanceSummary, SystemStatus, TokenPayload
from school_payments.core.dependencies import get_db, get_storage
from school_payments.core.security import require_admin, require_finance_viewer
from school_payments.db.supabase import SupabaseQueries
from school_payments.services import finance_service
from school_payments.services.storage_service import BlobStorage
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/finance", response_model=FinanceSummary)
async def get_finance_dashboard(
    current_user: TokenPayload = Depends(require_finance_viewer),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Revenue, outstanding fees and verification backlog
    (Admin, Accounting and Principal)
    """
    try:
        summary = await finance_service.get_finance_summary(db)
        return FinanceSummary(**summary)
    except Exception as e:
        logger.error(f"Finance dashboard error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve finance summary"
        )


@router.get("/status", response_model=SystemStatus)
async def get_system_status(
    current_user: TokenPayload = Depends(require_admin),
    db: SupabaseQueries = Depends(get_db),
    storage: BlobStorage = Depends(get_storage)
):
    """
    Database and blob storage health (Admin only)
    """
    return SystemStatus(**await finance_service.get_system_status(db, storage))
