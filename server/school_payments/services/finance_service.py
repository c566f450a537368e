"""
school_payments/services/finance_service.py
Finance dashboard figures and system status
"""
from collections import defaultdict
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional
from school_payments.core.config import settings
from school_payments.db.supabase import SupabaseQueries, test_connection
from school_payments.models.schemas import FeeStatus, PaymentStatus
from school_payments.services.fee_service import to_decimal
from school_payments.services.storage_service import BlobStorage
import logging

logger = logging.getLogger(__name__)


def _payment_day(payment: dict) -> Optional[date]:
    value = payment.get("payment_date")
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()


async def get_finance_summary(db: SupabaseQueries, today: Optional[date] = None) -> dict:
    """
    Revenue counts verified payments only; pending claims are reported
    separately as the verification backlog.
    """
    today = today or date.today()

    verified = await db.select_all("payments", {"payment_status": PaymentStatus.VERIFIED.value})
    outstanding = await db.select_all("fees", {"status": FeeStatus.OUTSTANDING.value})
    pending_count = await db.count("payments", {"payment_status": PaymentStatus.PENDING.value})

    monthly = Decimal("0")
    yearly = Decimal("0")
    by_method = defaultdict(lambda: Decimal("0"))

    for payment in verified:
        amount = to_decimal(payment.get("amount_paid"))
        by_method[payment.get("payment_method") or "unknown"] += amount

        day = _payment_day(payment)
        if day is None or day.year != today.year:
            continue
        yearly += amount
        if day.month == today.month:
            monthly += amount

    return {
        "monthly_revenue": monthly,
        "yearly_revenue": yearly,
        "outstanding_amount": sum((to_decimal(f.get("amount")) for f in outstanding), Decimal("0")),
        "outstanding_count": len(outstanding),
        "pending_verification_count": pending_count,
        "revenue_by_method": dict(by_method),
    }


async def get_system_status(db: SupabaseQueries, storage: BlobStorage) -> dict:
    """Check the database and the blob storage bucket"""
    database = {"status": "disconnected", "connection_test": False, "last_error": None}
    if await test_connection(db):
        database.update(status="connected", connection_test=True)
    else:
        database["last_error"] = "Database connection test failed"

    blob = {"status": "unreachable", "connection_test": False, "last_error": None}
    try:
        storage.list(settings.RECEIPT_PREFIX)
        blob.update(status="connected", connection_test=True)
    except Exception as e:
        logger.error(f"Storage status check failed: {e}")
        blob["last_error"] = str(e)

    return {
        "timestamp": datetime.now(timezone.utc),
        "environment": settings.ENVIRONMENT,
        "database": database,
        "storage": blob,
    }
