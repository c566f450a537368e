"""
school_payments/services/fee_service.py
Fee ledger reads and the row-level access rules shared with payments
"""
from decimal import Decimal
from typing import Dict, List, Optional, Any
from school_payments.core.exceptions import NotFoundError, PermissionDeniedError
from school_payments.db.supabase import SupabaseQueries
from school_payments.models.schemas import FeeStatus, TokenPayload, UserRole
import logging

logger = logging.getLogger(__name__)


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


async def get_accessible_student_ids(db: SupabaseQueries, user: TokenPayload) -> Optional[List[str]]:
    """
    Student ids whose fees and payments the user may see.

    Returns None for staff roles, which are not restricted. Students see
    themselves, parents see their linked children.
    """
    if user.role == UserRole.STUDENT:
        student = await db.select_one("students", {"user_id": user.sub})
        return [student["student_id"]] if student else []

    if user.role == UserRole.PARENT:
        parent = await db.select_one("parents", {"user_id": user.sub})
        if not parent:
            return []
        links = await db.select_all("parent_student", {"parent_id": parent["parent_id"]})
        return [link["student_id"] for link in links]

    return None


def ensure_student_access(allowed: Optional[List[str]], student_id: str) -> None:
    if allowed is not None and student_id not in allowed:
        raise PermissionDeniedError("Access denied")


async def enrich_fee(fee: dict, db: SupabaseQueries, students: Dict[str, Optional[dict]] = None) -> dict:
    """Add student_name to a fee row, memoising student lookups in `students`"""
    if students is None:
        students = {}

    student_id = fee.get("student_id")
    if student_id and student_id not in students:
        students[student_id] = await db.select_by_id("students", "student_id", student_id)
    student = students.get(student_id)

    return {**fee, "student_name": student.get("name") if student else None}


async def get_fee(db: SupabaseQueries, user: TokenPayload, fee_id: str) -> dict:
    fee = await db.select_by_id("fees", "fee_id", fee_id)
    if not fee:
        raise NotFoundError("Fee record not found")

    allowed = await get_accessible_student_ids(db, user)
    ensure_student_access(allowed, fee["student_id"])

    return await enrich_fee(fee, db)


async def list_fees(
    db: SupabaseQueries,
    user: TokenPayload,
    status: Optional[FeeStatus] = FeeStatus.OUTSTANDING,
    student_id: Optional[str] = None
) -> List[dict]:
    """
    Fees visible to the user, soonest due first.
    Payers only ever get their own (or their children's) fees.
    """
    allowed = await get_accessible_student_ids(db, user)
    if allowed is not None and not allowed:
        return []
    if student_id:
        ensure_student_access(allowed, student_id)

    filters = {}
    if status:
        filters["status"] = status.value
    if student_id:
        filters["student_id"] = student_id
    elif allowed is not None and len(allowed) == 1:
        filters["student_id"] = allowed[0]

    fees = await db.select_all("fees", filters, "due_date")

    students: Dict[str, Optional[dict]] = {}
    result = []
    for fee in fees:
        if allowed is not None and fee.get("student_id") not in allowed:
            continue
        result.append(await enrich_fee(fee, db, students))
    return result
