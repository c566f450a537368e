"""
school_payments/services/payment_service.py
Payment submission and the staff verification workflow.

A payment is created `pending` and moves exactly once, to `verified` or
`rejected`. Both moves are conditional updates on the current status so a
second verifier (or a retried request) finds no matching row and is refused
instead of repeating the transition. Verifying also claims the fee with a
conditional `outstanding -> paid` update, which keeps at most one verified
payment per fee.
"""
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional
from school_payments.core.config import settings
from school_payments.core.exceptions import (
    DatabaseError, InvalidPaymentError, NotFoundError, PermissionDeniedError,
    StorageError, TransitionConflictError
)
from school_payments.core.payment_rules import receipt_problem, submission_problem
from school_payments.db.supabase import SupabaseQueries
from school_payments.models.schemas import (
    FeeStatus, PaymentCreate, PaymentMethod, PaymentStatus, PaymentVerify,
    TokenPayload, VerificationDecision, PAYER_ROLES, STAFF_ROLES
)
from school_payments.services.email_service import EmailService
from school_payments.services.fee_service import (
    ensure_student_access, get_accessible_student_ids, to_decimal
)
from school_payments.services.storage_service import BlobStorage
import logging

logger = logging.getLogger(__name__)


@dataclass
class ReceiptUpload:
    filename: str
    content_type: Optional[str]
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _receipt_pathname(student_id: str, filename: str) -> str:
    safe_name = re.sub(r"[^A-Za-z0-9._-]", "_", filename or "receipt") or "receipt"
    return f"{settings.RECEIPT_PREFIX}/{student_id}/{uuid.uuid4().hex}-{safe_name}"


def _merge_notes(existing: Optional[str], verifier_notes: Optional[str]) -> Optional[str]:
    if not verifier_notes or not verifier_notes.strip():
        return existing
    line = f"Verifier: {verifier_notes.strip()}"
    return f"{existing}\n{line}" if existing else line


# ============================================
# ENRICHMENT
# ============================================

class _Lookups:
    """Per-request memo of the fee and student rows a payment list refers to"""

    def __init__(self, db: SupabaseQueries):
        self.db = db
        self.fees: Dict[str, Optional[dict]] = {}
        self.students: Dict[str, Optional[dict]] = {}

    async def fee(self, fee_id: str) -> Optional[dict]:
        if fee_id not in self.fees:
            self.fees[fee_id] = await self.db.select_by_id("fees", "fee_id", fee_id)
        return self.fees[fee_id]

    async def student(self, student_id: str) -> Optional[dict]:
        if student_id not in self.students:
            self.students[student_id] = await self.db.select_by_id("students", "student_id", student_id)
        return self.students[student_id]


async def enrich_payment(payment: dict, lookups: _Lookups) -> dict:
    fee = await lookups.fee(payment["fee_id"])
    student = await lookups.student(payment["student_id"])
    return {
        **payment,
        "student_name": student.get("name") if student else None,
        "fee_type": fee.get("fee_type") if fee else None,
        "fee_amount": fee.get("amount") if fee else None,
    }


async def _after_commit(
    email_service: Optional[EmailService],
    lookups: _Lookups,
    payment: dict,
    submitted: bool
) -> dict:
    """Notify and enrich a committed payment; lookup failures only cost the extras"""
    try:
        await _notify(email_service, lookups, payment, submitted)
        return await enrich_payment(payment, lookups)
    except DatabaseError as e:
        logger.warning(f"Payment {payment['payment_id']} saved, but notify/enrich failed: {e}")
        return {**payment, "student_name": None, "fee_type": None, "fee_amount": None}


async def _notify(
    email_service: Optional[EmailService],
    lookups: _Lookups,
    payment: dict,
    submitted: bool
) -> None:
    if email_service is None:
        return
    student = await lookups.student(payment["student_id"])
    if not student or not student.get("email"):
        return
    fee = await lookups.fee(payment["fee_id"])
    fee_type = fee.get("fee_type") if fee else "school fees"

    if submitted:
        await email_service.send_payment_submitted(student["email"], student["name"], fee_type, payment)
    else:
        await email_service.send_payment_decision(student["email"], student["name"], fee_type, payment)


# ============================================
# SUBMISSION
# ============================================

async def submit_payment(
    db: SupabaseQueries,
    storage: BlobStorage,
    user: TokenPayload,
    data: PaymentCreate,
    receipt: Optional[ReceiptUpload] = None,
    email_service: Optional[EmailService] = None
) -> dict:
    """
    Record a payment claim against an outstanding fee.

    The payment is stored as pending and the fee is left untouched. Any
    failure raises before the payment row is written.
    """
    fee = await db.select_by_id("fees", "fee_id", data.fee_id)
    if not fee:
        raise NotFoundError("Fee record not found")

    allowed = await get_accessible_student_ids(db, user)
    ensure_student_access(allowed, fee["student_id"])

    if user.role in PAYER_ROLES and data.payment_method != PaymentMethod.ONLINE:
        raise PermissionDeniedError("Cash and promissory note payments are recorded by the accounting office")

    if fee.get("status") != FeeStatus.OUTSTANDING.value:
        raise TransitionConflictError("Fee is not outstanding")

    if data.student_id and data.student_id != fee["student_id"]:
        raise InvalidPaymentError("Student does not match the fee record")

    fee_amount = to_decimal(fee.get("amount"))
    if data.amount_paid > fee_amount:
        raise InvalidPaymentError(f"Payment (₱{data.amount_paid}) exceeds the fee amount (₱{fee_amount})")
    if data.amount_paid < fee_amount:
        raise InvalidPaymentError(f"Payment (₱{data.amount_paid}) must cover the full fee amount (₱{fee_amount})")

    problem = submission_problem(data.payment_method.value, data.reference_number, receipt is not None)
    if problem:
        raise InvalidPaymentError(problem)

    if receipt is not None:
        problem = receipt_problem(receipt.content_type, receipt.size, settings.RECEIPT_MAX_SIZE)
        if problem:
            raise InvalidPaymentError(problem)

    receipt_path = None
    receipt_url = None
    if receipt is not None:
        receipt_path = _receipt_pathname(fee["student_id"], receipt.filename)
        stored = storage.put(receipt_path, receipt.content, receipt.content_type)
        receipt_url = stored["url"]

    record = {
        "fee_id": fee["fee_id"],
        "student_id": fee["student_id"],
        "amount_paid": str(data.amount_paid),
        "payment_date": _utcnow(),
        "payment_method": data.payment_method.value,
        "payment_status": PaymentStatus.PENDING.value,
        "reference_number": data.reference_number.strip() if data.reference_number else None,
        "receipt_url": receipt_url,
        "notes": data.notes or None,
        "recorded_by": user.sub,
    }

    try:
        payment = await db.insert_one("payments", record)
        if payment is None:
            raise DatabaseError("Insert into payments returned no data")
    except DatabaseError:
        if receipt_path:
            try:
                storage.delete(receipt_path)
            except StorageError as e:
                logger.warning(f"Orphaned receipt left at {receipt_path}: {e}")
        raise

    logger.info(
        f"Payment {payment['payment_id']} submitted for fee {fee['fee_id']} "
        f"({data.payment_method.value}, {data.amount_paid}) by {user.sub}"
    )

    lookups = _Lookups(db)
    lookups.fees[fee["fee_id"]] = fee
    return await _after_commit(email_service, lookups, payment, submitted=True)


# ============================================
# VERIFICATION
# ============================================

async def verify_payment(
    db: SupabaseQueries,
    user: TokenPayload,
    payment_id: str,
    decision: PaymentVerify,
    email_service: Optional[EmailService] = None
) -> dict:
    """
    Move a pending payment to verified or rejected.

    Raises TransitionConflictError when the payment is no longer pending or,
    for a verification, when its fee has already been paid or the payment
    does not cover the fee amount.
    """
    if user.role not in STAFF_ROLES:
        raise PermissionDeniedError("Accounting staff access required")

    payment = await db.select_by_id("payments", "payment_id", payment_id)
    if not payment:
        raise NotFoundError("Payment not found")

    if payment["payment_status"] != PaymentStatus.PENDING.value:
        raise TransitionConflictError(f"Payment is already {payment['payment_status']}")

    changes = {
        "payment_status": decision.status.value,
        "verified_by": user.sub,
        "verified_at": _utcnow(),
        "notes": _merge_notes(payment.get("notes"), decision.notes),
    }
    pending_only = {"payment_id": payment_id, "payment_status": PaymentStatus.PENDING.value}

    if decision.status == VerificationDecision.REJECTED:
        updated = await db.update_where("payments", pending_only, changes)
        if not updated:
            raise TransitionConflictError("Payment is no longer pending")
    else:
        fee_id = payment["fee_id"]
        fee = await db.select_by_id("fees", "fee_id", fee_id)
        if fee and to_decimal(payment.get("amount_paid")) < to_decimal(fee.get("amount")):
            raise TransitionConflictError("Payment does not cover the fee amount; reject it instead")

        claimed = await db.update_where(
            "fees",
            {"fee_id": fee_id, "status": FeeStatus.OUTSTANDING.value},
            {"status": FeeStatus.PAID.value}
        )
        if not claimed:
            raise TransitionConflictError("Fee has already been paid")

        try:
            updated = await db.update_where("payments", pending_only, changes)
        except DatabaseError as e:
            updated = await _confirm_verified(db, user, payment_id, fee_id, e)
        if not updated:
            await _release_fee(db, fee_id)
            raise TransitionConflictError("Payment is no longer pending")

    payment = updated[0]
    logger.info(f"Payment {payment_id} {decision.status.value} by {user.sub}")

    return await _after_commit(email_service, _Lookups(db), payment, submitted=False)


async def _confirm_verified(
    db: SupabaseQueries,
    user: TokenPayload,
    payment_id: str,
    fee_id: str,
    error: DatabaseError
) -> List[dict]:
    """
    The payment update failed without an answer. Re-read the row: if our
    write landed keep it, otherwise give the fee back and raise `error`.
    """
    current = await db.select_by_id("payments", "payment_id", payment_id)
    if (
        current
        and current["payment_status"] == PaymentStatus.VERIFIED.value
        and current.get("verified_by") == user.sub
    ):
        logger.warning(f"Payment {payment_id} update reported an error but was committed")
        return [current]

    await _release_fee(db, fee_id)
    raise error


async def _release_fee(db: SupabaseQueries, fee_id: str) -> None:
    """Undo a fee claim whose payment transition did not go through"""
    await db.update_where(
        "fees",
        {"fee_id": fee_id, "status": FeeStatus.PAID.value},
        {"status": FeeStatus.OUTSTANDING.value}
    )
    logger.warning(f"Fee {fee_id} returned to outstanding after a failed verification")


# ============================================
# QUERIES
# ============================================

async def get_payment(db: SupabaseQueries, user: TokenPayload, payment_id: str) -> dict:
    payment = await db.select_by_id("payments", "payment_id", payment_id)
    if not payment:
        raise NotFoundError("Payment not found")

    allowed = await get_accessible_student_ids(db, user)
    ensure_student_access(allowed, payment["student_id"])

    return await enrich_payment(payment, _Lookups(db))


async def list_payments(
    db: SupabaseQueries,
    user: TokenPayload,
    status: Optional[PaymentStatus] = None,
    fee_id: Optional[str] = None,
    student_id: Optional[str] = None
) -> List[dict]:
    """
    Payment history visible to the user.

    The pending queue is returned oldest first so verifiers work through it
    in submission order; every other listing is newest first.
    """
    allowed = await get_accessible_student_ids(db, user)
    if allowed is not None and not allowed:
        return []
    if student_id:
        ensure_student_access(allowed, student_id)

    filters = {}
    if status:
        filters["payment_status"] = status.value
    if fee_id:
        filters["fee_id"] = fee_id
    if student_id:
        filters["student_id"] = student_id
    elif allowed is not None and len(allowed) == 1:
        filters["student_id"] = allowed[0]

    oldest_first = status == PaymentStatus.PENDING
    payments = await db.select_all("payments", filters, "payment_date", ascending=oldest_first)

    lookups = _Lookups(db)
    result = []
    for payment in payments:
        if allowed is not None and payment.get("student_id") not in allowed:
            continue
        result.append(await enrich_payment(payment, lookups))
    return result
