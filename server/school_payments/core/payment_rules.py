"""
school_payments/core/payment_rules.py
Submission rules checked by the client before sending and by the API on receipt
"""
from decimal import Decimal, InvalidOperation
from typing import Optional, Any

RECEIPT_MAX_SIZE = 5 * 1024 * 1024


def amount_problem(amount: Any) -> Optional[str]:
    """Return a message when amount is not a positive number"""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        return "Amount paid must be a number"
    if not value.is_finite() or value <= 0:
        return "Amount paid must be a positive number"
    return None


def receipt_problem(content_type: Optional[str], size: int, max_size: int = RECEIPT_MAX_SIZE) -> Optional[str]:
    """Return a message when a receipt is not an image or is too large"""
    if not content_type or not content_type.startswith("image/"):
        return "Please upload an image file (JPG, PNG, etc.)"
    if size > max_size:
        return f"Please upload an image smaller than {max_size // (1024 * 1024)}MB"
    return None


def submission_problem(payment_method: str, reference_number: Optional[str], has_receipt: bool) -> Optional[str]:
    """Online payments need a reference number and a receipt image"""
    if payment_method != "online":
        return None
    if not reference_number or not reference_number.strip():
        return "Please enter a reference number"
    if not has_receipt:
        return "Please upload a payment receipt"
    return None
