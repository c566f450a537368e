"""
school_payments/client/api.py
HTTP client for the payments API used by portals and scripts
"""
import mimetypes
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import requests
from school_payments.client.cache import QueryCache, QueryKey, Resource, Topic
from school_payments.core.payment_rules import (
    RECEIPT_MAX_SIZE, amount_problem, receipt_problem, submission_problem
)
import logging

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class PaymentValidationError(ValueError):
    """Submission refused locally; nothing was sent"""


class PaymentsAPIError(Exception):
    """The API answered with an error, or could not be reached"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class ReceiptFile:
    filename: str
    content: bytes
    content_type: Optional[str] = None

    @classmethod
    def from_path(cls, path: str) -> "ReceiptFile":
        with open(path, "rb") as fh:
            content = fh.read()
        content_type, _ = mimetypes.guess_type(path)
        return cls(os.path.basename(path), content, content_type)

    @property
    def size(self) -> int:
        return len(self.content)


class PaymentsClient:
    """
    Talks to the payments API and keeps fetched views in a QueryCache.

    Reads go through the cache; every successful mutation publishes a topic
    that drops the affected views so the next read refetches them. Errors are
    raised once, without retrying.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        cache: Optional[QueryCache] = None,
        timeout: float = 30
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.cache = cache or QueryCache()
        self.timeout = timeout

    # ============================================
    # TRANSPORT
    # ============================================

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        url = f"{self.base_url}{API_PREFIX}{path}"
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"{method} {path} failed: {e}")
            raise PaymentsAPIError(f"Could not reach the payments service: {e}") from e

        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            logger.error(f"{method} {path} returned {response.status_code}: {detail}")
            raise PaymentsAPIError(str(detail), response.status_code)

        return response.json()

    def login(self, email: str, password: str) -> Dict[str, Any]:
        tokens = self._request("POST", "/auth/login", json={"email": email, "password": password})
        self.token = tokens["access_token"]
        self.cache.clear()
        return tokens

    # ============================================
    # READS
    # ============================================

    def fees(self, status: Optional[str] = "outstanding", student_id: Optional[str] = None) -> List[dict]:
        key = QueryKey.of(Resource.FEES, status=status, student_id=student_id)
        params = dict(key.params)
        return self.cache.fetch(key, lambda: self._request("GET", "/fees/", params=params))

    def outstanding_fees(self, student_id: Optional[str] = None) -> List[dict]:
        return self.fees("outstanding", student_id)

    def payments(
        self,
        status: Optional[str] = None,
        fee_id: Optional[str] = None,
        student_id: Optional[str] = None
    ) -> List[dict]:
        key = QueryKey.of(Resource.PAYMENTS, status=status, fee_id=fee_id, student_id=student_id)
        params = dict(key.params)
        return self.cache.fetch(key, lambda: self._request("GET", "/payments/", params=params))

    def pending_payments(self) -> List[dict]:
        return self.payments(status="pending")

    def finance_summary(self) -> Dict[str, Any]:
        key = QueryKey.of(Resource.FINANCE_SUMMARY)
        return self.cache.fetch(key, lambda: self._request("GET", "/dashboard/finance"))

    # ============================================
    # MUTATIONS
    # ============================================

    def submit_payment(
        self,
        fee_id: str,
        amount_paid: Any,
        payment_method: str,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
        receipt: Optional[ReceiptFile] = None,
        student_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Validate locally, then submit. Raises PaymentValidationError before
        any request is made when the form is incomplete.
        """
        problem = (
            amount_problem(amount_paid)
            or submission_problem(payment_method, reference_number, receipt is not None)
            or (receipt and receipt_problem(receipt.content_type, receipt.size, RECEIPT_MAX_SIZE))
        )
        if problem:
            raise PaymentValidationError(problem)

        form = {
            "fee_id": fee_id,
            "amount_paid": str(amount_paid),
            "payment_method": payment_method,
        }
        if student_id:
            form["student_id"] = student_id
        if reference_number:
            form["reference_number"] = reference_number.strip()
        if notes:
            form["notes"] = notes

        files = None
        if receipt is not None:
            files = {"receipt": (receipt.filename, receipt.content, receipt.content_type)}

        payment = self._request("POST", "/payments/", data=form, files=files)
        self.cache.publish(Topic.PAYMENT_SUBMITTED)
        return payment

    def verify_payment(self, payment_id: str, notes: Optional[str] = None) -> Dict[str, Any]:
        return self._decide(payment_id, "verified", notes, Topic.PAYMENT_VERIFIED)

    def reject_payment(self, payment_id: str, notes: Optional[str] = None) -> Dict[str, Any]:
        return self._decide(payment_id, "rejected", notes, Topic.PAYMENT_REJECTED)

    def _decide(self, payment_id: str, status: str, notes: Optional[str], topic: Topic) -> Dict[str, Any]:
        body = {"status": status}
        if notes:
            body["notes"] = notes
        try:
            payment = self._request("PATCH", f"/payments/{payment_id}/verify", json=body)
        except PaymentsAPIError as e:
            # Someone else moved the payment or its fee; cached views are stale
            if e.status_code == 409:
                self.cache.publish(Topic.PAYMENT_CONFLICT)
            raise
        self.cache.publish(topic)
        return payment
