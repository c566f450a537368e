from decimal import Decimal
from unittest import TestCase

from support import (
    ACCOUNTING, OTHER_STUDENT, PNG, PRINCIPAL, STUDENT, ApiTestMixin, auth_header, pending_payment
)

PAYMENTS = "/api/v1/payments/"


class SubmitPaymentApiTests(ApiTestMixin, TestCase):

    def post_payment(self, who=STUDENT, files=None, **form):
        data = {"fee_id": "f-1", "amount_paid": "500", "payment_method": "online", "reference_number": "GC-1001"}
        data.update(form)
        data = {k: v for k, v in data.items() if v is not None}
        return self.client.post(PAYMENTS, data=data, files=files, headers=auth_header(who))

    def receipt(self, content=PNG, content_type="image/png", name="gcash.png"):
        return {"receipt": (name, content, content_type)}

    def test_student_submits_online_payment_with_receipt(self):
        response = self.post_payment(files=self.receipt(), notes="June tuition")

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["payment_status"], "pending")
        self.assertEqual(body["payment_method"], "online")
        self.assertEqual(Decimal(body["amount_paid"]), Decimal("500"))
        self.assertEqual(body["reference_number"], "GC-1001")
        self.assertEqual(body["notes"], "June tuition")
        self.assertEqual(body["student_name"], "Ana Cruz")
        self.assertTrue(body["receipt_url"].startswith("https://files.test/receipts/s-1/"))
        self.assertEqual(self.db.row("fees", "f-1")["status"], "outstanding")
        self.assertEqual(len(self.email.sent), 1)

    def test_online_without_receipt_is_bad_request(self):
        response = self.post_payment()
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Please upload a payment receipt")
        self.assertEqual(self.db.rows("payments", fee_id="f-1"), [])

    def test_online_without_reference_is_bad_request(self):
        response = self.post_payment(files=self.receipt(), reference_number=None)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Please enter a reference number")

    def test_non_image_receipt_is_bad_request(self):
        response = self.post_payment(files=self.receipt(b"%PDF-1.7", "application/pdf", "receipt.pdf"))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.storage.files, {})

    def test_oversized_receipt_is_bad_request(self):
        big = b"\x00" * (5 * 1024 * 1024 + 10)
        response = self.post_payment(files=self.receipt(big))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Please upload an image smaller than 5MB")

    def test_non_positive_amount_fails_validation(self):
        for amount in ("0", "-20", "abc"):
            response = self.post_payment(files=self.receipt(), amount_paid=amount)
            self.assertEqual(response.status_code, 422, amount)
        self.assertEqual(self.db.rows("payments", fee_id="f-1"), [])

    def test_missing_fee_is_not_found(self):
        response = self.post_payment(files=self.receipt(), fee_id="f-missing")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(len(self.db.rows("payments")), 1)

    def test_paid_fee_is_conflict(self):
        response = self.post_payment(files=self.receipt(), fee_id="f-4", amount_paid="200")
        self.assertEqual(response.status_code, 409)

    def test_overpayment_is_bad_request(self):
        response = self.post_payment(files=self.receipt(), amount_paid="600")
        self.assertEqual(response.status_code, 400)

    def test_partial_amount_is_bad_request(self):
        response = self.post_payment(files=self.receipt(), amount_paid="1.00")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.db.rows("payments", fee_id="f-1"), [])

    def test_student_cannot_record_cash(self):
        response = self.post_payment(payment_method="cash", reference_number=None)
        self.assertEqual(response.status_code, 403)

    def test_student_cannot_pay_another_students_fee(self):
        response = self.post_payment(who=OTHER_STUDENT, files=self.receipt())
        self.assertEqual(response.status_code, 403)

    def test_accounting_records_promissory_note_without_receipt(self):
        response = self.post_payment(
            who=ACCOUNTING, payment_method="promissory_note", reference_number=None
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["recorded_by"], "u-accounting")

    def test_requires_authentication(self):
        response = self.client.post(PAYMENTS, data={"fee_id": "f-1", "amount_paid": "500", "payment_method": "online"})
        self.assertIn(response.status_code, (401, 403))


class VerifyPaymentApiTests(ApiTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.db.seed(
            "payments",
            pending_payment("pay-late", "f-1", "s-1", "500.00", "2026-06-03T08:00:00+00:00"),
            pending_payment("pay-early", "f-2", "s-1", "150.00", "2026-06-01T08:00:00+00:00"),
        )

    def verify(self, payment_id, status, who=ACCOUNTING, notes=None):
        body = {"status": status}
        if notes:
            body["notes"] = notes
        return self.client.patch(f"{PAYMENTS}{payment_id}/verify", json=body, headers=auth_header(who))

    def test_pending_queue_is_oldest_first(self):
        response = self.client.get(PAYMENTS, params={"status": "pending"}, headers=auth_header(ACCOUNTING))
        self.assertEqual(response.status_code, 200)
        self.assertEqual([p["payment_id"] for p in response.json()], ["pay-early", "pay-late"])

    def test_verify_marks_fee_paid(self):
        response = self.verify("pay-late", "verified", notes="Matched bank statement")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["payment_status"], "verified")
        self.assertEqual(body["verified_by"], "u-accounting")
        self.assertEqual(body["notes"], "Verifier: Matched bank statement")
        self.assertEqual(self.db.row("fees", "f-1")["status"], "paid")

        queue = self.client.get(PAYMENTS, params={"status": "pending"}, headers=auth_header(ACCOUNTING)).json()
        self.assertEqual([p["payment_id"] for p in queue], ["pay-early"])

    def test_repeat_verification_is_conflict(self):
        self.assertEqual(self.verify("pay-late", "verified").status_code, 200)
        self.assertEqual(self.verify("pay-late", "verified").status_code, 409)
        self.assertEqual(self.verify("pay-late", "rejected").status_code, 409)

    def test_reject_leaves_fee_outstanding(self):
        response = self.verify("pay-early", "rejected")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.db.row("fees", "f-2")["status"], "outstanding")

    def test_pending_is_not_a_valid_target(self):
        self.assertEqual(self.verify("pay-late", "pending").status_code, 422)

    def test_payers_and_principal_cannot_verify(self):
        for who in (STUDENT, PRINCIPAL):
            self.assertEqual(self.verify("pay-late", "verified", who=who).status_code, 403)
        self.assertEqual(self.db.row("payments", "pay-late")["payment_status"], "pending")

    def test_unknown_payment_is_not_found(self):
        self.assertEqual(self.verify("pay-missing", "verified").status_code, 404)

    def test_verify_succeeds_when_student_lookup_fails_afterwards(self):
        self.db.failing_tables.add("students")

        response = self.verify("pay-late", "verified")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["payment_status"], "verified")
        self.assertIsNone(response.json()["student_name"])
        self.assertEqual(self.db.row("fees", "f-1")["status"], "paid")

    def test_student_reads_own_payment_but_not_others(self):
        self.db.seed("payments", pending_payment("pay-ben", "f-3", "s-2", "800.00", "2026-06-02T08:00:00+00:00"))

        own = self.client.get(f"{PAYMENTS}pay-late", headers=auth_header(STUDENT))
        self.assertEqual(own.status_code, 200)
        self.assertEqual(own.json()["fee_type"], "Tuition")

        other = self.client.get(f"{PAYMENTS}pay-ben", headers=auth_header(STUDENT))
        self.assertEqual(other.status_code, 403)

        history = self.client.get(PAYMENTS, headers=auth_header(STUDENT)).json()
        self.assertEqual({p["student_id"] for p in history}, {"s-1"})
