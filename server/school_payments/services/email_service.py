"""
school_payments/services/email_service.py
Payment notification e-mails using SendGrid
"""
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from school_payments.core.config import settings
import logging

logger = logging.getLogger(__name__)

class EmailService:
    """Email service for payment notifications"""

    def __init__(self):
        if settings.SENDGRID_API_KEY:
            self.sg = SendGridAPIClient(settings.SENDGRID_API_KEY)
        else:
            self.sg = None
            logger.warning("SendGrid API key not configured. Emails will be logged only.")

        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME

    async def send_email(self, to_email: str, subject: str, html_content: str) -> bool:
        """
        Send email via SendGrid

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML content of email

        Returns:
            bool: True if sent successfully, False otherwise
        """
        if not self.sg:
            logger.info(f"[EMAIL] To: {to_email} | Subject: {subject}")
            logger.debug(f"[EMAIL] Content: {html_content}")
            return True

        try:
            message = Mail(
                from_email=(self.from_email, self.from_name),
                to_emails=to_email,
                subject=subject,
                html_content=html_content
            )

            response = self.sg.send(message)
            logger.info(f"Email sent to {to_email}: {response.status_code}")
            return True

        except Exception as e:
            logger.error(f"Email send failed to {to_email}: {e}")
            return False

    async def send_payment_submitted(self, to_email: str, name: str, fee_type: str, payment: dict) -> bool:
        """Acknowledge a payment that is waiting for verification"""
        html_content = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #333;">Payment Received for Verification</h2>
            <p>Dear {name},</p>
            <p>We have received your payment for <strong>{fee_type}</strong>.</p>
            <ul>
                <li>Amount Paid: ₱{payment['amount_paid']}</li>
                <li>Payment Method: {payment['payment_method']}</li>
                <li>Reference Number: {payment.get('reference_number') or 'N/A'}</li>
            </ul>
            <p>The accounting office will verify it shortly. You will be notified once it has been processed.</p>
        </div>
        """
        return await self.send_email(to_email, "Payment Submitted for Verification", html_content)

    async def send_payment_decision(self, to_email: str, name: str, fee_type: str, payment: dict) -> bool:
        """Tell the payer whether their payment was verified or rejected"""
        verified = payment["payment_status"] == "verified"
        if verified:
            subject = "Payment Verified"
            outcome = f"Your payment for <strong>{fee_type}</strong> has been verified. The fee is now marked as paid."
        else:
            subject = "Payment Rejected"
            outcome = (
                f"Your payment for <strong>{fee_type}</strong> could not be verified. "
                "Please contact the accounting office or submit a new payment."
            )

        html_content = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #333;">{subject}</h2>
            <p>Dear {name},</p>
            <p>{outcome}</p>
            <ul>
                <li>Amount Paid: ₱{payment['amount_paid']}</li>
                <li>Reference Number: {payment.get('reference_number') or 'N/A'}</li>
                <li>Notes: {payment.get('notes') or 'None'}</li>
            </ul>
            <hr style="border: none; border-top: 1px solid #ddd; margin: 20px 0;">
            <p style="color: #666; font-size: 12px;">
                This is an automated email from {settings.PROJECT_NAME}. Please do not reply.
            </p>
        </div>
        """
        return await self.send_email(to_email, subject, html_content)
