"""
Email Service

Transactional email through the Resend HTTP API (httpx).

Without RESEND_API_KEY delivery is skipped and logged, so local setups
can create invitations without an email provider. Callers that need
all-or-nothing behaviour raise on a failed send and roll back.
"""
from typing import List, Optional, Tuple
from html import escape
import base64
import logging

import httpx

from crux.config import get_settings

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"


class EmailService:
    """Sends HTML email. Returns (success, error_message, message_id)."""

    def __init__(self, api_key: str = None, sender: str = None, transport: httpx.BaseTransport = None):
        settings = get_settings()
        self.api_key = settings.RESEND_API_KEY if api_key is None else api_key
        self.sender = sender or settings.EMAIL_FROM
        self.timeout = settings.EMAIL_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def send(
        self,
        to_email: str,
        subject: str,
        html: str,
        attachments: Optional[List[dict]] = None,
        reply_to: Optional[str] = None,
    ) -> Tuple[bool, Optional[str], Optional[str]]:
        if not self.enabled:
            logger.warning(f"Email delivery disabled (no RESEND_API_KEY); skipped '{subject}' to {to_email}")
            return True, None, None

        payload = {
            "from": self.sender,
            "to": [to_email],
            "subject": subject,
            "html": html,
        }
        if attachments:
            payload["attachments"] = attachments
        if reply_to:
            payload["reply_to"] = reply_to

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(RESEND_SEND_URL, headers=headers, json=payload)
        except httpx.TimeoutException:
            return False, "Connection timeout", None
        except httpx.HTTPError as e:
            logger.exception("Resend connection error")
            return False, f"Connection error: {e.__class__.__name__}", None

        if 200 <= response.status_code < 300:
            message_id = response.json().get("id")
            logger.info(f"Email sent to {to_email} (id={message_id})")
            return True, None, message_id

        error_detail = None
        try:
            data = response.json()
            if isinstance(data, dict):
                error_detail = data.get("message") or data.get("error")
        except ValueError:
            pass

        error_msg = f"Resend API error: {response.status_code}"
        if error_detail:
            error_msg = f"{error_msg} ({error_detail})"
        logger.warning(f"Email to {to_email} failed: {error_msg}")
        return False, error_msg, None

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def send_invitation(self, invitation, tenant_name: str, accept_url: str):
        settings = get_settings()
        subject = f"You're invited to join {tenant_name} on {settings.APP_NAME}"
        html = (
            f"<h2>You're invited to {escape(tenant_name)}</h2>"
            f"<p>You have been invited as <strong>{escape(invitation.role.replace('_', ' '))}</strong>.</p>"
            f'<p><a href="{escape(accept_url)}">Accept invitation</a></p>'
            f"<p>This invitation expires on {invitation.expires_at:%B %d, %Y}.</p>"
        )
        return self.send(invitation.email, subject, html)

    def send_invoice(self, invoice, pdf_bytes: bytes, business_name: str = ""):
        subject = f"Invoice {invoice.invoice_number} - {invoice.currency} {float(invoice.total):.2f}"
        sender_line = f" from {escape(business_name)}" if business_name else ""
        html = (
            f"<h2>Invoice {escape(invoice.invoice_number)}</h2>"
            f"<p>Dear {escape(invoice.customer_name)},</p>"
            f"<p>Please find attached your invoice{sender_line}.</p>"
            f"<p><strong>Amount due:</strong> {invoice.currency} {float(invoice.total):.2f}</p>"
            + (f"<p><strong>Due date:</strong> {invoice.due_date:%B %d, %Y}</p>" if invoice.due_date else "")
        )
        attachments = [
            {
                "filename": f"invoice-{invoice.invoice_number}.pdf",
                "content": base64.b64encode(pdf_bytes).decode("ascii"),
            }
        ]
        return self.send(invoice.customer_email, subject, html, attachments=attachments)

    def send_review_request(self, to_email: str, customer_name: str, business_name: str, review_url: str):
        subject = f"We'd love your feedback! - {business_name}"
        html = (
            f"<h2>Hi {escape(customer_name or 'there')},</h2>"
            f"<p>Thank you for choosing {escape(business_name)}. How did we do?</p>"
            f'<p><a href="{escape(review_url)}">Leave a review</a></p>'
            f"<p>It only takes a minute.</p>"
        )
        return self.send(to_email, subject, html)
