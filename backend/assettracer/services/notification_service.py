"""
Notification Service - transactional email through SendGrid.

Templates are rendered in-process as small HTML snippets; SendGrid only
delivers. Failures raise NotificationError so callers decide whether an
email is critical to the operation.
"""
import base64
import html
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Attachment, Disposition, Email, FileContent, FileName, FileType, Mail, To

from ..core.config import settings
from ..core.errors import NotificationError


logger = logging.getLogger(__name__)


def _layout(title: str, body: str) -> str:
    year = datetime.now(timezone.utc).year
    return (
        "<div style=\"font-family:Arial,sans-serif;max-width:600px;margin:0 auto\">"
        f"<h2 style=\"color:#7c3aed\">{html.escape(title)}</h2>"
        f"{body}"
        f"<p style=\"color:#888;font-size:12px\">&copy; {year} AssetTracer</p>"
        "</div>"
    )


def _money(amount: float, currency: str) -> str:
    return f"{currency} {amount:,.2f}"


class NotificationService:
    """Sends templated transactional email."""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key
        self._client = None

    @property
    def client(self) -> SendGridAPIClient:
        """Lazy-load SendGrid client."""
        if self._client is None:
            api_key = self.api_key or settings.sendgrid_api_key
            if not api_key:
                raise NotificationError("SENDGRID_API_KEY not configured")
            self._client = SendGridAPIClient(api_key)
        return self._client

    async def send(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        """
        Deliver one email.

        attachments: dicts with filename, content (bytes) and mime_type.
        """
        message = Mail(
            from_email=Email(settings.email_from, settings.email_from_name),
            to_emails=To(to_email),
            subject=subject,
            html_content=html_content,
        )
        for attachment in attachments or []:
            message.add_attachment(Attachment(
                FileContent(base64.b64encode(attachment["content"]).decode()),
                FileName(attachment["filename"]),
                FileType(attachment.get("mime_type", "application/pdf")),
                Disposition("attachment"),
            ))

        try:
            response = self.client.send(message)
        except NotificationError:
            raise
        except Exception as e:
            logger.error(f"SendGrid error: to={to_email}, subject={subject!r}, error={e}")
            raise NotificationError(f"Failed to send email: {e}")

        if response.status_code not in (200, 201, 202):
            logger.warning(f"SendGrid failed: to={to_email}, status={response.status_code}")
            raise NotificationError(f"Email provider returned status {response.status_code}")

        logger.info(f"Email sent: to={to_email}, subject={subject!r}")

    # =========================================================================
    # Convenience Methods
    # =========================================================================

    async def send_test_email(self, to_email: str) -> None:
        body = "<p>This is a test email from AssetTracer. Your email notifications are working.</p>"
        await self.send(to_email, "AssetTracer test email", _layout("Email notifications are working", body))

    async def send_invoice_reminder(
        self,
        to_email: str,
        client_name: str,
        organization_name: str,
        invoice_number: str,
        balance: float,
        currency: str,
        due_date: date,
        days_overdue: int,
        pdf: Optional[bytes] = None,
    ) -> None:
        """Reminder for an overdue invoice, with the invoice PDF attached when given."""
        body = (
            f"<p>Dear {html.escape(client_name)},</p>"
            f"<p>This is a friendly reminder that invoice <strong>{html.escape(invoice_number)}</strong> "
            f"from {html.escape(organization_name)} for <strong>{_money(balance, currency)}</strong> "
            f"was due on {due_date.isoformat()} and is now {days_overdue} day(s) overdue.</p>"
            "<p>If you have already paid, please disregard this message.</p>"
        )
        attachments = None
        if pdf:
            attachments = [{"filename": f"{invoice_number}.pdf", "content": pdf, "mime_type": "application/pdf"}]
        await self.send(
            to_email,
            f"Payment reminder: invoice {invoice_number} is overdue",
            _layout("Payment reminder", body),
            attachments,
        )

    async def send_team_invitation(
        self,
        to_email: str,
        organization_name: str,
        inviter_name: str,
        invite_link: str,
        role: str,
    ) -> None:
        body = (
            f"<p>{html.escape(inviter_name)} invited you to join <strong>{html.escape(organization_name)}</strong> "
            f"on AssetTracer as a {html.escape(role)}.</p>"
            f"<p><a href=\"{html.escape(invite_link, quote=True)}\">Accept invitation</a></p>"
            "<p>This invitation expires in 7 days.</p>"
        )
        await self.send(
            to_email,
            f"You've been invited to join {organization_name} on AssetTracer",
            _layout("You're invited", body),
        )

    async def send_weekly_report(self, to_email: str, organization_name: str, summary: Dict[str, Any]) -> None:
        rows = "".join(
            f"<tr><td>{html.escape(str(label))}</td><td style=\"text-align:right\">{html.escape(str(value))}</td></tr>"
            for label, value in summary.items()
        )
        body = f"<p>Here is this week's summary for {html.escape(organization_name)}.</p><table>{rows}</table>"
        await self.send(to_email, f"Weekly report for {organization_name}", _layout("Weekly report", body))


# Global notification service instance
notification_service = NotificationService()
