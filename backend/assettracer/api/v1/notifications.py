"""
Notification API endpoints.

The cron routes are called by the scheduler with the CRON_SECRET bearer and
only process business-tier organizations.
"""
import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...core.config import settings
from ...core.dependencies import get_current_user
from ...core.errors import NotificationError
from ...core.tier_limits import SubscriptionTier, normalize_tier
from ...dependencies.rate_limit import EndpointRateLimiter, RateLimitRule
from ...schemas.auth import UserResponse
from ...services.billing_service import billing_service
from ...services.document_renderer import document_renderer
from ...services.notification_service import notification_service
from ...services.persistence import persistence
from ...services.report_service import report_service
from ...services.team_service import team_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/notifications", tags=["notifications"])

cron_bearer = HTTPBearer(auto_error=False)

REPORT_RECIPIENT_ROLES = ("owner", "admin")

test_email_limit = EndpointRateLimiter(RateLimitRule(3, 3600), scope="test-email")


async def verify_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(cron_bearer),
) -> None:
    if not settings.cron_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduled notifications are not configured"
        )
    if not credentials or not hmac.compare_digest(credentials.credentials, settings.cron_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )


async def business_organizations() -> List[Dict[str, Any]]:
    """Business-tier organizations that have not switched email notifications off."""
    organizations = await persistence.list_organizations(
        "id, name, subscription_tier, email_notifications_enabled"
    )
    return [
        org for org in organizations
        if normalize_tier(org.get("subscription_tier")) == SubscriptionTier.BUSINESS
        and org.get("email_notifications_enabled") is not False
    ]


@router.post("/test-email", dependencies=[Depends(test_email_limit)])
async def send_test_email(current_user: UserResponse = Depends(get_current_user)):
    await notification_service.send_test_email(current_user.email)
    return {"message": f"Test email sent to {current_user.email}"}


@router.post("/cron/invoice-reminders", dependencies=[Depends(verify_cron_secret)])
async def send_invoice_reminders():
    """Email each client with an overdue balance, attaching the invoice PDF."""
    organizations = await business_organizations()
    today = datetime.now(timezone.utc).date()
    sent = 0
    failed = 0

    for org in organizations:
        full_org = await persistence.get_organization(org["id"]) or org
        for invoice in await billing_service.list_overdue_invoices(org["id"], today):
            try:
                client = await billing_service.get_client(org["id"], invoice.client_id)
                pdf = document_renderer.render_invoice(invoice, client, full_org)
                await notification_service.send_invoice_reminder(
                    to_email=client["email"],
                    client_name=client.get("name") or "Customer",
                    organization_name=org.get("name") or "",
                    invoice_number=invoice.invoice_number,
                    balance=invoice.balance,
                    currency=invoice.currency,
                    due_date=invoice.due_date,
                    days_overdue=(today - invoice.due_date).days,
                    pdf=pdf,
                )
                sent += 1
            except (HTTPException, NotificationError) as e:
                failed += 1
                logger.warning(f"Invoice reminder failed for {invoice.invoice_number}: {e}")

    logger.info(f"Invoice reminders: {sent} sent, {failed} failed across {len(organizations)} organizations")
    return {"message": "Invoice reminders processed", "sent": sent, "failed": failed, "organizations": len(organizations)}


@router.post("/cron/weekly-reports", dependencies=[Depends(verify_cron_secret)])
async def send_weekly_reports():
    """Weekly summary to each owner and admin."""
    organizations = await business_organizations()
    sent = 0
    failed = 0

    for org in organizations:
        summary = await report_service.weekly_summary(org["id"])
        members = await team_service.list_members(org["id"])
        for member in members:
            if member.role.value not in REPORT_RECIPIENT_ROLES:
                continue
            try:
                await notification_service.send_weekly_report(member.email, org.get("name") or "", summary)
                sent += 1
            except NotificationError as e:
                failed += 1
                logger.warning(f"Weekly report to {member.email} failed: {e}")

    logger.info(f"Weekly reports: {sent} sent, {failed} failed across {len(organizations)} organizations")
    return {"message": "Weekly reports processed", "sent": sent, "failed": failed, "organizations": len(organizations)}
