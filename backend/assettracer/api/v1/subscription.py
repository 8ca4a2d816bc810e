"""
Subscription API endpoints.

Plan status, the public plan table, Stripe checkout and webhooks, and plan
changes. The organization's stored tier is what TierPolicy enforces.
"""
import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from ...core.config import settings
from ...core.dependencies import get_current_organization
from ...schemas.auth import OrganizationContext
from ...schemas.subscription import (
    ChangePlanRequest,
    ChangePlanResponse,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    DowngradeRequest,
    DowngradeResponse,
    PlansResponse,
    SubscriptionStatusResponse,
    WebhookResponse,
)
from ...services.subscription_service import list_plans, subscription_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/subscription", tags=["subscription"])

# Per-IP limit for the unauthenticated plan table
limiter = Limiter(key_func=get_remote_address)


@router.get("", response_model=SubscriptionStatusResponse)
async def get_subscription(org: OrganizationContext = Depends(get_current_organization)):
    """Tier, limits and per-resource usage; unlimited values are reported as "unlimited"."""
    return await subscription_service.get_status(org.organization_id)


@router.get("/plans", response_model=PlansResponse)
@limiter.limit(settings.rate_limit_public)
async def get_plans(request: Request):
    """Public plan comparison table. No authentication required."""
    return list_plans()


@router.post("/checkout", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    request: CheckoutSessionRequest,
    org: OrganizationContext = Depends(get_current_organization),
):
    return await subscription_service.create_checkout_session(
        org.organization_id,
        request.tier,
        org.user.email,
        request.success_url,
        request.cancel_url,
    )


@router.post("/webhook", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
):
    """
    Handle Stripe webhook events.

    Processing errors return 5xx so Stripe retries the delivery.
    """
    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe signature",
        )
    if not settings.stripe_webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Billing is not configured",
        )

    try:
        payload = await request.body()
        event = stripe.Webhook.construct_event(
            payload,
            stripe_signature,
            settings.stripe_webhook_secret,
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload",
        )
    except stripe.error.SignatureVerificationError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        )

    try:
        return await subscription_service.handle_webhook_event(event)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"CRITICAL: Failed to process Stripe event {event['type']}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process event",
        )


@router.post("/change-plan", response_model=ChangePlanResponse)
async def change_plan(
    request: ChangePlanRequest,
    org: OrganizationContext = Depends(get_current_organization),
):
    return await subscription_service.change_plan(org.organization_id, request.new_tier)


@router.post("/downgrade", response_model=DowngradeResponse)
async def downgrade(
    request: Optional[DowngradeRequest] = None,
    org: OrganizationContext = Depends(get_current_organization),
):
    """Move to free (default) or pro. Existing data above the new limits is kept."""
    target = request.tier if request else DowngradeRequest().tier
    return await subscription_service.downgrade(org.organization_id, target)
