"""
Subscription Service - plan changes through Stripe.

The organization's subscription_tier column is the single source of truth
for TierPolicy. Stripe webhooks and the operator CLI are the only writers
besides the downgrade and change-plan endpoints.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe
from fastapi import HTTPException, status

from ..core.config import settings
from ..core.errors import PaymentGatewayError
from ..core.tier_limits import TIER_ORDER, SubscriptionTier, is_paid_tier, normalize_tier, resolve_limits
from ..dependencies.tier_check import get_quota_status
from ..schemas.subscription import (
    ChangePlanResponse,
    CheckoutSessionResponse,
    DowngradeResponse,
    PlanInfo,
    PlansResponse,
    QuotaUsage,
    SubscriptionStatusResponse,
    WebhookResponse,
)
from .persistence import persistence


logger = logging.getLogger(__name__)

# Cleared when an organization returns to free
BILLING_FIELDS = (
    "stripe_customer_id",
    "stripe_subscription_id",
    "stripe_price_id",
    "subscription_start_date",
    "subscription_end_date",
)


def list_plans() -> PlansResponse:
    return PlansResponse(plans=[
        PlanInfo(tier=tier, label=tier.label, limits=resolve_limits(tier).to_dict())
        for tier in TIER_ORDER
    ])


def price_for_tier(tier: SubscriptionTier) -> str:
    price = {
        SubscriptionTier.PRO: settings.stripe_price_pro,
        SubscriptionTier.BUSINESS: settings.stripe_price_business,
    }.get(tier)
    if not price:
        raise PaymentGatewayError(f"No Stripe price configured for the {tier.value} plan", provider_code="NOT_CONFIGURED")
    return price


def tier_for_price(price_id: Optional[str]) -> Optional[SubscriptionTier]:
    if price_id and price_id == settings.stripe_price_pro:
        return SubscriptionTier.PRO
    if price_id and price_id == settings.stripe_price_business:
        return SubscriptionTier.BUSINESS
    return None


class SubscriptionService:
    """Reads and changes an organization's subscription."""

    def __init__(self):
        self.db = persistence

    def _configure_stripe(self) -> None:
        if not settings.stripe_secret_key:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Billing is not configured"
            )
        stripe.api_key = settings.stripe_secret_key

    async def _get_organization(self, organization_id: str) -> Dict[str, Any]:
        organization = await self.db.get_organization(organization_id)
        if not organization:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Organization not found"
            )
        return organization

    async def get_status(self, organization_id: str) -> SubscriptionStatusResponse:
        organization = await self._get_organization(organization_id)
        tier, usage = await get_quota_status(organization_id)
        return SubscriptionStatusResponse(
            tier=tier,
            tier_label=tier.label,
            is_paid=is_paid_tier(tier),
            subscription_status=organization.get("subscription_status"),
            limits=resolve_limits(tier).to_dict(),
            usage=[QuotaUsage(**row) for row in usage],
        )

    async def set_tier(
        self,
        organization_id: str,
        tier: SubscriptionTier,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Write the tier. Moving to free clears the billing identifiers."""
        changes: Dict[str, Any] = {
            "subscription_tier": tier.value,
            "subscription_status": "active" if is_paid_tier(tier) else "inactive",
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        if tier == SubscriptionTier.FREE:
            changes.update({field: None for field in BILLING_FIELDS})
        else:
            changes["subscription_start_date"] = datetime.now(timezone.utc).isoformat()
        changes.update(extra or {})

        row = await self.db.update_organization(organization_id, changes)
        if not row:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Organization not found"
            )
        logger.info(f"Organization {organization_id} moved to {tier.value} plan")
        return row

    # ================================================================
    # Stripe checkout and webhooks
    # ================================================================

    async def create_checkout_session(
        self,
        organization_id: str,
        tier: SubscriptionTier,
        customer_email: str,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSessionResponse:
        organization = await self._get_organization(organization_id)
        current = normalize_tier(organization.get("subscription_tier"))
        if current == tier:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"You are already on the {tier.value} plan"
            )

        self._configure_stripe()
        price = price_for_tier(tier)
        try:
            session = stripe.checkout.Session.create(
                mode="subscription",
                line_items=[{"price": price, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=customer_email,
                client_reference_id=organization_id,
                metadata={"organization_id": organization_id, "tier": tier.value},
                billing_address_collection="auto",
            )
        except stripe.error.StripeError as e:
            logger.error(f"Stripe checkout failed for organization {organization_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Could not start checkout"
            )

        return CheckoutSessionResponse(checkout_url=session.url, session_id=session.id)

    async def handle_webhook_event(self, event: Dict[str, Any]) -> WebhookResponse:
        """
        Apply a verified Stripe event.

        Errors propagate so the endpoint returns 5xx and Stripe retries.
        """
        event_type = event["type"]
        obj = event["data"]["object"]

        if event_type == "checkout.session.completed":
            metadata = obj.get("metadata") or {}
            organization_id = metadata.get("organization_id") or obj.get("client_reference_id")
            if not organization_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="No organization_id in session metadata"
                )
            tier = normalize_tier(metadata.get("tier"))
            if tier == SubscriptionTier.FREE:
                return WebhookResponse(status="ignored", message="Checkout without a paid tier")

            await self.set_tier(organization_id, tier, {
                "stripe_customer_id": obj.get("customer"),
                "stripe_subscription_id": obj.get("subscription"),
                "stripe_price_id": price_for_tier(tier),
            })
            return WebhookResponse(status="success", message=f"Organization {organization_id} upgraded to {tier.value}")

        if event_type in ("customer.subscription.updated", "customer.subscription.deleted"):
            organization = await self.db.find_unscoped("organizations", "stripe_subscription_id", obj.get("id"))
            if not organization:
                logger.warning(f"Stripe {event_type} for unknown subscription {obj.get('id')}")
                return WebhookResponse(status="ignored", message="Unknown subscription")

            if event_type == "customer.subscription.deleted" or obj.get("status") in ("canceled", "unpaid"):
                await self.set_tier(organization["id"], SubscriptionTier.FREE)
                return WebhookResponse(status="success", message=f"Organization {organization['id']} moved to free")

            items = (obj.get("items") or {}).get("data") or []
            price_id = items[0]["price"]["id"] if items else None
            tier = tier_for_price(price_id)
            if tier:
                await self.set_tier(organization["id"], tier, {"stripe_price_id": price_id})
            else:
                await self.db.update_organization(organization["id"], {"subscription_status": obj.get("status")})
            return WebhookResponse(status="success", message="Subscription updated")

        return WebhookResponse(status="ignored", message=f"Unhandled event type: {event_type}")

    # ================================================================
    # Plan changes
    # ================================================================

    async def _switch_price(self, subscription_id: str, price: str) -> None:
        self._configure_stripe()
        try:
            subscription = stripe.Subscription.retrieve(subscription_id)
            item_id = subscription["items"]["data"][0]["id"]
            stripe.Subscription.modify(
                subscription_id,
                items=[{"id": item_id, "price": price}],
                proration_behavior="create_prorations",
            )
        except stripe.error.StripeError as e:
            logger.error(f"Stripe plan change failed for subscription {subscription_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Could not change the subscription"
            )

    async def change_plan(self, organization_id: str, new_tier: SubscriptionTier) -> ChangePlanResponse:
        """Switch between paid tiers. Without a subscription the client must check out first."""
        organization = await self._get_organization(organization_id)
        current = normalize_tier(organization.get("subscription_tier"))
        if current == new_tier:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"You are already on the {new_tier.value} plan"
            )

        subscription_id = organization.get("stripe_subscription_id")
        if not subscription_id:
            return ChangePlanResponse(
                success=True,
                message="You can proceed with checkout for the new plan",
                current_tier=current,
                new_tier=new_tier,
                requires_checkout=True,
            )

        price = price_for_tier(new_tier)
        await self._switch_price(subscription_id, price)
        await self.set_tier(organization_id, new_tier, {"stripe_price_id": price})
        return ChangePlanResponse(
            success=True,
            message=f"Switched to the {new_tier.label} plan",
            current_tier=current,
            new_tier=new_tier,
        )

    async def downgrade(self, organization_id: str, tier: SubscriptionTier = SubscriptionTier.FREE) -> DowngradeResponse:
        """
        Move to free or pro.

        Data above the new limits is kept; only further creation is blocked.
        """
        organization = await self._get_organization(organization_id)
        subscription_id = organization.get("stripe_subscription_id")

        if tier == SubscriptionTier.FREE:
            if subscription_id:
                self._configure_stripe()
                try:
                    stripe.Subscription.cancel(subscription_id)
                except stripe.error.StripeError as e:
                    logger.error(f"Stripe cancel failed for subscription {subscription_id}: {e}")
                    raise HTTPException(
                        status_code=status.HTTP_502_BAD_GATEWAY,
                        detail="Failed to cancel subscription"
                    )
            await self.set_tier(organization_id, tier)
        else:
            extra = {}
            if subscription_id:
                price = price_for_tier(tier)
                await self._switch_price(subscription_id, price)
                extra["stripe_price_id"] = price
            await self.set_tier(organization_id, tier, extra)

        return DowngradeResponse(
            success=True,
            tier=tier,
            message=f"Successfully downgraded to {tier.value} plan",
        )


# Global subscription service instance
subscription_service = SubscriptionService()
