"""
Pydantic schemas for subscription and plan endpoints.
"""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..core.tier_limits import SubscriptionTier


class CheckoutSessionRequest(BaseModel):
    """Request to start a Stripe checkout for a paid plan."""
    tier: SubscriptionTier
    success_url: str
    cancel_url: str

    @field_validator("tier")
    @classmethod
    def paid_tier_only(cls, v: SubscriptionTier) -> SubscriptionTier:
        if v == SubscriptionTier.FREE:
            raise ValueError("Checkout is only available for the pro and business plans")
        return v


class CheckoutSessionResponse(BaseModel):
    checkout_url: str
    session_id: str


class ChangePlanRequest(BaseModel):
    new_tier: SubscriptionTier

    @field_validator("new_tier")
    @classmethod
    def paid_tier_only(cls, v: SubscriptionTier) -> SubscriptionTier:
        if v == SubscriptionTier.FREE:
            raise ValueError('Invalid tier. Must be "pro" or "business"')
        return v


class ChangePlanResponse(BaseModel):
    success: bool
    message: str
    current_tier: SubscriptionTier
    new_tier: SubscriptionTier
    requires_checkout: bool = False


class DowngradeRequest(BaseModel):
    tier: SubscriptionTier = SubscriptionTier.FREE

    @field_validator("tier")
    @classmethod
    def not_business(cls, v: SubscriptionTier) -> SubscriptionTier:
        if v == SubscriptionTier.BUSINESS:
            raise ValueError("Downgrade target must be free or pro")
        return v


class DowngradeResponse(BaseModel):
    success: bool
    tier: SubscriptionTier
    message: str


class QuotaUsage(BaseModel):
    """Usage of one quota resource; limit and remaining may be "unlimited"."""
    resource: str
    usage: int
    allowed: bool
    limit: Union[int, str]
    remaining: Union[int, str]


class SubscriptionStatusResponse(BaseModel):
    tier: SubscriptionTier
    tier_label: str
    is_paid: bool
    subscription_status: Optional[str] = None
    limits: Dict[str, Any]
    usage: List[QuotaUsage] = Field(default_factory=list)


class PlanInfo(BaseModel):
    tier: SubscriptionTier
    label: str
    limits: Dict[str, Any]


class PlansResponse(BaseModel):
    plans: List[PlanInfo]


class WebhookResponse(BaseModel):
    """Response from webhook processing."""
    status: str
    message: str
