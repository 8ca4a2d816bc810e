"""
Domain error types.

Policy errors are raised synchronously by the tier policy and by services,
and mapped to HTTP responses by the exception handlers in main.py.
"""
from typing import Any, Dict, Optional


class AssetTracerError(Exception):
    """Base class for application errors."""

    error_code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error_code, "message": self.message}


class InvalidArgument(AssetTracerError, ValueError):
    """Malformed input to a policy function (always a caller bug)."""

    error_code = "invalid_argument"


class QuotaExceeded(AssetTracerError):
    """Creating another resource would take the organization past its quota."""

    error_code = "quota_exceeded"

    def __init__(
        self,
        tier: str,
        resource: str,
        limit: Any,
        usage: int,
        required_tier: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.tier = tier
        self.resource = resource
        self.limit = limit
        self.usage = usage
        self.required_tier = required_tier
        super().__init__(
            message or f"Quota exceeded for {resource} on the {tier} plan ({usage}/{limit})"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "tier": self.tier,
            "resource": self.resource,
            "limit": self.limit,
            "usage": self.usage,
            "required_tier": self.required_tier,
        })
        return data


class FeatureNotAvailable(AssetTracerError):
    """The organization's tier does not include a feature."""

    error_code = "feature_not_available"

    def __init__(self, tier: str, feature: str, required_tier: Optional[str] = None):
        self.tier = tier
        self.feature = feature
        self.required_tier = required_tier
        hint = f" Upgrade to {required_tier.title()} to unlock it." if required_tier else ""
        super().__init__(f"{feature} is not available on the {tier} plan.{hint}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "tier": self.tier,
            "feature": self.feature,
            "required_tier": self.required_tier,
        })
        return data


class PaymentGatewayError(AssetTracerError):
    """A payment provider call failed or returned an error result."""

    error_code = "payment_gateway_error"

    def __init__(self, message: str, provider_code: Optional[str] = None):
        super().__init__(message)
        self.provider_code = provider_code


class NotificationError(AssetTracerError):
    """Sending a transactional email failed."""

    error_code = "notification_error"
