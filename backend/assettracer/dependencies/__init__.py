"""
Dependencies module for FastAPI dependency injection.
"""

from .tier_check import (
    get_organization_tier,
    get_usage,
    get_quota_status,
    enforce_organization_quota,
    create_within_quota,
    FeatureGate,
    get_organization_with_tier,
)

from .rate_limit import (
    EndpointRateLimiter,
    RateLimitRule,
    check_rate_limit,
    get_rate_limit_key,
)

__all__ = [
    # Tier checking
    "get_organization_tier",
    "get_usage",
    "get_quota_status",
    "enforce_organization_quota",
    "create_within_quota",
    "FeatureGate",
    "get_organization_with_tier",
    # Rate limiting
    "EndpointRateLimiter",
    "RateLimitRule",
    "check_rate_limit",
    "get_rate_limit_key",
]
