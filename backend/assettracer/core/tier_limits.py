"""
Subscription tier configuration and quota policy.

Defines the static limits table for the free, pro and business plans and the
pure functions every protected operation uses to gate features and quotas.
Nothing here performs I/O; usage counts are supplied by the caller.
"""
from dataclasses import dataclass, field, fields
from enum import Enum
from functools import total_ordering
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from .errors import FeatureNotAvailable, InvalidArgument, QuotaExceeded


class SubscriptionTier(str, Enum):
    """Subscription plans, ordered free < pro < business."""
    FREE = "free"
    PRO = "pro"
    BUSINESS = "business"

    @property
    def label(self) -> str:
        return self.value.title()


TIER_ORDER = (SubscriptionTier.FREE, SubscriptionTier.PRO, SubscriptionTier.BUSINESS)


class QuotaResource(str, Enum):
    """Resource kinds that carry a count quota."""
    MAX_ASSETS = "maxAssets"
    MAX_INVENTORY_ITEMS = "maxInventoryItems"
    MAX_INVOICES_PER_MONTH = "maxInvoicesPerMonth"
    MAX_QUOTATIONS_PER_MONTH = "maxQuotationsPerMonth"
    MAX_RESERVATIONS_PER_MONTH = "maxReservationsPerMonth"
    MAX_USERS = "maxUsers"

    @property
    def is_monthly(self) -> bool:
        """Monthly quotas count rows created since the first of the month (UTC)."""
        return self.value.endswith("PerMonth")


class Feature(str, Enum):
    """Boolean capability flags."""
    HAS_ADVANCED_REPORTING = "hasAdvancedReporting"
    HAS_PDF_EXPORT = "hasPDFExport"
    HAS_CSV_EXPORT = "hasCSVExport"
    HAS_PAYMENT_INTEGRATION = "hasPaymentIntegration"
    HAS_CUSTOM_BRANDING = "hasCustomBranding"
    HAS_ROI_TRACKING = "hasROITracking"
    HAS_MONTHLY_CHARTS = "hasMonthlyCharts"
    HAS_TOP_PERFORMERS_CHART = "hasTopPerformersChart"
    HAS_GROWTH_METRICS = "hasGrowthMetrics"
    HAS_DATE_RANGE_FILTER = "hasDateRangeFilter"
    HAS_KIT_RESERVATIONS = "hasKitReservations"
    HAS_CONFLICT_OVERRIDE = "hasConflictOverride"
    HAS_LOCATION_RESERVATIONS = "hasLocationReservations"


@total_ordering
@dataclass(frozen=True)
class Limit:
    """
    A quota ceiling: either a finite non-negative count or unlimited.

    Unlimited is an explicit tag, never float('inf'), so arithmetic such as
    remaining capacity cannot silently produce infinities or NaN.
    """
    count: int = 0
    unlimited: bool = False

    def __post_init__(self):
        if not self.unlimited and (isinstance(self.count, bool) or not isinstance(self.count, int) or self.count < 0):
            raise InvalidArgument(f"Limit count must be a non-negative integer, got {self.count!r}")

    @classmethod
    def of(cls, count: int) -> "Limit":
        return cls(count=count)

    @property
    def is_unlimited(self) -> bool:
        return self.unlimited

    def allows(self, usage: int, requested: int = 1) -> bool:
        """True if `requested` more can be created on top of `usage`."""
        if self.unlimited:
            return True
        return usage + requested <= self.count

    def remaining(self, usage: int) -> "Limit":
        if self.unlimited:
            return self
        return Limit.of(max(self.count - usage, 0))

    def to_json(self) -> Union[int, str]:
        return "unlimited" if self.unlimited else self.count

    def __lt__(self, other: "Limit") -> bool:
        if not isinstance(other, Limit):
            return NotImplemented
        if self.unlimited:
            return False
        if other.unlimited:
            return True
        return self.count < other.count

    def __str__(self) -> str:
        return str(self.to_json())


UNLIMITED = Limit(unlimited=True)


@dataclass(frozen=True)
class TierLimits:
    """Quotas and feature flags for one tier."""
    max_assets: Limit
    max_inventory_items: Limit
    max_invoices_per_month: Limit
    max_quotations_per_month: Limit
    max_reservations_per_month: Limit
    max_users: Limit
    has_advanced_reporting: bool = False
    has_pdf_export: bool = False
    has_csv_export: bool = False
    has_payment_integration: bool = False
    has_custom_branding: bool = False
    has_roi_tracking: bool = False
    has_monthly_charts: bool = False
    has_top_performers_chart: bool = False
    has_growth_metrics: bool = False
    has_date_range_filter: bool = False
    has_kit_reservations: bool = False
    has_conflict_override: bool = False
    has_location_reservations: bool = False

    def quota(self, resource: QuotaResource) -> Limit:
        return getattr(self, _QUOTA_ATTRS[resource])

    def feature(self, feature: Feature) -> bool:
        return getattr(self, _FEATURE_ATTRS[feature])

    def quotas(self) -> Dict[QuotaResource, Limit]:
        return {resource: self.quota(resource) for resource in QuotaResource}

    def features(self) -> Dict[Feature, bool]:
        return {flag: self.feature(flag) for flag in Feature}

    def to_dict(self) -> Dict[str, Any]:
        """Wire form keyed by the camelCase names the frontend uses."""
        data: Dict[str, Any] = {resource.value: limit.to_json() for resource, limit in self.quotas().items()}
        data.update({flag.value: enabled for flag, enabled in self.features().items()})
        return data


_QUOTA_ATTRS = {
    QuotaResource.MAX_ASSETS: "max_assets",
    QuotaResource.MAX_INVENTORY_ITEMS: "max_inventory_items",
    QuotaResource.MAX_INVOICES_PER_MONTH: "max_invoices_per_month",
    QuotaResource.MAX_QUOTATIONS_PER_MONTH: "max_quotations_per_month",
    QuotaResource.MAX_RESERVATIONS_PER_MONTH: "max_reservations_per_month",
    QuotaResource.MAX_USERS: "max_users",
}

_FEATURE_ATTRS = {
    Feature.HAS_ADVANCED_REPORTING: "has_advanced_reporting",
    Feature.HAS_PDF_EXPORT: "has_pdf_export",
    Feature.HAS_CSV_EXPORT: "has_csv_export",
    Feature.HAS_PAYMENT_INTEGRATION: "has_payment_integration",
    Feature.HAS_CUSTOM_BRANDING: "has_custom_branding",
    Feature.HAS_ROI_TRACKING: "has_roi_tracking",
    Feature.HAS_MONTHLY_CHARTS: "has_monthly_charts",
    Feature.HAS_TOP_PERFORMERS_CHART: "has_top_performers_chart",
    Feature.HAS_GROWTH_METRICS: "has_growth_metrics",
    Feature.HAS_DATE_RANGE_FILTER: "has_date_range_filter",
    Feature.HAS_KIT_RESERVATIONS: "has_kit_reservations",
    Feature.HAS_CONFLICT_OVERRIDE: "has_conflict_override",
    Feature.HAS_LOCATION_RESERVATIONS: "has_location_reservations",
}


# Tier configuration
# - free: default tier, applied to any missing or unknown plan value
# - pro: paid tier for growing teams
# - business: paid tier, unlimited resources and all features
TIER_LIMITS: Mapping[SubscriptionTier, TierLimits] = MappingProxyType({
    SubscriptionTier.FREE: TierLimits(
        max_assets=Limit.of(20),
        max_inventory_items=Limit.of(50),
        max_invoices_per_month=Limit.of(5),
        max_quotations_per_month=Limit.of(5),
        max_reservations_per_month=Limit.of(10),
        max_users=Limit.of(1),
        has_pdf_export=True,
        has_csv_export=True,
    ),
    SubscriptionTier.PRO: TierLimits(
        max_assets=Limit.of(500),
        max_inventory_items=Limit.of(1000),
        max_invoices_per_month=UNLIMITED,
        max_quotations_per_month=UNLIMITED,
        max_reservations_per_month=Limit.of(200),
        max_users=Limit.of(5),
        has_advanced_reporting=True,
        has_pdf_export=True,
        has_csv_export=True,
        has_payment_integration=True,
        has_custom_branding=True,
        has_roi_tracking=True,
        has_monthly_charts=True,
        has_top_performers_chart=True,
        has_growth_metrics=True,
        has_date_range_filter=True,
        has_kit_reservations=True,
    ),
    SubscriptionTier.BUSINESS: TierLimits(
        max_assets=UNLIMITED,
        max_inventory_items=UNLIMITED,
        max_invoices_per_month=UNLIMITED,
        max_quotations_per_month=UNLIMITED,
        max_reservations_per_month=UNLIMITED,
        max_users=Limit.of(20),
        **{f.name: True for f in fields(TierLimits) if f.name.startswith("has_")},
    ),
})


@dataclass(frozen=True)
class QuotaCheck:
    """Result of a pre-creation quota check."""
    allowed: bool
    limit: Limit
    remaining: Limit = field(default=UNLIMITED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "limit": self.limit.to_json(),
            "remaining": self.remaining.to_json(),
        }


def normalize_tier(tier: Optional[Union[str, SubscriptionTier]]) -> SubscriptionTier:
    """
    Map a stored plan value to a tier.

    Only an exact "pro" or "business" yields a paid tier; None, legacy plan
    names and corrupted values all resolve to free.
    """
    if isinstance(tier, SubscriptionTier):
        return tier
    if isinstance(tier, str):
        try:
            return SubscriptionTier(tier)
        except ValueError:
            pass
    return SubscriptionTier.FREE


def is_paid_tier(tier: Optional[Union[str, SubscriptionTier]]) -> bool:
    return normalize_tier(tier) is not SubscriptionTier.FREE


def resolve_limits(tier: Optional[Union[str, SubscriptionTier]]) -> TierLimits:
    """Get limits for a given tier. Never raises."""
    return TIER_LIMITS[normalize_tier(tier)]


def _coerce_feature(feature: Union[str, Feature]) -> Feature:
    if isinstance(feature, Feature):
        return feature
    try:
        return Feature(feature)
    except ValueError:
        raise InvalidArgument(f"Unknown feature: {feature!r}") from None


def _coerce_resource(resource: Union[str, QuotaResource]) -> QuotaResource:
    if isinstance(resource, QuotaResource):
        return resource
    try:
        return QuotaResource(resource)
    except ValueError:
        raise InvalidArgument(f"Unknown quota resource: {resource!r}") from None


def _validate_count(value: Any, name: str) -> int:
    # bool is an int subclass; a True/False usage count is always a bug upstream
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidArgument(f"{name} must not be negative, got {value}")
    return value


def has_feature(tier: Optional[Union[str, SubscriptionTier]], feature: Union[str, Feature]) -> bool:
    """Check whether a tier includes a feature flag."""
    return resolve_limits(tier).feature(_coerce_feature(feature))


def minimum_tier_for(feature: Union[str, Feature]) -> Optional[SubscriptionTier]:
    """Lowest tier that includes the feature."""
    flag = _coerce_feature(feature)
    for tier in TIER_ORDER:
        if TIER_LIMITS[tier].feature(flag):
            return tier
    return None


def minimum_tier_for_quota(
    resource: Union[str, QuotaResource],
    current_usage: int,
    requested: int = 1,
) -> Optional[SubscriptionTier]:
    """Lowest tier whose quota admits `requested` more at `current_usage`."""
    kind = _coerce_resource(resource)
    for tier in TIER_ORDER:
        if TIER_LIMITS[tier].quota(kind).allows(current_usage, requested):
            return tier
    return None


def check_quota(
    tier: Optional[Union[str, SubscriptionTier]],
    resource: Union[str, QuotaResource],
    current_usage: int,
) -> QuotaCheck:
    """
    Pre-creation quota check.

    allowed is strict: usage == limit is rejected. Negative usage is a
    counting bug upstream and raises InvalidArgument instead of being clamped.
    """
    kind = _coerce_resource(resource)
    _validate_count(current_usage, "current_usage")
    limit = resolve_limits(tier).quota(kind)
    return QuotaCheck(
        allowed=limit.allows(current_usage),
        limit=limit,
        remaining=limit.remaining(current_usage),
    )


_RESOURCE_NOUNS = {
    QuotaResource.MAX_ASSETS: "assets",
    QuotaResource.MAX_INVENTORY_ITEMS: "inventory items",
    QuotaResource.MAX_INVOICES_PER_MONTH: "invoices",
    QuotaResource.MAX_QUOTATIONS_PER_MONTH: "quotations",
    QuotaResource.MAX_RESERVATIONS_PER_MONTH: "reservations",
    QuotaResource.MAX_USERS: "team members",
}


def upgrade_message(
    tier: Optional[Union[str, SubscriptionTier]],
    resource: Union[str, QuotaResource],
    current_usage: int,
    requested: int = 1,
) -> str:
    """Human readable explanation of a quota rejection with an upgrade hint."""
    current = normalize_tier(tier)
    kind = _coerce_resource(resource)
    noun = _RESOURCE_NOUNS[kind]
    period = " per month" if kind.is_monthly else ""
    limit = TIER_LIMITS[current].quota(kind)

    message = f"{current.label} plan allows {limit} {noun}{period}."
    if kind.is_monthly:
        message += f" You've created {current_usage} this month."
    else:
        message += f" You currently have {current_usage}."

    target = minimum_tier_for_quota(kind, current_usage, requested)
    if target is None:
        message += " Contact support to raise this limit."
    else:
        message += f" Upgrade to {target.label} for {TIER_LIMITS[target].quota(kind)} {noun}{period}."
    return message


def enforce_quota(
    tier: Optional[Union[str, SubscriptionTier]],
    resource: Union[str, QuotaResource],
    current_usage: int,
    requested: int = 1,
) -> QuotaCheck:
    """
    Raise QuotaExceeded unless `requested` more resources fit under the quota.

    With requested=1 this rejects exactly when check_quota(...).allowed is
    False. Bulk operations pass the batch size.
    """
    kind = _coerce_resource(resource)
    _validate_count(current_usage, "current_usage")
    _validate_count(requested, "requested")
    current = normalize_tier(tier)
    result = check_quota(current, kind, current_usage)
    limit = result.limit

    if not limit.allows(current_usage, requested):
        raise QuotaExceeded(
            tier=current.value,
            resource=kind.value,
            limit=limit.to_json(),
            usage=current_usage,
            required_tier=_tier_value(minimum_tier_for_quota(kind, current_usage, requested)),
            message=upgrade_message(current, kind, current_usage, requested),
        )
    return result


def require_feature_or_reject(
    tier: Optional[Union[str, SubscriptionTier]],
    feature: Union[str, Feature],
) -> None:
    """Raise FeatureNotAvailable if the tier lacks the feature; otherwise do nothing."""
    flag = _coerce_feature(feature)
    current = normalize_tier(tier)
    if not TIER_LIMITS[current].feature(flag):
        raise FeatureNotAvailable(
            tier=current.value,
            feature=flag.value,
            required_tier=_tier_value(minimum_tier_for(flag)),
        )


def _tier_value(tier: Optional[SubscriptionTier]) -> Optional[str]:
    return tier.value if tier else None
