"""
Dependencies for checking organization tier and enforcing quotas.

The tier is read from the organizations table on every check so plan changes
take effect on the next request. Usage counts come from the persistence
gateway; the policy decisions themselves live in core.tier_limits.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar, Union

from fastapi import Depends

from ..core.dependencies import get_current_organization
from ..core.errors import QuotaExceeded
from ..core.tier_limits import (
    Feature,
    QuotaCheck,
    QuotaResource,
    SubscriptionTier,
    check_quota,
    enforce_quota,
    minimum_tier_for_quota,
    normalize_tier,
    require_feature_or_reject,
    resolve_limits,
    upgrade_message,
)
from ..schemas.auth import OrganizationContext
from ..services.persistence import persistence


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Table backing each quota. maxUsers is special-cased: members plus pending invitations.
RESOURCE_TABLES = {
    QuotaResource.MAX_ASSETS: "assets",
    QuotaResource.MAX_INVENTORY_ITEMS: "inventory_items",
    QuotaResource.MAX_INVOICES_PER_MONTH: "invoices",
    QuotaResource.MAX_QUOTATIONS_PER_MONTH: "quotations",
    QuotaResource.MAX_RESERVATIONS_PER_MONTH: "reservations",
    QuotaResource.MAX_USERS: "team_invitations",
}


def month_start(now: Optional[datetime] = None) -> datetime:
    """First instant of the current month in UTC."""
    now = now or datetime.now(timezone.utc)
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc)


async def get_organization_tier(organization_id: str) -> SubscriptionTier:
    """
    Get the organization's effective tier.
    Returns free if the organization is missing, the value is unknown, or the lookup fails.
    """
    try:
        raw_tier = await persistence.get_subscription_tier(organization_id)
    except Exception as e:
        logger.warning(f"Tier lookup failed for organization {organization_id}, using free: {e}")
        return SubscriptionTier.FREE
    return normalize_tier(raw_tier)


async def get_usage(organization_id: str, resource: QuotaResource) -> int:
    """Current usage count for a quota resource."""
    if resource is QuotaResource.MAX_USERS:
        members = await persistence.count("users", organization_id)
        pending = await persistence.list_pending_invitations(organization_id, datetime.now(timezone.utc))
        return members + len(pending)

    since = month_start() if resource.is_monthly else None
    return await persistence.count(RESOURCE_TABLES[resource], organization_id, since=since)


async def get_quota_status(organization_id: str) -> Tuple[SubscriptionTier, List[Dict[str, Any]]]:
    """Tier plus usage and remaining capacity for every quota resource."""
    tier = await get_organization_tier(organization_id)
    usage = []
    for resource in QuotaResource:
        used = await get_usage(organization_id, resource)
        result = check_quota(tier, resource, used)
        usage.append({
            "resource": resource.value,
            "usage": used,
            **result.to_dict(),
        })
    return tier, usage


async def enforce_organization_quota(
    organization_id: str,
    resource: QuotaResource,
    requested: int = 1,
) -> Tuple[SubscriptionTier, QuotaCheck]:
    """Pre-creation check: read tier and usage, raise QuotaExceeded if `requested` more do not fit."""
    tier = await get_organization_tier(organization_id)
    used = await get_usage(organization_id, resource)
    result = enforce_quota(tier, resource, used, requested)
    return tier, result


async def verify_quota_after_create(
    organization_id: str,
    resource: QuotaResource,
    tier: SubscriptionTier,
    created_ids: List[str],
) -> None:
    """
    Post-commit recount for the read-then-create race.

    If concurrent creators pushed the committed count past the limit, the rows
    this request created are deleted and QuotaExceeded is raised. Two racing
    requests may both back off; the count never stays above the quota.
    """
    limit = resolve_limits(tier).quota(resource)
    if limit.is_unlimited or not created_ids:
        return

    committed = await get_usage(organization_id, resource)
    if committed <= limit.count:
        return

    table = RESOURCE_TABLES[resource]
    logger.info(
        f"Quota race on {resource.value} for organization {organization_id}: "
        f"{committed}/{limit.count}, rolling back {len(created_ids)} row(s)"
    )
    for record_id in created_ids:
        await persistence.delete(table, organization_id, record_id)

    usage_before = max(committed - len(created_ids), 0)
    raise QuotaExceeded(
        tier=tier.value,
        resource=resource.value,
        limit=limit.to_json(),
        usage=usage_before,
        required_tier=_value(minimum_tier_for_quota(resource, usage_before, len(created_ids))),
        message=upgrade_message(tier, resource, usage_before, len(created_ids)),
    )


async def create_within_quota(
    organization_id: str,
    resource: QuotaResource,
    create: Callable[[], Awaitable[T]],
    requested: int = 1,
    created_ids: Optional[Callable[[T], List[str]]] = None,
) -> T:
    """
    Run `create` guarded by the quota on both sides of the insert.

    `created_ids` extracts the ids of the inserted rows from the result; by
    default the result is a row dict or a list of row dicts.
    """
    tier, _ = await enforce_organization_quota(organization_id, resource, requested)
    result = await create()
    ids = created_ids(result) if created_ids else _row_ids(result)
    await verify_quota_after_create(organization_id, resource, tier, ids)
    return result


def _row_ids(result: Union[Dict[str, Any], List[Dict[str, Any]], Any]) -> List[str]:
    if isinstance(result, dict):
        return [result["id"]] if result.get("id") else []
    if isinstance(result, list):
        return [row["id"] for row in result if isinstance(row, dict) and row.get("id")]
    record_id = getattr(result, "id", None)
    return [str(record_id)] if record_id else []


def _value(tier: Optional[SubscriptionTier]) -> Optional[str]:
    return tier.value if tier else None


class FeatureGate:
    """
    Dependency that rejects the request unless the organization's tier has a feature.

    Usage:
        @router.get("/{asset_id}/roi")
        async def asset_roi(org: OrganizationContext = Depends(FeatureGate(Feature.HAS_ROI_TRACKING))):
            ...
    """

    def __init__(self, feature: Feature):
        self.feature = feature

    async def __call__(
        self,
        org: OrganizationContext = Depends(get_current_organization),
    ) -> OrganizationContext:
        tier = await get_organization_tier(org.organization_id)
        require_feature_or_reject(tier, self.feature)
        return org.model_copy(update={"tier": tier.value})


async def get_organization_with_tier(
    org: OrganizationContext = Depends(get_current_organization),
) -> OrganizationContext:
    """Current organization with its freshly read tier attached."""
    tier = await get_organization_tier(org.organization_id)
    return org.model_copy(update={"tier": tier.value})
