"""
Report Service - financial reports from the transactions table.

Basic totals are available on every plan. Growth metrics, per-asset ROI,
monthly breakdowns, top performers and custom date ranges each depend on a
feature flag of the organization's tier.
"""
import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..core.errors import InvalidArgument
from ..core.tier_limits import Feature, SubscriptionTier, has_feature, require_feature_or_reject
from ..schemas.reports import (
    AssetPerformance,
    DateRange,
    FinancialReport,
    FinancialTotals,
    GrowthMetrics,
    MonthlyPL,
)
from .asset_service import calculate_roi
from .persistence import persistence


logger = logging.getLogger(__name__)

TOP_PERFORMERS = 5


def _amount(row: Dict[str, Any]) -> float:
    return float(row.get("amount") or 0)


def _transaction_date(row: Dict[str, Any]) -> date:
    value = row.get("transaction_date") or row.get("created_at")
    return date.fromisoformat(str(value)[:10])


def performance_indicator(profit_margin: float) -> str:
    if profit_margin >= 30:
        return "excellent"
    if profit_margin >= 15:
        return "good"
    if profit_margin >= 0:
        return "fair"
    return "poor"


def growth_percentage(current: float, previous: float) -> float:
    """Change relative to the previous value; 100% growth from zero, 0% if both are zero."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / abs(previous) * 100, 2)


def summarize(transactions: List[Dict[str, Any]]) -> FinancialTotals:
    revenue = sum(_amount(t) for t in transactions if t.get("type") == "revenue")
    expenses = sum(_amount(t) for t in transactions if t.get("type") == "expense")
    net = revenue - expenses
    margin = round(net / revenue * 100, 2) if revenue > 0 else 0.0
    return FinancialTotals(
        total_revenue=round(revenue, 2),
        total_expenses=round(expenses, 2),
        net_profit=round(net, 2),
        profit_margin=margin,
        transaction_count=len(transactions),
        performance=performance_indicator(margin),
    )


def monthly_breakdown(transactions: List[Dict[str, Any]], start: date, end: date) -> List[MonthlyPL]:
    """One entry per calendar month in [start, end], including empty months."""
    buckets: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for t in transactions:
        buckets[_transaction_date(t).strftime("%Y-%m")].append(t)

    months = []
    cursor = start.replace(day=1)
    while cursor <= end:
        key = cursor.strftime("%Y-%m")
        totals = summarize(buckets.get(key, []))
        months.append(MonthlyPL(
            month=key,
            total_revenue=totals.total_revenue,
            total_expenses=totals.total_expenses,
            net_profit=totals.net_profit,
            transaction_count=totals.transaction_count,
        ))
        cursor = (cursor + timedelta(days=32)).replace(day=1)
    return months


def resolve_period(
    tier: SubscriptionTier,
    start_date: Optional[date],
    end_date: Optional[date],
    today: Optional[date] = None,
) -> Tuple[date, date]:
    """Requested range (needs hasDateRangeFilter) or the current calendar year."""
    if start_date or end_date:
        require_feature_or_reject(tier, Feature.HAS_DATE_RANGE_FILTER)
    today = today or datetime.now(timezone.utc).date()
    start = start_date or date(today.year, 1, 1)
    end = end_date or date(today.year, 12, 31)
    if start > end:
        raise InvalidArgument("Start date must be before or equal to end date")
    return start, end


def _bounds(start: date, end: date) -> Tuple[datetime, datetime]:
    return (
        datetime.combine(start, time.min, tzinfo=timezone.utc),
        datetime.combine(end, time.max, tzinfo=timezone.utc),
    )


class ReportService:
    """Builds financial reports for an organization."""

    def __init__(self):
        self.db = persistence

    async def _transactions(self, organization_id: str, start: date, end: date) -> List[Dict[str, Any]]:
        since, until = _bounds(start, end)
        return await self.db.list(
            "transactions", organization_id,
            columns="id, asset_id, type, category, amount, transaction_date, created_at",
            since=since, until=until, desc=False,
        )

    async def _growth(self, organization_id: str, today: date) -> GrowthMetrics:
        current_start = today.replace(day=1)
        previous_end = current_start - timedelta(days=1)
        previous_start = previous_end.replace(day=1)

        current = summarize(await self._transactions(organization_id, current_start, today))
        previous = summarize(await self._transactions(organization_id, previous_start, previous_end))
        return GrowthMetrics(
            current_month_revenue=current.total_revenue,
            previous_month_revenue=previous.total_revenue,
            current_month_expenses=current.total_expenses,
            previous_month_expenses=previous.total_expenses,
            revenue_growth_percentage=growth_percentage(current.total_revenue, previous.total_revenue),
            expense_growth_percentage=growth_percentage(current.total_expenses, previous.total_expenses),
            profit_growth_percentage=growth_percentage(current.net_profit, previous.net_profit),
        )

    async def financial_report(
        self,
        organization_id: str,
        tier: SubscriptionTier,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> FinancialReport:
        today = today or datetime.now(timezone.utc).date()
        start, end = resolve_period(tier, start_date, end_date, today)
        transactions = await self._transactions(organization_id, start, end)
        organization = await self.db.get_organization(organization_id) or {}

        report = FinancialReport(
            organization_id=organization_id,
            report_date=datetime.now(timezone.utc),
            date_range=DateRange(start_date=start, end_date=end),
            currency=organization.get("default_currency") or "USD",
            totals=summarize(transactions),
        )

        if has_feature(tier, Feature.HAS_GROWTH_METRICS):
            report.growth = await self._growth(organization_id, today)

        if has_feature(tier, Feature.HAS_MONTHLY_CHARTS):
            report.monthly = monthly_breakdown(transactions, start, end)

        want_roi = has_feature(tier, Feature.HAS_ROI_TRACKING)
        want_top = has_feature(tier, Feature.HAS_TOP_PERFORMERS_CHART)
        if want_roi or want_top:
            assets = await self.db.list(
                "assets", organization_id, columns="id, name, purchase_cost, current_value"
            )
            by_asset: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
            for t in transactions:
                if t.get("asset_id"):
                    by_asset[t["asset_id"]].append(t)
            rois = [calculate_roi(asset, by_asset.get(asset["id"], [])) for asset in assets]

            if want_roi:
                report.asset_roi = rois
            if want_top:
                names = {asset["id"]: asset.get("name") or "" for asset in assets}
                ranked = sorted(rois, key=lambda r: r.net_profit, reverse=True)[:TOP_PERFORMERS]
                report.top_performers = [
                    AssetPerformance(
                        asset_id=r.asset_id,
                        asset_name=names.get(r.asset_id, ""),
                        total_revenue=r.total_revenue,
                        net_profit=r.net_profit,
                        roi_percentage=r.roi_percentage,
                    )
                    for r in ranked
                ]

        logger.debug(
            f"Financial report for {organization_id} ({tier.value}): "
            f"{len(transactions)} transactions {start}..{end}"
        )
        return report

    async def weekly_summary(self, organization_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        """Last seven days, as label/value pairs for the weekly email."""
        today = today or datetime.now(timezone.utc).date()
        totals = summarize(await self._transactions(organization_id, today - timedelta(days=6), today))
        return {
            "Revenue": f"{totals.total_revenue:,.2f}",
            "Expenses": f"{totals.total_expenses:,.2f}",
            "Net profit": f"{totals.net_profit:,.2f}",
            "Profit margin": f"{totals.profit_margin:.1f}%",
            "Transactions": totals.transaction_count,
            "Performance": totals.performance.title(),
        }

    async def export_rows(self, organization_id: str, start: date, end: date) -> List[Dict[str, Any]]:
        """Transactions in range, for CSV export."""
        return await self._transactions(organization_id, start, end)


# Global report service instance
report_service = ReportService()
