"""
Financial report API endpoints.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...core.tier_limits import Feature, normalize_tier
from ...dependencies.tier_check import FeatureGate, get_organization_with_tier
from ...schemas.auth import OrganizationContext
from ...schemas.reports import FinancialReport
from ...services.report_service import report_service, resolve_period
from ...utils.responses import csv_response

router = APIRouter(prefix="/reports", tags=["reports"])

TRANSACTION_EXPORT_COLUMNS = ["id", "transaction_date", "type", "category", "amount", "asset_id", "created_at"]


@router.get("/financial", response_model=FinancialReport)
async def financial_report(
    start_date: Optional[date] = Query(None, description="Requires date range filtering on the plan"),
    end_date: Optional[date] = Query(None, description="Requires date range filtering on the plan"),
    org: OrganizationContext = Depends(get_organization_with_tier),
):
    """
    Basic totals on every plan. Growth, ROI, monthly and top performer
    sections are included when the plan has them.
    """
    return await report_service.financial_report(
        org.organization_id, normalize_tier(org.tier), start_date, end_date
    )


@router.get("/export/csv")
async def export_transactions_csv(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    org: OrganizationContext = Depends(FeatureGate(Feature.HAS_CSV_EXPORT)),
):
    start, end = resolve_period(normalize_tier(org.tier), start_date, end_date)
    rows = await report_service.export_rows(org.organization_id, start, end)
    return csv_response("transactions", TRANSACTION_EXPORT_COLUMNS, rows)
