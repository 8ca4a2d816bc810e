"""
Pydantic schemas for financial reports.
"""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .assets import AssetROI


class DateRange(BaseModel):
    start_date: date
    end_date: date


class FinancialTotals(BaseModel):
    total_revenue: float = 0
    total_expenses: float = 0
    net_profit: float = 0
    profit_margin: float = Field(0, description="Percent of revenue")
    transaction_count: int = 0
    performance: str = Field("fair", description="excellent, good, fair or poor")


class GrowthMetrics(BaseModel):
    current_month_revenue: float
    previous_month_revenue: float
    current_month_expenses: float
    previous_month_expenses: float
    revenue_growth_percentage: float
    expense_growth_percentage: float
    profit_growth_percentage: float


class MonthlyPL(BaseModel):
    month: str = Field(..., description="YYYY-MM")
    total_revenue: float
    total_expenses: float
    net_profit: float
    transaction_count: int


class AssetPerformance(BaseModel):
    asset_id: str
    asset_name: str
    total_revenue: float
    net_profit: float
    roi_percentage: Optional[float] = None


class FinancialReport(BaseModel):
    """
    Financial report for an organization.

    `totals` is always present; the other sections are filled in when the
    organization's plan includes them.
    """
    organization_id: str
    report_date: datetime
    date_range: DateRange
    currency: str = "USD"
    totals: FinancialTotals
    growth: Optional[GrowthMetrics] = None
    asset_roi: Optional[List[AssetROI]] = None
    monthly: Optional[List[MonthlyPL]] = None
    top_performers: Optional[List[AssetPerformance]] = None
