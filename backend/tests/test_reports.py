"""
Tests for financial reports and their plan-dependent sections.
"""
from datetime import date

import pytest

from assettracer.core.errors import FeatureNotAvailable, InvalidArgument
from assettracer.core.tier_limits import SubscriptionTier
from assettracer.services.report_service import (
    growth_percentage,
    monthly_breakdown,
    performance_indicator,
    resolve_period,
    summarize,
)

from conftest import ORG_ID


@pytest.fixture
def ledger(fake_db):
    camera = fake_db.seed("assets", organization_id=ORG_ID, name="Camera", purchase_cost=1000, current_value=900)
    drone = fake_db.seed("assets", organization_id=ORG_ID, name="Drone", purchase_cost=2000, current_value=1500)
    fake_db.seed("transactions", organization_id=ORG_ID, asset_id=camera["id"], type="revenue", amount=1200)
    fake_db.seed("transactions", organization_id=ORG_ID, asset_id=drone["id"], type="revenue", amount=300)
    fake_db.seed("transactions", organization_id=ORG_ID, asset_id=drone["id"], type="expense", amount=500)
    return camera, drone


class TestHelpers:
    @pytest.mark.parametrize("margin,label", [(45, "excellent"), (30, "excellent"), (15, "good"), (0, "fair"), (-1, "poor")])
    def test_performance_indicator(self, margin, label):
        assert performance_indicator(margin) == label

    def test_growth_percentage(self):
        assert growth_percentage(150, 100) == 50.0
        assert growth_percentage(50, 0) == 100.0
        assert growth_percentage(0, 0) == 0.0
        assert growth_percentage(-50, -100) == 50.0

    def test_summarize(self):
        totals = summarize([
            {"type": "revenue", "amount": 200},
            {"type": "expense", "amount": "50"},
        ])
        assert totals.net_profit == 150
        assert totals.profit_margin == 75.0
        assert totals.performance == "excellent"

    def test_monthly_breakdown_includes_empty_months(self):
        months = monthly_breakdown(
            [{"type": "revenue", "amount": 10, "transaction_date": "2026-02-14"}],
            date(2026, 1, 1), date(2026, 3, 31),
        )
        assert [m.month for m in months] == ["2026-01", "2026-02", "2026-03"]
        assert months[1].total_revenue == 10

    def test_default_period_is_current_year(self):
        assert resolve_period(SubscriptionTier.FREE, None, None, today=date(2026, 5, 9)) == (
            date(2026, 1, 1), date(2026, 12, 31)
        )

    def test_custom_period_needs_feature(self):
        with pytest.raises(FeatureNotAvailable):
            resolve_period(SubscriptionTier.FREE, date(2026, 1, 1), None)

    def test_inverted_period(self):
        with pytest.raises(InvalidArgument):
            resolve_period(SubscriptionTier.PRO, date(2026, 2, 1), date(2026, 1, 1))


class TestFinancialReport:
    def test_free_gets_totals_only(self, client, free_org, ledger):
        response = client.get("/api/v1/reports/financial")

        assert response.status_code == 200
        data = response.json()
        assert data["totals"]["total_revenue"] == 1500
        assert data["totals"]["net_profit"] == 1000
        assert data["growth"] is None
        assert data["asset_roi"] is None
        assert data["monthly"] is None
        assert data["top_performers"] is None

    def test_pro_gets_every_section(self, client, pro_org, ledger):
        camera, drone = ledger

        data = client.get("/api/v1/reports/financial").json()

        assert data["growth"]["current_month_revenue"] == 1500
        assert len(data["monthly"]) == 12
        assert {row["asset_id"] for row in data["asset_roi"]} == {camera["id"], drone["id"]}
        assert [p["asset_name"] for p in data["top_performers"]] == ["Camera", "Drone"]

    def test_custom_range_on_free(self, client, free_org):
        response = client.get("/api/v1/reports/financial", params={"start_date": "2026-01-01"})

        assert response.status_code == 403
        assert response.json()["feature"] == "hasDateRangeFilter"

    def test_inverted_range_on_pro(self, client, pro_org):
        response = client.get(
            "/api/v1/reports/financial", params={"start_date": "2026-03-01", "end_date": "2026-01-01"}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_argument"

    def test_csv_export(self, client, free_org, ledger):
        response = client.get("/api/v1/reports/export/csv")

        assert response.status_code == 200
        lines = response.text.strip().splitlines()
        assert lines[0] == "id,transaction_date,type,category,amount,asset_id,created_at"
        assert len(lines) == 4
