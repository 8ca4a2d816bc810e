"""
Tests for the operator CLI.
"""
from typer.testing import CliRunner

from assettracer_cli.commands.org import over_limit
from assettracer_cli.main import app

from conftest import ORG_ID


runner = CliRunner()


def test_plans_table():
    result = runner.invoke(app, ["plans"])
    assert result.exit_code == 0
    assert "maxAssets" in result.output
    assert "unlimited" in result.output


def test_plans_unknown_tier():
    result = runner.invoke(app, ["plans", "--tier", "platinum"])
    assert result.exit_code == 1


def test_set_tier_rejects_unknown_plan():
    result = runner.invoke(app, ["org", "set-tier", ORG_ID, "enterprise", "--yes"])
    assert result.exit_code == 1
    assert "Unknown plan" in result.output


def test_set_tier(fake_db):
    fake_db.add_organization(ORG_ID, "free")

    result = runner.invoke(app, ["org", "set-tier", ORG_ID, "business", "--yes"])

    assert result.exit_code == 0, result.output
    assert fake_db.tables["organizations"][0]["subscription_tier"] == "business"


def test_set_tier_needs_confirmation(fake_db):
    fake_db.add_organization(ORG_ID, "free")

    result = runner.invoke(app, ["org", "set-tier", ORG_ID, "pro"], input="n\n")

    assert result.exit_code == 1
    assert fake_db.tables["organizations"][0]["subscription_tier"] == "free"


def test_over_limit_after_downgrade():
    usage = [
        {"resource": "maxAssets", "usage": 30, "limit": 20},
        {"resource": "maxUsers", "usage": 1, "limit": 1},
        {"resource": "maxInvoicesPerMonth", "usage": 9, "limit": "unlimited"},
    ]
    assert [row["resource"] for row in over_limit(usage)] == ["maxAssets"]
