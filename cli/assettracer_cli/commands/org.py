"""
Organization Command Module

Inspect and change an organization's plan. Uses the backend services
directly with the service role key, so every check matches the API.
"""
import asyncio

import typer
from rich.console import Console
from rich.table import Table

from assettracer.core.tier_limits import SubscriptionTier

app = typer.Typer(help="Organization plan management")
console = Console()


def require_config() -> None:
    from ..config import get_config

    missing = get_config().validate()
    if missing:
        console.print(f"[bold red]❌ Missing configuration: {', '.join(missing)}[/bold red]")
        console.print("[dim]Run `assettracer config` for details[/dim]")
        raise typer.Exit(1)


def _usage_table(title: str, usage) -> Table:
    table = Table(title=title)
    table.add_column("Resource", style="bold cyan")
    table.add_column("Usage", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("Can create", justify="center")

    for row in usage:
        table.add_row(
            row["resource"],
            str(row["usage"]),
            str(row["limit"]),
            str(row["remaining"]),
            "✅" if row["allowed"] else "❌",
        )
    return table


def over_limit(usage) -> list:
    """Rows where existing data exceeds the plan, e.g. after a downgrade."""
    return [
        row for row in usage
        if row["limit"] != "unlimited" and row["usage"] > row["limit"]
    ]


@app.command("show")
def show_org(
    organization_id: str = typer.Argument(..., help="Organization ID")
):
    """Show an organization's plan and quota usage."""
    require_config()
    from assettracer.dependencies.tier_check import get_quota_status
    from assettracer.services.persistence import persistence

    async def run():
        org = await persistence.get_organization(organization_id)
        if not org:
            return None, None, None
        tier, usage = await get_quota_status(organization_id)
        return org, tier, usage

    try:
        org, tier, usage = asyncio.run(run())
    except Exception as e:
        console.print(f"[bold red]❌ Error: {e}[/bold red]")
        raise typer.Exit(1)

    if not org:
        console.print(f"[bold red]❌ Organization not found: {organization_id}[/bold red]")
        raise typer.Exit(1)

    console.print(f"\n[bold blue]Organization: {org.get('name', organization_id)}[/bold blue]")
    console.print(f"   ID: {organization_id}")
    console.print(f"   Plan: {tier.label}")
    if org.get("subscription_tier") and org.get("subscription_tier") != tier.value:
        console.print(f"   [yellow]Stored value {org['subscription_tier']!r} is not a known plan, treated as free[/yellow]")
    console.print(f"   Status: {org.get('subscription_status') or 'N/A'}")
    console.print(f"   Stripe subscription: {org.get('stripe_subscription_id') or 'N/A'}")
    console.print(_usage_table("Quota usage", usage))


@app.command("set-tier")
def set_tier(
    organization_id: str = typer.Argument(..., help="Organization ID"),
    tier: str = typer.Argument(..., help="free, pro or business"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """
    Set an organization's plan without going through Stripe.

    Moving to free clears the stored Stripe identifiers.
    """
    if tier not in {t.value for t in SubscriptionTier}:
        console.print(f"[bold red]❌ Unknown plan: {tier}[/bold red]")
        raise typer.Exit(1)

    require_config()
    if not yes:
        typer.confirm(f"Set organization {organization_id} to {tier}?", abort=True)

    from assettracer.services.subscription_service import subscription_service

    try:
        asyncio.run(subscription_service.set_tier(organization_id, SubscriptionTier(tier)))
    except Exception as e:
        console.print(f"[bold red]❌ Error: {e}[/bold red]")
        raise typer.Exit(1)

    console.print(f"[bold green]✅ Organization {organization_id} is now on {SubscriptionTier(tier).label}[/bold green]")


@app.command("audit")
def audit_orgs():
    """List organizations whose existing data is above their plan's limits."""
    require_config()
    from assettracer.dependencies.tier_check import get_quota_status
    from assettracer.services.persistence import persistence

    async def run():
        findings = []
        for org in await persistence.list_organizations("id, name"):
            tier, usage = await get_quota_status(org["id"])
            rows = over_limit(usage)
            if rows:
                findings.append((org, tier, rows))
        return findings

    try:
        findings = asyncio.run(run())
    except Exception as e:
        console.print(f"[bold red]❌ Error: {e}[/bold red]")
        raise typer.Exit(1)

    if not findings:
        console.print("[bold green]✅ All organizations are within their plan limits[/bold green]")
        return

    table = Table(title=f"Organizations over limit ({len(findings)})")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Name", style="bold cyan")
    table.add_column("Plan")
    table.add_column("Over limit")

    for org, tier, rows in findings:
        table.add_row(
            org["id"][:8],
            org.get("name") or "",
            tier.label,
            ", ".join(f"{r['resource']} {r['usage']}/{r['limit']}" for r in rows),
        )

    console.print(table)
