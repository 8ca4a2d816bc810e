"""
Plans Command Module

Print the plan comparison table straight from the tier policy, so operators
see exactly what the API enforces.
"""
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from assettracer.core.tier_limits import TIER_ORDER, QuotaResource, Feature, SubscriptionTier, resolve_limits

console = Console()


def show_plans(
    tier: Optional[str] = typer.Option(None, "--tier", "-t", help="Only show one plan (free, pro, business)")
):
    """Show quotas and features for each plan."""
    if tier is not None and tier not in {t.value for t in SubscriptionTier}:
        console.print(f"[bold red]❌ Unknown plan: {tier}[/bold red]")
        raise typer.Exit(1)

    tiers = [SubscriptionTier(tier)] if tier else list(TIER_ORDER)

    table = Table(title="Plans")
    table.add_column("Limit", style="bold cyan")
    for t in tiers:
        table.add_column(t.label, justify="center")

    for resource in QuotaResource:
        table.add_row(resource.value, *[str(resolve_limits(t).quota(resource)) for t in tiers])

    table.add_section()
    for flag in Feature:
        table.add_row(flag.value, *["✅" if resolve_limits(t).feature(flag) else "-" for t in tiers])

    console.print(table)
