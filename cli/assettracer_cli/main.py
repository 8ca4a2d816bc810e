#!/usr/bin/env python3
"""
AssetTracer CLI - Main Entry Point

Usage:
    assettracer plans [--tier pro]
    assettracer org show <organization-id>
    assettracer org set-tier <organization-id> <free|pro|business>
    assettracer org audit
    assettracer payments status <payment-intent-id>
    assettracer payments refund <payment-intent-id> <amount>
    assettracer config
"""
import typer
from rich.console import Console

from . import __version__
from .commands import org, payments, plans

# Create main Typer app
app = typer.Typer(
    name="assettracer",
    help="AssetTracer CLI - plan and organization administration",
    add_completion=False
)

app.add_typer(org.app, name="org", help="Organization plan management")
app.add_typer(payments.app, name="payments", help="Stripe payment lookups and refunds")
app.command("plans")(plans.show_plans)

console = Console()


@app.command()
def version():
    """Show CLI version."""
    console.print(f"[bold blue]AssetTracer CLI[/bold blue] v{__version__}")


@app.command("config")
def check_config():
    """Check CLI configuration."""
    from .config import get_config

    config = get_config()
    missing = config.validate()

    if missing:
        console.print("[bold red]❌ Missing Configuration:[/bold red]")
        for item in missing:
            console.print(f"   • {item}")
        console.print("\n[dim]Set these as environment variables or in ~/.assettracer/.env[/dim]")
        raise typer.Exit(1)

    console.print("[bold green]✅ Configuration Valid[/bold green]")
    console.print(f"   Supabase: {config.supabase.url[:40]}...")
    if config.stripe.secret_key:
        console.print("   Stripe: configured")
    else:
        console.print("   Stripe: [yellow]not configured[/yellow]")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
