"""
Payments Command Module

Look up and refund Stripe subscription payments. Operator only; tenants have
no refund endpoint.
"""
from typing import Optional

import typer
from rich.console import Console

from .org import require_config

app = typer.Typer(help="Stripe payment lookups and refunds")
console = Console()


@app.command("status")
def payment_status(
    payment_intent_id: str = typer.Argument(..., help="Stripe PaymentIntent ID (pi_...)")
):
    """Show the normalized status of a Stripe payment."""
    require_config()
    from assettracer.core.errors import PaymentGatewayError
    from assettracer.services.payment_gateway import stripe_gateway

    try:
        result = stripe_gateway.get_payment_status(payment_intent_id)
    except PaymentGatewayError as e:
        console.print(f"[bold red]❌ {e.message}[/bold red]")
        raise typer.Exit(1)

    console.print(f"[bold blue]{result.transaction_id}[/bold blue]: {result.status.value}")


@app.command("refund")
def refund_payment(
    payment_intent_id: str = typer.Argument(..., help="Stripe PaymentIntent ID (pi_...)"),
    amount: float = typer.Argument(..., help="Amount to refund in major units, e.g. 19.99"),
    reason: Optional[str] = typer.Option(None, "--reason", "-r", help="Stored as refund metadata"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Refund part or all of a Stripe payment."""
    require_config()
    from assettracer.core.errors import PaymentGatewayError
    from assettracer.schemas.payments import RefundRequest
    from assettracer.services.payment_gateway import stripe_gateway

    if amount <= 0:
        console.print("[bold red]❌ Amount must be positive[/bold red]")
        raise typer.Exit(1)

    if not yes:
        typer.confirm(f"Refund {amount:.2f} on {payment_intent_id}?", abort=True)

    try:
        result = stripe_gateway.refund(RefundRequest(
            transaction_id=payment_intent_id, amount=amount, reason=reason
        ))
    except PaymentGatewayError as e:
        console.print(f"[bold red]❌ {e.message}[/bold red]")
        raise typer.Exit(1)

    if not result.success:
        console.print(f"[bold red]❌ Refund failed: {result.error}[/bold red]")
        raise typer.Exit(1)

    console.print(f"[bold green]✅ Refund {result.refund_id} for {result.amount:.2f}[/bold green]")
