"""Command-line interface for partnerpay."""

from decimal import Decimal
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from partnerpay.affiliates.codes import affiliate_url
from partnerpay.affiliates.errors import AffiliateError
from partnerpay.affiliates.ledger import commission_ledger
from partnerpay.affiliates.models import CommissionStatus, PayoutMethod, PayoutStatus, Platform, TargetType
from partnerpay.affiliates.partners import partner_service
from partnerpay.affiliates.payouts import payout_batcher
from partnerpay.affiliates.reporting import reporting_service
from partnerpay.auth.models import Actor, Role
from partnerpay.logging_config import configure_logging, get_logger
from partnerpay.storage.db import db

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="partnerpay",
    help="partnerpay - partner commission attribution and payouts",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()

# Operator running the CLI on the server
CLI_ACTOR = Actor(user_id="cli", role=Role.ADMIN)


def _fail(error: AffiliateError) -> None:
    console.print(f"[bold red]✗[/bold red] {error.message} [dim]({error.code})[/dim]")
    raise typer.Exit(code=1)


def _parse_ids(value: str) -> list[int]:
    return [int(part) for part in value.split(",") if part.strip()]


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("partner-create")
def create_partner(
    name: Annotated[str, typer.Option("--name", "-n", help="Partner name")],
    email: Annotated[str, typer.Option("--email", "-e", help="Partner e-mail")],
    code: Annotated[Optional[str], typer.Option("--code", "-c", help="Custom affiliate code")] = None,
    shop_rate: Annotated[Optional[float], typer.Option("--shop-rate", help="Shop commission %")] = None,
    pro_bonus: Annotated[Optional[float], typer.Option("--pro-bonus", help="Flat Pro conversion bonus")] = None,
    window_days: Annotated[Optional[int], typer.Option("--window-days", help="Pro conversion window")] = None,
    stripe_account: Annotated[Optional[str], typer.Option("--stripe-account", help="Stripe Connect account id")] = None,
) -> None:
    """Create a partner."""
    try:
        partner = partner_service.create_partner(
            CLI_ACTOR,
            name=name,
            email=email,
            affiliate_code=code,
            shop_commission_rate=Decimal(str(shop_rate)) if shop_rate is not None else None,
            motorev_pro_bonus=Decimal(str(pro_bonus)) if pro_bonus is not None else None,
            motorev_pro_window_days=window_days,
            stripe_connect_id=stripe_account,
        )
    except AffiliateError as e:
        _fail(e)

    console.print(f"[bold green]✓[/bold green] Created partner {partner.partner_number} (ID {partner.id})")
    console.print(f"  Affiliate code: [cyan]{partner.affiliate_code}[/cyan]")
    console.print(f"  Shop rate: {partner.shop_commission_rate}%  Pro bonus: {partner.motorev_pro_bonus}")


@app.command("link-create")
def create_link(
    partner_id: Annotated[int, typer.Option("--partner", "-p", help="Partner ID")],
    platform: Annotated[Platform, typer.Option("--platform", help="SHOP or MOTOREV")] = Platform.SHOP,
    target_type: Annotated[TargetType, typer.Option("--target-type", help="STORE, PRODUCT or CATEGORY")] = TargetType.STORE,
    target_id: Annotated[Optional[str], typer.Option("--target", "-t", help="Product slug or category")] = None,
    name: Annotated[Optional[str], typer.Option("--name", "-n", help="Link label")] = None,
    code: Annotated[Optional[str], typer.Option("--code", "-c", help="Custom link code")] = None,
) -> None:
    """Create an affiliate link for a partner."""
    try:
        link = partner_service.create_link(
            CLI_ACTOR,
            partner_id,
            platform=platform,
            target_type=target_type,
            target_id=target_id,
            name=name,
            code=code,
        )
    except AffiliateError as e:
        _fail(e)

    console.print(f"[bold green]✓[/bold green] Created link [cyan]{link.code}[/cyan]")
    console.print(f"  URL: {affiliate_url(link.platform.value, link.code, link.target_id)}")


@app.command("commissions")
def list_commissions(
    status: Annotated[Optional[CommissionStatus], typer.Option("--status", "-s", help="Filter by status")] = None,
    partner_id: Annotated[Optional[int], typer.Option("--partner", "-p", help="Filter by partner")] = None,
    limit: Annotated[int, typer.Option("--limit", "-l", help="Rows to show")] = 50,
) -> None:
    """List commissions with per-status totals."""
    result = reporting_service.list_commissions(status=status, partner_id=partner_id, limit=limit)

    if not result["commissions"]:
        console.print("[yellow]No commissions found[/yellow]")
    else:
        table = Table(title=f"Commissions ({result['total']})")
        table.add_column("ID", style="cyan")
        table.add_column("Partner", justify="right")
        table.add_column("Type")
        table.add_column("Base", justify="right")
        table.add_column("Rate", justify="right")
        table.add_column("Amount", justify="right", style="green")
        table.add_column("Status")
        table.add_column("Payout", justify="right")
        table.add_column("Created At")

        for commission in result["commissions"]:
            table.add_row(
                str(commission.id),
                str(commission.partner_id),
                commission.type.value,
                f"{commission.base_amount:.2f}",
                f"{commission.rate_applied}%" if commission.rate_applied is not None else "flat",
                f"{commission.amount:.2f}",
                commission.status.value,
                str(commission.payout_id or "-"),
                commission.created_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)

    for name, total in result["totals"].items():
        console.print(f"  {name}: {total['count']} / ${total['amount']}")


@app.command("approve")
def approve_commissions(
    ids: Annotated[str, typer.Argument(help="Comma-separated commission IDs")],
) -> None:
    """Approve pending commissions."""
    try:
        count = commission_ledger.approve(_parse_ids(ids), CLI_ACTOR)
    except AffiliateError as e:
        _fail(e)
    console.print(f"[bold green]✓[/bold green] Approved {count} commission(s)")


@app.command("payout-create")
def create_payout(
    partner_id: Annotated[int, typer.Option("--partner", "-p", help="Partner ID")],
    ids: Annotated[Optional[str], typer.Option("--ids", help="Comma-separated commission IDs (default: all eligible)")] = None,
    method: Annotated[Optional[PayoutMethod], typer.Option("--method", "-m", help="Payment method")] = None,
    reference: Annotated[Optional[str], typer.Option("--reference", "-r", help="External reference")] = None,
    paid: Annotated[bool, typer.Option("--paid", help="Record as already paid")] = False,
) -> None:
    """Batch a partner's commissions into a payout."""
    try:
        payout = payout_batcher.create_payout(
            partner_id,
            CLI_ACTOR,
            commission_ids=_parse_ids(ids) if ids else None,
            method=method,
            reference=reference,
            mark_as_paid=paid,
        )
    except AffiliateError as e:
        _fail(e)

    console.print(
        f"[bold green]✓[/bold green] Payout {payout.payout_number}: "
        f"${payout.amount} over {len(payout.commissions)} commission(s) [{payout.status.value}]"
    )


@app.command("payout-mark-paid")
def mark_payout_paid(
    payout_id: Annotated[int, typer.Argument(help="Payout ID")],
    method: Annotated[PayoutMethod, typer.Option("--method", "-m", help="Payment method")],
    reference: Annotated[Optional[str], typer.Option("--reference", "-r", help="External reference")] = None,
) -> None:
    """Record a manual payment for a pending payout."""
    try:
        payout = payout_batcher.mark_paid(payout_id, CLI_ACTOR, method=method, reference=reference)
    except AffiliateError as e:
        _fail(e)
    console.print(f"[bold green]✓[/bold green] Payout {payout.payout_number} marked paid via {method.value}")


@app.command("payout-cancel")
def cancel_payout(
    payout_id: Annotated[int, typer.Argument(help="Payout ID")],
) -> None:
    """Cancel a pending payout and release its commissions."""
    try:
        payout = payout_batcher.cancel_payout(payout_id, CLI_ACTOR)
    except AffiliateError as e:
        _fail(e)
    console.print(f"[bold green]✓[/bold green] Payout {payout.payout_number} cancelled")


@app.command("payouts")
def list_payouts(
    status: Annotated[Optional[PayoutStatus], typer.Option("--status", "-s", help="Filter by status")] = None,
    partner_id: Annotated[Optional[int], typer.Option("--partner", "-p", help="Filter by partner")] = None,
) -> None:
    """List payouts."""
    result = reporting_service.list_payouts(status=status, partner_id=partner_id)

    if not result["payouts"]:
        console.print("[yellow]No payouts found[/yellow]")
        return

    table = Table(title=f"Payouts ({result['total']})")
    table.add_column("ID", style="cyan")
    table.add_column("Number")
    table.add_column("Partner")
    table.add_column("Amount", justify="right", style="green")
    table.add_column("Status")
    table.add_column("Method")
    table.add_column("Created At")

    for payout in result["payouts"]:
        table.add_row(
            str(payout.id),
            payout.payout_number,
            payout.partner.name if payout.partner else str(payout.partner_id),
            f"{payout.amount:.2f}",
            payout.status.value,
            payout.method.value if payout.method else "-",
            payout.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)
    stats = result["stats"]
    console.print(f"  pending: ${stats['pending_amount']}  paid: ${stats['paid_amount']}")


if __name__ == "__main__":
    app()
