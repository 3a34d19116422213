"""Command-line interface for Creditwise."""

from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from creditwise.logging_config import get_logger, setup_logging
from creditwise.referral.config import ReferralConfigStore, ReferralConfigUpdate
from creditwise.services import build_services
from creditwise.settings import settings
from creditwise.storage.db import Database

# Configure logging
setup_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="creditwise",
    help="Creditwise - referral rewards and subscription billing",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


def _print_config(config) -> None:
    table = Table(title="Referral program")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Active", "yes" if config.is_active else "no")
    table.add_row("Credits per referral", str(config.credits_per_referral))
    table.add_row("Credits for referred", str(config.credits_for_referred))
    table.add_row(
        "Max referrals per user",
        str(config.max_referrals_per_user) if config.max_referrals_per_user else "unlimited",
    )
    table.add_row("Require subscription", "yes" if config.require_subscription else "no")
    console.print(table)


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    database = Database(settings.database_url)
    database.create_tables()
    ReferralConfigStore(database).get_config()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("config-show")
def show_config() -> None:
    """Show the referral program configuration."""
    _print_config(ReferralConfigStore(Database(settings.database_url)).get_config())


@app.command("config-set")
def set_config(
    credits_per_referral: Annotated[Optional[int], typer.Option("--referrer-credits", help="Credits for the referrer")] = None,
    credits_for_referred: Annotated[Optional[int], typer.Option("--referred-credits", help="Credits for the referred user")] = None,
    max_referrals: Annotated[Optional[int], typer.Option("--max-referrals", help="Cap per referrer (0 = unlimited)")] = None,
    active: Annotated[Optional[bool], typer.Option("--active/--inactive", help="Enable or pause the program")] = None,
) -> None:
    """Update the referral program configuration."""
    changes = {}
    if credits_per_referral is not None:
        changes["credits_per_referral"] = credits_per_referral
    if credits_for_referred is not None:
        changes["credits_for_referred"] = credits_for_referred
    if max_referrals is not None:
        changes["max_referrals_per_user"] = max_referrals or None
    if active is not None:
        changes["is_active"] = active

    if not changes:
        console.print("[yellow]Nothing to change[/yellow]")
        raise typer.Exit(code=1)

    try:
        update = ReferralConfigUpdate(**changes)
    except ValidationError as e:
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"])
            console.print(f"[red]✗[/red] {field}: {error['msg']}")
        raise typer.Exit(code=1)

    store = ReferralConfigStore(Database(settings.database_url))
    config = store.update_config(update)
    console.print("[bold green]✓[/bold green] Configuration updated")
    _print_config(config)


@app.command("sync-subscriptions")
def sync_subscriptions() -> None:
    """Reconcile live Stripe subscriptions into the local table."""
    services = build_services(settings)
    with console.status("[bold blue]Syncing subscriptions from Stripe..."):
        report = services.synchronizer.sweep()

    console.print(f"[bold green]✓[/bold green] {report.message}")
    for error in report.errors:
        console.print(f"  [red]✗[/red] {error}")

    if report.failed:
        raise typer.Exit(code=1)


@app.command("credits")
def show_credits(
    user_id: Annotated[str, typer.Argument(help="User ID")],
    limit: Annotated[int, typer.Option("--limit", "-l", help="Transactions to show")] = 10,
) -> None:
    """Show a user's credit balance and recent transactions."""
    services = build_services(settings)
    ledger = services.credit_ledger
    totals = ledger.get_balance(user_id)

    console.print(
        f"[bold]Balance:[/bold] {totals['balance']}  "
        f"[bold]Earned:[/bold] {totals['total_earned']}  "
        f"[bold]Spent:[/bold] {totals['total_spent']}"
    )

    table = Table(title=f"Transactions for {user_id}")
    table.add_column("Date", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Amount", justify="right", style="green")
    table.add_column("Description")
    for transaction in ledger.get_transactions(user_id, limit=limit):
        table.add_row(
            transaction.created_at.strftime("%Y-%m-%d %H:%M") if transaction.created_at else "",
            transaction.type,
            str(transaction.amount),
            transaction.description or "",
        )
    console.print(table)


@app.command("serve")
def serve(
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Port")] = 8000,
) -> None:
    """Run the API server."""
    import uvicorn

    uvicorn.run("creditwise.api.main:create_app", factory=True, host=host, port=port)


if __name__ == "__main__":
    app()
