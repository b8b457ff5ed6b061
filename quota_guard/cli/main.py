"""
CLI interface for Quota Guard.

Operator access to quota lookups, grants and store maintenance.
"""

import json
import logging
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from quota_guard.config.factory import build_backend, build_ledger, build_query
from quota_guard.config.loader import AppConfig, load_app_config
from quota_guard.core.grants import DirectGrant, GrantRejected, handle_grant_payload, ingest_grant
from quota_guard.core.identity import resolve_account_id
from quota_guard.core.ledger import DEFAULT_GRANT_AMOUNT
from quota_guard.core.query import QuotaStatus
from quota_guard.storage.repository import StorageError

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _config_option():
    return typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file"
    )


def _load_config(config_path: Optional[str]) -> AppConfig:
    if config_path is None:
        return AppConfig.default()
    return load_app_config(config_path)


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {message}")
    sys.exit(EXIT_CODE_FAIL)


def _display_status(status: QuotaStatus) -> None:
    table = Table(title=f"Quota for {status.account_id or '(empty id)'}")
    table.add_column("Field")
    table.add_column("Value", justify="right")
    table.add_row("start", str(status.start))
    table.add_row("count", str(status.count))
    if status.banned:
        table.add_row("banned", "[red]yes[/]")
    else:
        table.add_row("extendedQuota", str(status.extended_quota))
        table.add_row("limit", str(status.limit))
        table.add_row("remaining", str(status.remaining))
    console.print(table)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """Quota Guard CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    if ctx.invoked_subcommand is None:
        console.print("Quota Guard - Use --help to see available commands")


@app.command()
def init(config_path: Optional[str] = _config_option()):
    """Create the quota store if it does not exist."""
    try:
        config = _load_config(config_path)
        backend = build_backend(config)
        backend.initialize()
        console.print(f"[green]✓[/] Store initialized at {backend.describe()}")
        sys.exit(EXIT_CODE_PASS)
    except (OSError, ValueError, yaml.YAMLError) as e:
        _fail(f"initializing store: {e}")


@app.command()
def status(config_path: Optional[str] = _config_option()):
    """Show store location, account count and retention policy."""
    try:
        config = _load_config(config_path)
        ledger = build_ledger(config)
        accounts = ledger.count_accounts()
    except (OSError, ValueError, yaml.YAMLError, StorageError) as e:
        _fail(str(e))

    console.print(f"Store: {ledger.repository.backend.describe()}")
    console.print(f"Failure policy: {config.storage.failure_policy.value}")
    console.print(f"Accounts: {accounts}")
    console.print(f"Banned ids: {len(config.banned_ids)}")
    if ledger.retention.keeps_forever:
        console.print(
            "[yellow]Retention: records are kept forever; the store grows "
            "with every distinct account[/]"
        )
    else:
        days = config.retention.max_idle_days
        console.print(f"Retention: idle records evicted after {days:g} days")


@app.command()
def show(
    account_id: str = typer.Argument(..., help="Account identifier"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw response payload"),
    config_path: Optional[str] = _config_option()
):
    """Show an account's quota without consuming."""
    _lookup(account_id, consume=False, as_json=as_json, config_path=config_path)


@app.command()
def consume(
    account_id: str = typer.Argument(..., help="Account identifier"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw response payload"),
    config_path: Optional[str] = _config_option()
):
    """Consume one unit of an account's quota."""
    _lookup(account_id, consume=True, as_json=as_json, config_path=config_path)


def _lookup(account_id: str, consume: bool, as_json: bool, config_path: Optional[str]) -> None:
    try:
        query = build_query(_load_config(config_path))
        result = query.lookup(account_id, consume=consume)
    except (OSError, ValueError, yaml.YAMLError, StorageError) as e:
        _fail(str(e))

    if as_json:
        typer.echo(json.dumps(result.to_payload()))
    else:
        _display_status(result)


@app.command()
def grant(
    account_id: str = typer.Argument(..., help="Account identifier"),
    amount: int = typer.Option(
        DEFAULT_GRANT_AMOUNT,
        "--amount",
        "-a",
        help="Extra units to grant"
    ),
    config_path: Optional[str] = _config_option()
):
    """Grant an account extra quota."""
    try:
        ledger = build_ledger(_load_config(config_path))
        outcome = ingest_grant(ledger, DirectGrant(account_id=account_id, amount=amount))
    except GrantRejected as e:
        _fail(f"grant rejected: {e}")
    except (OSError, ValueError, yaml.YAMLError, StorageError) as e:
        _fail(str(e))

    console.print(f"[green]✓[/] {outcome.message}")
    console.print(f"extendedQuota: {outcome.record.extended_quota}")


@app.command()
def ingest(
    payload_file: str = typer.Argument(..., help="JSON file holding a webhook payload"),
    config_path: Optional[str] = _config_option()
):
    """Apply a payment webhook or direct-grant payload."""
    try:
        with open(payload_file, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, ValueError) as e:
        _fail(f"reading payload: {e}")

    try:
        ledger = build_ledger(_load_config(config_path))
        outcome = handle_grant_payload(ledger, payload)
    except GrantRejected as e:
        _fail(f"grant rejected: {e}")
    except (OSError, ValueError, yaml.YAMLError, StorageError) as e:
        _fail(str(e))

    console.print(f"[green]✓[/] {outcome.message}")
    console.print(f"Account: {outcome.account_id}  +{outcome.amount}")


@app.command()
def resolve(email: str = typer.Argument(..., help="Customer email")):
    """Print the account identifier derived from an email."""
    typer.echo(resolve_account_id(email))


@app.command()
def prune(config_path: Optional[str] = _config_option()):
    """Evict idle records according to the retention policy."""
    try:
        ledger = build_ledger(_load_config(config_path))
        if ledger.retention.keeps_forever:
            console.print("[yellow]Retention policy keeps records forever; nothing to prune[/]")
            sys.exit(EXIT_CODE_PASS)
        removed = ledger.prune()
    except (OSError, ValueError, yaml.YAMLError, StorageError) as e:
        _fail(str(e))

    console.print(f"[green]✓[/] Pruned {removed} idle records")


if __name__ == "__main__":
    app()
