# emission/cli/main.py
"""
CLI for deploying, operating, auditing and exporting emission ledgers.
"""

import os
import json
import sqlite3
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from emission.core.errors import LedgerError
from emission.deploy.deployer import Deployment, deploy as deploy_ledger, load_deployment
from emission.storage import SQLiteStorage
from emission.verify.auditor import JournalAuditor

app = typer.Typer(
    name="emission",
    help="Deploy and operate capped, role-gated token ledgers",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

# Options given before the subcommand; set by the app callback on every run.
state = {"db": None}


def get_db_path(db_flag: Optional[Path] = None) -> Path:
    """Resolve DB path in this order:
    1. --db flag (after or before the subcommand)
    2. EMISSION_DB_PATH environment variable
    3. Default: ~/.emission/emission.db
    """
    db_flag = db_flag or state["db"]
    if db_flag:
        path = db_flag.resolve()
    else:
        env_path = os.environ.get("EMISSION_DB_PATH")
        if env_path:
            path = Path(env_path).resolve()
        else:
            path = Path.home() / ".emission" / "emission.db"

    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def open_storage(db: Optional[Path], must_exist: bool = True) -> SQLiteStorage:
    db_path = get_db_path(db)

    if must_exist and not db_path.exists():
        console.print(f"[red]Database file not found: {db_path}[/]")
        console.print("[yellow]To get started:[/]")
        console.print("  • Deploy a ledger first: emission deploy NAME SYMBOL --from 0x...")
        console.print("  • Set env var: export EMISSION_DB_PATH=/path/to/your.db")
        raise typer.Exit(1)

    try:
        return SQLiteStorage(db_path)
    except Exception as e:
        console.print(f"[red]Failed to open database: {str(e)}[/]")
        raise typer.Exit(1)


def open_deployment(address: str, storage: SQLiteStorage) -> Deployment:
    try:
        return load_deployment(address, storage)
    except (ValueError, LedgerError) as e:
        console.print(f"[red]Failed to load ledger '{address}': {str(e)}[/]")
        raise typer.Exit(1)


def run_operation(fn, *args) -> None:
    """Call a ledger operation, turning rejections into a red message and exit code 1."""
    try:
        fn(*args)
    except LedgerError as e:
        console.print(f"[red]Rejected ({e.reason}): {e.message}[/]")
        raise typer.Exit(1)
    except sqlite3.Error as e:
        console.print(f"[red]Failed to persist change: {str(e)}[/]")
        raise typer.Exit(1)


@app.callback()
def main(
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Path to SQLite database (overrides EMISSION_DB_PATH env var)",
    ),
):
    """Manage emission ledgers."""
    state["db"] = db


@app.command()
def deploy(
    name: str = typer.Argument(..., help="Token name, e.g. 'LET coin'"),
    symbol: str = typer.Argument(..., help="Token symbol, e.g. LET"),
    sender: str = typer.Option(..., "--from", help="Deploying account; becomes the owner"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Deploy a new ledger owned by the --from account."""
    with open_storage(db, must_exist=False) as storage:
        console.print(f"Deploying contracts with the account: {sender}")
        try:
            deployment = deploy_ledger(name, symbol, sender, storage=storage)
        except (ValueError, LedgerError) as e:
            console.print(f"[red]Deployment failed: {str(e)}[/]")
            raise typer.Exit(1)
        except sqlite3.Error as e:
            console.print(f"[red]Deployment failed, nothing was written: {str(e)}[/]")
            raise typer.Exit(1)

    console.print(f"[green]{name} contract address: {deployment.address}[/]")


@app.command()
def deployments(
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """List all deployed ledgers."""
    with open_storage(db) as storage:
        try:
            records = storage.list_deployments()
        except sqlite3.OperationalError as e:
            console.print(f"[yellow]Database is empty or schema missing: {str(e)}[/]")
            raise typer.Exit(0)

        if not records:
            console.print("[yellow]No deployments found in database.[/]")
            return

        table = Table(title="Deployments")
        table.add_column("Address")
        table.add_column("Name")
        table.add_column("Symbol")
        table.add_column("Deployer")
        table.add_column("Events")

        for r in records:
            table.add_row(r.address, r.name, r.symbol, r.deployer, str(storage.get_event_count(r.address)))

    console.print(table)


@app.command()
def info(
    address: str = typer.Argument(..., help="Ledger address"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Show name, supply, cap, owner and minters of a ledger."""
    with open_storage(db) as storage:
        snap = open_deployment(address, storage).ledger.snapshot()

    table = Table(title=f"{snap.name} ({snap.symbol})")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Owner", snap.owner)
    table.add_row("Decimals", str(snap.decimals))
    table.add_row("Total supply", str(snap.total_supply))
    table.add_row("Max emission", str(snap.max_emission) if snap.max_emission else "0 (uncapped)")
    table.add_row("Minters", "\n".join(snap.minters) or "—")
    console.print(table)


@app.command()
def balance(
    address: str = typer.Argument(..., help="Ledger address"),
    account: str = typer.Argument(..., help="Account to query"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Show the balance of an account."""
    with open_storage(db) as storage:
        ledger = open_deployment(address, storage).ledger
    try:
        amount = ledger.balance_of(account)
    except LedgerError as e:
        console.print(f"[red]Rejected ({e.reason}): {e.message}[/]")
        raise typer.Exit(1)
    console.print(f"{account}: {amount} {ledger.symbol}")


@app.command()
def mint(
    address: str = typer.Argument(..., help="Ledger address"),
    to: str = typer.Argument(..., help="Recipient account"),
    amount: int = typer.Argument(..., help="Raw integer amount"),
    sender: str = typer.Option(..., "--from", help="Calling account (owner or minter)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Mint new supply to an account."""
    with open_storage(db) as storage:
        ledger = open_deployment(address, storage).ledger
        run_operation(ledger.mint, sender, to, amount)
    console.print(f"[green]Minted {amount} {ledger.symbol} to {to}[/] (total supply {ledger.total_supply})")


@app.command("grant-minter")
def grant_minter(
    address: str = typer.Argument(..., help="Ledger address"),
    account: str = typer.Argument(..., help="Account to grant the minter role"),
    sender: str = typer.Option(..., "--from", help="Calling account (owner)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Grant the minter role."""
    with open_storage(db) as storage:
        ledger = open_deployment(address, storage).ledger
        run_operation(ledger.set_minter_role, sender, account)
    console.print(f"[green]{account} is now a minter[/]")


@app.command("revoke-minter")
def revoke_minter(
    address: str = typer.Argument(..., help="Ledger address"),
    account: str = typer.Argument(..., help="Account to revoke"),
    sender: str = typer.Option(..., "--from", help="Calling account (owner)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Revoke the minter role."""
    with open_storage(db) as storage:
        ledger = open_deployment(address, storage).ledger
        run_operation(ledger.revoke_minter_role, sender, account)
    console.print(f"[green]{account} is no longer a minter[/]")


@app.command("set-max-emission")
def set_max_emission(
    address: str = typer.Argument(..., help="Ledger address"),
    cap: int = typer.Argument(..., help="New cap in raw units; 0 removes the cap"),
    sender: str = typer.Option(..., "--from", help="Calling account (owner)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Set or remove the emission cap."""
    with open_storage(db) as storage:
        ledger = open_deployment(address, storage).ledger
        run_operation(ledger.set_max_emission, sender, cap)
    console.print(f"[green]Max emission set to {cap}[/]")


@app.command("transfer-ownership")
def transfer_ownership(
    address: str = typer.Argument(..., help="Ledger address"),
    new_owner: str = typer.Argument(..., help="Account that becomes the owner"),
    sender: str = typer.Option(..., "--from", help="Calling account (current owner)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Hand ownership to another account."""
    with open_storage(db) as storage:
        ledger = open_deployment(address, storage).ledger
        run_operation(ledger.transfer_ownership, sender, new_owner)
    console.print(f"[green]Ownership transferred to {new_owner}[/]")


@app.command()
def events(
    address: str = typer.Argument(..., help="Ledger address"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of recent events to show"),
):
    """Show the most recent events of a ledger."""
    with open_storage(db) as storage:
        try:
            evts = storage.query_events(address, limit=limit)
        except sqlite3.OperationalError as e:
            console.print(f"[yellow]Database is empty or schema missing: {str(e)}[/]")
            raise typer.Exit(0)

    if not evts:
        console.print(f"[yellow]No events found for ledger '{address}'[/]")
        return

    for evt in evts:
        console.print(f"[bold cyan]{evt.sequence:4d} | {evt.timestamp} | {evt.kind:20} | {evt.caller}[/]")
        console.print(f"  {json.dumps(evt.payload, sort_keys=True)}")


@app.command()
def verify(
    address: str = typer.Argument(..., help="Ledger address"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """Audit a ledger's journal (hash chain, replay, supply invariants)."""
    with open_storage(db) as storage:
        result = JournalAuditor().audit_from_storage(address, storage)

    if result.is_valid:
        console.print(f"[green]✓ Ledger '{address}' is valid[/]")
        console.print(f"  {result.message}")
    else:
        console.print(f"[red]✗ Audit failed for ledger '{address}'[/]")
        for failure in result.failures:
            console.print(f"  • [{failure.index}] {failure.category}: {failure.message}")
        raise typer.Exit(1)


@app.command()
def export(
    address: str = typer.Argument(..., help="Ledger address"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: <address>.jsonl)"),
):
    """Export a ledger's journal as JSONL (one event per line)."""
    with open_storage(db) as storage:
        try:
            evts = storage.load_events(address)
        except Exception as e:
            console.print(f"[red]Failed to load journal for '{address}': {str(e)}[/]")
            raise typer.Exit(1)

    if not evts:
        console.print(f"[yellow]No events found for ledger '{address}'[/]")
        raise typer.Exit(0)

    out_path = output or Path(f"{address}.jsonl")
    with open(out_path, "w", encoding="utf-8") as f:
        for evt in evts:
            json.dump(evt.to_dict(), f, separators=(",", ":"))
            f.write("\n")

    console.print(f"[green]Exported {len(evts)} events to {out_path}[/]")


if __name__ == "__main__":
    app()
