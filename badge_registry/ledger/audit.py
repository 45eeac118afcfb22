"""
Event Ledger Audit Tool — independent chain integrity verification.

Anyone holding a copy of the event ledger may run this tool to verify that
no badge event has been altered or removed after it was recorded. It
recomputes every hash in the chain from the stored fields.

Usage:
    python -m badge_registry.ledger.audit
    python -m badge_registry.ledger.audit --database-url sqlite:///badge_events.db
    python -m badge_registry.ledger.audit --verbose
"""

from __future__ import annotations

import argparse
import sys
import time

from rich.console import Console
from rich.table import Table

from badge_registry.config import settings
from badge_registry.ledger.service import EventLedgerService

console = Console()


def run_audit(database_url: str, verbose: bool = False) -> bool:
    """
    Run a full hash chain integrity audit.

    Args:
        database_url: SQLAlchemy connection string.
        verbose: Print the full event listing if True.

    Returns:
        True if the chain is valid, False otherwise.
    """
    console.print("\n[bold blue]═══ Badge Event Ledger Audit ═══[/bold blue]\n")

    service = EventLedgerService(database_url)

    count = service.get_entry_count()
    console.print(f"  Entries in ledger: [bold]{count}[/bold]")

    if count == 0:
        console.print("[yellow]⚠ Ledger is empty — no entries to verify[/yellow]")
        return True

    console.print("  Verifying hash chain...", end=" ")
    start_time = time.time()

    is_valid, entries_verified, message = service.verify_chain()

    elapsed = time.time() - start_time

    if is_valid:
        console.print("[bold green]✓ VALID[/bold green]")
        console.print(f"  Entries verified: [bold]{entries_verified}[/bold]")
        console.print(f"  Verification time: {elapsed:.3f}s")
    else:
        console.print("[bold red]✗ INVALID[/bold red]")
        console.print(f"  Failure at entry: {entries_verified}")
        console.print(f"  Reason: {message}")

    if verbose:
        console.print("\n[bold]Event Listing:[/bold]")
        table = Table(show_lines=True)
        table.add_column("Seq", style="cyan", width=6)
        table.add_column("Event", style="green", width=20)
        table.add_column("Actor", style="yellow", width=44)
        table.add_column("Badge", width=7)
        table.add_column("Registry time", width=14)
        table.add_column("Hash (first 16)", style="dim", width=18)

        entries = service.get_latest_entries(limit=count)
        for entry in reversed(entries):
            table.add_row(
                str(entry.sequence_number),
                entry.event_type,
                entry.actor or "—",
                str(entry.payload.get("membership_id", "—")),
                str(entry.registry_time),
                entry.entry_hash[:16] + "...",
            )
        console.print(table)

    console.print("\n[bold blue]═══ Audit Complete ═══[/bold blue]\n")
    return is_valid


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Badge Registry event ledger integrity auditor"
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy connection string (defaults to .env settings)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show detailed event listing",
    )
    args = parser.parse_args()

    db_url = args.database_url or settings.event_store_url
    is_valid = run_audit(db_url, verbose=args.verbose)
    sys.exit(0 if is_valid else 1)


if __name__ == "__main__":
    main()
