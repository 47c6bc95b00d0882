"""
Run ledger commands.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Inspect and maintain the run ledger",
    no_args_is_help=True,
)


def _sync_label(row) -> str:
    if row.upload_results is None:
        return "[dim]pending[/dim]"
    if row.needs_sync:
        failed = sum(1 for r in row.upload_results if not r.ok)
        if not failed:
            return "[red]sheet row failed[/red]"
        return f"[red]{failed} failed[/red]"
    return "[green]synced[/green]"


@app.command("status")
def ledger_status(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", help="Most recent rows to show"),
    pending: bool = typer.Option(False, "--pending", help="Only rows waiting for the mirror"),
) -> None:
    """Show recorded entities and their mirror state."""
    from tenderfetch.cli.main import load_config
    from tenderfetch.persistence.ledger import RunLedger

    config = load_config(ctx)
    ledger = RunLedger.open(config.paths.ledger_file)

    rows = ledger.pending_sync() if pending else ledger.rows
    if not rows:
        console.print("[dim]No ledger rows[/dim]")
        return

    table = Table(title=f"Run ledger ({len(ledger)} entities, {len(ledger.pending_sync())} pending sync)")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Section", style="dim")
    table.add_column("DL", justify="right")
    table.add_column("Not DL", justify="right")
    table.add_column("Downloaded at", style="dim")
    table.add_column("Mirror")

    for row in rows[-limit:]:
        table.add_row(
            row.entity_id,
            row.entity_name[:40] + ("..." if len(row.entity_name) > 40 else ""),
            row.section_name,
            str(len(row.downloaded)),
            str(len(row.not_downloaded)),
            row.downloaded_at.strftime("%Y-%m-%d %H:%M") if row.downloaded_at else "-",
            _sync_label(row),
        )

    console.print(table)


@app.command("check")
def ledger_check(ctx: typer.Context) -> None:
    """Compare recorded downloads against the files on disk."""
    from tenderfetch.cli.main import load_config
    from tenderfetch.persistence.ledger import RunLedger
    from tenderfetch.persistence.store import EntityStore

    config = load_config(ctx)
    ledger = RunLedger.open(config.paths.ledger_file)
    missing = ledger.reconcile(EntityStore(config.paths.data_dir))

    if not missing:
        console.print(f"[green]OK[/green] All recorded downloads present ({len(ledger)} entities)")
        return

    table = Table(title=f"{len(missing)} missing file(s)")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("File", style="red")
    for item in missing:
        table.add_row(item.entity_id, item.entity_name, item.file_name)
    console.print(table)
    raise typer.Exit(1)


@app.command("prune")
def ledger_prune(
    ctx: typer.Context,
    days: Optional[int] = typer.Option(
        None,
        "--days",
        "-d",
        help="Retention in days (default: retention.retention_days)",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete entity folders older than the retention window.

    Ledger rows are kept, so pruned entities are not downloaded again.
    """
    from tenderfetch.cli.main import load_config
    from tenderfetch.persistence.ledger import RunLedger
    from tenderfetch.persistence.store import EntityStore

    config = load_config(ctx)
    retention_days = days if days is not None else config.retention.retention_days
    if retention_days < 0:
        err_console.print("[red]Retention must not be negative[/red]")
        raise typer.Exit(1)

    if not yes and not typer.confirm(
        f"Delete folders in {config.paths.data_dir} older than {retention_days} day(s)?",
        default=False,
    ):
        raise typer.Abort()

    ledger = RunLedger.open(config.paths.ledger_file)
    pruned = ledger.prune(EntityStore(config.paths.data_dir), timedelta(days=retention_days))

    for folder in pruned:
        console.print(f"  [dim]-[/dim] {folder.name}")
    console.print(f"[green]OK[/green] Pruned {len(pruned)} folder(s)")
