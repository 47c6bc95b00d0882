"""
TenderFetch CLI - Main entry point.

Running ``tenderfetch`` without a sub-command performs a full sync run;
``tenderfetch upload`` only pushes pending ledger rows to the mirror.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tenderfetch import __app_name__, __version__
from tenderfetch.core.config.loader import (
    DEFAULT_CONFIG_PATH,
    ConfigError,
    load_app_config,
    render_default_config,
    validate_config_file,
)
from tenderfetch.core.config.models import AppConfig
from tenderfetch.core.errors import ConnectivityError, MirrorError
from tenderfetch.core.logging import setup_logging
from tenderfetch.core.orchestrator.runner import (
    RunReport,
    RunStatus,
    notify_failure,
    run_mirror_pass,
    run_sync,
)

# Load environment variables from .env (if present)
load_dotenv()

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name=__app_name__,
    help="Procurement attachment crawler with a run ledger and Google Drive mirror",
    rich_markup_mode="rich",
    no_args_is_help=False,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]{__app_name__}[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


def load_config(ctx: typer.Context) -> AppConfig:
    """Load the configuration selected on the command line and set up logging."""
    options = ctx.find_root().obj or {}
    path = options.get("config_path", DEFAULT_CONFIG_PATH)

    try:
        config = load_app_config(path)
    except ConfigError as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        if e.details:
            err_console.print(f"[dim]{e.details}[/dim]")
        raise typer.Exit(1)

    level = "DEBUG" if options.get("verbose") else config.logging.level
    setup_logging(
        level=level,
        log_file=config.logging.file,
        error_file=config.logging.error_file,
        json_format=config.logging.json_format,
        rich_console=config.logging.rich_console,
    )
    return config


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Configuration file (.toml or .yaml)",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Log at DEBUG level"),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """TenderFetch - download procurement attachments and mirror them."""
    ctx.obj = {"config_path": config_path, "verbose": verbose}
    if ctx.invoked_subcommand is None:
        run_command(ctx)


# =============================================================================
# Run Commands
# =============================================================================


@app.command("run")
def run_command(ctx: typer.Context) -> None:
    """Run a full sync: crawl, download, record, mirror and notify."""
    config = load_config(ctx)

    try:
        report = asyncio.run(run_sync(config))
    except Exception as e:
        title = "Portal unreachable" if isinstance(e, ConnectivityError) else "Run aborted"
        err_console.print(f"[red]{title}:[/red] {e}")
        asyncio.run(notify_failure(config, title, e))
        raise typer.Exit(1)

    _print_report(report)


@app.command("upload")
def upload_command(ctx: typer.Context) -> None:
    """Upload pending ledger rows to the mirror without visiting the portal."""
    config = load_config(ctx)

    try:
        summary = asyncio.run(run_mirror_pass(config))
    except MirrorError as e:
        err_console.print(f"[red]Mirror upload failed:[/red] {e}")
        raise typer.Exit(1)
    except Exception as e:
        err_console.print(f"[red]Mirror upload aborted:[/red] {e}")
        asyncio.run(notify_failure(config, "Mirror upload aborted", e))
        raise typer.Exit(1)

    console.print(
        f"[green]Mirrored {summary.entities} entities[/green]: "
        f"{summary.uploaded} uploaded, {summary.failed} failed"
    )
    for failure in summary.failures:
        console.print(f"  [red]-[/red] {failure}")


def _print_report(report: RunReport) -> None:
    style = {
        RunStatus.COMPLETED: "green",
        RunStatus.PARTIAL: "yellow",
        RunStatus.NOTHING_NEW: "cyan",
        RunStatus.SERVICE_UNAVAILABLE: "yellow",
    }[report.status]

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value")
    for key, value in report.to_dict().items():
        if key == "duration_seconds" and value is not None:
            value = f"{value:.1f}s"
        table.add_row(key.replace("_", " "), str(value))

    console.print(Panel(table, title=f"[bold {style}]Run {report.status.value}[/bold {style}]"))


# =============================================================================
# Config Commands
# =============================================================================


@app.command()
def validate(ctx: typer.Context) -> None:
    """Validate the configuration file without running anything."""
    options = ctx.find_root().obj or {}
    path = Path(options.get("config_path", DEFAULT_CONFIG_PATH))

    errors = validate_config_file(path)
    if errors:
        err_console.print(f"[red]{path} is invalid:[/red]")
        for error in errors:
            err_console.print(f"  [red]-[/red] {error}")
        raise typer.Exit(1)

    console.print(f"[green]OK[/green] {path} is valid")


# =============================================================================
# Init Command
# =============================================================================


@app.command()
def init(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing configuration"),
) -> None:
    """Write a default configuration and create working directories."""
    options = ctx.find_root().obj or {}
    path = Path(options.get("config_path", DEFAULT_CONFIG_PATH))

    if path.exists() and not force:
        err_console.print(f"[yellow]{path} already exists[/yellow] (use --force to overwrite)")
        raise typer.Exit(1)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_default_config(), encoding="utf-8")

    for directory in (Path("data"), Path("logs"), Path("snapshots")):
        directory.mkdir(parents=True, exist_ok=True)

    console.print(Panel.fit(
        "[bold green]OK - TenderFetch initialized[/bold green]\n\n"
        "Created:\n"
        f"  - [cyan]{path}[/cyan] - Configuration\n"
        "  - [cyan]data/[/cyan] - Downloaded attachments\n"
        "  - [cyan]logs/[/cyan] - System and error logs\n"
        "  - [cyan]snapshots/[/cyan] - Error screenshots\n\n"
        "Next steps:\n"
        f"  1. Edit [yellow]{path}[/yellow]\n"
        "  2. Run a sync: [yellow]tenderfetch[/yellow]",
        title="[bold]Initialization Complete[/bold]",
        border_style="green",
    ))


# =============================================================================
# Sub-commands
# =============================================================================

from .commands import ledger  # noqa: E402

app.add_typer(ledger.app, name="ledger", help="Inspect and maintain the run ledger")


def run() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    run()
