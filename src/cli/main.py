"""dd-sync command line.

    dd-sync dashboards download --all
    dd-sync monitors download --tags env:prod --priority 1
    dd-sync dashboards download --update

Exit codes: 0 success, 1 failed targets or configuration/API errors,
2 usage errors, 130 interrupted.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Optional

import typer
from rich.console import Console

from adapters.datadog import DASHBOARDS, MONITORS
from adapters.logging_setup import setup_logging
from cli import doctor
from cli.ui_components import build_config_table, build_failures_panel, build_summary_table, print_banner
from core.config import AppSettings, load_settings
from core.domain.errors import DDSyncError, SelectionError
from core.domain.models import DownloadOptions, DownloadReport
from core.domain.tags import parse_csv
from core.interfaces.resource import ResourceKind
from core.services.downloader import sync_resources
from core.services.targets import validate_selection

__version__ = "0.1.0"

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

app = typer.Typer(
    no_args_is_help=True,
    help="Download Datadog dashboards and monitors as JSON files.",
)
dashboards_app = typer.Typer(no_args_is_help=True, help="Dashboard operations.")
monitors_app = typer.Typer(no_args_is_help=True, help="Monitor operations.")

app.add_typer(dashboards_app, name="dashboards")
app.add_typer(monitors_app, name="monitors")
app.add_typer(doctor.app, name="doctor")

_console = Console()


def _is_verbose(ctx: typer.Context) -> bool:
    obj = ctx.find_root().obj
    return bool(obj and obj.get("verbose"))


def _configure_logging(ctx: typer.Context, settings: AppSettings) -> None:
    level: Any = logging.DEBUG if _is_verbose(ctx) else settings.log_level
    setup_logging(level, settings.log_format)


def _fail(exc: DDSyncError) -> typer.Exit:
    _console.print(f"[red]Error:[/red] {exc}")
    if exc.hint:
        _console.print(f"[yellow]Hint:[/yellow] {exc.hint}")
    return typer.Exit(code=EXIT_FAILURE)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(
        logging.DEBUG if verbose else os.environ.get("LOG_LEVEL", "info"),
        os.environ.get("LOG_FORMAT"),
    )


def _run_download(ctx: typer.Context, kind: ResourceKind[Any], options: DownloadOptions) -> None:
    try:
        validate_selection(options)
    except SelectionError as exc:
        message = f"{exc} ({exc.hint})" if exc.hint else str(exc)
        raise typer.BadParameter(message) from exc

    try:
        settings = load_settings()
    except DDSyncError as exc:
        raise _fail(exc) from exc
    _configure_logging(ctx, settings)

    try:
        report: DownloadReport = asyncio.run(sync_resources(kind, options, settings=settings))
    except KeyboardInterrupt:
        _console.print("[yellow]Interrupted.[/yellow]")
        raise typer.Exit(code=EXIT_INTERRUPTED)
    except DDSyncError as exc:
        raise _fail(exc) from exc

    _console.print(build_summary_table(report))
    if not report.ok:
        _console.print(build_failures_panel(report))
        raise typer.Exit(code=EXIT_FAILURE)


@dashboards_app.command("download")
def download_dashboards(
    ctx: typer.Context,
    id_: Optional[str] = typer.Option(None, "--id", help="Comma-separated dashboard IDs."),
    all_: bool = typer.Option(False, "--all", help="Download every dashboard."),
    team: Optional[str] = typer.Option(None, "--team", help="Only dashboards tagged team:<TEAM>."),
    tags: Optional[str] = typer.Option(None, "--tags", help="Comma-separated key:value tags (all must match)."),
    update: bool = typer.Option(False, "--update", help="Re-download dashboards already on disk."),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Path template override."),
) -> None:
    """Download dashboards as JSON files."""

    options = DownloadOptions(
        ids=parse_csv(id_),
        all=all_,
        update=update,
        team=team,
        tags=parse_csv(tags),
        output=output,
    )
    _run_download(ctx, DASHBOARDS, options)


@monitors_app.command("download")
def download_monitors(
    ctx: typer.Context,
    id_: Optional[str] = typer.Option(None, "--id", help="Comma-separated monitor IDs."),
    all_: bool = typer.Option(False, "--all", help="Download every monitor."),
    team: Optional[str] = typer.Option(None, "--team", help="Only monitors tagged team:<TEAM>."),
    tags: Optional[str] = typer.Option(None, "--tags", help="Comma-separated key:value tags (all must match)."),
    priority: Optional[int] = typer.Option(None, "--priority", help="Only monitors with this priority."),
    update: bool = typer.Option(False, "--update", help="Re-download monitors already on disk."),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Path template override."),
) -> None:
    """Download monitors as JSON files."""

    options = DownloadOptions(
        ids=parse_csv(id_),
        all=all_,
        update=update,
        team=team,
        tags=parse_csv(tags),
        priority=priority,
        output=output,
    )
    _run_download(ctx, MONITORS, options)


@app.command("config")
def show_config() -> None:
    """Show the effective configuration (credentials masked)."""

    try:
        settings = load_settings()
    except DDSyncError as exc:
        raise _fail(exc) from exc
    _console.print(build_config_table(settings))


@app.command()
def version() -> None:
    """Show the dd-sync version."""

    print_banner(_console, __version__)


def run() -> None:
    app()
