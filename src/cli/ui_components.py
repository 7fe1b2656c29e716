"""UI components for the CLI (Rich).

Kept apart from the commands so tables and panels can be reused by
`config`, `doctor` and the download commands.
"""

from __future__ import annotations

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.config import AppSettings, mask_secret
from core.domain.models import DownloadReport


def print_banner(console: Console, version: str) -> None:
    title = Text("dd-sync", style="bold magenta")
    subtitle = Text(f"Datadog dashboards & monitors as files • v{version}", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="magenta", padding=(1, 4)))


def build_config_table(settings: AppSettings) -> Table:
    """Effective configuration; credentials are masked."""

    table = Table(title="dd-sync configuration")
    table.add_column("Setting", style="bright_green", no_wrap=True)
    table.add_column("Value", style="white")

    rows = [
        ("DD_API_KEY", mask_secret(settings.dd_api_key)),
        ("DD_APP_KEY", mask_secret(settings.dd_app_key)),
        ("DD_SITE", settings.dd_site),
        ("API base URL", settings.api_base_url),
        ("DATA_DIR", str(settings.data_dir)),
        ("DASHBOARDS_PATH_TEMPLATE", settings.dashboards_path_template),
        ("MONITORS_PATH_TEMPLATE", settings.monitors_path_template),
        ("HTTP_TIMEOUT", f"{settings.http_timeout:g}s"),
        ("HTTP_MAX_BODY_SIZE", str(settings.http_max_body_size)),
        ("HTTP_MAX_CONCURRENCY", str(settings.http_max_concurrency)),
        ("HTTP_RETRIES", str(settings.http_retries)),
        ("PAGE_SIZE", str(settings.page_size)),
        ("LOG_LEVEL", settings.log_level),
        ("LOG_FORMAT", settings.log_format or "auto"),
    ]
    for name, value in rows:
        table.add_row(name, value)
    return table


def build_summary_table(report: DownloadReport) -> Table:
    table = Table(title=f"{report.kind.capitalize()} download")
    table.add_column("Saved", style="green", justify="right")
    table.add_column("Failed", style="red", justify="right")
    table.add_row(str(len(report.saved)), str(len(report.failures)))
    return table


def build_failures_panel(report: DownloadReport) -> Panel:
    body = Text()
    for failure in report.failures:
        body.append(f"- {failure.message}", style="red")
        body.append(f"  ({failure.error_type})\n", style="dim")
    return Panel(body, title=Text("Failures", style="bold red"), border_style="red")
