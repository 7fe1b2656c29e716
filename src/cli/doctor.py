"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import httpx
import typer
from rich.console import Console
from rich.table import Table

from adapters.http_client import build_async_client
from core.config import AppSettings, get_user_env_file, load_settings, mask_secret, write_user_env_vars
from core.domain.errors import DDSyncError

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and credential setup.")

_console = Console()

VALIDATE_PATH = "/api/v1/validate"


async def _check_api(settings: AppSettings, *, transport: httpx.AsyncBaseTransport | None = None) -> tuple[bool, str]:
    """Call the key validation endpoint once, without retries."""

    url = f"{settings.api_base_url}{VALIDATE_PATH}"
    try:
        async with build_async_client(settings, transport=transport) as client:
            response = await client.get(url)
    except httpx.HTTPError as exc:
        return False, f"{type(exc).__name__}: {exc}"
    if response.status_code == httpx.codes.OK:
        return True, f"HTTP {response.status_code} from {settings.api_base_url}"
    if response.status_code == httpx.codes.FORBIDDEN:
        return False, "HTTP 403: API key rejected"
    return False, f"HTTP {response.status_code} {response.reason_phrase}"


@app.command()
def run() -> None:
    """Check configuration and connectivity to the Datadog API."""

    table = Table(title="dd-sync doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    try:
        settings = load_settings()
    except DDSyncError as exc:
        table.add_row("Configuration", "FAIL", str(exc))
        _console.print(table)
        if exc.hint:
            _console.print(f"\n[yellow]Hint:[/yellow] {exc.hint}")
        raise typer.Exit(code=1)

    table.add_row("Configuration", "OK", f"API key {mask_secret(settings.dd_api_key)}")
    table.add_row("Site", "OK", settings.dd_site)

    data_dir = settings.data_dir
    if data_dir.exists() and not data_dir.is_dir():
        table.add_row("Data directory", "FAIL", f"{data_dir} is not a directory")
        ok_dir = False
    else:
        table.add_row("Data directory", "OK", str(data_dir) if data_dir.exists() else f"{data_dir} (created on first download)")
        ok_dir = True

    ok_api, detail_api = asyncio.run(_check_api(settings))
    table.add_row("API connectivity", "OK" if ok_api else "FAIL", detail_api)

    _console.print(table)
    if not (ok_api and ok_dir):
        raise typer.Exit(code=1)


@app.command()
def setup() -> None:
    """Interactive credential setup (stores config in the user config .env)."""

    api_key = typer.prompt("Datadog API key", hide_input=True).strip()
    app_key = typer.prompt("Datadog application key", hide_input=True).strip()
    site = typer.prompt("Datadog site", default="datadoghq.com", show_default=True).strip()

    if not api_key or not app_key:
        raise typer.BadParameter("API key and application key are required")

    env_path = write_user_env_vars(
        {
            "DD_API_KEY": api_key,
            "DD_APP_KEY": app_key,
            "DD_SITE": site or "datadoghq.com",
        },
        env_path=get_user_env_file(),
    )

    _console.print(f"[green]Saved credentials to:[/green] {env_path}")
