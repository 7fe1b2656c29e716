"""Core configuration.

Settings are read with pydantic-settings from the environment, the project
`.env` and the per-user `.env`, so the CLI and the adapters share a single
typed contract.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.domain.errors import DDSyncError


def get_user_config_dir() -> Path:
    """Per-user configuration directory (cross-platform, no extra dependencies)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "dd-sync"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "dd-sync"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "dd-sync"
    return Path.home() / ".config" / "dd-sync"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str], *, env_path: Path | None = None) -> Path:
    """Write or update variables in the user's global `.env`."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# dd-sync user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


def mask_secret(secret: str) -> str:
    """Mask all but the last 4 characters of a secret."""

    if len(secret) <= 4:
        return "****"
    return "****" + secret[-4:]


class AppSettings(BaseSettings):
    """Central application settings.

    Field names map case-insensitively onto the environment variables the
    tool documents (`DD_API_KEY`, `DATA_DIR`, `PAGE_SIZE`, ...).
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=False,
        # Project first (dev), then the user's global config.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    dd_api_key: str = Field(
        ...,
        min_length=1,
        description="Datadog API key (DD-API-KEY header).",
    )
    dd_app_key: str = Field(
        ...,
        min_length=1,
        description="Datadog application key (DD-APPLICATION-KEY header).",
    )
    dd_site: str = Field(
        default="datadoghq.com",
        min_length=1,
        description="Datadog site; requests go to https://api.<site>.",
    )

    data_dir: Path = Field(
        default=Path("data"),
        description="Root directory for downloaded resources.",
    )
    dashboards_path_template: str = Field(
        default="{DATA_DIR}/dashboards/{id}.json",
        min_length=1,
        description="Path template for dashboard files.",
    )
    monitors_path_template: str = Field(
        default="{DATA_DIR}/monitors/{id}.json",
        min_length=1,
        description="Path template for monitor files.",
    )

    http_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Per-request timeout (seconds).",
    )
    http_max_body_size: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Maximum number of bytes of an error body kept in messages.",
    )
    http_max_concurrency: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Maximum simultaneous in-flight requests for the whole process.",
    )
    http_retries: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Retries after the first attempt (transport errors, 429, 5xx).",
    )
    page_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Items requested per listing page.",
    )

    log_level: str = Field(default="info", description="debug, info, warn or error.")
    log_format: str | None = Field(default=None, description="text, json or color.")

    @field_validator("dd_site")
    @classmethod
    def _strip_site(cls, value: str) -> str:
        value = value.strip().removeprefix("https://").removeprefix("api.").rstrip("/")
        if not value:
            raise ValueError("DD_SITE must not be empty")
        return value

    @property
    def api_base_url(self) -> str:
        return f"https://api.{self.dd_site}"


def load_settings(**overrides: object) -> AppSettings:
    """Build `AppSettings`, turning validation errors into a `DDSyncError`."""

    try:
        return AppSettings(**overrides)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']).upper() or 'settings'}: {err['msg']}"
            for err in exc.errors()
        )
        raise DDSyncError(
            f"invalid configuration: {problems}",
            hint="Set DD_API_KEY and DD_APP_KEY (or run `dd-sync doctor setup`).",
        ) from exc
