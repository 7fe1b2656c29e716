"""Shared fixtures.

Nothing here touches the network: HTTP goes through ``httpx.MockTransport``
and settings never read a ``.env`` file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from adapters.http_client import RateLimitedClient
from core.config import AppSettings

BASE_URL = "https://api.datadoghq.com"

_ENV_VARS = (
    "DD_API_KEY",
    "DD_APP_KEY",
    "DD_SITE",
    "DATA_DIR",
    "DASHBOARDS_PATH_TEMPLATE",
    "MONITORS_PATH_TEMPLATE",
    "HTTP_TIMEOUT",
    "HTTP_MAX_BODY_SIZE",
    "HTTP_MAX_CONCURRENCY",
    "HTTP_RETRIES",
    "PAGE_SIZE",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def settings(data_dir: Path) -> AppSettings:
    return AppSettings(
        dd_api_key="test-api-key-1234",
        dd_app_key="test-app-key-5678",
        data_dir=data_dir,
        page_size=2,
        _env_file=None,
    )


class Recorder:
    """MockTransport handler wrapper that keeps every request it saw."""

    def __init__(self, handler: Callable[[httpx.Request], Any]) -> None:
        self._handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> Any:
        self.requests.append(request)
        return self._handler(request)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


@pytest.fixture
def make_client(settings: AppSettings) -> Callable[..., tuple[RateLimitedClient, Recorder]]:
    """Build a `RateLimitedClient` over a recording MockTransport, without backoff or minimum pause delays."""

    def _make(handler: Callable[[httpx.Request], Any], **kwargs: Any) -> tuple[RateLimitedClient, Recorder]:
        recorder = Recorder(handler)
        kwargs.setdefault("backoff_base", 0.0)
        kwargs.setdefault("min_pause", 0.0)
        client = RateLimitedClient.from_settings(
            settings,
            transport=httpx.MockTransport(recorder),
            **kwargs,
        )
        return client, recorder

    return _make


@pytest.fixture(autouse=True)
def restore_root_logging():
    """The CLI reconfigures the root logger; put it back after each test."""

    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
