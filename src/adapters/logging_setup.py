"""Root logger configuration for the CLI.

Three output formats, all on stderr so stdout stays clean for tables:

- `color`: `rich.logging.RichHandler` (default unless `NO_COLOR` is set);
- `text`: plain `logging.Formatter` lines;
- `json`: one JSON object per line.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone

from rich.console import Console
from rich.logging import RichHandler

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

FORMATS = ("color", "text", "json")

_LEVELS = {
    "d": logging.DEBUG,
    "i": logging.INFO,
    "w": logging.WARNING,
    "e": logging.ERROR,
}


class JSONFormatter(logging.Formatter):
    """Serialise records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def parse_level(value: str | None) -> int:
    """`debug|info|warn|error` by first letter; anything else is INFO."""

    if not value:
        return logging.INFO
    return _LEVELS.get(value.strip()[:1].lower(), logging.INFO)


def default_format() -> str:
    return "text" if os.environ.get("NO_COLOR") else "color"


def setup_logging(level: int | str = logging.INFO, fmt: str | None = None) -> None:
    """Replace the root handlers with one configured stderr handler."""

    if isinstance(level, str):
        level = parse_level(level)
    fmt = (fmt or default_format()).strip().lower()
    if fmt not in FORMATS:
        fmt = default_format()

    handler: logging.Handler
    if fmt == "color":
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=level <= logging.DEBUG,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs every request at INFO; keep that for -v only.
    logging.getLogger("httpx").setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
