"""JSON files on disk.

Downloaded resources are written as stable, indented JSON so that diffs
between syncs only show real changes. `scan_ids` reads them back to
recover `id -> path` for `--update` runs.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from core.domain.errors import StorageError

logger = logging.getLogger(__name__)

# Resource files are far below this; anything bigger is not one of ours.
MAX_JSON_FILE_SIZE = 1024 * 1024


def write_json_file(path: Path, payload: dict[str, Any]) -> Path:
    """Write `payload` as UTF-8 JSON, creating parent directories."""

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )
    except OSError as exc:
        raise StorageError(f"failed to write {path}: {exc}") from exc
    return path


def _valid_id(value: Any, id_type: type) -> bool:
    if id_type is int:
        return isinstance(value, int) and not isinstance(value, bool) and value != 0
    return isinstance(value, str) and bool(value)


def scan_ids(root: Path, id_type: type = str) -> dict[Any, Path]:
    """Map top-level `id` -> file for every `*.json` below `root`.

    Unreadable, oversized, unparsable and id-less files are skipped with a
    warning; for duplicate ids the first file (in sorted order) wins.
    """

    if not root.is_dir():
        raise StorageError(
            f"directory does not exist: {root}",
            hint="Download something first, or point the path template at the right place.",
        )

    found: dict[Any, Path] = {}
    for path in sorted(root.rglob("*.json")):
        if not path.is_file():
            continue
        try:
            size = path.stat().st_size
            if size > MAX_JSON_FILE_SIZE:
                logger.warning("Skipping %s (too large: %d bytes)", path, size)
                continue
            content = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to read %s: %s", path, exc)
            continue
        except json.JSONDecodeError as exc:
            logger.warning("Failed to parse %s: %s", path, exc)
            continue

        resource_id = content.get("id") if isinstance(content, dict) else None
        if not _valid_id(resource_id, id_type):
            logger.warning("No valid id field in %s", path)
            continue
        if resource_id in found:
            logger.warning("Duplicate id %s in %s (already at %s)", resource_id, path, found[resource_id])
            continue
        found[resource_id] = path
    return found
