"""Path templates.

A template is a path with `{placeholder}` fields, e.g.
`{DATA_DIR}/dashboards/{team}/{title}-{id}.json`. Resolution order:

1. builtins: `{DATA_DIR}`, `{id}` and the kind's fields (`{title}`, `{name}`,
   `{priority}`);
2. `{UPPER_CASE}` names from the environment, left as-is when unset;
3. any other `{word}` is the value of tag `word`, or `none` when missing.

A template that still has braces after resolution is malformed; the caller
gets the fallback path and a warning instead of an error.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\{([A-Za-z0-9_\-]+)\}")
ENV_VAR_RE = re.compile(r"^[A-Z][A-Z0-9_]*$")

MISSING_TAG_VALUE = "none"


def expand_env_vars(pattern: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if ENV_VAR_RE.match(name):
            value = os.environ.get(name)
            if value:
                return value
        return match.group(0)

    return PLACEHOLDER_RE.sub(_replace, pattern)


def _substitute(pattern: str, values: Mapping[str, str]) -> str:
    def _replace(match: re.Match[str]) -> str:
        return values.get(match.group(1), match.group(0))

    return PLACEHOLDER_RE.sub(_replace, pattern)


def render(
    pattern: str,
    *,
    builtins: Mapping[str, str],
    tags: Mapping[str, str],
) -> str:
    """Apply builtins, environment variables and tags to `pattern`."""

    rendered = _substitute(pattern, builtins)
    rendered = expand_env_vars(rendered)
    return PLACEHOLDER_RE.sub(lambda m: tags.get(m.group(1)) or MISSING_TAG_VALUE, rendered)


def resolve_path(
    pattern: str,
    *,
    data_dir: Path,
    resource_id: str | int,
    fields: Mapping[str, str],
    tags: Mapping[str, str],
    fallback: Path,
) -> Path:
    """Compute a destination path, degrading to `fallback` on bad templates."""

    builtins = {"DATA_DIR": str(data_dir), "id": str(resource_id), **fields}
    rendered = render(pattern, builtins=builtins, tags=tags)
    if "{" in rendered or "}" in rendered or not rendered.strip():
        logger.warning("Malformed path template %r, using %s", pattern, fallback)
        return fallback
    return Path(rendered)


def static_prefix(pattern: str, *, data_dir: Path) -> Path | None:
    """Directory part of a template before its first dynamic placeholder.

    `{DATA_DIR}` and set environment variables are expanded first. Returns
    None when the template starts with a placeholder.
    """

    if not pattern:
        return None
    expanded = expand_env_vars(_substitute(pattern, {"DATA_DIR": str(data_dir)}))
    idx = expanded.find("{")
    if idx == -1:
        parent = os.path.dirname(expanded)
        return Path(parent) if parent and parent != "." else None
    if idx == 0:
        return None

    prefix = expanded[:idx]
    if not prefix.endswith(("/", os.sep)):
        prefix = os.path.dirname(prefix)
    prefix = prefix.rstrip("/" + os.sep)
    if not prefix or prefix == ".":
        return None
    return Path(prefix)
