"""Tag helpers.

Datadog tags are free-form `key:value` strings. Filters compare them
case-insensitively on both key and value; all constraints must match.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]+")


def sanitize_filename(name: str) -> str:
    """Replace runs of non-alphanumerics with `-` and trim dashes."""

    return _NON_ALNUM.sub("-", name).strip("-")


def parse_csv(value: str | None) -> list[str]:
    """Split a comma-separated list, trimming blanks and dropping duplicates."""

    if not value:
        return []
    seen: set[str] = set()
    out: list[str] = []
    for part in value.split(","):
        item = part.strip()
        if not item or item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


def tags_of(resource: Mapping[str, Any]) -> list[str]:
    raw = resource.get("tags")
    if not isinstance(raw, list):
        return []
    return [t for t in raw if isinstance(t, str)]


def extract_tag_map(raw: Any, *, sanitize: bool = False) -> dict[str, str]:
    """Turn a list of `key:value` strings into a mapping.

    Tags without a colon are ignored. With `sanitize`, values are made safe
    for use in file names.
    """

    tag_map: dict[str, str] = {}
    if not isinstance(raw, list):
        return tag_map
    for tag in raw:
        if not isinstance(tag, str) or ":" not in tag:
            continue
        key, value = tag.split(":", 1)
        key = key.strip()
        value = value.strip()
        if sanitize:
            value = sanitize_filename(value)
        tag_map[key] = value
    return tag_map


def has_all_tags(required: Mapping[str, str] | Iterable[str], tags: Iterable[str]) -> bool:
    """True when every required tag is present (case-insensitive AND).

    `required` is either a `{key: value}` mapping or an iterable of
    `key:value` strings. An empty requirement always matches.
    """

    if isinstance(required, Mapping):
        wanted = [f"{k}:{v}" for k, v in required.items()]
    else:
        wanted = list(required)
    if not wanted:
        return True

    present = {_normalize_tag(t) for t in tags}
    return all(_normalize_tag(w) in present for w in wanted)


def _normalize_tag(tag: str) -> str:
    """`" Team : SRE "` -> `"team:sre"`; key and value are trimmed separately."""

    key, sep, value = tag.partition(":")
    return f"{key.strip()}{sep}{value.strip()}".lower()


@dataclass
class TagFilter:
    """Required tags plus the `team` convenience (equivalent to `team:<value>`)."""

    tags: list[str] = field(default_factory=list)
    team: str | None = None

    @property
    def required(self) -> list[str]:
        out: list[str] = []
        if self.team:
            out.append(f"team:{self.team}")
        out.extend(self.tags)
        return out

    def __bool__(self) -> bool:
        return bool(self.required)

    def matches(self, resource: Mapping[str, Any]) -> bool:
        return has_all_tags(self.required, tags_of(resource))
