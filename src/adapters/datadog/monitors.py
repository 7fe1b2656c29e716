"""Datadog monitors.

Ids are positive integers. The listing endpoint is page paginated and
returns complete monitors (including `matching_downtimes`, which the detail
endpoint lacks), so listing items are used directly as payloads.
"""

from __future__ import annotations

from typing import Any, Mapping

from core.domain.errors import InvalidIdentifierError, ResponseDecodeError
from core.domain.models import DownloadOptions
from core.domain.pagination import PaginationCursor
from core.domain.tags import sanitize_filename
from core.interfaces.resource import ResourceKind

# Runtime state that changes between syncs without the monitor changing.
VOLATILE_FIELDS = ("matching_downtimes",)


class MonitorKind(ResourceKind[int]):
    name = "monitors"
    label = "monitor"
    id_type = int
    template_setting = "monitors_path_template"
    listing_is_full = True

    _path = "/api/v1/monitor"

    def normalize_id(self, raw: str | int) -> int:
        if isinstance(raw, bool):
            raise InvalidIdentifierError(f"invalid monitor ID: {raw}")
        if isinstance(raw, int):
            value = raw
        else:
            text = str(raw).strip()
            try:
                value = int(text)
            except ValueError:
                raise InvalidIdentifierError(f"invalid monitor ID: {text!r}") from None
        if value <= 0:
            raise InvalidIdentifierError(f"invalid monitor ID: {value} (must be positive)")
        return value

    def id_of(self, item: Mapping[str, Any]) -> int | None:
        value = item.get("id")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if isinstance(value, float) and not value.is_integer():
            return None
        return int(value) if value > 0 else None

    def new_cursor(self, page_size: int) -> PaginationCursor:
        return PaginationCursor.paged(page_size)

    def listing_params(self, cursor: PaginationCursor) -> dict[str, int]:
        return cursor.page_params()

    def advance(self, cursor: PaginationCursor, items_received: int) -> bool:
        return cursor.next_page(items_received)

    def listing_url(self, base_url: str) -> str:
        return f"{base_url}{self._path}"

    def detail_url(self, base_url: str, resource_id: int) -> str:
        return f"{base_url}{self._path}/{resource_id}"

    def extract_items(self, payload: Any) -> list[dict[str, Any]]:
        if not isinstance(payload, list):
            raise ResponseDecodeError(f"monitor listing: expected a JSON array, got {type(payload).__name__}")
        return [item for item in payload if isinstance(item, dict)]

    def template_fields(self, resource: Mapping[str, Any]) -> dict[str, str]:
        name = resource.get("name")
        safe = sanitize_filename(name) if isinstance(name, str) else ""
        safe = safe or "untitled"
        priority = resource.get("priority")
        if isinstance(priority, bool) or not isinstance(priority, int):
            priority = 0
        return {"name": safe, "title": safe, "priority": str(priority)}

    def extra_match(self, resource: Mapping[str, Any], options: DownloadOptions) -> bool:
        if options.priority is None:
            return True
        return resource.get("priority") == options.priority

    def prepare_for_write(self, resource: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in resource.items() if k not in VOLATILE_FIELDS}


MONITORS = MonitorKind()
