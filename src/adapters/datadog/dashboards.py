"""Datadog dashboards.

Ids look like `abc-def-ghi`. The listing endpoint is offset paginated and
only returns summaries, so tag filtering needs one detail request per
dashboard.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from core.domain.errors import InvalidIdentifierError, ResponseDecodeError
from core.domain.models import DownloadOptions
from core.domain.pagination import PaginationCursor
from core.domain.tags import sanitize_filename
from core.interfaces.resource import ResourceKind

_DASHBOARD_ID_RE = re.compile(r"^[a-z0-9]+-[a-z0-9]+-[a-z0-9]+$", re.IGNORECASE)
_MAX_ID_LENGTH = 100


class DashboardKind(ResourceKind[str]):
    name = "dashboards"
    label = "dashboard"
    id_type = str
    template_setting = "dashboards_path_template"
    listing_is_full = False

    _path = "/api/v1/dashboard"

    def normalize_id(self, raw: str | int) -> str:
        value = str(raw).strip()
        if not value:
            raise InvalidIdentifierError("dashboard ID cannot be empty")
        if len(value) > _MAX_ID_LENGTH:
            raise InvalidIdentifierError(f"dashboard ID too long (max {_MAX_ID_LENGTH} characters)")
        if not _DASHBOARD_ID_RE.match(value):
            raise InvalidIdentifierError(
                f"invalid dashboard ID format: {value} (expected format: xxx-xxx-xxx)"
            )
        return value.lower()

    def id_of(self, item: Mapping[str, Any]) -> str | None:
        value = item.get("id")
        if isinstance(value, str) and value:
            return value
        return None

    def new_cursor(self, page_size: int) -> PaginationCursor:
        return PaginationCursor.offset(page_size)

    def listing_params(self, cursor: PaginationCursor) -> dict[str, int]:
        return cursor.offset_params()

    def advance(self, cursor: PaginationCursor, items_received: int) -> bool:
        return cursor.next_offset_page(items_received)

    def listing_url(self, base_url: str) -> str:
        return f"{base_url}{self._path}"

    def detail_url(self, base_url: str, resource_id: str) -> str:
        return f"{base_url}{self._path}/{resource_id}"

    def extract_items(self, payload: Any) -> list[dict[str, Any]]:
        items = payload.get("dashboards") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise ResponseDecodeError("dashboard listing: response has no \"dashboards\" array")
        return [item for item in items if isinstance(item, dict)]

    def template_fields(self, resource: Mapping[str, Any]) -> dict[str, str]:
        title = resource.get("title")
        safe = sanitize_filename(title) if isinstance(title, str) else ""
        safe = safe or "untitled"
        return {"title": safe, "name": safe}

    def extra_match(self, resource: Mapping[str, Any], options: DownloadOptions) -> bool:
        return True

    def prepare_for_write(self, resource: dict[str, Any]) -> dict[str, Any]:
        return resource


DASHBOARDS = DashboardKind()
