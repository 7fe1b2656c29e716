"""Contract for a syncable resource kind.

A `ResourceKind` knows the URLs, id format, pagination style and path
template fields of one Datadog resource type. The enumerator and the
downloader are written against this Protocol only, so adding a resource
type does not touch the pipeline.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from core.domain.models import DownloadOptions, IdT
from core.domain.pagination import PaginationCursor


@runtime_checkable
class ResourceKind(Protocol[IdT]):
    """Minimal contract for a resource type."""

    name: str
    """Plural name, also used as the default sub-directory ('dashboards')."""

    label: str
    """Singular name for messages ('dashboard')."""

    id_type: type
    """`str` or `int`; used when scanning files already on disk."""

    template_setting: str
    """Name of the `AppSettings` field holding the default path template."""

    listing_is_full: bool
    """True when listing items are complete resources (no detail fetch needed)."""

    def normalize_id(self, raw: str | int) -> IdT:
        """Validate and normalise an id; raise `InvalidIdentifierError`."""

        ...

    def id_of(self, item: Mapping[str, Any]) -> IdT | None:
        """Id of a listing or detail item, None when missing or malformed."""

        ...

    def new_cursor(self, page_size: int) -> PaginationCursor:
        ...

    def listing_params(self, cursor: PaginationCursor) -> dict[str, int]:
        ...

    def advance(self, cursor: PaginationCursor, items_received: int) -> bool:
        ...

    def listing_url(self, base_url: str) -> str:
        ...

    def detail_url(self, base_url: str, resource_id: IdT) -> str:
        ...

    def extract_items(self, payload: Any) -> list[dict[str, Any]]:
        """Pull resource items out of a decoded listing response."""

        ...

    def template_fields(self, resource: Mapping[str, Any]) -> dict[str, str]:
        """Builtin placeholder values (besides `id` and tags) for path templates."""

        ...

    def extra_match(self, resource: Mapping[str, Any], options: DownloadOptions) -> bool:
        """Kind-specific filters beyond tags (e.g. monitor priority)."""

        ...

    def prepare_for_write(self, resource: dict[str, Any]) -> dict[str, Any]:
        """Drop runtime-only fields that would churn on every sync."""

        ...
