"""Target enumeration.

Turns a selection (`DownloadOptions`) into an async stream of
`TargetResult`, so downloads can start before enumeration is over:

- explicit ids: validated locally, no network;
- all: every id from the paginated listing;
- tag/team/priority filters: listing, then (when the listing only has
  summaries) one concurrent detail request per candidate, keeping the
  matches with their payload attached;
- update: ids and paths recovered from files already on disk.

A problem with one item is yielded as an error result; enumeration of the
rest carries on. Output order is unspecified.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, AsyncIterator

from adapters.http_client import RateLimitedClient
from adapters.json_store import scan_ids
from core.config import AppSettings
from core.domain.errors import DDSyncError, InvalidIdentifierError, SelectionError
from core.domain.models import DownloadOptions, Target, TargetResult
from core.domain.tags import TagFilter
from core.interfaces.resource import ResourceKind
from core.templating import static_prefix

logger = logging.getLogger(__name__)


def validate_selection(options: DownloadOptions) -> None:
    """Exactly one of ids / all / update / filters must be chosen."""

    modes = [
        name
        for name, enabled in (
            ("--id", bool(options.ids)),
            ("--all", options.all),
            ("--update", options.update),
            ("--team/--tags/--priority", options.has_filters),
        )
        if enabled
    ]
    if not modes:
        raise SelectionError(
            "no selection given",
            hint="Specify --id, --all, --team, --tags or --update.",
        )
    if len(modes) > 1:
        raise SelectionError(f"conflicting selections: {', '.join(modes)}")


async def iter_listing(
    kind: ResourceKind[Any],
    *,
    client: RateLimitedClient,
    settings: AppSettings,
) -> AsyncIterator[list[dict[str, Any]]]:
    """Yield listing pages until the server returns a short page."""

    cursor = kind.new_cursor(settings.page_size)
    url = kind.listing_url(settings.api_base_url)
    seen: set[Any] = set()
    while True:
        payload = await client.get_json(url, params=kind.listing_params(cursor))
        items = kind.extract_items(payload)
        ids = {kind.id_of(item) for item in items} - {None}
        if ids and not ids - seen:
            # Server ignored the pagination params and repeated a page.
            logger.warning("Listing of %s returned a page with no new ids, stopping", kind.name)
            return
        seen |= ids
        if items:
            yield items
        if not kind.advance(cursor, len(items)):
            return


def _listing_failure(kind: ResourceKind[Any], exc: DDSyncError) -> TargetResult[Any]:
    error = DDSyncError(f"failed to list {kind.name}: {exc}", hint=exc.hint)
    error.__cause__ = exc
    return TargetResult.failed(error)


async def _targets_from_ids(
    kind: ResourceKind[Any],
    options: DownloadOptions,
) -> AsyncIterator[TargetResult[Any]]:
    seen: set[Any] = set()
    for raw in options.ids:
        try:
            resource_id = kind.normalize_id(raw)
        except InvalidIdentifierError as exc:
            yield TargetResult.failed(exc)
            continue
        if resource_id in seen:
            continue
        seen.add(resource_id)
        # Path is computed at download time, once the title is known.
        yield TargetResult.ok(Target(id=resource_id))


async def _targets_from_disk(
    kind: ResourceKind[Any],
    options: DownloadOptions,
    settings: AppSettings,
) -> AsyncIterator[TargetResult[Any]]:
    template = options.output or getattr(settings, kind.template_setting)
    root = static_prefix(template, data_dir=settings.data_dir) or Path(settings.data_dir) / kind.name
    logger.debug("Scanning %s for existing %s", root, kind.name)
    try:
        found = await asyncio.to_thread(scan_ids, root, kind.id_type)
    except DDSyncError as exc:
        error = DDSyncError(f"failed to scan directory: {exc}", hint=exc.hint)
        error.__cause__ = exc
        yield TargetResult.failed(error)
        return
    for resource_id, path in found.items():
        yield TargetResult.ok(Target(id=resource_id, path=path))


async def _all_targets(
    kind: ResourceKind[Any],
    *,
    client: RateLimitedClient,
    settings: AppSettings,
) -> AsyncIterator[TargetResult[Any]]:
    seen: set[Any] = set()
    try:
        async for page in iter_listing(kind, client=client, settings=settings):
            for item in page:
                resource_id = kind.id_of(item)
                if resource_id is None or resource_id in seen:
                    continue
                seen.add(resource_id)
                data = item if kind.listing_is_full else None
                yield TargetResult.ok(Target(id=resource_id, data=data))
    except DDSyncError as exc:
        yield _listing_failure(kind, exc)


async def _fetch_detail(
    kind: ResourceKind[Any],
    resource_id: Any,
    *,
    client: RateLimitedClient,
    settings: AppSettings,
) -> tuple[Any, dict[str, Any] | None]:
    try:
        payload = await client.get_json(kind.detail_url(settings.api_base_url, resource_id))
    except DDSyncError as exc:
        logger.warning("Failed to fetch %s %s: %s", kind.label, resource_id, exc)
        return resource_id, None
    if not isinstance(payload, dict):
        logger.warning("Failed to fetch %s %s: response is not a JSON object", kind.label, resource_id)
        return resource_id, None
    return resource_id, payload


async def _filtered_targets(
    kind: ResourceKind[Any],
    options: DownloadOptions,
    *,
    client: RateLimitedClient,
    settings: AppSettings,
) -> AsyncIterator[TargetResult[Any]]:
    tag_filter = TagFilter(tags=list(options.tags), team=options.team)

    def _matches(resource: dict[str, Any]) -> bool:
        return tag_filter.matches(resource) and kind.extra_match(resource, options)

    matched = 0
    candidates: list[Any] = []
    seen: set[Any] = set()
    try:
        async for page in iter_listing(kind, client=client, settings=settings):
            for item in page:
                resource_id = kind.id_of(item)
                if resource_id is None or resource_id in seen:
                    continue
                seen.add(resource_id)
                if not kind.listing_is_full:
                    candidates.append(resource_id)
                elif _matches(item):
                    matched += 1
                    yield TargetResult.ok(Target(id=resource_id, data=item))
    except DDSyncError as exc:
        yield _listing_failure(kind, exc)
        return

    if candidates:
        # The listing lacks tags: fetch every candidate, bounded by the client's semaphore.
        tasks = [
            asyncio.create_task(_fetch_detail(kind, rid, client=client, settings=settings))
            for rid in candidates
        ]
        try:
            for next_done in asyncio.as_completed(tasks):
                resource_id, data = await next_done
                if data is not None and _matches(data):
                    matched += 1
                    yield TargetResult.ok(Target(id=resource_id, data=data))
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    if matched == 0:
        logger.warning("No %s found matching %s", kind.name, _describe_filter(tag_filter, options))


def _describe_filter(tag_filter: TagFilter, options: DownloadOptions) -> str:
    parts = list(tag_filter.required)
    if options.priority is not None:
        parts.append(f"priority={options.priority}")
    return ", ".join(parts)


async def iter_targets(
    kind: ResourceKind[Any],
    options: DownloadOptions,
    *,
    client: RateLimitedClient,
    settings: AppSettings,
) -> AsyncIterator[TargetResult[Any]]:
    """Stream the targets selected by `options`."""

    validate_selection(options)

    if options.update:
        source = _targets_from_disk(kind, options, settings)
    elif options.ids:
        source = _targets_from_ids(kind, options)
    elif options.all:
        source = _all_targets(kind, client=client, settings=settings)
    else:
        source = _filtered_targets(kind, options, client=client, settings=settings)

    async for result in source:
        yield result
