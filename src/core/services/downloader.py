"""Download orchestration.

Consumes the target stream and materialises every target concurrently:
fetch (unless the payload is already attached), resolve the destination,
write. Failures are collected per target; one failure never stops the
others, and the run is reported as failed if any target failed.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, AsyncIterable

from adapters.http_client import RateLimitedClient
from adapters.json_store import write_json_file
from core.config import AppSettings
from core.domain.errors import DDSyncError, ResponseDecodeError
from core.domain.models import DownloadOptions, DownloadReport, Target, TargetFailure, TargetResult
from core.domain.tags import extract_tag_map
from core.interfaces.resource import ResourceKind
from core.services.targets import iter_targets, validate_selection
from core.templating import resolve_path

logger = logging.getLogger(__name__)


def destination_for(
    kind: ResourceKind[Any],
    resource: dict[str, Any],
    resource_id: Any,
    *,
    settings: AppSettings,
    output: str | None = None,
) -> Path:
    """Path for a resource from the output override or the configured template."""

    pattern = output or getattr(settings, kind.template_setting)
    data_dir = Path(settings.data_dir)
    return resolve_path(
        pattern,
        data_dir=data_dir,
        resource_id=resource_id,
        fields=kind.template_fields(resource),
        tags=extract_tag_map(resource.get("tags"), sanitize=True),
        fallback=data_dir / kind.name / f"{resource_id}.json",
    )


async def fetch_resource(
    kind: ResourceKind[Any],
    resource_id: Any,
    *,
    client: RateLimitedClient,
    settings: AppSettings,
) -> dict[str, Any]:
    payload = await client.get_json(kind.detail_url(settings.api_base_url, resource_id))
    if not isinstance(payload, dict):
        raise ResponseDecodeError(f"expected a JSON object for {kind.label} {resource_id}")
    return payload


async def download_target(
    target: Target[Any],
    *,
    kind: ResourceKind[Any],
    client: RateLimitedClient,
    settings: AppSettings,
    output: str | None = None,
) -> Path:
    """Fetch (if needed) and write one target; return the written path."""

    resource_id = kind.normalize_id(target.id)
    target.id = resource_id

    if target.data is not None:
        resource = target.data
    else:
        resource = await fetch_resource(kind, resource_id, client=client, settings=settings)

    path = target.path or destination_for(kind, resource, resource_id, settings=settings, output=output)
    await asyncio.to_thread(write_json_file, path, kind.prepare_for_write(resource))
    logger.info("%s saved to %s", kind.label.capitalize(), path)
    return path


def _failure(target_id: Any, exc: BaseException) -> TargetFailure:
    message = str(exc) or type(exc).__name__
    if target_id is not None:
        message = f"{target_id}: {message}"
    return TargetFailure(
        target_id=None if target_id is None else str(target_id),
        message=message,
        error_type=type(exc).__name__,
    )


async def download_targets(
    results: AsyncIterable[TargetResult[Any]],
    *,
    kind: ResourceKind[Any],
    client: RateLimitedClient,
    settings: AppSettings,
    output: str | None = None,
) -> DownloadReport:
    """Spawn one task per target and aggregate the outcome."""

    report = DownloadReport(kind=kind.name)
    # Bounded like the client so error reporting cannot pile up unboundedly.
    errors: asyncio.Queue[TargetFailure | None] = asyncio.Queue(maxsize=client.max_concurrency)

    async def _collect() -> None:
        while True:
            failure = await errors.get()
            if failure is None:
                return
            logger.error("%s", failure.message)
            report.failures.append(failure)

    async def _run(target: Target[Any]) -> None:
        # Must not raise: an escaping error would abort the gather below.
        try:
            path = await download_target(target, kind=kind, client=client, settings=settings, output=output)
        except DDSyncError as exc:
            await errors.put(_failure(target.id, exc))
        except Exception as exc:
            logger.debug("Unexpected error for %s %s", kind.label, target.id, exc_info=True)
            await errors.put(_failure(target.id, exc))
        else:
            report.saved.append(str(path))

    collector = asyncio.create_task(_collect())
    # Finished tasks drop out so the set only holds what is still running.
    pending: set[asyncio.Task[None]] = set()
    started = 0
    try:
        async for result in results:
            if result.error is not None:
                await errors.put(_failure(None, result.error))
                continue
            if result.target is None:
                continue
            logger.debug("Downloading %s %s", kind.label, result.target.id)
            task = asyncio.create_task(_run(result.target))
            pending.add(task)
            task.add_done_callback(pending.discard)
            started += 1
        await asyncio.gather(*pending)
    finally:
        for task in list(pending):
            task.cancel()
        await asyncio.gather(*list(pending), return_exceptions=True)
        await errors.put(None)
        await collector

    if not started and not report.failures:
        logger.warning("Nothing to download")
    return report


async def sync_resources(
    kind: ResourceKind[Any],
    options: DownloadOptions,
    *,
    settings: AppSettings,
    client: RateLimitedClient | None = None,
) -> DownloadReport:
    """Enumerate and download in one go; builds the shared client if needed."""

    validate_selection(options)
    owned = client is None
    client = client or RateLimitedClient.from_settings(settings)
    try:
        targets = iter_targets(kind, options, client=client, settings=settings)
        return await download_targets(
            targets,
            kind=kind,
            client=client,
            settings=settings,
            output=options.output,
        )
    finally:
        if owned:
            await client.aclose()
