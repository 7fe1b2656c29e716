"""httpx wrapper for the Datadog API.

`build_async_client` standardises timeout and auth headers. `RateLimitedClient`
adds what every caller needs on top of it:

- a process-wide cap on in-flight requests (one `asyncio.Semaphore`);
- retries (tenacity) with exponential backoff for transport errors and 5xx;
- a shared pause window: one 429 anywhere holds back every request made
  through the client until `Retry-After` has elapsed.

Build one `RateLimitedClient` at startup and pass it to every component
that issues requests; the cap and the pause only hold across callers that
share the instance.

Cancellation is plain asyncio cancellation: cancelling the calling task
aborts the in-flight request, a backoff sleep or a pause wait, and the
semaphore slot is released on the way out.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Callable, Mapping

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from core.config import AppSettings
from core.domain.errors import (
    APIError,
    RateLimitedError,
    RequestFailedError,
    ResponseDecodeError,
)

logger = logging.getLogger(__name__)

USER_AGENT = "dd-sync/0.1"

DEFAULT_MAX_CONCURRENCY = 8
DEFAULT_RETRIES = 3
BACKOFF_BASE_SECONDS = 0.5
BACKOFF_CAP_SECONDS = 5.0
DEFAULT_RETRY_AFTER_SECONDS = 1.0


def build_async_client(
    settings: AppSettings,
    *,
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an `httpx.AsyncClient` carrying the Datadog credentials."""

    headers: dict[str, str] = {
        "User-Agent": USER_AGENT,
        "Accept": "application/json",
        "DD-API-KEY": settings.dd_api_key,
        "DD-APPLICATION-KEY": settings.dd_app_key,
    }
    if extra_headers:
        headers.update(extra_headers)
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout),
        follow_redirects=True,
        headers=headers,
        transport=transport,
    )


def parse_retry_after(value: str | None) -> float:
    """`Retry-After` as whole seconds; 1s when absent or not an integer.

    HTTP-date values are not supported and fall back to the default.
    """

    if not value:
        return DEFAULT_RETRY_AFTER_SECONDS
    try:
        seconds = int(value.strip())
    except ValueError:
        return DEFAULT_RETRY_AFTER_SECONDS
    if seconds < 0:
        return DEFAULT_RETRY_AFTER_SECONDS
    return float(seconds)


def _is_rate_limited(response: httpx.Response) -> bool:
    return response.status_code == httpx.codes.TOO_MANY_REQUESTS


def _should_retry_response(response: httpx.Response) -> bool:
    return _is_rate_limited(response) or response.status_code >= 500


def backoff_wait(base: float = BACKOFF_BASE_SECONDS, cap: float = BACKOFF_CAP_SECONDS) -> wait_base:
    """0.5s, 1s, 2s, 4s, then capped at 5s."""

    return wait_exponential(multiplier=base, max=cap)


class RetryAfterOrBackoff(wait_base):
    """Sleep `Retry-After` after a 429, exponential backoff otherwise."""

    def __init__(self, fallback_wait: wait_base) -> None:
        self._fallback_wait = fallback_wait

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and not outcome.failed:
            response = outcome.result()
            if _is_rate_limited(response):
                return parse_retry_after(response.headers.get("Retry-After"))
        return float(self._fallback_wait(retry_state))


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    url = retry_state.args[0] if retry_state.args else "?"
    if outcome is None:
        return
    if outcome.failed:
        exc = outcome.exception()
        logger.warning("GET %s failed (%s), retrying in %.1fs", url, type(exc).__name__, delay)
        return
    response = outcome.result()
    if _is_rate_limited(response):
        logger.warning("Rate limited on %s, pausing requests for %gs", url, delay)
    else:
        logger.warning("GET %s returned %d, retrying in %.1fs", url, response.status_code, delay)


def _give_up(retry_state: RetryCallState) -> httpx.Response:
    """Final outcome once the attempts are spent: last 5xx, or an error."""

    outcome = retry_state.outcome
    url = retry_state.args[0] if retry_state.args else "?"
    attempts = retry_state.attempt_number
    if outcome is None:
        raise RequestFailedError(f"GET {url}: retry loop ended without a response")
    if outcome.failed:
        exc = outcome.exception()
        raise RequestFailedError(f"GET {url} failed after {attempts} attempts: {exc!r}") from exc
    response = outcome.result()
    if _is_rate_limited(response):
        raise RateLimitedError(parse_retry_after(response.headers.get("Retry-After")), url=str(url))
    return response


class RateLimitedClient:
    """Concurrency-capped GET client with retry and a shared 429 pause."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        retries: int = DEFAULT_RETRIES,
        max_body_size: int = 10 * 1024 * 1024,
        backoff_base: float = BACKOFF_BASE_SECONDS,
        backoff_cap: float = BACKOFF_CAP_SECONDS,
        min_pause: float = DEFAULT_RETRY_AFTER_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self.max_concurrency = max(1, max_concurrency)
        self.retries = max(0, retries)
        self.max_body_size = max_body_size
        self._wait = RetryAfterOrBackoff(backoff_wait(backoff_base, backoff_cap))
        self._min_pause = min_pause
        self._clock = clock
        self._semaphore = asyncio.Semaphore(self.max_concurrency)
        self._in_flight = 0
        self._pause_lock = asyncio.Lock()
        self._pause_until = 0.0

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> "RateLimitedClient":
        options: dict[str, Any] = {
            "max_concurrency": settings.http_max_concurrency,
            "retries": settings.http_retries,
            "max_body_size": settings.http_max_body_size,
        }
        options.update(kwargs)
        return cls(build_async_client(settings, transport=transport), **options)

    async def __aenter__(self) -> "RateLimitedClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def in_flight(self) -> int:
        """Calls currently holding a concurrency slot."""

        return self._in_flight

    # ------------------------------------------------------------------
    # Shared pause window
    # ------------------------------------------------------------------

    @property
    def pause_until(self) -> float:
        return self._pause_until

    async def extend_pause(self, seconds: float) -> None:
        """Move the pause deadline to now + seconds unless it is already later.

        Pauses shorter than `min_pause` (zero included) are raised to it.
        """

        seconds = max(seconds, self._min_pause)
        async with self._pause_lock:
            proposed = self._clock() + seconds
            if proposed > self._pause_until:
                self._pause_until = proposed

    async def wait_if_paused(self) -> None:
        while True:
            async with self._pause_lock:
                remaining = self._pause_until - self._clock()
            if remaining <= 0:
                return
            logger.debug("Rate limit pause active, waiting %.2fs", remaining)
            await asyncio.sleep(remaining)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=self._wait,
            retry=retry_if_exception_type(httpx.TransportError) | retry_if_result(_should_retry_response),
            before_sleep=_log_retry,
            retry_error_callback=_give_up,
        )

    async def _attempt(self, url: str, params: Mapping[str, Any] | None) -> httpx.Response:
        await self.wait_if_paused()
        logger.debug("GET %s params=%s", url, dict(params or {}))
        response = await self._client.get(url, params=params)
        if _is_rate_limited(response):
            await self.extend_pause(parse_retry_after(response.headers.get("Retry-After")))
        return response

    async def get(self, url: str, *, params: Mapping[str, Any] | None = None) -> httpx.Response:
        """GET with retries.

        Returns the response for 2xx, non-retryable 4xx, and for 5xx once
        the retry budget is spent. Raises `RateLimitedError` or
        `RequestFailedError` when 429s or transport errors exhaust it.
        """

        async with self._semaphore:
            self._in_flight += 1
            try:
                return await self._retrying()(self._attempt, url, params)
            except httpx.RequestError as exc:
                # Redirect loops, undecodable content: retrying will not help.
                raise RequestFailedError(f"GET {url} failed: {exc!r}") from exc
            finally:
                self._in_flight -= 1

    async def get_json(self, url: str, *, params: Mapping[str, Any] | None = None) -> Any:
        """GET and decode a JSON body; any non-200 status is an `APIError`."""

        response = await self.get(url, params=params)
        if response.status_code != httpx.codes.OK:
            body = response.text[: self.max_body_size]
            raise APIError(
                f"API error: {response.status_code} {response.reason_phrase}\n{body}".rstrip(),
                status_code=response.status_code,
                body=body,
            )
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ResponseDecodeError(
                f"failed to decode response from {url}: {exc}",
                status_code=response.status_code,
            ) from exc
