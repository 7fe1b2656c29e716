"""Tests for the rate-limited HTTP client (adapters/http_client.py).

Coverage:
* Retry budget: R+1 attempts on 429 and on transport errors, one on 404.
* 5xx is retried and returned as-is once the budget is spent.
* Waits: Retry-After after a 429, capped exponential backoff otherwise.
* The shared pause deadline only ever moves forward and holds back siblings.
* Cancellation during a pause or a backoff releases the concurrency slot.
* The concurrency cap holds across concurrent callers.
* Auth headers are attached by the client builder.
"""

from __future__ import annotations

import asyncio
import time
from types import SimpleNamespace

import httpx
import pytest

from adapters.http_client import RateLimitedClient, RetryAfterOrBackoff, backoff_wait, parse_retry_after
from core.domain.errors import APIError, RateLimitedError, RequestFailedError, ResponseDecodeError

URL = "https://api.datadoghq.com/api/v1/dashboard"


def _state(attempt: int, response: httpx.Response | None = None) -> SimpleNamespace:
    outcome = None if response is None else SimpleNamespace(failed=False, result=lambda: response)
    return SimpleNamespace(attempt_number=attempt, outcome=outcome)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

class TestBackoffWait:
    def test_doubles_from_half_a_second(self) -> None:
        wait = backoff_wait()
        assert [wait(_state(n)) for n in range(1, 5)] == [0.5, 1.0, 2.0, 4.0]

    def test_is_capped(self) -> None:
        wait = backoff_wait()
        assert wait(_state(5)) == 5.0
        assert wait(_state(11)) == 5.0

    def test_retry_after_wins_for_429(self) -> None:
        wait = RetryAfterOrBackoff(backoff_wait())
        limited = httpx.Response(429, headers={"Retry-After": "7"})
        assert wait(_state(1, limited)) == 7.0
        assert wait(_state(1, httpx.Response(503))) == 0.5


class TestParseRetryAfter:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("3", 3.0), (" 10 ", 10.0), ("0", 0.0), (None, 1.0), ("", 1.0), ("-2", 1.0), ("soon", 1.0)],
    )
    def test_values(self, value: str | None, expected: float) -> None:
        assert parse_retry_after(value) == expected


# ---------------------------------------------------------------------------
# Retry budget
# ---------------------------------------------------------------------------

class TestRetries:
    def test_429_exhausts_retry_budget(self, make_client) -> None:
        client, recorder = make_client(
            lambda request: httpx.Response(429, headers={"Retry-After": "0"}),
            retries=2,
        )

        async def scenario() -> None:
            async with client:
                await client.get(URL)

        with pytest.raises(RateLimitedError) as excinfo:
            asyncio.run(scenario())
        assert len(recorder.requests) == 3
        assert excinfo.value.retry_after == 0.0
        assert excinfo.value.url == URL

    def test_404_is_not_retried(self, make_client) -> None:
        client, recorder = make_client(lambda request: httpx.Response(404, text="not found"), retries=3)

        async def scenario() -> httpx.Response:
            async with client:
                return await client.get(URL)

        response = asyncio.run(scenario())
        assert response.status_code == 404
        assert len(recorder.requests) == 1

    def test_5xx_returned_after_budget(self, make_client) -> None:
        client, recorder = make_client(lambda request: httpx.Response(503), retries=2)

        async def scenario() -> httpx.Response:
            async with client:
                return await client.get(URL)

        response = asyncio.run(scenario())
        assert response.status_code == 503
        assert len(recorder.requests) == 3

    def test_5xx_then_success(self, make_client) -> None:
        statuses = iter([500, 502, 200])
        client, recorder = make_client(
            lambda request: httpx.Response(next(statuses), json={"ok": True}),
            retries=3,
        )

        async def scenario() -> httpx.Response:
            async with client:
                return await client.get(URL)

        assert asyncio.run(scenario()).status_code == 200
        assert len(recorder.requests) == 3

    def test_transport_error_exhausts_budget(self, make_client) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client, recorder = make_client(handler, retries=1)

        async def scenario() -> None:
            async with client:
                await client.get(URL)

        with pytest.raises(RequestFailedError):
            asyncio.run(scenario())
        assert len(recorder.requests) == 2

    def test_transport_error_then_success(self, make_client) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json=[])

        client, _ = make_client(handler, retries=2)

        async def scenario() -> httpx.Response:
            async with client:
                return await client.get(URL)

        assert asyncio.run(scenario()).status_code == 200
        assert calls["n"] == 2

    def test_zero_retries_means_one_attempt(self, make_client) -> None:
        client, recorder = make_client(lambda request: httpx.Response(500), retries=0)

        async def scenario() -> httpx.Response:
            async with client:
                return await client.get(URL)

        assert asyncio.run(scenario()).status_code == 500
        assert len(recorder.requests) == 1


# ---------------------------------------------------------------------------
# JSON decoding
# ---------------------------------------------------------------------------

class TestGetJson:
    def test_decodes_body(self, make_client) -> None:
        client, _ = make_client(lambda request: httpx.Response(200, json={"id": "abc-def-ghi"}))

        async def scenario():
            async with client:
                return await client.get_json(URL)

        assert asyncio.run(scenario()) == {"id": "abc-def-ghi"}

    def test_non_200_is_api_error_with_body(self, make_client) -> None:
        client, _ = make_client(lambda request: httpx.Response(403, text='{"errors": ["Forbidden"]}'))

        async def scenario():
            async with client:
                return await client.get_json(URL)

        with pytest.raises(APIError) as excinfo:
            asyncio.run(scenario())
        assert excinfo.value.status_code == 403
        assert "Forbidden" in excinfo.value.body
        assert "403" in str(excinfo.value)

    def test_error_body_is_truncated(self, make_client) -> None:
        client, _ = make_client(lambda request: httpx.Response(400, text="x" * 100), max_body_size=10)

        async def scenario():
            async with client:
                return await client.get_json(URL)

        with pytest.raises(APIError) as excinfo:
            asyncio.run(scenario())
        assert excinfo.value.body == "x" * 10

    def test_invalid_json(self, make_client) -> None:
        client, _ = make_client(lambda request: httpx.Response(200, text="<html>"))

        async def scenario():
            async with client:
                return await client.get_json(URL)

        with pytest.raises(ResponseDecodeError):
            asyncio.run(scenario())

    def test_params_and_auth_headers_are_sent(self, make_client) -> None:
        client, recorder = make_client(lambda request: httpx.Response(200, json=[]))

        async def scenario():
            async with client:
                return await client.get_json(URL, params={"page": 0, "page_size": 2})

        asyncio.run(scenario())
        request = recorder.requests[0]
        assert request.headers["DD-API-KEY"] == "test-api-key-1234"
        assert request.headers["DD-APPLICATION-KEY"] == "test-app-key-5678"
        assert request.url.params["page_size"] == "2"


# ---------------------------------------------------------------------------
# Pause window and concurrency cap
# ---------------------------------------------------------------------------

class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestPauseWindow:
    def test_deadline_never_moves_backwards(self) -> None:
        clock = FakeClock()
        client = RateLimitedClient(
            httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))),
            clock=clock,
        )

        async def scenario() -> list[float]:
            seen = []
            async with client:
                await client.extend_pause(5)
                seen.append(client.pause_until)
                await client.extend_pause(1)
                seen.append(client.pause_until)
                clock.now += 2
                await client.extend_pause(10)
                seen.append(client.pause_until)
            return seen

        assert asyncio.run(scenario()) == [105.0, 105.0, 112.0]

    def test_no_wait_when_deadline_passed(self) -> None:
        clock = FakeClock()
        client = RateLimitedClient(
            httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))),
            clock=clock,
        )

        async def scenario() -> None:
            async with client:
                await client.extend_pause(3)
                clock.now += 3
                await asyncio.wait_for(client.wait_if_paused(), timeout=1)

        asyncio.run(scenario())

    def test_429_sets_pause_for_everyone(self, make_client) -> None:
        responses = iter([httpx.Response(429, headers={"Retry-After": "0"}), httpx.Response(200)])
        client, _ = make_client(lambda request: next(responses), retries=1)

        async def scenario() -> float:
            async with client:
                await client.get(URL)
                return client.pause_until

        assert asyncio.run(scenario()) > 0

    def test_zero_pause_is_raised_to_minimum(self) -> None:
        clock = FakeClock()
        client = RateLimitedClient(
            httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))),
            clock=clock,
        )

        async def scenario() -> float:
            async with client:
                await client.extend_pause(0)
                return client.pause_until

        assert asyncio.run(scenario()) == 101.0

    def test_concurrent_extensions_keep_the_latest_deadline(self) -> None:
        clock = FakeClock()
        client = RateLimitedClient(
            httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))),
            clock=clock,
        )

        async def scenario() -> float:
            async with client:
                await asyncio.gather(*(client.extend_pause(s) for s in [5, 1, 9, 2, 0, 3]))
                return client.pause_until

        assert asyncio.run(scenario()) == 109.0

    def test_sibling_request_waits_out_the_pause(self, make_client) -> None:
        seen: dict[str, float] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path.endswith("/first") and "limited" not in seen:
                seen["limited"] = time.monotonic()
                return httpx.Response(429, headers={"Retry-After": "1"})
            seen.setdefault(path.rsplit("/", 1)[-1], time.monotonic())
            return httpx.Response(200, json={})

        client, _ = make_client(handler, retries=1)

        async def scenario() -> None:
            async with client:
                first = asyncio.create_task(client.get(f"{URL}/first"))
                while "limited" not in seen:
                    await asyncio.sleep(0.01)
                await client.get(f"{URL}/second")
                await first

        asyncio.run(scenario())
        assert seen["second"] - seen["limited"] >= 0.9
        assert seen["first"] - seen["limited"] >= 0.9


class TestCancellation:
    def test_cancel_during_retry_after_pause(self, make_client) -> None:
        client, recorder = make_client(
            lambda request: httpx.Response(429, headers={"Retry-After": "30"}),
            retries=3,
        )

        async def scenario() -> tuple[float, int]:
            async with client:
                task = asyncio.create_task(client.get(URL))
                while not recorder.requests:
                    await asyncio.sleep(0.01)
                await asyncio.sleep(0.05)
                started = time.monotonic()
                task.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await task
                assert task.cancelled()
                return time.monotonic() - started, client.in_flight

        elapsed, in_flight = asyncio.run(scenario())
        assert elapsed < 1.0
        assert in_flight == 0
        assert len(recorder.requests) == 1

    def test_cancel_during_backoff_releases_slot(self, make_client) -> None:
        state = {"status": 503}
        client, recorder = make_client(
            lambda request: httpx.Response(state["status"], json={}),
            retries=3,
            backoff_base=30.0,
            backoff_cap=60.0,
            max_concurrency=1,
        )

        async def scenario() -> int:
            async with client:
                task = asyncio.create_task(client.get(URL))
                while not recorder.requests:
                    await asyncio.sleep(0.01)
                await asyncio.sleep(0.05)
                task.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await asyncio.wait_for(task, timeout=1)
                assert client.in_flight == 0
                state["status"] = 200
                # The single slot is free again.
                response = await asyncio.wait_for(client.get(URL), timeout=1)
                return response.status_code

        assert asyncio.run(scenario()) == 200


class TestConcurrencyCap:
    def test_in_flight_requests_never_exceed_cap(self) -> None:
        state = {"in_flight": 0, "peak": 0}

        async def handler(request: httpx.Request) -> httpx.Response:
            state["in_flight"] += 1
            state["peak"] = max(state["peak"], state["in_flight"])
            await asyncio.sleep(0.01)
            state["in_flight"] -= 1
            return httpx.Response(200, json={})

        client = RateLimitedClient(
            httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            max_concurrency=2,
        )

        async def scenario() -> None:
            async with client:
                await asyncio.gather(*(client.get(f"{URL}/{n}") for n in range(8)))

        asyncio.run(scenario())
        assert state["peak"] == 2
