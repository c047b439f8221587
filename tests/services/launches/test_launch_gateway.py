"""Tests for the launch gateway: caching, spacing, retries and fallbacks."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from launchsync.contracts.enums import ResponseClass
from launchsync.services.errors import FetchExhaustedError, RetryableResponseError
from launchsync.services.launches.gateway import BACKOFF_SCHEDULE, LaunchGateway, backoff_delay
from tests.fakes import FakeClock, RecordingSleep, envelope, wire_launch

URL = "https://provider.example.com/2.3.0/launches/upcoming/"


def launches(count: int) -> dict:
    return envelope([wire_launch(f"launch-{i}") for i in range(count)])


class ScriptedProvider:
    """MockTransport handler answering from a list of (status, body) steps.

    The last step repeats once the script runs out.
    """

    def __init__(self, *steps):
        self.steps = list(steps)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, Exception):
            raise step
        status, body = step
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body or "")


def make_gateway(http: httpx.AsyncClient, clock: FakeClock, sleep: RecordingSleep, **kwargs):
    return LaunchGateway(http, url=URL, clock=clock, sleep=sleep, **kwargs)


class TestBackoff:
    def test_schedule(self):
        assert BACKOFF_SCHEDULE == (0.0, 3.0, 9.0, 27.0)
        assert [backoff_delay(n) for n in range(6)] == [0.0, 3.0, 9.0, 27.0, 27.0, 27.0]


class TestLaunchGateway:
    async def test_fetch_parses_and_sends_expected_request(self):
        provider = ScriptedProvider((200, launches(3)))
        clock = FakeClock()
        sleep = RecordingSleep(clock)
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http:
            gateway = make_gateway(http, clock, sleep, page_limit=50)
            records = await gateway.fetch(minimum_count=1)

        assert [r.id for r in records] == ["launch-0", "launch-1", "launch-2"]
        request = provider.requests[0]
        assert request.url.params["limit"] == "50"
        assert request.headers["Accept"] == "application/json"
        assert "Authorization" not in request.headers
        assert not gateway.served_stale

    async def test_api_key_sent_as_token(self):
        provider = ScriptedProvider((200, launches(1)))
        clock = FakeClock()
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http:
            gateway = make_gateway(http, clock, RecordingSleep(clock), api_key="secret")
            await gateway.fetch(minimum_count=1)
        assert provider.requests[0].headers["Authorization"] == "Token secret"

    async def test_cache_serves_repeated_calls_within_window(self):
        provider = ScriptedProvider((200, launches(50)))
        clock = FakeClock()
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http:
            gateway = make_gateway(http, clock, RecordingSleep(clock))
            await gateway.fetch()
            clock.advance(599)
            again = await gateway.fetch()

        assert len(provider.requests) == 1
        assert len(again) == 50

    async def test_cache_expires_after_ten_minutes(self):
        provider = ScriptedProvider((200, launches(50)))
        clock = FakeClock()
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http:
            gateway = make_gateway(http, clock, RecordingSleep(clock))
            await gateway.fetch()
            clock.advance(600)
            await gateway.fetch()
        assert len(provider.requests) == 2

    async def test_small_cache_does_not_satisfy_minimum(self):
        provider = ScriptedProvider((200, launches(10)))
        clock = FakeClock()
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http:
            gateway = make_gateway(http, clock, RecordingSleep(clock))
            await gateway.fetch(minimum_count=10)
            clock.advance(10)
            await gateway.fetch(minimum_count=50)
        assert len(provider.requests) == 2

    async def test_force_refresh_waits_for_request_spacing(self):
        provider = ScriptedProvider((200, launches(50)))
        clock = FakeClock()
        sleep = RecordingSleep(clock)
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http:
            gateway = make_gateway(http, clock, sleep)
            await gateway.fetch()
            clock.advance(1)
            await gateway.fetch(force_refresh=True)

        assert len(provider.requests) == 2
        assert sleep.delays == [pytest.approx(2.0)]

    async def test_concurrent_callers_share_one_request(self):
        provider = ScriptedProvider((200, launches(50)))
        clock = FakeClock()
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http:
            gateway = make_gateway(http, clock, RecordingSleep(clock))
            first, second = await asyncio.gather(gateway.fetch(), gateway.fetch())
        assert len(provider.requests) == 1
        assert len(first) == len(second) == 50

    async def test_every_non_2xx_is_retried_with_backoff(self):
        provider = ScriptedProvider((429, None), (503, None), (404, None), (200, launches(5)))
        clock = FakeClock()
        sleep = RecordingSleep(clock)
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http:
            gateway = make_gateway(http, clock, sleep)
            records = await gateway.fetch(minimum_count=1)

        assert len(records) == 5
        assert gateway.request_count == 4
        assert sleep.delays == [3.0, 9.0, 27.0]

    async def test_transport_errors_and_bad_json_are_retried(self):
        provider = ScriptedProvider(
            httpx.ConnectError("boom"),
            (200, "<html>not json</html>"),
            (200, launches(2)),
        )
        clock = FakeClock()
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http:
            gateway = make_gateway(http, clock, RecordingSleep(clock))
            records = await gateway.fetch(minimum_count=1)
        assert len(records) == 2
        assert len(provider.requests) == 3

    async def test_exhausted_without_cache_raises(self):
        provider = ScriptedProvider((500, None))
        clock = FakeClock()
        sleep = RecordingSleep(clock)
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http:
            gateway = make_gateway(http, clock, sleep)
            with pytest.raises(FetchExhaustedError) as exc_info:
                await gateway.fetch()

        assert exc_info.value.attempts == 4
        assert isinstance(exc_info.value.last_error, RetryableResponseError)
        assert exc_info.value.last_error.response_class == ResponseClass.SERVER_ERROR
        assert sleep.delays == [3.0, 9.0, 27.0]

    async def test_expired_cache_served_when_provider_down(self):
        provider = ScriptedProvider((200, launches(50)), (500, None))
        clock = FakeClock()
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http:
            gateway = make_gateway(http, clock, RecordingSleep(clock))
            await gateway.fetch()
            clock.advance(3600)
            records = await gateway.fetch()

        assert len(records) == 50
        assert gateway.served_stale
        assert len(provider.requests) == 5

    async def test_expired_cache_too_small_raises(self):
        provider = ScriptedProvider((200, launches(10)), (500, None))
        clock = FakeClock()
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http:
            gateway = make_gateway(http, clock, RecordingSleep(clock))
            await gateway.fetch(minimum_count=10)
            clock.advance(3600)
            with pytest.raises(FetchExhaustedError):
                await gateway.fetch(minimum_count=50)
        assert len(gateway.cached_records()) == 10

    async def test_empty_results_keep_previous_cache(self):
        provider = ScriptedProvider((200, launches(50)), (200, envelope([])))
        clock = FakeClock()
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http:
            gateway = make_gateway(http, clock, RecordingSleep(clock))
            await gateway.fetch()
            clock.advance(700)
            records = await gateway.fetch()
            assert len(records) == 50
            assert not gateway.served_stale

            # Cache timestamp was not refreshed, so the next call asks again
            await gateway.fetch()
        assert len(provider.requests) == 3

    async def test_invalidate_forces_next_request(self):
        provider = ScriptedProvider((200, launches(50)))
        clock = FakeClock()
        async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as http:
            gateway = make_gateway(http, clock, RecordingSleep(clock))
            await gateway.fetch()
            gateway.invalidate()
            clock.advance(5)
            await gateway.fetch()
        assert len(provider.requests) == 2
