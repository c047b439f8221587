"""Launch Library client with rate limiting, retries and a response cache.

Usage:
    from launchsync.services.launches.gateway import LaunchGateway

    gateway = LaunchGateway(http_client)
    records = await gateway.fetch(force_refresh=False, minimum_count=50)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

import httpx

from launchsync.config import DEFAULT_PROVIDER_URL
from launchsync.contracts.enums import ResponseClass
from launchsync.contracts.launch import LaunchRecord
from launchsync.services.errors import FetchExhaustedError, RetryableResponseError
from launchsync.services.launches.parser import parse_envelope

logger = logging.getLogger(__name__)

CACHE_VALIDITY_SECONDS = 10 * 60
MIN_REQUEST_INTERVAL_SECONDS = 3.0
MAX_RETRIES = 3
# Delay before attempt n (0-based)
BACKOFF_SCHEDULE: tuple[float, ...] = (0.0, 3.0, 9.0, 27.0)
REQUEST_TIMEOUT = 30.0


def backoff_delay(attempt: int) -> float:
    """Seconds to wait before ``attempt``; the last entry repeats."""
    return BACKOFF_SCHEDULE[min(max(attempt, 0), len(BACKOFF_SCHEDULE) - 1)]


class LaunchGateway:
    """Fetches upcoming launches from the provider.

    All mutable state (response cache, last request time) belongs to one
    instance and is only touched while holding the instance's lock, so
    concurrent callers are served one at a time.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        url: str = DEFAULT_PROVIDER_URL,
        page_limit: int = 50,
        api_key: str | None = None,
        cache_validity: float = CACHE_VALIDITY_SECONDS,
        min_request_interval: float = MIN_REQUEST_INTERVAL_SECONDS,
        max_retries: int = MAX_RETRIES,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = http_client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT)
        self._url = url
        self._page_limit = page_limit
        self._api_key = api_key
        self._cache_validity = cache_validity
        self._min_interval = min_request_interval
        self._max_retries = max_retries
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()

        self._cached: list[LaunchRecord] | None = None
        self._cached_at: float | None = None
        self._last_request_at: float | None = None
        self.served_stale = False
        self.request_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch(
        self,
        force_refresh: bool = False,
        minimum_count: int = 50,
    ) -> list[LaunchRecord]:
        """Return upcoming launches, from cache when possible.

        Raises:
            FetchExhaustedError: every attempt failed and no cached
                response (fresh or expired) holds ``minimum_count`` records.
        """
        async with self._lock:
            self.served_stale = False
            if not force_refresh and self._cache_is_fresh(minimum_count):
                logger.debug("Using cached launch response (%d records)", len(self._cached))
                return list(self._cached)
            return await self._fetch_with_retry(minimum_count)

    def cached_records(self) -> list[LaunchRecord]:
        """Last successful response, regardless of age."""
        return list(self._cached or [])

    def invalidate(self) -> None:
        self._cached_at = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cache_is_fresh(self, minimum_count: int) -> bool:
        if self._cached is None or self._cached_at is None:
            return False
        if self._clock() - self._cached_at >= self._cache_validity:
            return False
        return len(self._cached) >= minimum_count

    async def _fetch_with_retry(self, minimum_count: int) -> list[LaunchRecord]:
        last_error: Exception | None = None
        attempts = 0

        for attempt in range(self._max_retries + 1):
            delay = backoff_delay(attempt)
            if delay > 0:
                logger.warning(
                    "Retrying launch fetch in %.0fs (attempt %d of %d)",
                    delay, attempt + 1, self._max_retries + 1,
                )
                await self._sleep(delay)

            await self._enforce_rate_limit()
            attempts += 1
            try:
                records = await self._perform_request()
            except (RetryableResponseError, httpx.HTTPError, ValueError) as e:
                last_error = e
                logger.warning("Launch fetch attempt %d failed: %s", attempts, e)
                continue

            if not records:
                logger.info("No launches received, keeping cached data")
                return self.cached_records()

            self._cached = records
            self._cached_at = self._clock()
            logger.info("Fetched %d launches", len(records))
            return list(records)

        if self._cached is not None and len(self._cached) >= minimum_count:
            logger.warning(
                "Using expired cached response (%d records) after %d failed attempts",
                len(self._cached), attempts,
            )
            self.served_stale = True
            return list(self._cached)

        logger.error("Launch fetch failed after %d attempts: %s", attempts, last_error)
        raise FetchExhaustedError(attempts, last_error)

    async def _enforce_rate_limit(self) -> None:
        if self._last_request_at is None:
            return
        elapsed = self._clock() - self._last_request_at
        wait = self._min_interval - elapsed
        if wait > 0:
            logger.debug("Rate limit: waiting %.2fs", wait)
            await self._sleep(wait)

    async def _perform_request(self) -> list[LaunchRecord]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Token {self._api_key}"

        self._last_request_at = self._clock()
        self.request_count += 1
        try:
            resp = await self._client.get(
                self._url,
                params={"limit": self._page_limit},
                headers=headers,
            )
        finally:
            self._last_request_at = self._clock()

        response_class = ResponseClass.classify(resp.status_code)
        if response_class != ResponseClass.SUCCESS:
            if response_class == ResponseClass.RATE_LIMITED:
                logger.warning("Rate limited (429), backing off")
            raise RetryableResponseError(resp.status_code)

        return parse_envelope(resp.json())
