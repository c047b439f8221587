"""Image loader on top of ``AssetCache`` with in-flight deduplication.

A key being downloaded is never requested twice at once: later callers
wait for the running download, then read the result from the cache.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

import httpx

from launchsync.contracts.launch import LaunchRecord
from launchsync.services.assets.cache import AssetCache

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0
MEMORY_WARNING_KEEP = 20
PRELOAD_LIMIT = 5
PRELOAD_HORIZON = timedelta(days=7)
PRELOAD_PAUSE_SECONDS = 0.1


class AssetDownloadError(Exception):
    """Image download failed or returned no data."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Failed to load image for {key}: {reason}")


class AssetLoader:
    """Loads image bytes by key: index -> cache -> network."""

    def __init__(
        self,
        cache: AssetCache,
        http_client: httpx.AsyncClient | None = None,
        *,
        keep_on_memory_warning: int = MEMORY_WARNING_KEEP,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._cache = cache
        self._client = http_client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT, follow_redirects=True)
        self._keep = keep_on_memory_warning
        self._sleep = sleep
        self._index: OrderedDict[str, bytes] = OrderedDict()
        self._in_flight: dict[str, asyncio.Task[bytes]] = {}
        self.download_count = 0

    async def load(self, url: str, key: str) -> bytes:
        """Return the image for ``key``, downloading ``url`` if needed.

        Raises:
            AssetDownloadError: the download failed.
        """
        data = self._from_index(key)
        if data is not None:
            return data

        data = await self._cache.fetch(key)
        if data:
            self._put_index(key, data)
            return data

        running = self._in_flight.get(key)
        if running is not None:
            logger.debug("Image %s already in flight, waiting", key)
            await asyncio.wait({running})
            data = self._from_index(key) or await self._cache.fetch(key)
            if data:
                return data
            # The first download failed; surface its error
            return running.result()

        # A download may have finished while the cache read was suspended
        data = self._from_index(key)
        if data is not None:
            return data

        task = asyncio.create_task(self._download(url, key))
        self._in_flight[key] = task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done():
                self._in_flight.pop(key, None)
            else:
                task.add_done_callback(lambda _t: self._in_flight.pop(key, None))

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def cached_keys(self) -> list[str]:
        """Index keys, least recently used first."""
        return list(self._index)

    def clear(self) -> None:
        self._index.clear()

    def handle_memory_warning(self) -> int:
        """Trim the index to the most recently used entries. Disk is untouched."""
        excess = len(self._index) - self._keep
        for _ in range(max(excess, 0)):
            self._index.popitem(last=False)
        if excess > 0:
            logger.warning("Removed %d images from memory index after memory warning", excess)
        return max(excess, 0)

    async def preload(
        self,
        records: list[LaunchRecord],
        *,
        limit: int = PRELOAD_LIMIT,
        horizon: timedelta = PRELOAD_HORIZON,
        now: datetime | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[str]:
        """Warm the cache for the next few imminent launches.

        Returns the keys that were loaded. Failures are logged and skipped.
        """
        now = now or datetime.now(timezone.utc)
        candidates = sorted(
            (r for r in records if r.image_url and now < r.net < now + horizon),
            key=lambda r: r.net,
        )[:limit]

        loaded: list[str] = []
        for record in candidates:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Image preload cancelled")
                break
            try:
                await self.load(record.image_url, record.id)
                loaded.append(record.id)
            except AssetDownloadError as e:
                logger.error("Image prefetch failed for %s: %s", record.id, e.reason)
            await self._sleep(PRELOAD_PAUSE_SECONDS)
        return loaded

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _download(self, url: str, key: str) -> bytes:
        self.download_count += 1
        logger.info("Downloading image for %s", key)
        try:
            resp = await self._client.get(url)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AssetDownloadError(key, f"HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            raise AssetDownloadError(key, str(e) or type(e).__name__)
        except httpx.InvalidURL as e:
            raise AssetDownloadError(key, f"invalid URL: {e}")

        data = resp.content
        if not data:
            raise AssetDownloadError(key, "empty response")

        await self._cache.store(data, key)
        self._put_index(key, data)
        return data

    def _from_index(self, key: str) -> bytes | None:
        data = self._index.get(key)
        if data is not None:
            self._index.move_to_end(key)
        return data

    def _put_index(self, key: str, data: bytes) -> None:
        self._index[key] = data
        self._index.move_to_end(key)
