"""Enrichment orchestrator: cache, retries, fallback and batched sweeps.

``enrich`` never raises: when the service is unconfigured or keeps
failing, the deterministic fallback fills the record instead. The
orchestrator only returns records; persisting them is the caller's job.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from typing import AsyncIterator, Awaitable, Callable

import httpx
from pydantic import ValidationError

from launchsync.contracts.enrichment import EnrichmentResult
from launchsync.contracts.launch import LaunchRecord
from launchsync.services.enrichment.client import EnrichmentClient
from launchsync.services.enrichment.fallback import build_fallback_enrichment
from launchsync.services.errors import EnrichmentError

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 60 * 60
CACHE_MAX_ENTRIES = 100
MAX_RETRIES = 2
MAX_CONCURRENT = 3
SWEEP_BATCH_SIZE = 5
SWEEP_BATCH_PAUSE_SECONDS = 0.5


class EnrichmentOrchestrator:
    """Fills ``mission_overview`` and ``insights`` on launch records."""

    def __init__(
        self,
        client: EnrichmentClient,
        *,
        cache_ttl: float = CACHE_TTL_SECONDS,
        cache_max_entries: int = CACHE_MAX_ENTRIES,
        max_retries: int = MAX_RETRIES,
        max_concurrent: int = MAX_CONCURRENT,
        batch_size: int = SWEEP_BATCH_SIZE,
        batch_pause: float = SWEEP_BATCH_PAUSE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._cache_ttl = cache_ttl
        self._cache_max_entries = cache_max_entries
        self._max_retries = max_retries
        self._max_concurrent = max_concurrent
        self._batch_size = batch_size
        self._batch_pause = batch_pause
        self._clock = clock
        self._sleep = sleep
        self._cache: OrderedDict[str, tuple[EnrichmentResult, float]] = OrderedDict()

    # ------------------------------------------------------------------
    # Single record
    # ------------------------------------------------------------------

    async def enrich(self, record: LaunchRecord) -> LaunchRecord:
        """Return ``record`` with overview and insights populated."""
        cached = self._cached_result(record.id)
        if cached is not None:
            logger.debug("Enrichment cache hit for %s", record.id)
            return cached.apply_to(record)

        result = await self._obtain(record)
        self._store(record.id, result)
        return result.apply_to(record)

    def invalidate(self, record_id: str) -> None:
        self._cache.pop(record_id, None)

    def clear(self) -> None:
        self._cache.clear()

    async def _obtain(self, record: LaunchRecord) -> EnrichmentResult:
        if not self._client.is_configured:
            logger.warning("No enrichment API key, using fallback for %s", record.id)
            return build_fallback_enrichment(record)

        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            try:
                result = await self._client.request_enrichment(record)
                logger.info(
                    "Enriched %s from service (%d chars, %d insights)",
                    record.id, len(result.mission_overview), len(result.insights),
                )
                return result
            except (EnrichmentError, httpx.HTTPError, ValidationError) as e:
                last_error = e
                logger.warning(
                    "Enrichment attempt %d for %s failed: %s", attempt + 1, record.id, e
                )
            except Exception as e:
                # Request could not be built from the credential or URL
                logger.error(
                    "Enrichment request for %s failed, using fallback: %s: %s",
                    record.id, type(e).__name__, e,
                )
                return build_fallback_enrichment(record)
            if attempt < self._max_retries:
                await self._sleep(1.0 * (attempt + 1))

        logger.warning(
            "Enrichment for %s failed after %d retries, using fallback: %s",
            record.id, self._max_retries, last_error,
        )
        return build_fallback_enrichment(record)

    def _cached_result(self, record_id: str) -> EnrichmentResult | None:
        entry = self._cache.get(record_id)
        if entry is None:
            return None
        result, stored_at = entry
        if self._clock() - stored_at >= self._cache_ttl:
            del self._cache[record_id]
            return None
        return result

    def _store(self, record_id: str, result: EnrichmentResult) -> None:
        self._cache[record_id] = (result, self._clock())
        self._cache.move_to_end(record_id)
        while len(self._cache) > self._cache_max_entries:
            self._cache.popitem(last=False)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def enrich_batch(self, records: list[LaunchRecord]) -> list[LaunchRecord]:
        """Enrich ``records`` with at most ``max_concurrent`` in flight.

        Output is in completion order; every input id appears exactly once.
        """
        if not records:
            return []

        semaphore = asyncio.Semaphore(self._max_concurrent)

        async def run(record: LaunchRecord) -> LaunchRecord:
            async with semaphore:
                try:
                    return await self.enrich(record)
                except Exception as e:
                    logger.error("Unexpected enrichment failure for %s: %s", record.id, e)
                    return build_fallback_enrichment(record).apply_to(record)

        enriched: list[LaunchRecord] = []
        for next_done in asyncio.as_completed([run(r) for r in records]):
            enriched.append(await next_done)
        return enriched

    async def sweep(
        self,
        records: list[LaunchRecord],
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[list[LaunchRecord]]:
        """Enrich every unenriched record, yielding one finished batch at a time.

        Batches run strictly in sequence with a short pause between them.
        The caller persists each yielded batch; setting ``cancel_event``
        stops the sweep before the next batch starts.
        """
        pending = [r for r in records if r.is_unenriched]
        if not pending:
            logger.info("No launches need enrichment")
            return

        total_batches = (len(pending) + self._batch_size - 1) // self._batch_size
        logger.info("Enriching %d launches in %d batches", len(pending), total_batches)

        for index in range(0, len(pending), self._batch_size):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Enrichment sweep cancelled")
                return

            batch_number = index // self._batch_size + 1
            batch = pending[index:index + self._batch_size]
            started = self._clock()
            enriched = await self.enrich_batch(batch)
            logger.info(
                "Enrichment batch %d/%d completed in %.2fs",
                batch_number, total_batches, self._clock() - started,
            )
            yield enriched

            if index + self._batch_size < len(pending):
                await self._sleep(self._batch_pause)

        logger.info("Enrichment sweep finished (%d launches)", len(pending))
