"""Top-level launch synchronization.

Sequence per sync:

1. Prune launches older than 24 h from the working set
2. Fetch from the gateway (cache, rate limit and retries live there)
3. Merge with the working set, keeping existing enrichment
4. Apply user flags, persist the snapshot, notify observers
5. Start the background enrichment sweep (persisting after each batch)
6. Start image prefetch and an opportunistic disk-cache sweep

The coordinator is the only writer of the snapshot.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

from launchsync.contracts.launch import LaunchRecord
from launchsync.contracts.result import UNABLE_TO_LOAD_MESSAGE, ServiceResult
from launchsync.persistence.errors import SnapshotDecodeError
from launchsync.persistence.flag_store import FlagStore
from launchsync.persistence.snapshot_store import SnapshotStore
from launchsync.services.assets.cache import AssetCache
from launchsync.services.assets.loader import AssetLoader
from launchsync.services.enrichment.fallback import (
    build_fallback_enrichment,
    is_fallback_enrichment,
    needs_enrichment,
)
from launchsync.services.enrichment.orchestrator import EnrichmentOrchestrator
from launchsync.services.errors import FetchExhaustedError
from launchsync.services.launches.gateway import LaunchGateway

logger = logging.getLogger(__name__)

EXPIRY_WINDOW = timedelta(hours=24)
DEFAULT_MINIMUM_COUNT = 50

Listener = Callable[[list[LaunchRecord]], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def prune_expired(
    records: list[LaunchRecord],
    now: datetime,
    window: timedelta = EXPIRY_WINDOW,
) -> list[LaunchRecord]:
    """Drop records whose ``net`` is more than ``window`` in the past."""
    cutoff = now - window
    return [r for r in records if r.net >= cutoff]


def merge_records(
    existing: dict[str, LaunchRecord],
    fresh: list[LaunchRecord],
) -> dict[str, LaunchRecord]:
    """Merge freshly fetched records into the working set.

    A record already in the working set is kept as is (its enrichment
    included); it only picks up an image URL if it had none. New records
    are added. Records missing from ``fresh`` stay until pruned.
    """
    merged = dict(existing)
    for record in fresh:
        current = merged.get(record.id)
        if current is None:
            merged[record.id] = record
        elif current.image_url is None and record.image_url is not None:
            merged[record.id] = current.model_copy(update={"image_url": record.image_url})
    return merged


class SyncCoordinator:
    """Owns the working set of launches and its persisted snapshot."""

    def __init__(
        self,
        gateway: LaunchGateway,
        orchestrator: EnrichmentOrchestrator,
        snapshot_store: SnapshotStore,
        flag_store: FlagStore,
        *,
        asset_cache: AssetCache | None = None,
        asset_loader: AssetLoader | None = None,
        minimum_count: int = DEFAULT_MINIMUM_COUNT,
        expiry_window: timedelta = EXPIRY_WINDOW,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._gateway = gateway
        self._orchestrator = orchestrator
        self._snapshots = snapshot_store
        self._flags = flag_store
        self._asset_cache = asset_cache
        self._asset_loader = asset_loader
        self._minimum_count = minimum_count
        self._expiry_window = expiry_window
        self._now = now

        self._records: dict[str, LaunchRecord] = {}
        self._listeners: list[Listener] = []
        self._persist_lock = asyncio.Lock()
        self._has_fetched = False

        self._background: set[asyncio.Task] = set()
        self._enrichment_cancel: asyncio.Event | None = None
        self._prefetch_cancel: asyncio.Event | None = None

        self.is_initial_loading = True
        self.loading_error: str | None = None

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def records(self) -> list[LaunchRecord]:
        """Working set sorted by ``net``."""
        return sorted(self._records.values(), key=lambda r: r.net)

    def get(self, record_id: str) -> LaunchRecord | None:
        return self._records.get(record_id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with the sorted records on every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        records = self.records
        for listener in list(self._listeners):
            listener(records)

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> list[LaunchRecord]:
        """Load flags and the persisted snapshot into the working set."""
        await self._flags.load()
        try:
            stored = await self._snapshots.load() or []
        except SnapshotDecodeError as e:
            logger.error("Ignoring unreadable snapshot: %s", e)
            stored = []

        kept = prune_expired(stored, self._now(), self._expiry_window)
        self._records = {r.id: self._flags.apply(r) for r in kept}
        logger.info("Loaded %d cached launches", len(self._records))

        if len(self._records) >= self._minimum_count:
            self.is_initial_loading = False
            self._has_fetched = True
        if len(kept) != len(stored):
            logger.info("Removed %d expired launches", len(stored) - len(kept))
            await self._persist()
        self._publish()
        return self.records

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync(
        self,
        force_refresh: bool = False,
        minimum_count: int | None = None,
        enrich: bool = True,
    ) -> ServiceResult[list[LaunchRecord]]:
        """Fetch, merge, persist and kick off background enrichment."""
        minimum = self._minimum_count if minimum_count is None else minimum_count
        started = time.monotonic()

        await self._remove_expired()

        if not force_refresh and self._has_fetched and len(self._records) >= minimum:
            logger.info("Sync skipped (already fetched and no force refresh)")
            return ServiceResult.ok(self.records)

        self.loading_error = None
        self._has_fetched = True
        self._cancel_background()

        try:
            fresh = await self._gateway.fetch(force_refresh=force_refresh, minimum_count=minimum)
        except FetchExhaustedError as e:
            logger.error("Launch fetch failed: %s", e)
            self.loading_error = UNABLE_TO_LOAD_MESSAGE
            self.is_initial_loading = False
            self._has_fetched = False
            self._publish()
            return ServiceResult.unable_to_load(attempts=e.attempts)

        logger.info("%d launches fetched", len(fresh))
        merged = merge_records(self._records, fresh)
        kept = prune_expired(list(merged.values()), self._now(), self._expiry_window)
        self._records = {r.id: self._flags.apply(r) for r in kept}

        await self._persist()
        self.is_initial_loading = False
        self._publish()

        if enrich:
            self._start_enrichment()
        self._start_prefetch()
        if self._asset_cache is not None:
            self._asset_cache.schedule_cleanup()

        duration_ms = (time.monotonic() - started) * 1000
        logger.info("Sync completed with %d launches in memory", len(self._records))
        return ServiceResult.ok(
            self.records, duration_ms=duration_ms, stale=self._gateway.served_stale
        )

    async def _remove_expired(self) -> None:
        kept = prune_expired(list(self._records.values()), self._now(), self._expiry_window)
        removed = len(self._records) - len(kept)
        if removed:
            logger.info("Removing %d expired launches", removed)
            self._records = {r.id: r for r in kept}
            await self._persist()
            self._publish()

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    def _start_enrichment(self) -> None:
        self._enrichment_cancel = asyncio.Event()
        self._spawn(self._run_enrichment(self.records, self._enrichment_cancel))

    async def _run_enrichment(
        self,
        records: list[LaunchRecord],
        cancel_event: asyncio.Event,
    ) -> None:
        async for batch in self._orchestrator.sweep(records, cancel_event):
            updated = self._apply_enrichment(batch)
            await self._persist()
            self._publish()
            logger.info("Saved enrichment batch - updated %d/%d launches", updated, len(batch))

    def _apply_enrichment(self, enriched: list[LaunchRecord]) -> int:
        updated = 0
        for record in enriched:
            current = self._records.get(record.id)
            if current is None or not record.mission_overview or not record.insights:
                continue
            # A late fallback never replaces service text applied meanwhile
            if is_fallback_enrichment(record) and not needs_enrichment(current):
                logger.debug("Keeping service enrichment for %s", record.id)
                continue
            self._records[record.id] = current.model_copy(update={
                "mission_overview": record.mission_overview,
                "insights": list(record.insights),
                "enrichment_source": record.enrichment_source,
            })
            updated += 1
        return updated

    async def ensure_enriched(self, record_id: str) -> LaunchRecord | None:
        """Enrich one record unless it already has non-fallback enrichment."""
        record = self._records.get(record_id)
        if record is None:
            logger.error("Launch %s not found, cannot enrich", record_id)
            return None

        if not needs_enrichment(record):
            logger.debug("Launch %s already enriched", record_id)
            return record

        # A cached fallback must not block a fresh service attempt
        self._orchestrator.invalidate(record_id)
        enriched = await self._orchestrator.enrich(record)
        self._apply_enrichment([enriched])
        await self._persist()
        self._publish()
        return self._records.get(record_id)

    async def apply_fallback(self, record_id: str) -> LaunchRecord | None:
        """Fill missing overview/insights with fallback text right away."""
        record = self._records.get(record_id)
        if record is None:
            return None
        if record.has_overview and record.has_insights:
            return record

        self._records[record_id] = build_fallback_enrichment(record).apply_to(record)
        await self._persist()
        self._publish()
        return self._records[record_id]

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def _start_prefetch(self) -> None:
        if self._asset_loader is None:
            return
        self._prefetch_cancel = asyncio.Event()
        self._spawn(self._asset_loader.preload(
            self.records, now=self._now(), cancel_event=self._prefetch_cancel
        ))

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------

    async def set_favorite(self, record_id: str, value: bool) -> None:
        await self._flags.set_favorite(record_id, value)
        await self._reapply_flags(record_id)

    async def set_notifications(self, record_id: str, value: bool) -> None:
        await self._flags.set_notifications(record_id, value)
        await self._reapply_flags(record_id)

    async def _reapply_flags(self, record_id: str) -> None:
        record = self._records.get(record_id)
        if record is None:
            return
        self._records[record_id] = self._flags.apply(record)
        await self._persist()
        self._publish()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def handle_memory_warning(self) -> None:
        logger.warning("Handling memory warning")
        if self._asset_loader is not None:
            self._asset_loader.handle_memory_warning()
        self._cancel_background()

    async def wait_for_background(self) -> None:
        """Wait for every enrichment sweep and image prefetch still running.

        Failures were already logged when the task finished.
        """
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self) -> None:
        self._cancel_background()
        await self.wait_for_background()
        if self._asset_cache is not None:
            await self._asset_cache.flush()

    def _cancel_background(self) -> None:
        for event in (self._enrichment_cancel, self._prefetch_cancel):
            if event is not None:
                event.set()

    async def _persist(self) -> None:
        async with self._persist_lock:
            await self._snapshots.save(self.records)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Background task failed: %s: %s", type(error).__name__, error)
