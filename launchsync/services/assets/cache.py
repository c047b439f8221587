"""Two-tier (memory + disk) cache for binary image payloads.

Memory is an LRU bounded by bytes. Disk holds one file per key, bounded
by age (TTL) and by total size; the sweep evicts oldest-first down to 80%
of the budget once the budget is exceeded.

Usage:
    cache = await AssetCache.open("./image_cache")
    await cache.store(data, "launch-id")
    data = await cache.fetch("launch-id")
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

FILE_SUFFIX = ".img"
TEMP_SUFFIX = ".tmp"
DISK_TTL_SECONDS = 3 * 24 * 60 * 60
DISK_BUDGET_BYTES = 100 * 1024 * 1024
DISK_TARGET_RATIO = 0.8
MEMORY_BUDGET_BYTES = 64 * 1024 * 1024
STALE_TEMP_SECONDS = 60 * 60

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_key(key: str) -> str:
    """File-name-safe form of a cache key."""
    cleaned = _UNSAFE_CHARS.sub("_", key)
    # "." and ".." would resolve outside the file namespace
    if cleaned.strip(".") == "":
        cleaned = cleaned.replace(".", "_")
    return cleaned


@dataclass
class SweepReport:
    """Outcome of one disk sweep."""

    expired: list[str]
    evicted: list[str]
    bytes_before: int
    bytes_after: int

    @property
    def removed_count(self) -> int:
        return len(self.expired) + len(self.evicted)

    def __str__(self) -> str:
        return (
            f"removed {len(self.expired)} expired, {len(self.evicted)} over budget; "
            f"{self.bytes_after / 1024 / 1024:.1f}MB remaining"
        )


@dataclass
class _DiskEntry:
    path: Path
    size: int
    created_at: float


class AssetCache:
    """Memory + disk store for image bytes keyed by an opaque string.

    Memory writes happen immediately; disk writes run in the background
    and a failed disk write is logged, leaving the memory copy in place.
    """

    def __init__(
        self,
        cache_dir: str | Path,
        *,
        memory_budget: int = MEMORY_BUDGET_BYTES,
        disk_budget: int = DISK_BUDGET_BYTES,
        disk_ttl: float = DISK_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_dir = Path(cache_dir)
        self._memory_budget = memory_budget
        self._disk_budget = disk_budget
        self._disk_ttl = disk_ttl
        self._clock = clock

        self._memory: OrderedDict[str, bytes] = OrderedDict()
        self._memory_bytes = 0
        self._pending: set[asyncio.Task] = set()
        self._sweep_lock = asyncio.Lock()
        self.disk_reads = 0

        self.cache_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    async def open(cls, cache_dir: str | Path, **kwargs) -> AssetCache:
        """Create a cache and start a background disk sweep."""
        cache = cls(cache_dir, **kwargs)
        cache.schedule_cleanup()
        return cache

    # ------------------------------------------------------------------
    # Store / fetch
    # ------------------------------------------------------------------

    async def store(self, data: bytes, key: str) -> None:
        """Put ``data`` in memory now and on disk in the background."""
        if not data:
            return
        logger.debug("Caching %d bytes for %s", len(data), key)
        self._remember(key, data)
        self._spawn(self._write_disk(key, data))

    async def fetch(self, key: str) -> bytes | None:
        """Memory first, then disk; a disk hit is promoted into memory."""
        data = self._memory.get(key)
        if data is not None:
            self._memory.move_to_end(key)
            return data

        path = self._path_for(key)
        self.disk_reads += 1
        try:
            data = await asyncio.to_thread(_read_file, path)
        except OSError as e:
            logger.error("Failed to read %s from disk: %s", key, e)
            return None
        if data:
            self._remember(key, data)
        return data

    def contains_in_memory(self, key: str) -> bool:
        return key in self._memory

    async def remove(self, key: str) -> None:
        self._forget(key)
        path = self._path_for(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)

    async def clear(self, include_disk: bool = False) -> None:
        self._memory.clear()
        self._memory_bytes = 0
        if include_disk:
            await self.flush()
            await asyncio.to_thread(self._clear_disk)

    async def flush(self) -> None:
        """Wait for background disk writes and sweeps to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def memory_bytes(self) -> int:
        return self._memory_bytes

    # ------------------------------------------------------------------
    # Disk maintenance
    # ------------------------------------------------------------------

    def schedule_cleanup(self) -> None:
        """Run ``cleanup_disk`` in the background."""
        self._spawn(self.cleanup_disk())

    async def cleanup_disk(self) -> SweepReport:
        """Remove expired files, then enforce the size budget oldest-first."""
        async with self._sweep_lock:
            report = await asyncio.to_thread(self._sweep)
        if report.removed_count:
            logger.info("Disk cache cleaned: %s", report)
        else:
            logger.debug("Disk cache cleaned: %s", report)
        return report

    def _sweep(self) -> SweepReport:
        now = self._clock()
        entries: list[_DiskEntry] = []
        for path in self.cache_dir.iterdir():
            if not path.is_file():
                continue
            if path.suffix not in (FILE_SUFFIX, TEMP_SUFFIX):
                continue
            try:
                stat = path.stat()
            except FileNotFoundError:
                continue
            if path.suffix == TEMP_SUFFIX:
                # Leftover from an interrupted write; recent ones may still be in use
                if now - stat.st_mtime > STALE_TEMP_SECONDS:
                    path.unlink(missing_ok=True)
                continue
            entries.append(_DiskEntry(path, stat.st_size, stat.st_mtime))

        bytes_before = sum(e.size for e in entries)

        expired: list[str] = []
        survivors: list[_DiskEntry] = []
        for entry in entries:
            if now - entry.created_at > self._disk_ttl:
                entry.path.unlink(missing_ok=True)
                expired.append(entry.path.stem)
            else:
                survivors.append(entry)

        total = sum(e.size for e in survivors)
        evicted: list[str] = []
        if total > self._disk_budget:
            logger.warning(
                "Disk cache over budget (%d > %d bytes), evicting oldest",
                total, self._disk_budget,
            )
            target = int(self._disk_budget * DISK_TARGET_RATIO)
            for entry in sorted(survivors, key=lambda e: e.created_at):
                if total <= target:
                    break
                entry.path.unlink(missing_ok=True)
                evicted.append(entry.path.stem)
                total -= entry.size

        return SweepReport(
            expired=expired,
            evicted=evicted,
            bytes_before=bytes_before,
            bytes_after=total,
        )

    def _clear_disk(self) -> None:
        for path in self.cache_dir.iterdir():
            if path.is_file() and path.suffix in (FILE_SUFFIX, TEMP_SUFFIX):
                path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _path_for(self, key: str) -> Path:
        return self.cache_dir / f"{sanitize_key(key)}{FILE_SUFFIX}"

    def _remember(self, key: str, data: bytes) -> None:
        self._forget(key)
        self._memory[key] = data
        self._memory_bytes += len(data)
        while self._memory_bytes > self._memory_budget and len(self._memory) > 1:
            _, evicted = self._memory.popitem(last=False)
            self._memory_bytes -= len(evicted)

    def _forget(self, key: str) -> None:
        old = self._memory.pop(key, None)
        if old is not None:
            self._memory_bytes -= len(old)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write_disk(self, key: str, data: bytes) -> None:
        path = self._path_for(key)
        try:
            await asyncio.to_thread(_atomic_write, path, data)
        except OSError as e:
            logger.error("Failed to write %s to disk: %s", key, e)


def _read_file(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def _atomic_write(path: Path, data: bytes) -> None:
    """Write to a temp file in the same directory, then rename over ``path``."""
    tmp = path.with_name(f"{path.name}.{os.getpid()}.{time.monotonic_ns()}{TEMP_SUFFIX}")
    try:
        tmp.write_bytes(data)
        os.replace(tmp, path)
    finally:
        tmp.unlink(missing_ok=True)
