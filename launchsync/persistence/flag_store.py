"""File-backed favorite / notification flags.

Flags are user-local and authoritative here; the coordinator copies them
onto records on every merge.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from launchsync.contracts.launch import LaunchRecord
from launchsync.persistence.files import read_json, write_json_atomic

logger = logging.getLogger(__name__)


class FlagStore:
    """Favorite and notification-enabled launch ids."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._favorites: set[str] = set()
        self._notifications: set[str] = set()
        self._save_lock = asyncio.Lock()

    async def load(self) -> None:
        data = await asyncio.to_thread(read_json, self.path)
        if not isinstance(data, dict):
            data = {}
        self._favorites = self._id_set(data, "favorites")
        self._notifications = self._id_set(data, "notifications")
        logger.debug(
            "Loaded %d favorites and %d notification flags",
            len(self._favorites), len(self._notifications),
        )

    @property
    def favorites(self) -> frozenset[str]:
        return frozenset(self._favorites)

    @property
    def notifications(self) -> frozenset[str]:
        return frozenset(self._notifications)

    def is_favorite(self, launch_id: str) -> bool:
        return launch_id in self._favorites

    def notifications_enabled(self, launch_id: str) -> bool:
        return launch_id in self._notifications

    async def set_favorite(self, launch_id: str, value: bool) -> None:
        _toggle(self._favorites, launch_id, value)
        await self._save()

    async def set_notifications(self, launch_id: str, value: bool) -> None:
        _toggle(self._notifications, launch_id, value)
        await self._save()

    def apply(self, record: LaunchRecord) -> LaunchRecord:
        """Copy of ``record`` carrying the stored flags."""
        favorite = record.id in self._favorites
        notify = record.id in self._notifications
        if record.is_favorite == favorite and record.notifications_enabled == notify:
            return record
        return record.model_copy(update={
            "is_favorite": favorite,
            "notifications_enabled": notify,
        })

    async def _save(self) -> None:
        document = {
            "favorites": sorted(self._favorites),
            "notifications": sorted(self._notifications),
        }
        async with self._save_lock:
            await asyncio.to_thread(write_json_atomic, self.path, document)

    def _id_set(self, data: dict, key: str) -> set[str]:
        ids = data.get(key, [])
        if not isinstance(ids, list):
            logger.warning("Ignoring %r in %s: expected a list of ids", key, self.path)
            return set()
        return {str(i) for i in ids if isinstance(i, (str, int))}


def _toggle(ids: set[str], launch_id: str, value: bool) -> None:
    if value:
        ids.add(launch_id)
    else:
        ids.discard(launch_id)
