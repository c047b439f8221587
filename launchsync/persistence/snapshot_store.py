"""File-backed store for the enriched launch snapshot.

The snapshot is always read and written whole: one JSON document holding
every ``LaunchRecord`` in the working set.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from launchsync.contracts.launch import LaunchRecord
from launchsync.persistence.errors import SnapshotDecodeError
from launchsync.persistence.files import read_json, write_json_atomic

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class SnapshotStore:
    """Reads and writes the snapshot file at ``path``."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def load(self) -> list[LaunchRecord] | None:
        """Stored records, or *None* if nothing has been saved yet.

        Entries that no longer validate are skipped.

        Raises:
            SnapshotDecodeError: the file exists but is not a snapshot.
        """
        data = await asyncio.to_thread(read_json, self.path)
        if data is None:
            return None
        if not isinstance(data, dict) or not isinstance(data.get("launches"), list):
            raise SnapshotDecodeError(str(self.path), "missing 'launches' list")

        records: list[LaunchRecord] = []
        for raw in data["launches"]:
            try:
                records.append(LaunchRecord.from_snapshot(raw))
            except ValidationError as e:
                logger.warning("Skipping unreadable snapshot entry: %s", e)
        return records

    async def save(self, records: list[LaunchRecord]) -> None:
        """Overwrite the snapshot with ``records``."""
        document = {
            "version": SNAPSHOT_VERSION,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "launches": [r.to_snapshot() for r in records],
        }
        await asyncio.to_thread(write_json_atomic, self.path, document)
        logger.debug("Saved snapshot with %d launches to %s", len(records), self.path)

    async def clear(self) -> None:
        await asyncio.to_thread(self.path.unlink, missing_ok=True)
