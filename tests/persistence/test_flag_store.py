"""Tests for the favorite / notification flag store."""

from __future__ import annotations

import asyncio
import json

import pytest

from launchsync.persistence.flag_store import FlagStore
from tests.fakes import make_record


@pytest.fixture
def path(tmp_path):
    return tmp_path / "launch_flags.json"


class TestFlagStore:
    async def test_empty_when_missing(self, path):
        flags = FlagStore(path)
        await flags.load()
        assert flags.favorites == frozenset()
        assert not flags.is_favorite("a")

    async def test_set_and_reload(self, path):
        flags = FlagStore(path)
        await flags.set_favorite("a", True)
        await flags.set_notifications("b", True)

        reloaded = FlagStore(path)
        await reloaded.load()
        assert reloaded.is_favorite("a")
        assert reloaded.notifications_enabled("b")
        assert json.loads(path.read_text()) == {"favorites": ["a"], "notifications": ["b"]}

    async def test_unset(self, path):
        flags = FlagStore(path)
        await flags.set_favorite("a", True)
        await flags.set_favorite("a", False)
        assert flags.favorites == frozenset()

    async def test_apply(self, path):
        flags = FlagStore(path)
        await flags.set_favorite("launch-1", True)
        record = flags.apply(make_record())
        assert record.is_favorite
        assert not record.notifications_enabled

    async def test_apply_clears_stale_flag(self, path):
        flags = FlagStore(path)
        record = flags.apply(make_record(is_favorite=True))
        assert not record.is_favorite

    async def test_apply_returns_same_object_when_unchanged(self, path):
        flags = FlagStore(path)
        record = make_record()
        assert flags.apply(record) is record

    async def test_non_object_file_treated_as_empty(self, path):
        path.write_text("[]")
        flags = FlagStore(path)
        await flags.load()
        assert flags.notifications == frozenset()

    async def test_non_list_ids_treated_as_empty(self, path, caplog):
        path.write_text(json.dumps({"favorites": 5, "notifications": ["b", None]}))
        flags = FlagStore(path)
        await flags.load()
        assert flags.favorites == frozenset()
        assert flags.notifications == frozenset({"b"})
        assert "expected a list of ids" in caplog.text

    async def test_concurrent_writes_all_persisted(self, path):
        flags = FlagStore(path)
        await asyncio.gather(*(flags.set_favorite(f"id-{i}", True) for i in range(10)))

        reloaded = FlagStore(path)
        await reloaded.load()
        assert reloaded.favorites == frozenset(f"id-{i}" for i in range(10))
        assert [p.name for p in path.parent.iterdir()] == [path.name]
