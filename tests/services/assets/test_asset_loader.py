"""Tests for the image loader."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import httpx
import pytest

from launchsync.services.assets.cache import AssetCache
from launchsync.services.assets.loader import AssetDownloadError, AssetLoader
from tests.fakes import BASE_TIME, RecordingSleep, make_record


class ImageServer:
    def __init__(self, failing: set[str] | None = None):
        self.failing = failing or set()
        self.requests: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(str(request.url))
        if request.url.path in self.failing:
            return httpx.Response(404)
        if request.url.path == "/empty.jpg":
            return httpx.Response(200, content=b"")
        return httpx.Response(200, content=f"bytes:{request.url.path}".encode())


class TestAssetLoader:
    async def test_downloads_then_serves_from_index(self, tmp_path):
        server = ImageServer()
        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http:
            cache = AssetCache(tmp_path)
            loader = AssetLoader(cache, http)
            first = await loader.load("https://img.example.com/a.jpg", "a")
            second = await loader.load("https://img.example.com/a.jpg", "a")
            await cache.flush()

        assert first == second == b"bytes:/a.jpg"
        assert loader.download_count == 1
        assert (tmp_path / "a.img").exists()

    async def test_concurrent_loads_share_one_download(self, tmp_path):
        server = ImageServer()
        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http:
            cache = AssetCache(tmp_path)
            loader = AssetLoader(cache, http)
            results = await asyncio.gather(
                loader.load("https://img.example.com/a.jpg", "a"),
                loader.load("https://img.example.com/a.jpg", "a"),
            )
            await cache.flush()

        assert results[0] == results[1] == b"bytes:/a.jpg"
        assert loader.download_count == 1
        assert len(server.requests) == 1
        assert not loader.is_in_flight("a")

    async def test_disk_cache_avoids_download(self, tmp_path):
        (tmp_path / "a.img").write_bytes(b"cached")
        server = ImageServer()
        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http:
            loader = AssetLoader(AssetCache(tmp_path), http)
            assert await loader.load("https://img.example.com/a.jpg", "a") == b"cached"
        assert server.requests == []

    async def test_http_error(self, tmp_path):
        server = ImageServer(failing={"/missing.jpg"})
        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http:
            loader = AssetLoader(AssetCache(tmp_path), http)
            with pytest.raises(AssetDownloadError) as exc_info:
                await loader.load("https://img.example.com/missing.jpg", "m")
        assert exc_info.value.reason == "HTTP 404"
        assert not loader.is_in_flight("m")

    async def test_empty_body(self, tmp_path):
        async with httpx.AsyncClient(transport=httpx.MockTransport(ImageServer())) as http:
            loader = AssetLoader(AssetCache(tmp_path), http)
            with pytest.raises(AssetDownloadError):
                await loader.load("https://img.example.com/empty.jpg", "e")

    async def test_memory_warning_trims_index(self, tmp_path):
        async with httpx.AsyncClient(transport=httpx.MockTransport(ImageServer())) as http:
            cache = AssetCache(tmp_path)
            loader = AssetLoader(cache, http, keep_on_memory_warning=2)
            for key in ("a", "b", "c", "d"):
                await loader.load(f"https://img.example.com/{key}.jpg", key)
            await cache.flush()

            removed = loader.handle_memory_warning()

        assert removed == 2
        assert loader.cached_keys() == ["c", "d"]
        assert loader.handle_memory_warning() == 0


class TestPreload:
    async def test_loads_next_five_within_a_week(self, tmp_path):
        records = [
            make_record(f"soon-{i}", net=BASE_TIME + timedelta(hours=6 - i),
                        image_url=f"https://img.example.com/soon-{i}.jpg")
            for i in range(6)
        ]
        records += [
            make_record("far", net=BASE_TIME + timedelta(days=8),
                        image_url="https://img.example.com/far.jpg"),
            make_record("past", net=BASE_TIME - timedelta(hours=1),
                        image_url="https://img.example.com/past.jpg"),
            make_record("no-image", net=BASE_TIME + timedelta(minutes=5)),
        ]
        sleep = RecordingSleep()
        async with httpx.AsyncClient(transport=httpx.MockTransport(ImageServer())) as http:
            cache = AssetCache(tmp_path)
            loader = AssetLoader(cache, http, sleep=sleep)
            loaded = await loader.preload(records, now=BASE_TIME)
            await cache.flush()

        assert loaded == ["soon-5", "soon-4", "soon-3", "soon-2", "soon-1"]
        assert sleep.delays == [0.1] * 5

    async def test_failures_are_skipped(self, tmp_path):
        records = [
            make_record("bad", net=BASE_TIME + timedelta(hours=1),
                        image_url="https://img.example.com/bad.jpg"),
            make_record("good", net=BASE_TIME + timedelta(hours=2),
                        image_url="https://img.example.com/good.jpg"),
        ]
        server = ImageServer(failing={"/bad.jpg"})
        async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http:
            cache = AssetCache(tmp_path)
            loader = AssetLoader(cache, http, sleep=RecordingSleep())
            loaded = await loader.preload(records, now=BASE_TIME)
            await cache.flush()
        assert loaded == ["good"]

    async def test_malformed_url_skipped(self, tmp_path):
        records = [
            make_record("bad", net=BASE_TIME + timedelta(hours=1),
                        image_url="https://img.example.com:abc/bad.jpg"),
            make_record("good", net=BASE_TIME + timedelta(hours=2),
                        image_url="https://img.example.com/good.jpg"),
        ]
        async with httpx.AsyncClient(transport=httpx.MockTransport(ImageServer())) as http:
            cache = AssetCache(tmp_path)
            loader = AssetLoader(cache, http, sleep=RecordingSleep())
            loaded = await loader.preload(records, now=BASE_TIME)
            await cache.flush()
        assert loaded == ["good"]
        assert not loader.is_in_flight("bad")

    async def test_cancelled(self, tmp_path):
        cancel = asyncio.Event()
        cancel.set()
        records = [make_record("a", net=BASE_TIME + timedelta(hours=1),
                               image_url="https://img.example.com/a.jpg")]
        async with httpx.AsyncClient(transport=httpx.MockTransport(ImageServer())) as http:
            loader = AssetLoader(AssetCache(tmp_path), http, sleep=RecordingSleep())
            assert await loader.preload(records, now=BASE_TIME, cancel_event=cancel) == []
