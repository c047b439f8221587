"""CLI entry point for launch synchronization.

Usage:
    python -m launchsync.cli sync --force -v
    python -m launchsync.cli show --data-dir ./launchsync_data
    python -m launchsync.cli cleanup
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from pathlib import Path

import httpx

from launchsync.config import Settings
from launchsync.contracts.launch import LaunchRecord
from launchsync.persistence.errors import SnapshotDecodeError
from launchsync.persistence.flag_store import FlagStore
from launchsync.persistence.snapshot_store import SnapshotStore
from launchsync.services.assets.cache import AssetCache
from launchsync.services.assets.loader import AssetLoader
from launchsync.services.enrichment.client import EnrichmentClient
from launchsync.services.enrichment.fallback import is_fallback_enrichment
from launchsync.services.enrichment.orchestrator import EnrichmentOrchestrator
from launchsync.services.launches.gateway import LaunchGateway
from launchsync.services.sync_coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


def format_record(record: LaunchRecord) -> str:
    """One-line summary used by ``sync`` and ``show``."""
    if not record.has_overview:
        enrichment = "-"
    elif is_fallback_enrichment(record):
        enrichment = "fallback"
    else:
        enrichment = "service"
    flags = ("*" if record.is_favorite else " ") + ("!" if record.notifications_enabled else " ")
    return (
        f"{flags} {record.net:%Y-%m-%d %H:%M}Z  {record.name}  "
        f"[{record.provider} / {record.rocket_name}]  enrichment={enrichment}"
    )


async def run_sync(settings: Settings, force: bool, minimum: int, enrich: bool) -> int:
    async with httpx.AsyncClient(timeout=settings.request_timeout) as provider_http, \
            httpx.AsyncClient(timeout=settings.enrichment_timeout) as enrichment_http, \
            httpx.AsyncClient(timeout=settings.request_timeout, follow_redirects=True) as image_http:
        gateway = LaunchGateway(
            provider_http,
            url=settings.provider_url,
            page_limit=settings.page_limit,
            api_key=settings.provider_api_key,
        )
        orchestrator = EnrichmentOrchestrator(EnrichmentClient(
            enrichment_http,
            api_key=settings.enrichment_api_key,
            url=settings.enrichment_url,
            model=settings.enrichment_model,
        ))
        asset_cache = await AssetCache.open(settings.asset_dir)
        coordinator = SyncCoordinator(
            gateway,
            orchestrator,
            SnapshotStore(settings.snapshot_path),
            FlagStore(settings.flags_path),
            asset_cache=asset_cache,
            asset_loader=AssetLoader(asset_cache, image_http),
            minimum_count=minimum,
        )

        await coordinator.start()
        result = await coordinator.sync(force_refresh=force, minimum_count=minimum, enrich=enrich)
        await coordinator.wait_for_background()
        await coordinator.close()

    if not result.success:
        logger.error("%s", result.error.message)
        return 1

    if result.stale:
        logger.warning("Provider unavailable, showing cached launches")
    for record in coordinator.records:
        print(format_record(record))
    return 0


async def run_show(settings: Settings) -> int:
    try:
        records = await SnapshotStore(settings.snapshot_path).load()
    except SnapshotDecodeError as e:
        logger.error("Cannot read saved launches: %s", e)
        return 1
    if not records:
        print("No saved launches.")
        return 0
    for record in sorted(records, key=lambda r: r.net):
        print(format_record(record))
    return 0


async def run_cleanup(settings: Settings) -> int:
    cache = AssetCache(settings.asset_dir)
    report = await cache.cleanup_disk()
    print(f"Disk cache cleaned: {report}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="LaunchSync launch data pipeline")
    parser.add_argument("--data-dir", type=Path, help="Directory for snapshot, flags and images")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Fetch, merge and enrich launches")
    sync.add_argument("--force", action="store_true", help="Ignore the response cache")
    sync.add_argument("--minimum", type=int, help="Minimum number of launches to load")
    sync.add_argument("--no-enrich", action="store_true", help="Skip the enrichment sweep")

    sub.add_parser("show", help="Print the saved snapshot")
    sub.add_parser("cleanup", help="Sweep the image disk cache")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = Settings.from_env()
    if args.data_dir is not None:
        settings = replace(settings, data_dir=args.data_dir)

    if args.command == "sync":
        minimum = args.minimum if args.minimum is not None else settings.minimum_count
        return asyncio.run(run_sync(settings, args.force, minimum, not args.no_enrich))
    if args.command == "show":
        return asyncio.run(run_show(settings))
    return asyncio.run(run_cleanup(settings))


if __name__ == "__main__":
    raise SystemExit(main())
