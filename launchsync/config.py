"""Runtime configuration read from the environment.

Usage:
    from launchsync.config import Settings

    settings = Settings.from_env()
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_PROVIDER_URL = "https://ll.thespacedevs.com/2.3.0/launches/upcoming/"
DEFAULT_ENRICHMENT_URL = "https://api.x.ai/v1/chat/completions"
DEFAULT_ENRICHMENT_MODEL = "grok-2-latest"
DEFAULT_DATA_DIR = "./launchsync_data"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'")


def _env_optional(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    """Endpoints, credentials and locations for one LaunchSync process."""

    provider_url: str = DEFAULT_PROVIDER_URL
    page_limit: int = 50
    provider_api_key: str | None = None
    enrichment_url: str = DEFAULT_ENRICHMENT_URL
    enrichment_model: str = DEFAULT_ENRICHMENT_MODEL
    enrichment_api_key: str | None = None
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    minimum_count: int = 50
    request_timeout: float = 30.0
    enrichment_timeout: float = 180.0

    @property
    def snapshot_path(self) -> Path:
        return self.data_dir / "enriched_launches.json"

    @property
    def flags_path(self) -> Path:
        return self.data_dir / "launch_flags.json"

    @property
    def asset_dir(self) -> Path:
        return self.data_dir / "image_cache"

    @property
    def has_enrichment_credential(self) -> bool:
        return bool(self.enrichment_api_key)

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> Settings:
        """Build settings from environment variables (after loading ``.env``)."""
        load_dotenv(env_file)
        return cls(
            provider_url=os.getenv("LAUNCHSYNC_PROVIDER_URL", DEFAULT_PROVIDER_URL),
            page_limit=_env_int("LAUNCHSYNC_PAGE_LIMIT", 50),
            provider_api_key=_env_optional("SPACEDEVS_API_KEY"),
            enrichment_url=os.getenv("LAUNCHSYNC_ENRICHMENT_URL", DEFAULT_ENRICHMENT_URL),
            enrichment_model=os.getenv("LAUNCHSYNC_ENRICHMENT_MODEL", DEFAULT_ENRICHMENT_MODEL),
            enrichment_api_key=_env_optional("GROK_API_KEY"),
            data_dir=Path(os.getenv("LAUNCHSYNC_DATA_DIR", DEFAULT_DATA_DIR)),
            minimum_count=_env_int("LAUNCHSYNC_MINIMUM_COUNT", 50),
            request_timeout=_env_float("LAUNCHSYNC_REQUEST_TIMEOUT", 30.0),
            enrichment_timeout=_env_float("LAUNCHSYNC_ENRICHMENT_TIMEOUT", 180.0),
        )
