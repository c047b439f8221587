"""Tests for environment-driven settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from launchsync.config import DEFAULT_ENRICHMENT_MODEL, DEFAULT_PROVIDER_URL, Settings

ENV_VARS = (
    "LAUNCHSYNC_PROVIDER_URL",
    "LAUNCHSYNC_PAGE_LIMIT",
    "SPACEDEVS_API_KEY",
    "LAUNCHSYNC_ENRICHMENT_URL",
    "LAUNCHSYNC_ENRICHMENT_MODEL",
    "GROK_API_KEY",
    "LAUNCHSYNC_DATA_DIR",
    "LAUNCHSYNC_MINIMUM_COUNT",
    "LAUNCHSYNC_REQUEST_TIMEOUT",
    "LAUNCHSYNC_ENRICHMENT_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so teardown also removes values loaded from .env files
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


class TestSettings:
    def test_defaults(self, tmp_path):
        settings = Settings.from_env(tmp_path / "missing.env")
        assert settings.provider_url == DEFAULT_PROVIDER_URL
        assert settings.page_limit == 50
        assert settings.enrichment_model == DEFAULT_ENRICHMENT_MODEL
        assert settings.enrichment_api_key is None
        assert not settings.has_enrichment_credential
        assert settings.minimum_count == 50

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LAUNCHSYNC_PAGE_LIMIT", "100")
        monkeypatch.setenv("GROK_API_KEY", "xai-123")
        monkeypatch.setenv("LAUNCHSYNC_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("LAUNCHSYNC_REQUEST_TIMEOUT", "12.5")

        settings = Settings.from_env(tmp_path / "missing.env")

        assert settings.page_limit == 100
        assert settings.has_enrichment_credential
        assert settings.request_timeout == 12.5
        assert settings.snapshot_path == tmp_path / "enriched_launches.json"
        assert settings.flags_path == tmp_path / "launch_flags.json"
        assert settings.asset_dir == tmp_path / "image_cache"

    def test_blank_key_is_missing(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SPACEDEVS_API_KEY", "   ")
        assert Settings.from_env(tmp_path / "missing.env").provider_api_key is None

    def test_dotenv_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("LAUNCHSYNC_MINIMUM_COUNT=20\nGROK_API_KEY=from-file\n")
        settings = Settings.from_env(env_file)
        assert settings.minimum_count == 20
        assert settings.enrichment_api_key == "from-file"

    def test_invalid_integer(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LAUNCHSYNC_PAGE_LIMIT", "lots")
        with pytest.raises(ValueError, match="LAUNCHSYNC_PAGE_LIMIT"):
            Settings.from_env(tmp_path / "missing.env")

    def test_default_data_dir(self, tmp_path):
        settings = Settings.from_env(tmp_path / "missing.env")
        assert settings.data_dir == Path("./launchsync_data")
