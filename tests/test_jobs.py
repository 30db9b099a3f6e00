"""Tests for the arq job functions that run without Redis."""

from pathlib import Path

import pytest

from affiliate_catalog.core.enums import RunStatus
from affiliate_catalog.db.engine import init_db, reset_engine
from affiliate_catalog.ingestion.jobs import get_redis_settings, run_crawl, run_crawl_sync
from affiliate_catalog.ingestion.registry import reset_default_registry


@pytest.fixture
def job_env(config_file: Path, tmp_dir: Path, monkeypatch: pytest.MonkeyPatch):
    """Default registry and engine pointed at test files."""
    monkeypatch.setenv("PROVIDERS_CONFIG_PATH", str(config_file))
    monkeypatch.setenv("DATABASE_URL", str(tmp_dir / "jobs.db"))
    reset_default_registry()
    reset_engine()
    init_db()
    yield
    reset_engine()
    reset_default_registry()


class TestRedisSettings:
    """Tests for reading Redis settings from the environment."""

    def test_host_port_db(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("REDIS_URL", raising=False)
        monkeypatch.setenv("REDIS_HOST", "queue.internal")
        monkeypatch.setenv("REDIS_PORT", "6380")
        monkeypatch.setenv("REDIS_DB", "2")

        settings = get_redis_settings()

        assert settings.host == "queue.internal"
        assert settings.port == 6380
        assert settings.database == 2

    def test_url_takes_precedence(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_URL", "redis://cache.internal:6390/4")
        monkeypatch.setenv("REDIS_HOST", "ignored")

        settings = get_redis_settings()

        assert settings.host == "cache.internal"
        assert settings.port == 6390
        assert settings.database == 4


@pytest.mark.asyncio
async def test_run_crawl_sync_unknown_provider(job_env) -> None:
    """An unknown provider gives a failed summary instead of raising."""
    summary = await run_crawl_sync(["nonexistent"])

    assert summary.status == RunStatus.FAILED
    assert "nonexistent" in summary.error
    assert summary.providers == []


@pytest.mark.asyncio
async def test_run_crawl_task(job_env) -> None:
    """The arq task returns the run summary as a dict."""
    result = await run_crawl({"job_id": "job-1"}, ["sample"], max_items=2)

    assert result["status"] == RunStatus.COMPLETED.value
    assert [p["provider_name"] for p in result["providers"]] == ["sample"]
    assert result["providers"][0]["fetched"] == 2
