"""Tests for the command line interface."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from affiliate_catalog import __version__
from affiliate_catalog.cli.main import app
from affiliate_catalog.db.engine import init_db, reset_engine
from affiliate_catalog.ingestion.registry import reset_default_registry

runner = CliRunner()


@pytest.fixture
def cli_env(config_file: Path, tmp_dir: Path, monkeypatch: pytest.MonkeyPatch):
    """Point the CLI at the test registry and a temp catalog database."""
    monkeypatch.setenv("PROVIDERS_CONFIG_PATH", str(config_file))
    monkeypatch.setenv("DATABASE_URL", str(tmp_dir / "cli.db"))
    reset_default_registry()
    reset_engine()
    init_db()
    yield
    reset_engine()
    reset_default_registry()


def test_version() -> None:
    """Test the version command."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert f"v{__version__}" in result.output


def test_check_id(cli_env) -> None:
    """Test showing a code's normalized id."""
    result = runner.invoke(app, ["ingest", "check-id", "dvd_label", "ssis00865"])
    assert result.exit_code == 0
    assert "SSIS-865" in result.output
    assert "cross-provider" in result.output


def test_check_performer(cli_env) -> None:
    """Test normalizing and judging performer names."""
    result = runner.invoke(app, ["ingest", "check-performer", "三上　悠亜"])
    assert result.exit_code == 0
    assert "三上悠亜" in result.output
    assert "valid" in result.output

    rejected = runner.invoke(app, ["ingest", "check-performer", "SSIS-865", "--code", "SSIS-865"])
    assert "rejected" in rejected.output


def test_providers_list(cli_env) -> None:
    """Test listing providers with and without disabled ones."""
    enabled = runner.invoke(app, ["ingest", "providers", "list"])
    assert enabled.exit_code == 0
    assert "sample" in enabled.output
    assert "retired" not in enabled.output

    everything = runner.invoke(app, ["ingest", "providers", "list", "--all"])
    assert "retired" in everything.output


def test_providers_show_unknown(cli_env) -> None:
    """Test that showing an unknown provider fails."""
    result = runner.invoke(app, ["ingest", "providers", "show", "nonexistent"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_run_unknown_provider(cli_env) -> None:
    """Test that crawling an unknown provider fails before running."""
    result = runner.invoke(app, ["ingest", "run", "--provider", "nonexistent", "--sync"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_run_sync(cli_env) -> None:
    """Test a synchronous crawl of the sample provider."""
    result = runner.invoke(app, ["ingest", "run", "--provider", "sample", "--sync"])
    assert result.exit_code == 0, result.output
    assert "completed" in result.output
    assert "top_page_content: 1" in result.output


def test_price_stats_no_data(cli_env) -> None:
    """Test price stats for a source with no history."""
    result = runner.invoke(app, ["ingest", "prices", "stats", "missing"])
    assert result.exit_code == 0
    assert "No price data" in result.output
