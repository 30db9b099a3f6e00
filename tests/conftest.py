"""Shared fixtures: a provider registry written to a temp YAML file and a temp SQLite catalog."""

import tempfile
from pathlib import Path
from typing import Any

import pytest
import yaml
from sqlalchemy.orm import Session, sessionmaker

from affiliate_catalog.db.engine import create_db_engine
from affiliate_catalog.db.models import Base
from affiliate_catalog.ingestion.identifiers import IdentifierNormalizer
from affiliate_catalog.ingestion.registry import ProviderRegistry


def make_config() -> dict[str, Any]:
    """A small registry covering a cross-provider family and a provider-scoped one."""
    return {
        "global": {
            "user_agent": "TestAgent/1.0",
            "request_timeout": 5,
            "max_retries": 2,
            "default_rate_limit": {"requests_per_second": 100.0, "burst_limit": 100},
            "provider_prefixes": ["FANZA", "MGS", "SOKMIL", "CARIBBEAN", "CARIBBEANCOMPR"],
            "redirect_path_patterns": [
                r"^/?$",
                r"/list\.html$",
                r"/search",
                r"(?i)/age[-_]?check",
                r"(?i)/confirm",
            ],
            "title_patterns": [
                r"^FC2動画アダルト$",
                r"^MGS動画\(成人認証\)",
                r"^エロ動画・アダルトビデオ\s*-MGS動画",
            ],
            "description_patterns": [
                r"人気のアダルトビデオを高画質・低価格",
                r"18歳未満.*閲覧.*禁止",
            ],
            "age_gate_patterns": [r"年齢確認", r"18歳以上", r"(?i)age[-_]?verification"],
        },
        "pipeline": {"min_title_length": 5, "batch_chunk_size": 2},
        "families": {
            "dvd_label": {
                "cross_provider": True,
                "id_rewrite_rules": [
                    {"pattern": r"^(fanza|mgs|duga|sokmil|b10f)-", "replacement": ""},
                    {"pattern": r"^h_\d+", "replacement": ""},
                    {"pattern": r"^(?!300[a-z])\d+(?=[a-z])", "replacement": ""},
                ],
            },
            "sokmil": {"description": "Sokmil numeric ids"},
        },
        "providers": [
            {
                "name": "fanza",
                "family": "dvd_label",
                "domain": "www.dmm.co.jp",
                "adapter": "sample",
            },
            {
                "name": "mgs",
                "family": "dvd_label",
                "domain": "www.mgstage.com",
                "adapter": "sample",
                "html_patterns": [r"MGS動画\(成人認証\)"],
            },
            {
                "name": "sokmil",
                "family": "sokmil",
                "domain": "www.sokmil.com",
                "adapter": "sample",
                "title_patterns": [r"^ソクミル-\d+$"],
            },
            {
                "name": "sample",
                "family": "dvd_label",
                "domain": "sample.catalog.local",
                "adapter": "sample",
                "timeout_seconds": 30,
            },
            {
                "name": "retired",
                "domain": "retired.example.com",
                "adapter": "sample",
                "enabled": False,
            },
        ],
    }


def write_config(data: dict[str, Any], directory: Path) -> Path:
    """Write a registry config to a YAML file."""
    path = directory / "providers.yaml"
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, allow_unicode=True)
    return path


@pytest.fixture
def tmp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config_file(tmp_dir: Path) -> Path:
    """Write the default test registry config."""
    return write_config(make_config(), tmp_dir)


@pytest.fixture
def registry(config_file: Path) -> ProviderRegistry:
    """Load a provider registry from the test config."""
    registry = ProviderRegistry()
    registry.load_config(config_file)
    return registry


@pytest.fixture
def identifiers(registry: ProviderRegistry) -> IdentifierNormalizer:
    """Identifier normalizer built from the test registry."""
    return IdentifierNormalizer.from_registry(registry)


@pytest.fixture
def engine(tmp_dir: Path):
    """Create a test database engine on a temp SQLite file."""
    engine = create_db_engine(tmp_dir / "catalog.db")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    """Session factory bound to the test engine."""
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def session(session_factory: sessionmaker[Session]):
    """Create a database session for testing."""
    session = session_factory()
    yield session
    session.close()
