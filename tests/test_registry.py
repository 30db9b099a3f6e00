"""Tests for the provider registry module."""

from pathlib import Path

import pytest

from affiliate_catalog.ingestion.registry import (
    FamilyConfig,
    GlobalConfig,
    PipelineConfig,
    ProviderConfig,
    ProviderRegistry,
    RateLimitConfig,
    RewriteRule,
    get_default_registry,
    reset_default_registry,
)

from conftest import make_config, write_config


class TestRateLimitConfig:
    """Tests for RateLimitConfig."""

    def test_default_values(self) -> None:
        """Test default rate limit values."""
        config = RateLimitConfig()
        assert config.requests_per_second == 1.0
        assert config.burst_limit == 1

    def test_from_dict(self) -> None:
        """Test creating from dictionary."""
        config = RateLimitConfig.from_dict({"requests_per_second": 2.5, "burst_limit": 10})
        assert config.requests_per_second == 2.5
        assert config.burst_limit == 10

    def test_from_dict_none(self) -> None:
        """Test creating from None returns defaults."""
        assert RateLimitConfig.from_dict(None) == RateLimitConfig()


class TestProviderConfig:
    """Tests for ProviderConfig."""

    def test_from_dict_minimal(self) -> None:
        """Test creating with minimal data."""
        config = ProviderConfig.from_dict(
            {"name": "heyzo", "domain": "www.heyzo.com", "adapter": "heyzo"}
        )
        assert config.name == "heyzo"
        assert config.family == "heyzo"
        assert config.enabled is True
        assert config.timeout_seconds == 1800.0
        assert config.title_patterns == []

    def test_from_dict_uses_default_rate_limit(self) -> None:
        """Test that providers without a rate limit inherit the default."""
        default = RateLimitConfig(requests_per_second=0.5, burst_limit=2)
        config = ProviderConfig.from_dict(
            {"name": "duga", "domain": "duga.jp", "adapter": "duga"},
            default_rate_limit=default,
            default_timeout=60,
        )
        assert config.rate_limit == default
        assert config.timeout_seconds == 60.0


class TestRewriteRule:
    """Tests for RewriteRule."""

    def test_apply(self) -> None:
        """Test applying a regex rewrite."""
        rule = RewriteRule.from_dict({"pattern": r"^h_\d+"})
        assert rule.apply("h_1234abc00123") == "abc00123"
        assert rule.apply("abc00123") == "abc00123"


class TestGlobalConfig:
    """Tests for GlobalConfig."""

    def test_notifications_section(self) -> None:
        """Test reading the notification settings."""
        config = GlobalConfig.from_dict(
            {"notifications": {"webhook_url": "https://hooks.example.com/x", "timeout": 3}}
        )
        assert config.notification_webhook_url == "https://hooks.example.com/x"
        assert config.notification_timeout == 3.0

    def test_defaults(self) -> None:
        """Test defaults when no section is given."""
        config = GlobalConfig.from_dict(None)
        assert config.notification_webhook_url is None
        assert config.max_retries == 3
        assert config.redirect_path_patterns == []


class TestProviderRegistry:
    """Tests for ProviderRegistry."""

    def test_load_config(self, registry: ProviderRegistry, config_file: Path) -> None:
        """Test loading providers, families and tunables from YAML."""
        assert registry.config_path == config_file.resolve()
        assert len(registry.list_providers()) == 5
        assert registry.global_config.user_agent == "TestAgent/1.0"
        assert registry.pipeline == PipelineConfig(
            min_title_length=5, batch_chunk_size=2, max_store_errors=3
        )

    def test_load_missing_file(self, tmp_dir: Path) -> None:
        """Test that a missing config file raises."""
        with pytest.raises(FileNotFoundError):
            ProviderRegistry().load_config(tmp_dir / "missing.yaml")

    def test_get_provider(self, registry: ProviderRegistry) -> None:
        """Test getting a provider by name."""
        provider = registry.get_provider("fanza")
        assert provider is not None
        assert provider.family == "dvd_label"
        assert registry.get_provider("nonexistent") is None

    def test_list_enabled_providers(self, registry: ProviderRegistry) -> None:
        """Test that disabled providers are filtered out."""
        names = {p.name for p in registry.list_enabled_providers()}
        assert "retired" not in names
        assert "sample" in names

    def test_enable_disable(self, registry: ProviderRegistry) -> None:
        """Test toggling providers in memory."""
        assert registry.disable_provider("fanza") is True
        assert registry.get_provider("fanza").enabled is False
        assert registry.enable_provider("fanza") is True
        assert registry.get_provider("fanza").enabled is True
        assert registry.enable_provider("nonexistent") is False

    def test_get_provider_by_domain(self, registry: ProviderRegistry) -> None:
        """Test finding a provider by domain."""
        provider = registry.get_provider_by_domain("www.mgstage.com")
        assert provider is not None
        assert provider.name == "mgs"

    def test_families(self, registry: ProviderRegistry) -> None:
        """Test loading identifier families."""
        family = registry.get_family("dvd_label")
        assert isinstance(family, FamilyConfig)
        assert family.cross_provider is True
        assert len(family.id_rewrite_rules) == 3
        assert registry.get_family("sokmil").cross_provider is False

    def test_family_for_provider(self, registry: ProviderRegistry) -> None:
        """Test provider-to-family lookup."""
        assert registry.family_for_provider("mgs") == "dvd_label"
        assert registry.family_for_provider("retired") == "retired"
        assert registry.family_for_provider("unregistered") == "unregistered"

    def test_title_patterns_provider_first(self, registry: ProviderRegistry) -> None:
        """Test that provider patterns come before global ones."""
        patterns = [p.pattern for p in registry.title_patterns_for("sokmil")]
        assert patterns[0] == r"^ソクミル-\d+$"
        assert r"^FC2動画アダルト$" in patterns
        assert r"^ソクミル-\d+$" not in [p.pattern for p in registry.title_patterns_for("fanza")]

    def test_compiled_patterns_are_cached(self, registry: ProviderRegistry) -> None:
        """Test that compiled pattern lists are reused."""
        assert registry.redirect_path_patterns() is registry.redirect_path_patterns()

    def test_reload_replaces_providers(self, registry: ProviderRegistry, tmp_dir: Path) -> None:
        """Test that loading a new file replaces the previous definitions."""
        data = make_config()
        data["providers"] = data["providers"][:1]
        other = tmp_dir / "other"
        other.mkdir()
        registry.load_config(write_config(data, other))
        assert [p.name for p in registry.list_providers()] == ["fanza"]

    def test_shared_provider_scoped_family_rejected(self, tmp_dir: Path) -> None:
        """Test that two providers cannot share a family without cross_provider."""
        data = make_config()
        data["providers"].append(
            {"name": "sokmil_mirror", "family": "sokmil", "domain": "m.sokmil.com", "adapter": "sample"}
        )
        registry = ProviderRegistry()
        with pytest.raises(ValueError, match="sokmil_mirror"):
            registry.load_config(write_config(data, tmp_dir))

    def test_shared_cross_provider_family_allowed(self, registry: ProviderRegistry) -> None:
        """Test that cross-provider families may be shared."""
        shared = [p.name for p in registry.list_providers() if p.family == "dvd_label"]
        assert len(shared) > 1


class TestDefaultRegistry:
    """Tests for the default registry singleton."""

    def test_env_override(self, config_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that PROVIDERS_CONFIG_PATH selects the config file."""
        monkeypatch.setenv("PROVIDERS_CONFIG_PATH", str(config_file))
        reset_default_registry()
        try:
            registry = get_default_registry()
            assert registry.get_provider("retired") is not None
            assert get_default_registry() is registry
        finally:
            reset_default_registry()

    def test_shipped_config_loads(self) -> None:
        """Test that the shipped providers.yaml is valid."""
        registry = ProviderRegistry()
        registry.load_config(Path(__file__).resolve().parents[1] / "config" / "providers.yaml")

        sample = registry.get_provider("sample")
        assert sample is not None
        assert sample.enabled is True
        assert registry.get_family("dvd_label").cross_provider is True
        assert registry.redirect_path_patterns()
        assert all(p.family in {f.name for f in registry.list_families()} for p in registry.list_providers())

    def test_shipped_provider_scoped_families_are_unique(self) -> None:
        """Test that each provider-scoped family in providers.yaml has one provider."""
        registry = ProviderRegistry()
        registry.load_config(Path(__file__).resolve().parents[1] / "config" / "providers.yaml")

        scoped = [
            p.family
            for p in registry.list_providers()
            if not registry.get_family(p.family) or not registry.get_family(p.family).cross_provider
        ]
        assert len(scoped) == len(set(scoped))
        assert registry.get_provider("caribbean").family != registry.get_provider("1pondo").family
