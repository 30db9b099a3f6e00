"""
Provider Registry Module
========================

Manages provider configurations loaded from YAML files. Providers define
which affiliate sites can be crawled, which identifier family their product
codes belong to, and the title/description patterns that mark a bad capture.
Identifier families carry the ordered rewrite rules used to normalize codes.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class RateLimitConfig:
    """Rate limiting configuration for a provider."""

    requests_per_second: float = 1.0
    burst_limit: int = 1

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RateLimitConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            requests_per_second=float(data.get("requests_per_second", 1.0)),
            burst_limit=int(data.get("burst_limit", 1)),
        )


@dataclass
class RewriteRule:
    """One ordered regex rewrite applied to a lower-cased product code."""

    pattern: str
    replacement: str = ""

    _compiled: re.Pattern[str] | None = field(default=None, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RewriteRule:
        """Create from dictionary."""
        return cls(pattern=data["pattern"], replacement=data.get("replacement", ""))

    def apply(self, code: str) -> str:
        """Apply the rewrite to a code."""
        if self._compiled is None:
            self._compiled = re.compile(self.pattern)
        return self._compiled.sub(self.replacement, code)


@dataclass
class FamilyConfig:
    """
    Configuration for a provider identifier family.

    Cross-provider families share one code space (the same release is sold
    by several providers under the same label code); every other family is
    scoped to a single provider.
    """

    name: str
    cross_provider: bool = False
    description: str = ""
    id_rewrite_rules: list[RewriteRule] = field(default_factory=list)

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any] | None) -> FamilyConfig:
        """Create from dictionary."""
        data = data or {}
        return cls(
            name=name,
            cross_provider=bool(data.get("cross_provider", False)),
            description=data.get("description", ""),
            id_rewrite_rules=[RewriteRule.from_dict(r) for r in data.get("id_rewrite_rules", [])],
        )


@dataclass
class ProviderConfig:
    """Configuration for a single affiliate provider."""

    name: str
    family: str
    domain: str
    adapter: str
    enabled: bool = True
    description: str = ""
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    timeout_seconds: float = 1800.0
    seed_urls: list[str] = field(default_factory=list)
    title_patterns: list[str] = field(default_factory=list)
    description_patterns: list[str] = field(default_factory=list)
    html_patterns: list[str] = field(default_factory=list)
    custom_config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        default_rate_limit: RateLimitConfig | None = None,
        default_timeout: float = 1800.0,
    ) -> ProviderConfig:
        """Create from dictionary."""
        rate_limit_data = data.get("rate_limit")
        if rate_limit_data:
            rate_limit = RateLimitConfig.from_dict(rate_limit_data)
        elif default_rate_limit:
            rate_limit = default_rate_limit
        else:
            rate_limit = RateLimitConfig()

        return cls(
            name=data["name"],
            family=data.get("family", data["name"]),
            domain=data["domain"],
            adapter=data["adapter"],
            enabled=data.get("enabled", True),
            description=data.get("description", ""),
            rate_limit=rate_limit,
            timeout_seconds=float(data.get("timeout_seconds", default_timeout)),
            seed_urls=data.get("seed_urls", []),
            title_patterns=data.get("title_patterns", []),
            description_patterns=data.get("description_patterns", []),
            html_patterns=data.get("html_patterns", []),
            custom_config=data.get("custom_config", {}),
        )


@dataclass
class PipelineConfig:
    """
    Tunables for validation, price recording and store error handling.

    max_store_errors is how many items in a row may fail on a connectivity
    error before the run treats the catalog store as unavailable.
    """

    min_title_length: int = 5
    batch_chunk_size: int = 50
    max_store_errors: int = 3

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PipelineConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            min_title_length=int(data.get("min_title_length", 5)),
            batch_chunk_size=int(data.get("batch_chunk_size", 50)),
            max_store_errors=int(data.get("max_store_errors", 3)),
        )


@dataclass
class GlobalConfig:
    """Global configuration settings."""

    default_rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    user_agent: str = "AffiliateCatalog/0.1"
    request_timeout: int = 30
    max_retries: int = 3
    provider_timeout_seconds: float = 1800.0
    notification_webhook_url: str | None = None
    notification_timeout: float = 10.0
    provider_prefixes: list[str] = field(default_factory=list)
    redirect_path_patterns: list[str] = field(default_factory=list)
    title_patterns: list[str] = field(default_factory=list)
    description_patterns: list[str] = field(default_factory=list)
    age_gate_patterns: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GlobalConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        notifications = data.get("notifications") or {}
        return cls(
            default_rate_limit=RateLimitConfig.from_dict(data.get("default_rate_limit")),
            user_agent=data.get("user_agent", "AffiliateCatalog/0.1"),
            request_timeout=int(data.get("request_timeout", 30)),
            max_retries=int(data.get("max_retries", 3)),
            provider_timeout_seconds=float(data.get("provider_timeout_seconds", 1800)),
            notification_webhook_url=notifications.get("webhook_url"),
            notification_timeout=float(notifications.get("timeout", 10.0)),
            provider_prefixes=data.get("provider_prefixes", []),
            redirect_path_patterns=data.get("redirect_path_patterns", []),
            title_patterns=data.get("title_patterns", []),
            description_patterns=data.get("description_patterns", []),
            age_gate_patterns=data.get("age_gate_patterns", []),
        )


class ProviderRegistry:
    """
    Registry for managing provider and identifier family configurations.

    Loads definitions from a YAML file and provides methods to query and
    manage them. Pattern tables are data here, never code, so a provider
    can be added or tuned without a release.
    """

    def __init__(self) -> None:
        self._providers: dict[str, ProviderConfig] = {}
        self._families: dict[str, FamilyConfig] = {}
        self._global_config: GlobalConfig = GlobalConfig()
        self._pipeline: PipelineConfig = PipelineConfig()
        self._config_path: Path | None = None
        self._pattern_cache: dict[tuple[str, ...], list[re.Pattern[str]]] = {}

    @property
    def global_config(self) -> GlobalConfig:
        """Get global configuration."""
        return self._global_config

    @property
    def pipeline(self) -> PipelineConfig:
        """Get pipeline tunables."""
        return self._pipeline

    @property
    def config_path(self) -> Path | None:
        """Path the registry was loaded from, if any."""
        return self._config_path

    def load_config(self, config_path: Path | str) -> None:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the providers.yaml file
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        self._config_path = config_path
        self._global_config = GlobalConfig.from_dict(data.get("global"))
        self._pipeline = PipelineConfig.from_dict(data.get("pipeline"))
        self._pattern_cache.clear()

        self._families.clear()
        for name, family_data in (data.get("families") or {}).items():
            self._families[name] = FamilyConfig.from_dict(name, family_data)

        # Load providers
        self._providers.clear()
        for provider_data in data.get("providers", []):
            provider = ProviderConfig.from_dict(
                provider_data,
                self._global_config.default_rate_limit,
                self._global_config.provider_timeout_seconds,
            )
            self._providers[provider.name] = provider

        self._check_family_scopes()

    def _check_family_scopes(self) -> None:
        """
        Reject a provider-scoped family claimed by more than one provider.

        Codes in such a family fall back to "{family}-{code}", so two
        providers sharing it would merge unrelated releases.

        Raises:
            ValueError: If two providers share a family that is not cross_provider
        """
        owners: dict[str, str] = {}
        for provider in self._providers.values():
            family = self._families.get(provider.family)
            if family is not None and family.cross_provider:
                continue
            owner = owners.setdefault(provider.family, provider.name)
            if owner != provider.name:
                raise ValueError(
                    f"Providers '{owner}' and '{provider.name}' share family "
                    f"'{provider.family}', which is not cross_provider"
                )

    def get_provider(self, name: str) -> ProviderConfig | None:
        """
        Get a provider configuration by name.

        Args:
            name: Provider name

        Returns:
            ProviderConfig if found, None otherwise
        """
        return self._providers.get(name)

    def list_providers(self) -> list[ProviderConfig]:
        """Get all registered providers."""
        return list(self._providers.values())

    def list_enabled_providers(self) -> list[ProviderConfig]:
        """Get all enabled providers."""
        return [p for p in self._providers.values() if p.enabled]

    def enable_provider(self, name: str) -> bool:
        """
        Enable a provider.

        Returns:
            True if provider was found and enabled, False otherwise
        """
        provider = self._providers.get(name)
        if provider is None:
            return False
        provider.enabled = True
        return True

    def disable_provider(self, name: str) -> bool:
        """
        Disable a provider.

        Returns:
            True if provider was found and disabled, False otherwise
        """
        provider = self._providers.get(name)
        if provider is None:
            return False
        provider.enabled = False
        return True

    def get_provider_by_domain(self, domain: str) -> ProviderConfig | None:
        """Find a provider by its domain (e.g., "www.example.com")."""
        for provider in self._providers.values():
            if provider.domain == domain:
                return provider
        return None

    def get_family(self, name: str) -> FamilyConfig | None:
        """Get an identifier family by name."""
        return self._families.get(name)

    def list_families(self) -> list[FamilyConfig]:
        """Get all identifier families."""
        return list(self._families.values())

    def family_for_provider(self, provider_name: str) -> str:
        """
        Get the identifier family of a provider.

        Unknown providers are their own family.
        """
        provider = self._providers.get(provider_name)
        return provider.family if provider else provider_name

    # ------------------------------------------------------------------
    # Compiled pattern tables
    # ------------------------------------------------------------------

    def _compiled(self, key: str, patterns: list[str]) -> list[re.Pattern[str]]:
        cache_key = (key, *patterns)
        if cache_key not in self._pattern_cache:
            self._pattern_cache[cache_key] = [re.compile(p) for p in patterns]
        return self._pattern_cache[cache_key]

    def title_patterns_for(self, provider_name: str) -> list[re.Pattern[str]]:
        """Top-page title patterns: the provider's own, then the global ones."""
        provider = self._providers.get(provider_name)
        own = provider.title_patterns if provider else []
        return self._compiled("title", own + self._global_config.title_patterns)

    def description_patterns_for(self, provider_name: str) -> list[re.Pattern[str]]:
        """Boilerplate description patterns: the provider's own, then the global ones."""
        provider = self._providers.get(provider_name)
        own = provider.description_patterns if provider else []
        return self._compiled("description", own + self._global_config.description_patterns)

    def redirect_path_patterns(self) -> list[re.Pattern[str]]:
        """Path shapes that mark a redirect to a top/listing/search/age-gate page."""
        return self._compiled("redirect", self._global_config.redirect_path_patterns)

    def age_gate_patterns(self) -> list[re.Pattern[str]]:
        """Page text that marks an age-verification interstitial."""
        return self._compiled("age_gate", self._global_config.age_gate_patterns)

    def html_patterns_for(self, provider_name: str) -> list[re.Pattern[str]]:
        """Provider-specific page text that marks a storefront top page."""
        provider = self._providers.get(provider_name)
        return self._compiled("html", provider.html_patterns if provider else [])


# Global registry instance
_default_registry: ProviderRegistry | None = None

# Default config location relative to the project root
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "providers.yaml"


def get_default_registry() -> ProviderRegistry:
    """
    Get the default provider registry instance.

    Loads configuration from the path specified in PROVIDERS_CONFIG_PATH
    environment variable, or falls back to config/providers.yaml.

    Returns:
        The global ProviderRegistry instance
    """
    global _default_registry

    if _default_registry is None:
        _default_registry = ProviderRegistry()

        config_path = os.environ.get("PROVIDERS_CONFIG_PATH")
        path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

        if path.exists():
            _default_registry.load_config(path)

    return _default_registry


def reset_default_registry() -> None:
    """Reset the default registry (useful for testing)."""
    global _default_registry
    _default_registry = None
