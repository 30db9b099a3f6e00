"""
Adapter Base Module
===================

Defines the abstract base class for provider-specific adapters.
Adapters are responsible for:
1. Discovering product page URLs for a provider
2. Fetching them (through the shared rate-limited crawler by default)
3. Turning page content into a RawExtraction

Adapters only shape data; all validation, identity resolution and price
recording happen in the pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from affiliate_catalog.core.schema import RawExtraction

if TYPE_CHECKING:
    from affiliate_catalog.ingestion.crawler import Crawler, FetchResult
    from affiliate_catalog.ingestion.registry import ProviderConfig


class BaseAdapter(ABC):
    """
    Abstract base class for provider-specific adapters.

    Subclasses must implement:
    - discover_urls: Find product URLs to crawl
    - extract_listing: Parse content into a RawExtraction
    """

    # Adapter identification (override in subclasses)
    ADAPTER_NAME: str = "base"
    ADAPTER_VERSION: str = "1.0.0"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        provider_name: str | None = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            config: Optional custom configuration from providers.yaml
            provider_name: Provider the extractions are attributed to
        """
        self.config = config or {}
        self.provider_name = provider_name or self.ADAPTER_NAME

    @abstractmethod
    def discover_urls(self, seed_urls: list[str] | None = None) -> list[str]:
        """
        Discover product page URLs to crawl.

        Args:
            seed_urls: Optional starting URLs for discovery

        Returns:
            List of URLs to crawl
        """
        pass

    async def fetch(self, url: str, crawler: Crawler, provider: ProviderConfig) -> FetchResult:
        """
        Fetch a product page.

        Override for providers that need a browser or an API client; the
        default uses the shared rate-limited crawler.
        """
        return await crawler.fetch(url, provider)

    @abstractmethod
    def extract_listing(
        self,
        content: bytes,
        url: str,
        final_url: str,
    ) -> RawExtraction | None:
        """
        Extract a product record from page content.

        Args:
            content: Raw page content (HTML, JSON, etc.)
            url: URL that was requested
            final_url: URL the fetch ended at after redirects

        Returns:
            RawExtraction, or None if the page could not be parsed
        """
        pass

    @classmethod
    def describe(cls) -> dict[str, str]:
        """Name, version and class of this adapter type."""
        return {
            "name": cls.ADAPTER_NAME,
            "version": cls.ADAPTER_VERSION,
            "class": cls.__name__,
        }

    def get_info(self) -> dict[str, str]:
        """Adapter type info plus the provider this instance crawls for."""
        return {**self.describe(), "provider": self.provider_name}
