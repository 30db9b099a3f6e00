"""
Affiliate Catalog Ingestion Framework
=====================================

This package turns best-effort provider extractions into one canonical
catalog of products, provider sources, performers and daily prices.

Pipeline Stages:
1. Discovery - Adapters find product URLs for a provider
2. Fetch - Crawler rate limits, retries and reports the final URL
3. Screen - Redirects and top-page / age-gate captures are rejected
4. Extract - Adapters turn page content into a RawExtraction
5. Validate - Placeholder, top-page and boilerplate captures are rejected
6. Resolve - Atomic upserts map the extraction onto canonical rows
7. Record - One price-history entry per provider source per day
"""

from affiliate_catalog.ingestion.registry import (
    FamilyConfig,
    ProviderConfig,
    ProviderRegistry,
    RateLimitConfig,
    get_default_registry,
)
from affiliate_catalog.ingestion.errors import (
    AdapterNotFoundError,
    IngestionError,
    ProviderNotFoundError,
    StoreUnavailableError,
)
from affiliate_catalog.ingestion.identifiers import IdentifierNormalizer
from affiliate_catalog.ingestion.performers import PerformerValidator
from affiliate_catalog.ingestion.validator import (
    ExtractionValidator,
    RedirectCheck,
    ValidationResult,
)
from affiliate_catalog.ingestion.cache import RunCache
from affiliate_catalog.ingestion.resolver import (
    IdentityResolver,
    ResolutionResult,
)
from affiliate_catalog.ingestion.price_history import (
    BatchResult,
    PriceHistoryRecorder,
)
from affiliate_catalog.ingestion.crawler import (
    Crawler,
    FetchResult,
    TokenBucket,
)
from affiliate_catalog.ingestion.orchestrator import (
    CrawlOrchestrator,
    IngestionPipeline,
    ItemOutcome,
    ProviderRunStats,
    RunSummary,
)
from affiliate_catalog.ingestion.jobs import (
    enqueue_crawl,
    get_job_status,
    run_crawl,
    run_crawl_sync,
)

__all__ = [
    # Registry
    "ProviderRegistry",
    "ProviderConfig",
    "FamilyConfig",
    "RateLimitConfig",
    "get_default_registry",
    # Errors
    "IngestionError",
    "StoreUnavailableError",
    "ProviderNotFoundError",
    "AdapterNotFoundError",
    # Normalizers
    "IdentifierNormalizer",
    "PerformerValidator",
    # Validator
    "ExtractionValidator",
    "ValidationResult",
    "RedirectCheck",
    # Resolver
    "RunCache",
    "IdentityResolver",
    "ResolutionResult",
    # Price history
    "PriceHistoryRecorder",
    "BatchResult",
    # Crawler
    "Crawler",
    "FetchResult",
    "TokenBucket",
    # Orchestrator
    "CrawlOrchestrator",
    "IngestionPipeline",
    "ItemOutcome",
    "ProviderRunStats",
    "RunSummary",
    # Jobs
    "run_crawl",
    "run_crawl_sync",
    "enqueue_crawl",
    "get_job_status",
]
