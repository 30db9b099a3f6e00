"""
Crawl Orchestrator Module
=========================

Drives provider crawls through the ingestion pipeline:

1. Discovery - the provider's adapter lists product URLs
2. Fetch - rate-limited, retried HTTP fetch reporting the final URL
3. Redirect / top-page check - before any parsing happens
4. Extract - the adapter turns the page into a RawExtraction
5. Validate - reject top-page, listing and age-gate captures
6. Resolve - upsert product, provider source and performers
7. Record - one price-history entry per source per day

Providers run one after another, each under its own timeout. Items run one
at a time; each item commits on success and rolls back on failure, so an
interrupted run can simply be re-run from the top.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from affiliate_catalog.core.enums import ItemStatus, RejectionReason, RunStatus
from affiliate_catalog.core.schema import RawExtraction
from affiliate_catalog.db.engine import get_session_factory
from affiliate_catalog.ingestion.adapters import BaseAdapter, adapter_for_provider
from affiliate_catalog.ingestion.cache import RunCache
from affiliate_catalog.ingestion.crawler import Crawler
from affiliate_catalog.ingestion.errors import (
    AdapterNotFoundError,
    ProviderNotFoundError,
    StoreUnavailableError,
)
from affiliate_catalog.ingestion.identifiers import IdentifierNormalizer
from affiliate_catalog.ingestion.notifications import NotificationSink, build_notifier
from affiliate_catalog.ingestion.performers import PerformerValidator
from affiliate_catalog.ingestion.price_history import PriceHistoryRecorder
from affiliate_catalog.ingestion.registry import ProviderConfig, ProviderRegistry
from affiliate_catalog.ingestion.resolver import IdentityResolver
from affiliate_catalog.ingestion.validator import ExtractionValidator

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


# ============================================================================
# Per-item pipeline
# ============================================================================


@dataclass
class ItemOutcome:
    """What happened to one crawled item."""

    provider_name: str
    provider_code: str | None
    status: ItemStatus
    reason: RejectionReason | None = None
    detail: str = ""
    product_id: str | None = None
    normalized_product_id: str | None = None
    is_new_product: bool = False
    price_recorded: bool = False


class IngestionPipeline:
    """
    Validate, resolve and record a single extraction at a time.

    The pipeline owns the item transaction: it commits after a successful
    item and rolls back after a failed one. Connectivity failures are raised
    as StoreUnavailableError; any other database failure is returned as an
    errored outcome so the caller can move on to the next item.

    Example:
        with get_session() as session:
            pipeline = IngestionPipeline(session, registry)
            outcome = pipeline.ingest(extraction)
    """

    def __init__(
        self,
        session: Session,
        registry: ProviderRegistry,
        identifiers: IdentifierNormalizer | None = None,
        performers: PerformerValidator | None = None,
        validator: ExtractionValidator | None = None,
        cache: RunCache | None = None,
        chunk_size: int | None = None,
        clock: Callable[[], datetime] | None = None,
        max_store_errors: int | None = None,
    ) -> None:
        self.session = session
        self.registry = registry
        self.max_store_errors = max(1, max_store_errors or registry.pipeline.max_store_errors)
        self._store_errors = 0
        self.identifiers = identifiers or IdentifierNormalizer.from_registry(registry)
        self.performers = performers or PerformerValidator()
        self.validator = validator or ExtractionValidator(
            registry,
            self.identifiers,
            min_title_length=registry.pipeline.min_title_length,
        )
        self.cache = cache if cache is not None else RunCache()
        self.resolver = IdentityResolver(
            session, self.identifiers, self.performers, registry, cache=self.cache
        )
        self.recorder = PriceHistoryRecorder(
            session,
            chunk_size=chunk_size or registry.pipeline.batch_chunk_size,
            clock=clock,
        )

    def ingest(self, extraction: RawExtraction) -> ItemOutcome:
        """
        Push one extraction through validation, resolution and recording.

        Args:
            extraction: Extraction handed over by a provider crawler

        Returns:
            ItemOutcome describing the result

        Raises:
            StoreUnavailableError: If the catalog database cannot be reached, or
                max_store_errors items in a row failed on connectivity errors
        """
        provider = extraction.provider_name
        code = extraction.provider_code

        if extraction.requested_url and extraction.final_url:
            check = self.validator.detect_redirect(extraction.requested_url, extraction.final_url)
            if check.is_redirected:
                detail = f"{check.redirect_type.value}: {extraction.final_url}"
                logger.info(f"Rejected {provider}/{code}: redirected ({detail})")
                return ItemOutcome(
                    provider, code, ItemStatus.REJECTED, RejectionReason.REDIRECTED, detail
                )

        validation = self.validator.validate(extraction)
        if not validation.accepted:
            logger.info(f"Rejected {provider}/{code}: {validation.reason.value}")
            logger.debug(validation.detail)
            return ItemOutcome(
                provider, code, ItemStatus.REJECTED, validation.reason, validation.detail
            )

        try:
            resolution = self.resolver.resolve(extraction)
            price_recorded = False
            if extraction.price is not None:
                price_recorded = self.recorder.record(
                    resolution.provider_source_id,
                    extraction.price,
                    sale_price=extraction.sale_price,
                    discount_percent=extraction.discount_percent,
                )
            self.session.commit()
        except (OperationalError, InterfaceError) as e:
            self._rollback()
            self._store_errors += 1
            if self._store_errors >= self.max_store_errors or not self._store_reachable():
                raise StoreUnavailableError(f"Catalog store unavailable: {e}") from e
            logger.warning(f"Connectivity error ingesting {provider}/{code}: {e}")
            return ItemOutcome(provider, code, ItemStatus.ERRORED, detail=str(e))
        except SQLAlchemyError as e:
            self._rollback()
            self._store_errors = 0
            logger.warning(f"Failed to ingest {provider}/{code}: {e}")
            return ItemOutcome(provider, code, ItemStatus.ERRORED, detail=str(e))

        self._store_errors = 0
        self.cache.commit()
        return ItemOutcome(
            provider,
            code,
            ItemStatus.ACCEPTED,
            product_id=resolution.product_id,
            normalized_product_id=resolution.normalized_product_id,
            is_new_product=resolution.is_new_product,
            price_recorded=price_recorded,
        )

    def _rollback(self) -> None:
        self.session.rollback()
        self.cache.rollback()

    def _store_reachable(self) -> bool:
        """Check that the store still answers after a connectivity error."""
        try:
            self.session.execute(select(1))
        except (OperationalError, InterfaceError) as e:
            logger.error(f"Catalog store liveness check failed: {e}")
            return False
        finally:
            self.session.rollback()
        return True


# ============================================================================
# Run bookkeeping
# ============================================================================


@dataclass
class ProviderRunStats:
    """Counters for one provider within a run."""

    provider_name: str
    status: RunStatus = RunStatus.PENDING
    discovered: int = 0
    fetched: int = 0
    accepted: int = 0
    rejected: int = 0
    errored: int = 0
    new_products: int = 0
    prices_recorded: int = 0
    rejection_reasons: dict[str, int] = field(default_factory=dict)
    error: str | None = None

    def add(self, outcome: ItemOutcome) -> None:
        """Count one item outcome."""
        if outcome.status == ItemStatus.ACCEPTED:
            self.accepted += 1
            if outcome.is_new_product:
                self.new_products += 1
            if outcome.price_recorded:
                self.prices_recorded += 1
        elif outcome.status == ItemStatus.REJECTED:
            self.rejected += 1
            if outcome.reason is not None:
                key = outcome.reason.value
                self.rejection_reasons[key] = self.rejection_reasons.get(key, 0) + 1
        else:
            self.errored += 1

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "provider_name": self.provider_name,
            "status": self.status.value,
            "discovered": self.discovered,
            "fetched": self.fetched,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "errored": self.errored,
            "new_products": self.new_products,
            "prices_recorded": self.prices_recorded,
            "rejection_reasons": dict(self.rejection_reasons),
            "error": self.error,
        }


@dataclass
class RunSummary:
    """Result of one orchestrator run."""

    run_id: str
    status: RunStatus = RunStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    providers: list[ProviderRunStats] = field(default_factory=list)
    error: str | None = None

    @property
    def total_fetched(self) -> int:
        return sum(p.fetched for p in self.providers)

    @property
    def total_accepted(self) -> int:
        return sum(p.accepted for p in self.providers)

    @property
    def total_rejected(self) -> int:
        return sum(p.rejected for p in self.providers)

    @property
    def total_errored(self) -> int:
        return sum(p.errored for p in self.providers)

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def get_provider(self, name: str) -> ProviderRunStats | None:
        """Get the stats for a provider by name."""
        for stats in self.providers:
            if stats.provider_name == name:
                return stats
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "total_fetched": self.total_fetched,
            "total_accepted": self.total_accepted,
            "total_rejected": self.total_rejected,
            "total_errored": self.total_errored,
            "providers": [p.to_dict() for p in self.providers],
            "error": self.error,
        }


# ============================================================================
# Orchestrator
# ============================================================================


class CrawlOrchestrator:
    """
    Runs provider crawls sequentially and reports a summary.

    One RunCache is shared by every provider in a run and discarded at the
    end, so independent orchestrators never see each other's state.

    Example:
        orchestrator = CrawlOrchestrator(get_default_registry())
        summary = await orchestrator.run(["fanza", "mgs"])
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        session_factory: sessionmaker[Session] | None = None,
        crawler: Crawler | None = None,
        notifier: NotificationSink | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.registry = registry
        self.session_factory = session_factory or get_session_factory()
        self.crawler = crawler
        self.notifier = notifier or build_notifier(registry.global_config)
        self.clock = clock
        self.identifiers = IdentifierNormalizer.from_registry(registry)
        self.performers = PerformerValidator()

    def _select_providers(self, provider_names: list[str] | None) -> list[ProviderConfig]:
        if not provider_names:
            return self.registry.list_enabled_providers()

        providers = []
        for name in provider_names:
            provider = self.registry.get_provider(name)
            if provider is None:
                raise ProviderNotFoundError(name)
            providers.append(provider)
        return providers

    def _build_crawler(self) -> Crawler:
        global_config = self.registry.global_config
        return Crawler(
            user_agent=global_config.user_agent,
            timeout=global_config.request_timeout,
            max_retries=global_config.max_retries,
        )

    async def run(
        self,
        provider_names: list[str] | None = None,
        max_items: int | None = None,
    ) -> RunSummary:
        """
        Crawl providers one at a time.

        Args:
            provider_names: Providers to crawl (default: all enabled)
            max_items: Optional limit on URLs per provider

        Returns:
            RunSummary with per-provider counts

        Raises:
            ProviderNotFoundError: If a requested provider is not registered
        """
        providers = self._select_providers(provider_names)

        summary = RunSummary(run_id=str(uuid4()), status=RunStatus.RUNNING, started_at=_utc_now())
        cache = RunCache()
        crawler = self.crawler or self._build_crawler()

        logger.info(f"Starting crawl run {summary.run_id} for {len(providers)} provider(s)")

        try:
            for provider in providers:
                stats = ProviderRunStats(provider_name=provider.name, status=RunStatus.RUNNING)
                summary.providers.append(stats)

                if not provider.enabled:
                    stats.status = RunStatus.FAILED
                    stats.error = f"Provider '{provider.name}' is disabled"
                    logger.warning(stats.error)
                    continue

                try:
                    await asyncio.wait_for(
                        self._run_provider(provider, stats, crawler, cache, max_items),
                        timeout=provider.timeout_seconds,
                    )
                except asyncio.TimeoutError:
                    stats.status = RunStatus.TIMED_OUT
                    stats.error = f"Timed out after {provider.timeout_seconds}s"
                    logger.warning(f"Provider {provider.name} {stats.error.lower()}")
                except StoreUnavailableError as e:
                    stats.status = RunStatus.FAILED
                    stats.error = str(e)
                    summary.status = RunStatus.FAILED
                    summary.error = str(e)
                    logger.exception(f"Stopping crawl run {summary.run_id}: {e}")
                    break
                except AdapterNotFoundError as e:
                    stats.status = RunStatus.FAILED
                    stats.error = str(e)
                    logger.error(f"Provider {provider.name}: {e}")
                except Exception as e:
                    stats.status = RunStatus.FAILED
                    stats.error = str(e)
                    logger.exception(f"Provider {provider.name} failed: {e}")
                else:
                    stats.status = RunStatus.COMPLETED

            if summary.status == RunStatus.RUNNING:
                summary.status = RunStatus.COMPLETED
        finally:
            if self.crawler is None:
                await crawler.aclose()
            summary.completed_at = _utc_now()

        logger.info(
            f"Crawl run {summary.run_id} {summary.status.value}: "
            f"{summary.total_accepted} accepted, {summary.total_rejected} rejected, "
            f"{summary.total_errored} errored"
        )
        await self._notify(summary)
        return summary

    async def _run_provider(
        self,
        provider: ProviderConfig,
        stats: ProviderRunStats,
        crawler: Crawler,
        cache: RunCache,
        max_items: int | None,
    ) -> None:
        adapter = adapter_for_provider(provider)

        urls = adapter.discover_urls(provider.seed_urls or None)
        stats.discovered = len(urls)
        if max_items is not None:
            urls = urls[:max_items]

        logger.info(f"Crawling {len(urls)} URL(s) for provider '{provider.name}'")

        with self.session_factory() as session:
            pipeline = IngestionPipeline(
                session,
                self.registry,
                identifiers=self.identifiers,
                performers=self.performers,
                cache=cache,
                clock=self.clock,
            )
            for url in urls:
                outcome = await self._process_url(url, adapter, crawler, provider, pipeline, stats)
                stats.add(outcome)

    async def _process_url(
        self,
        url: str,
        adapter: BaseAdapter,
        crawler: Crawler,
        provider: ProviderConfig,
        pipeline: IngestionPipeline,
        stats: ProviderRunStats,
    ) -> ItemOutcome:
        """Fetch, screen, extract and ingest one URL."""
        fetch_result = await adapter.fetch(url, crawler, provider)
        if not fetch_result.success:
            logger.warning(f"Failed to fetch {url}: {fetch_result.error}")
            return ItemOutcome(
                provider.name, None, ItemStatus.ERRORED, detail=fetch_result.error or ""
            )
        stats.fetched += 1

        # Screen the navigation before parsing anything
        check = pipeline.validator.detect_redirect(url, fetch_result.final_url)
        if check.is_redirected:
            detail = f"{check.redirect_type.value}: {fetch_result.final_url}"
            logger.info(f"Rejected {url}: redirected ({detail})")
            return ItemOutcome(
                provider.name, None, ItemStatus.REJECTED, RejectionReason.REDIRECTED, detail
            )

        if "html" in fetch_result.mime_type and pipeline.validator.is_top_page_html(
            fetch_result.text, provider.name
        ):
            logger.info(f"Rejected {url}: top-page content")
            return ItemOutcome(
                provider.name,
                None,
                ItemStatus.REJECTED,
                RejectionReason.TOP_PAGE_CONTENT,
                f"top-page content at {fetch_result.final_url}",
            )

        try:
            extraction = adapter.extract_listing(fetch_result.content, url, fetch_result.final_url)
        except Exception as e:
            logger.exception(f"Error extracting {url}")
            return ItemOutcome(provider.name, None, ItemStatus.ERRORED, detail=str(e))

        if extraction is None:
            logger.warning(f"Failed to extract listing from {url}")
            return ItemOutcome(
                provider.name, None, ItemStatus.ERRORED, detail=f"no extraction from {url}"
            )

        if extraction.requested_url is None or extraction.final_url is None:
            extraction = extraction.model_copy(
                update={
                    "requested_url": extraction.requested_url or url,
                    "final_url": extraction.final_url or fetch_result.final_url,
                }
            )

        return pipeline.ingest(extraction)

    async def _notify(self, summary: RunSummary) -> None:
        """Deliver the summary; a failing sink never fails the run."""
        try:
            await self.notifier.notify(summary)
        except Exception as e:
            logger.warning(f"Failed to deliver notification for run {summary.run_id}: {e}")
