"""
Identity Resolver Module
========================

Maps an accepted extraction onto the canonical catalog: one product per
normalized product id, one provider source per (product, provider), and
validated performers linked to the product.

Every write is an atomic INSERT ... ON CONFLICT, so concurrent runs and
different providers submitting the same release can never create two
products. The resolver never commits; the caller owns the transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from affiliate_catalog.core.schema import RawExtraction
from affiliate_catalog.db.repositories import (
    PerformerRepository,
    ProductRepository,
    ProviderSourceRepository,
)
from affiliate_catalog.ingestion.cache import RunCache
from affiliate_catalog.ingestion.identifiers import IdentifierNormalizer
from affiliate_catalog.ingestion.performers import PerformerValidator
from affiliate_catalog.ingestion.registry import ProviderRegistry
from affiliate_catalog.ingestion.validator import sanitize_text

logger = logging.getLogger(__name__)


@dataclass
class ResolutionResult:
    """Result of resolving an extraction to the canonical catalog."""

    product_id: str
    is_new_product: bool
    provider_source_id: str
    normalized_product_id: str
    performers_linked: list[str] = field(default_factory=list)
    performers_rejected: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


class IdentityResolver:
    """
    Resolves extractions to canonical products, sources and performers.

    Example:
        resolver = IdentityResolver(session, identifiers, performers, registry)
        result = resolver.resolve(extraction)
        session.commit()
    """

    def __init__(
        self,
        session: Session,
        identifiers: IdentifierNormalizer,
        performers: PerformerValidator,
        registry: ProviderRegistry,
        cache: RunCache | None = None,
    ) -> None:
        self.session = session
        self.identifiers = identifiers
        self.performers = performers
        self.registry = registry
        self.cache = cache if cache is not None else RunCache()

        self._products = ProductRepository(session)
        self._sources = ProviderSourceRepository(session)
        self._performer_repo = PerformerRepository(session)

    def normalized_id_for(self, extraction: RawExtraction) -> str:
        """Compute (or recall) the normalized product id of an extraction."""
        family = self.registry.family_for_provider(extraction.provider_name)
        code = extraction.provider_code

        normalized = self.cache.get_normalized_id(family, code)
        if normalized is None:
            normalized = self.identifiers.normalize(family, code)
            self.cache.remember_normalized_id(family, code, normalized)
        return normalized

    def resolve(self, extraction: RawExtraction) -> ResolutionResult:
        """
        Upsert the product, provider source and performer links.

        Args:
            extraction: An extraction the validator accepted

        Returns:
            ResolutionResult with ids and whether the product is new
        """
        normalized_id = self.normalized_id_for(extraction)

        product_id, is_new = self._products.upsert(
            normalized_product_id=normalized_id,
            title=sanitize_text(extraction.title),
            description=sanitize_text(extraction.description),
            release_date=extraction.release_date,
            duration_minutes=extraction.duration_minutes,
            thumbnail_url=extraction.thumbnail_url,
            sample_video_urls=extraction.sample_video_urls,
            title_translations=extraction.title_translations,
        )

        source_id = self._sources.upsert(
            product_id=product_id,
            provider_name=extraction.provider_name,
            provider_product_code=extraction.provider_code,
            affiliate_url=extraction.affiliate_url,
            price=extraction.price,
            sale_price=extraction.sale_price,
            discount_percent=extraction.discount_percent,
        )

        result = ResolutionResult(
            product_id=product_id,
            is_new_product=is_new,
            provider_source_id=source_id,
            normalized_product_id=normalized_id,
        )

        valid, rejected = self.performers.partition(
            extraction.performer_names, extraction.provider_code
        )
        result.performers_rejected = rejected
        for name in valid:
            performer_id = self.cache.get_performer_id(name)
            if performer_id is None:
                performer_id = self._performer_repo.get_or_create(name)
                self.cache.remember_performer(name, performer_id)
            self._performer_repo.link_to_product(product_id, performer_id)
            result.performers_linked.append(name)

        self._add_resolution_notes(result, extraction)
        return result

    def _add_resolution_notes(self, result: ResolutionResult, extraction: RawExtraction) -> None:
        """Add human-readable notes about the resolution."""
        if result.is_new_product:
            result.notes.append(f"New product {result.normalized_product_id}")
        else:
            result.notes.append(
                f"Matched existing product {result.normalized_product_id} "
                f"from {extraction.provider_name}"
            )
        if result.performers_rejected:
            result.notes.append(
                f"Rejected {len(result.performers_rejected)} performer name(s): "
                + ", ".join(result.performers_rejected)
            )
        logger.debug("; ".join(result.notes))
