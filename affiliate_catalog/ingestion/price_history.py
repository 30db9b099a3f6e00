"""
Price History Module
====================

Records one price per provider source per calendar day and answers
read-side history and statistics queries.

Writes run inside SAVEPOINTs so a failed write rolls back only itself and
the surrounding item transaction stays usable. Failures are reported as
return values, never raised, so crawl loops keep going.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from affiliate_catalog.core.schema import PriceHistoryPoint, PriceObservation, PriceStats
from affiliate_catalog.db.repositories import PriceHistoryRepository, ProviderSourceRepository

logger = logging.getLogger(__name__)

# Records per SAVEPOINT in batch_record
DEFAULT_CHUNK_SIZE = 50


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


@dataclass
class BatchResult:
    """Tally of a batch recording."""

    success: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.success + self.failed


class PriceHistoryRecorder:
    """
    Records and queries daily price history.

    The recorder never commits; the caller owns the transaction.
    """

    def __init__(
        self,
        session: Session,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.session = session
        self.chunk_size = chunk_size
        self.clock = clock or _utc_now
        self._history = PriceHistoryRepository(session)

    def record(
        self,
        provider_source_id: str,
        price: int,
        sale_price: int | None = None,
        discount_percent: int | None = None,
    ) -> bool:
        """
        Record today's price for a provider source.

        A second observation on the same day overwrites the first.

        Returns:
            True if written, False if the write failed
        """
        now = self.clock()
        try:
            with self.session.begin_nested():
                self._history.upsert_day(
                    provider_source_id,
                    now.date(),
                    price,
                    sale_price=sale_price,
                    discount_percent=discount_percent,
                    recorded_at=now,
                )
        except SQLAlchemyError as e:
            logger.warning(f"Failed to record price for source {provider_source_id}: {e}")
            return False
        return True

    def batch_record(self, records: Iterable[PriceObservation]) -> BatchResult:
        """
        Record many observations in fixed-size chunks.

        Chunks run one after another, each in its own SAVEPOINT. If any
        record in a chunk fails, the whole chunk is rolled back and counted
        as failed.

        Returns:
            BatchResult with success and failed counts
        """
        records = list(records)
        result = BatchResult()
        now = self.clock()

        for start in range(0, len(records), self.chunk_size):
            chunk = records[start : start + self.chunk_size]
            try:
                with self.session.begin_nested():
                    for obs in chunk:
                        self._history.upsert_day(
                            obs.provider_source_id,
                            now.date(),
                            obs.price,
                            sale_price=obs.sale_price,
                            discount_percent=obs.discount_percent,
                            recorded_at=now,
                        )
            except SQLAlchemyError as e:
                logger.warning(
                    f"Price history chunk at offset {start} failed "
                    f"({len(chunk)} records): {e}"
                )
                result.failed += len(chunk)
            else:
                result.success += len(chunk)

        return result

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_price_history(
        self, provider_source_id: str, days: int | None = None
    ) -> list[PriceHistoryPoint]:
        """
        Get daily price history for a source, oldest first.

        Args:
            provider_source_id: Provider source to query
            days: Only include the last N days (None for all)
        """
        since = None
        if days is not None:
            since = self.clock().date() - timedelta(days=days)

        rows = self._history.list_for_sources([provider_source_id], since=since)
        return [
            PriceHistoryPoint(
                recorded_on=row.recorded_on,
                price=row.price,
                sale_price=row.sale_price,
                discount_percent=row.discount_percent,
                recorded_at=row.recorded_at,
            )
            for row in rows
        ]

    def get_price_stats(self, provider_source_id: str) -> PriceStats | None:
        """
        Summarize a source's price history.

        Returns:
            PriceStats, or None when nothing has been recorded
        """
        return self._stats_for([provider_source_id])

    def get_product_price_stats(self, product_id: str) -> PriceStats | None:
        """Summarize price history across every provider source of a product."""
        sources = ProviderSourceRepository(self.session).get_by_product_id(product_id)
        if not sources:
            return None
        return self._stats_for([s.id for s in sources])

    def _stats_for(self, provider_source_ids: list[str]) -> PriceStats | None:
        row = self._history.aggregate_for_sources(provider_source_ids)
        if not row.record_count:
            return None

        lowest = row.min_sale_price if row.min_sale_price is not None else row.min_price
        return PriceStats(
            lowest_price=lowest,
            highest_price=row.max_price,
            average_price=math.floor(float(row.avg_price) + 0.5),
            max_discount_percent=row.max_discount or 0,
            record_count=row.record_count,
            first_recorded=row.first_recorded,
            last_recorded=row.last_recorded,
        )
