"""Repository classes for catalog database operations.

Every write here is a single INSERT ... ON CONFLICT statement so that two
runs (or two providers) submitting the same row never race each other into
a duplicate. Nothing in this module commits; callers own the transaction.
"""

import json
from datetime import UTC, date, datetime
from uuid import uuid4

from sqlalchemy import Table, case, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from affiliate_catalog.db.models import (
    PerformerAliasDB,
    PerformerDB,
    PriceHistoryDB,
    ProductDB,
    ProductPerformerDB,
    ProviderSourceDB,
)


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid4())


def upsert_insert(session: Session, table: Table):
    """
    Build a dialect-specific INSERT that supports ON CONFLICT.

    Args:
        session: Session bound to a SQLite or PostgreSQL engine
        table: Target table

    Returns:
        An Insert construct exposing on_conflict_do_update/do_nothing.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upserts are not supported on dialect '{dialect}'")


# ============================================================================
# Products
# ============================================================================


class ProductRepository:
    """Repository for canonical product operations."""

    def __init__(self, session: Session):
        self.session = session

    def upsert(
        self,
        normalized_product_id: str,
        title: str,
        description: str = "",
        release_date: date | None = None,
        duration_minutes: int | None = None,
        thumbnail_url: str | None = None,
        sample_video_urls: list[str] | None = None,
        title_translations: dict[str, str] | None = None,
    ) -> tuple[str, bool]:
        """
        Create or refresh the product for a normalized id.

        A fresh UUID is proposed on every call and never overwritten on
        conflict, so the row is new exactly when the returned id is the
        proposed one.

        Returns:
            Tuple of (product_id, is_new_product)
        """
        table = ProductDB.__table__
        proposed_id = _new_id()
        now = _utc_now()

        stmt = upsert_insert(self.session, table).values(
            id=proposed_id,
            normalized_product_id=normalized_product_id,
            title=title,
            title_translations_json=json.dumps(title_translations or {}, ensure_ascii=False),
            description=description or "",
            release_date=release_date,
            duration_minutes=duration_minutes,
            thumbnail_url=thumbnail_url,
            sample_video_urls_json=json.dumps(sample_video_urls or [], ensure_ascii=False),
            created_at=now,
            updated_at=now,
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.normalized_product_id],
            set_={
                "title": excluded.title,
                "description": func.coalesce(
                    func.nullif(excluded.description, ""), table.c.description
                ),
                "title_translations_json": func.coalesce(
                    func.nullif(excluded.title_translations_json, "{}"),
                    table.c.title_translations_json,
                ),
                "release_date": func.coalesce(excluded.release_date, table.c.release_date),
                "duration_minutes": func.coalesce(
                    excluded.duration_minutes, table.c.duration_minutes
                ),
                "thumbnail_url": func.coalesce(excluded.thumbnail_url, table.c.thumbnail_url),
                "sample_video_urls_json": func.coalesce(
                    func.nullif(excluded.sample_video_urls_json, "[]"),
                    table.c.sample_video_urls_json,
                ),
                "updated_at": excluded.updated_at,
            },
        ).returning(table.c.id)

        product_id = self.session.execute(stmt).scalar_one()
        return product_id, product_id == proposed_id

    def get_by_id(self, product_id: str) -> ProductDB | None:
        """Get a product by ID."""
        stmt = select(ProductDB).where(ProductDB.id == product_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_by_normalized_id(self, normalized_product_id: str) -> ProductDB | None:
        """Get a product by its normalized product id."""
        stmt = select(ProductDB).where(ProductDB.normalized_product_id == normalized_product_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def count(self) -> int:
        """Get total count of products."""
        stmt = select(func.count()).select_from(ProductDB)
        return self.session.execute(stmt).scalar() or 0


# ============================================================================
# Provider Sources
# ============================================================================


class ProviderSourceRepository:
    """Repository for provider source operations."""

    def __init__(self, session: Session):
        self.session = session

    def upsert(
        self,
        product_id: str,
        provider_name: str,
        provider_product_code: str,
        affiliate_url: str | None = None,
        price: int | None = None,
        sale_price: int | None = None,
        discount_percent: int | None = None,
    ) -> str:
        """
        Create or refresh the (product, provider) source row.

        A missing price keeps the known price, sale price and discount; a
        present price replaces all three so an ended sale is cleared.

        Returns:
            The provider source id.
        """
        table = ProviderSourceDB.__table__
        now = _utc_now()

        stmt = upsert_insert(self.session, table).values(
            id=_new_id(),
            product_id=product_id,
            provider_name=provider_name,
            provider_product_code=provider_product_code,
            affiliate_url=affiliate_url,
            price=price,
            sale_price=sale_price,
            discount_percent=discount_percent,
            last_updated_at=now,
            created_at=now,
        )
        excluded = stmt.excluded
        no_new_price = excluded.price.is_(None)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.product_id, table.c.provider_name],
            set_={
                "provider_product_code": excluded.provider_product_code,
                "affiliate_url": func.coalesce(excluded.affiliate_url, table.c.affiliate_url),
                "price": func.coalesce(excluded.price, table.c.price),
                "sale_price": case(
                    (no_new_price, table.c.sale_price), else_=excluded.sale_price
                ),
                "discount_percent": case(
                    (no_new_price, table.c.discount_percent), else_=excluded.discount_percent
                ),
                "last_updated_at": excluded.last_updated_at,
            },
        ).returning(table.c.id)

        return self.session.execute(stmt).scalar_one()

    def get_by_id(self, source_id: str) -> ProviderSourceDB | None:
        """Get a provider source by ID."""
        stmt = select(ProviderSourceDB).where(ProviderSourceDB.id == source_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_by_product_id(self, product_id: str) -> list[ProviderSourceDB]:
        """Get all provider sources for a product."""
        stmt = (
            select(ProviderSourceDB)
            .where(ProviderSourceDB.product_id == product_id)
            .order_by(ProviderSourceDB.provider_name)
        )
        return list(self.session.execute(stmt).scalars().all())

    def count(self) -> int:
        """Get total count of provider sources."""
        stmt = select(func.count()).select_from(ProviderSourceDB)
        return self.session.execute(stmt).scalar() or 0


# ============================================================================
# Performers
# ============================================================================


class PerformerRepository:
    """Repository for performer, alias and product link operations."""

    def __init__(self, session: Session):
        self.session = session

    def find_id_by_name(self, name: str) -> str | None:
        """Find a performer id by exact canonical name."""
        stmt = select(PerformerDB.id).where(PerformerDB.name == name)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_id_by_alias(self, alias: str) -> str | None:
        """Find a performer id through the alias table."""
        stmt = select(PerformerAliasDB.performer_id).where(PerformerAliasDB.alias_name == alias)
        return self.session.execute(stmt).scalar_one_or_none()

    def upsert(self, name: str) -> str:
        """Create a performer by name, or return the existing one's id."""
        table = PerformerDB.__table__
        stmt = upsert_insert(self.session, table).values(
            id=_new_id(), name=name, created_at=_utc_now()
        )
        # A no-op update so RETURNING yields the existing row's id.
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.name],
            set_={"name": stmt.excluded.name},
        ).returning(table.c.id)
        return self.session.execute(stmt).scalar_one()

    def get_or_create(self, name: str) -> str:
        """
        Resolve a performer name to an id.

        Lookup order is exact name, then alias, then create.
        """
        performer_id = self.find_id_by_name(name)
        if performer_id is None:
            performer_id = self.find_id_by_alias(name)
        if performer_id is None:
            performer_id = self.upsert(name)
        return performer_id

    def add_alias(self, performer_id: str, alias_name: str) -> None:
        """Register an alternate name for a performer (no-op if taken)."""
        table = PerformerAliasDB.__table__
        stmt = upsert_insert(self.session, table).values(
            id=_new_id(),
            performer_id=performer_id,
            alias_name=alias_name,
            created_at=_utc_now(),
        )
        self.session.execute(stmt.on_conflict_do_nothing(index_elements=[table.c.alias_name]))

    def link_to_product(self, product_id: str, performer_id: str) -> None:
        """Associate a performer with a product (no-op if already linked)."""
        table = ProductPerformerDB.__table__
        stmt = upsert_insert(self.session, table).values(
            product_id=product_id, performer_id=performer_id, created_at=_utc_now()
        )
        self.session.execute(
            stmt.on_conflict_do_nothing(index_elements=[table.c.product_id, table.c.performer_id])
        )

    def get_names_for_product(self, product_id: str) -> list[str]:
        """Get performer names linked to a product."""
        stmt = (
            select(PerformerDB.name)
            .join(ProductPerformerDB, ProductPerformerDB.performer_id == PerformerDB.id)
            .where(ProductPerformerDB.product_id == product_id)
            .order_by(PerformerDB.name)
        )
        return list(self.session.execute(stmt).scalars().all())

    def count(self) -> int:
        """Get total count of performers."""
        stmt = select(func.count()).select_from(PerformerDB)
        return self.session.execute(stmt).scalar() or 0


# ============================================================================
# Price History
# ============================================================================


class PriceHistoryRepository:
    """Repository for daily price history rows."""

    def __init__(self, session: Session):
        self.session = session

    def upsert_day(
        self,
        provider_source_id: str,
        recorded_on: date,
        price: int,
        sale_price: int | None = None,
        discount_percent: int | None = None,
        recorded_at: datetime | None = None,
    ) -> None:
        """Write the price for a source on a day; later values win."""
        table = PriceHistoryDB.__table__
        stmt = upsert_insert(self.session, table).values(
            id=_new_id(),
            provider_source_id=provider_source_id,
            recorded_on=recorded_on,
            price=price,
            sale_price=sale_price,
            discount_percent=discount_percent,
            recorded_at=recorded_at or _utc_now(),
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.provider_source_id, table.c.recorded_on],
            set_={
                "price": excluded.price,
                "sale_price": excluded.sale_price,
                "discount_percent": excluded.discount_percent,
                "recorded_at": excluded.recorded_at,
            },
        )
        self.session.execute(stmt)

    def list_for_sources(
        self, provider_source_ids: list[str], since: date | None = None
    ) -> list[PriceHistoryDB]:
        """List history rows for one or more sources, oldest first."""
        stmt = select(PriceHistoryDB).where(
            PriceHistoryDB.provider_source_id.in_(provider_source_ids)
        )
        if since is not None:
            stmt = stmt.where(PriceHistoryDB.recorded_on >= since)
        stmt = stmt.order_by(PriceHistoryDB.recorded_on, PriceHistoryDB.recorded_at)
        return list(self.session.execute(stmt).scalars().all())

    def aggregate_for_sources(self, provider_source_ids: list[str]):
        """
        Aggregate price history across sources in a single query.

        Returns:
            Row with min_price, max_price, avg_price, min_sale_price,
            max_discount, record_count, first_recorded, last_recorded.
        """
        stmt = select(
            func.min(PriceHistoryDB.price).label("min_price"),
            func.max(PriceHistoryDB.price).label("max_price"),
            func.avg(PriceHistoryDB.price).label("avg_price"),
            func.min(PriceHistoryDB.sale_price).label("min_sale_price"),
            func.max(PriceHistoryDB.discount_percent).label("max_discount"),
            func.count(PriceHistoryDB.id).label("record_count"),
            func.min(PriceHistoryDB.recorded_on).label("first_recorded"),
            func.max(PriceHistoryDB.recorded_on).label("last_recorded"),
        ).where(PriceHistoryDB.provider_source_id.in_(provider_source_ids))
        return self.session.execute(stmt).one()
