"""SQLAlchemy ORM models for the canonical catalog.

These models define the tables the ingestion pipeline writes to:
- ProductDB (canonical product, one per normalized product id)
- ProviderSourceDB (one row per product per provider)
- PerformerDB, PerformerAliasDB, ProductPerformerDB (performer catalog)
- PriceHistoryDB (one price per provider source per calendar day)

Every uniqueness rule the pipeline relies on is a real constraint here,
because the resolver and recorder use INSERT ... ON CONFLICT against them.
"""

from datetime import UTC, date, datetime
from uuid import uuid4

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ============================================================================
# Products
# ============================================================================


class ProductDB(Base):
    """
    Database model for canonical products.

    One row per underlying release regardless of how many providers sell it.
    Created on the first accepted extraction for a normalized id and
    refreshed by later ones; never deleted by the pipeline.
    """

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    normalized_product_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    title_translations_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    description: Mapped[str] = mapped_column(Text, default="")
    release_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    sample_video_urls_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    # Relationships
    sources: Mapped[list["ProviderSourceDB"]] = relationship(
        "ProviderSourceDB", back_populates="product"
    )

    def __repr__(self) -> str:
        return f"<ProductDB(id={self.id}, normalized_id='{self.normalized_product_id}')>"


class ProviderSourceDB(Base):
    """
    Database model for a provider's listing of a product.

    Keyed by (product_id, provider_name); upserted on every accepted
    extraction so price, URL and timestamp always reflect the latest crawl.
    """

    __tablename__ = "provider_sources"
    __table_args__ = (
        UniqueConstraint("product_id", "provider_name", name="uq_provider_source_product_provider"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id"), nullable=False, index=True
    )
    provider_name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    provider_product_code: Mapped[str] = mapped_column(String(255), nullable=False)
    affiliate_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sale_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discount_percent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    # Relationships
    product: Mapped["ProductDB"] = relationship("ProductDB", back_populates="sources")
    price_history: Mapped[list["PriceHistoryDB"]] = relationship(
        "PriceHistoryDB", back_populates="provider_source"
    )

    def __repr__(self) -> str:
        return f"<ProviderSourceDB(id={self.id}, provider='{self.provider_name}', price={self.price})>"


# ============================================================================
# Performers
# ============================================================================


class PerformerDB(Base):
    """Database model for performers, unique by canonical display name."""

    __tablename__ = "performers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    aliases: Mapped[list["PerformerAliasDB"]] = relationship(
        "PerformerAliasDB", back_populates="performer"
    )

    def __repr__(self) -> str:
        return f"<PerformerDB(id={self.id}, name='{self.name}')>"


class PerformerAliasDB(Base):
    """
    Database model for alternate performer names.

    An extraction naming a performer by an alias links to the canonical
    performer instead of creating a duplicate.
    """

    __tablename__ = "performer_aliases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    performer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("performers.id"), nullable=False, index=True
    )
    alias_name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    performer: Mapped["PerformerDB"] = relationship("PerformerDB", back_populates="aliases")

    def __repr__(self) -> str:
        return f"<PerformerAliasDB(alias='{self.alias_name}', performer_id={self.performer_id})>"


class ProductPerformerDB(Base):
    """Insert-only association between products and performers."""

    __tablename__ = "product_performers"

    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id"), primary_key=True
    )
    performer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("performers.id"), primary_key=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    def __repr__(self) -> str:
        return f"<ProductPerformerDB(product_id={self.product_id}, performer_id={self.performer_id})>"


# ============================================================================
# Price History
# ============================================================================


class PriceHistoryDB(Base):
    """
    Database model for daily price history.

    At most one row per (provider_source_id, recorded_on); a second
    observation on the same day overwrites the first.
    """

    __tablename__ = "price_history"
    __table_args__ = (
        UniqueConstraint("provider_source_id", "recorded_on", name="uq_price_history_source_day"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    provider_source_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("provider_sources.id"), nullable=False, index=True
    )
    recorded_on: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    sale_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discount_percent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    provider_source: Mapped["ProviderSourceDB"] = relationship(
        "ProviderSourceDB", back_populates="price_history"
    )

    def __repr__(self) -> str:
        return f"<PriceHistoryDB(source={self.provider_source_id}, on={self.recorded_on}, price={self.price})>"
