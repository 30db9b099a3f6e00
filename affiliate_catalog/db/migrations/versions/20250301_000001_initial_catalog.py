"""Initial catalog schema.

Revision ID: 0001
Revises:
Create Date: 2025-03-01

Creates the canonical catalog tables:
- products, provider_sources
- performers, performer_aliases, product_performers
- price_history
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # =========================================================================
    # Products
    # =========================================================================

    op.create_table(
        "products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("normalized_product_id", sa.String(255), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("title_translations_json", sa.Text(), default="{}"),
        sa.Column("description", sa.Text(), default=""),
        sa.Column("release_date", sa.Date(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("thumbnail_url", sa.Text(), nullable=True),
        sa.Column("sample_video_urls_json", sa.Text(), default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_products_normalized_product_id", "products", ["normalized_product_id"], unique=True
    )
    op.create_index("ix_products_release_date", "products", ["release_date"])

    op.create_table(
        "provider_sources",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("provider_name", sa.String(50), nullable=False),
        sa.Column("provider_product_code", sa.String(255), nullable=False),
        sa.Column("affiliate_url", sa.Text(), nullable=True),
        sa.Column("price", sa.Integer(), nullable=True),
        sa.Column("sale_price", sa.Integer(), nullable=True),
        sa.Column("discount_percent", sa.Integer(), nullable=True),
        sa.Column("last_updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "product_id", "provider_name", name="uq_provider_source_product_provider"
        ),
    )
    op.create_index("ix_provider_sources_product_id", "provider_sources", ["product_id"])
    op.create_index("ix_provider_sources_provider_name", "provider_sources", ["provider_name"])

    # =========================================================================
    # Performers
    # =========================================================================

    op.create_table(
        "performers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_performers_name", "performers", ["name"], unique=True)

    op.create_table(
        "performer_aliases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "performer_id", sa.String(36), sa.ForeignKey("performers.id"), nullable=False
        ),
        sa.Column("alias_name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_performer_aliases_performer_id", "performer_aliases", ["performer_id"])
    op.create_index(
        "ix_performer_aliases_alias_name", "performer_aliases", ["alias_name"], unique=True
    )

    op.create_table(
        "product_performers",
        sa.Column(
            "product_id", sa.String(36), sa.ForeignKey("products.id"), primary_key=True
        ),
        sa.Column(
            "performer_id", sa.String(36), sa.ForeignKey("performers.id"), primary_key=True
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_product_performers_performer_id", "product_performers", ["performer_id"]
    )

    # =========================================================================
    # Price History
    # =========================================================================

    op.create_table(
        "price_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "provider_source_id",
            sa.String(36),
            sa.ForeignKey("provider_sources.id"),
            nullable=False,
        ),
        sa.Column("recorded_on", sa.Date(), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("sale_price", sa.Integer(), nullable=True),
        sa.Column("discount_percent", sa.Integer(), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "provider_source_id", "recorded_on", name="uq_price_history_source_day"
        ),
    )
    op.create_index(
        "ix_price_history_provider_source_id", "price_history", ["provider_source_id"]
    )
    op.create_index("ix_price_history_recorded_on", "price_history", ["recorded_on"])


def downgrade() -> None:
    op.drop_table("price_history")
    op.drop_table("product_performers")
    op.drop_table("performer_aliases")
    op.drop_table("performers")
    op.drop_table("provider_sources")
    op.drop_table("products")
