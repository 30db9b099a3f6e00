"""Database initialization and persistence layer."""

from affiliate_catalog.db.engine import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
    run_migrations,
)
from affiliate_catalog.db.models import (
    Base,
    PerformerAliasDB,
    PerformerDB,
    PriceHistoryDB,
    ProductDB,
    ProductPerformerDB,
    ProviderSourceDB,
)
from affiliate_catalog.db.repositories import (
    PerformerRepository,
    PriceHistoryRepository,
    ProductRepository,
    ProviderSourceRepository,
)

__all__ = [
    # Engine
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
    "run_migrations",
    # Models
    "Base",
    "ProductDB",
    "ProviderSourceDB",
    "PerformerDB",
    "PerformerAliasDB",
    "ProductPerformerDB",
    "PriceHistoryDB",
    # Repositories
    "ProductRepository",
    "ProviderSourceRepository",
    "PerformerRepository",
    "PriceHistoryRepository",
]
