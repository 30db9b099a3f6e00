"""
Catalog database connection handling.

The catalog runs on SQLite for local work and tests, and on PostgreSQL in
deployment; DATABASE_URL selects between them. A process holds one engine
and one session factory, created on first use.
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DB_PATH = Path.home() / ".affiliate_catalog" / "catalog.db"
ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"


def _sqlite_url(path: Path) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def get_database_url(db_path: Path | str | None = None) -> str:
    """
    Resolve the catalog database URL.

    An explicit db_path wins. Otherwise DATABASE_URL is used: a value with a
    scheme (postgresql+psycopg://..., sqlite:///...) is passed through and a
    bare path is treated as a SQLite file. With neither, the file under
    ~/.affiliate_catalog is used.
    """
    if db_path is not None:
        return _sqlite_url(Path(db_path))

    configured = os.environ.get("DATABASE_URL", "").strip()
    if "://" in configured:
        return configured
    return _sqlite_url(Path(configured) if configured else DEFAULT_DB_PATH)


def _install_sqlite_hooks(engine: Engine) -> None:
    # pysqlite defers BEGIN on its own, which breaks begin_nested(); turn
    # that off and let SQLAlchemy emit BEGIN. Foreign keys are off by default.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """
    Create an engine for the catalog database.

    Args:
        db_path: Optional SQLite file; see get_database_url.
        echo: Log every SQL statement.
    """
    url = get_database_url(db_path)
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    _install_sqlite_hooks(engine)
    return engine


_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def get_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """Return the process-wide engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(db_path, echo)
    return _engine


def get_session_factory(db_path: Path | str | None = None) -> sessionmaker[Session]:
    """Return the process-wide session factory bound to get_engine()."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(db_path), autoflush=False)
    return _session_factory


def reset_engine() -> None:
    """Dispose the process-wide engine so the next call reads DATABASE_URL again."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@contextmanager
def get_session(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """
    Open a session that is closed on exit.

    Nothing is committed automatically; writers call session.commit().
    """
    session = get_session_factory(db_path)()
    try:
        yield session
    finally:
        session.close()


def init_db(db_path: Path | str | None = None) -> None:
    """Create every catalog table that does not exist yet."""
    from affiliate_catalog.db.models import Base

    Base.metadata.create_all(bind=get_engine(db_path))


def run_migrations(db_path: Path | str | None = None, revision: str = "head") -> None:
    """
    Upgrade the catalog schema with Alembic.

    Raises:
        FileNotFoundError: If alembic.ini is not next to the package
    """
    if not ALEMBIC_INI.exists():
        raise FileNotFoundError(f"Alembic config not found: {ALEMBIC_INI}")

    config = Config(str(ALEMBIC_INI))
    config.attributes["database_url"] = get_database_url(db_path)
    command.upgrade(config, revision)
