"""Affiliate Catalog CLI using Typer."""

import logging
import os
from pathlib import Path

import typer
from dotenv import load_dotenv

from affiliate_catalog import __version__
from affiliate_catalog.cli.ingest import ingest_app

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

app = typer.Typer(
    name="affiliate-catalog",
    help="Affiliate Catalog - ingest provider crawls into one canonical product catalog",
    add_completion=False,
)
app.add_typer(ingest_app, name="ingest")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def init_db(
    migrate: bool = typer.Option(
        False, "--migrate", "-m", help="Apply Alembic migrations instead of create_all"
    ),
) -> None:
    """Initialize the database (create tables)."""
    from affiliate_catalog.db.engine import init_db as db_init
    from affiliate_catalog.db.engine import run_migrations

    typer.echo("Initializing database...")
    if migrate:
        run_migrations()
    else:
        db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def version() -> None:
    """Show the Affiliate Catalog version."""
    typer.echo(f"Affiliate Catalog v{__version__}")


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    from affiliate_catalog.db.engine import get_database_url
    from affiliate_catalog.ingestion.registry import get_default_registry

    typer.echo("Affiliate Catalog Configuration")
    typer.echo("=" * 40)

    # Check .env file
    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    # Check provider registry
    registry = get_default_registry()
    if registry.config_path is None:
        typer.echo("  Providers config: Not found")
    else:
        typer.echo(f"  Providers config: {registry.config_path}")
        typer.echo(
            f"  Providers: {len(registry.list_providers())} "
            f"({len(registry.list_enabled_providers())} enabled)"
        )
        typer.echo(f"  Identifier families: {len(registry.list_families())}")

    webhook = registry.global_config.notification_webhook_url
    typer.echo(f"  Notifications: {'webhook ' + webhook if webhook else 'log only'}")

    # Check database
    db_url = get_database_url()
    typer.echo(f"  Database: {db_url}")

    redis_host = os.environ.get("REDIS_HOST", "localhost")
    redis_port = os.environ.get("REDIS_PORT", "6379")
    typer.echo(f"  Redis: {redis_host}:{redis_port}")


if __name__ == "__main__":
    app()
