"""
Ingestion CLI Commands
======================

CLI commands for running crawls and inspecting the catalog pipeline.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from affiliate_catalog.ingestion.adapters import get_adapter_info, list_adapters
from affiliate_catalog.ingestion.identifiers import IdentifierNormalizer
from affiliate_catalog.ingestion.jobs import enqueue_crawl, get_job_status, run_crawl_sync
from affiliate_catalog.ingestion.performers import PerformerValidator
from affiliate_catalog.ingestion.registry import get_default_registry

console = Console()
ingest_app = typer.Typer(help="Ingestion pipeline commands")
providers_app = typer.Typer(help="Provider management commands")
jobs_app = typer.Typer(help="Job management commands")
prices_app = typer.Typer(help="Price history commands")

ingest_app.add_typer(providers_app, name="providers")
ingest_app.add_typer(jobs_app, name="jobs")
ingest_app.add_typer(prices_app, name="prices")


@ingest_app.command("run")
def run_ingestion(
    providers: Optional[list[str]] = typer.Option(
        None, "--provider", "-p", help="Provider to crawl (repeatable; default: all enabled)"
    ),
    max_items: Optional[int] = typer.Option(None, "--max", "-m", help="Maximum URLs per provider"),
    sync: bool = typer.Option(False, "--sync", help="Run synchronously (blocking)"),
) -> None:
    """
    Run a crawl for one or more providers.

    Examples:
        affiliate-catalog ingest run --provider=sample --max=10 --sync
        affiliate-catalog ingest run -p fanza -p mgs
    """
    registry = get_default_registry()

    for name in providers or []:
        if registry.get_provider(name) is None:
            rprint(f"[red]Error:[/red] Provider '{name}' not found")
            rprint("\nAvailable providers:")
            for p in registry.list_providers():
                status = "[green]enabled[/green]" if p.enabled else "[yellow]disabled[/yellow]"
                rprint(f"  • {p.name} ({status})")
            raise typer.Exit(1)

    names = providers or [p.name for p in registry.list_enabled_providers()]
    rprint(f"\n[bold]Starting crawl for:[/bold] {', '.join(names) or '(none)'}")
    if max_items:
        rprint(f"  Max URLs per provider: {max_items}")

    if sync:
        rprint("\n[dim]Running synchronously...[/dim]\n")

        with console.status("[bold blue]Crawling...[/bold blue]"):
            summary = asyncio.run(run_crawl_sync(providers or None, max_items))

        _display_run_summary(summary.to_dict())

        if summary.status.value == "failed":
            raise typer.Exit(1)
    else:
        rprint("\n[dim]Enqueueing job for async processing...[/dim]")

        try:
            job_id = asyncio.run(enqueue_crawl(providers or None, max_items))
            rprint("\n[green]Job enqueued successfully![/green]")
            rprint(f"Job ID: [bold]{job_id}[/bold]")
            rprint("\nCheck status with:")
            rprint(f"  affiliate-catalog ingest jobs status {job_id}")
        except Exception as e:
            rprint(f"\n[red]Error:[/red] Failed to enqueue job: {e}")
            rprint("\nMake sure Redis is running:")
            rprint("  docker-compose up -d redis")
            raise typer.Exit(1)


@ingest_app.command("worker")
def start_worker(
    burst: bool = typer.Option(False, "--burst", help="Run in burst mode (exit when queue empty)"),
) -> None:
    """
    Start the crawl worker.

    The worker processes queued crawl jobs from Redis.

    Examples:
        affiliate-catalog ingest worker
        affiliate-catalog ingest worker --burst
    """
    from arq import run_worker

    from affiliate_catalog.ingestion.jobs import WorkerSettings

    rprint("[bold]Starting crawl worker...[/bold]")
    rprint("Press Ctrl+C to stop\n")

    try:
        run_worker(WorkerSettings, burst=burst)
    except Exception as e:
        rprint(f"[red]Error:[/red] Worker failed: {e}")
        rprint("\nMake sure Redis is running:")
        rprint("  docker-compose up -d redis")
        raise typer.Exit(1)


@ingest_app.command("check-id")
def check_id(
    family: str = typer.Argument(..., help="Identifier family (e.g. dvd_label)"),
    code: str = typer.Argument(..., help="Provider-native product code"),
) -> None:
    """
    Show how a product code normalizes and which spellings it matches.

    Examples:
        affiliate-catalog ingest check-id dvd_label ssis00865
    """
    identifiers = IdentifierNormalizer.from_registry(get_default_registry())

    try:
        normalized = identifiers.normalize(family, code)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    scope = "cross-provider" if identifiers.is_cross_provider(family) else "provider-scoped"
    rprint(f"\n[bold]Code:[/bold] {code}")
    rprint(f"  Family: {family} ({scope})")
    rprint(f"  Normalized id: [green]{normalized}[/green]")
    rprint(f"  Display code: {identifiers.display_code(code)}")
    rprint(f"  Search key: {identifiers.search_key(code)}")

    rprint("\n[bold]Search variations:[/bold]")
    for variation in sorted(identifiers.variations(code)):
        rprint(f"  • {variation}")


@ingest_app.command("check-performer")
def check_performer(
    name: str = typer.Argument(..., help="Raw performer name"),
    code: Optional[str] = typer.Option(None, "--code", "-c", help="Product code for context"),
) -> None:
    """
    Show how a performer name normalizes and whether it is accepted.

    Examples:
        affiliate-catalog ingest check-performer "三上　悠亜"
        affiliate-catalog ingest check-performer "SSIS-865" --code SSIS-865
    """
    performers = PerformerValidator()
    normalized = performers.normalize(name)
    valid = performers.is_valid_for_product(normalized, code) if code else performers.is_valid(normalized)

    rprint(f"\n[bold]Name:[/bold] {name!r}")
    rprint(f"  Normalized: {normalized!r}")
    verdict = "[green]valid[/green]" if valid else "[red]rejected[/red]"
    rprint(f"  Verdict: {verdict}")


# Providers subcommands


@providers_app.command("list")
def list_providers(
    all_providers: bool = typer.Option(
        False, "--all", "-a", help="Show all providers including disabled"
    ),
) -> None:
    """
    List configured providers.

    Examples:
        affiliate-catalog ingest providers list
        affiliate-catalog ingest providers list --all
    """
    registry = get_default_registry()
    providers = registry.list_providers() if all_providers else registry.list_enabled_providers()

    if not providers:
        rprint("[yellow]No providers configured[/yellow]")
        rprint("\nAdd providers to config/providers.yaml")
        return

    table = Table(title="Providers")
    table.add_column("Name", style="bold")
    table.add_column("Family")
    table.add_column("Domain")
    table.add_column("Adapter")
    table.add_column("Status")
    table.add_column("Rate Limit")

    for provider in providers:
        status = "[green]enabled[/green]" if provider.enabled else "[yellow]disabled[/yellow]"
        rate = f"{provider.rate_limit.requests_per_second}/s"
        table.add_row(
            provider.name, provider.family, provider.domain, provider.adapter, status, rate
        )

    console.print(table)


@providers_app.command("show")
def show_provider(
    name: str = typer.Argument(..., help="Provider name"),
) -> None:
    """
    Show detailed information about a provider.

    Examples:
        affiliate-catalog ingest providers show sample
    """
    registry = get_default_registry()
    provider = registry.get_provider(name)

    if provider is None:
        rprint(f"[red]Error:[/red] Provider '{name}' not found")
        raise typer.Exit(1)

    status = "[green]enabled[/green]" if provider.enabled else "[yellow]disabled[/yellow]"

    rprint(f"\n[bold]Provider: {provider.name}[/bold]")
    rprint(f"  Status: {status}")
    rprint(f"  Domain: {provider.domain}")
    rprint(f"  Adapter: {provider.adapter}")
    rprint(f"  Timeout: {provider.timeout_seconds}s")
    if provider.description:
        rprint(f"  Description: {provider.description}")

    family = registry.get_family(provider.family)
    rprint(f"\n[bold]Identifier family:[/bold] {provider.family}")
    if family is not None:
        rprint(f"  Cross-provider: {family.cross_provider}")
        for rule in family.id_rewrite_rules:
            rprint(f"  • {rule.pattern!r} -> {rule.replacement!r}")

    rprint("\n[bold]Rate Limiting:[/bold]")
    rprint(f"  Requests/second: {provider.rate_limit.requests_per_second}")
    rprint(f"  Burst limit: {provider.rate_limit.burst_limit}")

    title_patterns = registry.title_patterns_for(provider.name)
    if title_patterns:
        rprint("\n[bold]Top-page title patterns:[/bold]")
        for pattern in title_patterns:
            rprint(f"  • {pattern.pattern}")

    if provider.html_patterns:
        rprint("\n[bold]Top-page HTML patterns:[/bold]")
        for pattern in provider.html_patterns:
            rprint(f"  • {pattern}")

    if provider.seed_urls:
        rprint("\n[bold]Seed URLs:[/bold]")
        for url in provider.seed_urls:
            rprint(f"  • {url}")

    adapter_info = get_adapter_info(provider.adapter)
    if adapter_info:
        rprint("\n[bold]Adapter Info:[/bold]")
        rprint(f"  Name: {adapter_info['name']}")
        rprint(f"  Version: {adapter_info['version']}")
        rprint(f"  Class: {adapter_info['class']}")
    else:
        rprint(f"\n[yellow]Adapter '{provider.adapter}' is not registered[/yellow]")


@providers_app.command("adapters")
def list_provider_adapters() -> None:
    """
    List available adapters.

    Examples:
        affiliate-catalog ingest providers adapters
    """
    adapters = list_adapters()

    if not adapters:
        rprint("[yellow]No adapters registered[/yellow]")
        return

    table = Table(title="Available Adapters")
    table.add_column("Name", style="bold")
    table.add_column("Version")
    table.add_column("Class")

    for adapter_name in adapters:
        info = get_adapter_info(adapter_name)
        if info:
            table.add_row(info["name"], info["version"], info["class"])

    console.print(table)


# Jobs subcommands


@jobs_app.command("status")
def job_status(
    job_id: str = typer.Argument(..., help="Job ID to check"),
) -> None:
    """
    Check the status of a crawl job.

    Examples:
        affiliate-catalog ingest jobs status abc123
    """
    try:
        result = asyncio.run(get_job_status(job_id))
    except Exception as e:
        rprint(f"[red]Error:[/red] Failed to get job status: {e}")
        rprint("\nMake sure Redis is running")
        raise typer.Exit(1)

    if result is None:
        rprint(f"[yellow]Job '{job_id}' not found[/yellow]")
        raise typer.Exit(1)

    rprint(f"\n[bold]Job: {job_id}[/bold]")
    rprint(f"  Status: {result.get('status', 'unknown')}")

    if isinstance(result.get("result"), dict):
        _display_run_summary(result["result"])


# Prices subcommands


@prices_app.command("history")
def price_history(
    source_id: str = typer.Argument(..., help="Provider source id"),
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Only the last N days"),
) -> None:
    """
    Show the daily price history of a provider source.

    Examples:
        affiliate-catalog ingest prices history <source-id> --days 30
    """
    from affiliate_catalog.db.engine import get_session
    from affiliate_catalog.ingestion.price_history import PriceHistoryRecorder

    with get_session() as session:
        points = PriceHistoryRecorder(session).get_price_history(source_id, days=days)

    if not points:
        rprint(f"[yellow]No price history for source '{source_id}'[/yellow]")
        return

    table = Table(title=f"Price History: {source_id}")
    table.add_column("Date", style="bold")
    table.add_column("Price", justify="right")
    table.add_column("Sale Price", justify="right")
    table.add_column("Discount", justify="right")

    for point in points:
        table.add_row(
            point.recorded_on.isoformat(),
            f"¥{point.price:,}",
            f"¥{point.sale_price:,}" if point.sale_price is not None else "-",
            f"{point.discount_percent}%" if point.discount_percent is not None else "-",
        )

    console.print(table)


@prices_app.command("stats")
def price_stats(
    source_id: str = typer.Argument(..., help="Provider source id (or product id with --product)"),
    product: bool = typer.Option(
        False, "--product", help="Aggregate across every source of a product"
    ),
) -> None:
    """
    Show price statistics for a provider source or a product.

    Examples:
        affiliate-catalog ingest prices stats <source-id>
        affiliate-catalog ingest prices stats <product-id> --product
    """
    from affiliate_catalog.db.engine import get_session
    from affiliate_catalog.ingestion.price_history import PriceHistoryRecorder

    with get_session() as session:
        recorder = PriceHistoryRecorder(session)
        if product:
            stats = recorder.get_product_price_stats(source_id)
        else:
            stats = recorder.get_price_stats(source_id)

    if stats is None:
        rprint(f"[yellow]No price data for '{source_id}'[/yellow]")
        return

    rprint(f"\n[bold]Price statistics: {source_id}[/bold]")
    rprint(f"  Lowest: ¥{stats.lowest_price:,}")
    rprint(f"  Highest: ¥{stats.highest_price:,}")
    rprint(f"  Average: ¥{stats.average_price:,}")
    rprint(f"  Max discount: {stats.max_discount_percent}%")
    rprint(f"  Records: {stats.record_count}")
    rprint(f"  Range: {stats.first_recorded} .. {stats.last_recorded}")


def _display_run_summary(summary: dict) -> None:
    """Display a run summary in a formatted table."""
    status = summary.get("status", "unknown")
    status_color = {
        "completed": "green",
        "running": "blue",
        "pending": "yellow",
        "timed_out": "yellow",
        "failed": "red",
    }.get(status, "white")

    rprint("\n[bold]Results:[/bold]")
    rprint(f"  Run: {summary.get('run_id', 'N/A')}")
    rprint(f"  Status: [{status_color}]{status}[/{status_color}]")

    if summary.get("duration_seconds"):
        rprint(f"  Duration: {summary['duration_seconds']:.1f}s")

    if summary.get("error"):
        rprint(f"  [red]Error:[/red] {summary['error']}")

    providers = summary.get("providers", [])
    if not providers:
        return

    table = Table(title="Providers")
    table.add_column("Provider", style="bold")
    table.add_column("Status")
    table.add_column("Fetched", justify="right")
    table.add_column("Accepted", justify="right")
    table.add_column("Rejected", justify="right")
    table.add_column("Errored", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Prices", justify="right")

    for stats in providers:
        table.add_row(
            stats["provider_name"],
            stats["status"],
            str(stats["fetched"]),
            str(stats["accepted"]),
            str(stats["rejected"]),
            str(stats["errored"]),
            str(stats["new_products"]),
            str(stats["prices_recorded"]),
        )

    console.print(table)

    for stats in providers:
        reasons = stats.get("rejection_reasons") or {}
        if reasons:
            rprint(f"\n[bold]{stats['provider_name']} rejections:[/bold]")
            for reason, count in sorted(reasons.items()):
                rprint(f"  • {reason}: {count}")
        if stats.get("error"):
            rprint(f"\n[red]{stats['provider_name']}:[/red] {stats['error']}")
