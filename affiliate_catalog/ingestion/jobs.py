"""
Background Jobs Module
======================

Defines arq tasks for running crawls from a scheduled job runner.
Uses Redis as the job queue backend.
"""

from __future__ import annotations

import logging
import os
from typing import Any
from uuid import uuid4

from arq import create_pool, cron
from arq.connections import RedisSettings
from arq.jobs import Job, JobStatus

from affiliate_catalog.core.enums import RunStatus
from affiliate_catalog.ingestion.errors import ProviderNotFoundError
from affiliate_catalog.ingestion.orchestrator import CrawlOrchestrator, RunSummary
from affiliate_catalog.ingestion.registry import get_default_registry

logger = logging.getLogger(__name__)

# Hour of day (worker local time) for the scheduled crawl
CRAWL_HOUR = int(os.environ.get("CRAWL_HOUR", "3"))


def get_redis_settings() -> RedisSettings:
    """
    Redis settings for the job queue.

    REDIS_URL takes precedence; otherwise REDIS_HOST, REDIS_PORT and
    REDIS_DB are read.
    """
    dsn = os.environ.get("REDIS_URL")
    if dsn:
        return RedisSettings.from_dsn(dsn)
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


async def run_crawl(
    ctx: dict[str, Any],
    provider_names: list[str] | None = None,
    max_items: int | None = None,
) -> dict[str, Any]:
    """
    Main crawl task.

    Args:
        ctx: arq context (contains Redis connection)
        provider_names: Providers to crawl (default: all enabled)
        max_items: Optional limit on URLs per provider

    Returns:
        RunSummary as dictionary
    """
    summary = await run_crawl_sync(provider_names, max_items)
    job_id = ctx.get("job_id")
    if job_id:
        logger.info(f"Job {job_id} finished crawl run {summary.run_id} ({summary.status.value})")
    return summary.to_dict()


async def scheduled_crawl(ctx: dict[str, Any]) -> dict[str, Any]:
    """Nightly crawl of every enabled provider."""
    return await run_crawl(ctx)


async def run_crawl_sync(
    provider_names: list[str] | None = None,
    max_items: int | None = None,
) -> RunSummary:
    """
    Run a crawl in-process (without arq).

    Useful for CLI commands with --sync flag. An unknown provider yields a
    failed summary instead of raising.
    """
    orchestrator = CrawlOrchestrator(get_default_registry())
    try:
        return await orchestrator.run(provider_names, max_items)
    except ProviderNotFoundError as e:
        logger.error(str(e))
        return RunSummary(run_id=str(uuid4()), status=RunStatus.FAILED, error=str(e))


async def enqueue_crawl(
    provider_names: list[str] | None = None,
    max_items: int | None = None,
) -> str:
    """
    Enqueue a crawl job for async processing.

    Returns:
        Job ID
    """
    redis = await create_pool(get_redis_settings())
    job = await redis.enqueue_job("run_crawl", provider_names, max_items)
    await redis.close()
    return job.job_id


async def get_job_status(job_id: str) -> dict[str, Any] | None:
    """
    Get the status of a crawl job.

    Args:
        job_id: Job ID to look up

    Returns:
        Job info dict, or None if not found
    """
    redis = await create_pool(get_redis_settings())
    try:
        job = Job(job_id, redis)
        status = await job.status()
        if status == JobStatus.not_found:
            return None

        result = None
        if status == JobStatus.complete:
            info = await job.result_info()
            result = info.result if info else None

        return {
            "job_id": job_id,
            "status": status.value,
            "result": result,
        }
    finally:
        await redis.close()


class WorkerSettings:
    """arq worker settings."""

    functions = [run_crawl]
    cron_jobs = [cron(scheduled_crawl, hour=CRAWL_HOUR, minute=0)]
    redis_settings = get_redis_settings()
    max_jobs = 1  # providers are crawled one at a time
    job_timeout = 6 * 3600
    keep_result = 86400  # 24 hours
