"""
Notifications Module
====================

Fire-and-forget delivery of run summaries. A sink may fail; the
orchestrator logs the failure and the run result is unaffected.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from affiliate_catalog.ingestion.orchestrator import RunSummary
    from affiliate_catalog.ingestion.registry import GlobalConfig

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Destination for run summaries."""

    @abstractmethod
    async def notify(self, summary: RunSummary) -> None:
        """Deliver a run summary."""
        pass


class LogNotifier(NotificationSink):
    """Writes the run summary to the log."""

    async def notify(self, summary: RunSummary) -> None:
        level = logging.ERROR if summary.error else logging.INFO
        logger.log(
            level,
            f"Crawl run {summary.run_id} {summary.status.value}: "
            f"fetched={summary.total_fetched} accepted={summary.total_accepted} "
            f"rejected={summary.total_rejected} errored={summary.total_errored}",
        )
        for stats in summary.providers:
            logger.log(
                level,
                f"  {stats.provider_name} [{stats.status.value}]: "
                f"fetched={stats.fetched} accepted={stats.accepted} "
                f"rejected={stats.rejected} errored={stats.errored} "
                f"new={stats.new_products} prices={stats.prices_recorded}",
            )


class WebhookNotifier(NotificationSink):
    """POSTs the run summary as JSON to a webhook URL."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def notify(self, summary: RunSummary) -> None:
        payload = json.dumps(summary.to_dict(), ensure_ascii=False)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                self.url,
                content=payload.encode("utf-8"),
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()


def build_notifier(global_config: GlobalConfig) -> NotificationSink:
    """Webhook notifier when a URL is configured, log notifier otherwise."""
    if global_config.notification_webhook_url:
        return WebhookNotifier(
            global_config.notification_webhook_url,
            timeout=global_config.notification_timeout,
        )
    return LogNotifier()
