"""
Provider Fetching
=================

Rate-limited HTTP fetching with retries, shared by the provider adapters.
Every result carries the URL the request finally landed on, so the
pipeline can spot redirects to top, listing or age-gate pages before any
parsing happens.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from affiliate_catalog.ingestion.registry import ProviderConfig

logger = logging.getLogger(__name__)

# Throttling and server-side failures; other statuses are final
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass
class FetchResult:
    """Outcome of one fetch, successful or not."""

    url: str
    final_url: str
    content: bytes
    mime_type: str
    status_code: int
    fetched_at: datetime
    error: str | None = None

    @classmethod
    def failed(cls, url: str, error: str, fetched_at: datetime) -> FetchResult:
        """A fetch that never produced a usable response."""
        return cls(
            url=url,
            final_url=url,
            content=b"",
            mime_type="",
            status_code=0,
            fetched_at=fetched_at,
            error=error,
        )

    @property
    def success(self) -> bool:
        return self.error is None and 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        """Content decoded as UTF-8 (undecodable bytes replaced)."""
        return self.content.decode("utf-8", errors="replace")


class TokenBucket:
    """
    Per-provider request throttle.

    Up to burst_limit requests go out immediately; after that callers are
    spaced 1 / requests_per_second apart.
    """

    def __init__(self, requests_per_second: float, burst_limit: int) -> None:
        self.requests_per_second = requests_per_second
        self.burst_limit = burst_limit
        self.tokens = float(burst_limit)
        self._refilled_at = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        gained = (now - self._refilled_at) * self.requests_per_second
        self.tokens = min(float(self.burst_limit), self.tokens + gained)
        self._refilled_at = now

    async def acquire(self) -> None:
        """Take one token, sleeping until one is available."""
        async with self._lock:
            self._refill()
            shortfall = 1.0 - self.tokens
            if shortfall > 0:
                await asyncio.sleep(shortfall / self.requests_per_second)
                self._refill()
            self.tokens = max(0.0, self.tokens - 1.0)


class Crawler:
    """
    HTTP fetcher with per-provider rate limiting and retries.

    Features:
    - Per-provider token bucket (the explicit delay between requests)
    - Exponential backoff on timeouts, transport errors and 429/5xx
    - Final URL tracking for redirect detection

    Use as an async context manager to share one connection pool per run.
    """

    def __init__(
        self,
        user_agent: str = "AffiliateCatalog/0.1",
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._rate_limiters: dict[str, TokenBucket] = {}

    async def __aenter__(self) -> Crawler:
        self._client = self._build_client()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
            transport=self._transport,
        )

    async def aclose(self) -> None:
        """Close the shared HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_rate_limiter(self, provider: ProviderConfig) -> TokenBucket:
        limiter = self._rate_limiters.get(provider.name)
        if limiter is None:
            limit = provider.rate_limit
            limiter = TokenBucket(limit.requests_per_second, limit.burst_limit)
            self._rate_limiters[provider.name] = limiter
        return limiter

    @staticmethod
    def _to_result(url: str, response: httpx.Response, fetched_at: datetime) -> FetchResult:
        return FetchResult(
            url=url,
            final_url=str(response.url),
            content=response.content,
            mime_type=response.headers.get("content-type", "").split(";")[0].strip(),
            status_code=response.status_code,
            fetched_at=fetched_at,
            error=None if response.is_success else f"HTTP {response.status_code}",
        )

    async def fetch(self, url: str, provider: ProviderConfig) -> FetchResult:
        """
        Fetch a URL under the provider's rate limit, retrying transient failures.

        Non-retryable HTTP errors (404 and the like) come back as a result
        with the real status code. When every attempt fails the result has
        status_code 0 and the last error seen.
        """
        fetched_at = datetime.now(UTC)
        if self._client is None:
            self._client = self._build_client()
        limiter = self._get_rate_limiter(provider)

        error = "Unknown error"
        for attempt in range(1, self.max_retries + 1):
            # Retries count against the provider's rate limit too
            await limiter.acquire()
            try:
                response = await self._client.get(url)
            except httpx.TimeoutException:
                error = f"Timeout after {self.timeout}s"
            except httpx.HTTPError as e:
                error = str(e) or e.__class__.__name__
            else:
                if response.status_code not in RETRYABLE_STATUSES:
                    return self._to_result(url, response, fetched_at)
                error = f"HTTP {response.status_code}"

            logger.warning(f"{error} fetching {url} (attempt {attempt}/{self.max_retries})")
            if attempt < self.max_retries:
                await asyncio.sleep(self.backoff_base * 2 ** (attempt - 1))

        return FetchResult.failed(url, error, fetched_at)
