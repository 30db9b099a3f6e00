"""
Sample Adapter Module
=====================

In-memory adapter for exercising the pipeline without network access.
The default feed mixes clean product pages with the bad captures real
crawlers produce: a top-page capture, a redirect, an age gate, a
placeholder title and storefront boilerplate.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from affiliate_catalog.core.schema import RawExtraction
from affiliate_catalog.ingestion.adapters.base import BaseAdapter
from affiliate_catalog.ingestion.crawler import FetchResult

if TYPE_CHECKING:
    from affiliate_catalog.ingestion.crawler import Crawler
    from affiliate_catalog.ingestion.registry import ProviderConfig


SAMPLE_ITEMS: list[dict[str, Any]] = [
    {
        "code": "ssis00865",
        "title": "新人NO.1 STYLE 圧倒的透明感 デビュー作品",
        "description": "専属女優の待望のデビュー作。",
        "price": "¥2,980",
        "sale_price": "1,980円",
        "discount_percent": "33%",
        "performers": ["三上　悠亜", "FANZA", "SSIS-865"],
        "release_date": "2023年9月19日",
        "duration_minutes": 150,
    },
    {
        # Same release under another spelling of the code
        "code": "SSIS-865",
        "title": "新人NO.1 STYLE 圧倒的透明感 デビュー作品",
        "price": 2780,
        "performers": ["三上悠亜（みかみゆあ）"],
    },
    {
        "code": "mide1",
        "title": "Summer Memories Vol.1",
        "price": 1480,
        "performers": ["Maria  Ozawa", "116枚"],
        "release_date": "2024/07/01",
    },
    {
        "code": "fc2top",
        "title": "FC2動画アダルト",
        "price": 500,
    },
    {
        "code": "abc00123",
        "title": "Redirected Product Title",
        "price": 980,
        "final_path": "/list.html",
    },
    {
        "code": "agegate",
        "html": "<html><body><h1>年齢確認</h1><p>あなたは18歳以上ですか？</p></body></html>",
    },
    {
        "code": "xyz999",
        "title": "sample-xyz999",
        "price": 980,
    },
    {
        "code": "boiler01",
        "title": "Storefront Capture Title",
        "description": "人気のアダルトビデオを高画質・低価格で配信中",
        "price": 980,
    },
]


class SampleAdapter(BaseAdapter):
    """
    Adapter that serves a fixed in-memory feed.

    Useful for:
    - Running the full pipeline without network access
    - Demonstrating every rejection path end to end
    """

    ADAPTER_NAME = "sample"
    ADAPTER_VERSION = "1.0.0"

    BASE_URL = "https://sample.catalog.local/products"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        provider_name: str | None = None,
    ) -> None:
        super().__init__(config, provider_name)
        self._items = SAMPLE_ITEMS.copy()

        # Allow a custom feed via config
        if config and "items" in config:
            self._items = config["items"]

    def discover_urls(self, seed_urls: list[str] | None = None) -> list[str]:
        """
        Return URLs for all sample items.

        Each item gets a URL like: https://sample.catalog.local/products/0
        """
        return [f"{self.BASE_URL}/{i}" for i in range(len(self._items))]

    def _item_for(self, url: str) -> dict[str, Any] | None:
        try:
            idx = int(url.rstrip("/").split("/")[-1])
        except ValueError:
            return None
        if 0 <= idx < len(self._items):
            return self._items[idx]
        return None

    async def fetch(self, url: str, crawler: Crawler, provider: ProviderConfig) -> FetchResult:
        """Serve the item locally instead of going through the network."""
        fetched_at = datetime.now(UTC)
        item = self._item_for(url)
        if item is None:
            return FetchResult(
                url=url,
                final_url=url,
                content=b"",
                mime_type="",
                status_code=404,
                fetched_at=fetched_at,
                error="HTTP 404",
            )

        final_url = url
        if item.get("final_path"):
            final_url = "https://sample.catalog.local" + item["final_path"]

        if item.get("html"):
            content = item["html"].encode("utf-8")
            mime_type = "text/html"
        else:
            content = json.dumps(item, ensure_ascii=False).encode("utf-8")
            mime_type = "application/json"

        return FetchResult(
            url=url,
            final_url=final_url,
            content=content,
            mime_type=mime_type,
            status_code=200,
            fetched_at=fetched_at,
        )

    def extract_listing(
        self,
        content: bytes,
        url: str,
        final_url: str,
    ) -> RawExtraction | None:
        """Build an extraction from a JSON sample item."""
        try:
            item = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        if not isinstance(item, dict) or not item.get("code"):
            return None

        try:
            return RawExtraction(
                provider_name=self.provider_name,
                provider_code=item["code"],
                title=item.get("title", ""),
                description=item.get("description", ""),
                price=item.get("price"),
                sale_price=item.get("sale_price"),
                discount_percent=item.get("discount_percent"),
                performer_names=item.get("performers", []),
                thumbnail_url=item.get("thumbnail_url"),
                release_date=item.get("release_date"),
                duration_minutes=item.get("duration_minutes"),
                affiliate_url=f"{url}?af_id=sample",
                requested_url=url,
                final_url=final_url,
            )
        except ValidationError:
            return None
