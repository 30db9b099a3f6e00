"""Pydantic v2 models for the ingestion pipeline.

These models describe data moving through the pipeline rather than rows:
- RawExtraction (what a provider crawler hands over for one crawled item)
- PriceObservation (one price sighting to be recorded)
- PriceHistoryPoint, PriceStats (read-side price history views)
"""

import math
import re
from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


_PRICE_NOISE = re.compile(r"[¥￥$,，円\s]|税込|税抜|JPY", re.I)


def parse_price(value: Any) -> int | None:
    """
    Coerce a scraped price into integer yen.

    Accepts ints, floats and strings such as "¥1,980" or "1980円".
    Returns None for anything that does not contain a usable number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        return int(value) if math.isfinite(value) and value >= 0 else None

    cleaned = _PRICE_NOISE.sub("", str(value))
    if not cleaned:
        return None
    try:
        amount = float(cleaned)
    except ValueError:
        return None
    # float() also accepts "inf", "1e999" and "nan"
    return int(amount) if math.isfinite(amount) and amount >= 0 else None


_JP_DATE = re.compile(r"(\d{4})年\s*(\d{1,2})月\s*(\d{1,2})日")
_NUMERIC_DATE = re.compile(r"(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})")


def parse_release_date(value: Any) -> date | None:
    """
    Parse a release date in the formats providers actually emit.

    Supports "2024年1月15日", "2024/01/15", "2024-01-15" and "2024.01.15".
    Returns None when the value cannot be read as a real calendar date.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    match = _JP_DATE.search(text) or _NUMERIC_DATE.search(text)
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


# ============================================================================
# Extraction
# ============================================================================


class RawExtraction(BaseModel):
    """
    Best-effort record produced by a provider crawler for one item.

    Ephemeral: consumed by the pipeline immediately and never persisted as-is.
    """

    provider_name: str
    provider_code: str
    title: str = ""
    description: str = ""
    price: int | None = None
    sale_price: int | None = None
    discount_percent: int | None = None
    performer_names: list[str] = Field(default_factory=list)
    thumbnail_url: str | None = None
    sample_video_urls: list[str] = Field(default_factory=list)
    release_date: date | None = None
    duration_minutes: int | None = None
    title_translations: dict[str, str] = Field(default_factory=dict)
    affiliate_url: str | None = None
    requested_url: str | None = None
    final_url: str | None = None

    @field_validator("provider_name", "provider_code")
    @classmethod
    def identifier_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("provider_name and provider_code cannot be empty")
        return v.strip()

    @field_validator("title", "description", mode="before")
    @classmethod
    def text_or_empty(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("price", "sale_price", mode="before")
    @classmethod
    def coerce_price(cls, v: Any) -> int | None:
        return parse_price(v)

    @field_validator("discount_percent", mode="before")
    @classmethod
    def coerce_discount(cls, v: Any) -> int | None:
        if v is None or v == "":
            return None
        try:
            pct = float(str(v).replace("%", "").replace("％", "").strip())
        except ValueError:
            return None
        return int(pct) if 0 <= pct <= 100 else None

    @field_validator("release_date", mode="before")
    @classmethod
    def coerce_release_date(cls, v: Any) -> date | None:
        return parse_release_date(v)

    @field_validator("performer_names", mode="before")
    @classmethod
    def performer_list(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(name) for name in v if name is not None]

    @property
    def effective_price(self) -> int | None:
        """The price a buyer would pay right now."""
        return self.sale_price if self.sale_price is not None else self.price


# ============================================================================
# Price History
# ============================================================================


class PriceObservation(BaseModel):
    """A single price sighting for a provider source."""

    provider_source_id: str
    price: int
    sale_price: int | None = None
    discount_percent: int | None = None

    @field_validator("price")
    @classmethod
    def price_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("price cannot be negative")
        return v


class PriceHistoryPoint(BaseModel):
    """One day of recorded price history."""

    recorded_on: date
    price: int
    sale_price: int | None = None
    discount_percent: int | None = None
    recorded_at: datetime = Field(default_factory=_utc_now)


class PriceStats(BaseModel):
    """
    Aggregate view over a provider source's price history.

    lowest_price prefers the lowest sale price ever seen and falls back to
    the lowest list price when no sale was recorded.
    """

    lowest_price: int
    highest_price: int
    average_price: int
    max_discount_percent: int
    record_count: int
    first_recorded: date
    last_recorded: date
