"""
Performer Normalizer Module
===========================

Cleans scraped performer names and rejects strings that are not names at
all (brand names, tags, dates, counts, leaked product codes, mojibake).

Everything here is pure and total: malformed input is normalized to "" and
judged invalid rather than raising, because it runs inline in crawl loops.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

# Hiragana, katakana, CJK ideographs (incl. extension A), half-width katakana
_CJK = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uff66-\uff9f]")
_WHITESPACE = re.compile(r"\s+")

_WRAPPED = re.compile(r"^[【\[「『](.+)[】\]」』]$")
_TRAILING_BRACKET = re.compile(r"\s*[【\[「『][^】\]」』]*[】\]」』]\s*$")
_READING = re.compile(r"[（(][^）)]*[）)]")

_NUMERIC = re.compile(r"^[\d\s.,，]+$")
_CODE_SHAPE = re.compile(r"^\d*[A-Za-z]+[-_]?\d+$")
_PLACEHOLDER_RUN = re.compile(r"^[-‐－―—_.・･。\s]+$")
_DATE_LIKE = re.compile(
    r"^(\d{4}年(\d{1,2}月)?(\d{1,2}日)?"
    r"|\d{1,2}月\d{1,2}日"
    r"|\d{4}[/\-.]\d{1,2}([/\-.]\d{1,2})?)$"
)
_UNIT_SUFFIX = re.compile(
    r"^[\d,.，]+\s*(枚|分|円|本|gb|mb|min|mins|秒|時間|歳|cm|kg|件|話|pt|ポイント|%|％)$",
    re.I,
)
_PRICE_LIKE = re.compile(r"^[¥￥$][\d,.]+$")
_HTML_TAG = re.compile(r"<[^>]+>")
_URL = re.compile(r"https?://|www\.", re.I)
_LEADING_ARROW = re.compile(r"^[→←↑↓⇒⇐➡]")


class PerformerValidator:
    """
    Normalizes and validates performer names.

    Handles:
    - Whitespace: removed entirely inside Japanese-script names,
      collapsed to single spaces inside Latin-script names
    - Reading annotations: "山田花子（やまだはなこ）" -> "山田花子"
    - Deny-listed placeholders, brands, role and genre words
    - Date, count, duration and price tokens
    - Strings equal to the product code they were scraped from
    """

    MIN_LENGTH = 2
    MAX_LENGTH = 50

    # Exact matches (case-insensitive) that are never performer names
    DENY_TERMS: frozenset[str] = frozenset(
        {
            # Provider and platform brands
            "fanza",
            "dmm",
            "mgs",
            "mgs動画",
            "duga",
            "sokmil",
            "ソクミル",
            "fc2",
            "fc2動画",
            "b10f",
            "japanska",
            "caribbeancom",
            "カリビアンコム",
            "1pondo",
            "一本道",
            "heyzo",
            "tokyo-hot",
            "tokyohot",
            "東京熱",
            "dti",
            "prestige",
            "プレステージ",
            # Unknown / placeholder
            "unknown",
            "n/a",
            "na",
            "none",
            "null",
            "undefined",
            "不明",
            "未定",
            "なし",
            "名無し",
            # Generic role words
            "performer",
            "performers",
            "actress",
            "actor",
            "amateur",
            "model",
            "出演者",
            "女優",
            "av女優",
            "男優",
            "モデル",
            "他",
            "その他",
            "複数",
            "多数",
            "ナンパ",
            # Genre and tag words
            "巨乳",
            "美少女",
            "人妻",
            "熟女",
            "痴漢",
            "ハメ撮り",
            "中出し",
            "ギャル",
            "単体作品",
            "独占配信",
            "ベスト・総集編",
            "オムニバス",
            "4k",
            "hd",
            "vr",
        }
    )

    # Substrings that only appear in navigation or genre text
    DENY_SUBSTRINGS: tuple[str, ...] = (
        "素人",
        "企画",
        "サンプル",
        "動画",
        "ランキング",
        "新着",
        "ジャンル",
        "カテゴリ",
        "タグ",
        "無料",
        "高画質",
        "一覧",
        "検索",
    )

    def normalize(self, raw: Any) -> str:
        """
        Normalize a raw performer name.

        Args:
            raw: Scraped name (non-strings normalize to "")

        Returns:
            Cleaned name, possibly empty
        """
        if not isinstance(raw, str):
            return ""

        name = raw.strip()
        wrapped = _WRAPPED.match(name)
        if wrapped:
            name = wrapped.group(1).strip()
        else:
            name = _TRAILING_BRACKET.sub("", name)

        name = _READING.sub("", name, count=1)

        if _CJK.search(name):
            # Mixed-script names take this branch too
            name = _WHITESPACE.sub("", name)
        else:
            name = _WHITESPACE.sub(" ", name)

        return name.strip()

    def is_valid(self, name: Any) -> bool:
        """
        Check whether a (normalized) string is plausibly a performer name.

        Args:
            name: Candidate name

        Returns:
            True if the name passes every rule
        """
        if not isinstance(name, str):
            return False

        candidate = name.strip()
        if len(candidate) < self.MIN_LENGTH or len(candidate) > self.MAX_LENGTH:
            return False

        if candidate.casefold() in self.DENY_TERMS:
            return False
        if any(term in candidate for term in self.DENY_SUBSTRINGS):
            return False

        for pattern in (
            _NUMERIC,
            _CODE_SHAPE,
            _PLACEHOLDER_RUN,
            _DATE_LIKE,
            _UNIT_SUFFIX,
            _PRICE_LIKE,
        ):
            if pattern.match(candidate):
                return False

        if _HTML_TAG.search(candidate) or _URL.search(candidate):
            return False
        if _LEADING_ARROW.match(candidate):
            return False

        return True

    def is_valid_for_product(self, name: Any, product_code: str | None) -> bool:
        """
        Validate a name in the context of the product it was scraped from.

        Rejects names identical (case-insensitive) to the product code, which
        happens when a crawler mis-extracts the code into the performer field.
        """
        if not self.is_valid(name):
            return False
        if product_code and name.strip().casefold() == product_code.strip().casefold():
            return False
        return True

    def partition(
        self, names: Iterable[Any], product_code: str | None = None
    ) -> tuple[list[str], list[str]]:
        """
        Normalize a batch of names and split them into valid and rejected.

        Valid names are de-duplicated preserving first-seen order.

        Returns:
            Tuple of (valid normalized names, rejected raw strings)
        """
        valid: list[str] = []
        rejected: list[str] = []
        seen: set[str] = set()

        for raw in names:
            normalized = self.normalize(raw)
            if not self.is_valid_for_product(normalized, product_code):
                rejected.append(raw if isinstance(raw, str) else repr(raw))
                continue
            if normalized not in seen:
                seen.add(normalized)
                valid.append(normalized)

        return valid, rejected

    def clean_names(self, names: Iterable[Any], product_code: str | None = None) -> list[str]:
        """Normalize, validate and de-duplicate a batch of names."""
        valid, _ = self.partition(names, product_code)
        return valid
