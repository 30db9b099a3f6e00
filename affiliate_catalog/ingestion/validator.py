"""
Extraction Validator Module
===========================

Rejects extractions that technically succeeded (HTTP 200) but captured a
storefront top page, listing, search result or age gate instead of a
product page.

Checks are pure pattern matching against the registry's pattern tables.
Decision order, first match wins:
1. Placeholder title (blank, or just "{provider}-{code}")
2. Top-page title signature
3. Title shorter than the minimum length
4. Boilerplate storefront description
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from affiliate_catalog.core.enums import RedirectType, RejectionReason
from affiliate_catalog.core.schema import RawExtraction
from affiliate_catalog.ingestion.identifiers import IdentifierNormalizer
from affiliate_catalog.ingestion.registry import ProviderRegistry

logger = logging.getLogger(__name__)

_HTML_TAG = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")

# Signs of a real product page: a price or a performer credit
_PRODUCT_MARKERS = re.compile(r"[¥￥][\d,]+|円|出演")


def sanitize_text(value: str | None) -> str:
    """Strip HTML tags and collapse whitespace."""
    if not value:
        return ""
    text = _HTML_TAG.sub("", value)
    return _WHITESPACE.sub(" ", text).strip()


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one extraction."""

    accepted: bool
    reason: RejectionReason | None = None
    detail: str = ""

    @classmethod
    def accept(cls) -> ValidationResult:
        return cls(accepted=True)

    @classmethod
    def reject(cls, reason: RejectionReason, detail: str = "") -> ValidationResult:
        return cls(accepted=False, reason=reason, detail=detail)


@dataclass(frozen=True)
class RedirectCheck:
    """Classification of a completed navigation."""

    is_redirected: bool
    redirect_type: RedirectType | None = None


class ExtractionValidator:
    """
    Validates extractions and navigations for a set of providers.

    Example:
        validator = ExtractionValidator(registry, identifiers)
        result = validator.validate(extraction)
        if not result.accepted:
            logger.info(f"Rejected: {result.reason.value}")
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        identifiers: IdentifierNormalizer,
        min_title_length: int = 5,
    ) -> None:
        self.registry = registry
        self.identifiers = identifiers
        self.min_title_length = min_title_length

    def validate(self, extraction: RawExtraction) -> ValidationResult:
        """
        Decide whether an extraction describes a real product page.

        Args:
            extraction: Extraction to validate

        Returns:
            ValidationResult; rejections carry a reason and detail
        """
        provider = extraction.provider_name
        title = sanitize_text(extraction.title)
        description = sanitize_text(extraction.description)

        if self._is_placeholder_title(title, extraction):
            return ValidationResult.reject(
                RejectionReason.PLACEHOLDER_TITLE, f"placeholder title: {title!r}"
            )

        for pattern in self.registry.title_patterns_for(provider):
            if pattern.search(title):
                return ValidationResult.reject(
                    RejectionReason.TOP_PAGE_TITLE, f"top-page title: {title}"
                )

        if len(title) < self.min_title_length:
            return ValidationResult.reject(
                RejectionReason.TITLE_TOO_SHORT, f"title too short: {title}"
            )

        if description:
            for pattern in self.registry.description_patterns_for(provider):
                if pattern.search(description):
                    return ValidationResult.reject(
                        RejectionReason.BOILERPLATE_DESCRIPTION,
                        f"boilerplate description matched {pattern.pattern!r}",
                    )

        return ValidationResult.accept()

    def _is_placeholder_title(self, title: str, extraction: RawExtraction) -> bool:
        """Blank, or nothing but the provider/family name and the code."""
        if not title:
            return True

        code = extraction.provider_code
        family = self.registry.family_for_provider(extraction.provider_name)
        placeholders = {
            f"{extraction.provider_name}-{code}",
            f"{family}-{code}",
            code,
        }
        key = self.identifiers.search_key(title)
        return any(key == self.identifiers.search_key(p) for p in placeholders)

    def detect_redirect(self, requested_url: str, final_url: str) -> RedirectCheck:
        """
        Classify a navigation from requested_url that ended at final_url.

        Redirected when the host changed, or when the final path looks like a
        top, listing, search, age-check or confirmation page.
        """
        try:
            requested = urlsplit(requested_url)
            final = urlsplit(final_url)
            requested_host = (requested.hostname or "").lower()
            final_host = (final.hostname or "").lower()
        except ValueError:
            return RedirectCheck(True, RedirectType.INVALID_URL)

        if not requested_host or not final_host:
            return RedirectCheck(True, RedirectType.INVALID_URL)

        if requested_host != final_host:
            return RedirectCheck(True, RedirectType.HOST_CHANGED)

        path = final.path or "/"
        for pattern in self.registry.redirect_path_patterns():
            if pattern.search(path):
                return RedirectCheck(True, RedirectType.TO_TOP_PAGE)

        return RedirectCheck(False)

    def is_top_page_html(self, html: str, provider_name: str) -> bool:
        """
        Check raw page text for an age gate or a provider's top page.

        Age-gate wording alone is not enough, since product pages often carry
        it in the footer; the page must also lack any price or performer text.
        """
        if not html:
            return False

        for pattern in self.registry.age_gate_patterns():
            if pattern.search(html) and not _PRODUCT_MARKERS.search(html):
                return True

        return any(p.search(html) for p in self.registry.html_patterns_for(provider_name))
