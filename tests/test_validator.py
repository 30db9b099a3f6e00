"""Tests for the extraction validator and redirect detection."""

import pytest

from affiliate_catalog.core.enums import RedirectType, RejectionReason
from affiliate_catalog.core.schema import RawExtraction
from affiliate_catalog.ingestion.identifiers import IdentifierNormalizer
from affiliate_catalog.ingestion.registry import ProviderRegistry
from affiliate_catalog.ingestion.validator import ExtractionValidator, sanitize_text


@pytest.fixture
def validator(registry: ProviderRegistry, identifiers: IdentifierNormalizer) -> ExtractionValidator:
    return ExtractionValidator(registry, identifiers, min_title_length=5)


def _extraction(**overrides) -> RawExtraction:
    data = {
        "provider_name": "fanza",
        "provider_code": "ssis00865",
        "title": "新人NO.1 STYLE 圧倒的透明感 デビュー",
        "description": "専属女優のデビュー作。",
    }
    data.update(overrides)
    return RawExtraction(**data)


class TestSanitizeText:
    """Tests for sanitize_text."""

    def test_strips_tags_and_collapses_whitespace(self) -> None:
        """Test HTML removal and whitespace collapsing."""
        assert sanitize_text("<b>新作</b>\n  タイトル ") == "新作 タイトル"

    def test_empty(self) -> None:
        """Test empty and None input."""
        assert sanitize_text(None) == ""
        assert sanitize_text("") == ""


class TestValidate:
    """Tests for ExtractionValidator.validate."""

    def test_accepts_product_page(self, validator: ExtractionValidator) -> None:
        """Test that a well-formed extraction is accepted."""
        result = validator.validate(_extraction())
        assert result.accepted is True
        assert result.reason is None

    @pytest.mark.parametrize("title", ["", "   ", "fanza-ssis00865", "FANZA-SSIS00865", "ssis00865", "dvd_label-ssis00865"])
    def test_placeholder_titles(self, validator: ExtractionValidator, title: str) -> None:
        """Test blank titles and provider-code placeholders."""
        result = validator.validate(_extraction(title=title))
        assert result.accepted is False
        assert result.reason == RejectionReason.PLACEHOLDER_TITLE

    def test_global_top_page_title(self, validator: ExtractionValidator) -> None:
        """Test that global top-page titles are rejected for any provider."""
        for provider in ("fanza", "sokmil", "unregistered"):
            result = validator.validate(_extraction(provider_name=provider, title="FC2動画アダルト"))
            assert result.reason == RejectionReason.TOP_PAGE_TITLE

    def test_provider_specific_title_pattern(self, validator: ExtractionValidator) -> None:
        """Test that provider patterns only apply to their provider."""
        sokmil = validator.validate(
            _extraction(provider_name="sokmil", provider_code="270351", title="ソクミル-270351")
        )
        assert sokmil.reason == RejectionReason.TOP_PAGE_TITLE

        fanza = validator.validate(_extraction(title="ソクミル-270351"))
        assert fanza.accepted is True

    def test_title_too_short(self, validator: ExtractionValidator) -> None:
        """Test the minimum title length."""
        result = validator.validate(_extraction(title="abcd"))
        assert result.reason == RejectionReason.TITLE_TOO_SHORT

    def test_title_length_counts_sanitized_text(self, validator: ExtractionValidator) -> None:
        """Test that markup does not count toward the title length."""
        result = validator.validate(_extraction(title="<span>abc</span>"))
        assert result.reason == RejectionReason.TITLE_TOO_SHORT

    def test_boilerplate_description(self, validator: ExtractionValidator) -> None:
        """Test that storefront boilerplate descriptions are rejected."""
        result = validator.validate(
            _extraction(description="人気のアダルトビデオを高画質・低価格で配信")
        )
        assert result.accepted is False
        assert result.reason == RejectionReason.BOILERPLATE_DESCRIPTION

    def test_placeholder_checked_first(self, validator: ExtractionValidator) -> None:
        """Test the decision order when several rules match."""
        result = validator.validate(
            _extraction(title="fanza-ssis00865", description="18歳未満の閲覧は禁止です")
        )
        assert result.reason == RejectionReason.PLACEHOLDER_TITLE

    def test_rejection_detail(self, validator: ExtractionValidator) -> None:
        """Test that rejections explain themselves."""
        result = validator.validate(_extraction(title="FC2動画アダルト"))
        assert "FC2動画アダルト" in result.detail


class TestDetectRedirect:
    """Tests for ExtractionValidator.detect_redirect."""

    def test_product_page_not_redirected(self, validator: ExtractionValidator) -> None:
        """Test that a product navigation is not flagged."""
        check = validator.detect_redirect(
            "https://www.mgstage.com/product/product_detail/SIRO-1234/",
            "https://www.mgstage.com/product/product_detail/SIRO-1234/",
        )
        assert check.is_redirected is False
        assert check.redirect_type is None

    def test_host_changed(self, validator: ExtractionValidator) -> None:
        """Test that a host change is a redirect."""
        check = validator.detect_redirect(
            "https://www.dmm.co.jp/digital/videoa/-/detail/=/cid=ssis00865/",
            "https://accounts.dmm.co.jp/service/login/",
        )
        assert check.is_redirected is True
        assert check.redirect_type == RedirectType.HOST_CHANGED

    def test_host_comparison_ignores_case(self, validator: ExtractionValidator) -> None:
        """Test that host case does not matter."""
        check = validator.detect_redirect(
            "https://WWW.Sokmil.com/av/_item/item123.htm",
            "https://www.sokmil.com/av/_item/item123.htm",
        )
        assert check.is_redirected is False

    @pytest.mark.parametrize(
        "path",
        ["/", "", "/list.html", "/search?q=abc", "/search/result", "/age_check", "/AgeCheck", "/Confirm"],
    )
    def test_top_page_paths(self, validator: ExtractionValidator, path: str) -> None:
        """Test listing, search, age-check and confirmation paths."""
        check = validator.detect_redirect(
            "https://www.sokmil.com/av/_item/item123.htm",
            f"https://www.sokmil.com{path}",
        )
        assert check.is_redirected is True
        assert check.redirect_type == RedirectType.TO_TOP_PAGE

    @pytest.mark.parametrize("final_url", ["not a url", "http://[::1"])
    def test_invalid_url(self, validator: ExtractionValidator, final_url: str) -> None:
        """Test that unparseable URLs are treated as redirected."""
        check = validator.detect_redirect("https://www.sokmil.com/av/item.htm", final_url)
        assert check.is_redirected is True
        assert check.redirect_type == RedirectType.INVALID_URL


class TestTopPageHtml:
    """Tests for ExtractionValidator.is_top_page_html."""

    def test_age_gate_without_product_info(self, validator: ExtractionValidator) -> None:
        """Test that a bare age gate is detected."""
        html = "<html><h1>年齢確認</h1><p>あなたは18歳以上ですか？</p></html>"
        assert validator.is_top_page_html(html, "fanza") is True

    def test_age_gate_text_on_product_page(self, validator: ExtractionValidator) -> None:
        """Test that footer age-gate text on a product page is not flagged."""
        html = "<html><p>出演: 三上悠亜</p><p>¥1,980</p><footer>18歳以上</footer></html>"
        assert validator.is_top_page_html(html, "fanza") is False

    def test_provider_html_pattern(self, validator: ExtractionValidator) -> None:
        """Test provider-specific top-page markers."""
        html = "<title>MGS動画(成人認証)</title><p>¥1,980</p>"
        assert validator.is_top_page_html(html, "mgs") is True
        assert validator.is_top_page_html(html, "fanza") is False

    def test_empty_html(self, validator: ExtractionValidator) -> None:
        """Test empty input."""
        assert validator.is_top_page_html("", "fanza") is False
