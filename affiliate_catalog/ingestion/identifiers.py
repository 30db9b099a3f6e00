"""
Identifier Normalizer Module
============================

Turns provider-native product codes into the canonical normalized product
id used as the catalog's dedup key, and expands codes into the spellings
people search for.

Examples (cross-provider family):
    ssis00865        -> SSIS-865
    SSIS-865         -> SSIS-865
    h_1234abc00123   -> ABC-123   (studio prefix rewrite rule)
    mide1            -> MIDE-001

Anything that does not parse as a label code falls back to a provider
scoped id, e.g. ("sokmil", "270351") -> "sokmil-270351".
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from affiliate_catalog.ingestion.registry import FamilyConfig

if TYPE_CHECKING:
    from affiliate_catalog.ingestion.registry import ProviderRegistry


# Canonical label code: optional maker digits, letters, then the number
_LABEL_CODE = re.compile(r"^(\d*[a-z]+)(\d+)$")
_NON_ALNUM = re.compile(r"[^a-z0-9]")
_SEARCH_NOISE = re.compile(r"[-_\s]")

# Variation patterns
_LETTERS_DIGITS = re.compile(r"([a-zA-Z]+)(\d+)")
_STANDARD_CODE = re.compile(r"^([a-zA-Z]+)[-_]?(\d+)$")
_FIVE_DIGIT_CODE = re.compile(r"^([a-zA-Z]+)(\d{5})$")
_MAKER_PREFIXED_CODE = re.compile(r"^(\d+)([a-zA-Z]+)[-_]?(\d+)$")
_PPV_CODE = re.compile(r"^(\d+)[-_]?(ppv)(\d+)$", re.I)
_NUMERIC_PAIR_CODE = re.compile(r"^(\d+)_(\d+)$")


class IdentifierNormalizer:
    """
    Normalizes raw product codes per provider family.

    Pure and deterministic: no network or database access, and normalizing
    an already-normalized cross-provider id returns it unchanged.
    """

    # Provider prefixes some systems prepend to codes (e.g. "FANZA-mide00001")
    DEFAULT_PROVIDER_PREFIXES: list[str] = [
        "FANZA",
        "MGS",
        "DUGA",
        "SOKMIL",
        "B10F",
        "FC2",
        "JAPANSKA",
        "CARIBBEAN",
        "CARIBBEANCOMPR",
        "1PONDO",
        "HEYZO",
        "10MUSUME",
        "PACOPACOMAMA",
        "H4610",
        "H0930",
        "C0930",
        "GACHINCO",
        "KIN8TENGOKU",
        "NYOSHIN",
        "HEYDOUGA",
        "X1X",
        "ENKOU55",
        "UREKKO",
        "XXXURABI",
        "TOKYOHOT",
        "TVDEAV",
    ]

    def __init__(
        self,
        families: dict[str, FamilyConfig] | None = None,
        provider_prefixes: list[str] | None = None,
    ) -> None:
        self.families = families or {}
        prefixes = provider_prefixes or self.DEFAULT_PROVIDER_PREFIXES
        # Longest first so CARIBBEANCOMPR wins over CARIBBEAN
        self.provider_prefixes = sorted({p.upper() for p in prefixes}, key=len, reverse=True)

    @classmethod
    def from_registry(cls, registry: ProviderRegistry) -> IdentifierNormalizer:
        """Build a normalizer from a loaded provider registry."""
        return cls(
            families={f.name: f for f in registry.list_families()},
            provider_prefixes=registry.global_config.provider_prefixes or None,
        )

    def is_cross_provider(self, family: str) -> bool:
        """Check whether a family shares its code space with other providers."""
        config = self.families.get(family)
        return bool(config and config.cross_provider)

    def normalize(self, provider_family: str, raw_code: str) -> str:
        """
        Compute the normalized product id for a raw provider code.

        Args:
            provider_family: Identifier family of the provider
            raw_code: Provider-native product code

        Returns:
            Canonical "LABEL-NNN" id for parseable cross-provider codes,
            otherwise "{family}-{code lower-cased}".

        Raises:
            ValueError: If the code is empty
        """
        if not isinstance(raw_code, str) or not raw_code.strip():
            raise ValueError("Product code cannot be empty")

        family = self.families.get(provider_family)
        if family is not None and family.cross_provider:
            code = raw_code.strip().lower()
            for rule in family.id_rewrite_rules:
                code = rule.apply(code)
            code = _NON_ALNUM.sub("", code)

            match = _LABEL_CODE.match(code)
            if match:
                label, number = match.groups()
                return f"{label.upper()}-{int(number):03d}"

        return f"{provider_family}-{raw_code.strip().lower()}"

    # ------------------------------------------------------------------
    # Search helpers
    # ------------------------------------------------------------------

    @staticmethod
    def search_key(code: str) -> str:
        """
        Reduce a code to its search form.

        Example: "MIDE-001" -> "mide001"
        """
        return _SEARCH_NOISE.sub("", code.strip().lower())

    def matches(self, code_a: str, code_b: str) -> bool:
        """Check whether two codes are the same up to case and separators."""
        return self.search_key(code_a) == self.search_key(code_b)

    def strip_provider_prefix(self, code: str) -> str:
        """
        Remove a leading provider prefix.

        Example: "CARIBBEAN-123456" -> "123456"
        """
        upper = code.upper()
        for prefix in self.provider_prefixes:
            if upper.startswith(prefix + "-"):
                return code[len(prefix) + 1 :]
        return code

    def variations(self, raw_code: str) -> set[str]:
        """
        Expand a code into the spellings it may be written as.

        Covers case variants, with and without separators, unpadded and
        zero-padded numbers, and provider-prefixed forms.
        """
        result: set[str] = set()
        trimmed = raw_code.strip() if isinstance(raw_code, str) else ""
        if not trimmed:
            return result

        stripped = self.strip_provider_prefix(trimmed)
        for base in {trimmed, stripped}:
            _add_cases(result, base)
            _add_cases(result, re.sub(r"[-_]", "", base))

            hyphenated = _LETTERS_DIGITS.sub(r"\1-\2", base)
            if hyphenated != base:
                _add_cases(result, hyphenated)

            match = _STANDARD_CODE.match(base)
            if match:
                _add_padding_variations(result, match.group(1), int(match.group(2)))

            match = _FIVE_DIGIT_CODE.match(base)
            if match:
                prefix, digits = match.groups()
                _add_padding_variations(result, prefix, int(digits))
                result.add(f"FANZA-{prefix.lower()}{digits}")
                result.add(f"fanza-{prefix.lower()}{digits}")

            match = _MAKER_PREFIXED_CODE.match(base)
            if match:
                maker, letters, number = match.groups()
                for label in (letters, letters.lower()):
                    result.add(f"{maker}{label}-{number}")
                    result.add(f"{maker}{label}{number}")

            match = _PPV_CODE.match(base)
            if match:
                first, ppv, second = match.groups()
                for label in (ppv.upper(), ppv.lower()):
                    result.add(f"{first}-{label}{second}")
                    result.add(f"{first}{label}{second}")

            match = _NUMERIC_PAIR_CODE.match(base)
            if match:
                main, sub = match.groups()
                result.update({f"{main}_{sub}", f"{main}-{sub}", f"{main}{sub}"})

        return result

    def display_code(self, code: str | None) -> str | None:
        """
        Format a code as "LABEL-N" for display.

        Studio "h_1234" prefixes and maker digit prefixes are dropped, except
        for the 300-series amateur labels whose digits are part of the label.

        Examples:
            107START-470   -> START-470
            ssis00865      -> SSIS-865
            300mium01359   -> 300MIUM-1359
        """
        if not code or not isinstance(code, str) or not code.strip():
            return None

        value = re.sub(r"^H_\d+", "", code.strip().upper())
        if not re.match(r"^300[A-Z]+", value):
            value = re.sub(r"^\d+(?=[A-Z])", "", value)

        match = re.match(r"^(\d*[A-Z]+)-?(\d+)$", value)
        if match:
            number = match.group(2).lstrip("0") or "0"
            return f"{match.group(1)}-{number}"
        return code.upper()


def _add_cases(result: set[str], value: str) -> None:
    result.update({value, value.lower(), value.upper()})


def _add_padding_variations(result: set[str], prefix: str, number: int) -> None:
    """Add unpadded, 3-digit and 5-digit forms with and without a hyphen."""
    for digits in {str(number), f"{number:03d}", f"{number:05d}"}:
        for label in (prefix, prefix.lower(), prefix.upper()):
            result.add(f"{label}-{digits}")
            result.add(f"{label}{digits}")
