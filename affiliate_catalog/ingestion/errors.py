"""
Ingestion Errors
================

Exception taxonomy for the ingestion pipeline.

Rejected extractions are not errors: the validator returns them as values.
Exceptions here are reserved for failures the caller must act on.
"""

from __future__ import annotations


class IngestionError(Exception):
    """Base class for ingestion failures."""


class StoreUnavailableError(IngestionError):
    """
    The catalog database cannot be reached at all.

    Raised in place of connectivity errors so the orchestrator can stop the
    run instead of counting every remaining item as a transient failure.
    """


class ProviderNotFoundError(IngestionError):
    """A provider name is not present in the registry."""

    def __init__(self, provider_name: str) -> None:
        super().__init__(f"Provider '{provider_name}' not found")
        self.provider_name = provider_name


class AdapterNotFoundError(IngestionError):
    """A provider references an adapter type that is not registered."""

    def __init__(self, adapter_type: str) -> None:
        super().__init__(f"Adapter '{adapter_type}' not found")
        self.adapter_type = adapter_type
