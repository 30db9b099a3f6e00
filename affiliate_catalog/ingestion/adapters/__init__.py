"""
Provider Adapters
=================

Adapters are looked up by the `adapter` key of a provider in
providers.yaml. Several providers may share one adapter type (the DTI
sites, for instance); each gets its own instance attributed to it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from affiliate_catalog.ingestion.adapters.base import BaseAdapter
from affiliate_catalog.ingestion.adapters.sample import SampleAdapter
from affiliate_catalog.ingestion.errors import AdapterNotFoundError

if TYPE_CHECKING:
    from affiliate_catalog.ingestion.registry import ProviderConfig


ADAPTER_REGISTRY: dict[str, type[BaseAdapter]] = {
    SampleAdapter.ADAPTER_NAME: SampleAdapter,
}


def get_adapter(
    adapter_type: str,
    config: dict[str, Any] | None = None,
    provider_name: str | None = None,
) -> BaseAdapter | None:
    """Instantiate an adapter by type name, or None if it is not registered."""
    adapter_class = ADAPTER_REGISTRY.get(adapter_type)
    if adapter_class is None:
        return None
    return adapter_class(config, provider_name)


def adapter_for_provider(provider: ProviderConfig) -> BaseAdapter:
    """
    Build the adapter a provider is configured to use.

    The provider's custom_config is handed to the adapter and every
    extraction it produces is attributed to the provider.

    Raises:
        AdapterNotFoundError: If the provider names an unregistered adapter
    """
    adapter = get_adapter(provider.adapter, provider.custom_config, provider.name)
    if adapter is None:
        raise AdapterNotFoundError(provider.adapter)
    return adapter


def register_adapter(
    name: str,
    adapter_class: type[BaseAdapter],
    replace: bool = False,
) -> None:
    """
    Register an adapter type under a name.

    Raises:
        TypeError: If adapter_class is not a BaseAdapter subclass
        ValueError: If the name is taken and replace is False
    """
    if not (isinstance(adapter_class, type) and issubclass(adapter_class, BaseAdapter)):
        raise TypeError(f"{adapter_class!r} must inherit from BaseAdapter")
    if name in ADAPTER_REGISTRY and not replace:
        raise ValueError(f"Adapter '{name}' is already registered")
    ADAPTER_REGISTRY[name] = adapter_class


def unregister_adapter(name: str) -> bool:
    """Remove an adapter type. Returns False if it was not registered."""
    return ADAPTER_REGISTRY.pop(name, None) is not None


def list_adapters() -> list[str]:
    return sorted(ADAPTER_REGISTRY)


def get_adapter_info(adapter_type: str) -> dict[str, str] | None:
    """Name, version and class of a registered adapter type."""
    adapter_class = ADAPTER_REGISTRY.get(adapter_type)
    if adapter_class is None:
        return None
    return adapter_class.describe()


__all__ = [
    "ADAPTER_REGISTRY",
    "BaseAdapter",
    "SampleAdapter",
    "adapter_for_provider",
    "get_adapter",
    "get_adapter_info",
    "list_adapters",
    "register_adapter",
    "unregister_adapter",
]
