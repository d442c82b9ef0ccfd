"""Providers fetching complete ordered collections for one source key."""

from __future__ import annotations

from typing import Any, Optional

from ingestloop.config import IngestConfig
from ingestloop.providers.apify import ApifyProvider
from ingestloop.providers.base import HttpProvider, Provider
from ingestloop.providers.document import DocumentProvider
from ingestloop.providers.hyperbrowser import HyperbrowserProvider
from ingestloop.providers.plaid import PlaidProvider
from ingestloop.providers.searchweb import SearchWebProvider
from ingestloop.providers.sheets import SheetsProvider
from ingestloop.providers.static import StaticProvider

PROVIDER_REGISTRY: dict[str, type[Provider]] = {
    "apify": ApifyProvider,
    "sheets": SheetsProvider,
    "plaid": PlaidProvider,
    "searchweb": SearchWebProvider,
    "hyperbrowser": HyperbrowserProvider,
    "document": DocumentProvider,
    "static": StaticProvider,
}


def get_provider(
    name: str,
    config: Optional[IngestConfig] = None,
    **kwargs: Any,
) -> Provider:
    """
    Create a provider by name.

    Args:
        name: Registered provider name
        config: Ingestion configuration
        **kwargs: Extra constructor arguments (transport, profile...)

    Returns:
        Provider instance

    Raises:
        KeyError: If no provider has that name
    """
    try:
        provider_class = PROVIDER_REGISTRY[name]
    except KeyError:
        raise KeyError(
            f"Unknown source: {name}. Available: {', '.join(sorted(PROVIDER_REGISTRY))}"
        ) from None
    return provider_class(config, **kwargs)


def list_providers() -> list[str]:
    """List registered provider names."""
    return sorted(PROVIDER_REGISTRY)


__all__ = [
    "Provider",
    "HttpProvider",
    "ApifyProvider",
    "SheetsProvider",
    "PlaidProvider",
    "SearchWebProvider",
    "HyperbrowserProvider",
    "DocumentProvider",
    "StaticProvider",
    "PROVIDER_REGISTRY",
    "get_provider",
    "list_providers",
]
