"""Data models for ingestloop."""

from ingestloop.models.items import (
    CredentialContext,
    Emission,
    EmittedItem,
    Item,
)

__all__ = [
    "CredentialContext",
    "Emission",
    "EmittedItem",
    "Item",
]
