"""Data models for emitted items, emissions and credential contexts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

# A raw item is whatever JSON-like value a provider returns
Item = Any


@dataclass(frozen=True)
class EmittedItem:
    """
    Emission-safe projection of a raw item.

    Attributes:
        data: Redacted copy of the raw item
        identity_fingerprint: Hash of the item's identifying attribute
        content_fingerprint: Hash of the item's semantic content fields
    """

    data: Any
    identity_fingerprint: Optional[str] = None
    content_fingerprint: Optional[str] = None

    def to_dict(self) -> Any:
        """Flatten fingerprints into the projected item."""
        if not isinstance(self.data, dict):
            return self.data

        result = dict(self.data)
        if self.identity_fingerprint:
            result["identityFingerprint"] = self.identity_fingerprint
        if self.content_fingerprint:
            result["contentFingerprint"] = self.content_fingerprint
        return result


@dataclass(frozen=True)
class Emission:
    """One record sent downstream."""

    item: Optional[EmittedItem]
    index: int
    total: int
    has_more: bool
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return not self.has_more

    def to_dict(self) -> dict:
        """Convert to the wire shape."""
        data = {
            "item": self.item.to_dict() if self.item is not None else None,
            "index": self.index,
            "total": self.total,
            "hasMore": self.has_more,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class CredentialContext:
    """Credentials and execution metadata handed to a provider."""

    credentials: dict[str, dict[str, Any]] = field(default_factory=dict)
    node_type: str = ""
    workflow_id: str = ""
    execution_id: str = ""
    node_id: str = ""

    def block(self, name: str) -> dict[str, Any]:
        """Get one credential block, empty if absent."""
        return self.credentials.get(name) or {}

    def for_execution(self, execution_id: str, node_type: str = "") -> "CredentialContext":
        """Copy of this context bound to an execution."""
        return CredentialContext(
            credentials=self.credentials,
            node_type=node_type or self.node_type,
            workflow_id=self.workflow_id,
            execution_id=execution_id,
            node_id=self.node_id,
        )
