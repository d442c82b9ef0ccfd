"""Item sanitizer and fingerprinter."""

from __future__ import annotations

import copy
import json
from typing import Any, Iterator

from ingestloop.errors import SanitizeError
from ingestloop.models import EmittedItem, Item
from ingestloop.sanitizer.profiles import GENERIC_PROFILE, SanitizeProfile
from ingestloop.utils.cache import get_fingerprint

CONTENT_SEPARATOR = "|"


def _split_path(path: str) -> list[str]:
    return [segment for segment in path.split(".") if segment]


def iter_path(value: Any, path: str) -> Iterator[Any]:
    """
    Yield every value found at a dotted path.

    Missing keys and shape mismatches yield nothing.
    """
    nodes = [value]
    for segment in _split_path(path):
        expand = segment.endswith("[]")
        key = segment[:-2] if expand else segment

        next_nodes = []
        for node in nodes:
            if not isinstance(node, dict) or key not in node:
                continue
            child = node[key]
            if expand:
                if isinstance(child, list):
                    next_nodes.extend(child)
            else:
                next_nodes.append(child)
        nodes = next_nodes

    yield from nodes


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _drop_path(data: dict, path: str) -> None:
    *parents, leaf = _split_path(path)
    node: Any = data
    for segment in parents:
        if not isinstance(node, dict):
            return
        node = node.get(segment)
    if isinstance(node, dict):
        node.pop(leaf, None)


class Sanitizer:
    """
    Projects raw items into emission-safe, fingerprinted items.

    Sanitization never mutates the raw item: the projection is built from a
    deep copy.
    """

    def __init__(self, profile: SanitizeProfile = GENERIC_PROFILE) -> None:
        self.profile = profile

    def sanitize(self, item: Item) -> EmittedItem:
        """
        Sanitize one raw item.

        Args:
            item: Raw provider item

        Returns:
            EmittedItem with fingerprints where the item provides them

        Raises:
            SanitizeError: If the item cannot be copied or serialized
        """
        if not isinstance(item, dict):
            # Raw rows and scalars pass through without fingerprints
            return EmittedItem(data=self._json_safe_copy(item))

        data = self._json_safe_copy(item)
        for path in self.profile.drop_fields:
            _drop_path(data, path)

        return EmittedItem(
            data=data,
            identity_fingerprint=self.identity_fingerprint(data),
            content_fingerprint=self.content_fingerprint(data),
        )

    def fallback(self, item: Item) -> EmittedItem:
        """
        Best-effort projection for items that fail to sanitize.

        Non-serializable values are stringified and fingerprints omitted.
        """
        try:
            data = json.loads(json.dumps(item, default=str, skipkeys=True))
        except (TypeError, ValueError, RecursionError):
            return EmittedItem(data=str(item))

        if isinstance(data, dict):
            for path in self.profile.drop_fields:
                _drop_path(data, path)
        return EmittedItem(data=data)

    def identity_fingerprint(self, data: dict) -> str | None:
        """Fingerprint of the identifying attribute, if present."""
        if not self.profile.identity_field:
            return None

        for value in iter_path(data, self.profile.identity_field):
            if value is not None and value != "":
                return get_fingerprint(_as_text(value))
        return None

    def content_fingerprint(self, data: dict) -> str | None:
        """Fingerprint of the ordered content fields, if any are present."""
        parts = [_as_text(value) for value in self._content_values(data)]
        if not parts:
            return None
        return get_fingerprint(CONTENT_SEPARATOR.join(parts))

    def _content_values(self, data: dict) -> Iterator[Any]:
        if self.profile.content_fields is None:
            # Keys may contain dots (sheet headers), so read them directly
            values: Iterator[Any] = (data[key] for key in sorted(data, key=str))
        else:
            values = (
                value
                for path in self.profile.content_fields
                for value in iter_path(data, path)
            )

        for value in values:
            if value is None or value == "":
                continue
            yield value

    @staticmethod
    def _json_safe_copy(item: Item) -> Any:
        try:
            data = copy.deepcopy(item)
            json.dumps(data)
        except (TypeError, ValueError, RecursionError, copy.Error) as e:
            raise SanitizeError(f"Item cannot be projected: {e}") from e
        return data
