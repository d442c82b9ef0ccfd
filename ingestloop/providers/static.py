"""Local JSON/YAML file provider."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import yaml

from ingestloop.config import IngestConfig
from ingestloop.errors import FetchError
from ingestloop.models import CredentialContext, Item
from ingestloop.providers.base import Provider
from ingestloop.sanitizer import GENERIC_PROFILE, SanitizeProfile


class StaticProvider(Provider):
    """Items listed in a local JSON or YAML file."""

    source_key_aliases = ("path",)

    def __init__(
        self,
        config: Optional[IngestConfig] = None,
        profile: SanitizeProfile = GENERIC_PROFILE,
    ) -> None:
        super().__init__(config)
        self.sanitize_profile = profile

    @property
    def source_name(self) -> str:
        return "static"

    async def fetch(
        self,
        source_key: str,
        context: CredentialContext,
        options: dict[str, Any],
    ) -> list[Item]:
        """
        Read items from a file.

        The file holds either a list of items or a mapping whose ``items``
        key (or the key named by the ``itemsKey`` option) holds the list.
        """
        path = Path(source_key)
        if not path.exists() and not path.is_absolute() and self.config.config_dir is not None:
            candidate = self.config.config_dir / path
            if candidate.exists():
                path = candidate

        if not path.exists():
            raise FetchError(f"File not found: {path}", kind=FetchError.NOT_FOUND)

        try:
            text = path.read_text(encoding="utf-8")
            if path.suffix == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except OSError as e:
            raise FetchError(f"Failed to read {path}: {e}", kind=FetchError.NETWORK) from e
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise FetchError(f"Failed to parse {path}: {e}", kind=FetchError.MALFORMED) from e

        if isinstance(data, dict):
            data = data.get(options.get("itemsKey") or "items")
        if data is None:
            data = []
        if not isinstance(data, list):
            raise FetchError(f"No item list found in {path}", kind=FetchError.MALFORMED)

        self.logger.info("static_fetch_completed", path=str(path), items=len(data))
        return data
