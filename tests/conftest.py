"""
Shared pytest fixtures for ingestloop tests.

This module provides:
- An in-memory list provider with call counting and an optional gate
- Credential contexts for the HTTP providers
- A config with retry delays disabled
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import pytest

from ingestloop.config import IngestConfig
from ingestloop.config.settings import RetryConfig
from ingestloop.models import CredentialContext
from ingestloop.providers import Provider
from ingestloop.utils.logging import configure_logging


class ListProvider(Provider):
    """Provider returning a fixed list, or raising a fixed error."""

    def __init__(
        self,
        items: Optional[list[Any]] = None,
        error: Optional[Exception] = None,
        config: Optional[IngestConfig] = None,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        super().__init__(config)
        self.items = items or []
        self.error = error
        self.gate = gate
        self.calls: list[tuple[str, dict]] = []
        self.released: list[str] = []

    @property
    def source_name(self) -> str:
        return "list"

    async def fetch(self, source_key, context, options):
        self.calls.append((source_key, dict(options)))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.items)

    def release(self, execution_id: str) -> None:
        self.released.append(execution_id)


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep logs on the current stderr and at warning level between tests."""
    configure_logging(level="warn")
    yield
    configure_logging(level="warn")


@pytest.fixture
def fast_config() -> IngestConfig:
    """Config with not-ready retries that do not sleep."""
    return IngestConfig(retry=RetryConfig(max_attempts=3, delay_seconds=0.0))


@pytest.fixture
def credentials() -> CredentialContext:
    """Credentials for every HTTP provider."""
    return CredentialContext(
        credentials={
            "apify": {"token": "apify-token"},
            "googleApi": {"apiKey": "google-key"},
            "plaid": {"clientId": "client", "secret": "secret", "environment": "sandbox"},
            "searchapi": {"apiKey": "search-key"},
            "hyperbrowser": {"apiKey": "hb-key"},
        },
        execution_id="exec-test",
    )


@pytest.fixture
def items_file(tmp_path: Path) -> Path:
    """JSON file holding three generic items."""
    path = tmp_path / "items.json"
    path.write_text(json.dumps([
        {"id": "a", "title": "Alpha"},
        {"id": "b", "title": "Beta"},
        {"id": "c", "title": "Gamma"},
    ]))
    return path


@pytest.fixture
def make_provider():
    """Factory for ListProvider instances."""
    return ListProvider
