"""Abstract base classes for item providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from ingestloop.config import IngestConfig
from ingestloop.errors import ConfigError, FetchError
from ingestloop.models import CredentialContext, Item
from ingestloop.sanitizer import GENERIC_PROFILE, SanitizeProfile
from ingestloop.utils.logging import get_logger
from ingestloop.utils.result import Err, Ok, Result


class Provider(ABC):
    """
    Abstract base class for providers.

    A provider is responsible for:
    1. Fetching the complete ordered collection for one source key
    2. Reporting every failure as an IngestError
    3. Declaring how its items are sanitized and fingerprinted
    """

    # Event config keys accepted as the source key besides ``sourceKey``
    source_key_aliases: tuple[str, ...] = ()

    # Credential block and the fields it must carry
    credential_name: Optional[str] = None
    required_credentials: tuple[str, ...] = ()

    sanitize_profile: SanitizeProfile = GENERIC_PROFILE

    def __init__(self, config: Optional[IngestConfig] = None) -> None:
        """
        Initialize the provider.

        Args:
            config: Ingestion configuration (defaults if omitted)
        """
        self.config = config or IngestConfig()
        self.logger = get_logger(f"providers.{self.source_name}")

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Unique identifier for this provider."""
        ...

    @abstractmethod
    async def fetch(
        self,
        source_key: str,
        context: CredentialContext,
        options: dict[str, Any],
    ) -> list[Item]:
        """
        Fetch the full ordered collection.

        Args:
            source_key: Identifier of the collection
            context: Credentials and execution metadata
            options: Provider options from the event config

        Returns:
            Every item, in source order

        Raises:
            ConfigError: Missing credentials or invalid options
            FetchError: Provider-level failure
        """
        ...

    def validate_options(self, options: dict[str, Any]) -> Result[None, ConfigError]:
        """Check provider options before any fetch attempt."""
        return Ok(None)

    def release(self, execution_id: str) -> None:
        """Drop any per-execution resources held by the provider."""
        pass

    def get_credentials(self, context: CredentialContext) -> dict[str, Any]:
        """
        Get this provider's credential block.

        Raises:
            ConfigError: If a required field is missing
        """
        if not self.credential_name:
            return {}

        block = context.block(self.credential_name)
        for name in self.required_credentials:
            if not block.get(name):
                raise ConfigError(
                    field=f"credentials.{self.credential_name}.{name}",
                    message=f"{self.display_name} {name} not found in credentials",
                )
        return block

    @property
    def display_name(self) -> str:
        return self.source_name.capitalize()


def int_option(
    options: dict[str, Any],
    name: str,
    default: int,
    minimum: int,
    maximum: int,
) -> Result[int, ConfigError]:
    """
    Read an integer option within bounds.

    Returns:
        Ok with the value (or default), Err if invalid or out of range
    """
    raw = options.get(name)
    if raw is None or raw == "":
        return Ok(default)

    try:
        value = int(raw)
    except (TypeError, ValueError):
        return Err(ConfigError(field=name, message=f"Must be an integer, got {raw!r}"))

    if not minimum <= value <= maximum:
        return Err(ConfigError(
            field=name,
            message=f"{name} must be between {minimum} and {maximum}",
        ))
    return Ok(value)


def bool_option(options: dict[str, Any], name: str, default: bool) -> bool:
    """Read a boolean option, accepting the usual string spellings."""
    raw = options.get(name)
    if raw is None:
        return default
    if isinstance(raw, str):
        return raw.strip().lower() not in ("false", "0", "no", "off", "")
    return bool(raw)


class HttpProvider(Provider):
    """
    Base class for providers backed by an HTTP JSON API.

    Provides a shared client factory and maps transport and status
    failures onto FetchError kinds.
    """

    def __init__(
        self,
        config: Optional[IngestConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the provider.

        Args:
            config: Ingestion configuration
            transport: Optional transport override (used by tests)
        """
        super().__init__(config)
        self.transport = transport

    def _client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.http.timeout,
            transport=self.transport,
            **kwargs,
        )

    async def _request_json(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> Any:
        """
        Send a request and decode its JSON body.

        Args:
            client: Open HTTP client
            method: HTTP method
            url: Request URL
            **kwargs: Passed to ``client.request``

        Returns:
            Parsed JSON response

        Raises:
            FetchError: On network failure, error status or bad JSON
        """
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise FetchError(f"Request timed out: {e}", kind=FetchError.NETWORK) from e
        except httpx.RequestError as e:
            raise FetchError(f"Network error: {e}", kind=FetchError.NETWORK) from e

        if response.is_error:
            self._raise_for_status(response)

        try:
            return response.json()
        except ValueError as e:
            raise FetchError(
                f"Malformed response from {self.display_name}: {e}",
                kind=FetchError.MALFORMED,
                status_code=response.status_code,
            ) from e

    def _expect_mapping(self, data: Any) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise FetchError(
                f"Malformed response from {self.display_name}: expected an object",
                kind=FetchError.MALFORMED,
            )
        return data

    def _expect_list(self, data: Any, field: str) -> list[Any]:
        if data is None:
            return []
        if not isinstance(data, list):
            raise FetchError(
                f"Malformed response from {self.display_name}: {field} is not a list",
                kind=FetchError.MALFORMED,
            )
        return data

    def _raise_for_status(self, response: httpx.Response) -> None:
        """
        Convert an error response into a FetchError.

        Subclasses override this to surface vendor error messages.
        """
        status = response.status_code
        raise FetchError(
            f"{self.display_name} error: {status} - {response.text}",
            kind=status_kind(status),
            status_code=status,
        )


def status_kind(status: int) -> str:
    """Map an HTTP status onto a FetchError kind."""
    if status in (401, 403):
        return FetchError.AUTH
    if status == 404:
        return FetchError.NOT_FOUND
    return FetchError.HTTP
