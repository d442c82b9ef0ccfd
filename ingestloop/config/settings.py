"""Centralized configuration for ingestion.

Configuration can be loaded from YAML files and validated at startup.
Credentials never live in configuration files; they are read from the
environment into a ``CredentialContext``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from ingestloop.errors import ConfigError
from ingestloop.models import CredentialContext
from ingestloop.utils.result import Err, Ok, Result


@dataclass
class HttpConfig:
    """HTTP client settings shared by providers."""

    timeout: float = 30.0
    page_size: int = 1000


@dataclass
class RetryConfig:
    """Not-ready retry settings used inside providers."""

    max_attempts: int = 5
    delay_seconds: float = 2.0


@dataclass
class LimitsConfig:
    """Payload size limits."""

    max_item_bytes: int = 1024 * 1024
    max_document_mb: float = 50.0

    @property
    def max_document_bytes(self) -> int:
        return int(self.max_document_mb * 1024 * 1024)


@dataclass
class CacheConfig:
    """Document cache eviction policy."""

    max_entries: int = 32
    ttl_seconds: float = 3600.0


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "info"
    format: str = "json"


@dataclass
class IngestConfig:
    """
    Complete ingestion configuration.

    This is the single source of truth for tunables; every field has a
    documented default so an empty YAML file is a valid configuration.
    """

    http: HttpConfig = field(default_factory=HttpConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Paths (set at runtime)
    config_dir: Optional[Path] = None
    state_dir: Optional[Path] = None

    @classmethod
    def from_yaml(cls, path: Path) -> Result["IngestConfig", ConfigError]:
        """
        Load configuration from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Result with loaded config or error
        """
        path = Path(path)

        if not path.exists():
            return Err(ConfigError(
                field="path",
                message=f"Configuration file not found: {path}",
            ))

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            return Err(ConfigError(
                field="yaml",
                message=f"Failed to parse YAML: {e}",
            ))
        except OSError as e:
            return Err(ConfigError(
                field="file",
                message=f"Failed to read config file: {e}",
            ))

        if not isinstance(data, dict):
            return Err(ConfigError(
                field="yaml",
                message="Top level of the configuration must be a mapping",
            ))

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Result["IngestConfig", ConfigError]:
        """
        Create configuration from a dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            Result with loaded config or error
        """
        try:
            http_data = data.get("http", {})
            http = HttpConfig(
                timeout=float(http_data.get("timeout", 30.0)),
                page_size=int(http_data.get("page_size", 1000)),
            )

            retry_data = data.get("retries", data.get("retry", {}))
            retry = RetryConfig(
                max_attempts=int(retry_data.get("max_attempts", 5)),
                delay_seconds=float(retry_data.get("delay_seconds", 2.0)),
            )

            limits_data = data.get("limits", {})
            limits = LimitsConfig(
                max_item_bytes=int(limits_data.get("max_item_bytes", 1024 * 1024)),
                max_document_mb=float(limits_data.get("max_document_mb", 50.0)),
            )

            cache_data = data.get("cache", {})
            cache = CacheConfig(
                max_entries=int(cache_data.get("max_entries", 32)),
                ttl_seconds=float(cache_data.get("ttl_seconds", 3600.0)),
            )

            logging_data = data.get("logging", {})
            logging_config = LoggingConfig(
                level=logging_data.get("level", "info"),
                format=logging_data.get("format", "json"),
            )

        except (TypeError, ValueError, AttributeError) as e:
            return Err(ConfigError(
                field="unknown",
                message=f"Failed to parse configuration: {e}",
            ))

        return Ok(cls(
            http=http,
            retry=retry,
            limits=limits,
            cache=cache,
            logging=logging_config,
        ))

    def validate(self) -> Result[None, ConfigError]:
        """
        Validate configuration values.

        Returns:
            Result indicating success or validation error
        """
        if self.http.timeout <= 0:
            return Err(ConfigError(
                field="http.timeout",
                message=f"Must be positive, got {self.http.timeout}",
            ))
        if not 1 <= self.http.page_size <= 10000:
            return Err(ConfigError(
                field="http.page_size",
                message=f"Must be between 1 and 10000, got {self.http.page_size}",
            ))

        if self.retry.max_attempts < 1:
            return Err(ConfigError(
                field="retry.max_attempts",
                message=f"Must be at least 1, got {self.retry.max_attempts}",
            ))
        if self.retry.delay_seconds < 0:
            return Err(ConfigError(
                field="retry.delay_seconds",
                message=f"Must not be negative, got {self.retry.delay_seconds}",
            ))

        if self.limits.max_item_bytes < 1024:
            return Err(ConfigError(
                field="limits.max_item_bytes",
                message=f"Must be at least 1024, got {self.limits.max_item_bytes}",
            ))
        if self.limits.max_document_mb <= 0:
            return Err(ConfigError(
                field="limits.max_document_mb",
                message=f"Must be positive, got {self.limits.max_document_mb}",
            ))

        if self.cache.max_entries < 1:
            return Err(ConfigError(
                field="cache.max_entries",
                message=f"Must be at least 1, got {self.cache.max_entries}",
            ))
        if self.cache.ttl_seconds <= 0:
            return Err(ConfigError(
                field="cache.ttl_seconds",
                message=f"Must be positive, got {self.cache.ttl_seconds}",
            ))

        return Ok(None)

    def with_paths(
        self,
        config_dir: Optional[Path] = None,
        state_dir: Optional[Path] = None,
    ) -> "IngestConfig":
        """Return a new config with updated paths."""
        return IngestConfig(
            http=self.http,
            retry=self.retry,
            limits=self.limits,
            cache=self.cache,
            logging=self.logging,
            config_dir=config_dir or self.config_dir,
            state_dir=state_dir or self.state_dir,
        )


def load_config(config_dir: Optional[Path] = None) -> Result[IngestConfig, ConfigError]:
    """
    Load configuration from the standard location.

    Reads ``defaults.yaml`` from the configuration directory when present,
    otherwise starts from built-in defaults, then validates.

    Args:
        config_dir: Configuration directory (defaults to ./config)

    Returns:
        Result with loaded config or error
    """
    config_dir = Path(config_dir) if config_dir is not None else Path("./config")

    defaults_path = config_dir / "defaults.yaml"
    if defaults_path.exists():
        result = IngestConfig.from_yaml(defaults_path)
    else:
        result = Ok(IngestConfig())

    return result.and_then(
        lambda config: config.validate().and_then(
            lambda _: Ok(config.with_paths(config_dir=config_dir))
        )
    )


# Environment variable -> (credential block, field)
CREDENTIAL_ENV_VARS: dict[str, tuple[str, str]] = {
    "APIFY_TOKEN": ("apify", "token"),
    "GOOGLE_API_KEY": ("googleApi", "apiKey"),
    "PLAID_CLIENT_ID": ("plaid", "clientId"),
    "PLAID_SECRET": ("plaid", "secret"),
    "PLAID_ENV": ("plaid", "environment"),
    "SEARCHAPI_API_KEY": ("searchapi", "apiKey"),
    "HYPERBROWSER_API_KEY": ("hyperbrowser", "apiKey"),
}


def get_env_credentials(
    environ: Optional[dict[str, str]] = None,
    execution_id: str = "",
) -> CredentialContext:
    """
    Build a credential context from environment variables.

    Args:
        environ: Mapping to read from (defaults to os.environ)
        execution_id: Execution the context is issued for

    Returns:
        CredentialContext with one block per configured provider
    """
    environ = os.environ if environ is None else environ
    credentials: dict[str, dict[str, str]] = {}

    for var, (block, name) in CREDENTIAL_ENV_VARS.items():
        value = environ.get(var)
        if value:
            credentials.setdefault(block, {})[name] = value

    return CredentialContext(credentials=credentials, execution_id=execution_id)
