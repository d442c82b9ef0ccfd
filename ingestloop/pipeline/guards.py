"""Preflight guards - checks that fail an execution before any fetch attempt.

These guards run when a fetch is requested, ensuring the provider has the
source key, credentials and options it needs. A failed guard becomes the
execution's terminal error record instead of a network call.
"""

from __future__ import annotations

from typing import Any

from ingestloop.errors import ConfigError
from ingestloop.models import CredentialContext
from ingestloop.providers import Provider
from ingestloop.utils.logging import get_logger
from ingestloop.utils.result import Err, Ok, Result

logger = get_logger("pipeline.guards")


class PreflightGuards:
    """
    Precondition checks run before a provider fetch.

    Each guard returns a Result type - Ok(None) if the check passes,
    Err(ConfigError) if it fails.
    """

    def check_all(
        self,
        provider: Provider,
        source_key: str,
        context: CredentialContext,
        options: dict[str, Any],
    ) -> Result[None, ConfigError]:
        """
        Run all precondition checks.

        Returns:
            Result indicating success or first failure
        """
        for check in (
            lambda: self.check_source_key(source_key),
            lambda: self.check_credentials(provider, context),
            lambda: self.check_options(provider, options),
        ):
            result = check()
            if result.is_err():
                error = result.unwrap_err()
                logger.error(
                    "guard_failed",
                    provider=provider.source_name,
                    field=error.field,
                    message=error.message,
                )
                return result

        logger.debug("guards_passed", provider=provider.source_name)
        return Ok(None)

    def check_source_key(self, source_key: str) -> Result[None, ConfigError]:
        """Check that a source key is present."""
        if not source_key or not str(source_key).strip():
            return Err(ConfigError(field="sourceKey", message="Source key is required"))
        return Ok(None)

    def check_credentials(
        self,
        provider: Provider,
        context: CredentialContext,
    ) -> Result[None, ConfigError]:
        """Check that the provider's credential block carries every required field."""
        try:
            provider.get_credentials(context)
        except ConfigError as e:
            return Err(e)
        return Ok(None)

    def check_options(
        self,
        provider: Provider,
        options: dict[str, Any],
    ) -> Result[None, ConfigError]:
        """Check provider options."""
        return provider.validate_options(options)
