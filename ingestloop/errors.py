"""Exception taxonomy for ingestion.

Every failure a provider, guard or sanitizer can report is an
``IngestError``. The driver converts the fetch-time ones into a single
terminal error emission; ``SanitizeError`` only ever affects one item.
"""

from __future__ import annotations

from typing import Optional


class IngestError(Exception):
    """Base class for ingestion failures."""

    pass


class ConfigError(IngestError):
    """Missing or invalid configuration, options or credentials."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"Config error in '{field}': {message}")


class FetchError(IngestError):
    """Provider-level failure, including exhausted retries."""

    NETWORK = "network"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    MALFORMED = "malformed"
    NOT_READY = "not_ready"
    HTTP = "http"

    def __init__(
        self,
        message: str,
        kind: str = HTTP,
        status_code: Optional[int] = None,
    ) -> None:
        self.message = message
        self.kind = kind
        self.status_code = status_code
        super().__init__(message)


class SizeLimitError(IngestError):
    """Payload exceeds a configured maximum size."""

    def __init__(self, size: int, limit: int, subject: str = "item") -> None:
        self.size = size
        self.limit = limit
        self.subject = subject
        super().__init__(
            f"{subject.capitalize()} too large ({size} bytes > {limit} bytes)"
        )


class SanitizeError(IngestError):
    """Item shape cannot be sanitized."""

    pass


class ExecutionBusyError(Exception):
    """An event arrived while a fetch for the same execution is outstanding."""

    def __init__(self, execution_id: str) -> None:
        self.execution_id = execution_id
        super().__init__(f"Execution {execution_id} is still fetching")
