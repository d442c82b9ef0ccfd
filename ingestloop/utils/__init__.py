"""Utility modules for ingestloop."""

from ingestloop.utils.atomic import AtomicWriteError, atomic_write_json
from ingestloop.utils.cache import (
    CachedDocument,
    DocumentCache,
    get_content_hash,
    get_fingerprint,
)
from ingestloop.utils.logging import (
    configure_logging,
    get_correlation_id,
    get_logger,
    log_fetch_timing,
    set_correlation_id,
    set_execution_context,
)
from ingestloop.utils.result import Err, ExitCode, Ok, Result

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "get_correlation_id",
    "set_correlation_id",
    "set_execution_context",
    "log_fetch_timing",
    # Cache
    "CachedDocument",
    "DocumentCache",
    "get_content_hash",
    "get_fingerprint",
    # Files
    "AtomicWriteError",
    "atomic_write_json",
    # Results
    "Ok",
    "Err",
    "Result",
    "ExitCode",
]
