"""Item sanitization and fingerprinting."""

from ingestloop.sanitizer.profiles import (
    CRAWL_PAGE_PROFILE,
    DOCUMENT_PROFILE,
    GENERIC_PROFILE,
    LINK_PROFILE,
    PROFILES,
    SEARCH_RESULT_PROFILE,
    SHEET_ROW_PROFILE,
    TRANSACTION_PROFILE,
    SanitizeProfile,
)
from ingestloop.sanitizer.sanitizer import Sanitizer, iter_path

__all__ = [
    "Sanitizer",
    "SanitizeProfile",
    "iter_path",
    # Profiles
    "PROFILES",
    "CRAWL_PAGE_PROFILE",
    "SHEET_ROW_PROFILE",
    "TRANSACTION_PROFILE",
    "SEARCH_RESULT_PROFILE",
    "LINK_PROFILE",
    "DOCUMENT_PROFILE",
    "GENERIC_PROFILE",
]
