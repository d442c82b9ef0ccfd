"""Sanitize profiles describing how each item shape is projected.

Field paths are dotted (``metadata.title``); a segment ending in ``[]``
walks every element of a list (``metadata.openGraph[].content``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SanitizeProfile:
    """
    Projection and fingerprint rules for one item shape.

    Attributes:
        name: Profile identifier
        drop_fields: Paths removed before emission
        identity_field: Path of the single identifying attribute
        content_fields: Ordered content paths; None hashes every key in
            sorted order
    """

    name: str
    drop_fields: tuple[str, ...] = ()
    identity_field: Optional[str] = None
    content_fields: Optional[tuple[str, ...]] = None


CRAWL_PAGE_PROFILE = SanitizeProfile(
    name="crawl-page",
    drop_fields=("crawl", "metadata.headers"),
    identity_field="url",
    content_fields=(
        "url",
        "text",
        "metadata.title",
        "metadata.description",
        "metadata.canonicalUrl",
        "metadata.author",
        "metadata.keywords",
        "metadata.languageCode",
        "metadata.openGraph[].content",
    ),
)

SHEET_ROW_PROFILE = SanitizeProfile(name="sheet-row")

TRANSACTION_PROFILE = SanitizeProfile(
    name="transaction",
    identity_field="transaction_id",
    content_fields=(
        "account_id",
        "date",
        "name",
        "merchant_name",
        "amount",
        "iso_currency_code",
        "category[]",
        "pending",
    ),
)

SEARCH_RESULT_PROFILE = SanitizeProfile(
    name="search-result",
    identity_field="url",
    content_fields=("url", "title", "source", "snippet"),
)

LINK_PROFILE = SanitizeProfile(
    name="link",
    identity_field="absoluteUrl",
    content_fields=("absoluteUrl", "text", "href"),
)

DOCUMENT_PROFILE = SanitizeProfile(
    name="document",
    drop_fields=("content",),
    identity_field="key",
    content_fields=("key", "etag", "lastModified", "size"),
)

GENERIC_PROFILE = SanitizeProfile(name="generic", identity_field="id")

PROFILES: dict[str, SanitizeProfile] = {
    profile.name: profile
    for profile in (
        CRAWL_PAGE_PROFILE,
        SHEET_ROW_PROFILE,
        TRANSACTION_PROFILE,
        SEARCH_RESULT_PROFILE,
        LINK_PROFILE,
        DOCUMENT_PROFILE,
        GENERIC_PROFILE,
    )
}
