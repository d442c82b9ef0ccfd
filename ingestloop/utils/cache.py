"""Content hashing and the per-execution document cache."""

from __future__ import annotations

import base64
import hashlib
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ingestloop.utils.logging import get_logger

logger = get_logger("cache")

FINGERPRINT_LENGTH = 12


def get_content_hash(content: str) -> str:
    """
    Generate a SHA256 hash of content.

    Args:
        content: Content to hash

    Returns:
        Full SHA256 hex digest
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def get_fingerprint(content: str) -> str:
    """
    Generate a short, stable fingerprint of content.

    Args:
        content: Content to fingerprint

    Returns:
        First 12 hex characters of the SHA256 digest
    """
    return get_content_hash(content)[:FINGERPRINT_LENGTH]


CacheKey = tuple[str, str]


@dataclass
class CachedDocument:
    """A document held in memory for one execution."""

    id: str
    metadata: dict[str, Any]
    content_base64: Optional[str] = None
    cached_at: float = 0.0
    last_accessed: float = 0.0
    access_count: int = 1

    @property
    def size_bytes(self) -> int:
        """Decoded size of the cached content."""
        if not self.content_base64:
            return 0
        return len(base64.b64decode(self.content_base64))


@dataclass
class CacheStats:
    """Counters reported alongside cache operations."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0

    def to_dict(self) -> dict:
        return {
            "cacheHits": self.hits,
            "cacheMisses": self.misses,
            "evictions": self.evictions,
        }


class DocumentCache:
    """
    In-memory document cache keyed by ``(execution_id, document_id)``.

    Entries expire ``ttl_seconds`` after they were stored; when more than
    ``max_entries`` are held, the least recently used entry is evicted.
    """

    def __init__(
        self,
        max_entries: int = 32,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[CacheKey, CachedDocument] = OrderedDict()
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not self._is_expired(entry)

    def put(
        self,
        execution_id: str,
        document_id: str,
        metadata: dict[str, Any],
        content_base64: Optional[str] = None,
    ) -> CachedDocument:
        """
        Store a document, replacing any previous entry for the same key.

        Args:
            execution_id: Owning execution
            document_id: Document identifier (universal id or key)
            metadata: Document metadata
            content_base64: Optional base64 encoded content

        Returns:
            The cached document
        """
        now = self._clock()
        key = (execution_id, document_id)
        document = CachedDocument(
            id=document_id,
            metadata=dict(metadata),
            content_base64=content_base64,
            cached_at=now,
            last_accessed=now,
        )
        self._entries[key] = document
        self._entries.move_to_end(key)

        self.evict_expired()
        while len(self._entries) > self.max_entries:
            self._evict_oldest()

        logger.debug(
            "document_cached",
            execution_id=execution_id,
            document_id=document_id,
            size=document.size_bytes,
        )
        return document

    def get(self, execution_id: str, document_id: str) -> Optional[CachedDocument]:
        """
        Look up a cached document.

        Returns:
            The document, or None if absent or expired
        """
        key = (execution_id, document_id)
        document = self._entries.get(key)

        if document is None or self._is_expired(document):
            if document is not None:
                del self._entries[key]
                self.stats.evictions += 1
            self.stats.misses += 1
            return None

        document.access_count += 1
        document.last_accessed = self._clock()
        self._entries.move_to_end(key)
        self.stats.hits += 1
        return document

    def drop_execution(self, execution_id: str) -> int:
        """
        Remove every document owned by an execution.

        Returns:
            Number of entries removed
        """
        keys = [key for key in self._entries if key[0] == execution_id]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.debug("execution_documents_dropped", execution_id=execution_id, count=len(keys))
        return len(keys)

    def evict_expired(self) -> int:
        """
        Remove entries older than the TTL.

        Returns:
            Number of entries evicted
        """
        expired = [key for key, doc in self._entries.items() if self._is_expired(doc)]
        for key in expired:
            del self._entries[key]
        self.stats.evictions += len(expired)
        return len(expired)

    def summary(self) -> dict:
        """Cache statistics in emission-friendly form."""
        memory_bytes = sum(doc.size_bytes for doc in self._entries.values())
        return {
            "totalCached": len(self._entries),
            "memoryUsedMB": round(memory_bytes / (1024 * 1024), 2),
            **self.stats.to_dict(),
        }

    def _evict_oldest(self) -> None:
        key, document = self._entries.popitem(last=False)
        self.stats.evictions += 1
        logger.debug("document_evicted", execution_id=key[0], document_id=document.id)

    def _is_expired(self, document: CachedDocument) -> bool:
        return self._clock() - document.cached_at > self.ttl_seconds
