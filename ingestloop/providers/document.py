"""Single cached document provider."""

from __future__ import annotations

import base64
import binascii
from typing import Any, Optional

import httpx

from ingestloop.config import IngestConfig
from ingestloop.errors import ConfigError, FetchError, SizeLimitError
from ingestloop.models import CredentialContext, Item
from ingestloop.providers.base import HttpProvider, status_kind
from ingestloop.sanitizer import DOCUMENT_PROFILE
from ingestloop.utils.cache import DocumentCache
from ingestloop.utils.result import Err, Ok, Result

METADATA_FIELDS = ("size", "downloadUrl", "lastModified", "etag", "universalId")


class DocumentProvider(HttpProvider):
    """A single document, cached in memory for the execution."""

    source_key_aliases = ("key", "universalId")
    sanitize_profile = DOCUMENT_PROFILE

    def __init__(
        self,
        config: Optional[IngestConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache: Optional[DocumentCache] = None,
    ) -> None:
        super().__init__(config, transport)
        if cache is None:
            cache = DocumentCache(
                max_entries=self.config.cache.max_entries,
                ttl_seconds=self.config.cache.ttl_seconds,
            )
        self.cache = cache

    @property
    def source_name(self) -> str:
        return "document"

    def validate_options(self, options: dict[str, Any]) -> Result[None, ConfigError]:
        for name in ("size", "maxFileSizeMB"):
            raw = options.get(name)
            if raw is None:
                continue
            try:
                value = float(raw)
            except (TypeError, ValueError):
                return Err(ConfigError(field=name, message=f"Must be a number, got {raw!r}"))
            if value < 0:
                return Err(ConfigError(field=name, message=f"Must not be negative, got {raw!r}"))
        return Ok(None)

    async def fetch(
        self,
        source_key: str,
        context: CredentialContext,
        options: dict[str, Any],
    ) -> list[Item]:
        """
        Cache one document and describe it as a single item.

        Inline content is cached as given; otherwise the content is
        downloaded from ``downloadUrl`` when one is set. Downloaded content
        never travels in the item, downstream readers use the download URL.

        Raises:
            SizeLimitError: If the document exceeds the size limit
            FetchError: If inline content is not base64 or the download fails
        """
        document_id = str(options.get("universalId") or source_key)
        limit = self._limit_bytes(options)
        metadata = {"key": source_key}
        metadata.update({
            name: options[name] for name in METADATA_FIELDS if options.get(name) is not None
        })

        declared_size = int(float(metadata.get("size") or 0))
        metadata["size"] = declared_size
        if declared_size > limit:
            self.logger.warning(
                "document_too_large",
                document_id=document_id,
                size=declared_size,
                limit=limit,
            )
            raise SizeLimitError(declared_size, limit, subject="document")

        content = options.get("content")
        operation = "cached"
        if content is not None:
            inline_size = self._inline_size(content)
            if inline_size > limit:
                self.logger.warning(
                    "document_too_large",
                    document_id=document_id,
                    size=inline_size,
                    limit=limit,
                )
                raise SizeLimitError(inline_size, limit, subject="document")
            metadata["size"] = declared_size or inline_size
        elif metadata.get("downloadUrl"):
            content = await self._download(document_id, metadata["downloadUrl"], limit)
            metadata["size"] = declared_size or len(base64.b64decode(content))
            operation = "loaded"
        else:
            operation = "registered"

        self.cache.put(context.execution_id, document_id, metadata, content)

        item: dict[str, Any] = {
            "documentId": document_id,
            "operation": operation,
            **metadata,
            "cacheStats": self.cache.summary(),
        }
        if operation == "cached":
            item["content"] = content

        self.logger.info(
            "document_cached",
            document_id=document_id,
            operation=operation,
            size=metadata["size"],
        )
        return [item]

    def release(self, execution_id: str) -> None:
        self.cache.drop_execution(execution_id)

    def _limit_bytes(self, options: dict[str, Any]) -> int:
        max_mb = options.get("maxFileSizeMB")
        if max_mb is None:
            return self.config.limits.max_document_bytes
        return int(float(max_mb) * 1024 * 1024)

    @staticmethod
    def _inline_size(content: Any) -> int:
        """Decoded byte length of inline base64 content."""
        try:
            return len(base64.b64decode(content, validate=True))
        except (binascii.Error, TypeError, ValueError) as e:
            raise FetchError(
                f"Document content is not valid base64: {e}",
                kind=FetchError.MALFORMED,
            ) from e

    async def _download(self, document_id: str, url: str, limit: int) -> str:
        self.logger.info("document_download_started", document_id=document_id, url=url)

        async with self._client(follow_redirects=True) as client:
            try:
                response = await client.get(url)
            except httpx.RequestError as e:
                raise FetchError(
                    f"Failed to load content: {e}", kind=FetchError.NETWORK
                ) from e

        if response.is_error:
            raise FetchError(
                f"Failed to load content: HTTP {response.status_code}: {response.reason_phrase}",
                kind=status_kind(response.status_code),
                status_code=response.status_code,
            )

        body = response.content
        if len(body) > limit:
            raise SizeLimitError(len(body), limit, subject="document")

        return base64.b64encode(body).decode("ascii")
