"""Hyperbrowser crawled links provider."""

from __future__ import annotations

from typing import Any

from ingestloop.errors import ConfigError
from ingestloop.models import CredentialContext, Item
from ingestloop.providers.base import HttpProvider, bool_option, int_option
from ingestloop.sanitizer import LINK_PROFILE
from ingestloop.utils.result import Err, Ok, Result

HYPERBROWSER_API_BASE = "https://api.hyperbrowser.ai/v1"

EXTRACTION_MODES = ("links", "content", "both")


class HyperbrowserProvider(HttpProvider):
    """Links found by crawling a web page."""

    source_key_aliases = ("url",)
    credential_name = "hyperbrowser"
    required_credentials = ("apiKey",)
    sanitize_profile = LINK_PROFILE

    base_url = HYPERBROWSER_API_BASE

    @property
    def source_name(self) -> str:
        return "hyperbrowser"

    @property
    def display_name(self) -> str:
        return "Hyperbrowser API"

    def validate_options(self, options: dict[str, Any]) -> Result[None, ConfigError]:
        mode = options.get("extractionMode")
        if mode is not None and mode not in EXTRACTION_MODES:
            return Err(ConfigError(
                field="extractionMode",
                message=f"Must be one of {', '.join(EXTRACTION_MODES)}, got {mode!r}",
            ))

        result = int_option(options, "maxPages", 1, 1, 50)
        if result.is_err():
            return result
        return Ok(None)

    async def fetch(
        self,
        source_key: str,
        context: CredentialContext,
        options: dict[str, Any],
    ) -> list[Item]:
        api_key = self.get_credentials(context)["apiKey"]
        payload = {
            "url": source_key,
            "extractionMode": options.get("extractionMode") or "both",
            "linkSelector": options.get("linkSelector"),
            "waitForSelector": options.get("waitForSelector"),
            "maxPages": int_option(options, "maxPages", 1, 1, 50).unwrap(),
            "formats": ["markdown"],
            "sessionOptions": {
                "useStealth": bool_option(options, "useStealth", False),
                "useProxy": bool_option(options, "useProxy", False),
                "solveCaptchas": bool_option(options, "solveCaptchas", False),
                "adblock": True,
                "acceptCookies": bool_option(options, "acceptCookies", False),
            },
        }

        self.logger.info("crawl_started", url=source_key, mode=payload["extractionMode"])

        headers = {"Authorization": f"Bearer {api_key}"}
        async with self._client(headers=headers) as client:
            data = await self._request_json(
                client, "POST", f"{self.base_url}/crawl", json=payload
            )

        data = self._expect_mapping(data)
        links = [
            {
                "text": link.get("text") or "",
                "href": link.get("href") or "",
                "absoluteUrl": link.get("absoluteUrl") or link.get("href") or "",
            }
            for link in self._expect_list(data.get("links"), "links")
            if isinstance(link, dict)
        ]

        self.logger.info(
            "crawl_completed",
            url=source_key,
            links=len(links),
            pages=data.get("pagesScraped", 1),
        )
        return links
