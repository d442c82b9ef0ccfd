"""SearchAPI web results provider."""

from __future__ import annotations

from typing import Any

from ingestloop.errors import ConfigError
from ingestloop.models import CredentialContext, Item
from ingestloop.providers.base import HttpProvider, int_option
from ingestloop.sanitizer import SEARCH_RESULT_PROFILE
from ingestloop.utils.result import Err, Ok, Result

SEARCHAPI_URL = "https://www.searchapi.io/api/v1/search"

SAFE_SEARCH_LEVELS = ("active", "off")


class SearchWebProvider(HttpProvider):
    """Organic Google results for a search query."""

    source_key_aliases = ("query",)
    credential_name = "searchapi"
    required_credentials = ("apiKey",)
    sanitize_profile = SEARCH_RESULT_PROFILE

    @property
    def source_name(self) -> str:
        return "searchweb"

    @property
    def display_name(self) -> str:
        return "SearchAPI"

    def validate_options(self, options: dict[str, Any]) -> Result[None, ConfigError]:
        result = int_option(options, "numResults", 10, 1, 100)
        if result.is_err():
            return result

        safe = options.get("safeSearch")
        if safe is not None and safe not in SAFE_SEARCH_LEVELS:
            return Err(ConfigError(
                field="safeSearch",
                message=f"Must be one of {', '.join(SAFE_SEARCH_LEVELS)}, got {safe!r}",
            ))
        return Ok(None)

    async def fetch(
        self,
        source_key: str,
        context: CredentialContext,
        options: dict[str, Any],
    ) -> list[Item]:
        api_key = self.get_credentials(context)["apiKey"]
        params = {
            "engine": "google",
            "q": source_key,
            "gl": options.get("country") or "us",
            "hl": options.get("language") or "en",
            "num": int_option(options, "numResults", 10, 1, 100).unwrap(),
            "safe": options.get("safeSearch") or "active",
            "api_key": api_key,
        }

        self.logger.info("search_started", query=source_key, num=params["num"])

        async with self._client(headers={"Accept": "application/json"}) as client:
            data = await self._request_json(client, "GET", SEARCHAPI_URL, params=params)

        results = [
            {
                "title": result.get("title") or "",
                "url": result.get("link") or "",
                "source": result.get("source") or "",
                "snippet": result.get("snippet") or "",
            }
            for result in self._expect_list(
                self._expect_mapping(data).get("organic_results"), "organic_results"
            )
            if isinstance(result, dict)
        ]

        self.logger.info("search_completed", query=source_key, results=len(results))
        return results
