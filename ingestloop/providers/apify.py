"""Apify run results provider."""

from __future__ import annotations

from typing import Any

from ingestloop.errors import FetchError
from ingestloop.models import CredentialContext, Item
from ingestloop.providers.base import HttpProvider
from ingestloop.sanitizer import CRAWL_PAGE_PROFILE

APIFY_API_BASE = "https://api.apify.com/v2"


class ApifyProvider(HttpProvider):
    """Dataset items produced by an Apify actor run."""

    source_key_aliases = ("runId",)
    credential_name = "apify"
    required_credentials = ("token",)
    sanitize_profile = CRAWL_PAGE_PROFILE

    base_url = APIFY_API_BASE

    @property
    def source_name(self) -> str:
        return "apify"

    @property
    def display_name(self) -> str:
        return "Apify API"

    async def fetch(
        self,
        source_key: str,
        context: CredentialContext,
        options: dict[str, Any],
    ) -> list[Item]:
        """
        Fetch every dataset item of an actor run.

        The run is resolved to its default dataset, which is then read in
        pages until a short page is returned.
        """
        token = self.get_credentials(context)["token"]
        headers = {"Authorization": f"Bearer {token}"}
        page_size = self.config.http.page_size

        self.logger.info("apify_fetch_started", run_id=source_key)

        async with self._client(headers=headers) as client:
            run = await self._request_json(client, "GET", f"{self.base_url}/actor-runs/{source_key}")
            run_data = self._expect_mapping(run).get("data") or {}
            if not isinstance(run_data, dict):
                raise FetchError(
                    f"Malformed response from {self.display_name}: run data is not an object",
                    kind=FetchError.MALFORMED,
                )
            dataset_id = run_data.get("defaultDatasetId")
            if not dataset_id:
                raise FetchError("No dataset found for this run", kind=FetchError.MALFORMED)

            self.logger.debug(
                "apify_dataset_resolved",
                run_id=source_key,
                dataset_id=dataset_id,
                run_status=run_data.get("status"),
            )

            items: list[Item] = []
            offset = 0
            while True:
                page = await self._request_json(
                    client,
                    "GET",
                    f"{self.base_url}/datasets/{dataset_id}/items",
                    params={"limit": page_size, "offset": offset},
                )
                if not isinstance(page, list):
                    raise FetchError(
                        "Dataset items response is not a list",
                        kind=FetchError.MALFORMED,
                    )

                items.extend(page)
                self.logger.debug("apify_page_fetched", batch=len(page), total=len(items))

                if len(page) < page_size:
                    break
                offset += page_size

        self.logger.info("apify_fetch_completed", run_id=source_key, items=len(items))
        return items
