"""Plaid sandbox transactions provider."""

from __future__ import annotations

import asyncio
from datetime import date, timedelta
from typing import Any, Optional

import httpx

from ingestloop.config import IngestConfig
from ingestloop.errors import ConfigError, FetchError
from ingestloop.models import CredentialContext, Item
from ingestloop.providers.base import HttpProvider, int_option, status_kind
from ingestloop.sanitizer import TRANSACTION_PROFILE
from ingestloop.utils.result import Ok, Result

PLAID_URLS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}

PRODUCT_NOT_READY = "PRODUCT_NOT_READY"

DEFAULT_TEST_USERNAME = "user_transactions_dynamic"
DEFAULT_TEST_PASSWORD = "pass_good"
DEFAULT_INSTITUTION_ID = "ins_109508"
DEFAULT_DAYS_BACK = 30
DEFAULT_MAX_TRANSACTIONS = 100


def get_plaid_base_url(environment: Optional[str]) -> str:
    """Base URL for a Plaid environment, sandbox if unknown."""
    return PLAID_URLS.get(environment or "sandbox", PLAID_URLS["sandbox"])


class PlaidProvider(HttpProvider):
    """Transactions of a Plaid sandbox institution."""

    source_key_aliases = ("institutionId",)
    credential_name = "plaid"
    required_credentials = ("clientId", "secret")
    sanitize_profile = TRANSACTION_PROFILE

    def __init__(
        self,
        config: Optional[IngestConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        today: Optional[date] = None,
    ) -> None:
        super().__init__(config, transport)
        self._today = today

    @property
    def source_name(self) -> str:
        return "plaid"

    @property
    def display_name(self) -> str:
        return "Plaid"

    def validate_options(self, options: dict[str, Any]) -> Result[None, ConfigError]:
        result = int_option(options, "daysBack", DEFAULT_DAYS_BACK, 1, 730)
        if result.is_err():
            return result
        result = int_option(options, "maxTransactions", DEFAULT_MAX_TRANSACTIONS, 1, 500)
        if result.is_err():
            return result
        return Ok(None)

    async def fetch(
        self,
        source_key: str,
        context: CredentialContext,
        options: dict[str, Any],
    ) -> list[Item]:
        """
        Fetch sandbox transactions.

        A sandbox public token is created for the institution and exchanged
        for an access token before transactions are read. Transactions
        that are still being prepared are polled with a fixed delay.
        """
        credentials = self.get_credentials(context)
        base_url = get_plaid_base_url(credentials.get("environment"))
        auth = {"client_id": credentials["clientId"], "secret": credentials["secret"]}

        days_back = int_option(options, "daysBack", DEFAULT_DAYS_BACK, 1, 730).unwrap()
        count = int_option(
            options, "maxTransactions", DEFAULT_MAX_TRANSACTIONS, 1, 500
        ).unwrap()

        end_date = self._today or date.today()
        start_date = end_date - timedelta(days=days_back)

        self.logger.info(
            "plaid_fetch_started",
            institution_id=source_key,
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
            max_transactions=count,
        )

        async with self._client() as client:
            public = await self._call(client, f"{base_url}/sandbox/public_token/create", {
                **auth,
                "institution_id": source_key,
                "initial_products": ["transactions"],
                "options": {
                    "override_username": options.get("testUsername") or DEFAULT_TEST_USERNAME,
                    "override_password": options.get("testPassword") or DEFAULT_TEST_PASSWORD,
                },
            }, "Failed to create sandbox public token")

            exchanged = await self._call(client, f"{base_url}/item/public_token/exchange", {
                **auth,
                "public_token": public.get("public_token"),
            }, "Failed to exchange public token")

            data = await self._get_transactions(client, base_url, {
                **auth,
                "access_token": exchanged.get("access_token"),
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "options": {"count": count, "offset": 0},
            })

        transactions = data.get("transactions")
        if not isinstance(transactions, list):
            raise FetchError("Transactions response has no transaction list", kind=FetchError.MALFORMED)

        self.logger.info(
            "plaid_fetch_completed",
            institution_id=source_key,
            transactions=len(transactions),
            total=data.get("total_transactions"),
        )
        return transactions

    async def _get_transactions(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        body: dict[str, Any],
    ) -> dict[str, Any]:
        max_attempts = self.config.retry.max_attempts
        delay = self.config.retry.delay_seconds

        for attempt in range(1, max_attempts + 1):
            data, response = await self._post(client, f"{base_url}/transactions/get", body)

            if data.get("error_code") == PRODUCT_NOT_READY:
                if attempt < max_attempts:
                    self.logger.info(
                        "plaid_product_not_ready",
                        attempt=attempt,
                        max_attempts=max_attempts,
                        retry_in=delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise FetchError(
                    f"Transactions not ready after {max_attempts} attempts. "
                    "Try again in a few seconds.",
                    kind=FetchError.NOT_READY,
                    status_code=response.status_code,
                )

            self._check(data, response, "Failed to fetch transactions")
            return data

        # Unreachable while max_attempts >= 1
        raise FetchError("Failed to fetch transactions after max retries", kind=FetchError.NOT_READY)

    async def _call(
        self,
        client: httpx.AsyncClient,
        url: str,
        body: dict[str, Any],
        failure: str,
    ) -> dict[str, Any]:
        data, response = await self._post(client, url, body)
        self._check(data, response, failure)
        return data

    async def _post(
        self,
        client: httpx.AsyncClient,
        url: str,
        body: dict[str, Any],
    ) -> tuple[dict[str, Any], httpx.Response]:
        """POST a body, decoding JSON even from error responses."""
        try:
            response = await client.post(url, json=body)
        except httpx.RequestError as e:
            raise FetchError(f"Network error: {e}", kind=FetchError.NETWORK) from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            raise FetchError("Malformed response from Plaid", kind=FetchError.MALFORMED)
        return data, response

    @staticmethod
    def _check(data: dict[str, Any], response: httpx.Response, failure: str) -> None:
        if response.is_error or data.get("error_code"):
            detail = data.get("error_message") or response.reason_phrase
            raise FetchError(
                f"{failure}: {detail}",
                kind=status_kind(response.status_code) if response.is_error else FetchError.HTTP,
                status_code=response.status_code,
            )
