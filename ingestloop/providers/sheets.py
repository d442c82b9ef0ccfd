"""Google Sheets rows provider."""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import quote

import httpx

from ingestloop.errors import FetchError
from ingestloop.models import CredentialContext, Item
from ingestloop.providers.base import HttpProvider, bool_option, status_kind
from ingestloop.sanitizer import SHEET_ROW_PROFILE

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
DEFAULT_RANGE = "Sheet1"


def rows_to_items(values: list[list[Any]], use_headers: bool) -> list[Item]:
    """
    Convert sheet values into items.

    With headers (and more than one row), the first row names the columns
    and every later row becomes a mapping; blank headers are named
    ``Column<n>`` and missing cells are None. Otherwise rows stay lists.
    """
    if not (use_headers and len(values) > 1):
        return list(values)

    headers = [
        str(header) if header not in (None, "") else f"Column{index + 1}"
        for index, header in enumerate(values[0])
    ]
    return [
        {
            header: row[index] if index < len(row) else None
            for index, header in enumerate(headers)
        }
        for row in values[1:]
    ]


class SheetsProvider(HttpProvider):
    """Rows of a Google Sheets range."""

    source_key_aliases = ("spreadsheetId",)
    credential_name = "googleApi"
    required_credentials = ("apiKey",)
    sanitize_profile = SHEET_ROW_PROFILE

    base_url = SHEETS_API_BASE

    @property
    def source_name(self) -> str:
        return "sheets"

    @property
    def display_name(self) -> str:
        return "Google Sheets API"

    async def fetch(
        self,
        source_key: str,
        context: CredentialContext,
        options: dict[str, Any],
    ) -> list[Item]:
        api_key = self.get_credentials(context)["apiKey"]
        sheet_range = options.get("range") or DEFAULT_RANGE
        use_headers = bool_option(options, "useHeaders", True)

        url = f"{self.base_url}/{source_key}/values/{quote(str(sheet_range), safe='')}"
        params = {
            "key": api_key,
            "majorDimension": "ROWS",
            "valueRenderOption": "UNFORMATTED_VALUE",
        }

        self.logger.info("sheet_fetch_started", spreadsheet_id=source_key, range=sheet_range)

        async with self._client() as client:
            data = await self._request_json(client, "GET", url, params=params)

        values = self._expect_mapping(data).get("values") or []
        if not isinstance(values, list) or not all(isinstance(row, list) for row in values):
            raise FetchError(
                f"Malformed response from {self.display_name}: values are not a list of rows",
                kind=FetchError.MALFORMED,
            )
        items = rows_to_items(values, use_headers)

        self.logger.info(
            "sheet_fetch_completed",
            spreadsheet_id=source_key,
            rows=len(values),
            items=len(items),
        )
        return items

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        message: Optional[str] = None

        if status == 403:
            message = (
                "Access denied. Make sure the spreadsheet is publicly accessible "
                "and the API key has Sheets API enabled."
            )
        elif status == 404:
            message = "Spreadsheet not found. Check the spreadsheet ID."
        elif status == 400:
            try:
                detail = response.json().get("error", {}).get("message")
            except (ValueError, AttributeError):
                detail = None
            message = f"Invalid request: {detail or 'Check your range format'}"

        if message is None:
            super()._raise_for_status(response)

        raise FetchError(message, kind=status_kind(status), status_code=status)
