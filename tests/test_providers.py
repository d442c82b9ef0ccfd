"""Tests for providers, using httpx mock transports instead of live APIs."""

from __future__ import annotations

import base64
import json
from datetime import date
from pathlib import Path

import httpx
import pytest

from ingestloop.config import IngestConfig
from ingestloop.config.settings import HttpConfig
from ingestloop.errors import ConfigError, FetchError, SizeLimitError
from ingestloop.models import CredentialContext
from ingestloop.providers import (
    ApifyProvider,
    DocumentProvider,
    HyperbrowserProvider,
    PlaidProvider,
    SearchWebProvider,
    SheetsProvider,
    StaticProvider,
    get_provider,
    list_providers,
)
from ingestloop.providers.sheets import rows_to_items
from ingestloop.utils.cache import DocumentCache


def json_response(status: int, body) -> httpx.Response:
    return httpx.Response(status, json=body)


class TestRegistry:
    def test_list_providers(self):
        assert list_providers() == [
            "apify", "document", "hyperbrowser", "plaid", "searchweb", "sheets", "static",
        ]

    def test_get_provider_passes_kwargs(self):
        transport = httpx.MockTransport(lambda request: json_response(200, {}))
        provider = get_provider("apify", transport=transport)

        assert isinstance(provider, ApifyProvider)
        assert provider.transport is transport

    def test_unknown_provider(self):
        with pytest.raises(KeyError, match="Unknown source: nope"):
            get_provider("nope")


class TestApifyProvider:
    @pytest.mark.asyncio
    async def test_pages_through_dataset(self, credentials):
        dataset = [{"url": f"https://example.com/{i}"} for i in range(5)]
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path == "/v2/actor-runs/run-1":
                return json_response(200, {"data": {"defaultDatasetId": "ds-1"}})
            offset = int(request.url.params["offset"])
            limit = int(request.url.params["limit"])
            return json_response(200, dataset[offset:offset + limit])

        config = IngestConfig(http=HttpConfig(page_size=2))
        provider = ApifyProvider(config, transport=httpx.MockTransport(handler))

        items = await provider.fetch("run-1", credentials, {})

        assert items == dataset
        assert len(requests) == 4
        assert requests[0].headers["Authorization"] == "Bearer apify-token"

    @pytest.mark.asyncio
    async def test_run_without_dataset(self, credentials):
        transport = httpx.MockTransport(lambda request: json_response(200, {"data": {}}))

        with pytest.raises(FetchError, match="No dataset found for this run") as exc_info:
            await ApifyProvider(transport=transport).fetch("run-1", credentials, {})

        assert exc_info.value.kind == FetchError.MALFORMED

    @pytest.mark.asyncio
    async def test_run_data_not_an_object(self, credentials):
        transport = httpx.MockTransport(lambda request: json_response(200, {"data": [1, 2]}))

        with pytest.raises(FetchError, match="run data is not an object") as exc_info:
            await ApifyProvider(transport=transport).fetch("run-1", credentials, {})

        assert exc_info.value.kind == FetchError.MALFORMED

    @pytest.mark.asyncio
    async def test_auth_failure(self, credentials):
        transport = httpx.MockTransport(lambda request: httpx.Response(401, text="bad token"))

        with pytest.raises(FetchError) as exc_info:
            await ApifyProvider(transport=transport).fetch("run-1", credentials, {})

        assert exc_info.value.kind == FetchError.AUTH
        assert exc_info.value.status_code == 401
        assert str(exc_info.value) == "Apify API error: 401 - bad token"

    @pytest.mark.asyncio
    async def test_network_failure(self, credentials):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchError) as exc_info:
            await ApifyProvider(transport=httpx.MockTransport(handler)).fetch(
                "run-1", credentials, {}
            )

        assert exc_info.value.kind == FetchError.NETWORK

    @pytest.mark.asyncio
    async def test_missing_token(self):
        with pytest.raises(ConfigError) as exc_info:
            await ApifyProvider().fetch("run-1", CredentialContext(), {})

        assert exc_info.value.field == "credentials.apify.token"


class TestRowsToItems:
    def test_headers_name_columns(self):
        values = [["Name", "", "Age"], ["Ada", "x", 36], ["Bob"]]

        assert rows_to_items(values, use_headers=True) == [
            {"Name": "Ada", "Column2": "x", "Age": 36},
            {"Name": "Bob", "Column2": None, "Age": None},
        ]

    def test_single_row_stays_a_list(self):
        assert rows_to_items([["only", "row"]], use_headers=True) == [["only", "row"]]

    def test_without_headers(self):
        values = [["a", "b"], ["c", "d"]]
        assert rows_to_items(values, use_headers=False) == values


class TestSheetsProvider:
    @pytest.mark.asyncio
    async def test_fetch_rows(self, credentials):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response(200, {"values": [["id", "name"], [1, "one"], [2, "two"]]})

        provider = SheetsProvider(transport=httpx.MockTransport(handler))
        items = await provider.fetch("sheet-1", credentials, {"range": "Data!A1:B3"})

        assert items == [{"id": 1, "name": "one"}, {"id": 2, "name": "two"}]
        assert seen[0].url.params["key"] == "google-key"
        assert seen[0].url.params["valueRenderOption"] == "UNFORMATTED_VALUE"
        assert seen[0].url.path.endswith("/sheet-1/values/Data!A1:B3")

    @pytest.mark.asyncio
    async def test_use_headers_false(self, credentials):
        transport = httpx.MockTransport(
            lambda request: json_response(200, {"values": [["a"], ["b"]]})
        )

        items = await SheetsProvider(transport=transport).fetch(
            "sheet-1", credentials, {"useHeaders": "false"}
        )
        assert items == [["a"], ["b"]]

    @pytest.mark.asyncio
    async def test_empty_sheet(self, credentials):
        transport = httpx.MockTransport(lambda request: json_response(200, {}))
        assert await SheetsProvider(transport=transport).fetch("s", credentials, {}) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,message,kind", [
        (403, "Access denied", FetchError.AUTH),
        (404, "Spreadsheet not found", FetchError.NOT_FOUND),
        (400, "Invalid request: Unable to parse range", FetchError.HTTP),
    ])
    async def test_error_messages(self, credentials, status, message, kind):
        body = {"error": {"message": "Unable to parse range"}}
        transport = httpx.MockTransport(lambda request: json_response(status, body))

        with pytest.raises(FetchError) as exc_info:
            await SheetsProvider(transport=transport).fetch("s", credentials, {})

        assert str(exc_info.value).startswith(message)
        assert exc_info.value.kind == kind

    @pytest.mark.asyncio
    async def test_other_errors_use_generic_message(self, credentials):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(FetchError, match="Google Sheets API error: 500 - boom"):
            await SheetsProvider(transport=transport).fetch("s", credentials, {})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("values", [{"a": 1, "b": 2}, "A1:B2", [["id"], "not a row"]])
    async def test_values_not_rows(self, credentials, values):
        transport = httpx.MockTransport(lambda request: json_response(200, {"values": values}))

        with pytest.raises(FetchError, match="values are not a list of rows") as exc_info:
            await SheetsProvider(transport=transport).fetch("s", credentials, {})

        assert exc_info.value.kind == FetchError.MALFORMED


class PlaidSandbox:
    """Mock of the three Plaid endpoints used by the provider."""

    def __init__(self, not_ready: int = 0, transactions=None) -> None:
        self.not_ready = not_ready
        self.transactions = transactions if transactions is not None else [
            {"transaction_id": "tx-1", "amount": 4.5, "name": "Coffee"},
            {"transaction_id": "tx-2", "amount": 12.0, "name": "Lunch"},
        ]
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.calls.append((request.url.path, body))

        if request.url.path == "/sandbox/public_token/create":
            return json_response(200, {"public_token": "public-1"})
        if request.url.path == "/item/public_token/exchange":
            return json_response(200, {"access_token": "access-1"})
        if self.not_ready > 0:
            self.not_ready -= 1
            return json_response(400, {
                "error_code": "PRODUCT_NOT_READY",
                "error_message": "the requested product is not yet ready",
            })
        return json_response(200, {
            "transactions": self.transactions,
            "total_transactions": len(self.transactions),
        })


class TestPlaidProvider:
    @pytest.mark.asyncio
    async def test_token_exchange_and_transactions(self, credentials, fast_config):
        sandbox = PlaidSandbox()
        provider = PlaidProvider(
            fast_config,
            transport=httpx.MockTransport(sandbox),
            today=date(2024, 3, 31),
        )

        items = await provider.fetch("ins_109508", credentials, {"daysBack": 10})

        assert [item["transaction_id"] for item in items] == ["tx-1", "tx-2"]
        paths = [path for path, _ in sandbox.calls]
        assert paths == [
            "/sandbox/public_token/create",
            "/item/public_token/exchange",
            "/transactions/get",
        ]
        create_body = sandbox.calls[0][1]
        assert create_body["institution_id"] == "ins_109508"
        assert create_body["client_id"] == "client"
        assert sandbox.calls[1][1]["public_token"] == "public-1"
        get_body = sandbox.calls[2][1]
        assert get_body["access_token"] == "access-1"
        assert get_body["start_date"] == "2024-03-21"
        assert get_body["end_date"] == "2024-03-31"
        assert get_body["options"] == {"count": 100, "offset": 0}

    @pytest.mark.asyncio
    async def test_retries_until_ready(self, credentials, fast_config):
        sandbox = PlaidSandbox(not_ready=2)
        provider = PlaidProvider(fast_config, transport=httpx.MockTransport(sandbox))

        items = await provider.fetch("ins_1", credentials, {})

        assert len(items) == 2
        assert sum(1 for path, _ in sandbox.calls if path == "/transactions/get") == 3

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, credentials, fast_config):
        sandbox = PlaidSandbox(not_ready=10)
        provider = PlaidProvider(fast_config, transport=httpx.MockTransport(sandbox))

        with pytest.raises(FetchError) as exc_info:
            await provider.fetch("ins_1", credentials, {})

        assert exc_info.value.kind == FetchError.NOT_READY
        assert str(exc_info.value) == (
            "Transactions not ready after 3 attempts. Try again in a few seconds."
        )
        assert sum(1 for path, _ in sandbox.calls if path == "/transactions/get") == 3

    @pytest.mark.asyncio
    async def test_token_failure_surfaces_plaid_message(self, credentials, fast_config):
        def handler(request: httpx.Request) -> httpx.Response:
            return json_response(400, {
                "error_code": "INVALID_INSTITUTION",
                "error_message": "invalid institution_id provided",
            })

        provider = PlaidProvider(fast_config, transport=httpx.MockTransport(handler))

        with pytest.raises(FetchError) as exc_info:
            await provider.fetch("ins_bad", credentials, {})

        assert str(exc_info.value) == (
            "Failed to create sandbox public token: invalid institution_id provided"
        )

    def test_validate_options(self):
        provider = PlaidProvider()

        assert provider.validate_options({"daysBack": 30, "maxTransactions": 500}).is_ok()
        assert provider.validate_options({"daysBack": 0}).unwrap_err().field == "daysBack"
        assert provider.validate_options({"maxTransactions": 501}).is_err()
        assert provider.validate_options({"daysBack": "many"}).is_err()

    def test_environment_urls(self):
        from ingestloop.providers.plaid import get_plaid_base_url

        assert get_plaid_base_url("production") == "https://production.plaid.com"
        assert get_plaid_base_url(None) == "https://sandbox.plaid.com"
        assert get_plaid_base_url("unknown") == "https://sandbox.plaid.com"


class TestSearchWebProvider:
    @pytest.mark.asyncio
    async def test_maps_organic_results(self, credentials):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response(200, {"organic_results": [
                {"title": "Python", "link": "https://python.org", "source": "python.org",
                 "snippet": "Welcome", "position": 1},
                {"title": "No link"},
            ]})

        provider = SearchWebProvider(transport=httpx.MockTransport(handler))
        items = await provider.fetch("python", credentials, {"numResults": 5})

        assert items == [
            {"title": "Python", "url": "https://python.org", "source": "python.org",
             "snippet": "Welcome"},
            {"title": "No link", "url": "", "source": "", "snippet": ""},
        ]
        params = seen[0].url.params
        assert params["q"] == "python"
        assert params["num"] == "5"
        assert params["engine"] == "google"
        assert params["safe"] == "active"
        assert params["api_key"] == "search-key"

    @pytest.mark.asyncio
    async def test_error_names_the_api_once(self, credentials):
        transport = httpx.MockTransport(lambda request: httpx.Response(429, text="slow down"))

        with pytest.raises(FetchError) as exc_info:
            await SearchWebProvider(transport=transport).fetch("python", credentials, {})

        assert str(exc_info.value) == "SearchAPI error: 429 - slow down"

    @pytest.mark.asyncio
    async def test_organic_results_not_a_list(self, credentials):
        transport = httpx.MockTransport(
            lambda request: json_response(200, {"organic_results": 3})
        )

        with pytest.raises(FetchError, match="organic_results is not a list") as exc_info:
            await SearchWebProvider(transport=transport).fetch("python", credentials, {})

        assert exc_info.value.kind == FetchError.MALFORMED

    def test_validate_options(self):
        provider = SearchWebProvider()

        assert provider.validate_options({"numResults": 100, "safeSearch": "off"}).is_ok()
        assert provider.validate_options({"numResults": 101}).is_err()
        assert provider.validate_options({"safeSearch": "strict"}).unwrap_err().field == "safeSearch"


class TestHyperbrowserProvider:
    @pytest.mark.asyncio
    async def test_maps_links(self, credentials):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response(200, {"links": [
                {"text": "Docs", "href": "/docs", "absoluteUrl": "https://example.com/docs"},
                {"text": "Relative", "href": "https://example.com/a"},
            ], "pagesScraped": 1})

        provider = HyperbrowserProvider(transport=httpx.MockTransport(handler))
        items = await provider.fetch("https://example.com", credentials, {"maxPages": 2})

        assert items == [
            {"text": "Docs", "href": "/docs", "absoluteUrl": "https://example.com/docs"},
            {"text": "Relative", "href": "https://example.com/a",
             "absoluteUrl": "https://example.com/a"},
        ]
        payload = json.loads(seen[0].content)
        assert payload["url"] == "https://example.com"
        assert payload["maxPages"] == 2
        assert payload["extractionMode"] == "both"
        assert seen[0].headers["Authorization"] == "Bearer hb-key"

    @pytest.mark.asyncio
    async def test_links_not_a_list(self, credentials):
        transport = httpx.MockTransport(
            lambda request: json_response(200, {"links": {"href": "/docs"}})
        )

        with pytest.raises(FetchError, match="links is not a list") as exc_info:
            await HyperbrowserProvider(transport=transport).fetch(
                "https://example.com", credentials, {}
            )

        assert exc_info.value.kind == FetchError.MALFORMED

    def test_validate_options(self):
        provider = HyperbrowserProvider()

        assert provider.validate_options({"extractionMode": "links"}).is_ok()
        assert provider.validate_options({"extractionMode": "pdf"}).is_err()
        assert provider.validate_options({"maxPages": 51}).unwrap_err().field == "maxPages"


class TestDocumentProvider:
    @pytest.mark.asyncio
    async def test_inline_content_is_cached(self, credentials):
        cache = DocumentCache()
        provider = DocumentProvider(cache=cache)
        content = base64.b64encode(b"hello").decode()

        items = await provider.fetch(
            "docs/a.txt", credentials, {"content": content, "size": 5, "etag": "e1"}
        )

        item = items[0]
        assert item["documentId"] == "docs/a.txt"
        assert item["operation"] == "cached"
        assert item["etag"] == "e1"
        assert item["cacheStats"]["totalCached"] == 1
        assert cache.get("exec-test", "docs/a.txt").size_bytes == 5

    @pytest.mark.asyncio
    async def test_download_url_is_loaded(self, credentials):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"abc"))
        cache = DocumentCache()
        provider = DocumentProvider(transport=transport, cache=cache)

        items = await provider.fetch(
            "docs/b.bin",
            credentials,
            {"downloadUrl": "https://files.example.com/b", "universalId": "u-1"},
        )

        item = items[0]
        assert item["documentId"] == "u-1"
        assert item["operation"] == "loaded"
        assert item["size"] == 3
        assert "content" not in item
        assert cache.get("exec-test", "u-1").content_base64 == base64.b64encode(b"abc").decode()

    @pytest.mark.asyncio
    async def test_metadata_only_is_registered(self, credentials):
        items = await DocumentProvider().fetch("docs/c", credentials, {})
        assert items[0]["operation"] == "registered"

    @pytest.mark.asyncio
    async def test_declared_size_over_limit(self, credentials):
        provider = DocumentProvider()

        with pytest.raises(SizeLimitError) as exc_info:
            await provider.fetch("big", credentials, {"size": 3 * 1024 * 1024, "maxFileSizeMB": 1})

        assert "Document too large" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_downloaded_size_over_limit(self, credentials):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, content=b"x" * 2048)
        )
        provider = DocumentProvider(transport=transport)

        with pytest.raises(SizeLimitError):
            await provider.fetch(
                "big", credentials, {"downloadUrl": "https://f/x", "maxFileSizeMB": 0.001}
            )

    @pytest.mark.asyncio
    async def test_download_failure(self, credentials):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))

        with pytest.raises(FetchError, match="Failed to load content: HTTP 404"):
            await DocumentProvider(transport=transport).fetch(
                "gone", credentials, {"downloadUrl": "https://f/gone"}
            )

    @pytest.mark.asyncio
    async def test_release_drops_execution_documents(self, credentials):
        cache = DocumentCache()
        provider = DocumentProvider(cache=cache)
        await provider.fetch("docs/a", credentials, {"content": "QQ=="})

        provider.release("exec-test")

        assert len(cache) == 0

    def test_validate_options(self):
        provider = DocumentProvider()

        assert provider.validate_options({"size": 10, "maxFileSizeMB": "2.5"}).is_ok()
        assert provider.validate_options({"size": -1}).is_err()
        assert provider.validate_options({"maxFileSizeMB": "big"}).is_err()

    def test_empty_injected_cache_is_kept(self):
        cache = DocumentCache()

        assert len(cache) == 0
        assert DocumentProvider(cache=cache).cache is cache

    @pytest.mark.asyncio
    async def test_inline_content_must_be_base64(self, credentials):
        provider = DocumentProvider()

        with pytest.raises(FetchError, match="not valid base64") as exc_info:
            await provider.fetch("doc.txt", credentials, {"content": "hello"})

        assert exc_info.value.kind == FetchError.MALFORMED
        assert len(provider.cache) == 0

    @pytest.mark.asyncio
    async def test_inline_content_over_limit(self, credentials):
        content = base64.b64encode(b"x" * 2048).decode()

        with pytest.raises(SizeLimitError):
            await DocumentProvider().fetch(
                "big", credentials, {"content": content, "maxFileSizeMB": 0.001}
            )

    @pytest.mark.asyncio
    async def test_inline_size_defaults_to_decoded_length(self, credentials):
        content = base64.b64encode(b"hello").decode()

        items = await DocumentProvider().fetch("docs/a.txt", credentials, {"content": content})

        assert items[0]["size"] == 5


class TestStaticProvider:
    @pytest.mark.asyncio
    async def test_json_list(self, items_file: Path):
        items = await StaticProvider().fetch(str(items_file), CredentialContext(), {})
        assert [item["id"] for item in items] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_yaml_mapping_with_items_key(self, tmp_path: Path):
        path = tmp_path / "rows.yaml"
        path.write_text("rows:\n  - name: one\n  - name: two\n")

        items = await StaticProvider().fetch(str(path), CredentialContext(), {"itemsKey": "rows"})

        assert items == [{"name": "one"}, {"name": "two"}]

    @pytest.mark.asyncio
    async def test_relative_to_config_dir(self, tmp_path: Path):
        (tmp_path / "data.json").write_text('{"items": [1, 2]}')
        config = IngestConfig().with_paths(config_dir=tmp_path)

        items = await StaticProvider(config).fetch("data.json", CredentialContext(), {})

        assert items == [1, 2]

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FetchError) as exc_info:
            await StaticProvider().fetch(str(tmp_path / "nope.json"), CredentialContext(), {})

        assert exc_info.value.kind == FetchError.NOT_FOUND

    @pytest.mark.asyncio
    async def test_malformed_file(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text("{oops")

        with pytest.raises(FetchError) as exc_info:
            await StaticProvider().fetch(str(path), CredentialContext(), {})

        assert exc_info.value.kind == FetchError.MALFORMED

    @pytest.mark.asyncio
    async def test_non_list_payload(self, tmp_path: Path):
        path = tmp_path / "scalar.yaml"
        path.write_text("just a string\n")

        with pytest.raises(FetchError, match="No item list found"):
            await StaticProvider().fetch(str(path), CredentialContext(), {})
