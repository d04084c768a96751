"""Tests for the Firecrawl HTTP adapter using httpx.MockTransport."""

import json

import httpx
import pytest

from product_research.exceptions import (
    AuthenticationError,
    BillingError,
    ConfigurationError,
    ExtractFailure,
    RateLimitError,
    SearchFailure,
)
from product_research.providers.firecrawl import FirecrawlClient

BASE_URL = "https://firecrawl.test/v2"


def _client(handler, sleeps=None, **kwargs):
    http = httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    sleeper = sleeps.append if sleeps is not None else (lambda _s: None)
    return FirecrawlClient("fc-test", base_url=BASE_URL, client=http, sleeper=sleeper, **kwargs)


class TestConstruction:

    def test_missing_key_rejected(self):
        with pytest.raises(ConfigurationError):
            FirecrawlClient("")

    def test_from_settings(self, settings):
        with FirecrawlClient.from_settings(settings) as client:
            assert client.base_url == settings.FIRECRAWL_BASE_URL
            assert client.max_polls == settings.EXTRACT_MAX_POLLS


class TestSearch:

    def test_request_and_grouped_response(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "data": {"web": [
                {"url": "https://cartridge.ru/hp-w1331x", "title": "HP W1331X", "description": "Картридж"},
                {"title": "no url"},
            ]}})

        hits = _client(handler).search("HP W1331X compatible printers", limit=5, locale="ru")
        assert seen["path"] == "/v2/search"
        assert seen["auth"] == "Bearer fc-test"
        assert seen["body"] == {
            "query": "HP W1331X compatible printers",
            "limit": 5,
            "sources": [{"type": "web"}],
            "country": "RU",
        }
        assert [h.url for h in hits] == ["https://cartridge.ru/hp-w1331x"]
        assert hits[0].snippet == "Картридж"
        assert hits[0].provider == "firecrawl"

    def test_flat_image_response(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": [{"imageUrl": "https://img.ru/1.jpg"}]})

        hits = _client(handler).search("HP W1331X photo", limit=3, result_kind="images")
        assert [h.url for h in hits] == ["https://img.ru/1.jpg"]

    def test_missing_data_is_empty(self):
        hits = _client(lambda r: httpx.Response(200, json={"success": True})).search("q", limit=3)
        assert hits == []

    @pytest.mark.parametrize("status,exc", [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (402, BillingError),
        (429, RateLimitError),
        (404, SearchFailure),
    ])
    def test_status_mapping(self, status, exc):
        client = _client(lambda r: httpx.Response(status, json={"success": False}))
        with pytest.raises(exc) as info:
            client.search("q", limit=3)
        assert info.value.status_code == status
        assert info.value.provider == "firecrawl"

    def test_invalid_json(self):
        client = _client(lambda r: httpx.Response(200, content=b"<html>"))
        with pytest.raises(SearchFailure):
            client.search("q", limit=3)

    def test_unsuccessful_body(self):
        client = _client(lambda r: httpx.Response(200, json={"success": False, "error": "bad query"}))
        with pytest.raises(SearchFailure, match="bad query"):
            client.search("q", limit=3)


class TestExtract:

    def test_inline_data(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["urls"] == ["https://nix.ru/1"]
            assert body["schema"] == {"type": "object"}
            return httpx.Response(200, json={"success": True, "status": "completed", "data": {"length_mm": 380}})

        assert _client(handler).extract(["https://nix.ru/1"], "dims", {"type": "object"}) == {"length_mm": 380}

    def test_polls_until_completed(self):
        sleeps = []
        responses = iter([
            {"success": True, "status": "processing"},
            {"success": True, "status": "completed", "data": {"printers": ["HP LaserJet Pro 4003dn"]}},
        ])

        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"success": True, "id": "job-1"})
            assert request.url.path == "/v2/extract/job-1"
            return httpx.Response(200, json=next(responses))

        client = _client(handler, sleeps=sleeps, poll_seconds=0.5)
        assert client.extract(["https://cartridge.ru/a"], "printers", {}) == {"printers": ["HP LaserJet Pro 4003dn"]}
        assert sleeps == [0.5, 0.5]

    def test_failed_job(self):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"success": True, "id": "job-2"})
            return httpx.Response(200, json={"success": True, "status": "failed", "error": "blocked"})

        with pytest.raises(ExtractFailure, match="blocked"):
            _client(handler).extract(["https://cartridge.ru/a"], "x", {})

    def test_poll_limit(self):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"success": True, "id": "job-3"})
            return httpx.Response(200, json={"success": True, "status": "processing"})

        with pytest.raises(ExtractFailure, match="did not finish"):
            _client(handler, max_polls=2).extract(["https://cartridge.ru/a"], "x", {})

    def test_no_data_no_job(self):
        with pytest.raises(ExtractFailure):
            _client(lambda r: httpx.Response(200, json={"success": True})).extract(["u"], "x", {})

    def test_auth_error_is_critical(self):
        with pytest.raises(AuthenticationError):
            _client(lambda r: httpx.Response(401, json={})).extract(["u"], "x", {})


class TestScrape:

    def test_scrape_markdown(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {
                "markdown": "# HP W1331X", "metadata": {"title": "HP W1331X"},
            }})

        result = _client(handler).scrape("https://cartridge.ru/hp-w1331x")
        assert result.markdown == "# HP W1331X"
        assert result.structured_fields == {"title": "HP W1331X"}
