"""Tests for core/sanity_client.py."""

import asyncio
import json

import httpx
import pytest

from config.settings import Settings
from core.sanity_client import SanityClient, SanityError


def make_client(handler, **settings_kwargs):
    settings = Settings(
        sanity_project_id="abc123",
        sanity_dataset="staging",
        **settings_kwargs,
    )
    probe = SanityClient(settings)
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=probe.base_url)
    return SanityClient(settings, http_client=http)


class TestSanityClient:
    """Tests for SanityClient."""

    def test_urls(self):
        """Test API and CDN hosts and the dataset query path."""
        settings = Settings(sanity_project_id="abc123", sanity_dataset="staging")
        assert SanityClient(settings).base_url == "https://abc123.api.sanity.io"
        assert SanityClient(settings).query_path == "/v2021-03-25/data/query/staging"

        cdn = Settings(sanity_project_id="abc123", sanity_use_cdn=True)
        assert SanityClient(cdn).base_url == "https://abc123.apicdn.sanity.io"

    def test_fetch_posts_query_and_params(self):
        """Test the query and params are POSTed and the result returned."""
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ms": 3, "query": "...", "result": [{"_id": "a"}]})

        client = make_client(handler)

        result = asyncio.run(client.fetch("*[_id in $ids]", {"ids": ["a"]}))

        assert result == [{"_id": "a"}]
        assert seen["method"] == "POST"
        assert seen["path"] == "/v2021-03-25/data/query/staging"
        assert seen["body"] == {"query": "*[_id in $ids]", "params": {"ids": ["a"]}}

    def test_error_status_raises(self):
        """Test API errors surface the Sanity error description."""

        def handler(request):
            return httpx.Response(
                400,
                json={"error": {"description": "unexpected token", "type": "queryParseError"}},
            )

        client = make_client(handler)

        with pytest.raises(SanityError, match="unexpected token") as exc_info:
            asyncio.run(client.fetch("*[", {}))

        assert exc_info.value.status_code == 400

    def test_non_json_error(self):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        client = make_client(handler)

        with pytest.raises(SanityError, match="Bad Gateway"):
            asyncio.run(client.fetch("*", {}))

    def test_not_configured(self):
        """Test a missing project id fails before any request."""
        client = SanityClient(Settings(sanity_project_id=""))

        with pytest.raises(ValueError, match="SANITY_PROJECT_ID"):
            asyncio.run(client.fetch("*", {}))

    def test_token_sent_as_bearer(self):
        """Test the lazily built HTTP client authenticates with the token."""
        settings = Settings(sanity_project_id="abc123", sanity_token="tok")
        client = SanityClient(settings)

        http = client._get_http()

        assert http.headers["authorization"] == "Bearer tok"
        assert str(http.base_url).startswith("https://abc123.api.sanity.io")
        asyncio.run(client.close())
