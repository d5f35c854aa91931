"""Unit tests for matchbook.services.url_expander."""

import httpx
import pytest

from matchbook.config import Settings
from matchbook.core.exceptions import ExpansionFailedError
from matchbook.services.url_expander import (
    HEAD_USER_AGENT,
    LinkExpander,
    extract_embedded_name,
)

SHORT_URL = "https://maps.app.goo.gl/xYz987"
MAPS_URL = "https://www.google.com/maps/place/Big+Ben/@51.5007292,-0.1246254,17z"
CONSENT_URL = (
    "https://consent.google.com/ml?continue=https%3A%2F%2Fwww.google.com%2Fmaps"
    "%2Fplace%2FBig%2BBen%2F%4051.5%2C-0.12%2C17z&gl=GB"
)
PAGE_WITH_NAME = (
    '<html><script>window.APP_INITIALIZATION_STATE=[[["0x487604c38c8cd1d9:'
    '0xb78f2474b9a45aa9","Big Ben",null,null,null]]]</script></html>'
)


def _expander(handler) -> LinkExpander:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LinkExpander(http_client=client, settings=Settings())


def _redirect(location: str) -> httpx.Response:
    return httpx.Response(302, headers={"Location": location})


class TestExtractEmbeddedName:
    def test_found(self):
        assert extract_embedded_name(PAGE_WITH_NAME) == "Big Ben"

    def test_json_escapes_decoded(self):
        html = '["0x1:0x2","Caf\\u00e9 \\u0026 Bar",null,null'
        assert extract_embedded_name(html) == "Café & Bar"

    def test_absent(self):
        assert extract_embedded_name("<html></html>") is None
        assert extract_embedded_name("") is None


class TestExpand:
    @pytest.mark.asyncio
    async def test_head_follows_redirects(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.headers["User-Agent"]))
            if request.url.host == "maps.app.goo.gl":
                return _redirect(MAPS_URL)
            return httpx.Response(200)

        result = await _expander(handler).expand(SHORT_URL)
        assert result.url == MAPS_URL
        assert result.via_consent is False
        assert result.embedded_name is None
        assert seen[0] == ("HEAD", HEAD_USER_AGENT)

    @pytest.mark.asyncio
    async def test_consent_interstitial_uses_continue_target(self):
        def handler(request):
            if request.url.host == "maps.app.goo.gl":
                return _redirect(CONSENT_URL)
            return httpx.Response(200)

        result = await _expander(handler).expand(SHORT_URL)
        assert result.via_consent is True
        assert result.url == "https://www.google.com/maps/place/Big+Ben/@51.5,-0.12,17z"

    @pytest.mark.asyncio
    async def test_falls_back_to_get_and_reads_embedded_name(self):
        methods = []

        def handler(request):
            methods.append(request.method)
            if request.method == "HEAD":
                return httpx.Response(405)
            if request.url.host == "maps.app.goo.gl":
                return _redirect(MAPS_URL)
            return httpx.Response(200, text=PAGE_WITH_NAME)

        result = await _expander(handler).expand(SHORT_URL)
        assert methods[0] == "HEAD"
        assert "GET" in methods
        assert result.url == MAPS_URL
        assert result.embedded_name == "Big Ben"

    @pytest.mark.asyncio
    async def test_non_maps_destination_fails(self):
        def handler(request):
            if request.url.host == "maps.app.goo.gl":
                return _redirect("https://example.com/landing")
            return httpx.Response(200)

        with pytest.raises(ExpansionFailedError) as exc_info:
            await _expander(handler).expand(SHORT_URL)
        assert exc_info.value.short_url == SHORT_URL

    @pytest.mark.asyncio
    async def test_network_failure_fails(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ExpansionFailedError):
            await _expander(handler).expand(SHORT_URL)

    @pytest.mark.asyncio
    async def test_both_methods_rejected(self):
        with pytest.raises(ExpansionFailedError):
            await _expander(lambda r: httpx.Response(500)).expand(SHORT_URL)
