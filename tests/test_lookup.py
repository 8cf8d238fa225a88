"""Tests for lookup module."""

import httpx
import pytest

from price_ledger.cache import CacheClient
from price_ledger.exceptions import LookupServiceError
from price_ledger.lookup import WowheadClient
from price_ledger.types import SearchCandidate

BASE_URL = "https://wowhead.test/wotlk"

ITEM_XML = """<?xml version="1.0" encoding="UTF-8"?>
<wowhead><item id="36908">
<name><![CDATA[Frost Lotus]]></name><quality id="3">Rare</quality>
</item></wowhead>"""

SEARCH_XML = """<?xml version="1.0" encoding="UTF-8"?>
<wowhead><items>
<item id="36908"><name>Frost Lotus</name></item>
<item id="44958"><name>Frost Lotus Seed</name></item>
<item><name>No Id</name></item>
</items></wowhead>"""


def _client(handler, cache: CacheClient | None = None) -> tuple[WowheadClient, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
    return WowheadClient(BASE_URL, client=http_client, cache=cache), requests


@pytest.mark.asyncio
async def test_fetch_canonical_name():
    client, requests = _client(lambda request: httpx.Response(200, text=ITEM_XML))

    result = await client.fetch_canonical_name(36908)

    assert result == "Frost Lotus"
    assert str(requests[0].url) == f"{BASE_URL}/item=36908&xml"


@pytest.mark.asyncio
async def test_fetch_canonical_name_caches_result(cache_client: CacheClient):
    client, requests = _client(lambda request: httpx.Response(200, text=ITEM_XML), cache_client)

    result1 = await client.fetch_canonical_name(36908)
    result2 = await client.fetch_canonical_name(36908)

    assert result1 == result2 == "Frost Lotus"
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_fetch_canonical_name_not_found():
    not_found = "<wowhead><error>Item not found!</error></wowhead>"
    client, _ = _client(lambda request: httpx.Response(200, text=not_found))

    assert await client.fetch_canonical_name(1) is None


@pytest.mark.asyncio
async def test_fetch_canonical_name_invalid_id():
    client, requests = _client(lambda request: httpx.Response(200, text=ITEM_XML))

    with pytest.raises(LookupServiceError, match="Invalid item ID"):
        await client.fetch_canonical_name(0)

    with pytest.raises(LookupServiceError, match="Invalid item ID"):
        await client.fetch_canonical_name(-1)

    assert requests == []


@pytest.mark.asyncio
async def test_fetch_canonical_name_http_error():
    client, _ = _client(lambda request: httpx.Response(503))

    with pytest.raises(LookupServiceError, match="Failed to fetch item 36908: HTTP 503"):
        await client.fetch_canonical_name(36908)


@pytest.mark.asyncio
async def test_fetch_canonical_name_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection failed", request=request)

    client, _ = _client(handler)

    with pytest.raises(LookupServiceError, match="Network error fetching item 36908"):
        await client.fetch_canonical_name(36908)


@pytest.mark.asyncio
async def test_fetch_canonical_name_malformed_xml():
    client, _ = _client(lambda request: httpx.Response(200, text="<html><body>oops"))

    with pytest.raises(LookupServiceError, match="Malformed XML"):
        await client.fetch_canonical_name(36908)


@pytest.mark.asyncio
async def test_search_by_name():
    client, requests = _client(lambda request: httpx.Response(200, text=SEARCH_XML))

    result = await client.search_by_name("Frost Lotus")

    assert result == [
        SearchCandidate(id=36908, name="Frost Lotus"),
        SearchCandidate(id=44958, name="Frost Lotus Seed"),
    ]
    assert requests[0].url.path == "/wotlk/search"
    assert requests[0].url.params["q"] == "Frost Lotus"


@pytest.mark.asyncio
async def test_search_by_name_caches_results(cache_client: CacheClient):
    client, requests = _client(lambda request: httpx.Response(200, text=SEARCH_XML), cache_client)

    result1 = await client.search_by_name("Frost Lotus")
    result2 = await client.search_by_name("Frost Lotus")

    assert result1 == result2
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_search_by_name_empty_query():
    client, requests = _client(lambda request: httpx.Response(200, text=SEARCH_XML))

    assert await client.search_by_name("   ") == []
    assert requests == []


@pytest.mark.asyncio
async def test_client_closes_owned_http_client():
    async with WowheadClient(BASE_URL) as client:
        http_client = client._client

    assert http_client.is_closed
