"""
Wowhead XML client for item name and ID lookups.

Wraps the Wowhead XML endpoints (``item=<id>&xml`` and ``search?q=...&xml``)
used to fill gaps in the item name cache. The service has no availability
guarantee, so every failure surfaces as ``LookupServiceError`` and callers
decide whether to absorb it.
"""

import logging
import xml.etree.ElementTree as ET
from urllib.parse import quote

import httpx

from price_ledger.cache import CacheClient
from price_ledger.config import get_settings
from price_ledger.exceptions import LookupServiceError
from price_ledger.types import SearchCandidate

log = logging.getLogger(__name__)


class WowheadClient:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        cache: CacheClient | None = None,
    ):
        settings = get_settings()
        self._base_url = (base_url or settings.lookup_base_url).rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.api_timeout)
        self._cache = cache

    async def __aenter__(self) -> "WowheadClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _fetch_xml(self, url: str, description: str) -> ET.Element:
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise LookupServiceError(
                f"Failed to fetch {description}: HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise LookupServiceError(f"Network error fetching {description}: {e}") from e

        try:
            return ET.fromstring(response.text)
        except ET.ParseError as e:
            raise LookupServiceError(f"Malformed XML response for {description}: {e}") from e

    async def fetch_canonical_name(self, item_id: int) -> str | None:
        if item_id <= 0:
            raise LookupServiceError(f"Invalid item ID: {item_id}")

        if self._cache is not None:
            cached = self._cache.get_item_name(item_id)
            if cached is not None:
                log.debug("Item %d: using cached name", item_id)
                return cached

        log.info("Item %d: fetching name from Wowhead", item_id)
        root = await self._fetch_xml(f"{self._base_url}/item={item_id}&xml", f"item {item_id}")

        item_node = root if root.tag == "item" else root.find("item")
        if item_node is None:
            log.info("Item %d: not found on Wowhead", item_id)
            return None

        name = (item_node.findtext("name") or "").strip()
        if not name:
            lang = root.get("lang", "")
            name = (item_node.findtext(f"name_{lang}") or "").strip() if lang else ""
        if not name:
            return None

        if self._cache is not None:
            self._cache.set_item_name(item_id, name)
        return name

    async def search_by_name(self, query: str) -> list[SearchCandidate]:
        if not query or not query.strip():
            return []

        if self._cache is not None:
            cached = self._cache.get_search_results(query)
            if cached is not None:
                log.debug("Search '%s': using cached results", query)
                return [SearchCandidate(id=item_id, name=name) for item_id, name in cached]

        log.info("Search '%s': querying Wowhead", query)
        root = await self._fetch_xml(
            f"{self._base_url}/search?q={quote(query)}&xml", f"search results for '{query}'"
        )

        candidates: list[SearchCandidate] = []
        for node in root.iter("item"):
            raw_id = node.get("id")
            name = (node.findtext("name") or "".join(node.itertext())).strip()
            if not raw_id or not name:
                continue
            try:
                item_id = int(raw_id)
            except ValueError:
                continue
            candidates.append(SearchCandidate(id=item_id, name=name))

        if self._cache is not None:
            self._cache.set_search_results(query, [[c.id, c.name] for c in candidates])
        return candidates
