"""Shared fixtures: an in-memory key-value store, a scripted lookup service and sample documents."""

import asyncio
import copy
from pathlib import Path
from typing import Any

import pytest

from price_ledger.cache import CacheClient
from price_ledger.types import SearchCandidate

SCAN_TIME = 1_700_000_000

SAMPLE_DOCUMENT = f"""
AUCTIONATOR_LAST_SCAN_TIME = {SCAN_TIME}
AUCTIONATOR_PRICE_DATABASE = {{
	["__dbversion"] = 4,
	["Icecrown_Alliance"] = {{
		["Frost Lotus"] = 500,
		["Saronite Ore"] = 95,
	}},
	["Icecrown_Horde"] = {{
		["Frost Lotus"] = 300,
	}},
}}
AUCTIONATOR_PRICING_HISTORY = {{
	["Frost Lotus"] = {{
		["is"] = "36908:0:0:0:0",
		["90"] = "3000:2",
		["100"] = "2800:1",
	}},
}}
"""

LEGACY_DOCUMENT = """
AUCTIONATOR_PRICE_DATABASE = {
	{
		["is"] = "1001:0:0:0:0",
		["price"] = 1250,
	},
}
"""


class MemoryStore:
    def __init__(self, data: dict[str, Any] | None = None):
        self.data = copy.deepcopy(data or {})
        self.writes: list[str] = []
        self.closed = False

    async def read_json(self, key: str) -> Any | None:
        return copy.deepcopy(self.data.get(key))

    async def write_json(self, key: str, value: Any) -> None:
        self.writes.append(key)
        self.data[key] = copy.deepcopy(value)

    async def delete_key(self, key: str) -> None:
        self.data.pop(key, None)

    async def aclose(self) -> None:
        self.closed = True


class FakeLookup:
    """Scripted lookup service; values may be exceptions to raise instead."""

    def __init__(
        self,
        search_results: dict[str, Any] | None = None,
        names: dict[int, Any] | None = None,
        delay: float = 0.0,
    ):
        self.search_results = search_results or {}
        self.names = names or {}
        self.delay = delay
        self.searches: list[str] = []
        self.fetches: list[int] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _call(self, result: Any) -> Any:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if isinstance(result, Exception):
            raise result
        return result

    async def search_by_name(self, query: str) -> list[SearchCandidate]:
        self.searches.append(query)
        return await self._call(self.search_results.get(query, []))

    async def fetch_canonical_name(self, item_id: int) -> str | None:
        self.fetches.append(item_id)
        return await self._call(self.names.get(item_id))


@pytest.fixture
def cache_client(tmp_path: Path) -> CacheClient:
    return CacheClient(tmp_path / "test_cache")


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()
