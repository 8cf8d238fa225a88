"""
Type definitions for parser output and external lookup responses.

Lightweight tuples and TypedDicts passed between the parsers, the
resolver and the storage layer.
"""

from typing import NamedTuple, TypedDict


class RawHistoryRecord(NamedTuple):
    key: int
    total_price: int
    quantity: int


class PricingHistory(NamedTuple):
    index: dict[str, int]
    entries_by_item_id: dict[int, list[RawHistoryRecord]]
    max_key: int | None


class SearchCandidate(NamedTuple):
    id: int
    name: str


class NameMappingEvent(NamedTuple):
    id: int
    name: str


class NameCacheSnapshot(TypedDict):
    nameToId: dict[str, int]
    idToName: dict[str, str]
