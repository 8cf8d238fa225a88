"""
Price history reconciliation.

Turns relative pricing-history records into absolute observations and
merges observation histories from repeated imports. Every history is
kept sorted by time, free of exact ``(price, timestamp)`` duplicates and
trimmed to the most recent ``limit`` entries.
"""

import logging
import math
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime

from price_ledger.models import ItemPriceHistory, ParsedImport, PriceObservation
from price_ledger.types import RawHistoryRecord

log = logging.getLogger(__name__)

HISTORY_LIMIT = 50
SECONDS_PER_TIME_KEY = 60


def _append_unique(history: list[PriceObservation], entries: Iterable[PriceObservation]) -> None:
    seen = {(entry.price, entry.observed_at) for entry in history}
    for entry in entries:
        marker = (entry.price, entry.observed_at)
        if marker not in seen:
            seen.add(marker)
            history.append(entry)


def _sort_and_trim(history: list[PriceObservation], limit: int) -> ItemPriceHistory:
    if limit <= 0:
        return []
    history.sort(key=lambda entry: entry.observed_at)
    return history[-limit:]


def unit_price(total_price: int, quantity: int) -> int:
    # half-up, matching the add-on's own rounding
    return math.floor(total_price / max(quantity, 1) + 0.5)


def reconstruct_timestamp(
    key: int, max_key: int | None, anchor: int, seconds_per_key: int = SECONDS_PER_TIME_KEY
) -> datetime:
    """Map a relative time key onto an absolute UTC time, ``anchor`` being "now"."""
    seconds = anchor
    if max_key is not None:
        seconds = anchor - (max_key - key) * seconds_per_key
    return datetime.fromtimestamp(max(seconds, 0), UTC)


def convert_raw_history(
    raw_history: Mapping[int, list[RawHistoryRecord]],
    source: str,
    anchor: int,
    max_key: int | None = None,
    seconds_per_key: int = SECONDS_PER_TIME_KEY,
    limit: int = HISTORY_LIMIT,
) -> dict[int, ItemPriceHistory]:
    if max_key is None:
        keys = [record.key for records in raw_history.values() for record in records]
        max_key = max(keys) if keys else None

    history: dict[int, ItemPriceHistory] = {}
    dropped = 0
    for item_id, records in raw_history.items():
        entries: list[PriceObservation] = []
        for record in sorted(records, key=lambda r: r.key):
            price = unit_price(record.total_price, record.quantity)
            if record.total_price <= 0 or price <= 0:
                dropped += 1
                continue
            observed_at = reconstruct_timestamp(record.key, max_key, anchor, seconds_per_key)
            _append_unique(
                entries, [PriceObservation(price=price, observed_at=observed_at, source=source)]
            )

        if entries:
            history[item_id] = _sort_and_trim(entries, limit)

    if dropped:
        log.debug("Dropped %d history records with non-positive unit price", dropped)
    return history


def add_snapshot_prices(
    history: Mapping[int, ItemPriceHistory],
    prices: Mapping[int, int],
    observed_at: datetime,
    source: str,
    limit: int = HISTORY_LIMIT,
) -> dict[int, ItemPriceHistory]:
    """Record one observation per item at ``observed_at`` on top of ``history``."""
    result = {item_id: list(entries) for item_id, entries in history.items()}
    for item_id, price in prices.items():
        entries = result.get(item_id, [])
        _append_unique(
            entries, [PriceObservation(price=price, observed_at=observed_at, source=source)]
        )
        result[item_id] = _sort_and_trim(entries, limit)
    return result


def merge_histories(
    existing: Mapping[int, ItemPriceHistory],
    incoming: Mapping[int, ItemPriceHistory],
    limit: int = HISTORY_LIMIT,
) -> dict[int, ItemPriceHistory]:
    """
    Merge ``incoming`` observations into ``existing`` without mutating either.

    Items only present in ``existing`` are carried over untouched. Merging
    the same import twice is a no-op after the first time.
    """
    result = {item_id: list(entries) for item_id, entries in existing.items()}

    for item_id, entries in incoming.items():
        if not entries:
            continue
        updates = result.get(item_id, [])
        _append_unique(updates, entries)
        result[item_id] = _sort_and_trim(updates, limit)

    return result


def merge_with_existing(
    existing: ParsedImport | None, incoming: ParsedImport, limit: int = HISTORY_LIMIT
) -> ParsedImport:
    if existing is None:
        return incoming

    return ParsedImport(
        item_prices=merge_histories(existing.item_prices, incoming.item_prices, limit),
        imported_at=incoming.imported_at,
        source=incoming.source,
    )


def merge_prefer_recent(
    first: ParsedImport | None, second: ParsedImport | None, limit: int = HISTORY_LIMIT
) -> ParsedImport | None:
    """
    Unify two independently kept ledgers.

    The ledger imported later supplies the metadata and the other one is
    merged into it. When either import time is unknown, ``first`` is
    treated as the primary ledger.
    """
    if first is None:
        return second
    if second is None:
        return first

    primary, other = first, second
    if first.imported_at is not None and second.imported_at is not None:
        if second.imported_at > first.imported_at:
            primary, other = second, first

    return ParsedImport(
        item_prices=merge_histories(primary.item_prices, other.item_prices, limit),
        imported_at=primary.imported_at,
        source=primary.source,
    )


def latest_prices(ledger: ParsedImport) -> dict[int, int]:
    return {
        item_id: entries[-1].price for item_id, entries in ledger.item_prices.items() if entries
    }
