"""
Line-oriented parsers for the tables found in Auctionator.lua.

Each parser accepts a table span produced by
``price_ledger.extract.extract_table_block`` and tracks brace depth one
line at a time. Nothing here raises on bad data: entries that cannot be
interpreted are skipped and the rest of the table is still read.
"""

import logging
import re

from price_ledger.extract import extract_bracket_key_value
from price_ledger.names import decode_html_entities, normalize_item_name
from price_ledger.types import PricingHistory, RawHistoryRecord

log = logging.getLogger(__name__)

_INTEGER_PATTERN = re.compile(r"(-?\d+)")
_ITEM_START_PATTERN = re.compile(r'^\["([^"]+)"\]\s*=\s*{\s*,?\s*$')
_ITEM_ID_VALUE_PATTERN = re.compile(r'"(\d+):')
_QUOTED_VALUE_PATTERN = re.compile(r'^"([^"]+)"')
_TIME_KEY_PATTERN = re.compile(r"^\d+$")

_LEGACY_ID_PATTERN = re.compile(r'\["is"\]\s*=\s*"(\d+):')
_LEGACY_PRICE_PATTERNS = [
    re.compile(r'\["price"\]\s*=\s*(\d+)'),
    re.compile(r'\["mr"\]\s*=\s*(\d+)'),
    re.compile(r'\["minBuyout"\]\s*=\s*(\d+)'),
    re.compile(r'\["marketValue"\]\s*=\s*(\d+)'),
    re.compile(r'\["recent"\]\s*=\s*(\d+)'),
    re.compile(r'\["historical"\]\s*=\s*(\d+)'),
    # historical spillover keys
    re.compile(r'\["H\d+"\]\s*=\s*(\d+)'),
]
_LEGACY_BLOCK_CLOSE = ("}", "},", "}, --")


def _step_depth(depth: int, raw_line: str) -> int:
    return max(depth + raw_line.count("{") - raw_line.count("}"), 0)


def parse_named_price_database(table_block: str) -> dict[str, int]:
    """
    Parse ``realm -> {item name -> price}`` into ``{decoded name: min price}``.

    Keys at depth 1 opening a nested table set the current realm; scalar
    entries below it are prices. The cheapest price seen for a name wins
    across realms and duplicate records.
    """
    prices: dict[str, int] = {}
    depth = 0
    current_realm: str | None = None
    skipped = 0

    for raw_line in table_block.splitlines():
        line = raw_line.strip()
        key_value = extract_bracket_key_value(line) if line else None

        if key_value:
            key, raw_value = key_value
            if raw_value.startswith("{"):
                if depth == 1:
                    current_realm = key
            elif depth >= 2 and current_realm:
                match = _INTEGER_PATTERN.search(raw_value)
                price = int(match.group(1)) if match else 0
                if price > 0:
                    name = decode_html_entities(key)
                    existing = prices.get(name)
                    if existing is None or price < existing:
                        prices[name] = price
                else:
                    skipped += 1

        depth = _step_depth(depth, raw_line)
        if depth < 2:
            current_realm = None

    if skipped:
        log.debug("Skipped %d price entries without a positive value", skipped)
    return prices


def parse_pricing_history(table_block: str) -> PricingHistory:
    """
    Parse per-item pricing history blocks.

    Each block looks like::

        ["Frost Lotus"] = {
            ["is"] = "36908:0:0:0:0",
            ["4456789"] = "1500:3",
        },

    The ``is`` entry carries the item ID; every numeric key is a relative
    time key with a ``"<total price>:<quantity>"`` value. Returns the
    name index, the raw records grouped by item ID and the highest time
    key seen anywhere in the table.
    """
    index: dict[str, int] = {}
    entries_by_item_id: dict[int, list[RawHistoryRecord]] = {}
    max_key: int | None = None

    depth = 0
    current_name: str | None = None
    current_item_id: int | None = None
    pending: list[RawHistoryRecord] = []

    def commit() -> None:
        nonlocal current_name, current_item_id, pending
        if current_name and current_item_id is not None:
            index[current_name] = current_item_id
            if pending:
                entries_by_item_id.setdefault(current_item_id, []).extend(pending)
        current_name = None
        current_item_id = None
        pending = []

    for raw_line in table_block.splitlines():
        line = raw_line.strip()

        item_start = _ITEM_START_PATTERN.match(line) if line else None
        if item_start and depth == 1:
            commit()
            current_name = normalize_item_name(decode_html_entities(item_start.group(1)))
            depth = _step_depth(depth, raw_line)
            continue

        key_value = extract_bracket_key_value(line) if line and current_name else None
        if key_value:
            key, raw_value = key_value
            if key == "is":
                id_match = _ITEM_ID_VALUE_PATTERN.search(raw_value)
                if id_match:
                    current_item_id = int(id_match.group(1))
                    index[current_name] = current_item_id
            elif _TIME_KEY_PATTERN.match(key):
                record = _parse_history_value(int(key), raw_value)
                if record is not None:
                    pending.append(record)
                    if max_key is None or record.key > max_key:
                        max_key = record.key

        depth = _step_depth(depth, raw_line)
        if depth < 2 and current_name:
            commit()

    commit()
    return PricingHistory(index=index, entries_by_item_id=entries_by_item_id, max_key=max_key)


def _parse_history_value(key: int, raw_value: str) -> RawHistoryRecord | None:
    value = raw_value.split("--")[0].strip()
    value = re.sub(r"[},]$", "", value).strip()
    match = _QUOTED_VALUE_PATTERN.match(value)
    if not match:
        return None

    price_part, _, quantity_part = match.group(1).partition(":")
    try:
        total_price = int(price_part)
    except ValueError:
        return None
    if total_price <= 0:
        return None

    try:
        quantity = int(quantity_part) if quantity_part else 1
    except ValueError:
        quantity = 1
    if quantity <= 0:
        quantity = 1

    return RawHistoryRecord(key=key, total_price=total_price, quantity=quantity)


def parse_legacy_price_database(table_block: str) -> dict[int, int]:
    """
    Parse the old flat ``["is"] = "<id>:..."`` layout into ``{item ID: price}``.

    Order dependent: a price belongs to the most recent ``is`` marker and
    is committed when the next marker or a closing brace line is reached.
    """
    prices: dict[int, int] = {}
    current_item_id: int | None = None
    current_price: int | None = None

    for raw_line in table_block.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        id_match = _LEGACY_ID_PATTERN.search(line)
        if id_match:
            if current_item_id is not None and current_price is not None:
                prices[current_item_id] = current_price
                current_price = None
            current_item_id = int(id_match.group(1))
            continue

        for pattern in _LEGACY_PRICE_PATTERNS:
            match = pattern.search(line)
            if match:
                price = int(match.group(1))
                if price > 0:
                    current_price = price
                break

        if line.startswith("},") or line in _LEGACY_BLOCK_CLOSE:
            if current_item_id is not None and current_price is not None:
                prices[current_item_id] = current_price
            current_item_id = None
            current_price = None

    if current_item_id is not None and current_price is not None:
        prices[current_item_id] = current_price

    return prices
