"""
Table extraction from raw Auctionator.lua text.

The saved-variables file is a Lua table dump with no formal grammar we
can rely on between add-on versions. Extraction here only balances
braces to cut out a named table; interpreting its contents is left to
the line-oriented parsers in ``price_ledger.parsers``.
"""

import logging
import re
from datetime import UTC, datetime

log = logging.getLogger(__name__)

PRICE_DATABASE_TABLE = "AUCTIONATOR_PRICE_DATABASE"
PRICING_HISTORY_TABLE = "AUCTIONATOR_PRICING_HISTORY"

_LAST_SCAN_PATTERN = re.compile(r"AUCTIONATOR_LAST_SCAN_TIME\s*=\s*(\d+)")
_BRACKET_KEY_VALUE_PATTERN = re.compile(r'^\["([^"]+)"\]\s*=\s*(.+)$')


def extract_table_block(content: str, table_name: str) -> str | None:
    """
    Return the ``<table_name> = {...}`` span, or None when it is missing.

    The span starts at the table name and ends at the brace that brings
    depth back to zero. Truncated input never yields a partial span.
    """
    start_token = f"{table_name} = {{"
    start = content.find(start_token)
    if start == -1:
        return None

    index = start + len(start_token)
    depth = 1
    while index < len(content) and depth > 0:
        char = content[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        index += 1

    if depth != 0:
        return None

    return content[start:index]


def extract_last_scan_time(content: str) -> int | None:
    """Return the last-scan marker in epoch seconds, or None when absent or out of range."""
    match = _LAST_SCAN_PATTERN.search(content)
    if not match:
        return None

    try:
        scan_time = int(match.group(1))
        datetime.fromtimestamp(scan_time, UTC)
    except (ValueError, OverflowError, OSError):
        log.warning("Ignoring out-of-range AUCTIONATOR_LAST_SCAN_TIME %.20s", match.group(1))
        return None
    return scan_time


def extract_bracket_key_value(line: str) -> tuple[str, str] | None:
    match = _BRACKET_KEY_VALUE_PATTERN.match(line)
    if not match:
        return None
    return match.group(1), match.group(2)
