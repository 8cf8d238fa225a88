"""
Item name normalization and the reference name index.

The reference index maps normalized display names to item IDs and is
built offline from game-definition data. It is the free first-pass
lookup before the resolver cache or any external search.
"""

import html
import logging
import re
from pathlib import Path

import yaml

from price_ledger.exceptions import ReferenceIndexError

log = logging.getLogger(__name__)

_ESCAPE_PATTERN = re.compile(r"\|c[0-9a-f]{8}|\|r", re.IGNORECASE)
_WHITESPACE_PATTERN = re.compile(r"\s+")


def normalize_item_name(name: str) -> str:
    value = name.lower()
    # stripping one escape can join its neighbours into another
    while True:
        stripped = _ESCAPE_PATTERN.sub("", value)
        if stripped == value:
            break
        value = stripped
    return _WHITESPACE_PATTERN.sub(" ", value).strip()


def decode_html_entities(value: str) -> str:
    return html.unescape(value)


def _apply_name(
    index: dict[str, int],
    collisions: dict[str, set[int]],
    name: str,
    item_id: int,
) -> None:
    normalized = normalize_item_name(name)
    if not normalized:
        return

    existing = index.get(normalized)
    if existing is None:
        index[normalized] = item_id
        return
    if existing == item_id:
        return

    collisions.setdefault(normalized, {existing}).add(item_id)


def load_item_name_index(index_path: Path, overrides_path: Path | None = None) -> dict[str, int]:
    """
    Load the reference ``normalized name -> item ID`` index.

    The index file maps display names to an ID or a list of IDs. The
    optional overrides file maps item IDs to display names and takes
    precedence. When several IDs share a normalized name the first one
    seen is kept and the collision is logged.
    """
    if not index_path.exists():
        raise ReferenceIndexError(f"Item name index not found at {index_path}")

    with index_path.open(encoding="utf-8") as f:
        raw_index = yaml.safe_load(f) or {}

    overrides: dict[int, str] = {}
    if overrides_path is not None and overrides_path.exists():
        with overrides_path.open(encoding="utf-8") as f:
            raw_overrides = yaml.safe_load(f) or {}
        for raw_id, raw_name in raw_overrides.items():
            try:
                item_id = int(raw_id)
            except (TypeError, ValueError):
                continue
            name = str(raw_name).strip() if raw_name is not None else ""
            if item_id > 0 and name:
                overrides[item_id] = name

    index: dict[str, int] = {}
    collisions: dict[str, set[int]] = {}

    for item_id, name in overrides.items():
        _apply_name(index, collisions, name, item_id)

    for name, ids in raw_index.items():
        if not isinstance(name, str):
            continue
        for item_id in ids if isinstance(ids, list) else [ids]:
            if isinstance(item_id, int) and item_id > 0:
                _apply_name(index, collisions, name, item_id)

    if collisions:
        sample = [
            {"name": name, "ids": sorted(ids)} for name, ids in list(collisions.items())[:5]
        ]
        log.warning(
            "Detected %d item name collisions when building index: %s", len(collisions), sample
        )

    log.info("Loaded reference name index with %d names", len(index))
    return index
