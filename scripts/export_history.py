"""
CLI script for exporting the stored price ledger to JSON.

Item names come from the item name cache; items without a cached name
are exported as ``Item #<id>``.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from price_ledger import export, storage, terminal
from price_ledger.cache import CacheClient
from price_ledger.config import get_settings
from price_ledger.resolver import ItemNameResolver

DEFAULT_OUTPUT = Path("price-history-export.json")


async def export_history(output_path: Path, cache: CacheClient) -> dict[str, Any] | None:
    settings = get_settings()
    store = storage.create_store(cache)
    try:
        ledger = await storage.load_ledger(store, settings.history_limit)
        if ledger is None:
            return None
        resolver = ItemNameResolver(store)
        await resolver.hydrate()
        item_names = {
            item_id: name
            for item_id in ledger.item_prices
            if (name := resolver.get_name_for_id(item_id)) is not None
        }
    finally:
        await store.aclose()

    payload = export.build_export(ledger, item_names)
    output_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    return payload


def main() -> None:
    parser = argparse.ArgumentParser(description="Export the stored price ledger to JSON")
    parser.add_argument("output", type=Path, nargs="?", default=DEFAULT_OUTPUT)
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(message)s",
    )

    cache = CacheClient(settings.cache_dir)
    try:
        payload = asyncio.run(export_history(args.output, cache))
    finally:
        cache.close()
    if payload is None:
        terminal.error("No stored price ledger to export")
        sys.exit(1)
    terminal.success(f"Price history for {payload['totalItems']} item(s) exported to {args.output}")


if __name__ == "__main__":
    main()
