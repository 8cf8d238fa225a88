"""
CLI script for pinning a display name to an item ID.

Overrides whatever the item name cache holds for the ID, and reports
the name the ID had before and any item that previously owned the name.
"""

import argparse
import asyncio
import logging
import sys

from price_ledger import storage, terminal
from price_ledger.cache import CacheClient
from price_ledger.config import get_settings
from price_ledger.resolver import ItemNameResolver, ManualMappingResult


async def map_item_name(item_id: int, name: str, cache: CacheClient) -> ManualMappingResult:
    store = storage.create_store(cache)
    try:
        resolver = ItemNameResolver(store)
        await resolver.hydrate()
        result = resolver.set_manual_override(item_id, name)
        await resolver.flush()
    finally:
        await store.aclose()
    return result


def _print_result(item_id: int, name: str, result: ManualMappingResult) -> None:
    if not result.success:
        terminal.error(result.error or f"Could not map item {item_id}")
        return

    terminal.success(f"Item #{item_id} is now named '{name.strip()}'")
    if result.previous_name and result.previous_name != name.strip():
        terminal.key_value("Previous name", result.previous_name, indent=2)
    if result.previous_owner_id is not None:
        owner = f"#{result.previous_owner_id}"
        if result.previous_owner_name:
            owner += f" ('{result.previous_owner_name}')"
        terminal.warning(f"Name detached from item {owner}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Pin a display name to an item ID")
    parser.add_argument("--item-id", type=int, required=True, help="Item ID (must be positive)")
    parser.add_argument("--name", type=str, required=True, help="Display name for the item")
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(message)s",
    )

    cache = CacheClient(settings.cache_dir)
    try:
        result = asyncio.run(map_item_name(args.item_id, args.name, cache))
    finally:
        cache.close()
    _print_result(args.item_id, args.name, result)
    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
