"""
CLI script for importing Auctionator.lua price data.

Orchestrates the import pipeline:
1. Load the reference item name index (if built)
2. Parse the Auctionator.lua document into price histories
3. Merge with the stored price ledger
4. Save the ledger and the item name cache
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from price_ledger import history, ingest, names, storage, terminal
from price_ledger.cache import CacheClient
from price_ledger.config import Settings, get_settings
from price_ledger.exceptions import PriceLedgerError, ReferenceIndexError
from price_ledger.lookup import WowheadClient
from price_ledger.models import ParsedImport
from price_ledger.resolver import ItemNameResolver

_PRICE_SAMPLE_SIZE = 5


def _load_reference_index(settings: Settings) -> dict[str, int]:
    try:
        return names.load_item_name_index(settings.name_index_path, settings.name_overrides_path)
    except ReferenceIndexError as e:
        terminal.warning(f"{e}; resolving names from the pricing history and cache only")
        return {}


def _print_summary(
    report: ingest.IngestionReport, merged: ParsedImport, resolver: ItemNameResolver
) -> None:
    terminal.key_value("Named prices", str(report.named_prices), indent=2)
    terminal.key_value("Resolved via reference index", str(report.resolved_via_reference), 2)
    terminal.key_value("Resolved via pricing history", str(report.resolved_via_history), 2)
    terminal.key_value("Resolved via name cache", str(report.resolved_via_cache), 2)
    terminal.key_value("Resolved via Wowhead", str(report.resolved_via_lookup), 2)
    terminal.key_value("Items with history", str(report.history_items), 2)
    if report.used_legacy_fallback:
        terminal.warning("No named prices resolved; used the legacy price table layout")
    if report.unresolved_count:
        terminal.warning(f"{report.unresolved_count} item name(s) could not be resolved")
        for name in report.unresolved_sample:
            terminal.bullet(name, indent=4)
    terminal.key_value("Items in ledger", str(len(merged.item_prices)), indent=2)

    latest = sorted(history.latest_prices(merged).items())
    for item_id, price in latest[:_PRICE_SAMPLE_SIZE]:
        name = resolver.get_name_for_id(item_id) or f"Item #{item_id}"
        terminal.key_value(name, terminal.coins(price), indent=4)
    if len(latest) > _PRICE_SAMPLE_SIZE:
        terminal.info(f"    ... and {len(latest) - _PRICE_SAMPLE_SIZE} more")


async def import_file(
    path: Path,
    cache: CacheClient,
    source: str | None = None,
    external_lookups: bool | None = None,
    resolve_names: bool = False,
    dry_run: bool = False,
) -> ParsedImport:
    settings = get_settings()
    content = path.read_text(encoding="utf-8", errors="replace")
    source_label = source or path.name
    terminal.section_header(f"Importing {source_label}")

    reference_index = _load_reference_index(settings)
    store = storage.create_store(cache)
    try:
        async with WowheadClient(cache=cache) as lookup:
            resolver = ItemNameResolver(store, lookup, reference_index=reference_index)
            parsed, report = await ingest.parse_document_with_report(
                content,
                source_label,
                resolver=resolver,
                reference_index=reference_index,
                settings=settings,
                external_lookups=external_lookups,
                queue_missing_names=resolve_names,
            )

            existing = await storage.load_ledger(store, settings.history_limit)
            merged = history.merge_with_existing(existing, parsed, settings.history_limit)
            _print_summary(report, merged, resolver)

            if dry_run:
                terminal.info("Dry run: ledger not saved")
            elif await storage.save_ledger(store, merged):
                terminal.success(f"Saved price ledger ({len(merged.item_prices)} items)")
            else:
                terminal.error("Price ledger could not be saved; see log for details")

            if resolve_names and resolver.pending_count:
                terminal.info(f"Looking up {resolver.pending_count} item name(s)...")
            await resolver.join()
            await resolver.flush()
    finally:
        await store.aclose()

    return merged


def main() -> None:
    parser = argparse.ArgumentParser(description="Import Auctionator.lua price data")
    parser.add_argument("file", type=Path, nargs="?", help="Path to Auctionator.lua")
    parser.add_argument(
        "--source", type=str, default=None, help="Source label (default: file name)"
    )
    parser.add_argument(
        "--lookups",
        dest="external_lookups",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Search Wowhead for item names missing from the index",
    )
    parser.add_argument(
        "--resolve-names",
        action="store_true",
        help="Fetch display names for imported item IDs missing from the name cache",
    )
    parser.add_argument("--dry-run", action="store_true", help="Parse and merge without saving")
    parser.add_argument(
        "--clear-cache",
        nargs="*",
        metavar="TAG",
        help="Clear local cache (optionally specify tags: storage, lookup)",
    )

    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(message)s",
    )
    cache = CacheClient(settings.cache_dir)

    if args.clear_cache is not None:
        tags = args.clear_cache if args.clear_cache else None
        cache.clear_cache(tags)
        tag_str = f" ({', '.join(tags)})" if tags else " (all)"
        terminal.success(f"Cache cleared{tag_str}")
        cache.close()
        return

    if args.file is None:
        parser.error("the file argument is required unless --clear-cache is given")
    if not args.file.exists():
        terminal.error(f"Unable to find input file: {args.file}")
        sys.exit(1)

    try:
        asyncio.run(
            import_file(
                args.file,
                cache,
                source=args.source,
                external_lookups=args.external_lookups,
                resolve_names=args.resolve_names,
                dry_run=args.dry_run,
            )
        )
    except PriceLedgerError as e:
        terminal.error(str(e))
        sys.exit(1)
    except Exception as e:
        terminal.error(f"Unexpected error: {e}")
        sys.exit(1)
    finally:
        cache.close()


if __name__ == "__main__":
    main()
