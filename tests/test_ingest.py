"""Tests for ingest module."""

from datetime import UTC, datetime, timedelta

import pytest

from price_ledger import history
from price_ledger.config import Settings
from price_ledger.exceptions import MissingTableError
from price_ledger.ingest import IngestionState, parse_document, parse_document_with_report
from price_ledger.models import PriceObservation
from price_ledger.resolver import ItemNameResolver
from price_ledger.types import SearchCandidate

from conftest import LEGACY_DOCUMENT, SAMPLE_DOCUMENT, SCAN_TIME, FakeLookup

SCANNED_AT = datetime.fromtimestamp(SCAN_TIME, UTC)
NOW = datetime(2024, 1, 1, tzinfo=UTC)


@pytest.fixture
def settings() -> Settings:
    return Settings(external_lookups=False)


@pytest.mark.asyncio
async def test_parse_document(settings: Settings):
    parsed, report = await parse_document_with_report(
        SAMPLE_DOCUMENT, "Auctionator.lua", settings=settings
    )

    assert parsed.source == "Auctionator.lua"
    assert parsed.imported_at == SCANNED_AT
    assert parsed.item_prices == {
        36908: [
            PriceObservation(
                price=1500,
                observed_at=SCANNED_AT - timedelta(seconds=600),
                source="Auctionator.lua",
            ),
            PriceObservation(price=2800, observed_at=SCANNED_AT, source="Auctionator.lua"),
            PriceObservation(price=300, observed_at=SCANNED_AT, source="Auctionator.lua"),
        ]
    }
    assert report.state is IngestionState.DONE
    assert report.named_prices == 2
    assert report.resolved_via_history == 1
    assert report.history_items == 1
    assert report.unresolved_names == ["Saronite Ore"]
    assert report.unresolved_count == 1
    assert report.used_legacy_fallback is False


@pytest.mark.asyncio
async def test_parse_document_without_tables(settings: Settings):
    message = "Please select a valid Auctionator.lua file"
    with pytest.raises(MissingTableError, match=message) as excinfo:
        await parse_document(
            "AUCTIONATOR_SHOPPING_LISTS = {}", "SavedVariables.lua", settings=settings
        )

    assert excinfo.value.report.state is IngestionState.FAILED


@pytest.mark.asyncio
async def test_parse_document_with_out_of_range_scan_time(settings: Settings):
    content = SAMPLE_DOCUMENT.replace(str(SCAN_TIME), "999999999999999")

    parsed = await parse_document(content, "Auctionator.lua", settings=settings, now=NOW)

    assert parsed.imported_at == NOW
    assert [e.price for e in parsed.item_prices[36908]] == [1500, 2800, 300]
    assert parsed.item_prices[36908][0].observed_at == NOW - timedelta(seconds=600)


@pytest.mark.asyncio
async def test_parse_document_with_history_only(settings: Settings):
    content = SAMPLE_DOCUMENT.split("AUCTIONATOR_PRICING_HISTORY")[1]
    content = "AUCTIONATOR_PRICING_HISTORY" + content

    parsed = await parse_document(content, "history.lua", settings=settings, now=NOW)

    assert parsed.imported_at == NOW
    assert [e.price for e in parsed.item_prices[36908]] == [1500, 2800]
    assert parsed.item_prices[36908][-1].observed_at == NOW


@pytest.mark.asyncio
async def test_parse_document_legacy_fallback(settings: Settings):
    parsed, report = await parse_document_with_report(
        LEGACY_DOCUMENT, "old.lua", settings=settings, now=NOW
    )

    assert parsed.item_prices == {
        1001: [PriceObservation(price=1250, observed_at=NOW, source="old.lua")]
    }
    assert report.used_legacy_fallback is True


@pytest.mark.asyncio
async def test_reference_index_resolves_first(settings: Settings):
    parsed, report = await parse_document_with_report(
        SAMPLE_DOCUMENT,
        "Auctionator.lua",
        reference_index={"saronite ore": 36912, "frost lotus": 36908},
        settings=settings,
    )

    assert report.resolved_via_reference == 2
    assert report.resolved_via_history == 0
    assert parsed.item_prices[36912] == [
        PriceObservation(price=95, observed_at=SCANNED_AT, source="Auctionator.lua")
    ]


@pytest.mark.asyncio
async def test_resolver_cache_and_priming(settings: Settings):
    resolver = ItemNameResolver()
    resolver.prime({"Saronite Ore": 36912})

    parsed, report = await parse_document_with_report(
        SAMPLE_DOCUMENT, "Auctionator.lua", resolver=resolver, settings=settings
    )

    assert report.resolved_via_cache == 1
    assert report.unresolved_names == []
    assert set(parsed.item_prices) == {36908, 36912}
    assert resolver.get_id_for_name("Frost Lotus") == 36908


@pytest.mark.asyncio
async def test_external_lookups(settings: Settings):
    lookup = FakeLookup(search_results={"Saronite Ore": [SearchCandidate(36912, "Saronite Ore")]})
    resolver = ItemNameResolver(lookup=lookup)

    parsed, report = await parse_document_with_report(
        SAMPLE_DOCUMENT,
        "Auctionator.lua",
        resolver=resolver,
        settings=settings,
        external_lookups=True,
    )

    assert lookup.searches == ["Saronite Ore"]
    assert report.resolved_via_lookup == 1
    assert [e.price for e in parsed.item_prices[36912]] == [95]


@pytest.mark.asyncio
async def test_external_lookups_follow_settings(settings: Settings):
    lookup = FakeLookup(search_results={"Saronite Ore": [SearchCandidate(36912, "Saronite Ore")]})
    resolver = ItemNameResolver(lookup=lookup)

    _, report = await parse_document_with_report(
        SAMPLE_DOCUMENT, "Auctionator.lua", resolver=resolver, settings=settings
    )

    assert lookup.searches == []
    assert report.unresolved_names == ["Saronite Ore"]


@pytest.mark.asyncio
async def test_queue_missing_names(settings: Settings):
    lookup = FakeLookup(names={1001: "Linen Cloth"})
    resolver = ItemNameResolver(lookup=lookup)

    await parse_document_with_report(
        LEGACY_DOCUMENT,
        "old.lua",
        resolver=resolver,
        settings=settings,
        queue_missing_names=True,
        now=NOW,
    )

    assert resolver.pending_count == 1
    await resolver.join()
    assert resolver.get_name_for_id(1001) == "Linen Cloth"


@pytest.mark.asyncio
async def test_reimport_is_idempotent(settings: Settings):
    parsed = await parse_document(SAMPLE_DOCUMENT, "Auctionator.lua", settings=settings)

    once = history.merge_with_existing(None, parsed)
    twice = history.merge_with_existing(once, parsed)

    assert twice.item_prices == once.item_prices
