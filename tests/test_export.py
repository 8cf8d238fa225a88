"""Tests for export module."""

from datetime import UTC, datetime

from price_ledger.export import build_export
from price_ledger.models import ParsedImport, PriceObservation

BASE = datetime(2024, 1, 1, tzinfo=UTC)


def test_build_export():
    ledger = ParsedImport(
        item_prices={
            36912: [PriceObservation(price=95, observed_at=BASE, source="scan")],
            36908: [PriceObservation(price=300, observed_at=BASE, source="scan")],
        },
        imported_at=BASE,
        source="scan",
    )

    result = build_export(ledger, {36908: "Frost Lotus"}, exported_at=BASE)

    assert result["source"] == "scan"
    assert result["importedAt"] == "2024-01-01T00:00:00+00:00"
    assert result["exportedAt"] == "2024-01-01T00:00:00+00:00"
    assert result["totalItems"] == 2
    assert [item["id"] for item in result["items"]] == [36908, 36912]
    assert result["items"][0]["name"] == "Frost Lotus"
    assert result["items"][1]["name"] == "Item #36912"
    assert result["items"][0]["history"] == [
        {"price": 300, "observedAt": "2024-01-01T00:00:00Z", "source": "scan"}
    ]


def test_build_export_empty_ledger():
    result = build_export(ParsedImport(source="scan"), {})

    assert result["totalItems"] == 0
    assert result["items"] == []
    assert result["importedAt"] is None
    assert result["exportedAt"]
