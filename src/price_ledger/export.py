"""Export of the stored price ledger as a standalone JSON document."""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from price_ledger.models import ParsedImport


def build_export(
    ledger: ParsedImport,
    names: Mapping[int, str],
    exported_at: datetime | None = None,
) -> dict[str, Any]:
    items = [
        {
            "id": item_id,
            "name": names.get(item_id) or f"Item #{item_id}",
            "history": [entry.model_dump(mode="json", by_alias=True) for entry in entries],
        }
        for item_id, entries in sorted(ledger.item_prices.items())
    ]
    return {
        "source": ledger.source,
        "importedAt": ledger.imported_at.isoformat() if ledger.imported_at else None,
        "exportedAt": (exported_at or datetime.now(UTC)).isoformat(),
        "totalItems": len(items),
        "items": items,
    }
