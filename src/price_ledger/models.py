"""Pydantic models for price observations, imports and stored ledger payloads."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

STORAGE_VERSION = 2


class PriceObservation(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    price: int = Field(gt=0)
    observed_at: datetime = Field(
        serialization_alias="observedAt",
        validation_alias=AliasChoices("observed_at", "observedAt", "importedAt"),
    )
    source: str = "Unknown"

    @field_validator("observed_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


ItemPriceHistory = list[PriceObservation]


class ParsedImport(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    item_prices: dict[int, ItemPriceHistory] = Field(
        default_factory=dict, serialization_alias="itemPrices"
    )
    # None only for stored ledgers whose timestamp could not be parsed
    imported_at: datetime | None = Field(default=None, serialization_alias="importedAt")
    source: str = "Unknown"

    @field_validator("imported_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class LedgerPayload(BaseModel):
    """Stored ledger envelope. Version 1 maps IDs to a price, version 2 to a history."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = STORAGE_VERSION
    source: str | None = None
    imported_at: str | None = Field(default=None, alias="importedAt")
    item_prices: dict[str, Any] = Field(alias="itemPrices")
