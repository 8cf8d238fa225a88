"""
Key-value persistence for the price ledger and item name cache.

Two interchangeable stores implement ``KeyValueStore``: the shared JSON
storage service reached over HTTP, and a local diskcache-backed store.
The ledger helpers at the bottom never raise on storage failures; they
log and let the in-memory state remain authoritative.
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from price_ledger.cache import CacheClient
from price_ledger.config import get_settings
from price_ledger.exceptions import StorageError
from price_ledger.history import HISTORY_LIMIT
from price_ledger.models import STORAGE_VERSION, LedgerPayload, ParsedImport, PriceObservation

log = logging.getLogger(__name__)

LEDGER_KEY = "auctionator-data"
NAME_CACHE_KEY = "item-name-cache"
PREFERENCES_KEY = "user-preferences"

_FALLBACK_IMPORTED_AT = "1970-01-01T00:00:00.000Z"
_FALLBACK_SOURCE = "Unknown"


class KeyValueStore(Protocol):
    async def read_json(self, key: str) -> Any | None: ...

    async def write_json(self, key: str, value: Any) -> None: ...

    async def delete_key(self, key: str) -> None: ...

    async def aclose(self) -> None: ...


class SharedStorageClient:
    """Client for the file-backed storage service (``/storage/<key>``)."""

    def __init__(self, base_url: str, *, client: httpx.AsyncClient | None = None):
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=get_settings().api_timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _endpoint(self, key: str) -> str:
        return f"{self._base_url}/storage/{key}"

    async def _request(self, method: str, key: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, self._endpoint(key), **kwargs)
        except httpx.RequestError as e:
            raise StorageError(f"Network error accessing storage key '{key}': {e}") from e

        if response.status_code == 404 and method in ("GET", "DELETE"):
            return response
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StorageError(
                f"Storage request {method} '{key}' failed: HTTP {e.response.status_code}"
            ) from e
        return response

    async def read_json(self, key: str) -> Any | None:
        response = await self._request("GET", key)
        if response.status_code in (204, 404) or not response.text:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise StorageError(f"Invalid JSON payload received for storage key '{key}'") from e

    async def write_json(self, key: str, value: Any) -> None:
        await self._request("PUT", key, json=value)

    async def delete_key(self, key: str) -> None:
        await self._request("DELETE", key)


class LocalStore:
    """``KeyValueStore`` over the local diskcache directory."""

    def __init__(self, cache: CacheClient):
        self._cache = cache

    async def read_json(self, key: str) -> Any | None:
        raw = self._cache.get_document(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise StorageError(f"Invalid JSON stored under key '{key}'") from e

    async def write_json(self, key: str, value: Any) -> None:
        self._cache.set_document(key, json.dumps(value))

    async def delete_key(self, key: str) -> None:
        self._cache.delete_document(key)

    async def aclose(self) -> None:
        pass


def create_store(cache: CacheClient | None = None) -> KeyValueStore:
    settings = get_settings()
    if settings.storage_url:
        return SharedStorageClient(settings.storage_url)
    return LocalStore(cache or CacheClient(settings.cache_dir))


# --- Ledger payloads ---


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def ledger_to_payload(data: ParsedImport) -> dict[str, Any]:
    return {
        "version": STORAGE_VERSION,
        "source": data.source,
        "importedAt": data.imported_at.isoformat() if data.imported_at else None,
        "itemPrices": {
            str(item_id): [
                entry.model_dump(mode="json", by_alias=True) for entry in entries
            ]
            for item_id, entries in data.item_prices.items()
        },
    }


def ledger_from_payload(raw: Any, limit: int = HISTORY_LIMIT) -> ParsedImport | None:
    """
    Rebuild a ledger from a stored payload of either version.

    Version 1 stored a single price per item; each becomes one observation
    at the payload's import time. Invalid items and entries are dropped one
    by one rather than discarding the payload.
    """
    if not isinstance(raw, dict) or raw.get("itemPrices") is None:
        return None
    try:
        payload = LedgerPayload.model_validate(raw)
    except ValidationError as e:
        log.warning("Ignoring malformed stored ledger: %s", e)
        return None

    imported_at_raw = payload.imported_at or _FALLBACK_IMPORTED_AT
    source = payload.source or _FALLBACK_SOURCE
    history: dict[int, list[PriceObservation]] = {}
    dropped = 0

    for raw_id, value in payload.item_prices.items():
        try:
            item_id = int(raw_id)
        except ValueError:
            dropped += 1
            continue

        if payload.version <= 1:
            value = [{"price": value, "observedAt": imported_at_raw, "source": source}]
        if not isinstance(value, list):
            dropped += 1
            continue

        entries: list[PriceObservation] = []
        for entry in value:
            if isinstance(entry, dict) and "source" not in entry:
                entry = {**entry, "source": _FALLBACK_SOURCE}
            try:
                entries.append(PriceObservation.model_validate(entry))
            except ValidationError:
                dropped += 1
        entries.sort(key=lambda e: e.observed_at)
        history[item_id] = entries[-limit:] if limit > 0 else []

    if dropped:
        log.warning("Dropped %d invalid entries from stored ledger", dropped)

    return ParsedImport(
        item_prices=history,
        imported_at=_parse_timestamp(imported_at_raw),
        source=source,
    )


async def save_ledger(store: KeyValueStore, data: ParsedImport) -> bool:
    try:
        await store.write_json(LEDGER_KEY, ledger_to_payload(data))
    except StorageError as e:
        log.error("Failed to persist price ledger: %s", e)
        return False
    return True


async def load_ledger(store: KeyValueStore, limit: int = HISTORY_LIMIT) -> ParsedImport | None:
    try:
        raw = await store.read_json(LEDGER_KEY)
    except StorageError as e:
        log.error("Failed to load price ledger from storage: %s", e)
        return None
    return ledger_from_payload(raw, limit)


async def clear_ledger(store: KeyValueStore) -> None:
    try:
        await store.delete_key(LEDGER_KEY)
    except StorageError as e:
        log.warning("Failed to clear price ledger: %s", e)


async def load_preferences(store: KeyValueStore) -> dict[str, Any]:
    try:
        raw = await store.read_json(PREFERENCES_KEY)
    except StorageError as e:
        log.warning("Failed to load stored user preferences: %s", e)
        return {}
    return raw if isinstance(raw, dict) else {}


async def save_preferences(store: KeyValueStore, preferences: dict[str, Any]) -> None:
    try:
        await store.write_json(PREFERENCES_KEY, preferences)
    except StorageError as e:
        log.warning("Failed to persist updated preferences: %s", e)
