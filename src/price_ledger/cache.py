"""
Local key-value store for ledger data using diskcache.

Holds the same JSON documents the shared storage service would hold
(price ledger, item name cache, user preferences) so the pipeline can
run without the service. Entries are tagged by kind for selective
clearing.
"""

from pathlib import Path
from typing import Any

from diskcache import Cache as DiskCache

STORAGE_TAG = "storage"
LOOKUP_TAG = "lookup"


class CacheClient:
    def __init__(self, cache_dir: Path):
        self._cache_dir = cache_dir
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        self._cache = DiskCache(str(self._cache_dir))

    def get_document(self, key: str) -> Any | None:
        return self._cache.get(f"storage:{key}")

    def set_document(self, key: str, value: Any) -> None:
        self._cache.set(f"storage:{key}", value, expire=None, tag=STORAGE_TAG)

    def delete_document(self, key: str) -> None:
        self._cache.delete(f"storage:{key}")

    def get_item_name(self, item_id: int) -> str | None:
        return self._cache.get(f"lookup:item:{item_id}")

    def set_item_name(self, item_id: int, name: str) -> None:
        self._cache.set(f"lookup:item:{item_id}", name, expire=None, tag=LOOKUP_TAG)

    def get_search_results(self, query: str) -> list[list[Any]] | None:
        return self._cache.get(f"lookup:search:{query}")

    def set_search_results(self, query: str, results: list[list[Any]]) -> None:
        self._cache.set(f"lookup:search:{query}", results, expire=7 * 86400, tag=LOOKUP_TAG)

    def clear_cache(self, tags: list[str] | None = None) -> None:
        if tags:
            for tag in tags:
                self._cache.evict(tag)
        else:
            self._cache.clear()

    def close(self) -> None:
        self._cache.close()
