"""
Item name <-> ID resolution with a persistent, observable cache.

``ItemNameResolver`` owns the bidirectional name cache. Names are looked
up in the reference index, then in the cache, and finally through a
Wowhead search. Item IDs with no known name are fed through a small
worker pool capped at ``max_concurrent_lookups`` in-flight requests.

All cache mutations are synchronous with no suspension point inside, so
they are safe under cooperative scheduling on a single event loop.
Persistence is fire-and-forget; ``flush()`` waits for it.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from price_ledger.config import get_settings
from price_ledger.exceptions import LookupServiceError, StorageError
from price_ledger.lookup import WowheadClient
from price_ledger.names import normalize_item_name
from price_ledger.storage import NAME_CACHE_KEY, KeyValueStore
from price_ledger.types import NameCacheSnapshot, NameMappingEvent, SearchCandidate

log = logging.getLogger(__name__)

NameListener = Callable[[NameMappingEvent], None]


@dataclass
class ManualMappingResult:
    success: bool
    error: str | None = None
    previous_name: str | None = None
    previous_owner_id: int | None = None
    previous_owner_name: str | None = None


def pick_best_search_match(
    query: str, candidates: list[SearchCandidate]
) -> SearchCandidate | None:
    if not candidates:
        return None

    normalized_query = normalize_item_name(query)
    for candidate in candidates:
        if normalize_item_name(candidate.name) == normalized_query:
            return candidate
    for candidate in candidates:
        if normalized_query in normalize_item_name(candidate.name):
            return candidate
    return candidates[0]


def _is_item_id(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class ItemNameResolver:
    def __init__(
        self,
        store: KeyValueStore | None = None,
        lookup: WowheadClient | None = None,
        *,
        reference_index: dict[str, int] | None = None,
        max_concurrent_lookups: int | None = None,
    ):
        self._store = store
        self._lookup = lookup
        self._reference_index = reference_index
        self._max_concurrent = max_concurrent_lookups or get_settings().max_concurrent_lookups

        self._name_to_id: dict[str, int] = {}
        self._id_to_name: dict[int, str] = {}
        self._listeners: list[NameListener] = []

        self._hydrate_task: asyncio.Future[None] | None = None
        self._persist_task: asyncio.Task[None] | None = None
        self._dirty = False

        # insertion-ordered set of IDs waiting for a name lookup
        self._pending_ids: dict[int, None] = {}
        self._active_lookups = 0
        self._queue_scheduled = False
        self._lookup_tasks: set[asyncio.Task[None]] = set()
        self._background: set[asyncio.Future] = set()
        self._search_slots = asyncio.Semaphore(self._max_concurrent)

    # --- Lifecycle ---

    async def hydrate(self) -> None:
        """Load the persisted snapshot once; entries already in memory win."""
        if self._hydrate_task is None:
            self._hydrate_task = asyncio.ensure_future(self._load_snapshot())
        await self._hydrate_task

    async def _load_snapshot(self) -> None:
        if self._store is None:
            return
        try:
            raw = await self._store.read_json(NAME_CACHE_KEY)
        except StorageError as e:
            log.warning("Failed to load item name cache, starting empty: %s", e)
            return
        if not isinstance(raw, dict):
            return

        # mappings made before hydration win; stored entries that contradict them are stale
        known_names = {item_id: normalize_item_name(n) for item_id, n in self._id_to_name.items()}

        loaded = 0
        for name, item_id in (raw.get("nameToId") or {}).items():
            normalized = normalize_item_name(str(name))
            if not normalized or not _is_item_id(item_id) or normalized in self._name_to_id:
                continue
            if item_id in known_names and known_names[item_id] != normalized:
                continue
            self._name_to_id[normalized] = item_id
            loaded += 1
        for raw_id, name in (raw.get("idToName") or {}).items():
            try:
                item_id = int(raw_id)
            except (TypeError, ValueError):
                continue
            if item_id <= 0 or item_id in self._id_to_name:
                continue
            if not isinstance(name, str) or not name.strip():
                continue
            if self._name_to_id.get(normalize_item_name(name), item_id) != item_id:
                continue
            self._id_to_name[item_id] = name
        log.info("Hydrated item name cache with %d names", loaded)

    def snapshot(self) -> NameCacheSnapshot:
        return {
            "nameToId": dict(self._name_to_id),
            "idToName": {str(item_id): name for item_id, name in self._id_to_name.items()},
        }

    def _schedule_persist(self) -> None:
        self._dirty = True
        if self._store is None:
            return
        if self._persist_task is not None and not self._persist_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no loop to write on; flush() picks the change up
            return
        self._persist_task = loop.create_task(self._persist())

    async def _persist(self) -> None:
        # let the rest of a synchronous batch land before writing
        await asyncio.sleep(0)
        await self.hydrate()
        while self._dirty and self._store is not None:
            self._dirty = False
            try:
                await self._store.write_json(NAME_CACHE_KEY, self.snapshot())
            except StorageError as e:
                log.warning("Failed to persist item name cache: %s", e)
                return

    async def flush(self) -> None:
        if self._persist_task is not None:
            await self._persist_task
        if self._dirty:
            await self._persist()

    async def clear(self) -> None:
        self._name_to_id.clear()
        self._id_to_name.clear()
        self._pending_ids.clear()
        self._dirty = False
        if self._store is None:
            return
        try:
            await self._store.delete_key(NAME_CACHE_KEY)
        except StorageError as e:
            log.warning("Failed to clear item name cache: %s", e)

    # --- Listeners ---

    def add_listener(self, listener: NameListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: NameMappingEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                log.exception("Item name listener failed for item %d", event.id)

    # --- Cache access ---

    def get_id_for_name(self, name: str) -> int | None:
        return self._name_to_id.get(normalize_item_name(name))

    def get_name_for_id(self, item_id: int) -> str | None:
        return self._id_to_name.get(item_id)

    def _owner_of(self, normalized: str) -> int | None:
        owner = self._name_to_id.get(normalized)
        if owner is None:
            return None
        owner_name = self._id_to_name.get(owner)
        if owner_name is None or normalize_item_name(owner_name) != normalized:
            return None
        return owner

    def _store_mapping(self, name: str, item_id: int) -> bool:
        normalized = normalize_item_name(name)
        if not normalized:
            return False

        owner = self._owner_of(normalized)
        if owner is not None and owner != item_id:
            log.debug(
                "Not reassigning '%s' from item %d to %d without an override",
                name,
                owner,
                item_id,
            )
            return False

        changed = (
            self._name_to_id.get(normalized) != item_id or self._id_to_name.get(item_id) != name
        )
        self._name_to_id[normalized] = item_id
        self._id_to_name[item_id] = name
        self._pending_ids.pop(item_id, None)
        if self._reference_index is not None and normalized not in self._reference_index:
            self._reference_index[normalized] = item_id

        if changed:
            self._notify(NameMappingEvent(id=item_id, name=name))
        return changed

    def prime(self, mapping: dict[str, int]) -> int:
        """Insert trusted ``name -> ID`` pairs; returns how many changed the cache."""
        changed = 0
        for name, item_id in mapping.items():
            if _is_item_id(item_id) and self._store_mapping(name, item_id):
                changed += 1
        if changed:
            self._schedule_persist()
        return changed

    def set_manual_override(self, item_id: int, display_name: str) -> ManualMappingResult:
        """
        Force ``display_name`` onto ``item_id`` and report what it replaced.

        ``previous_name`` is the name the ID had before. ``previous_owner_id``
        is set when another ID owned the name; that ID loses its name.
        """
        if not _is_item_id(item_id):
            return ManualMappingResult(success=False, error="Item ID must be a positive integer")
        name = display_name.strip() if isinstance(display_name, str) else ""
        normalized = normalize_item_name(name)
        if not normalized:
            return ManualMappingResult(success=False, error="Item name cannot be empty")

        previous_name = self._id_to_name.get(item_id)
        previous_owner_id = None
        previous_owner_name = None

        owner = self._owner_of(normalized)
        if owner is not None and owner != item_id:
            previous_owner_id = owner
            previous_owner_name = self._id_to_name.pop(owner)

        if previous_name is not None:
            previous_normalized = normalize_item_name(previous_name)
            if (
                previous_normalized != normalized
                and self._name_to_id.get(previous_normalized) == item_id
            ):
                del self._name_to_id[previous_normalized]

        changed = self._name_to_id.get(normalized) != item_id or previous_name != name
        self._name_to_id[normalized] = item_id
        self._id_to_name[item_id] = name
        self._pending_ids.pop(item_id, None)
        if self._reference_index is not None:
            self._reference_index[normalized] = item_id

        if changed:
            log.info("Manual mapping: item %d -> '%s'", item_id, name)
            self._schedule_persist()
            self._notify(NameMappingEvent(id=item_id, name=name))

        return ManualMappingResult(
            success=True,
            previous_name=previous_name,
            previous_owner_id=previous_owner_id,
            previous_owner_name=previous_owner_name,
        )

    # --- Resolution ---

    async def resolve(self, name: str) -> int | None:
        normalized = normalize_item_name(name)
        if not normalized:
            return None

        if self._reference_index is not None and normalized in self._reference_index:
            return self._reference_index[normalized]

        await self.hydrate()
        cached = self._name_to_id.get(normalized)
        if cached is not None:
            return cached
        if self._lookup is None:
            return None

        try:
            async with self._search_slots:
                candidates = await self._lookup.search_by_name(name)
        except LookupServiceError as e:
            log.warning("Failed to look up item '%s': %s", name, e)
            return None

        best = pick_best_search_match(name, candidates)
        if best is None:
            log.info("No lookup match for item '%s'", name)
            return None

        changed = self._store_mapping(name, best.id)
        changed = self._store_mapping(best.name, best.id) or changed
        if changed:
            self._schedule_persist()
        return best.id

    async def resolve_many(
        self, names: Iterable[str], timeout: float | None = None
    ) -> dict[str, int]:
        """
        Resolve names concurrently and return those that resolved in time.

        Lookups still running when ``timeout`` expires are left to finish
        in the background; their results reach the cache but not the
        returned mapping.
        """
        unique = list(dict.fromkeys(name for name in names if name and name.strip()))
        if not unique:
            return {}

        tasks = {asyncio.ensure_future(self.resolve(name)): name for name in unique}
        done, pending = await asyncio.wait(tasks, timeout=timeout)

        resolved: dict[str, int] = {}
        for task in done:
            error = task.exception()
            if error is not None:
                log.warning("Failed to resolve item '%s': %s", tasks[task], error)
                continue
            item_id = task.result()
            if item_id is not None:
                resolved[tasks[task]] = item_id

        for task in pending:
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        if pending:
            log.info("Stopped waiting on %d item lookups", len(pending))

        return resolved

    async def resolve_id(self, item_id: int) -> str | None:
        if not _is_item_id(item_id):
            return None

        await self.hydrate()
        existing = self._id_to_name.get(item_id)
        if existing:
            return existing
        if self._lookup is None:
            return None

        try:
            name = await self._lookup.fetch_canonical_name(item_id)
        except LookupServiceError as e:
            log.warning("Failed to resolve name for item %d: %s", item_id, e)
            return None
        if not name:
            return None

        if self._store_mapping(name, item_id):
            self._schedule_persist()
        return self._id_to_name.get(item_id, name)

    # --- Lookup queue ---

    @property
    def pending_count(self) -> int:
        return len(self._pending_ids)

    @property
    def active_lookups(self) -> int:
        return self._active_lookups

    def queue_id_resolution(self, item_ids: Iterable[int]) -> int:
        queued = 0
        for item_id in item_ids:
            if not _is_item_id(item_id):
                continue
            if item_id in self._id_to_name or item_id in self._pending_ids:
                continue
            self._pending_ids[item_id] = None
            queued += 1

        if queued:
            self._schedule_queue_processing()
        return queued

    def _schedule_queue_processing(self) -> None:
        if self._queue_scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("No running event loop; %d item lookups stay pending", self.pending_count)
            return
        self._queue_scheduled = True
        loop.call_soon(self._process_queue)

    def _process_queue(self) -> None:
        self._queue_scheduled = False
        loop = asyncio.get_running_loop()
        while self._active_lookups < self._max_concurrent and self._pending_ids:
            item_id = next(iter(self._pending_ids))
            del self._pending_ids[item_id]
            self._active_lookups += 1
            task = loop.create_task(self._run_lookup(item_id))
            self._lookup_tasks.add(task)
            task.add_done_callback(self._on_lookup_done)

    async def _run_lookup(self, item_id: int) -> None:
        name = await self.resolve_id(item_id)
        if name is None:
            log.info("Item %d: no name found, dropping from queue", item_id)

    def _on_lookup_done(self, task: asyncio.Task[None]) -> None:
        self._lookup_tasks.discard(task)
        self._active_lookups -= 1
        if not task.cancelled() and task.exception() is not None:
            log.warning("Item name lookup failed: %s", task.exception())
        if self._pending_ids:
            self._schedule_queue_processing()

    async def join(self) -> None:
        """Wait until every queued ID lookup has finished."""
        while self._pending_ids or self._lookup_tasks:
            if self._pending_ids:
                self._schedule_queue_processing()
            if self._lookup_tasks:
                await asyncio.gather(*self._lookup_tasks, return_exceptions=True)
            else:
                await asyncio.sleep(0)
