"""Read-through cache of atomic type descriptors, scoped by package ids.

Each scope is populated in one piece from ``Store.select_all_atomics`` and its
name and id indexes are derived from that list at build time. Indexes are never
patched; ``invalidate`` marks a scope stale and the next access rebuilds it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

import structlog

from Zigport.config import load_settings
from Zigport.metrics import inc_counter
from Zigport.repos import AtomicType
from Zigport.store import Store

log = structlog.get_logger()

ScopeKey = tuple[int, ...]


class ScopeState(str, Enum):
    created = "created"
    loading = "loading"
    populated = "populated"
    stale = "stale"


@dataclass(frozen=True)
class AtomicCacheEntry:
    raw_data: tuple[AtomicType, ...]
    by_name: dict[str, AtomicType]
    by_id: dict[int, AtomicType]

    @classmethod
    def build(cls, rows: Sequence[AtomicType]) -> AtomicCacheEntry:
        by_name: dict[str, AtomicType] = {}
        by_id: dict[int, AtomicType] = {}
        for row in rows:
            # First row in identifier order owns a name, as the store lookup does
            by_name.setdefault(row.name.upper(), row)
            by_id[row.id] = row
        return cls(raw_data=tuple(rows), by_name=by_name, by_id=by_id)


@dataclass
class _Scope:
    state: ScopeState = ScopeState.created
    entry: AtomicCacheEntry | None = None
    loading: asyncio.Future[AtomicCacheEntry] | None = None
    generation: int = 0


def scope_key(package_ids: int | Iterable[int]) -> ScopeKey:
    if isinstance(package_ids, int):
        return (package_ids,)
    key = tuple(sorted(set(package_ids)))
    if not key:
        raise ValueError("at least one package id is required")
    return key


class AtomicTypeCache:
    """Per-scope atomic type lookups.

    Concurrent misses on one scope share a single in-flight load. With
    ``enabled=False`` (``atomic_cache_enabled`` in settings) every call goes
    straight to the store.
    """

    def __init__(self, store: Store, *, enabled: bool | None = None):
        self._store = store
        self._enabled = load_settings().atomic_cache_enabled if enabled is None else enabled
        self._scopes: dict[ScopeKey, _Scope] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled

    def state(self, package_ids: int | Iterable[int]) -> ScopeState:
        scope = self._scopes.get(scope_key(package_ids))
        return scope.state if scope is not None else ScopeState.created

    async def get_all(self, package_ids: int | Iterable[int]) -> list[AtomicType]:
        """All descriptors in the scope, ascending by atomic identifier."""
        key = scope_key(package_ids)
        if not self._enabled:
            return list(await self._store.select_all_atomics(list(key)))
        entry = await self._entry(key)
        return list(entry.raw_data)

    async def get_by_name(self, package_ids: int | Iterable[int], name: str) -> AtomicType | None:
        """Case-insensitive lookup of a descriptor by name."""
        key = scope_key(package_ids)
        if not self._enabled:
            return await self._store.select_atomic_by_name(list(key), name)
        entry = await self._entry(key)
        return entry.by_name.get(name.upper())

    async def get_by_id(
        self, atomic_id: int, package_ids: int | Iterable[int] | None = None
    ) -> AtomicType | None:
        """Look up a descriptor by its row id.

        Without a scope this is a direct store hit. With one it is answered from
        that scope's id index, so ids outside the scope are not found.
        """
        if package_ids is None or not self._enabled:
            return await self._store.select_atomic_by_id(atomic_id)
        entry = await self._entry(scope_key(package_ids))
        return entry.by_id.get(atomic_id)

    def invalidate(self, package_ids: int | Iterable[int] | None = None) -> None:
        """Mark one scope, or every scope when called without ids, stale."""
        if package_ids is None:
            scopes = list(self._scopes.items())
        else:
            key = scope_key(package_ids)
            scopes = [(key, self._scopes[key])] if key in self._scopes else []
        for key, scope in scopes:
            scope.generation += 1
            if scope.state is not ScopeState.created:
                scope.state = ScopeState.stale
            log.info("atomic_cache.invalidated", scope=list(key))
        inc_counter("atomic_cache.invalidated", len(scopes))

    async def _entry(self, key: ScopeKey) -> AtomicCacheEntry:
        scope = self._scopes.setdefault(key, _Scope())
        if scope.state is ScopeState.populated and scope.entry is not None:
            inc_counter("atomic_cache.hit")
            return scope.entry
        if scope.loading is None:
            inc_counter("atomic_cache.miss")
            scope.loading = asyncio.ensure_future(self._load(key, scope))
        else:
            inc_counter("atomic_cache.load_shared")
        # A cancelled caller must not cancel the load other callers are awaiting
        return await asyncio.shield(scope.loading)

    async def _load(self, key: ScopeKey, scope: _Scope) -> AtomicCacheEntry:
        generation = scope.generation
        scope.state = ScopeState.loading
        try:
            rows = await self._store.select_all_atomics(list(key))
        except Exception:
            scope.state = ScopeState.stale if scope.entry is not None else ScopeState.created
            log.warning("atomic_cache.load_failed", scope=list(key), exc_info=True)
            raise
        finally:
            scope.loading = None
        entry = AtomicCacheEntry.build(rows)
        inc_counter("atomic_cache.load")
        if scope.generation == generation:
            scope.entry = entry
            scope.state = ScopeState.populated
            log.info("atomic_cache.populated", scope=list(key), count=len(entry.raw_data))
        else:
            # Invalidated while loading; serve this result but rebuild next time
            scope.state = ScopeState.stale
        return entry
