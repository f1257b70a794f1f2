"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

In-process cache stores and store resolution.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterator, MutableMapping
from dataclasses import dataclass

from .errors import MemoizeConfigError
from .types import CacheEntry, CacheStore

_REQUIRED_METHODS = ("has", "get", "set", "delete")


@dataclass(slots=True)
class InMemoryCacheStore(CacheStore):
    """Process-local dict store; entries are lost on restart."""

    def __post_init__(self) -> None:
        self._rows: dict[Hashable, CacheEntry] = {}

    def has(self, key: Hashable) -> bool:
        return key in self._rows

    def get(self, key: Hashable) -> CacheEntry | None:
        return self._rows.get(key)

    def set(self, key: Hashable, entry: CacheEntry) -> None:
        self._rows[key] = entry

    def delete(self, key: Hashable) -> None:
        self._rows.pop(key, None)

    def clear(self) -> None:
        for entry in self._rows.values():
            entry.cancel_eviction()
        self._rows.clear()

    def keys(self) -> list[Hashable]:
        return list(self._rows.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._rows

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(list(self._rows))


class MappingCacheStore(CacheStore):
    """
    Adapt a caller-owned ``MutableMapping`` to the store protocol.

    The mapping is used as-is, so callers can inspect it directly
    (``key in mapping``, ``len(mapping)``).
    """

    def __init__(self, mapping: MutableMapping[Hashable, CacheEntry]) -> None:
        self.mapping = mapping

    def has(self, key: Hashable) -> bool:
        return key in self.mapping

    def get(self, key: Hashable) -> CacheEntry | None:
        return self.mapping.get(key)

    def set(self, key: Hashable, entry: CacheEntry) -> None:
        self.mapping[key] = entry

    def delete(self, key: Hashable) -> None:
        self.mapping.pop(key, None)

    def clear(self) -> None:
        for entry in list(self.mapping.values()):
            entry.cancel_eviction()
        self.mapping.clear()


def resolve_cache_store(cache: object | None = None) -> CacheStore:
    """Resolve a store instance from `None`, a mapping, or a store object."""
    if cache is None:
        return InMemoryCacheStore()
    if isinstance(cache, MutableMapping):
        return MappingCacheStore(cache)

    missing = [name for name in _REQUIRED_METHODS if not callable(getattr(cache, name, None))]
    if missing:
        raise MemoizeConfigError(
            f"Cache store {type(cache).__name__} is missing required methods: "
            + ", ".join(missing)
        )
    return cache  # type: ignore[return-value]
