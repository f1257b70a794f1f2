"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Async memoization with fresh, stale-while-revalidate and stale-if-error
windows.

Quick start::

    from remem import clear, memoize

    @memoize(max_age=60, stale_while_revalidate=300)
    async def fetch_profile(user_id: str) -> dict:
        ...

    await fetch_profile("u-1")  # populates
    await fetch_profile("u-1")  # served from cache
    clear(fetch_profile)
"""

from .clock import Clock, LoopClock, ManualClock, ManualTimer
from .engine import FreshnessEngine
from .errors import (
    CacheNotClearableError,
    MemoizeConfigError,
    NotMemoizedError,
    RememError,
)
from .memoize import clear, first_argument, memoize
from .options import MemoizeOptions
from .store import InMemoryCacheStore, MappingCacheStore, resolve_cache_store
from .types import (
    CacheEntry,
    CacheStore,
    FreshnessZone,
    KeyDeriver,
    TimerHandle,
    entry_lifetime_s,
    is_clearable,
)

__all__ = [
    "memoize",
    "clear",
    "first_argument",
    "MemoizeOptions",
    "FreshnessEngine",
    "CacheEntry",
    "CacheStore",
    "FreshnessZone",
    "KeyDeriver",
    "TimerHandle",
    "entry_lifetime_s",
    "is_clearable",
    "InMemoryCacheStore",
    "MappingCacheStore",
    "resolve_cache_store",
    "Clock",
    "LoopClock",
    "ManualClock",
    "ManualTimer",
    "RememError",
    "MemoizeConfigError",
    "NotMemoizedError",
    "CacheNotClearableError",
]
