"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Freshness engine: decides per call whether to serve, revalidate, fall back or
populate, and owns each entry's eviction timer.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
from collections.abc import Callable, Hashable, Mapping
from functools import partial
from typing import Any

from .clock import Clock, LoopClock
from .store import InMemoryCacheStore
from .types import CacheEntry, CacheStore, FreshnessZone, entry_lifetime_s

logger = logging.getLogger("remem.engine")

RefreshErrorHook = Callable[[Hashable, BaseException], Any]


class FreshnessEngine:
    """
    Cache-entry lifecycle for one memoized operation.

    Every call is classified against the stored entry for its key:

    - fresh: the stored value handle is returned, nothing is invoked.
    - stale-while-revalidate: the stored value is returned immediately and a
      background refresh installs a new entry when it succeeds.
    - stale-if-error: a refresh is awaited; its failure falls back to the
      stored value.
    - expired or missing: cold path. The new entry is installed before the
      operation settles so concurrent callers share the in-flight task.

    Refreshes never mutate an entry. A successful one installs a new entry and
    cancels the old entry's timer; a failed one leaves the old entry alone.
    """

    def __init__(
        self,
        operation: Callable[..., Any],
        *,
        store: CacheStore | None = None,
        clock: Clock | None = None,
        max_age_s: float = math.inf,
        stale_while_revalidate_s: float | None = None,
        stale_if_error_s: float | None = None,
        cache_errors: bool = False,
        on_refresh_error: RefreshErrorHook | None = None,
    ) -> None:
        self._operation = operation
        self._store = store if store is not None else InMemoryCacheStore()
        self._clock = clock or LoopClock()
        self._max_age_s = max_age_s
        self._stale_while_revalidate_s = stale_while_revalidate_s or None
        self._stale_if_error_s = stale_if_error_s or None
        self._cache_errors = cache_errors
        self._on_refresh_error = on_refresh_error
        self._lifetime_s = entry_lifetime_s(
            max_age_s, self._stale_while_revalidate_s, self._stale_if_error_s
        )
        self._inflight: set[asyncio.Task[Any]] = set()

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def inflight_count(self) -> int:
        """Number of started operation calls that have not settled yet."""
        return len(self._inflight)

    @staticmethod
    def zone_of(entry: CacheEntry, now: float) -> FreshnessZone:
        """Classify `entry` at time `now`. Upper bounds are exclusive."""
        fresh_until = entry.fresh_until_s
        if now < fresh_until:
            return "fresh"
        swr = entry.stale_while_revalidate_s
        if swr and now < fresh_until + swr:
            return "stale_while_revalidate"
        sie = entry.stale_if_error_s
        if sie and now < fresh_until + sie:
            return "stale_if_error"
        return "expired"

    async def invoke(
        self,
        key: Hashable,
        args: tuple[Any, ...] = (),
        kwargs: Mapping[str, Any] | None = None,
    ) -> Any:
        """Resolve one call for `key`, invoking the operation only when needed."""
        kwargs = dict(kwargs or {})
        now = self._clock.now()
        entry = self._store.get(key)
        if entry is None:
            logger.debug("Cache miss for key %r", key)
            return await self._populate(key, args, kwargs, now)

        zone = self.zone_of(entry, now)
        if zone == "fresh":
            return await asyncio.shield(entry.value)

        if zone == "stale_while_revalidate":
            logger.debug("Serving stale entry for key %r while revalidating", key)
            task = self._start(args, kwargs)
            task.add_done_callback(partial(self._apply_refresh, key, now))
            return await asyncio.shield(entry.value)

        if zone == "stale_if_error":
            return await self._refresh_or_fallback(key, entry, args, kwargs, now)

        logger.debug("Entry for key %r expired; repopulating", key)
        return await self._populate(key, args, kwargs, now)

    def _start(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(self._call(args, kwargs))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _call(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        result = self._operation(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _populate(
        self,
        key: Hashable,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        now: float,
    ) -> Any:
        task = self._start(args, kwargs)
        self._install(key, task, now)
        if not self._cache_errors:
            task.add_done_callback(partial(self._drop_failed, key))
        return await asyncio.shield(task)

    async def _refresh_or_fallback(
        self,
        key: Hashable,
        entry: CacheEntry,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        now: float,
    ) -> Any:
        task = self._start(args, kwargs)
        task.add_done_callback(partial(self._apply_refresh, key, now))
        try:
            return await asyncio.shield(task)
        except Exception:
            logger.debug("Refresh for key %r failed; serving stale entry", key)
            return await asyncio.shield(entry.value)

    def _install(self, key: Hashable, value: asyncio.Future[Any], created_at_s: float) -> CacheEntry:
        handle = None
        if not math.isinf(self._lifetime_s):
            delay_s = max(0.0, created_at_s + self._lifetime_s - self._clock.now())
            handle = self._clock.call_later(delay_s, self._evict, key, value)

        entry = CacheEntry(
            value=value,
            created_at_s=created_at_s,
            fresh_for_s=self._max_age_s,
            stale_while_revalidate_s=self._stale_while_revalidate_s,
            stale_if_error_s=self._stale_if_error_s,
            eviction_handle=handle,
        )
        previous = self._store.get(key)
        if previous is not None:
            previous.cancel_eviction()
        self._store.set(key, entry)
        return entry

    def _apply_refresh(self, key: Hashable, started_at_s: float, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            if self._on_refresh_error is not None:
                self._on_refresh_error(key, exc)
            return
        self._install(key, task, started_at_s)

    def _drop_failed(self, key: Hashable, task: asyncio.Task[Any]) -> None:
        if not task.cancelled() and task.exception() is None:
            return
        current = self._store.get(key)
        if current is None or current.value is not task:
            return
        current.cancel_eviction()
        self._store.delete(key)
        logger.debug("Dropped failed entry for key %r", key)

    def _evict(self, key: Hashable, value: asyncio.Future[Any]) -> None:
        current = self._store.get(key)
        if current is None or current.value is not value:
            return
        self._store.delete(key)
        logger.debug("Evicted entry for key %r", key)
