"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Cache entry model and collaborator protocols used by the freshness engine.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any, Literal, Protocol, runtime_checkable

KeyDeriver = Callable[[tuple[Any, ...]], Hashable]
FreshnessZone = Literal["fresh", "stale_while_revalidate", "stale_if_error", "expired"]


class TimerHandle(Protocol):
    """Cancellable scheduled callback (``asyncio.TimerHandle`` satisfies this)."""

    def cancel(self) -> None: ...


def entry_lifetime_s(
    fresh_for_s: float,
    stale_while_revalidate_s: float | None = None,
    stale_if_error_s: float | None = None,
) -> float:
    """Return how long after creation an entry can still serve any caller."""
    return max(
        fresh_for_s,
        fresh_for_s + (stale_while_revalidate_s or 0.0),
        fresh_for_s + (stale_if_error_s or 0.0),
    )


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """
    One memoized population attempt for a single key.

    Fields
    - value: task/future of the wrapped call. It may still be running, and it
      may hold an exception when failed attempts are cached.
    - created_at_s: clock time the entry was installed.
    - fresh_for_s: max-age window; ``math.inf`` means the entry never goes stale.
    - stale_while_revalidate_s: window after freshness during which the entry
      is served while a background refresh runs.
    - stale_if_error_s: window after freshness during which the entry is the
      fallback for a failed refresh.
    - eviction_handle: timer removing the entry from its store, ``None`` for
      entries that never expire.
    """

    value: asyncio.Future[Any]
    created_at_s: float
    fresh_for_s: float
    stale_while_revalidate_s: float | None = None
    stale_if_error_s: float | None = None
    eviction_handle: TimerHandle | None = None

    @property
    def fresh_until_s(self) -> float:
        return self.created_at_s + self.fresh_for_s

    @property
    def lifetime_s(self) -> float:
        """Seconds after creation until no window can use this entry anymore."""
        return entry_lifetime_s(
            self.fresh_for_s, self.stale_while_revalidate_s, self.stale_if_error_s
        )

    @property
    def is_immortal(self) -> bool:
        return math.isinf(self.lifetime_s)

    def cancel_eviction(self) -> None:
        if self.eviction_handle is not None:
            self.eviction_handle.cancel()


@runtime_checkable
class CacheStore(Protocol):
    """
    Key to entry mapping consulted by the freshness engine.

    ``get`` must hand back the same entry object that was passed to ``set``.
    Stores may additionally implement ``clear()``; that capability is optional
    and detected at call time.
    """

    def has(self, key: Hashable) -> bool: ...

    def get(self, key: Hashable) -> CacheEntry | None: ...

    def set(self, key: Hashable, entry: CacheEntry) -> None: ...

    def delete(self, key: Hashable) -> None: ...


def is_clearable(store: object) -> bool:
    """Return whether `store` exposes a callable bulk `clear()`."""
    return callable(getattr(store, "clear", None))
