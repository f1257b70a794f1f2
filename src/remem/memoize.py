"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

`memoize` decorator and the `clear` entry point.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Hashable
from typing import Any

from .clock import LoopClock
from .engine import FreshnessEngine
from .errors import CacheNotClearableError, MemoizeConfigError, NotMemoizedError
from .options import MemoizeOptions
from .store import resolve_cache_store
from .types import is_clearable

logger = logging.getLogger("remem.memoize")

_MEMOIZED_MARKER = "__remem_memoized__"


def first_argument(args: tuple[Any, ...]) -> Hashable:
    """Default key deriver: the first positional argument, or ``None``."""
    return args[0] if args else None


def memoize(
    fn: Callable[..., Any] | None = None,
    /,
    *,
    options: MemoizeOptions | None = None,
    **overrides: Any,
) -> Any:
    """
    Memoize an async (or plain) callable under a freshness policy.

    Usable as ``memoize(fn, max_age=60)``, ``@memoize`` or
    ``@memoize(max_age=60, stale_while_revalidate=300)``. Keyword options are
    the fields of `MemoizeOptions`; when both `options` and keywords are given
    the keywords win.

    The returned coroutine function carries its own store
    (``cache_store``), validated options (``cache_options``), the engine
    (``cache_engine``) and a ``cache_clear()`` shortcut.
    """
    if fn is None:
        return lambda func: memoize(func, options=options, **overrides)

    if not callable(fn):
        raise MemoizeConfigError(f"memoize expects a callable, got {type(fn).__name__}")

    resolved = _resolve_options(options, overrides)
    store = resolve_cache_store(resolved.cache)
    engine = FreshnessEngine(
        fn,
        store=store,
        clock=resolved.clock or LoopClock(),
        max_age_s=resolved.max_age,
        stale_while_revalidate_s=resolved.stale_while_revalidate,
        stale_if_error_s=resolved.stale_if_error,
        cache_errors=resolved.cache_errors,
        on_refresh_error=resolved.on_refresh_error,
    )
    derive_key = resolved.cache_key or first_argument

    @functools.wraps(fn)
    async def memoized(*args: Any, **kwargs: Any) -> Any:
        return await engine.invoke(derive_key(args), args, kwargs)

    setattr(memoized, _MEMOIZED_MARKER, True)
    memoized.cache_store = store  # type: ignore[attr-defined]
    memoized.cache_options = resolved  # type: ignore[attr-defined]
    memoized.cache_engine = engine  # type: ignore[attr-defined]
    memoized.cache_clear = functools.partial(clear, memoized)  # type: ignore[attr-defined]
    logger.debug(
        "Memoized %s (max_age=%s, stale_while_revalidate=%s, stale_if_error=%s)",
        getattr(fn, "__qualname__", repr(fn)),
        resolved.max_age,
        resolved.stale_while_revalidate,
        resolved.stale_if_error,
    )
    return memoized


def _resolve_options(options: MemoizeOptions | None, overrides: dict[str, Any]) -> MemoizeOptions:
    if options is None:
        return MemoizeOptions.build(**overrides)
    if not overrides:
        return options
    values = {name: getattr(options, name) for name in MemoizeOptions.model_fields}
    overrides = dict(overrides)
    if "cache_promise_rejection" in overrides:
        overrides["cache_errors"] = overrides.pop("cache_promise_rejection")
    values.update(overrides)
    return MemoizeOptions.build(**values)


def clear(fn: Callable[..., Any]) -> None:
    """
    Drop every entry cached for a memoized callable.

    Raises:
        NotMemoizedError: `fn` was not produced by `memoize`.
        CacheNotClearableError: the bound store has no ``clear()``.
    """
    if not getattr(fn, _MEMOIZED_MARKER, False):
        raise NotMemoizedError()

    store = fn.cache_store  # type: ignore[attr-defined]
    if not is_clearable(store):
        raise CacheNotClearableError()
    store.clear()
    logger.debug("Cleared cache for %s", getattr(fn, "__qualname__", repr(fn)))
