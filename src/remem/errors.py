"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error types raised by memoization setup and cache management.
"""

from __future__ import annotations


class RememError(RuntimeError):
    """Base class for usage errors reported by remem."""


class MemoizeConfigError(RememError, ValueError):
    """Raised when memoize options or the cache store are invalid."""


class NotMemoizedError(RememError):
    """Raised when a cache operation targets a function that was never memoized."""

    def __init__(self, message: str = "Can't clear a function that was not memoized!") -> None:
        super().__init__(message)


class CacheNotClearableError(RememError):
    """Raised when the store bound to a memoized function has no `clear` method."""

    def __init__(self, message: str = "The cache store can't be cleared!") -> None:
        super().__init__(message)
