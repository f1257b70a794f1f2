"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Validated memoization options and environment defaults.
"""

from __future__ import annotations

import math
import os
from collections.abc import Callable, Hashable
from datetime import timedelta
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import MemoizeConfigError

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _env_value(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip()
    return value or None


def _to_seconds(value: Any) -> Any:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return value


class MemoizeOptions(BaseModel):
    """
    Options accepted by `memoize`.

    Durations are seconds (``int``/``float``) or ``timedelta``. ``max_age``
    defaults to infinity, and ``None`` means the same. The two stale windows
    default to unset; a window of ``0`` behaves as unset.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )

    cache_key: Callable[[tuple[Any, ...]], Hashable] | None = None
    cache: Any = None
    max_age: float = math.inf
    cache_errors: bool = Field(
        default=False,
        validation_alias=AliasChoices("cache_errors", "cache_promise_rejection"),
    )
    stale_while_revalidate: float | None = None
    stale_if_error: float | None = None
    on_refresh_error: Callable[[Hashable, BaseException], Any] | None = None
    clock: Any = None

    @field_validator("max_age", mode="before")
    @classmethod
    def _max_age_default(cls, value: Any) -> Any:
        if value is None:
            return math.inf
        return _to_seconds(value)

    @field_validator("stale_while_revalidate", "stale_if_error", mode="before")
    @classmethod
    def _window_seconds(cls, value: Any) -> Any:
        return _to_seconds(value)

    @field_validator("max_age", "stale_while_revalidate", "stale_if_error")
    @classmethod
    def _non_negative(cls, value: float | None) -> float | None:
        if value is None:
            return None
        if math.isnan(value):
            raise ValueError("duration must be a number, got NaN")
        if value < 0:
            raise ValueError(f"duration must be >= 0, got {value}")
        return float(value)

    @classmethod
    def build(cls, **values: Any) -> "MemoizeOptions":
        """Validate `values`, reporting failures as `MemoizeConfigError`."""
        try:
            return cls(**values)
        except ValidationError as exc:
            raise MemoizeConfigError(f"Invalid memoize options: {exc}") from exc

    @classmethod
    def from_env(cls, **overrides: Any) -> "MemoizeOptions":
        """
        Load defaults from ``REMEM_*`` environment variables.

        Recognized variables: ``REMEM_MAX_AGE_S``,
        ``REMEM_STALE_WHILE_REVALIDATE_S``, ``REMEM_STALE_IF_ERROR_S`` and
        ``REMEM_CACHE_ERRORS``. Explicit `overrides` win over the environment.
        """
        values: dict[str, Any] = {}
        env_durations = {
            "max_age": "REMEM_MAX_AGE_S",
            "stale_while_revalidate": "REMEM_STALE_WHILE_REVALIDATE_S",
            "stale_if_error": "REMEM_STALE_IF_ERROR_S",
        }
        for field_name, env_name in env_durations.items():
            raw = _env_value(env_name)
            if raw is None:
                continue
            try:
                values[field_name] = float(raw)
            except ValueError as exc:
                raise MemoizeConfigError(f"{env_name} must be a number, got {raw!r}") from exc

        raw_errors = _env_value("REMEM_CACHE_ERRORS")
        if raw_errors is not None:
            flag = raw_errors.lower()
            if flag not in _TRUTHY | _FALSY:
                raise MemoizeConfigError(
                    f"REMEM_CACHE_ERRORS must be a boolean flag, got {raw_errors!r}"
                )
            values["cache_errors"] = flag in _TRUTHY

        values.update(overrides)
        return cls.build(**values)
