from __future__ import annotations

import asyncio

import pytest

from remem import CacheEntry, FreshnessEngine, ManualClock, memoize


def run_async(coro):
    return asyncio.run(coro)


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def _sequence(*outcomes):
    calls: list[tuple] = []

    async def operation(*args, **kwargs):
        calls.append(args)
        outcome = outcomes[min(len(calls), len(outcomes)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    return operation, calls


def test_fresh_window_returns_cached_value_without_invoking():
    async def scenario() -> None:
        clock = ManualClock()
        operation, calls = _sequence("first", "second")
        memo = memoize(operation, max_age=100, clock=clock)

        assert await memo() == "first"
        clock.advance(25)
        assert await memo() == "first"
        clock.advance(25)
        assert await memo() == "first"
        assert len(calls) == 1

        clock.advance(51)
        assert await memo() == "second"
        assert len(calls) == 2

    run_async(scenario())


def test_default_max_age_never_reinvokes():
    async def scenario() -> None:
        clock = ManualClock()
        operation, calls = _sequence("test")
        memo = memoize(operation, clock=clock)

        await memo()
        clock.advance(10**9)
        await memo()

        assert len(calls) == 1
        assert clock.pending_timers == 0

    run_async(scenario())


def test_zero_max_age_repopulates_on_every_call():
    async def scenario() -> None:
        clock = ManualClock()
        operation, calls = _sequence("a", "b", "c")
        memo = memoize(operation, max_age=0, clock=clock)

        assert [await memo(), await memo(), await memo()] == ["a", "b", "c"]
        assert len(calls) == 3

    run_async(scenario())


def test_fresh_window_upper_bound_is_exclusive():
    async def scenario() -> None:
        clock = ManualClock()
        operation, calls = _sequence("first", "second")
        memo = memoize(operation, max_age=100, clock=clock)

        await memo()
        clock.advance(100)
        assert await memo() == "second"
        assert len(calls) == 2

    run_async(scenario())


def test_zone_of_classifies_half_open_windows():
    async def scenario() -> None:
        future = asyncio.get_running_loop().create_future()
        future.set_result("v")
        entry = CacheEntry(
            value=future,
            created_at_s=0.0,
            fresh_for_s=100.0,
            stale_while_revalidate_s=50.0,
            stale_if_error_s=80.0,
        )
        assert FreshnessEngine.zone_of(entry, 99.9) == "fresh"
        assert FreshnessEngine.zone_of(entry, 100.0) == "stale_while_revalidate"
        assert FreshnessEngine.zone_of(entry, 149.9) == "stale_while_revalidate"
        assert FreshnessEngine.zone_of(entry, 150.0) == "stale_if_error"
        assert FreshnessEngine.zone_of(entry, 180.0) == "expired"

    run_async(scenario())


def test_stale_while_revalidate_serves_stale_and_refreshes_once():
    async def scenario() -> None:
        clock = ManualClock()
        operation, calls = _sequence("first", "second")
        memo = memoize(operation, max_age=100, stale_while_revalidate=500, clock=clock)

        assert await memo() == "first"
        clock.advance(101)
        assert await memo() == "first"
        await settle()
        assert len(calls) == 2

        clock.advance(400)
        assert await memo() == "second"

    run_async(scenario())


def test_stale_while_revalidate_expires_after_both_windows():
    async def scenario() -> None:
        clock = ManualClock()
        operation, calls = _sequence("first", "second", "third", "fourth")
        memo = memoize(operation, max_age=100, stale_while_revalidate=500, clock=clock)

        assert await memo() == "first"
        clock.advance(101)
        assert await memo() == "first"
        await settle()
        clock.advance(400)
        assert await memo() == "second"
        await settle()
        assert await memo() == "third"

        clock.advance(601)
        assert not memo.cache_store.has(None)
        assert await memo() == "fourth"
        assert len(calls) == 4

    run_async(scenario())


def test_background_refresh_uses_refresh_start_as_timestamp():
    async def scenario() -> None:
        clock = ManualClock()
        operation, _ = _sequence("first", "second")
        memo = memoize(operation, max_age=100, stale_while_revalidate=500, clock=clock)

        await memo()
        clock.advance(101)
        await memo()
        await settle()

        entry = memo.cache_store.get(None)
        assert entry.created_at_s == 101
        assert entry.value.result() == "second"

    run_async(scenario())


def test_background_refresh_failure_keeps_stale_entry():
    async def scenario() -> None:
        clock = ManualClock()
        reported: list[tuple] = []
        operation, calls = _sequence("first", RuntimeError("refresh failed"))
        memo = memoize(
            operation,
            max_age=100,
            stale_while_revalidate=500,
            clock=clock,
            on_refresh_error=lambda key, exc: reported.append((key, str(exc))),
        )

        await memo()
        original = memo.cache_store.get(None)
        clock.advance(101)
        assert await memo() == "first"
        await settle()

        assert memo.cache_store.get(None) is original
        assert not original.eviction_handle.cancelled
        assert reported == [(None, "refresh failed")]
        assert len(calls) == 2

    run_async(scenario())


def test_background_refresh_failure_is_not_logged(caplog):
    async def scenario() -> None:
        clock = ManualClock()
        operation, _ = _sequence("first", RuntimeError("quiet failure"))
        memo = memoize(operation, max_age=100, stale_while_revalidate=500, clock=clock)

        await memo()
        clock.advance(101)
        await memo()
        await settle()

    with caplog.at_level("DEBUG", logger="remem"):
        run_async(scenario())

    assert all("quiet failure" not in record.getMessage() for record in caplog.records)


def test_stale_if_error_falls_back_to_stale_value():
    async def scenario() -> None:
        clock = ManualClock()
        error = RuntimeError("testError")
        operation, calls = _sequence("first", error)
        memo = memoize(operation, max_age=100, stale_if_error=500, clock=clock)

        assert await memo() == "first"
        clock.advance(101)
        assert await memo() == "first"
        assert len(calls) == 2

    run_async(scenario())


def test_stale_if_error_raises_after_window_closes():
    async def scenario() -> None:
        clock = ManualClock()
        error = RuntimeError("testError")
        operation, calls = _sequence("first", error)
        memo = memoize(operation, max_age=100, stale_if_error=500, clock=clock)

        await memo()
        clock.advance(101)
        assert await memo() == "first"
        clock.advance(500)
        with pytest.raises(RuntimeError, match="testError"):
            await memo()
        assert len(calls) == 3

    run_async(scenario())


def test_stale_if_error_failure_leaves_entry_reusable_until_window_closes():
    async def scenario() -> None:
        clock = ManualClock()
        operation, calls = _sequence("first", RuntimeError("down"))
        memo = memoize(operation, max_age=100, stale_if_error=500, clock=clock)

        await memo()
        original = memo.cache_store.get(None)
        clock.advance(101)
        assert await memo() == "first"
        clock.advance(49)
        assert await memo() == "first"

        assert memo.cache_store.get(None) is original
        assert not original.eviction_handle.cancelled
        assert len(calls) == 3

    run_async(scenario())


def test_stale_if_error_success_installs_new_entry():
    async def scenario() -> None:
        clock = ManualClock()
        operation, calls = _sequence("first", "second", "third")
        memo = memoize(operation, max_age=100, stale_if_error=500, clock=clock)

        await memo()
        original = memo.cache_store.get(None)
        clock.advance(101)
        assert await memo() == "second"
        clock.advance(50)
        assert await memo() == "second"

        assert original.eviction_handle.cancelled
        assert memo.cache_store.get(None).created_at_s == 101
        assert len(calls) == 2

    run_async(scenario())


def test_stale_while_revalidate_takes_precedence_over_stale_if_error():
    async def scenario() -> None:
        clock = ManualClock()
        gate = asyncio.Event()
        calls: list[int] = []

        async def operation():
            calls.append(1)
            if len(calls) == 1:
                return "first"
            await gate.wait()
            raise RuntimeError("refresh failed")

        memo = memoize(
            operation,
            max_age=100,
            stale_while_revalidate=500,
            stale_if_error=500,
            clock=clock,
        )
        await memo()
        original = memo.cache_store.get(None)
        clock.advance(101)

        # Returns without waiting on the blocked refresh.
        assert await asyncio.wait_for(memo(), timeout=1) == "first"
        await settle()
        assert len(calls) == 2
        assert memo.cache_engine.inflight_count == 1

        gate.set()
        await settle()
        assert memo.cache_store.get(None) is original
        assert memo.cache_engine.inflight_count == 0

    run_async(scenario())


def test_stale_if_error_applies_once_revalidate_window_has_passed():
    async def scenario() -> None:
        clock = ManualClock()
        operation, calls = _sequence("first", RuntimeError("down"))
        memo = memoize(
            operation,
            max_age=100,
            stale_while_revalidate=50,
            stale_if_error=500,
            clock=clock,
        )

        await memo()
        clock.advance(200)
        assert await memo() == "first"
        assert len(calls) == 2

    run_async(scenario())
