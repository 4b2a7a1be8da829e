from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any

import pytest

from pysensorcache.cache import ExpiringCache

from conftest import FakeClock


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def test_fixed_ttl_expires_and_notifies(clock: FakeClock) -> None:
    cache: ExpiringCache[str, int] = ExpiringCache(clock=clock)
    expired: list[tuple[str, int]] = []
    cache.add_expire_listener(lambda key, value: expired.append((key, value)))

    cache.set("a", 1, ttl=10)
    clock.advance(9)
    assert cache.get("a") == 1

    clock.advance(1)
    assert "a" not in cache
    assert expired == [("a", 1)]


def test_constructor_ttl_is_default_policy(clock: FakeClock) -> None:
    cache: ExpiringCache[str, int] = ExpiringCache(ttl=timedelta(minutes=1), clock=clock)

    cache.set("a", 1)
    cache.set("b", 2, ttl=None)
    clock.advance(60)

    assert "a" not in cache
    assert cache.get("b") == 2


def test_no_ttl_keeps_entry(clock: FakeClock) -> None:
    cache: ExpiringCache[str, int] = ExpiringCache(clock=clock)

    cache.set("a", 1)
    clock.advance(10**6)

    assert cache.get("a") == 1
    assert clock.pending == []


def test_overwrite_reschedules_expiry(clock: FakeClock) -> None:
    cache: ExpiringCache[str, str] = ExpiringCache(clock=clock)

    cache.set("k", "A", ttl=10)
    clock.advance(5)
    cache.set("k", "B", ttl=20)
    clock.advance(10)
    assert cache.get("k") == "B"

    clock.advance(15)
    assert "k" not in cache


def test_stale_timer_cannot_evict_successor(clock: FakeClock) -> None:
    cache: ExpiringCache[str, str] = ExpiringCache(clock=clock)
    cache.set("k", "A", ttl=10)
    stale = clock.timers[0]

    cache.set("k", "B", ttl=None)
    # Fire the old timer even though it was cancelled.
    stale.callback(*stale.args)

    assert cache.get("k") == "B"


def test_delete_cancels_expiry(clock: FakeClock) -> None:
    cache: ExpiringCache[str, str] = ExpiringCache(clock=clock)
    cache.set("k", "A", ttl=10)

    assert cache.delete("k")
    assert not cache.delete("k")
    assert clock.pending == []

    cache.set("k", "B")
    clock.advance(20)
    assert cache.get("k") == "B"


def test_clear_cancels_everything(clock: FakeClock) -> None:
    cache: ExpiringCache[str, int] = ExpiringCache(ttl=10, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)

    cache.clear()

    assert len(cache) == 0
    assert clock.pending == []


def test_ttl_callable_receives_key_and_value(clock: FakeClock) -> None:
    cache: ExpiringCache[str, int] = ExpiringCache(clock=clock)

    cache.set("a", 30, ttl=lambda _key, value: value)
    clock.advance(29)
    assert "a" in cache

    clock.advance(1)
    assert "a" not in cache


@pytest.mark.asyncio
async def test_async_ttl_schedules_once_resolved(clock: FakeClock) -> None:
    cache: ExpiringCache[str, str] = ExpiringCache(clock=clock)
    ttl_future: asyncio.Future[float] = asyncio.get_running_loop().create_future()

    async def _ttl(_key: Any, _value: Any) -> float:
        return await ttl_future

    cache.set("k", "A", ttl=_ttl)
    await _settle()
    assert clock.pending == []

    ttl_future.set_result(30)
    await _settle()
    clock.advance(30)

    assert "k" not in cache


@pytest.mark.asyncio
async def test_failed_async_ttl_expires_immediately(clock: FakeClock) -> None:
    cache: ExpiringCache[str, str] = ExpiringCache(clock=clock)

    async def _ttl(_key: Any, _value: Any) -> float:
        raise RuntimeError("boom")

    cache.set("k", "A", ttl=_ttl)
    await _settle()
    clock.advance(0)

    assert "k" not in cache


def test_failing_ttl_policy_expires_immediately(clock: FakeClock) -> None:
    cache: ExpiringCache[str, str] = ExpiringCache(clock=clock)

    def _ttl(_key: Any, _value: Any) -> float:
        raise RuntimeError("boom")

    cache.set("k", "A", ttl=_ttl)
    assert cache.get("k") == "A"

    clock.advance(0)
    assert "k" not in cache


@pytest.mark.asyncio
async def test_delete_cancels_pending_ttl_computation(clock: FakeClock) -> None:
    cache: ExpiringCache[str, str] = ExpiringCache(clock=clock)
    never: asyncio.Future[float] = asyncio.get_running_loop().create_future()
    cancelled: list[str] = []

    async def _ttl(key: Any, _value: Any) -> float:
        try:
            return await never
        except asyncio.CancelledError:
            cancelled.append(key)
            raise

    cache.set("k", "A", ttl=_ttl)
    await _settle()

    assert cache.delete("k")
    await _settle()

    assert cancelled == ["k"]
    assert clock.pending == []


@pytest.mark.asyncio
async def test_async_ttl_of_overwritten_value_is_ignored(clock: FakeClock) -> None:
    cache: ExpiringCache[str, str] = ExpiringCache(clock=clock)
    ttl_future: asyncio.Future[float] = asyncio.get_running_loop().create_future()

    async def _ttl(_key: Any, _value: Any) -> float:
        return await ttl_future

    cache.set("k", "A", ttl=_ttl)
    cache.set("k", "B", ttl=None)
    ttl_future.set_result(0)
    await _settle()
    clock.advance(10)

    assert cache.get("k") == "B"
    assert clock.pending == []


@pytest.mark.asyncio
async def test_clear_cancels_pending_ttl_computations(clock: FakeClock) -> None:
    cache: ExpiringCache[str, str] = ExpiringCache(clock=clock)
    never: asyncio.Future[float] = asyncio.get_running_loop().create_future()

    async def _ttl(_key: Any, _value: Any) -> float:
        return await never

    cache.set("k", "A", ttl=_ttl)
    await _settle()
    cache.clear()
    await _settle()

    assert len(cache) == 0
    assert clock.pending == []


def test_failing_listener_is_logged(clock: FakeClock, caplog: pytest.LogCaptureFixture) -> None:
    cache: ExpiringCache[str, int] = ExpiringCache(clock=clock)
    seen: list[str] = []

    def _broken(_key: str, _value: int) -> None:
        raise RuntimeError("listener broke")

    cache.add_expire_listener(_broken)
    remove = cache.add_expire_listener(lambda key, _value: seen.append(key))

    with caplog.at_level(logging.ERROR, logger="pysensorcache.cache"):
        cache.set("a", 1, ttl=1)
        clock.advance(1)

    assert seen == ["a"]
    assert "Expire listener failed" in caplog.text

    remove()
    cache.set("b", 2, ttl=1)
    clock.advance(1)
    assert seen == ["a"]
