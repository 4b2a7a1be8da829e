"""Key/value cache with per-entry expiry.

Values are usually in-flight tasks: storing the task (not its result) under
a request key means concurrent identical requests share one remote fetch.
The TTL of an entry can depend on the value itself, e.g. "expire five
minutes after the last reading in the fetched data", in which case it is
computed once the value resolves.

Every ``set`` draws a fresh generation token.  A scheduled expiry only
fires if the key still holds the generation it was scheduled for, so a
timer belonging to an overwritten or deleted value can never evict its
successor.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterator
from datetime import timedelta
from typing import Any, Generic, TypeVar

from pysensorcache._clock import Clock, LoopClock, TimerHandle

_logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

TtlValue = float | int | timedelta | None
TtlPolicy = TtlValue | Callable[[Any, Any], "TtlValue | Awaitable[TtlValue]"]
ExpireListener = Callable[[Any, Any], None]

_DEFAULT: Any = object()


def _seconds(ttl: TtlValue) -> float | None:
    if ttl is None:
        return None
    if isinstance(ttl, timedelta):
        return max(0.0, ttl.total_seconds())
    return max(0.0, float(ttl))


class ExpiringCache(Generic[K, V]):
    """Mapping whose entries expire after a time-to-live.

    Parameters
    ----------
    ttl : TtlPolicy
        Default policy for :meth:`set`.  ``None`` keeps entries until they
        are overwritten or deleted; a number (seconds) or ``timedelta`` is a
        fixed TTL; a callable receives ``(key, value)`` and returns one of
        those, or an awaitable resolving to one.
    clock : Clock
        Time source and timer scheduler.
    """

    def __init__(self, *, ttl: TtlPolicy = None, clock: Clock | None = None) -> None:
        self._ttl = ttl
        self._counter = itertools.count(1)
        self._clock = clock or LoopClock()
        self._values: dict[K, V] = {}
        self._generations: dict[K, int] = {}
        self._timers: dict[K, TimerHandle] = {}
        self._pending: dict[K, asyncio.Task[Any]] = {}
        self._listeners: list[ExpireListener] = []

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def keys(self) -> Iterator[K]:
        return iter(list(self._values))

    def get(self, key: K, default: V | None = None) -> V | None:
        return self._values.get(key, default)

    def add_expire_listener(self, listener: ExpireListener) -> Callable[[], None]:
        """Call *listener(key, value)* whenever an entry expires.

        Returns a function that removes the listener again.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def set(self, key: K, value: V, ttl: TtlPolicy = _DEFAULT) -> None:
        """Store *value* under *key*, replacing any previous entry and its expiry."""
        generation = next(self._counter)
        self._generations[key] = generation
        self._values[key] = value
        self._cancel_timer(key)
        self._cancel_pending(key)

        policy = self._ttl if ttl is _DEFAULT else ttl
        resolved: Any = policy
        if callable(policy):
            try:
                resolved = policy(key, value)
            except Exception:
                _logger.debug("TTL computation failed key=%r, expiring immediately", key, exc_info=True)
                resolved = 0.0
        if inspect.isawaitable(resolved):
            task = asyncio.ensure_future(self._await_ttl(key, generation, resolved))
            self._pending[key] = task

            def _done(done: asyncio.Task[Any]) -> None:
                if self._pending.get(key) is done:
                    del self._pending[key]

            task.add_done_callback(_done)
            return
        self._schedule(key, generation, _seconds(resolved))

    def delete(self, key: K) -> bool:
        """Remove *key* and cancel its pending expiry or TTL computation.  Returns whether it existed."""
        self._cancel_timer(key)
        self._cancel_pending(key)
        self._generations.pop(key, None)
        return self._values.pop(key, _DEFAULT) is not _DEFAULT

    def clear(self) -> None:
        for key in list(self._timers):
            self._cancel_timer(key)
        for key in list(self._pending):
            self._cancel_pending(key)
        self._generations.clear()
        self._values.clear()

    async def _await_ttl(self, key: K, generation: int, pending: Awaitable[TtlValue]) -> None:
        try:
            ttl = _seconds(await pending)
        except asyncio.CancelledError:
            raise
        except Exception:
            # Without a usable TTL we would keep the value forever.
            _logger.debug("TTL computation failed key=%r, expiring immediately", key, exc_info=True)
            ttl = 0.0
        self._schedule(key, generation, ttl)

    def _schedule(self, key: K, generation: int, ttl: float | None) -> None:
        if ttl is None or self._generations.get(key) != generation:
            return
        self._cancel_timer(key)
        self._timers[key] = self._clock.call_later(ttl, self._expire, key, generation)
        _logger.debug("Expiration set to %.0fs key=%r", ttl, key)

    def _cancel_timer(self, key: K) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            _logger.debug("Clearing timeout key=%r", key)
            timer.cancel()

    def _cancel_pending(self, key: K) -> None:
        task = self._pending.pop(key, None)
        if task is not None and not task.done():
            _logger.debug("Cancelling TTL computation key=%r", key)
            task.cancel()

    def _expire(self, key: K, generation: int) -> None:
        if self._generations.get(key) != generation:
            return
        value = self._values.get(key)
        self._timers.pop(key, None)
        self.delete(key)
        _logger.debug("Expired value key=%r", key)
        for listener in list(self._listeners):
            try:
                listener(key, value)
            except Exception:
                _logger.exception("Expire listener failed key=%r", key)
