"""Cancellable periodic timers.

Two implementations share one interface: ``AsyncioScheduler`` drives timers
from the running event loop, ``ManualScheduler`` is a virtual clock that only
moves when told to.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any, Protocol

log = logging.getLogger(__name__)

TimerCallback = Callable[[], Any]


class Timer(Protocol):
    name: str
    period: float

    @property
    def running(self) -> bool: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def set_period(self, period: float) -> None: ...


class Scheduler(Protocol):
    def now(self) -> int: ...

    def every(self, period: float, callback: TimerCallback, name: str = "") -> Timer: ...

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None: ...


def _fire(name: str, callback: TimerCallback, spawn: Callable[[Coroutine], None]) -> None:
    try:
        result = callback()
    except Exception:
        log.exception("timer %s callback failed", name or "?")
        return
    if asyncio.iscoroutine(result):
        spawn(result)


# -- event loop --


class AsyncioTimer:
    """Fixed-period timer backed by one task on the event loop.

    start/stop/set_period must be called from the loop thread.
    """

    def __init__(self, scheduler: AsyncioScheduler, period: float, callback: TimerCallback, name: str) -> None:
        self._scheduler = scheduler
        self.period = period
        self._callback = callback
        self.name = name
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name or None)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def set_period(self, period: float) -> None:
        if period == self.period:
            return
        self.period = period
        if self.running:
            self.stop()
            self.start()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.period)
            _fire(self.name, self._callback, self._scheduler.spawn)


class AsyncioScheduler:
    def __init__(self) -> None:
        self._background: set[asyncio.Task] = set()

    def now(self) -> int:
        return int(time.time() * 1000)

    def every(self, period: float, callback: TimerCallback, name: str = "") -> AsyncioTimer:
        return AsyncioTimer(self, period, callback, name)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        """Run a coroutine in the background; nobody awaits it."""
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._reap)

    def _reap(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("background task failed", exc_info=exc)

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait for background work (in-flight uploads) to finish."""
        pending = list(self._background)
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            log.warning("cancelled %d background tasks at shutdown", len(still_running))


# -- virtual clock --


class ManualTimer:
    def __init__(self, scheduler: ManualScheduler, period: float, callback: TimerCallback, name: str) -> None:
        self._scheduler = scheduler
        self.period = period
        self._callback = callback
        self.name = name
        self._running = False
        self.next_due = 0
        self.fired = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def period_ms(self) -> int:
        return max(int(round(self.period * 1000)), 1)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self.next_due = self._scheduler.now() + self.period_ms

    def stop(self) -> None:
        self._running = False

    def set_period(self, period: float) -> None:
        if period == self.period:
            return
        self.period = period
        if self._running:
            self._running = False
            self.start()

    def fire(self) -> None:
        self.fired += 1
        self.next_due += self.period_ms
        _fire(self.name, self._callback, self._scheduler.spawn)


class ManualScheduler:
    """Deterministic scheduler for tests and offline replay.

    Time starts at ``start_ms`` and advances only through :meth:`advance`.
    Spawned coroutines are queued until :meth:`run_pending`.
    """

    def __init__(self, start_ms: int = 0) -> None:
        self._now = start_ms
        self._timers: list[ManualTimer] = []
        self.pending: list[Coroutine[Any, Any, Any]] = []

    def now(self) -> int:
        return self._now

    def every(self, period: float, callback: TimerCallback, name: str = "") -> ManualTimer:
        timer = ManualTimer(self, period, callback, name)
        self._timers.append(timer)
        return timer

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        self.pending.append(coro)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in time order."""
        target = self._now + int(round(seconds * 1000))
        while True:
            due = [t for t in self._timers if t.running and t.next_due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.next_due)
            self._now = timer.next_due
            timer.fire()
        self._now = target

    def run_pending(self) -> int:
        """Run queued coroutines to completion on a fresh loop."""
        count = 0

        async def _drain() -> None:
            nonlocal count
            while self.pending:
                coro = self.pending.pop(0)
                count += 1
                try:
                    await coro
                except Exception:
                    log.exception("background task failed")

        asyncio.run(_drain())
        return count


class ReplayScheduler(ManualScheduler):
    """Virtual clock for replaying a recorded track faster than real time.

    The clock jumps to each sample's recorded ``time`` (see
    :meth:`advance_to`), firing heartbeat and flush timers in between as a live
    session would. Spawned work such as uploads runs on the event loop.
    """

    def __init__(self) -> None:
        super().__init__(start_ms=0)
        self._synced = False
        self._loop = AsyncioScheduler()

    def advance_to(self, time_ms: int) -> None:
        if not self._synced:
            # First recorded time: re-base timers started before any sample.
            self._synced = True
            self._now = time_ms
            for timer in self._timers:
                if timer.running:
                    timer.next_due = time_ms + timer.period_ms
            return
        if time_ms > self._now:
            self.advance((time_ms - self._now) / 1000.0)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        self._loop.spawn(coro)

    async def wait_idle(self, timeout: float | None = None) -> None:
        await self._loop.wait_idle(timeout)
