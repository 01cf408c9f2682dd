"""
Timer scheduling for replay playback.

The replay controller never sleeps; it asks a scheduler to call it back
after a delay. ``AsyncioScheduler`` uses the running event loop.
``VirtualScheduler`` keeps a manual clock so tests (and offline renders)
can step through a replay without waiting.

Handles returned by ``call_later`` can be cancelled any number of times.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Any, Callable, List, Optional, Tuple


class TimerHandle:
    """A pending callback. ``cancel()`` is idempotent."""

    def __init__(self, when: float, callback: Callable[..., Any], args: Tuple[Any, ...] = ()):
        self.when = when
        self._callback = callback
        self._args = args
        self._cancelled = False
        self._fired = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def pending(self) -> bool:
        return not (self._cancelled or self._fired)

    def cancel(self) -> None:
        self._cancelled = True

    def _run(self) -> None:
        if self._cancelled or self._fired:
            return
        self._fired = True
        self._callback(*self._args)


class Scheduler:
    """Interface: schedule ``callback(*args)`` after ``delay`` seconds."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        raise NotImplementedError

    def time(self) -> float:
        raise NotImplementedError


class AsyncioScheduler(Scheduler):
    """Real-time scheduling on an asyncio event loop (the running loop by default)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def time(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        loop = self.loop
        handle = _AsyncioTimerHandle(loop.time() + max(0.0, delay), callback, args)
        handle._timer = loop.call_later(max(0.0, delay), handle._run)
        return handle


class _AsyncioTimerHandle(TimerHandle):
    _timer: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        super().cancel()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class VirtualScheduler(Scheduler):
    """
    Manual clock. Nothing runs until ``advance()`` or ``run_until_idle()``.

    Callbacks due at the same instant run in scheduling order. A callback
    may schedule further callbacks; those run within the same ``advance``
    if they fall due before its target time.
    """

    def __init__(self, start: float = 0.0):
        self.now = start
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        handle = TimerHandle(self.now + max(0.0, delay), callback, args)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if h.pending)

    def next_due(self) -> Optional[float]:
        """Clock time of the earliest live callback, or None when idle."""
        self._drop_cancelled()
        return self._queue[0][0] if self._queue else None

    def _drop_cancelled(self) -> None:
        while self._queue and not self._queue[0][2].pending:
            heapq.heappop(self._queue)

    def _run_next(self) -> None:
        when, _, handle = heapq.heappop(self._queue)
        self.now = max(self.now, when)
        handle._run()

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing everything that falls due. Returns callbacks run."""
        target = self.now + max(0.0, seconds)
        ran = 0
        while True:
            due = self.next_due()
            if due is None or due > target:
                break
            self._run_next()
            ran += 1
        self.now = target
        return ran

    def run_until_idle(self, max_callbacks: int = 10_000) -> int:
        """Fire callbacks in time order until none remain."""
        ran = 0
        while self.next_due() is not None:
            if ran >= max_callbacks:
                raise RuntimeError(f"Scheduler still busy after {max_callbacks} callbacks")
            self._run_next()
            ran += 1
        return ran
