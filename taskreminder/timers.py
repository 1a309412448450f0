"""
timers.py
─────────
Time sources and the per-task timer registry.

  - Clock / SystemClock  — the only source of "now" (epoch milliseconds)
  - LoopDelay            — one-shot delayed callbacks on the asyncio event loop
  - TimerRegistry        — task id → live timer handle, at most one per task

All of this runs on a single event loop thread, so the registry mapping needs
no lock.  A delay larger than `max_delay_ms` is refused: splitting long waits
into chunks is the scheduler's job.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional, Protocol

logger = logging.getLogger(__name__)

# Largest single delay a timer primitive must accept (~24.8 days).
MAX_DELAY_MS = 2**31 - 1


class Clock(Protocol):
    def now_ms(self) -> int: ...


class SystemClock:
    """Wall-clock time in epoch milliseconds."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)


class DelayPrimitive(Protocol):
    max_delay_ms: int

    def schedule_after(self, delay_ms: int, callback: Callable[[], None]) -> Any: ...

    def cancel(self, handle: Any) -> None: ...


class LoopDelay:
    """
    Delayed callbacks backed by `loop.call_later`.

    If no loop is given, the running loop is looked up on every call, so the
    same instance works across the app lifespan and across test loops.
    """

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        max_delay_ms: int = MAX_DELAY_MS,
    ):
        self._loop = loop
        self.max_delay_ms = max_delay_ms

    def schedule_after(self, delay_ms: int, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0, delay_ms) / 1000.0, callback)

    def cancel(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()


class TimerRegistry:
    """Owns one live delayed callback per task id."""

    def __init__(self, delay: DelayPrimitive):
        self._delay = delay
        self._handles: Dict[str, Any] = {}

    @property
    def max_delay_ms(self) -> int:
        return self._delay.max_delay_ms

    def arm(self, task_id: str, delay_ms: int, callback: Callable[[], None]) -> None:
        """Cancel any existing timer for `task_id`, then schedule `callback`."""
        if delay_ms > self._delay.max_delay_ms:
            raise ValueError(
                f"delay {delay_ms}ms exceeds the maximum single delay "
                f"of {self._delay.max_delay_ms}ms"
            )
        self.cancel(task_id)
        self._handles[task_id] = self._delay.schedule_after(delay_ms, callback)

    def cancel(self, task_id: str) -> None:
        handle = self._handles.pop(task_id, None)
        if handle is not None:
            self._delay.cancel(handle)

    def discard(self, task_id: str) -> None:
        """Forget the entry for a timer that has already run."""
        self._handles.pop(task_id, None)

    def cancel_all(self) -> None:
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            self._delay.cancel(handle)
        if handles:
            logger.debug("Cancelled %d timer(s)", len(handles))

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)
