"""
countdown.py
────────────
Read-only countdown view of a task's alarm.

Computed from the stored start time and duration only; it never touches
timers or task state, so any number of observers may poll it.
"""

from __future__ import annotations

from typing import Optional

from .models import Countdown, Task


def query_countdown(task: Task, now_ms: int) -> Optional[Countdown]:
    if not task.alarm.enabled:
        return None
    if task.alarm_start_time is None or task.alarm_duration is None:
        return None

    elapsed = now_ms - task.alarm_start_time
    remaining = task.alarm_duration - elapsed
    return Countdown(
        remaining=remaining,
        elapsed=elapsed,
        is_expired=remaining <= 0,
        total_duration=task.alarm_duration,
    )
