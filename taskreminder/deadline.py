"""
deadline.py
───────────
Deadline calculation: alarm request + current time → absolute target.

Pure and side-effect free.  Datetime alarms in the past are accepted; they
produce a zero duration and fire as soon as they are scheduled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .models import AlarmConfig, AlarmRequest, DatetimeAlarm


@dataclass(frozen=True)
class Deadline:
    target_timestamp: int      # epoch ms
    start_time: int            # epoch ms
    duration: int              # ms, never negative


def compute_deadline(alarm: Union[AlarmConfig, AlarmRequest], now_ms: int) -> Deadline:
    if isinstance(alarm, AlarmConfig):
        alarm = alarm.to_request()

    if isinstance(alarm, DatetimeAlarm):
        target = int(alarm.timestamp)
    else:
        target = now_ms + alarm.offset_ms

    return Deadline(
        target_timestamp=target,
        start_time=now_ms,
        duration=max(0, target - now_ms),
    )
