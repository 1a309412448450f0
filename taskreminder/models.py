"""
models.py
─────────
Shared Pydantic data models for the Task Reminder API.

Alarm configuration is stored permissively: malformed numbers become 0 and an
unknown mode becomes "duration".  `AlarmConfig.to_request()` turns the stored
form into a tagged request (`DurationAlarm` or `DatetimeAlarm`) so the
scheduler never re-checks for missing fields.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator


class AlarmMode(str, Enum):
    DURATION = "duration"
    DATETIME = "datetime"


def _non_negative_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        n = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, n)


def _epoch_ms(value: Any) -> Optional[int]:
    """Epoch milliseconds from a number, a numeric string or an ISO-8601 string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return int(value)
        except (ValueError, OverflowError):
            return None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            return int(raw)            # exact for large integer strings
        except ValueError:
            pass
        try:
            return int(float(raw))
        except ValueError:
            pass
        except OverflowError:
            return None
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            return None
        return int(dt.timestamp() * 1000)    # naive → local time
    return None


# ── Alarm requests (tagged variant) ───────────────────────────────────────────

@dataclass(frozen=True)
class DurationAlarm:
    hours: int = 0
    minutes: int = 0
    seconds: int = 0

    @property
    def offset_ms(self) -> int:
        return (self.hours * 3600 + self.minutes * 60 + self.seconds) * 1000


@dataclass(frozen=True)
class DatetimeAlarm:
    timestamp: int                         # epoch ms


AlarmRequest = Union[DurationAlarm, DatetimeAlarm]


# ── Alarm configuration (persisted form) ──────────────────────────────────────

class AlarmConfig(BaseModel):
    enabled: bool = False
    mode: AlarmMode = AlarmMode.DURATION
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    timestamp: Optional[int] = None        # epoch ms, datetime mode only

    @field_validator("mode", mode="before")
    @classmethod
    def _coerce_mode(cls, v: Any) -> AlarmMode:
        if isinstance(v, AlarmMode):
            return v
        if isinstance(v, str) and v.strip().lower() == AlarmMode.DATETIME.value:
            return AlarmMode.DATETIME
        return AlarmMode.DURATION

    @field_validator("hours", "minutes", "seconds", mode="before")
    @classmethod
    def _coerce_count(cls, v: Any) -> int:
        return _non_negative_int(v)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, v: Any) -> Optional[int]:
        return _epoch_ms(v)

    def to_request(self) -> AlarmRequest:
        """
        Build the tagged alarm request.

        Datetime mode without a usable timestamp falls back to duration mode.
        """
        if self.mode == AlarmMode.DATETIME and self.timestamp is not None:
            return DatetimeAlarm(timestamp=self.timestamp)
        return DurationAlarm(hours=self.hours, minutes=self.minutes, seconds=self.seconds)

    def normalized(self) -> AlarmConfig:
        """The config as the scheduler actually interprets it."""
        if not self.enabled:
            return self
        request = self.to_request()
        if isinstance(request, DatetimeAlarm):
            return self.model_copy(update={"mode": AlarmMode.DATETIME})
        return self.model_copy(update={"mode": AlarmMode.DURATION})


# ── Tasks ─────────────────────────────────────────────────────────────────────

def _now_iso() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


class Task(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str
    description: str = ""
    created_at: str = Field(default_factory=_now_iso)
    completed: bool = False
    alarm: AlarmConfig = Field(default_factory=AlarmConfig)

    # Timing metadata, written when the alarm is armed and cleared on disable.
    alarm_start_time: Optional[int] = None          # epoch ms
    alarm_target_timestamp: Optional[int] = None    # epoch ms
    alarm_duration: Optional[int] = None            # ms, >= 0

    def clear_alarm_timing(self) -> None:
        self.alarm_start_time = None
        self.alarm_target_timestamp = None
        self.alarm_duration = None

    @property
    def has_alarm_timing(self) -> bool:
        return (
            self.alarm_start_time is not None
            or self.alarm_target_timestamp is not None
            or self.alarm_duration is not None
        )


class TaskCreate(BaseModel):
    title: str
    description: str = ""
    alarm: Optional[AlarmConfig] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    completed: Optional[bool] = None
    alarm: Optional[AlarmConfig] = None


class Countdown(BaseModel):
    remaining: int            # ms, negative once overdue
    elapsed: int              # ms since the alarm was armed
    is_expired: bool
    total_duration: int       # ms
