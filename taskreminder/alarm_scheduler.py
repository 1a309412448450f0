"""
alarm_scheduler.py
──────────────────
Turns task alarm configuration into armed timers and fires notifications.

Per-task states:

    Disabled → Armed → (re-armed at each chunk boundary)* → Fired

Every arm path cancels the task's existing timer first, so the most recent
`set_alarm` always wins.  Waits longer than the timer primitive's maximum
delay are split into chunks; each chunk recomputes the remaining time from
the absolute target, so no drift accumulates.

Timing fields stay on the task after firing so the countdown can report the
alarm as overdue.  Only disabling or re-arming clears them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from .deadline import compute_deadline
from .errors import PersistenceError
from .models import AlarmConfig, Task
from .timers import Clock, TimerRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _AlarmSnapshot:
    alarm: AlarmConfig
    start_time: Optional[int]
    target_timestamp: Optional[int]
    duration: Optional[int]

    @classmethod
    def of(cls, task: Task) -> _AlarmSnapshot:
        return cls(
            alarm=task.alarm,
            start_time=task.alarm_start_time,
            target_timestamp=task.alarm_target_timestamp,
            duration=task.alarm_duration,
        )

    def apply(self, task: Task) -> None:
        task.alarm = self.alarm
        task.alarm_start_time = self.start_time
        task.alarm_target_timestamp = self.target_timestamp
        task.alarm_duration = self.duration


class TaskStore(Protocol):
    def find(self, task_id: str) -> Optional[Task]: ...

    def persist(self) -> None: ...


class NotificationSink(Protocol):
    def notify(self, task_id: str, title: str) -> None: ...


class AlarmScheduler:

    def __init__(
        self,
        store: TaskStore,
        notifier: NotificationSink,
        clock: Clock,
        registry: TimerRegistry,
    ):
        self._store = store
        self._notifier = notifier
        self._clock = clock
        self._timers = registry

    @property
    def timers(self) -> TimerRegistry:
        return self._timers

    # ── Public API ────────────────────────────────────────────────────────────

    def set_alarm(self, task_id: str, config: AlarmConfig) -> Optional[Task]:
        """
        Arm, re-arm or disable the alarm of a task.

        Returns the task, or None if it does not exist.  If the write fails,
        the previous alarm (and its timer, if still pending) is put back
        before PersistenceError propagates.
        """
        self._timers.cancel(task_id)

        task = self._store.find(task_id)
        if task is None:
            return None

        previous = _AlarmSnapshot.of(task)

        if not config.enabled:
            task.alarm = config
            task.clear_alarm_timing()
            self._persist_or_rollback(task, previous)
            logger.info("Alarm disabled for task %s", task_id)
            return task

        task.alarm = config.normalized()
        deadline = compute_deadline(task.alarm, self._clock.now_ms())
        task.alarm_start_time = deadline.start_time
        task.alarm_target_timestamp = deadline.target_timestamp
        task.alarm_duration = deadline.duration
        self._persist_or_rollback(task, previous)
        logger.info(
            "Alarm armed for task %s: target=%d duration=%dms",
            task_id, deadline.target_timestamp, deadline.duration,
        )

        self.schedule_alarm(task_id)
        return task

    def schedule_alarm(self, task_id: str) -> None:
        """
        Register the next timer for a task, or fire it if the target is due.

        Also used as the callback of every chunk, so it must recompute from
        the stored absolute target each time.
        """
        task = self._store.find(task_id)
        if task is None or not task.alarm.enabled or task.alarm_target_timestamp is None:
            return

        self._timers.cancel(task_id)

        remaining = task.alarm_target_timestamp - self._clock.now_ms()
        if remaining <= 0:
            self._fire(task_id)
            return

        delay = min(remaining, self._timers.max_delay_ms)
        self._timers.arm(task_id, delay, lambda: self.schedule_alarm(task_id))
        if delay < remaining:
            logger.debug("Task %s: %dms remaining, next check in %dms", task_id, remaining, delay)

    def restore(self, task: Task) -> None:
        """
        Resume a task's alarm after the process (re)starts.

        A target already in the past is left alone: it fired in an earlier
        run and stays in the overdue state.  A future target is resumed
        without touching its start time.  An enabled alarm with no timing
        fields at all is armed from scratch.
        """
        if not task.alarm.enabled:
            return

        target = task.alarm_target_timestamp
        if target is None:
            if task.has_alarm_timing:
                logger.warning("Task %s has incomplete alarm timing; re-arming", task.id)
            self.set_alarm(task.id, task.alarm)
            return

        if target <= self._clock.now_ms():
            logger.debug("Task %s alarm already expired; not rescheduling", task.id)
            return

        self.schedule_alarm(task.id)

    def resume(self, task_id: str) -> None:
        """Re-register the timer of a still-pending alarm; never fires."""
        task = self._store.find(task_id)
        if task is None or not task.alarm.enabled or task.alarm_target_timestamp is None:
            return
        if task.alarm_target_timestamp > self._clock.now_ms():
            self.schedule_alarm(task_id)

    def cancel(self, task_id: str) -> None:
        self._timers.cancel(task_id)

    def cancel_all(self) -> None:
        self._timers.cancel_all()

    def is_armed(self, task_id: str) -> bool:
        return task_id in self._timers

    # ── Internal ──────────────────────────────────────────────────────────────

    def _persist_or_rollback(self, task: Task, previous: _AlarmSnapshot) -> None:
        try:
            self._store.persist()
        except PersistenceError:
            previous.apply(task)
            self.resume(task.id)
            logger.warning("Alarm change for task %s not saved; previous alarm restored", task.id)
            raise

    def _fire(self, task_id: str) -> None:
        self._timers.discard(task_id)

        # The task may have been deleted or disabled while the timer was pending.
        task = self._store.find(task_id)
        if task is None or not task.alarm.enabled:
            return

        logger.info("Alarm fired for task %s (%s)", task_id, task.title)
        try:
            self._notifier.notify(task_id, task.title)
        except Exception:
            logger.exception("Notification failed for task %s", task_id)
