"""
task_manager.py
───────────────
Task & alarm management.

TaskManager owns the in-memory task collection and is the task store the
AlarmScheduler reads and persists through.  Every mutation is followed by a
write to the JSON store; a failed write undoes the in-memory change and
raises PersistenceError.

Everything here is meant to run on the event loop thread (timers are
`loop.call_later` handles), so there is no lock around the task map.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from .alarm_scheduler import AlarmScheduler, NotificationSink
from .countdown import query_countdown
from .errors import PersistenceError
from .models import AlarmConfig, Countdown, Task, TaskCreate, TaskUpdate
from .storage import JsonStore
from .timers import Clock, DelayPrimitive, LoopDelay, SystemClock, TimerRegistry

logger = logging.getLogger(__name__)


class TaskManager:

    def __init__(
        self,
        storage: JsonStore,
        notifier: NotificationSink,
        clock: Optional[Clock] = None,
        delay: Optional[DelayPrimitive] = None,
    ):
        self._tasks: Dict[str, Task] = {}
        self._storage = storage
        self._clock = clock or SystemClock()
        self._pid = os.getpid()
        self.alarms = AlarmScheduler(
            store=self,
            notifier=notifier,
            clock=self._clock,
            registry=TimerRegistry(delay or LoopDelay()),
        )

    def start(self) -> None:
        """Load persisted tasks and resume their alarms."""
        self._load()
        for task in list(self._tasks.values()):
            self.alarms.restore(task)
        logger.info(
            "Loaded %d task(s), %d alarm timer(s) live (pid=%d)",
            len(self._tasks), len(self.alarms.timers), self._pid,
        )

    def stop(self) -> None:
        self.alarms.cancel_all()

    # ── Task store interface ──────────────────────────────────────────────────

    def find(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def persist(self) -> None:
        data = [t.model_dump(mode="json") for t in self._tasks.values()]
        self._storage.save_tasks(data)

    # ── CRUD ──────────────────────────────────────────────────────────────────

    def get_all(self) -> List[Task]:
        return list(self._tasks.values())

    def get(self, task_id: str) -> Optional[Task]:
        return self.find(task_id)

    def add(self, body: TaskCreate) -> Task:
        task = Task(title=body.title, description=body.description)
        self._tasks[task.id] = task
        try:
            if body.alarm is not None and body.alarm.enabled:
                self.alarms.set_alarm(task.id, body.alarm)
            else:
                if body.alarm is not None:
                    task.alarm = body.alarm
                self.persist()
        except PersistenceError:
            self.alarms.cancel(task.id)
            del self._tasks[task.id]
            raise
        logger.info("Task %s created", task.id)
        return task

    def update(self, task_id: str, body: TaskUpdate) -> Optional[Task]:
        task = self.find(task_id)
        if task is None:
            return None

        changes = body.model_dump(exclude_none=True, exclude={"alarm"})
        previous = {k: getattr(task, k) for k in changes}
        for k, v in changes.items():
            setattr(task, k, v)

        try:
            if body.alarm is not None:
                self.alarms.set_alarm(task_id, body.alarm)
            else:
                self.persist()
        except PersistenceError:
            for k, v in previous.items():
                setattr(task, k, v)
            raise
        return task

    def set_alarm(self, task_id: str, patch: Mapping[str, Any]) -> Optional[Task]:
        """
        Merge `patch` over the task's stored alarm config and apply it.

        Raises pydantic.ValidationError if the merged config is unusable.
        """
        task = self.find(task_id)
        if task is None:
            return None
        merged = {**task.alarm.model_dump(), **dict(patch)}
        config = AlarmConfig.model_validate(merged)
        return self.alarms.set_alarm(task_id, config)

    def toggle(self, task_id: str) -> Optional[Task]:
        task = self.find(task_id)
        if task is None:
            return None
        task.completed = not task.completed
        try:
            self.persist()
        except PersistenceError:
            task.completed = not task.completed
            raise
        return task

    def delete(self, task_id: str) -> bool:
        # Cancel before removing so a pending timer can never see a half-deleted task.
        self.alarms.cancel(task_id)
        if task_id not in self._tasks:
            return False
        previous = dict(self._tasks)
        del self._tasks[task_id]
        try:
            self.persist()
        except PersistenceError:
            self._restore(previous)
            raise
        logger.info("Task %s deleted", task_id)
        return True

    def clear_all(self) -> None:
        self.alarms.cancel_all()
        previous = dict(self._tasks)
        self._tasks.clear()
        try:
            self.persist()
        except PersistenceError:
            self._restore(previous)
            raise
        logger.info("All tasks cleared")

    # ── Countdown ─────────────────────────────────────────────────────────────

    def countdown(self, task_id: str) -> Optional[Countdown]:
        task = self._tasks.get(task_id)
        if task is None:
            return None
        return query_countdown(task, self._clock.now_ms())

    def countdowns(self) -> Dict[str, Countdown]:
        now = self._clock.now_ms()
        out: Dict[str, Countdown] = {}
        for task in self._tasks.values():
            info = query_countdown(task, now)
            if info is not None:
                out[task.id] = info
        return out

    # ── Persistence ───────────────────────────────────────────────────────────

    def _load(self) -> None:
        self._tasks.clear()
        for row in self._storage.load_tasks():
            try:
                t = Task.model_validate(row)
            except ValidationError as exc:
                logger.warning("Skipping malformed task row: %s", exc.errors()[:1])
                continue
            self._tasks[t.id] = t

    def _restore(self, previous: Dict[str, Task]) -> None:
        """Put back a task map after a failed write, re-arming pending alarms."""
        self._tasks.clear()
        self._tasks.update(previous)
        for task_id in self._tasks:
            self.alarms.resume(task_id)
