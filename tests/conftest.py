# tests/conftest.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from taskreminder.alarm_scheduler import AlarmScheduler
from taskreminder.config import Settings
from taskreminder.storage import JsonStore
from taskreminder.task_manager import TaskManager
from taskreminder.timers import TimerRegistry

from .fakes import T0, FakeClock, FakeDelay, InMemoryTaskStore, RecordingNotifier


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture()
def delay(clock: FakeClock) -> FakeDelay:
    return FakeDelay(clock)


@pytest.fixture()
def notifier(clock: FakeClock) -> RecordingNotifier:
    return RecordingNotifier(clock)


@pytest.fixture()
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture()
def scheduler(store, notifier, clock, delay) -> AlarmScheduler:
    return AlarmScheduler(store=store, notifier=notifier, clock=clock, registry=TimerRegistry(delay))


@pytest.fixture()
def json_store(tmp_path: Path) -> JsonStore:
    return JsonStore(tmp_path / "data")


@pytest.fixture()
def manager(json_store, notifier, clock, delay) -> TaskManager:
    mgr = TaskManager(storage=json_store, notifier=notifier, clock=clock, delay=delay)
    mgr.start()
    return mgr


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a per-test data dir; desktop notifications off."""
    return Settings(
        data_dir=tmp_path / "data",
        log_dir=tmp_path / "logs",
        desktop_notify=False,
        log_level=logging.DEBUG,
    )
