# tests/test_alarm_scheduler.py

from __future__ import annotations

import pytest

from taskreminder.alarm_scheduler import AlarmScheduler
from taskreminder.errors import PersistenceError
from taskreminder.models import AlarmConfig, Task
from taskreminder.timers import TimerRegistry

from .fakes import T0, FakeClock, FakeDelay, InMemoryTaskStore, RecordingNotifier


def _duration(**kwargs) -> AlarmConfig:
    return AlarmConfig(enabled=True, mode="duration", **kwargs)


def test_long_wait_is_chunked_without_drift() -> None:
    clock = FakeClock(0)
    delay = FakeDelay(clock, max_delay_ms=1000)
    notifier = RecordingNotifier(clock)
    store = InMemoryTaskStore([Task(id="t1", title="stretch")])
    scheduler = AlarmScheduler(store, notifier, clock, TimerRegistry(delay))

    scheduler.set_alarm("t1", _duration(seconds=5))
    delay.advance(10_000)

    assert delay.scheduled == [1000] * 5
    assert [(f.task_id, f.at) for f in notifier.fired] == [("t1", 5000)]
    assert not scheduler.is_armed("t1")


def test_chunking_recomputes_from_absolute_target() -> None:
    clock = FakeClock(0)
    delay = FakeDelay(clock, max_delay_ms=1000)
    notifier = RecordingNotifier(clock)
    store = InMemoryTaskStore([Task(id="t1", title="late")])
    scheduler = AlarmScheduler(store, notifier, clock, TimerRegistry(delay))

    scheduler.set_alarm("t1", _duration(seconds=3))
    # The loop wakes up late for the first chunk (e.g. the machine slept).
    clock.now = 2500
    delay.advance(0)

    assert delay.scheduled == [1000, 500]
    delay.advance(500)
    assert [f.at for f in notifier.fired] == [3000]


def test_rearm_cancels_previous_timer(scheduler, store, notifier, delay) -> None:
    store.add(Task(id="t1", title="tea"))

    scheduler.set_alarm("t1", _duration(seconds=10))
    scheduler.set_alarm("t1", _duration(seconds=2))
    assert len(delay.live) == 1

    delay.advance(3000)
    assert [(f.task_id, f.at) for f in notifier.fired] == [("t1", T0 + 2000)]

    delay.advance(20_000)
    assert len(notifier.fired) == 1


def test_disable_clears_timing_and_never_fires(scheduler, store, notifier, delay) -> None:
    task = store.add(Task(id="t1", title="call mum"))

    scheduler.set_alarm("t1", _duration(minutes=1))
    assert task.alarm_target_timestamp == T0 + 60_000

    scheduler.set_alarm("t1", AlarmConfig(enabled=False))
    assert task.alarm_start_time is None
    assert task.alarm_target_timestamp is None
    assert task.alarm_duration is None
    assert not task.alarm.enabled

    delay.advance(120_000)
    assert notifier.fired == []
    assert delay.live == []


def test_set_alarm_writes_timing_fields_and_persists(scheduler, store) -> None:
    task = store.add(Task(id="t1", title="laundry"))

    result = scheduler.set_alarm("t1", _duration(hours=1))

    assert result is task
    assert task.alarm_start_time == T0
    assert task.alarm_duration == 3_600_000
    assert task.alarm_target_timestamp == task.alarm_start_time + task.alarm_duration
    assert store.persist_calls == 1
    assert scheduler.is_armed("t1")


def test_past_datetime_fires_immediately(scheduler, store, notifier) -> None:
    task = store.add(Task(id="t1", title="overdue"))

    scheduler.set_alarm("t1", AlarmConfig(enabled=True, mode="datetime", timestamp=T0 - 5000))

    assert [f.at for f in notifier.fired] == [T0]
    assert task.alarm_duration == 0
    assert not scheduler.is_armed("t1")


def test_timing_fields_survive_firing(scheduler, store, delay) -> None:
    task = store.add(Task(id="t1", title="pasta"))
    scheduler.set_alarm("t1", _duration(seconds=1))

    delay.advance(1000)

    assert task.alarm.enabled
    assert task.alarm_target_timestamp == T0 + 1000
    assert task.alarm_duration == 1000


def test_missing_task_is_a_noop(scheduler, store, notifier, delay) -> None:
    assert scheduler.set_alarm("ghost", _duration(seconds=1)) is None
    scheduler.schedule_alarm("ghost")
    scheduler.cancel("ghost")
    assert store.persist_calls == 0
    assert delay.live == []
    assert notifier.fired == []


def test_fire_after_task_removed_is_a_noop(scheduler, store, notifier, delay) -> None:
    store.add(Task(id="t1", title="gone"))
    scheduler.set_alarm("t1", _duration(seconds=1))

    # Removed behind the scheduler's back; the pending chunk must not notify.
    del store.tasks["t1"]
    delay.advance(5000)

    assert notifier.fired == []


def test_schedule_alarm_ignores_disabled_alarm(scheduler, store, delay) -> None:
    store.add(Task(id="t1", title="x", alarm=AlarmConfig(enabled=False), alarm_target_timestamp=T0 + 10))
    scheduler.schedule_alarm("t1")
    assert delay.live == []


def test_notifier_failure_does_not_propagate(store, clock, delay) -> None:
    class Boom:
        def notify(self, task_id: str, title: str) -> None:
            raise RuntimeError("no display")

    scheduler = AlarmScheduler(store, Boom(), clock, TimerRegistry(delay))
    store.add(Task(id="t1", title="x"))
    scheduler.set_alarm("t1", AlarmConfig(enabled=True, mode="datetime", timestamp=T0))
    assert not scheduler.is_armed("t1")


def test_persistence_failure_propagates(scheduler, store) -> None:
    store.add(Task(id="t1", title="x"))
    store.fail_persist = True
    with pytest.raises(PersistenceError):
        scheduler.set_alarm("t1", _duration(seconds=30))


def test_failed_rearm_keeps_previous_alarm_live(scheduler, store, notifier, delay) -> None:
    task = store.add(Task(id="t1", title="tea"))
    scheduler.set_alarm("t1", _duration(seconds=10))
    before = task.model_dump()

    store.fail_persist = True
    with pytest.raises(PersistenceError):
        scheduler.set_alarm("t1", _duration(seconds=5))

    assert task.model_dump() == before
    assert scheduler.is_armed("t1")
    assert len(delay.live) == 1

    delay.advance(60_000)
    assert [(f.task_id, f.at) for f in notifier.fired] == [("t1", T0 + 10_000)]


def test_failed_disable_keeps_alarm_armed(scheduler, store, notifier, delay) -> None:
    task = store.add(Task(id="t1", title="tea"))
    scheduler.set_alarm("t1", _duration(seconds=10))

    store.fail_persist = True
    with pytest.raises(PersistenceError):
        scheduler.set_alarm("t1", AlarmConfig(enabled=False))

    assert task.alarm.enabled
    assert task.alarm_target_timestamp == T0 + 10_000
    delay.advance(10_000)
    assert len(notifier.fired) == 1


def test_failed_first_arm_leaves_task_unarmed(scheduler, store, delay) -> None:
    task = store.add(Task(id="t1", title="tea"))
    store.fail_persist = True

    with pytest.raises(PersistenceError):
        scheduler.set_alarm("t1", _duration(seconds=10))

    assert not task.alarm.enabled
    assert not task.has_alarm_timing
    assert delay.live == []


def test_failed_rearm_does_not_refire_expired_alarm(scheduler, store, notifier, delay) -> None:
    store.add(Task(id="t1", title="tea"))
    scheduler.set_alarm("t1", _duration(seconds=1))
    delay.advance(2000)
    assert len(notifier.fired) == 1

    store.fail_persist = True
    with pytest.raises(PersistenceError):
        scheduler.set_alarm("t1", _duration(seconds=30))

    assert len(notifier.fired) == 1
    assert not scheduler.is_armed("t1")


def test_resume_only_rearms_pending_alarms(scheduler, store, notifier) -> None:
    store.add(Task(
        id="due", title="x", alarm=AlarmConfig(enabled=True, seconds=1),
        alarm_start_time=T0 - 1000, alarm_target_timestamp=T0, alarm_duration=1000,
    ))
    store.add(Task(
        id="later", title="y", alarm=AlarmConfig(enabled=True, seconds=5),
        alarm_start_time=T0, alarm_target_timestamp=T0 + 5000, alarm_duration=5000,
    ))

    scheduler.resume("due")
    scheduler.resume("later")
    scheduler.resume("ghost")

    assert notifier.fired == []
    assert not scheduler.is_armed("due")
    assert scheduler.is_armed("later")


# ── Restart behaviour ─────────────────────────────────────────────────────────

def test_restore_skips_stale_and_resumes_future(scheduler, store, notifier, delay) -> None:
    stale = store.add(Task(
        id="stale", title="old",
        alarm=AlarmConfig(enabled=True, seconds=10),
        alarm_start_time=T0 - 20_000, alarm_target_timestamp=T0 - 10_000, alarm_duration=10_000,
    ))
    future = store.add(Task(
        id="future", title="soon",
        alarm=AlarmConfig(enabled=True, minutes=1),
        alarm_start_time=T0 - 30_000, alarm_target_timestamp=T0 + 30_000, alarm_duration=60_000,
    ))

    scheduler.restore(stale)
    scheduler.restore(future)

    assert notifier.fired == []
    assert not scheduler.is_armed("stale")
    assert scheduler.is_armed("future")
    # The original arm time is kept.
    assert future.alarm_start_time == T0 - 30_000

    delay.advance(30_000)
    assert [(f.task_id, f.at) for f in notifier.fired] == [("future", T0 + 30_000)]


def test_restore_without_timing_arms_from_scratch(scheduler, store) -> None:
    legacy = store.add(Task(id="legacy", title="old config", alarm=AlarmConfig(enabled=True, minutes=2)))

    scheduler.restore(legacy)

    assert legacy.alarm_start_time == T0
    assert legacy.alarm_target_timestamp == T0 + 120_000
    assert scheduler.is_armed("legacy")


def test_restore_ignores_disabled_alarm(scheduler, store) -> None:
    task = store.add(Task(id="t1", title="off"))
    scheduler.restore(task)
    assert not scheduler.is_armed("t1")
    assert store.persist_calls == 0
