"""Task Reminder backend: tasks with alarms, timers and countdowns."""

__version__ = "1.0.0"
