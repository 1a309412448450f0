"""
errors.py
─────────
Exceptions raised by the Task Reminder backend.

Expected conditions (unknown task id, disabled alarm) are not errors and
never raise; only genuine failures do.
"""


class TaskReminderError(Exception):
    """Base class for backend errors."""


class PersistenceError(TaskReminderError):
    """Task data could not be written to disk."""
