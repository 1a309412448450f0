"""
notifier.py
───────────
Notification sinks invoked when an alarm fires.

  - DesktopNotifier   — OS desktop notification via a child process
  - ConnectionManager — registry of connected WebSocket clients
  - BroadcastNotifier — pushes an "alarm_triggered" event to every client
  - FanoutNotifier    — calls several sinks; one failing sink does not stop
                        the others

All sinks are fire-and-forget: nothing they return is used by the scheduler.
"""

from __future__ import annotations

import asyncio
import logging
import platform
import subprocess
from typing import Iterable, List, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "Task Reminder"


class DesktopNotifier:
    """
    Cross-platform OS desktop notification via subprocess.
    Each call spawns a child process that talks to the OS notification daemon.

    Linux  → notify-send (libnotify / D-Bus IPC)
    macOS  → osascript (AppleScript bridge)
    Windows→ PowerShell NotifyIcon balloon
    """

    def __init__(self, system: Optional[str] = None):
        self._system = system or platform.system()

    def notify(self, task_id: str, title: str) -> None:
        body = f"Time's up for: {title}"
        argv = self._command(NOTIFICATION_TITLE, body)
        if argv is None:
            logger.debug("No desktop notifier for platform %s", self._system)
            return
        try:
            subprocess.Popen(
                argv,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except FileNotFoundError:
            # notify-send / osascript not installed
            logger.debug("Desktop notifier %s not found; skipping", argv[0])

    def _command(self, title: str, body: str) -> Optional[List[str]]:
        if self._system == "Linux":
            return ["notify-send", "--icon=dialog-information",
                    "--expire-time=8000", title, body]
        if self._system == "Darwin":
            script = (
                f'display notification {_applescript_str(body)} '
                f'with title {_applescript_str(title)} sound name "Glass"'
            )
            return ["osascript", "-e", script]
        if self._system == "Windows":
            ps_cmd = (
                "Add-Type -AssemblyName System.Windows.Forms; "
                "$n = New-Object System.Windows.Forms.NotifyIcon; "
                "$n.Icon = [System.Drawing.SystemIcons]::Information; "
                "$n.Visible = $true; "
                f"$n.ShowBalloonTip(5000, {_powershell_str(title)}, {_powershell_str(body)}, "
                "[System.Windows.Forms.ToolTipIcon]::Info)"
            )
            return ["powershell", "-WindowStyle", "Hidden", "-Command", ps_cmd]
        return None


def _applescript_str(s: str) -> str:
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _powershell_str(s: str) -> str:
    return "'" + s.replace("'", "''") + "'"


# ── WebSocket connection registry ─────────────────────────────────────────────

class ConnectionManager:
    def __init__(self):
        self.active: List[WebSocket] = []
        self._lock = asyncio.Lock()

    async def connect(self, ws: WebSocket):
        await ws.accept()
        async with self._lock:
            self.active.append(ws)

    async def disconnect(self, ws: WebSocket):
        async with self._lock:
            self.active = [c for c in self.active if c is not ws]

    async def broadcast(self, data: dict):
        async with self._lock:
            dead = []
            for ws in self.active:
                try:
                    await ws.send_json(data)
                except Exception:
                    logger.debug("Dropping dead WebSocket client", exc_info=True)
                    dead.append(ws)
            self.active = [c for c in self.active if c not in dead]


class BroadcastNotifier:
    """In-app signal: schedules a broadcast on the running event loop."""

    def __init__(self, connections: ConnectionManager):
        self._connections = connections
        self._pending: Set[asyncio.Task] = set()

    def notify(self, task_id: str, title: str) -> None:
        loop = asyncio.get_running_loop()
        job = loop.create_task(self._connections.broadcast(
            {"event": "alarm_triggered", "task_id": task_id, "title": title}
        ))
        self._pending.add(job)
        job.add_done_callback(self._pending.discard)


class FanoutNotifier:
    def __init__(self, sinks: Iterable):
        self._sinks = list(sinks)

    def notify(self, task_id: str, title: str) -> None:
        for sink in self._sinks:
            try:
                sink.notify(task_id, title)
            except Exception:
                logger.exception("%s failed for task %s", type(sink).__name__, task_id)
