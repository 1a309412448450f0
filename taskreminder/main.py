"""
main.py
───────
Task Reminder — FastAPI backend entry point.

Exposes:
  REST  /api/tasks                    CRUD + clear all
  REST  /api/tasks/{id}/toggle        flip completion
  REST  /api/tasks/{id}/alarm         set / disable an alarm
  REST  /api/tasks/{id}/countdown     live countdown for one task
  REST  /api/countdowns               live countdowns for all armed tasks
  REST  /api/health                   process info
  WS    /ws                           "alarm_triggered" push to the frontend

All handlers are coroutines, so task and timer state is only ever touched on
the event loop thread.
"""

from __future__ import annotations

import logging
import os
import platform
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .config import Settings, describe, load_settings
from .errors import PersistenceError
from .models import Countdown, Task, TaskCreate, TaskUpdate
from .notifier import BroadcastNotifier, ConnectionManager, DesktopNotifier, FanoutNotifier
from .storage import JsonStore
from .task_manager import TaskManager
from .timers import LoopDelay

logger = logging.getLogger(__name__)


def build_manager(settings: Settings, connections: ConnectionManager) -> TaskManager:
    sinks: List[Any] = [BroadcastNotifier(connections)]
    if settings.desktop_notify:
        sinks.insert(0, DesktopNotifier())
    return TaskManager(
        storage=JsonStore(settings.data_dir),
        notifier=FanoutNotifier(sinks),
        delay=LoopDelay(max_delay_ms=settings.max_delay_ms),
    )


def get_manager(request: Request) -> TaskManager:
    return request.app.state.tasks


def create_app(
    settings: Optional[Settings] = None,
    manager: Optional[TaskManager] = None,
    connections: Optional[ConnectionManager] = None,
) -> FastAPI:
    settings = settings or load_settings()
    connections = connections or ConnectionManager()
    manager = manager or build_manager(settings, connections)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("[TASK REMINDER] PID=%d | Platform=%s", os.getpid(), platform.system())
        logger.info("Settings: %s", describe(settings))
        manager.start()

        yield   # Application runs here

        manager.stop()
        logger.info("[TASK REMINDER] Shutdown complete.")

    app = FastAPI(title="Task Reminder", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.tasks = manager
    app.state.connections = connections

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Task data could not be saved"})

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:

    # ── WebSocket endpoint ────────────────────────────────────────────────────

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        connections: ConnectionManager = ws.app.state.connections
        await connections.connect(ws)
        try:
            while True:
                data = await ws.receive_json()
                # Handle ping keepalive
                if isinstance(data, dict) and data.get("type") == "ping":
                    await ws.send_json({"type": "pong"})
        except WebSocketDisconnect:
            await connections.disconnect(ws)

    # ── Task endpoints ────────────────────────────────────────────────────────

    @app.get("/api/tasks", response_model=List[Task])
    async def list_tasks(mgr: TaskManager = Depends(get_manager)):
        return mgr.get_all()

    @app.post("/api/tasks", response_model=Task, status_code=201)
    async def create_task(body: TaskCreate, mgr: TaskManager = Depends(get_manager)):
        return mgr.add(body)

    @app.delete("/api/tasks", status_code=204)
    async def clear_tasks(mgr: TaskManager = Depends(get_manager)):
        mgr.clear_all()

    @app.get("/api/tasks/{task_id}", response_model=Task)
    async def get_task(task_id: str, mgr: TaskManager = Depends(get_manager)):
        task = mgr.get(task_id)
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        return task

    @app.patch("/api/tasks/{task_id}", response_model=Task)
    async def update_task(task_id: str, body: TaskUpdate, mgr: TaskManager = Depends(get_manager)):
        updated = mgr.update(task_id, body)
        if not updated:
            raise HTTPException(status_code=404, detail="Task not found")
        return updated

    @app.delete("/api/tasks/{task_id}", status_code=204)
    async def delete_task(task_id: str, mgr: TaskManager = Depends(get_manager)):
        if not mgr.delete(task_id):
            raise HTTPException(status_code=404, detail="Task not found")

    @app.post("/api/tasks/{task_id}/toggle", response_model=Task)
    async def toggle_task(task_id: str, mgr: TaskManager = Depends(get_manager)):
        task = mgr.toggle(task_id)
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        return task

    # ── Alarm endpoints ───────────────────────────────────────────────────────

    @app.put("/api/tasks/{task_id}/alarm", response_model=Task)
    async def set_alarm(
        task_id: str,
        patch: Dict[str, Any] = Body(...),
        mgr: TaskManager = Depends(get_manager),
    ):
        try:
            task = mgr.set_alarm(task_id, patch)
        except ValidationError as exc:
            detail = exc.errors(include_url=False, include_context=False)
            raise HTTPException(status_code=422, detail=detail) from exc
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        return task

    @app.get("/api/tasks/{task_id}/countdown", response_model=Optional[Countdown])
    async def get_countdown(task_id: str, mgr: TaskManager = Depends(get_manager)):
        if mgr.get(task_id) is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return mgr.countdown(task_id)

    @app.get("/api/countdowns", response_model=Dict[str, Countdown])
    async def list_countdowns(mgr: TaskManager = Depends(get_manager)):
        return mgr.countdowns()

    # ── Health / info ─────────────────────────────────────────────────────────

    @app.get("/api/health")
    async def health(mgr: TaskManager = Depends(get_manager)):
        return {
            "status": "ok",
            "pid": os.getpid(),
            "platform": platform.system(),
            "python": platform.python_version(),
            "tasks": len(mgr.get_all()),
            "timers": len(mgr.alarms.timers),
        }


# ── Entry point ───────────────────────────────────────────────────────────────

def run() -> None:
    import uvicorn

    from .logging_setup import setup_logging

    settings = load_settings()
    setup_logging(log_dir=settings.log_dir, console_level=settings.log_level)
    uvicorn.run(
        "taskreminder.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
