"""Built-in `task` and `timer` namespaces backed by SQLite."""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from attention_router.exceptions import ToolExecutionError
from attention_router.ingest.embedder import Embedder
from attention_router.routing.context import ContextInjector
from attention_router.routing.registry import NamespaceSpec, ToolRegistry, ToolSpec
from attention_router.types import RoutingEvent

TASK_NAMESPACE = "task"
TIMER_NAMESPACE = "timer"

_NAMESPACE_DESCRIPTIONS = {
    TASK_NAMESPACE: "task tasks todo to-do list add create complete finish done remind chores errands",
    TIMER_NAMESPACE: "timer timers countdown alarm set cancel stop minutes seconds hours wake",
}

Clock = Callable[[], datetime]


class TaskCreateInput(BaseModel):
    title: str = Field(min_length=1)
    priority: str = Field(default="medium", pattern="^(low|medium|high)$")


class TaskCompleteInput(BaseModel):
    task_id: str = Field(min_length=1)


class TaskListInput(BaseModel):
    include_completed: bool = False


class TimerSetInput(BaseModel):
    duration_seconds: int = Field(ge=1, le=86_400)
    label: str = ""


class TimerCancelInput(BaseModel):
    timer_id: str = Field(min_length=1)


class TimerListInput(BaseModel):
    pass


def register_builtin_tools(
    registry: ToolRegistry,
    *,
    sqlite_path: str | Path = "attention_router.db",
    embedder: Embedder | None = None,
    clock: Clock | None = None,
) -> None:
    """Register the default namespaces and tools.

    Namespaces and tools get a seed centroid from their description when an
    embedder is given; learned namespace centroids in the active configuration
    take precedence.

    Tools:
    - `task.create` / `task.complete` / `task.list`
    - `timer.set` / `timer.cancel` / `timer.list`
    """

    db_file = Path(sqlite_path)
    _ensure_tables(db_file)
    now = clock or (lambda: datetime.now(timezone.utc))

    for name, description in _NAMESPACE_DESCRIPTIONS.items():
        registry.register_namespace(
            NamespaceSpec(
                name=name,
                description=description,
                centroid=embedder.generate(description) if embedder is not None else None,
            )
        )

    def _task_create(input_data: TaskCreateInput) -> str:
        task_id = uuid.uuid4().hex[:8]
        with sqlite3.connect(db_file) as conn:
            conn.execute(
                "INSERT INTO tasks(id, title, priority, completed, created_at) VALUES(?, ?, ?, 0, ?)",
                (task_id, input_data.title, input_data.priority, now().isoformat()),
            )
            conn.commit()
        return f"CREATED {task_id}: {input_data.title}"

    def _task_complete(input_data: TaskCompleteInput) -> str:
        with sqlite3.connect(db_file) as conn:
            cur = conn.execute("UPDATE tasks SET completed = 1 WHERE id = ?", (input_data.task_id,))
            conn.commit()
        if cur.rowcount == 0:
            raise ToolExecutionError(f"Task not found: {input_data.task_id}")
        return f"COMPLETED {input_data.task_id}"

    def _task_list(input_data: TaskListInput) -> str:
        rows = list_tasks(db_file, include_completed=input_data.include_completed)
        if not rows:
            return "NO_TASKS"
        return "\n".join(
            f"[{row['id']}] {'x' if row['completed'] else ' '} {row['title']} ({row['priority']})"
            for row in rows
        )

    def _timer_set(input_data: TimerSetInput) -> str:
        timer_id = uuid.uuid4().hex[:8]
        fire_at = now() + timedelta(seconds=input_data.duration_seconds)
        with sqlite3.connect(db_file) as conn:
            conn.execute(
                "INSERT INTO timers(id, label, fire_at, cancelled) VALUES(?, ?, ?, 0)",
                (timer_id, input_data.label, fire_at.isoformat()),
            )
            conn.commit()
        return f"TIMER {timer_id} fires at {fire_at.isoformat()}"

    def _timer_cancel(input_data: TimerCancelInput) -> str:
        with sqlite3.connect(db_file) as conn:
            cur = conn.execute(
                "UPDATE timers SET cancelled = 1 WHERE id = ? AND cancelled = 0", (input_data.timer_id,)
            )
            conn.commit()
        if cur.rowcount == 0:
            raise ToolExecutionError(f"Active timer not found: {input_data.timer_id}")
        return f"CANCELLED {input_data.timer_id}"

    def _timer_list(input_data: TimerListInput) -> str:
        del input_data
        rows = list_active_timers(db_file, now())
        if not rows:
            return "NO_TIMERS"
        return "\n".join(f"[{row['id']}] {row['label'] or 'timer'} at {row['fire_at']}" for row in rows)

    specs = [
        (TASK_NAMESPACE, "create", "Create a new task or to-do item.", TaskCreateInput, _task_create),
        (TASK_NAMESPACE, "complete", "Mark a task as complete or done.", TaskCompleteInput, _task_complete),
        (TASK_NAMESPACE, "list", "List tasks on the to-do list.", TaskListInput, _task_list),
        (TIMER_NAMESPACE, "set", "Set a countdown timer for a number of seconds.", TimerSetInput, _timer_set),
        (TIMER_NAMESPACE, "cancel", "Cancel or stop a running timer.", TimerCancelInput, _timer_cancel),
        (TIMER_NAMESPACE, "list", "List active timers.", TimerListInput, _timer_list),
    ]
    for namespace, name, description, schema, handler in specs:
        registry.register(
            ToolSpec(
                name=name,
                namespace=namespace,
                description=description,
                args_schema=schema,
                handler=handler,
                tags=[namespace],
                centroid=embedder.generate(description) if embedder is not None else None,
            )
        )


def register_builtin_context(
    injector: ContextInjector,
    *,
    sqlite_path: str | Path = "attention_router.db",
    clock: Clock | None = None,
) -> None:
    """Expose open tasks and active timers to the executor prompt."""

    db_file = Path(sqlite_path)
    _ensure_tables(db_file)
    now = clock or (lambda: datetime.now(timezone.utc))

    def _tasks(event: RoutingEvent) -> dict[str, Any]:
        del event
        return {"incomplete_tasks": list_tasks(db_file, include_completed=False)}

    def _timers(event: RoutingEvent) -> dict[str, Any]:
        del event
        return {"active_timers": list_active_timers(db_file, now())}

    injector.register(TASK_NAMESPACE, _tasks)
    injector.register(TIMER_NAMESPACE, _timers)


def list_tasks(db_path: Path, *, include_completed: bool) -> list[dict[str, Any]]:
    query = "SELECT id, title, priority, completed FROM tasks"
    if not include_completed:
        query += " WHERE completed = 0"
    with sqlite3.connect(db_path) as conn:
        rows = conn.execute(query + " ORDER BY created_at").fetchall()
    return [
        {"id": row[0], "title": row[1], "priority": row[2], "completed": bool(row[3])} for row in rows
    ]


def list_active_timers(db_path: Path, at: datetime) -> list[dict[str, Any]]:
    with sqlite3.connect(db_path) as conn:
        rows = conn.execute(
            "SELECT id, label, fire_at FROM timers WHERE cancelled = 0 AND fire_at > ? ORDER BY fire_at",
            (at.isoformat(),),
        ).fetchall()
    return [{"id": row[0], "label": row[1], "fire_at": row[2]} for row in rows]


def _ensure_tables(db_path: Path) -> None:
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS tasks (id TEXT PRIMARY KEY, title TEXT NOT NULL, "
            "priority TEXT NOT NULL, completed INTEGER NOT NULL, created_at TEXT NOT NULL)"
        )
        conn.execute(
            "CREATE TABLE IF NOT EXISTS timers (id TEXT PRIMARY KEY, label TEXT NOT NULL, "
            "fire_at TEXT NOT NULL, cancelled INTEGER NOT NULL)"
        )
        conn.commit()
