"""User corrections keyed by conversation turn and component."""

from __future__ import annotations

import sqlite3
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

CONTEXT_MANAGER_COMPONENT = "context_manager"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class Feedback:
    """One correction. `corrected_data` is JSON text, parsed by the consumer.

    `applied_at` is set once the trainer has consumed the correction.
    """

    turn_id: str
    invocation_id: str
    component: str
    corrected_data: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=_now)
    applied_at: str | None = None


class FeedbackStore:
    """Corrections in insertion order, mirrored to SQLite when `db_path` is set."""

    def __init__(self, db_path: str | Path | None = None) -> None:
        self._items: list[Feedback] = []
        self._lock = threading.Lock()
        self._db_path = Path(db_path) if db_path is not None else None
        if self._db_path is not None:
            _ensure_feedback_table(self._db_path)
            self._load_all()

    def add(self, feedback: Feedback) -> Feedback:
        with self._lock:
            self._items.append(feedback)
            self._persist(feedback)
        return feedback

    def mark_applied(self, feedback_id: str) -> None:
        with self._lock:
            for item in self._items:
                if item.id == feedback_id:
                    item.applied_at = _now()
                    self._persist(item)
                    return
        raise KeyError(f"Feedback not found: {feedback_id}")

    def find_by_turn_and_component(self, turn_id: str, component: str) -> list[Feedback]:
        return [item for item in self._items if item.turn_id == turn_id and item.component == component]

    def list_recent(self, limit: int = 20) -> list[Feedback]:
        return self._items[-limit:] if limit > 0 else []

    def _persist(self, feedback: Feedback) -> None:
        if self._db_path is None:
            return
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                "INSERT INTO feedback(id, turn_id, invocation_id, component, corrected_data, created_at, applied_at) "
                "VALUES(?, ?, ?, ?, ?, ?, ?) ON CONFLICT(id) DO UPDATE SET applied_at=excluded.applied_at",
                (
                    feedback.id,
                    feedback.turn_id,
                    feedback.invocation_id,
                    feedback.component,
                    feedback.corrected_data,
                    feedback.created_at,
                    feedback.applied_at,
                ),
            )
            conn.commit()

    def _load_all(self) -> None:
        assert self._db_path is not None
        with sqlite3.connect(self._db_path) as conn:
            rows = conn.execute(
                "SELECT turn_id, invocation_id, component, corrected_data, id, created_at, applied_at "
                "FROM feedback ORDER BY rowid"
            ).fetchall()
        self._items = [Feedback(*row) for row in rows]


def _ensure_feedback_table(db_path: Path) -> None:
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS feedback ("
            "id TEXT PRIMARY KEY, turn_id TEXT NOT NULL, invocation_id TEXT NOT NULL, "
            "component TEXT NOT NULL, corrected_data TEXT NOT NULL, created_at TEXT NOT NULL, "
            "applied_at TEXT)"
        )
        conn.commit()
