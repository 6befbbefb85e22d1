"""Active configuration (personality) and its store."""

from __future__ import annotations

import sqlite3
import threading
import uuid
from collections.abc import Callable
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field

from attention_router.attention.model import NamespaceAttentionState, ToolAttentionState
from attention_router.config import AttentionConfig


class Personality(BaseModel):
    """Model choice, prompt and the attention state the router reads."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "default"
    base_model: str = "gpt-4o-mini"
    system_prompt: str = "You are a helpful voice assistant. Use the provided tools when they help."
    namespace_attention: NamespaceAttentionState = Field(default_factory=NamespaceAttentionState)
    tool_attention: dict[str, ToolAttentionState] = Field(default_factory=dict)

    @classmethod
    def create(
        cls, name: str = "default", *, attention: AttentionConfig | None = None, **kwargs: object
    ) -> "Personality":
        return cls(
            name=name,
            namespace_attention=NamespaceAttentionState.from_config(attention or AttentionConfig()),
            **kwargs,
        )

    def get_tool_attention(self, namespace: str) -> ToolAttentionState:
        """Tool statistics for `namespace`, created on first access."""
        state = self.tool_attention.get(namespace)
        if state is None:
            state = ToolAttentionState(namespace=namespace)
            self.tool_attention[namespace] = state
        return state


class ConfigurationStore:
    """Holds personalities and tracks which one is active.

    Without a `db_path` everything lives in memory. With one, each save also
    writes the personality as JSON to SQLite, and the store reloads it on
    construction. Writes are serialized with a lock; readers receive copies so
    training never mutates a configuration a routing call is using.
    `update_active` holds the lock across read, change and save.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        self._lock = threading.RLock()
        self._personalities: dict[str, Personality] = {}
        self._active_id: str | None = None
        self._db_path = Path(db_path) if db_path is not None else None
        if self._db_path is not None:
            _ensure_personality_table(self._db_path)
            self._load_all()

    def get(self, personality_id: str) -> Personality | None:
        personality = self._personalities.get(personality_id)
        return personality.model_copy(deep=True) if personality else None

    def get_active(self) -> Personality | None:
        if self._active_id is None:
            return None
        return self.get(self._active_id)

    def save(self, personality: Personality) -> None:
        with self._lock:
            self._personalities[personality.id] = personality.model_copy(deep=True)
            self._persist(personality)

    def update_active(self, mutate: Callable[[Personality], bool]) -> bool | None:
        """Apply `mutate` to a copy of the active personality and save it if it
        returns True. Returns None when no personality is active."""
        with self._lock:
            personality = self.get_active()
            if personality is None:
                return None
            changed = mutate(personality)
            if changed:
                self.save(personality)
            return changed

    def set_active(self, personality_id: str) -> None:
        with self._lock:
            if personality_id not in self._personalities:
                raise KeyError(f"Personality not found: {personality_id}")
            self._active_id = personality_id
            if self._db_path is not None:
                with sqlite3.connect(self._db_path) as conn:
                    conn.execute("UPDATE personalities SET active = (id = ?)", (personality_id,))
                    conn.commit()
        logger.info("Active personality set to {}", personality_id)

    def list_all(self) -> list[Personality]:
        return [personality.model_copy(deep=True) for personality in self._personalities.values()]

    def _persist(self, personality: Personality) -> None:
        if self._db_path is None:
            return
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                "INSERT INTO personalities(id, data, active) VALUES(?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET data=excluded.data",
                (personality.id, personality.model_dump_json(), int(personality.id == self._active_id)),
            )
            conn.commit()

    def _load_all(self) -> None:
        assert self._db_path is not None
        with sqlite3.connect(self._db_path) as conn:
            rows = conn.execute("SELECT id, data, active FROM personalities").fetchall()
        for personality_id, data, active in rows:
            self._personalities[personality_id] = Personality.model_validate_json(data)
            if active:
                self._active_id = personality_id


def _ensure_personality_table(db_path: Path) -> None:
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS personalities ("
            "id TEXT PRIMARY KEY, data TEXT NOT NULL, active INTEGER NOT NULL DEFAULT 0)"
        )
        conn.commit()
