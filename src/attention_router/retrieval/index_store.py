"""SQLite persistence for the serialized vector index."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from attention_router.ingest.indexer import IndexSnapshot
from attention_router.retrieval.vector_index import HnswIndex
from attention_router.types import Chunk

MAIN_INDEX_KEY = "main"


class IndexStore:
    """Stores the index as an opaque blob plus `{vector_count, updated_at}`.

    A missing row or a blob that fails to deserialize both load as `None`,
    which tells the caller to rebuild from the source entities.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        _ensure_index_table(self._db_path)

    def save(self, snapshot: IndexSnapshot, *, key: str = MAIN_INDEX_KEY) -> None:
        blob = snapshot.index.to_bytes()
        chunks_json = json.dumps([chunk.to_dict() for chunk in snapshot.chunks])
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                "INSERT INTO vector_index(key, data, chunks, vector_count, updated_at) "
                "VALUES(?, ?, ?, ?, ?) ON CONFLICT(key) DO UPDATE SET "
                "data=excluded.data, chunks=excluded.chunks, "
                "vector_count=excluded.vector_count, updated_at=excluded.updated_at",
                (
                    key,
                    sqlite3.Binary(blob),
                    chunks_json,
                    snapshot.index.size,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            conn.commit()

    def load(self, *, key: str = MAIN_INDEX_KEY) -> IndexSnapshot | None:
        with sqlite3.connect(self._db_path) as conn:
            row = conn.execute(
                "SELECT data, chunks FROM vector_index WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None

        index = HnswIndex.from_bytes(bytes(row[0]))
        if index is None:
            return None
        try:
            chunks = [Chunk.from_dict(item) for item in json.loads(row[1] or "[]")]
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Stored chunk records for {} are unreadable: {}", key, exc)
            return None
        return IndexSnapshot(index=index, chunks=chunks)

    def exists(self, *, key: str = MAIN_INDEX_KEY) -> bool:
        with sqlite3.connect(self._db_path) as conn:
            row = conn.execute("SELECT 1 FROM vector_index WHERE key = ?", (key,)).fetchone()
        return row is not None

    def stats(self, *, key: str = MAIN_INDEX_KEY) -> dict[str, Any] | None:
        """Metadata without deserializing the blob."""
        with sqlite3.connect(self._db_path) as conn:
            row = conn.execute(
                "SELECT vector_count, length(data), updated_at FROM vector_index WHERE key = ?",
                (key,),
            ).fetchone()
        if row is None:
            return None
        return {"vector_count": row[0], "bytes_size": row[1], "updated_at": row[2]}

    def delete(self, *, key: str = MAIN_INDEX_KEY) -> None:
        with sqlite3.connect(self._db_path) as conn:
            conn.execute("DELETE FROM vector_index WHERE key = ?", (key,))
            conn.commit()


def _ensure_index_table(db_path: Path) -> None:
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS vector_index ("
            "key TEXT PRIMARY KEY, data BLOB NOT NULL, chunks TEXT NOT NULL, "
            "vector_count INTEGER NOT NULL, updated_at TEXT NOT NULL)"
        )
        conn.commit()
