"""SQLite persistence for ingested items."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Dict, Protocol

from ..errors import DuplicateLinkError
from ..models import AnalysisStatus, ReadStatus, StoredItem

MEMORY_DSN = ":memory:"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    link TEXT NOT NULL UNIQUE,
    source_name TEXT NOT NULL,
    published_at TEXT,
    summary TEXT,
    entities TEXT,
    topics TEXT,
    content_type TEXT,
    raw_content TEXT,
    read_status TEXT NOT NULL DEFAULT 'unread'
        CHECK (read_status IN ('unread', 'read')),
    analysis_status TEXT NOT NULL DEFAULT 'unprocessed'
        CHECK (analysis_status IN ('unprocessed', 'pending', 'completed')),
    story_group_id TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_items_source_name ON items(source_name);
CREATE INDEX IF NOT EXISTS idx_items_published_at ON items(published_at);
"""


class ItemStore(Protocol):
    """Capability consumed by the pipeline; ``insert`` must raise on duplicate links."""

    def find_by_link(self, link: str) -> StoredItem | None:
        ...

    def insert(self, item: StoredItem) -> int:
        ...


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self, busy_timeout_ms: int = 3000) -> None:
        self.busy_timeout_ms = busy_timeout_ms
        self._connections: Dict[str, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, dsn: str | Path) -> sqlite3.Connection:
        key = str(dsn)
        with self._lock:
            if key not in self._connections:
                if key != MEMORY_DSN:
                    Path(key).expanduser().parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(
                    key if key == MEMORY_DSN else str(Path(key).expanduser()),
                    check_same_thread=False,
                    timeout=self.busy_timeout_ms / 1000,
                )
                conn.row_factory = sqlite3.Row
                if key != MEMORY_DSN:
                    conn.execute("PRAGMA journal_mode=WAL")
                    conn.execute("PRAGMA synchronous=NORMAL")
                conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
                self._ensure_schema(conn)
                self._connections[key] = conn
            return self._connections[key]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(_SCHEMA)
        conn.commit()

    def open_store(self, dsn: str | Path) -> "SQLiteItemStore":
        return SQLiteItemStore(self.connect(dsn))

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


def _dump_json(value: object) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _load_json(value: str | None) -> object:
    if not value:
        return None
    return json.loads(value)


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


class SQLiteItemStore:
    """Item repository over one shared connection.

    The connection is shared by every worker thread, so each statement runs
    under the store's lock. The ``UNIQUE`` constraint on ``link`` is the
    authoritative dedup check; :meth:`find_by_link` only saves work.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = Lock()

    def find_by_link(self, link: str) -> StoredItem | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM items WHERE link = ?", (link,)).fetchone()
        return self._row_to_item(row) if row else None

    def insert(self, item: StoredItem) -> int:
        with self._lock:
            try:
                cur = self._conn.execute(
                    """
                    INSERT INTO items(
                        title, link, source_name, published_at, summary, entities, topics,
                        content_type, raw_content, read_status, analysis_status, story_group_id
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        item.title,
                        item.link,
                        item.source_name,
                        item.published_at.isoformat() if item.published_at else None,
                        item.summary,
                        _dump_json(item.entities),
                        _dump_json(item.topics),
                        item.content_type,
                        item.raw_content,
                        ReadStatus(item.read_status).value,
                        AnalysisStatus(item.analysis_status).value,
                        item.story_group_id,
                    ),
                )
                self._conn.commit()
            except sqlite3.IntegrityError as exc:
                self._conn.rollback()
                if "items.link" in str(exc):
                    raise DuplicateLinkError(item.link) from exc
                raise
        item.id = cur.lastrowid
        return int(cur.lastrowid)

    def get(self, item_id: int) -> StoredItem | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM items WHERE id = ?", (item_id,)).fetchone()
        return self._row_to_item(row) if row else None

    def list_items(
        self,
        read_status: ReadStatus | None = None,
        source_name: str | None = None,
        limit: int | None = None,
    ) -> list[StoredItem]:
        clauses: list[str] = []
        params: list[object] = []
        if read_status is not None:
            clauses.append("read_status = ?")
            params.append(ReadStatus(read_status).value)
        if source_name is not None:
            clauses.append("source_name = ?")
            params.append(source_name)
        query = "SELECT * FROM items"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY published_at DESC, id DESC"
        if limit:
            query += " LIMIT ?"
            params.append(int(limit))
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [self._row_to_item(row) for row in rows]

    def mark_read(self, item_id: int) -> bool:
        with self._lock:
            cur = self._conn.execute(
                "UPDATE items SET read_status = ? WHERE id = ?",
                (ReadStatus.READ.value, item_id),
            )
            self._conn.commit()
        return cur.rowcount > 0

    def count(self, source_name: str | None = None) -> int:
        with self._lock:
            if source_name is None:
                row = self._conn.execute("SELECT count(*) FROM items").fetchone()
            else:
                row = self._conn.execute(
                    "SELECT count(*) FROM items WHERE source_name = ?", (source_name,)
                ).fetchone()
        return int(row[0])

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> StoredItem:
        return StoredItem(
            id=row["id"],
            title=row["title"],
            link=row["link"],
            source_name=row["source_name"],
            published_at=_parse_timestamp(row["published_at"]),
            summary=row["summary"],
            entities=_load_json(row["entities"]),  # type: ignore[arg-type]
            topics=_load_json(row["topics"]),  # type: ignore[arg-type]
            content_type=row["content_type"],
            raw_content=row["raw_content"],
            read_status=ReadStatus(row["read_status"]),
            analysis_status=AnalysisStatus(row["analysis_status"]),
            story_group_id=row["story_group_id"],
        )


__all__ = ["ItemStore", "MEMORY_DSN", "SQLiteItemStore", "SQLiteManager"]
