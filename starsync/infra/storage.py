"""SQLite connection management with the record, index and history schema."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from threading import Lock, RLock
from typing import Dict

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS records (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        item_id TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        description TEXT,
        url TEXT NOT NULL,
        starred_at TEXT NOT NULL,
        owner TEXT NOT NULL,
        language TEXT,
        stars INTEGER NOT NULL DEFAULT 0,
        first_synced_at TEXT NOT NULL,
        last_synced_at TEXT NOT NULL
    )
    """,
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS records_fts USING fts5(
        name,
        description,
        owner,
        tokenize = 'unicode61 remove_diacritics 2'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_runs (
        run_id TEXT PRIMARY KEY,
        status TEXT NOT NULL,
        started_at TEXT NOT NULL,
        finished_at TEXT,
        pages_fetched INTEGER NOT NULL DEFAULT 0,
        records_upserted INTEGER NOT NULL DEFAULT 0,
        records_failed INTEGER NOT NULL DEFAULT 0,
        failed_pages TEXT NOT NULL DEFAULT '[]',
        error TEXT
    )
    """,
)


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._conn_locks: Dict[Path, RLock] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
                self._ensure_schema(conn)
                self._connections[path] = conn
                self._conn_locks.setdefault(path, RLock())
            return self._connections[path]

    def lock_for(self, path: Path) -> RLock:
        """Lock serialising every statement issued on the connection for ``path``."""

        with self._lock:
            return self._conn_locks.setdefault(path, RLock())

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        with conn:
            for statement in SCHEMA:
                conn.execute(statement)

    def reset(self, path: Path) -> None:
        with self._lock:
            if path in self._connections:
                with self._conn_locks[path]:
                    self._connections[path].close()
                del self._connections[path]
        for candidate in (path, path.with_name(path.name + "-wal"), path.with_name(path.name + "-shm")):
            if candidate.exists():
                candidate.unlink()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


__all__ = ["SCHEMA", "SQLiteManager"]
