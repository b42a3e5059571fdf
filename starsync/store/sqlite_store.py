"""SQLite record store with an FTS5 index kept in step with every upsert."""

from __future__ import annotations

import re
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import structlog

from ..exceptions import StoreError, StoreErrorKind
from ..infra.storage import SQLiteManager
from ..models import RemoteItem, SearchResult, StoredRecord, utcnow
from .base import BaseRecordStore

_TERM_RE = re.compile(r"\w+", re.UNICODE)

# bm25 column weights: name, description, owner
_BM25_WEIGHTS = (10.0, 2.0, 5.0)

_UPSERT_SQL = """
    INSERT INTO records (
        item_id, name, description, url, starred_at, owner, language, stars,
        first_synced_at, last_synced_at
    )
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(item_id) DO UPDATE SET
        name = excluded.name,
        description = excluded.description,
        url = excluded.url,
        starred_at = excluded.starred_at,
        owner = excluded.owner,
        language = excluded.language,
        stars = excluded.stars,
        last_synced_at = excluded.last_synced_at
"""

_SEARCH_SQL = """
    SELECT r.*, -bm25(records_fts, {weights}) AS relevance
    FROM records_fts
    JOIN records AS r ON r.id = records_fts.rowid
    WHERE records_fts MATCH ?
    ORDER BY relevance DESC, r.last_synced_at DESC, r.item_id ASC
    LIMIT ?
""".format(weights=", ".join(str(w) for w in _BM25_WEIGHTS))


def format_timestamp(value: datetime) -> str:
    """Fixed-width UTC ISO string so lexical order equals time order."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value)


def build_match_expression(query: str, prefix: bool = True) -> str | None:
    """Turn free text into an FTS5 expression: every word term must match.

    Each term is quoted so FTS5 operators and punctuation in user input are
    treated as plain text. Returns None when the text has no word characters.
    """

    terms = _TERM_RE.findall(query)
    if not terms:
        return None
    parts = []
    for term in terms:
        quoted = '"' + term.replace('"', '""') + '"'
        parts.append(f"{quoted}*" if prefix else quoted)
    return " ".join(parts)


class SQLiteRecordStore(BaseRecordStore):
    """Persist records in SQLite and answer ranked FTS5 queries."""

    def __init__(
        self,
        manager: SQLiteManager,
        db_path: Path,
        *,
        prefix_match: bool = True,
        clock: Callable[[], datetime] = utcnow,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.manager = manager
        self.db_path = db_path
        self.prefix_match = prefix_match
        self.clock = clock
        self.logger = logger or structlog.get_logger("starsync.store")
        self._lock = manager.lock_for(db_path)
        self._conn = self.manager.connect(db_path)

    # ------------------------------------------------------------------
    def upsert(self, item: RemoteItem) -> StoredRecord:
        synced_at = format_timestamp(self.clock())
        params = (
            item.item_id,
            item.name,
            item.description,
            item.url,
            format_timestamp(item.starred_at),
            item.owner,
            item.language,
            int(item.stars),
            synced_at,
            synced_at,
        )
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(_UPSERT_SQL, params)
                    row = self._conn.execute(
                        "SELECT * FROM records WHERE item_id = ?", (item.item_id,)
                    ).fetchone()
                    self._conn.execute("DELETE FROM records_fts WHERE rowid = ?", (row["id"],))
                    self._conn.execute(
                        "INSERT INTO records_fts(rowid, name, description, owner) VALUES (?, ?, ?, ?)",
                        (row["id"], item.name, item.description or "", item.owner),
                    )
            except sqlite3.IntegrityError as exc:
                raise StoreError(StoreErrorKind.CONFLICT, f"{item.item_id}: {exc}") from exc
            except sqlite3.Error as exc:
                raise StoreError(StoreErrorKind.IO_FAILURE, f"{item.item_id}: {exc}") from exc
        return self._row_to_record(row)

    def search(self, query: str, limit: int) -> list[SearchResult]:
        expression = build_match_expression(query, prefix=self.prefix_match)
        if expression is None or limit <= 0:
            return []
        with self._lock:
            try:
                rows = self._conn.execute(_SEARCH_SQL, (expression, limit)).fetchall()
            except sqlite3.Error as exc:
                raise StoreError(StoreErrorKind.IO_FAILURE, f"search failed: {exc}") from exc
        return [SearchResult(record=self._row_to_record(row), rank=float(row["relevance"])) for row in rows]

    def get(self, item_id: str) -> StoredRecord | None:
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT * FROM records WHERE item_id = ?", (item_id,)
                ).fetchone()
            except sqlite3.Error as exc:
                raise StoreError(StoreErrorKind.IO_FAILURE, str(exc)) from exc
        return self._row_to_record(row) if row is not None else None

    def all_records(self) -> list[StoredRecord]:
        with self._lock:
            rows = self._conn.execute("SELECT * FROM records ORDER BY item_id").fetchall()
        return [self._row_to_record(row) for row in rows]

    def count(self) -> int:
        with self._lock:
            try:
                return int(self._conn.execute("SELECT count(*) FROM records").fetchone()[0])
            except sqlite3.Error as exc:
                raise StoreError(StoreErrorKind.IO_FAILURE, str(exc)) from exc

    def clear(self) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute("DELETE FROM records")
                self._conn.execute("DELETE FROM records_fts")
        self.logger.info("store_cleared", path=str(self.db_path))

    def close(self) -> None:
        with self._lock:
            self._conn.commit()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> StoredRecord:
        return StoredRecord(
            row_id=int(row["id"]),
            item_id=row["item_id"],
            name=row["name"],
            description=row["description"],
            url=row["url"],
            starred_at=parse_timestamp(row["starred_at"]),
            owner=row["owner"],
            language=row["language"],
            stars=int(row["stars"]),
            first_synced_at=parse_timestamp(row["first_synced_at"]),
            last_synced_at=parse_timestamp(row["last_synced_at"]),
        )


__all__ = ["SQLiteRecordStore", "build_match_expression", "format_timestamp", "parse_timestamp"]
