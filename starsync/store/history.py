"""Persisted summaries of finished sync runs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ..infra.storage import SQLiteManager
from ..models import SyncOutcome


class RunHistory:
    """Append-only log of sync outcomes stored next to the records."""

    def __init__(self, manager: SQLiteManager, db_path: Path) -> None:
        self.manager = manager
        self.db_path = db_path
        self._lock = manager.lock_for(db_path)
        self._conn = manager.connect(db_path)

    def record(self, outcome: SyncOutcome) -> None:
        payload = outcome.as_dict()
        with self._lock:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT OR REPLACE INTO sync_runs(
                        run_id, status, started_at, finished_at, pages_fetched,
                        records_upserted, records_failed, failed_pages, error
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        payload["run_id"],
                        payload["status"],
                        payload["started_at"],
                        payload["finished_at"],
                        payload["pages_fetched"],
                        payload["records_upserted"],
                        payload["records_failed"],
                        json.dumps(outcome.failed_pages),
                        payload["error"],
                    ),
                )

    def recent(self, limit: int = 20) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM sync_runs ORDER BY started_at DESC LIMIT ?", (limit,)
            ).fetchall()
        entries = []
        for row in rows:
            entry = dict(row)
            entry["failed_pages"] = json.loads(entry["failed_pages"] or "[]")
            entries.append(entry)
        return entries

    def last(self) -> dict[str, Any] | None:
        entries = self.recent(limit=1)
        return entries[0] if entries else None

    def clear(self) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute("DELETE FROM sync_runs")


__all__ = ["RunHistory"]
