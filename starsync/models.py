"""Records flowing through the sync pipeline and the search path."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class RemoteItem:
    """One element of a remote page, as decoded from the API."""

    item_id: str
    name: str
    description: str | None
    url: str
    starred_at: datetime
    owner: str
    language: str | None
    stars: int


@dataclass(slots=True)
class StoredRecord:
    """Persisted form of a RemoteItem plus sync bookkeeping."""

    row_id: int
    item_id: str
    name: str
    description: str | None
    url: str
    starred_at: datetime
    owner: str
    language: str | None
    stars: int
    first_synced_at: datetime
    last_synced_at: datetime

    def to_item(self) -> RemoteItem:
        return RemoteItem(
            item_id=self.item_id,
            name=self.name,
            description=self.description,
            url=self.url,
            starred_at=self.starred_at,
            owner=self.owner,
            language=self.language,
            stars=self.stars,
        )


@dataclass(slots=True)
class Page:
    """A bounded batch of items returned by a single remote call."""

    index: int
    items: tuple[RemoteItem, ...]
    has_more: bool
    last_index: int | None = None

    @property
    def is_empty(self) -> bool:
        return not self.items


@dataclass(slots=True)
class SearchResult:
    """A stored record with its relevance rank (higher is more relevant)."""

    record: StoredRecord
    rank: float


class SyncStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class PageFailure:
    page_index: int
    kind: str
    message: str


@dataclass(slots=True)
class PageReport:
    """Per-page progress notification emitted by the coordinator."""

    page_index: int
    upserted: int = 0
    failed: int = 0
    error: str | None = None


@dataclass(slots=True)
class SyncOutcome:
    """Aggregate result of one sync run."""

    run_id: str
    status: SyncStatus = SyncStatus.COMPLETED
    pages_fetched: int = 0
    records_upserted: int = 0
    records_failed: int = 0
    failures: list[PageFailure] = field(default_factory=list)
    error: Exception | None = None
    truncated: bool = False
    not_attempted_from: int | None = None
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None

    @property
    def failed_pages(self) -> list[int]:
        return sorted(failure.page_index for failure in self.failures)

    def as_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "pages_fetched": self.pages_fetched,
            "records_upserted": self.records_upserted,
            "records_failed": self.records_failed,
            "failures": [
                {"page_index": f.page_index, "kind": f.kind, "message": f.message}
                for f in sorted(self.failures, key=lambda f: f.page_index)
            ],
            "error": str(self.error) if self.error is not None else None,
            "truncated": self.truncated,
            "not_attempted_from": self.not_attempted_from,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


__all__ = [
    "Page",
    "PageFailure",
    "PageReport",
    "RemoteItem",
    "SearchResult",
    "StoredRecord",
    "SyncOutcome",
    "SyncStatus",
    "utcnow",
]
