"""Record store Service Provider Interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from ..models import RemoteItem, SearchResult, StoredRecord


class BaseRecordStore(ABC):
    """Uniform store contract: idempotent upsert by id plus ranked search."""

    @abstractmethod
    def upsert(self, item: RemoteItem) -> StoredRecord:
        """Insert or overwrite the record for ``item.item_id``."""

    def upsert_many(self, items: Iterable[RemoteItem]) -> list[StoredRecord]:
        return [self.upsert(item) for item in items]

    @abstractmethod
    def search(self, query: str, limit: int) -> list[SearchResult]:
        """Return matches ordered by rank desc, last_synced_at desc, item_id asc."""

    @abstractmethod
    def get(self, item_id: str) -> StoredRecord | None:
        """Fetch one record by its unique identifier."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored records."""

    @abstractmethod
    def close(self) -> None:
        """Release underlying resources."""


__all__ = ["BaseRecordStore"]
