"""Validated ranked search over the record store."""

from __future__ import annotations

import structlog

from .config import SearchConfig
from .exceptions import ValidationError, ValidationErrorKind
from .models import SearchResult
from .store import BaseRecordStore


def normalise_query(raw_query: str | None) -> str:
    """Trim and collapse whitespace runs; nothing else is rewritten."""

    return " ".join((raw_query or "").split())


class SearchQueryEngine:
    """Guard the store against empty or too-short queries and clamp limits."""

    def __init__(
        self,
        store: BaseRecordStore,
        config: SearchConfig | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.store = store
        self.config = config or SearchConfig()
        self.logger = logger or structlog.get_logger("starsync.search")

    def validate(self, raw_query: str | None) -> str:
        query = normalise_query(raw_query)
        if not query:
            raise ValidationError(ValidationErrorKind.EMPTY, "query is empty")
        if len(query) < self.config.min_query_length:
            raise ValidationError(
                ValidationErrorKind.TOO_SHORT,
                f"query must be at least {self.config.min_query_length} characters",
            )
        return query

    def search(self, raw_query: str | None, limit: int | None = None) -> list[SearchResult]:
        query = self.validate(raw_query)
        effective_limit = self.config.default_limit if limit is None else limit
        effective_limit = max(1, min(effective_limit, self.config.max_limit))
        results = self.store.search(query, effective_limit)
        self.logger.debug("search_executed", query=query, limit=effective_limit, hits=len(results))
        return results


__all__ = ["SearchQueryEngine", "normalise_query"]
