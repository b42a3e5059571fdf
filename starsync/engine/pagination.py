"""Shared dispatch state for workers pulling pages off an unbounded sequence."""

from __future__ import annotations

from threading import Condition


class PageCursor:
    """Hand out page indices to concurrent workers.

    ``claim`` only returns an index inside the dispatch frontier: page ``i + 1``
    opens once page ``i`` has resolved with more data behind it, and every page
    up to ``last_index`` opens as soon as the remote advertises it. Workers
    waiting on the frontier block on the condition instead of speculatively
    fetching pages past the end of the collection.
    """

    def __init__(self, max_pages: int) -> None:
        if max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        self.max_pages = max_pages
        self._cond = Condition()
        self._next = 0
        self._frontier = 1
        self._more = True
        self._cancelled = False
        self._in_flight = 0

    # ------------------------------------------------------------------
    def claim(self) -> int | None:
        """Block until a page may be dispatched; None means the worker should exit."""

        with self._cond:
            while True:
                if not self._more or self._cancelled or self._next >= self.max_pages:
                    return None
                if self._next < self._frontier:
                    index = self._next
                    self._next += 1
                    self._in_flight += 1
                    return index
                if self._in_flight == 0:
                    # nothing pending can open the frontier any further
                    return None
                self._cond.wait()

    def resolve(self, index: int, more: bool, last_index: int | None = None) -> None:
        """Record what a fetched (or failed) page says about the pages after it."""

        with self._cond:
            if more:
                self._frontier = max(self._frontier, index + 2)
                if last_index is not None:
                    self._frontier = max(self._frontier, last_index + 1)
            else:
                self._more = False
            self._cond.notify_all()

    def release(self, index: int) -> None:
        """Mark the claimed page as fully handled (fetched and upserted)."""

        with self._cond:
            self._in_flight -= 1
            self._cond.notify_all()

    def cancel(self) -> None:
        with self._cond:
            self._cancelled = True
            self._cond.notify_all()

    # ------------------------------------------------------------------
    @property
    def more(self) -> bool:
        with self._cond:
            return self._more

    @property
    def cancelled(self) -> bool:
        with self._cond:
            return self._cancelled

    @property
    def next_index(self) -> int:
        with self._cond:
            return self._next

    @property
    def cap_reached(self) -> bool:
        """True when the cap, not the remote, ended dispatch."""

        with self._cond:
            return self._more and not self._cancelled and self._next >= self.max_pages and (
                self._frontier > self.max_pages
            )


__all__ = ["PageCursor"]
