from __future__ import annotations

import threading

import pytest

from starsync.engine.pagination import PageCursor


def test_cursor_gates_dispatch_on_previous_page() -> None:
    cursor = PageCursor(max_pages=10)
    assert cursor.claim() == 0

    claimed: list[int | None] = []
    waiter = threading.Thread(target=lambda: claimed.append(cursor.claim()))
    waiter.start()
    waiter.join(timeout=0.2)
    assert waiter.is_alive()

    cursor.resolve(0, more=True)
    waiter.join(timeout=2)
    assert claimed == [1]


def test_cursor_stops_after_page_without_more() -> None:
    cursor = PageCursor(max_pages=10)
    assert cursor.claim() == 0
    cursor.resolve(0, more=True)
    assert cursor.claim() == 1
    cursor.resolve(1, more=False)
    cursor.release(0)
    cursor.release(1)
    assert cursor.claim() is None
    assert cursor.more is False
    assert cursor.cap_reached is False


def test_cursor_opens_every_page_up_to_last_index() -> None:
    cursor = PageCursor(max_pages=10)
    assert cursor.claim() == 0
    cursor.resolve(0, more=True, last_index=3)
    assert [cursor.claim() for _ in range(3)] == [1, 2, 3]
    assert cursor.next_index == 4


def test_cursor_exits_when_nothing_in_flight_can_open_frontier() -> None:
    cursor = PageCursor(max_pages=10)
    assert cursor.claim() == 0
    cursor.release(0)
    assert cursor.claim() is None


def test_cursor_respects_cap() -> None:
    cursor = PageCursor(max_pages=2)
    for index in range(2):
        assert cursor.claim() == index
        cursor.resolve(index, more=True)
        cursor.release(index)
    assert cursor.claim() is None
    assert cursor.cap_reached is True


def test_cursor_cancel_wakes_waiters() -> None:
    cursor = PageCursor(max_pages=10)
    assert cursor.claim() == 0
    claimed: list[int | None] = []
    waiter = threading.Thread(target=lambda: claimed.append(cursor.claim()))
    waiter.start()
    cursor.cancel()
    waiter.join(timeout=2)
    assert claimed == [None]
    assert cursor.cancelled is True
    assert cursor.cap_reached is False


def test_cursor_rejects_non_positive_cap() -> None:
    with pytest.raises(ValueError):
        PageCursor(max_pages=0)
