"""Shared fixtures: config builders, a scripted remote and temporary stores."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Iterable, Sequence

import pytest

from starsync.config import (
    BackoffPolicy,
    ConfigLocator,
    ConfigRepository,
    GlobalConfig,
    SyncConfig,
)
from starsync.exceptions import RemoteError
from starsync.infra import SQLiteManager
from starsync.models import Page, RemoteItem
from starsync.store import RunHistory, SQLiteRecordStore


class FakeRemote:
    """Scripted remote collection.

    ``pages[i]`` is the item list of page ``i``. By default every listed page
    claims more data and the page after the last one is empty; with
    ``advertise_last`` the final listed page says no more and every page
    reports the last index up front. ``failures[i]`` holds errors raised, in
    order, before page ``i`` succeeds; a trailing ``None`` is never needed.
    """

    def __init__(
        self,
        pages: Sequence[Sequence[RemoteItem]],
        *,
        failures: dict[int, list[RemoteError]] | None = None,
        advertise_last: bool = False,
    ) -> None:
        self.pages = [tuple(page) for page in pages]
        self.failures = {index: list(errors) for index, errors in (failures or {}).items()}
        self.advertise_last = advertise_last
        self.calls: list[int] = []
        self.calls_by_page: dict[int, int] = defaultdict(int)
        self._lock = Lock()

    @property
    def fetch_count(self) -> int:
        with self._lock:
            return len(self.calls)

    def fetch_page(self, page_index: int) -> Page:
        with self._lock:
            self.calls.append(page_index)
            self.calls_by_page[page_index] += 1
            pending = self.failures.get(page_index)
            error = pending.pop(0) if pending else None
        if error is not None:
            raise error
        if page_index >= len(self.pages):
            return Page(index=page_index, items=(), has_more=False)
        items = self.pages[page_index]
        if self.advertise_last:
            last = len(self.pages) - 1
            return Page(index=page_index, items=items, has_more=page_index < last, last_index=last)
        return Page(index=page_index, items=items, has_more=True)


def build_item(item_id: str | int, **overrides: Any) -> RemoteItem:
    base: dict[str, Any] = {
        "item_id": str(item_id),
        "name": f"repo-{item_id}",
        "description": f"Description for repository {item_id}",
        "url": f"https://github.com/octo/repo-{item_id}",
        "starred_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "owner": "octo",
        "language": "Python",
        "stars": 10,
    }
    base.update(overrides)
    return RemoteItem(**base)


def build_pages(page_count: int, per_page: int) -> list[list[RemoteItem]]:
    return [
        [build_item(page * per_page + offset) for offset in range(per_page)]
        for page in range(page_count)
    ]


class SteppingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        self._lock = Lock()

    def __call__(self) -> datetime:
        with self._lock:
            value = self.current
            self.current = value + timedelta(seconds=1)
            return value


@pytest.fixture
def item_factory() -> Callable[..., RemoteItem]:
    return build_item


@pytest.fixture
def pages_factory() -> Callable[[int, int], list[list[RemoteItem]]]:
    return build_pages


@pytest.fixture
def fake_remote_factory() -> Callable[..., FakeRemote]:
    return FakeRemote


@pytest.fixture
def fast_sync_config() -> Callable[..., SyncConfig]:
    def _builder(**overrides: Any) -> SyncConfig:
        base: dict[str, Any] = {
            "concurrency": 4,
            "max_pages": 100,
            "backoff": BackoffPolicy(delays=[0.0], max_attempts=3, rate_limit_max_waits=3),
        }
        base.update(overrides)
        return SyncConfig(**base)

    return _builder


@pytest.fixture
def sample_global_config(tmp_path: Path) -> GlobalConfig:
    return GlobalConfig.model_validate(
        {
            "api": {"token": "test-token", "per_page": 5},
            "sync": {"concurrency": 2, "max_pages": 50, "backoff": {"delays": [0]}},
            "store": {"path": str(tmp_path / "data" / "stars.db")},
            "enable_progress_bar": False,
        }
    )


@pytest.fixture
def sqlite_manager() -> Iterable[SQLiteManager]:
    manager = SQLiteManager()
    yield manager
    manager.close_all()


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "stars.db"


@pytest.fixture
def record_store(sqlite_manager: SQLiteManager, store_path: Path) -> SQLiteRecordStore:
    return SQLiteRecordStore(sqlite_manager, store_path, clock=SteppingClock())


@pytest.fixture
def run_history(sqlite_manager: SQLiteManager, store_path: Path) -> RunHistory:
    return RunHistory(sqlite_manager, store_path)


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterable[ConfigRepository]:
    monkeypatch.setenv("STARSYNC_HOME", str(tmp_path))
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator)
    yield repository
