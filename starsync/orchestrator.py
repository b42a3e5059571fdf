"""Top-level sync state machine wiring the coordinator, store and run history."""

from __future__ import annotations

import sqlite3
import uuid
from enum import Enum
from threading import Lock
from typing import Any, Callable

import structlog

from .config import ScheduleConfig, SyncConfig
from .engine import IngestionCoordinator, RemoteClient
from .exceptions import (
    OrchestrationError,
    OrchestrationErrorKind,
    RemoteError,
    RemoteErrorKind,
    StarSyncError,
)
from .logging_conf import run_logger
from .models import PageReport, SyncOutcome, SyncStatus, utcnow
from .store import BaseRecordStore, RunHistory


class SyncState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncOrchestrator:
    """Allow exactly one running sync per store and report its outcome."""

    def __init__(
        self,
        client: RemoteClient,
        store: BaseRecordStore,
        config: SyncConfig,
        history: RunHistory | None = None,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.config = config
        self.history = history
        self.sleep = sleep
        self.logger = structlog.get_logger("starsync.orchestrator")
        self._lock = Lock()
        self._state = SyncState.IDLE
        self._run_id: str | None = None
        self._coordinator: IngestionCoordinator | None = None
        self._last_outcome: SyncOutcome | None = None

    # ------------------------------------------------------------------
    @property
    def state(self) -> SyncState:
        with self._lock:
            return self._state

    @property
    def last_outcome(self) -> SyncOutcome | None:
        with self._lock:
            return self._last_outcome

    def trigger_sync(
        self,
        on_page: Callable[[PageReport], None] | None = None,
        *,
        concurrency: int | None = None,
        max_pages: int | None = None,
    ) -> SyncOutcome:
        """Run one sync to completion and return its outcome.

        Raises OrchestrationError when a sync is already running, and the
        RemoteError itself when the credential is rejected before any page
        was fetched.
        """

        overrides: dict[str, Any] = {}
        if concurrency is not None:
            overrides["concurrency"] = concurrency
        if max_pages is not None:
            overrides["max_pages"] = max_pages
        config = self.config.model_copy(update=overrides) if overrides else self.config

        with self._lock:
            if self._state is SyncState.RUNNING:
                raise OrchestrationError(
                    OrchestrationErrorKind.ALREADY_IN_PROGRESS,
                    f"sync {self._run_id} is already running",
                )
            run_id = uuid.uuid4().hex
            log = run_logger(run_id)
            coordinator = IngestionCoordinator(
                self.client,
                self.store,
                config,
                run_id=run_id,
                logger=log,
                sleep=self.sleep,
                on_page=on_page,
            )
            self._state = SyncState.RUNNING
            self._run_id = run_id
            self._coordinator = coordinator
            self._last_outcome = None

        log.info("sync_started", concurrency=config.concurrency, max_pages=config.max_pages)
        try:
            outcome = coordinator.run()
        except Exception as exc:
            outcome = coordinator.outcome
            outcome.status = SyncStatus.FAILED
            outcome.error = exc
            outcome.finished_at = utcnow()
            log.error("sync_crashed", error=str(exc), exc_info=True)
            self._finish(outcome, SyncState.FAILED)
            raise

        terminal = SyncState.FAILED if outcome.status is SyncStatus.FAILED else SyncState.COMPLETED
        self._finish(outcome, terminal)
        log.info(
            "sync_completed" if terminal is SyncState.COMPLETED else "sync_failed",
            status=outcome.status.value,
            pages_fetched=outcome.pages_fetched,
            records_upserted=outcome.records_upserted,
            records_failed=outcome.records_failed,
        )
        error = outcome.error
        if (
            isinstance(error, RemoteError)
            and error.kind is RemoteErrorKind.UNAUTHORIZED
            and outcome.pages_fetched == 0
        ):
            raise error
        return outcome

    def cancel(self) -> bool:
        """Ask the running sync to stop after its in-flight pages."""

        with self._lock:
            coordinator = self._coordinator
        if coordinator is None:
            return False
        coordinator.cancel()
        return True

    def reset(self) -> None:
        """Return a finished orchestrator to Idle; stored records are kept."""

        with self._lock:
            if self._state is SyncState.RUNNING:
                raise OrchestrationError(
                    OrchestrationErrorKind.ALREADY_IN_PROGRESS,
                    "cannot reset while a sync is running",
                )
            self._state = SyncState.IDLE
            self._run_id = None
            self._coordinator = None
            self._last_outcome = None

    def status(self) -> dict[str, Any]:
        with self._lock:
            outcome = self._last_outcome
            return {
                "state": self._state.value,
                "run_id": self._run_id,
                "last_outcome": outcome.as_dict() if outcome else None,
            }

    # ------------------------------------------------------------------
    def run_scheduled(self) -> None:
        """Scheduler callback: a busy or failing run is logged, never raised."""

        try:
            self.trigger_sync()
        except OrchestrationError as exc:
            self.logger.info("scheduled_sync_skipped", reason=exc.kind.value)
        except StarSyncError as exc:
            self.logger.error("scheduled_sync_failed", kind=exc.kind.value, error=exc.message)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("scheduled_sync_crashed", error=str(exc), exc_info=True)

    def register_schedule(self, scheduler, schedule: ScheduleConfig) -> None:
        scheduler.schedule_sync(schedule, self.run_scheduled)
        scheduler.start()

    def _finish(self, outcome: SyncOutcome, state: SyncState) -> None:
        with self._lock:
            self._state = state
            self._coordinator = None
            self._last_outcome = outcome
        if self.history is not None:
            try:
                self.history.record(outcome)
            except sqlite3.Error as exc:
                self.logger.error("history_record_failed", run_id=outcome.run_id, error=str(exc))


__all__ = ["SyncOrchestrator", "SyncState"]
