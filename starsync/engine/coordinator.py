"""Fan paginated remote fetches out to a bounded worker pool and upsert results."""

from __future__ import annotations

import uuid
from concurrent.futures import ThreadPoolExecutor
from threading import Event, Lock
from typing import Callable

import structlog

from ..config import SyncConfig
from ..exceptions import RemoteError, RemoteErrorKind, StoreError
from ..models import Page, PageFailure, PageReport, SyncOutcome, SyncStatus, utcnow
from ..store import BaseRecordStore
from .client import RemoteClient
from .pagination import PageCursor
from .retry import FetchAbandoned, PageRetrier


class IngestionCoordinator:
    """Drive one sync run: claim pages, fetch with retries, upsert, aggregate."""

    def __init__(
        self,
        client: RemoteClient,
        store: BaseRecordStore,
        config: SyncConfig,
        *,
        run_id: str | None = None,
        logger: structlog.BoundLogger | None = None,
        sleep: Callable[[float], object] | None = None,
        on_page: Callable[[PageReport], None] | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.config = config
        self.run_id = run_id or uuid.uuid4().hex
        self.logger = logger or structlog.get_logger("starsync.coordinator").bind(run_id=self.run_id)
        self.on_page = on_page
        self.cursor = PageCursor(max_pages=config.max_pages)
        self._stop = Event()
        self.retrier = PageRetrier(
            config.backoff,
            sleep=sleep or self._interruptible_sleep,
            logger=self.logger,
            should_stop=self._stop.is_set,
        )
        self.outcome = SyncOutcome(run_id=self.run_id)
        self._outcome_lock = Lock()
        self._fatal: RemoteError | None = None
        self._abandoned: int | None = None

    # ------------------------------------------------------------------
    def run(self) -> SyncOutcome:
        workers = self.config.concurrency
        self.logger.info("ingestion_started", concurrency=workers, max_pages=self.config.max_pages)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="starsync-ingest") as executor:
            futures = [executor.submit(self._worker, number) for number in range(workers)]
            for future in futures:
                future.result()
        return self._finalise()

    def cancel(self) -> None:
        """Stop dispatching new pages; in-flight pages finish their upserts."""

        self.logger.info("ingestion_cancel_requested", next_page=self.cursor.next_index)
        self._stop.set()
        self.cursor.cancel()

    # ------------------------------------------------------------------
    def _worker(self, number: int) -> None:
        """Claim pages until the cursor runs dry; a failed page does not end the worker."""

        log = self.logger.bind(worker=number)
        while True:
            index = self.cursor.claim()
            if index is None:
                log.debug("worker_exit")
                return
            try:
                self._process_page(index, log)
            finally:
                self.cursor.release(index)

    def _process_page(self, index: int, log: structlog.BoundLogger) -> None:
        try:
            page = self.retrier.fetch(self.client.fetch_page, index)
        except FetchAbandoned:
            with self._outcome_lock:
                if self._abandoned is None or index < self._abandoned:
                    self._abandoned = index
            log.info("page_abandoned", page=index)
            return
        except RemoteError as exc:
            self._record_failure(index, exc.kind.value, exc.message, log)
            if exc.kind is RemoteErrorKind.UNAUTHORIZED:
                self._abort(exc)
            self.cursor.resolve(index, more=True)
            return
        except Exception as exc:  # noqa: BLE001
            log.error("page_error", page=index, error=str(exc), exc_info=True)
            self._record_failure(index, "unexpected", str(exc), log)
            self.cursor.resolve(index, more=True)
            return

        with self._outcome_lock:
            self.outcome.pages_fetched += 1
        if index == 0 and page.last_index is not None:
            log.info("total_pages_discovered", pages=page.last_index + 1)
        if page.has_more and not page.is_empty:
            self.cursor.resolve(index, more=True, last_index=page.last_index)
            self._upsert_page(page, log)
        else:
            # the last page is fully upserted before dispatch stops
            self._upsert_page(page, log)
            self.cursor.resolve(index, more=False)
            log.info("pagination_exhausted", page=index, items=len(page.items))

    def _upsert_page(self, page: Page, log: structlog.BoundLogger) -> None:
        upserted = 0
        failed = 0
        for item in page.items:
            try:
                self.store.upsert(item)
            except StoreError as exc:
                failed += 1
                log.warning(
                    "record_upsert_failed",
                    page=page.index,
                    item_id=item.item_id,
                    kind=exc.kind.value,
                    error=exc.message,
                )
            else:
                upserted += 1
        with self._outcome_lock:
            self.outcome.records_upserted += upserted
            self.outcome.records_failed += failed
        log.info("page_fetched", page=page.index, upserted=upserted, failed=failed, has_more=page.has_more)
        self._notify(PageReport(page_index=page.index, upserted=upserted, failed=failed))

    def _record_failure(self, index: int, kind: str, message: str, log: structlog.BoundLogger) -> None:
        with self._outcome_lock:
            self.outcome.failures.append(PageFailure(page_index=index, kind=kind, message=message))
        log.error("page_failed", page=index, kind=kind, error=message)
        self._notify(PageReport(page_index=index, error=f"{kind}: {message}"))

    def _abort(self, error: RemoteError) -> None:
        with self._outcome_lock:
            if self._fatal is None:
                self._fatal = error
        self.logger.error("ingestion_aborted", kind=error.kind.value, error=error.message)
        self._stop.set()
        self.cursor.cancel()

    def _notify(self, report: PageReport) -> None:
        if self.on_page is None:
            return
        try:
            self.on_page(report)
        except Exception:  # noqa: BLE001
            self.logger.warning("progress_callback_failed", page=report.page_index, exc_info=True)

    def _interruptible_sleep(self, delay: float) -> None:
        self._stop.wait(delay)

    def _finalise(self) -> SyncOutcome:
        outcome = self.outcome
        outcome.finished_at = utcnow()
        if self._fatal is not None:
            outcome.status = SyncStatus.FAILED
            outcome.error = self._fatal
        elif self.cursor.cancelled:
            outcome.status = SyncStatus.CANCELLED
            outcome.not_attempted_from = self.cursor.next_index
            if self._abandoned is not None:
                outcome.not_attempted_from = min(outcome.not_attempted_from, self._abandoned)
        else:
            outcome.status = SyncStatus.COMPLETED
            outcome.truncated = self.cursor.cap_reached
            if outcome.truncated:
                self.logger.warning("max_pages_reached", max_pages=self.config.max_pages)
        self.logger.info(
            "ingestion_finished",
            status=outcome.status.value,
            pages_fetched=outcome.pages_fetched,
            records_upserted=outcome.records_upserted,
            records_failed=outcome.records_failed,
            failed_pages=outcome.failed_pages,
        )
        return outcome


__all__ = ["IngestionCoordinator"]
