"""Retry bookkeeping for page fetches: transient backoff and throttling waits."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

import structlog

from ..config import BackoffPolicy
from ..exceptions import RemoteError, RemoteErrorKind
from ..models import Page


class FetchAbandoned(Exception):
    """Raised when the run stops while a page is waiting to retry."""

    def __init__(self, page_index: int) -> None:
        super().__init__(f"page {page_index} abandoned before retry")
        self.page_index = page_index


@dataclass
class RetryContext:
    """Per-page retry state."""

    page_index: int
    attempt: int = 1
    rate_limit_waits: int = 0
    last_error: RemoteError | None = None


class PageRetrier:
    """Run a page fetch, retrying the kinds the backoff policy allows."""

    def __init__(
        self,
        policy: BackoffPolicy,
        sleep: Callable[[float], object] = time.sleep,
        logger: structlog.BoundLogger | None = None,
        should_stop: Callable[[], bool] | None = None,
    ) -> None:
        self.policy = policy
        self.sleep = sleep
        self.should_stop = should_stop or (lambda: False)
        self.logger = logger or structlog.get_logger("starsync.retry")

    def next_delay(self, context: RetryContext, error: RemoteError) -> float | None:
        """Return the wait before the next attempt, or None to give up."""

        context.last_error = error
        if error.kind is RemoteErrorKind.RATE_LIMITED:
            if context.rate_limit_waits >= self.policy.rate_limit_max_waits:
                return None
            context.rate_limit_waits += 1
            return self.policy.rate_limit_delay(error.retry_after, context.rate_limit_waits)
        if error.kind is RemoteErrorKind.TRANSIENT:
            if context.attempt >= self.policy.max_attempts:
                return None
            delay = self.policy.delay_for(context.attempt)
            context.attempt += 1
            return delay
        return None

    def fetch(self, fetch_page: Callable[[int], Page], page_index: int) -> Page:
        context = RetryContext(page_index=page_index)
        while True:
            try:
                return fetch_page(page_index)
            except RemoteError as exc:
                delay = self.next_delay(context, exc)
                if delay is None:
                    raise
                self.logger.warning(
                    "page_retry",
                    page=page_index,
                    kind=exc.kind.value,
                    attempt=context.attempt,
                    rate_limit_waits=context.rate_limit_waits,
                    delay=delay,
                )
                if delay > 0:
                    self.sleep(delay)
                if self.should_stop():
                    raise FetchAbandoned(page_index) from exc


__all__ = ["FetchAbandoned", "PageRetrier", "RetryContext"]
