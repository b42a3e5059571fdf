"""Error taxonomy shared by the sync and search engine."""

from __future__ import annotations

from enum import Enum


class RemoteErrorKind(str, Enum):
    """Failure classes surfaced by the remote client."""

    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    TRANSIENT = "transient"
    MALFORMED = "malformed"


class StoreErrorKind(str, Enum):
    CONFLICT = "conflict"
    IO_FAILURE = "io_failure"


class ValidationErrorKind(str, Enum):
    EMPTY = "empty"
    TOO_SHORT = "too_short"


class OrchestrationErrorKind(str, Enum):
    ALREADY_IN_PROGRESS = "already_in_progress"


class StarSyncError(Exception):
    """Base class; every subclass carries a ``kind`` enum member."""

    kind: Enum

    def __init__(self, kind: Enum, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class RemoteError(StarSyncError):
    """Raised by the remote client for a single page fetch."""

    kind: RemoteErrorKind

    def __init__(
        self,
        kind: RemoteErrorKind,
        message: str,
        *,
        retry_after: float | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(kind, message)
        self.retry_after = retry_after
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind in (RemoteErrorKind.RATE_LIMITED, RemoteErrorKind.TRANSIENT)


class StoreError(StarSyncError):
    kind: StoreErrorKind


class ValidationError(StarSyncError, ValueError):
    """Rejected search input; never reaches the store."""

    kind: ValidationErrorKind


class OrchestrationError(StarSyncError):
    kind: OrchestrationErrorKind


__all__ = [
    "OrchestrationError",
    "OrchestrationErrorKind",
    "RemoteError",
    "RemoteErrorKind",
    "StarSyncError",
    "StoreError",
    "StoreErrorKind",
    "ValidationError",
    "ValidationErrorKind",
]
