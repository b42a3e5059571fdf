"""Pydantic models used across the starsync configuration flow."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class ScheduleType(str, Enum):
    """Scheduler modes for periodic syncs."""

    CRON = "cron"
    INTERVAL = "interval"
    ONCE = "once"


class ScheduleConfig(BaseModel):
    """When the periodic sync should run."""

    type: ScheduleType = Field(default=ScheduleType.INTERVAL)
    value: Any = Field(
        default=3600,
        description="Cron expression, interval seconds/kwargs or ISO datetime, depending on type.",
    )

    @model_validator(mode="after")
    def _validate_value(self) -> "ScheduleConfig":
        if self.type is ScheduleType.CRON and not isinstance(self.value, str):
            raise ValueError("Cron schedule requires string expression")
        if self.type is ScheduleType.INTERVAL:
            if isinstance(self.value, bool) or not isinstance(self.value, (int, float, dict)):
                raise ValueError("Interval schedule requires seconds (int/float) or kwargs dict")
            if isinstance(self.value, (int, float)) and self.value <= 0:
                raise ValueError("Interval seconds must be positive")
        if (
            self.type is ScheduleType.ONCE
            and self.value is not None
            and not isinstance(self.value, str)
        ):
            raise ValueError("Once schedule expects ISO datetime string or null")
        return self


class ApiConfig(BaseModel):
    """Remote API endpoint and credential lookup."""

    base_url: str = "https://api.github.com"
    starred_path: str = "/user/starred"
    per_page: int = Field(default=100, ge=1, le=100)
    timeout: float = Field(default=15.0, gt=0)
    user_agent: str = "starsync"
    token: str | None = None
    token_env: str = "GITHUB_TOKEN"

    @field_validator("base_url")
    @classmethod
    def _strip_base_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return value

    @field_validator("starred_path")
    @classmethod
    def _normalise_path(cls, value: str) -> str:
        value = value.strip()
        return value if value.startswith("/") else f"/{value}"


class BackoffPolicy(BaseModel):
    """Retry delay schedule for transient failures and remote throttling."""

    delays: list[float] = Field(default_factory=lambda: [1.0, 2.0, 4.0])
    max_attempts: int = Field(default=3, ge=1)
    rate_limit_max_waits: int = Field(default=5, ge=0)
    rate_limit_max_delay: float = Field(default=900.0, ge=0)

    @field_validator("delays", mode="before")
    @classmethod
    def _coerce_delays(cls, value: Any) -> list[float]:
        if value in (None, ""):
            return [0.0]
        if isinstance(value, (int, float)):
            value = [value]
        if not isinstance(value, (list, tuple)) or not value:
            raise ValueError("delays expects a non-empty list of seconds")
        delays = [float(item) for item in value]
        if any(delay < 0 for delay in delays):
            raise ValueError("Backoff delays must be non-negative")
        return delays

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based); the last entry repeats."""

        index = min(max(attempt, 1), len(self.delays)) - 1
        return self.delays[index]

    def rate_limit_delay(self, retry_after: float | None, wait_number: int) -> float:
        if retry_after is None:
            return min(self.delay_for(wait_number), self.rate_limit_max_delay)
        return min(max(retry_after, 0.0), self.rate_limit_max_delay)


class SyncConfig(BaseModel):
    concurrency: int = Field(default=4, ge=1, le=64)
    max_pages: int = Field(default=500, ge=1)
    backoff: BackoffPolicy = Field(default_factory=BackoffPolicy)


class SearchConfig(BaseModel):
    min_query_length: int = Field(default=3, ge=1)
    default_limit: int = Field(default=20, ge=1)
    max_limit: int = Field(default=100, ge=1)
    prefix_match: bool = True

    @model_validator(mode="after")
    def _validate_limits(self) -> "SearchConfig":
        if self.default_limit > self.max_limit:
            raise ValueError("default_limit must be <= max_limit")
        return self


class StoreConfig(BaseModel):
    path: Path = Field(default=Path("data/stars.db"))

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    def resolved_path(self, base_dir: Path) -> Path:
        """Return the store path relative to the project home."""

        if not self.path.is_absolute():
            return (base_dir / self.path).resolve()
        return self.path


class GlobalConfig(BaseModel):
    """Top-level configuration document."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    enable_progress_bar: bool = True


__all__ = [
    "ApiConfig",
    "BackoffPolicy",
    "GlobalConfig",
    "ScheduleConfig",
    "ScheduleType",
    "SearchConfig",
    "StoreConfig",
    "SyncConfig",
]
