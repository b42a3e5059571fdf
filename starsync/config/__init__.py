"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    ApiConfig,
    BackoffPolicy,
    GlobalConfig,
    ScheduleConfig,
    ScheduleType,
    SearchConfig,
    StoreConfig,
    SyncConfig,
)

__all__ = [
    "ApiConfig",
    "BackoffPolicy",
    "ConfigLocator",
    "ConfigRepository",
    "GlobalConfig",
    "ScheduleConfig",
    "ScheduleType",
    "SearchConfig",
    "StoreConfig",
    "SyncConfig",
]
