"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any

import structlog

from .config.loader import resolve_home

APP_LOG = "starsync.log"
ERROR_LOG = "error.log"

_LOGGING_INITIALISED = False


def default_log_dir() -> Path:
    return resolve_home() / "logs"


def _file_handler(path: Path, level: str) -> dict[str, Any]:
    return {
        "class": "logging.FileHandler",
        "level": level,
        "filename": str(path),
        "formatter": "json",
        "encoding": "utf-8",
    }


def _dict_config(level: str, log_dir: Path) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
            }
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "level": level, "formatter": "json"},
            "app_file": _file_handler(log_dir / APP_LOG, "INFO"),
            "error_file": _file_handler(log_dir / ERROR_LOG, "ERROR"),
        },
        "loggers": {
            "starsync": {
                "handlers": ["console", "app_file", "error_file"],
                "level": level,
                "propagate": False,
            },
            # APScheduler chatter goes to the files only
            "apscheduler": {
                "handlers": ["app_file", "error_file"],
                "level": "WARNING",
                "propagate": False,
            },
        },
    }


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers once and return the application logger."""

    global _LOGGING_INITIALISED
    log_dir = default_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    for name in (APP_LOG, ERROR_LOG):
        (log_dir / name).touch(exist_ok=True)

    if not _LOGGING_INITIALISED:
        logging.config.dictConfig(_dict_config("DEBUG" if verbose else "INFO", log_dir))
        # structlog renders nothing itself; the JSON formatter on each handler does
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger("starsync")


def run_logger(run_id: str, component: str = "sync") -> structlog.BoundLogger:
    """Return a logger bound to one sync run."""

    return structlog.get_logger(f"starsync.{component}").bind(run_id=run_id)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last N lines from a log file."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


__all__ = ["APP_LOG", "ERROR_LOG", "configure_logging", "default_log_dir", "run_logger", "tail_log"]
