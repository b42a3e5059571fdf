"""Periodic sync scheduling."""

from .apsched_adapter import SYNC_JOB_ID, APSchedulerAdapter, build_trigger

__all__ = ["APSchedulerAdapter", "SYNC_JOB_ID", "build_trigger"]
