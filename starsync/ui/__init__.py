"""User interaction helpers."""

from .progress import SyncProgress

__all__ = ["SyncProgress"]
