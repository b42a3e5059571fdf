"""Durable record store and sync run history."""

from .base import BaseRecordStore
from .history import RunHistory
from .sqlite_store import SQLiteRecordStore, build_match_expression

__all__ = ["BaseRecordStore", "RunHistory", "SQLiteRecordStore", "build_match_expression"]
