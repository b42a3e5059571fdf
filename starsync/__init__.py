"""Sync starred repositories into a local SQLite store and search them."""

__version__ = "0.1.0"
