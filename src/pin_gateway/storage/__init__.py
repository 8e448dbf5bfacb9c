"""Persistence backends."""

from pin_gateway.storage.sqlite import SQLiteStore

__all__ = ["SQLiteStore"]
