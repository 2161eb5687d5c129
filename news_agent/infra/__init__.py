"""Infra layer utilities (storage)."""

from .storage import MEMORY_DSN, ItemStore, SQLiteItemStore, SQLiteManager

__all__ = ["ItemStore", "MEMORY_DSN", "SQLiteItemStore", "SQLiteManager"]
