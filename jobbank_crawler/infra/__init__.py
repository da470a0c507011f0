"""Infra layer utilities (SQLite storage and job stores)."""

from .job_store import JobStore, MemoryJobStore, SQLiteJobStore
from .storage import SQLiteManager

__all__ = ["JobStore", "MemoryJobStore", "SQLiteJobStore", "SQLiteManager"]
