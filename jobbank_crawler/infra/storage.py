"""SQLite connection management and schema for runs, postings and scheduler state."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from threading import Lock
from typing import Dict

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS scraping_runs (
        id TEXT PRIMARY KEY,
        status TEXT NOT NULL CHECK (status IN ('running', 'completed', 'failed')),
        started_at TEXT NOT NULL,
        completed_at TEXT,
        error_message TEXT,
        total_pages INTEGER NOT NULL DEFAULT 0,
        jobs_scraped INTEGER NOT NULL DEFAULT 0,
        jobs_stored INTEGER NOT NULL DEFAULT 0,
        last_page_scraped INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS job_postings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        record_key TEXT NOT NULL UNIQUE,
        job_bank_id TEXT,
        title TEXT NOT NULL,
        employer TEXT NOT NULL,
        location TEXT NOT NULL DEFAULT '',
        city TEXT,
        province TEXT,
        salary_raw TEXT,
        salary_min REAL,
        salary_max REAL,
        salary_type TEXT,
        posting_date TEXT,
        url TEXT NOT NULL DEFAULT '',
        is_tfw INTEGER NOT NULL DEFAULT 1,
        has_lmia INTEGER NOT NULL DEFAULT 0,
        scraping_run_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_job_postings_run ON job_postings (scraping_run_id)",
    "CREATE INDEX IF NOT EXISTS idx_job_postings_employer ON job_postings (employer)",
    """
    CREATE TABLE IF NOT EXISTS scraper_jobs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_type TEXT NOT NULL UNIQUE,
        status TEXT NOT NULL DEFAULT 'pending',
        last_run_at TEXT,
        next_scheduled_run TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
)


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        for statement in SCHEMA:
            conn.execute(statement)
        conn.commit()

    def close(self, path: Path) -> None:
        with self._lock:
            conn = self._connections.pop(path, None)
        if conn is not None:
            conn.close()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


__all__ = ["SCHEMA", "SQLiteManager"]
