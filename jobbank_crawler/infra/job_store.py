"""Job store contract plus SQLite and in-memory implementations.

Run status is monotonic: once a run is ``completed`` or ``failed`` every
further mutation is refused, logged as a warning and reported by a ``False``
return value. Write failures surface as :class:`PersistenceError`.
"""

from __future__ import annotations

import sqlite3
import uuid
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from threading import Lock
from typing import Iterable, Protocol, Sequence

import structlog

from ..errors import PersistenceError
from ..models import JobRecord, RunStatus, ScraperJob, ScrapingRun, utcnow
from .storage import SQLiteManager


class JobStore(Protocol):
    def create_run(self) -> ScrapingRun: ...

    def update_progress(
        self, run_id: str, total_pages: int, scraped: int, stored: int, last_page: int
    ) -> bool: ...

    def update_completed(self, run_id: str, total_pages: int, scraped: int, stored: int) -> bool: ...

    def update_status(
        self, run_id: str, status: RunStatus, error_message: str | None = None
    ) -> bool: ...

    def upsert_records_batch(self, records: Sequence[JobRecord]) -> int: ...

    def get_run(self, run_id: str) -> ScrapingRun | None: ...

    def latest_run(self) -> ScrapingRun | None: ...

    def records_for_run(self, run_id: str, limit: int | None = None) -> list[JobRecord]: ...

    def count_records(self) -> int: ...

    def top_employers(self, limit: int = 5) -> list[tuple[str, int]]: ...

    def get_scraper_job(self, job_type: str) -> ScraperJob: ...

    def mark_scraper_job(
        self,
        job_type: str,
        status: str,
        last_run_at: datetime | None = None,
        next_scheduled_run: datetime | None = None,
    ) -> None: ...

    def close(self) -> None: ...


def _iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _top_counts(employers: Iterable[str], limit: int) -> list[tuple[str, int]]:
    counts: dict[str, int] = {}
    for employer in employers:
        counts[employer] = counts.get(employer, 0) + 1
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return ranked[:limit]


_UPSERT_SQL = """
INSERT INTO job_postings (
    record_key, job_bank_id, title, employer, location, city, province,
    salary_raw, salary_min, salary_max, salary_type, posting_date, url,
    is_tfw, has_lmia, scraping_run_id, created_at, updated_at
) VALUES (
    :record_key, :job_bank_id, :title, :employer, :location, :city, :province,
    :salary_raw, :salary_min, :salary_max, :salary_type, :posting_date, :url,
    :is_tfw, :has_lmia, :scraping_run_id, :now, :now
)
ON CONFLICT (record_key) DO UPDATE SET
    job_bank_id = excluded.job_bank_id,
    title = excluded.title,
    employer = excluded.employer,
    location = excluded.location,
    city = excluded.city,
    province = excluded.province,
    salary_raw = excluded.salary_raw,
    salary_min = excluded.salary_min,
    salary_max = excluded.salary_max,
    salary_type = excluded.salary_type,
    posting_date = excluded.posting_date,
    url = excluded.url,
    has_lmia = excluded.has_lmia,
    scraping_run_id = excluded.scraping_run_id,
    updated_at = excluded.updated_at
"""


class SQLiteJobStore:
    """Durable store backed by stdlib sqlite3."""

    def __init__(
        self,
        path: Path,
        manager: SQLiteManager | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.path = path
        self.manager = manager or SQLiteManager()
        self.logger = logger or structlog.get_logger("jobbank_crawler.store")
        self._conn = self.manager.connect(path)
        self._lock = Lock()

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------
    def create_run(self) -> ScrapingRun:
        run = ScrapingRun(id=str(uuid.uuid4()))
        self._write(
            "INSERT INTO scraping_runs (id, status, started_at, created_at) VALUES (?, ?, ?, ?)",
            (run.id, run.status.value, _iso(run.started_at), _iso(run.started_at)),
        )
        return run

    def update_progress(
        self, run_id: str, total_pages: int, scraped: int, stored: int, last_page: int
    ) -> bool:
        updated = self._write(
            """
            UPDATE scraping_runs
               SET total_pages = ?, jobs_scraped = ?, jobs_stored = ?, last_page_scraped = ?
             WHERE id = ? AND status = 'running'
            """,
            (total_pages, scraped, stored, last_page, run_id),
        )
        return self._accepted(updated, run_id, "update_progress")

    def update_completed(self, run_id: str, total_pages: int, scraped: int, stored: int) -> bool:
        updated = self._write(
            """
            UPDATE scraping_runs
               SET status = 'completed', completed_at = ?, total_pages = ?,
                   jobs_scraped = ?, jobs_stored = ?
             WHERE id = ? AND status = 'running'
            """,
            (_iso(utcnow()), total_pages, scraped, stored, run_id),
        )
        return self._accepted(updated, run_id, "update_completed")

    def update_status(
        self, run_id: str, status: RunStatus, error_message: str | None = None
    ) -> bool:
        status = RunStatus(status)
        completed_at = _iso(utcnow()) if status.is_terminal else None
        updated = self._write(
            """
            UPDATE scraping_runs
               SET status = ?, error_message = ?, completed_at = ?
             WHERE id = ? AND status = 'running'
            """,
            (status.value, error_message, completed_at, run_id),
        )
        return self._accepted(updated, run_id, "update_status")

    def get_run(self, run_id: str) -> ScrapingRun | None:
        row = self._conn.execute("SELECT * FROM scraping_runs WHERE id = ?", (run_id,)).fetchone()
        return self._run_from_row(row) if row else None

    def latest_run(self) -> ScrapingRun | None:
        row = self._conn.execute(
            "SELECT * FROM scraping_runs ORDER BY started_at DESC, rowid DESC LIMIT 1"
        ).fetchone()
        return self._run_from_row(row) if row else None

    # ------------------------------------------------------------------
    # Postings
    # ------------------------------------------------------------------
    def upsert_records_batch(self, records: Sequence[JobRecord]) -> int:
        if not records:
            return 0
        now = _iso(utcnow())
        params = [self._record_params(record, now) for record in records]
        with self._lock:
            try:
                with self._conn:
                    self._conn.executemany(_UPSERT_SQL, params)
            except sqlite3.Error as exc:
                raise PersistenceError(f"Batch upsert of {len(records)} records failed: {exc}") from exc
        return len(records)

    def records_for_run(self, run_id: str, limit: int | None = None) -> list[JobRecord]:
        sql = "SELECT * FROM job_postings WHERE scraping_run_id = ? ORDER BY id"
        params: tuple = (run_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (run_id, limit)
        return [self._record_from_row(row) for row in self._conn.execute(sql, params)]

    def count_records(self) -> int:
        return int(self._conn.execute("SELECT COUNT(*) FROM job_postings").fetchone()[0])

    def top_employers(self, limit: int = 5) -> list[tuple[str, int]]:
        rows = self._conn.execute(
            """
            SELECT employer, COUNT(*) AS job_count
              FROM job_postings
             GROUP BY employer
             ORDER BY job_count DESC, employer ASC
             LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [(row["employer"], int(row["job_count"])) for row in rows]

    # ------------------------------------------------------------------
    # Scheduler bookkeeping
    # ------------------------------------------------------------------
    def get_scraper_job(self, job_type: str) -> ScraperJob:
        row = self._conn.execute(
            "SELECT * FROM scraper_jobs WHERE job_type = ?", (job_type,)
        ).fetchone()
        if row is None:
            now = _iso(utcnow())
            self._write(
                "INSERT OR IGNORE INTO scraper_jobs (job_type, status, created_at, updated_at) "
                "VALUES (?, 'pending', ?, ?)",
                (job_type, now, now),
            )
            return ScraperJob(job_type=job_type)
        return ScraperJob(
            job_type=row["job_type"],
            status=row["status"],
            last_run_at=_parse_datetime(row["last_run_at"]),
            next_scheduled_run=_parse_datetime(row["next_scheduled_run"]),
        )

    def mark_scraper_job(
        self,
        job_type: str,
        status: str,
        last_run_at: datetime | None = None,
        next_scheduled_run: datetime | None = None,
    ) -> None:
        self.get_scraper_job(job_type)
        self._write(
            """
            UPDATE scraper_jobs
               SET status = ?,
                   last_run_at = COALESCE(?, last_run_at),
                   next_scheduled_run = COALESCE(?, next_scheduled_run),
                   updated_at = ?
             WHERE job_type = ?
            """,
            (status, _iso(last_run_at), _iso(next_scheduled_run), _iso(utcnow()), job_type),
        )

    def close(self) -> None:
        self.manager.close(self.path)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _write(self, sql: str, params: tuple) -> int:
        with self._lock:
            try:
                with self._conn:
                    cursor = self._conn.execute(sql, params)
            except sqlite3.Error as exc:
                raise PersistenceError(f"Store write failed: {exc}") from exc
        return cursor.rowcount

    def _accepted(self, updated: int, run_id: str, operation: str) -> bool:
        if updated:
            return True
        self.logger.warning("run_update_refused", run_id=run_id, operation=operation)
        return False

    @staticmethod
    def _record_params(record: JobRecord, now: str | None) -> dict:
        return {
            "record_key": record.record_key,
            "job_bank_id": record.job_bank_id,
            "title": record.title,
            "employer": record.employer,
            "location": record.location,
            "city": record.city,
            "province": record.province,
            "salary_raw": record.salary_raw,
            "salary_min": record.salary_min,
            "salary_max": record.salary_max,
            "salary_type": record.salary_type,
            "posting_date": _iso(record.posting_date),
            "url": record.url,
            "is_tfw": int(record.is_tfw),
            "has_lmia": int(record.has_lmia),
            "scraping_run_id": record.scraping_run_id,
            "now": now,
        }

    @staticmethod
    def _run_from_row(row: sqlite3.Row) -> ScrapingRun:
        return ScrapingRun(
            id=row["id"],
            status=RunStatus(row["status"]),
            started_at=datetime.fromisoformat(row["started_at"]),
            completed_at=_parse_datetime(row["completed_at"]),
            total_pages=row["total_pages"],
            jobs_scraped=row["jobs_scraped"],
            jobs_stored=row["jobs_stored"],
            last_page_scraped=row["last_page_scraped"],
            error_message=row["error_message"],
        )

    @staticmethod
    def _record_from_row(row: sqlite3.Row) -> JobRecord:
        return JobRecord(
            title=row["title"],
            employer=row["employer"],
            location=row["location"],
            url=row["url"],
            scraping_run_id=row["scraping_run_id"],
            job_bank_id=row["job_bank_id"],
            city=row["city"],
            province=row["province"],
            salary_raw=row["salary_raw"],
            salary_min=row["salary_min"],
            salary_max=row["salary_max"],
            salary_type=row["salary_type"],
            posting_date=date.fromisoformat(row["posting_date"]) if row["posting_date"] else None,
            is_tfw=bool(row["is_tfw"]),
            has_lmia=bool(row["has_lmia"]),
        )


class MemoryJobStore:
    """Process-local store used for dry runs and tests."""

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self.logger = logger or structlog.get_logger("jobbank_crawler.store")
        self.runs: dict[str, ScrapingRun] = {}
        self.records: dict[str, JobRecord] = {}
        self.scraper_jobs: dict[str, ScraperJob] = {}
        self.progress_updates: list[tuple[int, int, int, int]] = []
        self._lock = Lock()

    def create_run(self) -> ScrapingRun:
        run = ScrapingRun(id=str(uuid.uuid4()))
        with self._lock:
            self.runs[run.id] = run
        return replace(run)

    def _running(self, run_id: str, operation: str) -> ScrapingRun | None:
        run = self.runs.get(run_id)
        if run is None or run.status.is_terminal:
            self.logger.warning("run_update_refused", run_id=run_id, operation=operation)
            return None
        return run

    def update_progress(
        self, run_id: str, total_pages: int, scraped: int, stored: int, last_page: int
    ) -> bool:
        with self._lock:
            run = self._running(run_id, "update_progress")
            if run is None:
                return False
            run.total_pages = total_pages
            run.jobs_scraped = scraped
            run.jobs_stored = stored
            run.last_page_scraped = last_page
            self.progress_updates.append((total_pages, scraped, stored, last_page))
        return True

    def update_completed(self, run_id: str, total_pages: int, scraped: int, stored: int) -> bool:
        with self._lock:
            run = self._running(run_id, "update_completed")
            if run is None:
                return False
            run.status = RunStatus.COMPLETED
            run.completed_at = utcnow()
            run.total_pages = total_pages
            run.jobs_scraped = scraped
            run.jobs_stored = stored
        return True

    def update_status(
        self, run_id: str, status: RunStatus, error_message: str | None = None
    ) -> bool:
        status = RunStatus(status)
        with self._lock:
            run = self._running(run_id, "update_status")
            if run is None:
                return False
            run.status = status
            run.error_message = error_message
            if status.is_terminal:
                run.completed_at = utcnow()
        return True

    def upsert_records_batch(self, records: Sequence[JobRecord]) -> int:
        with self._lock:
            for record in records:
                self.records[record.record_key] = replace(record)
        return len(records)

    def get_run(self, run_id: str) -> ScrapingRun | None:
        run = self.runs.get(run_id)
        return replace(run) if run else None

    def latest_run(self) -> ScrapingRun | None:
        if not self.runs:
            return None
        return replace(max(self.runs.values(), key=lambda run: run.started_at))

    def records_for_run(self, run_id: str, limit: int | None = None) -> list[JobRecord]:
        matches = [r for r in self.records.values() if r.scraping_run_id == run_id]
        return matches if limit is None else matches[:limit]

    def count_records(self) -> int:
        return len(self.records)

    def top_employers(self, limit: int = 5) -> list[tuple[str, int]]:
        return _top_counts((r.employer for r in self.records.values()), limit)

    def get_scraper_job(self, job_type: str) -> ScraperJob:
        with self._lock:
            job = self.scraper_jobs.setdefault(job_type, ScraperJob(job_type=job_type))
            return replace(job)

    def mark_scraper_job(
        self,
        job_type: str,
        status: str,
        last_run_at: datetime | None = None,
        next_scheduled_run: datetime | None = None,
    ) -> None:
        with self._lock:
            job = self.scraper_jobs.setdefault(job_type, ScraperJob(job_type=job_type))
            job.status = status
            if last_run_at is not None:
                job.last_run_at = last_run_at
            if next_scheduled_run is not None:
                job.next_scheduled_run = next_scheduled_run

    def close(self) -> None:
        return None


__all__ = ["JobStore", "MemoryJobStore", "SQLiteJobStore"]
