"""Fixed-size pool of page workers, each owning its own engine sessions."""

from __future__ import annotations

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

import structlog

from ..config import CrawlerConfig
from ..errors import CrawlerError, ExtractionError
from ..models import JobRecord, PageError, PageJob, PageResult, RawListing
from .base import BrowserEngine
from .channels import ClosableQueue
from .normalize import build_job_record

MIN_WORKERS = 2
MAX_WORKERS = 8
DEADLINE_EXCEEDED = "deadline_exceeded"
UNEXPECTED = "unexpected_error"


def resolve_worker_count(parallelism: int | None = None, override: int | None = None) -> int:
    """Sixty percent of the available parallelism, clamped to ``[2, 8]``.

    An explicit ``override`` wins but is still clamped to ``[1, 8]``.
    """

    if override is not None:
        return max(1, min(MAX_WORKERS, override))
    cores = parallelism if parallelism is not None else (os.cpu_count() or 1)
    return max(MIN_WORKERS, min(MAX_WORKERS, cores * 6 // 10))


class PageWorker:
    """Consumes PageJobs and emits exactly one PageResult for each."""

    def __init__(
        self,
        index: int,
        engine: BrowserEngine,
        config: CrawlerConfig,
        logger: structlog.BoundLogger,
        *,
        deadline: float | None = None,
        cancel: threading.Event | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.index = index
        self.engine = engine
        self.config = config
        self.logger = logger.bind(worker=index)
        self.deadline = deadline
        self.cancel = cancel or threading.Event()
        self._sleep = sleep
        self._clock = clock

    def run(self, work: ClosableQueue[PageJob], results: ClosableQueue[PageResult]) -> int:
        """Process jobs until the work queue is drained; return the page count handled."""

        pool = self.config.pool
        if pool.stagger:
            self._sleep(self.index * pool.stagger)
        handled = 0
        for job in work:
            if self.cancel.is_set():
                self.logger.info("worker_cancelled", page=job.page, handled=handled)
                break
            results.put(self.process(job))
            handled += 1
            if pool.page_delay:
                self._sleep(pool.page_delay)
        self.logger.debug("worker_finished", pages=handled)
        return handled

    def _past_deadline(self) -> bool:
        return self.deadline is not None and self._clock() >= self.deadline

    def process(self, job: PageJob) -> PageResult:
        pool = self.config.pool
        error: PageError | None = None
        for attempt in range(1, pool.max_attempts + 1):
            if self._past_deadline():
                self.logger.warning("page_skipped_deadline", page=job.page)
                return PageResult(
                    page=job.page,
                    error=PageError(DEADLINE_EXCEEDED, "run deadline exceeded before fetch"),
                    attempts=attempt - 1,
                )
            try:
                records = self._scrape(job)
            except CrawlerError as exc:
                error = PageError(exc.kind, exc.message)
            except Exception as exc:  # noqa: BLE001 - converted into a tagged page failure
                error = PageError(UNEXPECTED, f"{type(exc).__name__}: {exc}")
            else:
                if records:
                    return PageResult(page=job.page, records=records, attempts=attempt)
                error = PageError(ExtractionError.NO_RECORDS, "no records extracted")

            if attempt < pool.max_attempts:
                self.logger.warning(
                    "page_retry",
                    page=job.page,
                    attempt=attempt,
                    kind=error.kind,
                    reason=error.message,
                )
                self._sleep(attempt * pool.backoff)

        self.logger.error(
            "page_failed",
            page=job.page,
            attempts=pool.max_attempts,
            kind=error.kind,
            reason=error.message,
        )
        return PageResult(page=job.page, error=error, attempts=pool.max_attempts)

    def _scrape(self, job: PageJob) -> list[JobRecord]:
        listing_cfg = self.config.listing
        browser_cfg = self.config.browser
        url = listing_cfg.page_url(job.page)
        with self.engine.open_session() as session:
            listings = session.fetch_listings(
                url,
                listing_cfg.selectors.record_container,
                int(browser_cfg.page_timeout * 1000),
                int(browser_cfg.settle_delay * 1000),
            )
        return self._normalise(job, listings)

    def _normalise(self, job: PageJob, listings: list[RawListing]) -> list[JobRecord]:
        records: list[JobRecord] = []
        for listing in listings:
            record = build_job_record(listing, job.run_id, self.config.listing.base_url)
            if record is None:
                self.logger.debug(
                    "listing_dropped", page=job.page, external_id=listing.external_id
                )
                continue
            records.append(record)
        return records


class WorkerPool:
    """Starts N workers plus a supervisor that closes the results queue."""

    def __init__(
        self,
        engine: BrowserEngine,
        config: CrawlerConfig,
        worker_count: int,
        logger: structlog.BoundLogger,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.engine = engine
        self.config = config
        self.worker_count = worker_count
        self.logger = logger
        self._sleep = sleep
        self._clock = clock
        self._cancel = threading.Event()
        self._supervisor: threading.Thread | None = None

    def start(
        self,
        work: ClosableQueue[PageJob],
        results: ClosableQueue[PageResult],
        deadline: float | None = None,
    ) -> threading.Thread:
        """Launch the workers and return the supervisor thread."""

        workers = [
            PageWorker(
                index,
                self.engine,
                self.config,
                self.logger,
                deadline=deadline,
                cancel=self._cancel,
                sleep=self._sleep,
                clock=self._clock,
            )
            for index in range(self.worker_count)
        ]
        executor = ThreadPoolExecutor(
            max_workers=self.worker_count, thread_name_prefix="page-worker"
        )
        futures = [executor.submit(worker.run, work, results) for worker in workers]
        self.logger.info("workers_started", workers=self.worker_count)

        def supervise() -> None:
            try:
                for future in futures:
                    exc = future.exception()
                    if exc is not None:
                        self.logger.error(
                            "worker_crashed", error=f"{type(exc).__name__}: {exc}"
                        )
                executor.shutdown(wait=True)
            finally:
                results.close()

        supervisor = threading.Thread(target=supervise, name="pool-supervisor", daemon=True)
        supervisor.start()
        self._supervisor = supervisor
        return supervisor

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Stop workers from taking further jobs; in-flight pages still finish."""

        if not self._cancel.is_set():
            self._cancel.set()
            self.logger.info("workers_cancel_requested")

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the supervisor; return False if workers are still running."""

        if self._supervisor is None:
            return True
        self._supervisor.join(timeout)
        if self._supervisor.is_alive():
            self.logger.warning("workers_still_running", timeout=timeout)
            return False
        return True


__all__ = [
    "DEADLINE_EXCEEDED",
    "MAX_WORKERS",
    "MIN_WORKERS",
    "PageWorker",
    "UNEXPECTED",
    "WorkerPool",
    "resolve_worker_count",
]
