"""Per-run coordinator wiring probe, dispatch, workers, aggregation and persistence."""

from __future__ import annotations

import time
from typing import Callable

import structlog

from .config import CrawlerConfig
from .engine import (
    BatchPersister,
    BrowserEngine,
    ClosableQueue,
    CountProber,
    ResultAggregator,
    WorkerPool,
    apply_page_ceiling,
    dispatch_pages,
    resolve_worker_count,
    total_pages,
)
from .errors import NavigationError, ParseError, PersistenceError
from .infra import JobStore
from .logging_conf import configure_logging, release_run_logger, run_logger
from .models import PageResult, RunStatus, RunSummary
from .ui import ProgressActivity, ProgressReporter


class ScrapeOrchestrator:
    """Owns everything one scrape needs; create a new instance for every run.

    ``run()`` never raises. Count discovery failures and unexpected faults end
    the run as ``failed`` with the captured message; page failures only
    increase the error count.
    """

    def __init__(
        self,
        config: CrawlerConfig,
        store: JobStore,
        engine: BrowserEngine,
        *,
        max_pages: int | None = None,
        workers: int | None = None,
        parallelism: int | None = None,
        progress_enabled: bool = True,
        dry_run: bool = False,
        verbose: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.store = store
        self.engine = engine
        self.max_pages = max_pages
        self.workers = workers if workers is not None else config.pool.workers
        self.parallelism = parallelism
        self.dry_run = dry_run
        self.verbose = verbose
        self.progress = ProgressReporter(enabled=progress_enabled and config.enable_progress_bar)
        self._progress_enabled = progress_enabled
        self._sleep = sleep
        self._clock = clock
        self.logger = configure_logging(verbose).bind(component="orchestrator")

    def run(self) -> RunSummary:
        started = self._clock()
        try:
            run = self.store.create_run()
        except PersistenceError as exc:
            self.logger.error("run_create_failed", error=exc.message)
            return RunSummary(
                run_id=None,
                status=RunStatus.FAILED,
                error_message=f"Failed to create scraping run: {exc.message}",
                dry_run=self.dry_run,
            )

        logger = run_logger(run.id, self.verbose).bind(dry_run=self.dry_run)
        logger.info("run_started", engine=self.engine.name, max_pages=self.max_pages)
        try:
            return self._execute(run.id, logger, started)
        except (ParseError, NavigationError) as exc:
            logger.error("count_discovery_failed", kind=exc.kind, error=exc.message)
            return self._fail(run.id, logger, started, f"Failed to get total job count: {exc}")
        except Exception as exc:  # noqa: BLE001 - top-level recovery marks the run failed
            logger.exception("run_crashed")
            return self._fail(run.id, logger, started, f"{type(exc).__name__}: {exc}")
        finally:
            self.progress.close()
            release_run_logger(run.id)

    # ------------------------------------------------------------------
    def _execute(self, run_id: str, logger: structlog.BoundLogger, started: float) -> RunSummary:
        deadline = started + self.config.pool.run_deadline

        activity = ProgressActivity(enabled=self._progress_enabled)
        activity.start("Discovering total job count…")
        try:
            count = CountProber(self.engine, self.config.listing, self.config.browser, logger).probe()
        finally:
            activity.close()

        available = total_pages(count, self.config.listing.page_size)
        pages = apply_page_ceiling(available, self.max_pages)
        logger.info("pages_planned", job_count=count, available_pages=available, pages=pages)

        if pages == 0:
            self.store.update_completed(run_id, 0, 0, 0)
            logger.info("run_completed", total_pages=0, jobs_scraped=0, jobs_stored=0, errors=0)
            return self._summary(run_id, RunStatus.COMPLETED, started)

        try:
            self.store.update_progress(run_id, pages, 0, 0, 0)
        except PersistenceError as exc:
            logger.warning("progress_snapshot_failed", error=exc.message)

        work = dispatch_pages(run_id, pages)
        results: ClosableQueue[PageResult] = ClosableQueue(capacity=pages)
        worker_count = resolve_worker_count(self.parallelism, self.workers)
        pool = WorkerPool(
            self.engine, self.config, worker_count, logger, sleep=self._sleep, clock=self._clock
        )
        pool.start(work, results, deadline=deadline)
        try:
            self.progress.start(pages)
            aggregator = ResultAggregator(
                self.store,
                run_id,
                pages,
                logger,
                snapshot_interval=self.config.persistence.progress_interval,
                progress=self.progress,
            )
            state = aggregator.drain(results, deadline=deadline, clock=self._clock)
        finally:
            self._stop_pool(pool, results)
            self.progress.close()

        outcome = BatchPersister(self.store, self.config.persistence.batch_size, logger).persist(
            state.records
        )
        self.store.update_completed(run_id, pages, state.jobs_scraped, outcome.stored)
        logger.info(
            "run_completed",
            total_pages=pages,
            jobs_scraped=state.jobs_scraped,
            jobs_stored=outcome.stored,
            errors=state.errors,
            failed_pages=sorted(state.failed_pages),
            abandoned_pages=state.abandoned_pages,
            failed_batches=outcome.failed_batches,
        )
        return self._summary(
            run_id,
            RunStatus.COMPLETED,
            started,
            total_pages=pages,
            jobs_scraped=state.jobs_scraped,
            jobs_stored=outcome.stored,
            errors=state.errors,
            failed_pages=sorted(state.failed_pages),
        )

    def _stop_pool(self, pool: WorkerPool, results: ClosableQueue[PageResult]) -> None:
        """Cancel remaining jobs, then wait for in-flight pages up to one page timeout."""

        if not results.closed:
            pool.cancel()
        pool.join(timeout=self.config.browser.page_timeout)

    def _fail(
        self, run_id: str, logger: structlog.BoundLogger, started: float, message: str
    ) -> RunSummary:
        try:
            self.store.update_status(run_id, RunStatus.FAILED, message)
        except PersistenceError as exc:
            logger.error("run_status_update_failed", error=exc.message)
        logger.error("run_failed", error=message)
        return self._summary(run_id, RunStatus.FAILED, started, error_message=message)

    def _summary(
        self, run_id: str, status: RunStatus, started: float, **fields: object
    ) -> RunSummary:
        return RunSummary(
            run_id=run_id,
            status=status,
            duration=self._clock() - started,
            dry_run=self.dry_run,
            **fields,
        )


__all__ = ["ScrapeOrchestrator"]
