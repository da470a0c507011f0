"""Single consumer of page results: counters, buffering and progress snapshots."""

from __future__ import annotations

import queue
import time
from dataclasses import dataclass, field
from typing import Callable

import structlog

from ..errors import PersistenceError
from ..infra.job_store import JobStore
from ..models import JobRecord, PageResult
from ..ui import ProgressReporter
from .channels import ClosableQueue


@dataclass(slots=True)
class AggregateState:
    total_pages: int
    completed_pages: int = 0
    jobs_scraped: int = 0
    errors: int = 0
    failed_pages: list[int] = field(default_factory=list)
    records: list[JobRecord] = field(default_factory=list)
    reported: set[int] = field(default_factory=set)
    abandoned_pages: list[int] = field(default_factory=list)

    @property
    def timed_out(self) -> bool:
        return bool(self.abandoned_pages)


class ResultAggregator:
    """Drains the results queue; correct for any arrival order."""

    def __init__(
        self,
        store: JobStore,
        run_id: str,
        total_pages: int,
        logger: structlog.BoundLogger,
        *,
        snapshot_interval: int = 10,
        progress: ProgressReporter | None = None,
    ) -> None:
        self.store = store
        self.run_id = run_id
        self.logger = logger
        self.snapshot_interval = snapshot_interval
        self.progress = progress
        self.state = AggregateState(total_pages=total_pages)

    def drain(
        self,
        results: ClosableQueue[PageResult],
        deadline: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> AggregateState:
        """Consume results until the queue closes or ``deadline`` passes.

        Pages still outstanding at the deadline are recorded as failures.
        """

        while True:
            timeout = None
            if deadline is not None:
                timeout = deadline - clock()
                if timeout <= 0:
                    self._abandon_outstanding()
                    break
            try:
                result = results.get(timeout=timeout)
            except queue.Empty:
                continue
            if result is None:
                break
            self.consume(result)
        return self.state

    def consume(self, result: PageResult) -> None:
        state = self.state
        state.completed_pages += 1
        state.reported.add(result.page)
        if result.ok:
            state.records.extend(result.records)
            state.jobs_scraped += len(result.records)
        else:
            state.errors += 1
            state.failed_pages.append(result.page)

        self.logger.info(
            "page_progress",
            page=result.page,
            ok=result.ok,
            page_jobs=len(result.records),
            completed_pages=state.completed_pages,
            total_pages=state.total_pages,
            jobs_scraped=state.jobs_scraped,
            errors=state.errors,
        )
        if self.progress is not None:
            self.progress.advance(result.page, jobs=len(result.records), failed=not result.ok)
        if state.completed_pages % self.snapshot_interval == 0:
            self._snapshot()

    def _abandon_outstanding(self) -> None:
        state = self.state
        outstanding = [
            page for page in range(1, state.total_pages + 1) if page not in state.reported
        ]
        for page in outstanding:
            state.errors += 1
            state.failed_pages.append(page)
            state.abandoned_pages.append(page)
        self.logger.warning(
            "run_deadline_reached",
            completed_pages=state.completed_pages,
            abandoned_pages=outstanding,
        )

    def _snapshot(self) -> None:
        state = self.state
        try:
            self.store.update_progress(
                self.run_id, state.total_pages, state.jobs_scraped, 0, state.completed_pages
            )
        except PersistenceError as exc:
            self.logger.warning("progress_snapshot_failed", error=exc.message)


__all__ = ["AggregateState", "ResultAggregator"]
