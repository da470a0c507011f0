from __future__ import annotations

import threading
import time

import pytest
import structlog

from jobbank_crawler.config import WorkerPoolConfig
from jobbank_crawler.engine.channels import ClosableQueue
from jobbank_crawler.engine.dispatcher import dispatch_pages
from jobbank_crawler.engine.worker_pool import (
    DEADLINE_EXCEEDED,
    UNEXPECTED,
    PageWorker,
    WorkerPool,
    resolve_worker_count,
)
from jobbank_crawler.errors import ExtractionError, NavigationError
from jobbank_crawler.models import PageJob, PageResult

LOGGER = structlog.get_logger("tests.worker_pool")


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.mark.parametrize(
    ("parallelism", "expected"),
    [(1, 2), (4, 2), (8, 4), (10, 6), (16, 8), (64, 8)],
)
def test_resolve_worker_count_clamps_derived_value(parallelism: int, expected: int) -> None:
    assert resolve_worker_count(parallelism) == expected


def test_resolve_worker_count_override_is_clamped() -> None:
    assert resolve_worker_count(16, override=3) == 3
    assert resolve_worker_count(16, override=0) == 1
    assert resolve_worker_count(1, override=50) == 8


def _worker(engine, config, *, index=0, sleep=None, deadline=None, clock=None) -> PageWorker:
    kwargs = {"deadline": deadline, "sleep": sleep or SleepRecorder()}
    if clock is not None:
        kwargs["clock"] = clock
    return PageWorker(index, engine, config, LOGGER, **kwargs)


def test_process_retries_once_with_linear_backoff(make_engine, fast_config, listing_factory) -> None:
    engine = make_engine(pages={1: [NavigationError("timeout"), listing_factory(1, 4)]})
    config = fast_config(pool=WorkerPoolConfig(workers=1, stagger=0, backoff=2, page_delay=0))
    sleep = SleepRecorder()

    result = _worker(engine, config, sleep=sleep).process(PageJob(page=1, run_id="run-1"))

    assert result.ok
    assert result.attempts == 2
    assert len(result.records) == 4
    assert sleep.calls == [2]
    assert engine.calls == {1: 2}
    assert all(session.closed for session in engine.sessions)


def test_process_reports_failure_after_exhausting_attempts(make_engine, fast_config) -> None:
    engine = make_engine(pages={3: [NavigationError("boom")]})
    result = _worker(engine, fast_config()).process(PageJob(page=3, run_id="run-1"))

    assert not result.ok
    assert result.error.kind == NavigationError.NAVIGATION_TIMEOUT
    assert result.error.message == "boom"
    assert result.attempts == 2
    assert result.records == []
    assert engine.calls == {3: 2}


def test_process_treats_empty_pages_as_extraction_failure(make_engine, fast_config, listing_factory) -> None:
    unusable = listing_factory(2, 3, title="ab")
    engine = make_engine(pages={2: [[], unusable]})
    result = _worker(engine, fast_config()).process(PageJob(page=2, run_id="run-1"))

    assert result.error.kind == ExtractionError.NO_RECORDS
    assert engine.calls == {2: 2}


def test_process_converts_unexpected_exceptions(make_engine, fast_config) -> None:
    engine = make_engine(pages={1: [RuntimeError("renderer crashed")]})
    result = _worker(engine, fast_config()).process(PageJob(page=1, run_id="run-1"))

    assert result.error.kind == UNEXPECTED
    assert "RuntimeError" in result.error.message


def test_process_skips_fetch_once_deadline_passed(make_engine, fast_config, listing_factory) -> None:
    engine = make_engine(pages={1: [listing_factory(1, 2)]})
    worker = _worker(engine, fast_config(), deadline=5.0, clock=lambda: 10.0)

    result = worker.process(PageJob(page=1, run_id="run-1"))

    assert result.error.kind == DEADLINE_EXCEEDED
    assert result.attempts == 0
    assert engine.calls == {}


def test_run_staggers_start_and_paces_pages(make_engine, fast_config, listing_factory) -> None:
    engine = make_engine(pages={1: [listing_factory(1, 1)], 2: [listing_factory(2, 1)]})
    config = fast_config(pool=WorkerPoolConfig(workers=4, stagger=0.5, backoff=0, page_delay=1))
    sleep = SleepRecorder()
    results: ClosableQueue[PageResult] = ClosableQueue()

    handled = _worker(engine, config, index=3, sleep=sleep).run(dispatch_pages("run-1", 2), results)

    assert handled == 2
    assert sleep.calls == [1.5, 1, 1]
    assert results.qsize() == 2


def test_pool_emits_one_result_per_page_and_closes_results(
    make_engine, fast_config, listing_factory
) -> None:
    pages = {page: [listing_factory(page, 2)] for page in range(1, 8)}
    pages[4] = [ExtractionError("script failed", kind=ExtractionError.SCRIPT_EVALUATION)]
    engine = make_engine(pages=pages)
    results: ClosableQueue[PageResult] = ClosableQueue(capacity=7)
    pool = WorkerPool(engine, fast_config(), 3, LOGGER, sleep=lambda _: None)

    supervisor = pool.start(dispatch_pages("run-1", 7), results)
    collected = list(results)
    supervisor.join(timeout=5)

    assert not supervisor.is_alive()
    assert results.closed
    assert sorted(result.page for result in collected) == list(range(1, 8))
    failed = [result for result in collected if not result.ok]
    assert [(result.page, result.error.kind) for result in failed] == [(4, "script_evaluation")]


def test_cancelled_worker_takes_no_further_jobs(make_engine, fast_config, listing_factory) -> None:
    engine = make_engine(pages={1: [listing_factory(1, 1)]})
    cancel = threading.Event()
    cancel.set()
    worker = PageWorker(0, engine, fast_config(), LOGGER, cancel=cancel, sleep=SleepRecorder())
    results: ClosableQueue[PageResult] = ClosableQueue()

    assert worker.run(dispatch_pages("run-1", 3), results) == 0
    assert results.qsize() == 0
    assert engine.calls == {}


def test_pool_cancel_finishes_in_flight_page_only(make_engine, fast_config) -> None:
    gate = threading.Event()
    engine = make_engine(pages={page: [gate] for page in range(1, 4)})
    config = fast_config(pool=WorkerPoolConfig(workers=1, stagger=0, backoff=0, page_delay=0))
    results: ClosableQueue[PageResult] = ClosableQueue(capacity=3)
    pool = WorkerPool(engine, config, 1, LOGGER, sleep=lambda _: None)

    pool.start(dispatch_pages("run-1", 3), results)
    waited = 0.0
    while not engine.calls and waited < 5:
        time.sleep(0.01)
        waited += 0.01
    assert not pool.join(timeout=0.05)

    pool.cancel()
    gate.set()

    assert pool.join(timeout=5)
    assert pool.cancelled
    assert results.closed
    assert [result.page for result in results] == [1]
    assert list(engine.calls) == [1]
