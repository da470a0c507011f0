"""Pytest configuration providing shared fixtures and a scripted engine."""

from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Sequence

import pytest

from jobbank_crawler.config import (
    BrowserConfig,
    ConfigLocator,
    ConfigRepository,
    CrawlerConfig,
    PersistenceConfig,
    WorkerPoolConfig,
)
from jobbank_crawler.engine.base import BrowserEngine, EngineSession
from jobbank_crawler.errors import NavigationError
from jobbank_crawler.infra import MemoryJobStore
from jobbank_crawler.models import RawListing

_PAGE_RE = re.compile(r"page=(\d+)")

# A scripted outcome is a listing list, an exception to raise, or an event to
# block on before returning no listings.
Outcome = Sequence[RawListing] | BaseException | threading.Event


class FakeSession(EngineSession):
    def __init__(self, engine: "FakeEngine") -> None:
        self.engine = engine
        self.closed = False

    def fetch_listings(
        self, url: str, wait_selector: str, timeout_ms: int, settle_ms: int
    ) -> list[RawListing]:
        page = int(_PAGE_RE.search(url).group(1))
        outcome = self.engine.next_outcome(page)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, threading.Event):
            outcome.wait()
            return []
        return list(outcome)

    def read_text(self, url: str, selector: str, timeout_ms: int, **kwargs: Any) -> str:
        self.engine.count_requests.append(url)
        if isinstance(self.engine.count_text, BaseException):
            raise self.engine.count_text
        return self.engine.count_text

    def close(self) -> None:
        self.closed = True


class FakeEngine(BrowserEngine):
    """Serves scripted per-page outcomes; the last outcome for a page repeats."""

    name = "fake"

    def __init__(
        self,
        count_text: str | BaseException = "0 results",
        pages: Mapping[int, Sequence[Outcome]] | None = None,
    ) -> None:
        self.count_text = count_text
        self.pages = {page: list(outcomes) for page, outcomes in (pages or {}).items()}
        self.calls: dict[int, int] = {}
        self.count_requests: list[str] = []
        self.sessions: list[FakeSession] = []
        self._lock = threading.Lock()

    def open_session(self) -> FakeSession:
        session = FakeSession(self)
        with self._lock:
            self.sessions.append(session)
        return session

    def next_outcome(self, page: int) -> Outcome:
        with self._lock:
            attempt = self.calls.get(page, 0)
            self.calls[page] = attempt + 1
        outcomes = self.pages.get(page)
        if not outcomes:
            return NavigationError(f"page {page} not scripted")
        return outcomes[min(attempt, len(outcomes) - 1)]


@pytest.fixture(autouse=True)
def crawler_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("JOBBANK_CRAWLER_HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def listing_factory() -> Callable[..., list[RawListing]]:
    def _builder(page: int, count: int, **overrides: Any) -> list[RawListing]:
        listings = []
        for index in range(count):
            job_id = f"{page:03d}{index:03d}"
            values = {
                "external_id": job_id,
                "title": f"Cook {page}-{index}",
                "employer": f"Employer {index % 3}",
                "location": "Toronto (ON)",
                "salary_text": "$17.50 hourly",
                "date_text": "January 2, 2025",
                "url": f"https://www.jobbank.gc.ca/jobposting/{job_id};jsessionid=ABC?source=searchresults",
                "lmia_flag": "LMIA" if index % 2 == 0 else "",
            }
            values.update(overrides)
            listings.append(RawListing(**values))
        return listings

    return _builder


@pytest.fixture
def fast_config() -> Callable[..., CrawlerConfig]:
    def _builder(**overrides: Any) -> CrawlerConfig:
        base: dict[str, Any] = {
            "browser": BrowserConfig(settle_delay=0, count_settle=0),
            "pool": WorkerPoolConfig(workers=3, stagger=0, backoff=0, page_delay=0),
            "persistence": PersistenceConfig(batch_size=100, progress_interval=10),
            "enable_progress_bar": False,
        }
        base.update(overrides)
        return CrawlerConfig(**base)

    return _builder


@pytest.fixture
def make_engine() -> Callable[..., FakeEngine]:
    return FakeEngine


@pytest.fixture
def memory_store() -> MemoryJobStore:
    return MemoryJobStore()


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> Iterable[ConfigRepository]:
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator)
    yield repository
