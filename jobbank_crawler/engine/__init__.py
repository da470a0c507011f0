"""Engine components: probe → dispatch → page workers → aggregate → persist."""

from ..config import CrawlerConfig, EngineKind
from .aggregator import AggregateState, ResultAggregator
from .base import BrowserEngine, EngineSession
from .browser import PlaywrightEngine
from .channels import ClosableQueue
from .dispatcher import apply_page_ceiling, dispatch_pages
from .http_engine import HttpEngine
from .persister import BatchPersister, PersistOutcome
from .prober import CountProber, parse_total_count, total_pages
from .worker_pool import PageWorker, WorkerPool, resolve_worker_count


def build_engine(config: CrawlerConfig, kind: EngineKind | str | None = None) -> BrowserEngine:
    """Return the configured engine, optionally overridden by ``kind``."""

    engine_kind = EngineKind(kind) if kind is not None else config.browser.engine
    if engine_kind is EngineKind.HTTP:
        return HttpEngine(config.browser, config.listing.selectors)
    return PlaywrightEngine(config.browser, config.listing.selectors)


__all__ = [
    "AggregateState",
    "BatchPersister",
    "BrowserEngine",
    "ClosableQueue",
    "CountProber",
    "EngineSession",
    "HttpEngine",
    "PageWorker",
    "PersistOutcome",
    "PlaywrightEngine",
    "ResultAggregator",
    "WorkerPool",
    "apply_page_ceiling",
    "build_engine",
    "dispatch_pages",
    "parse_total_count",
    "resolve_worker_count",
    "total_pages",
]
