"""Discover how many pages the catalog currently has."""

from __future__ import annotations

import math
import re

import structlog

from ..config import BrowserConfig, ListingConfig
from ..errors import ParseError
from .base import BrowserEngine

_COUNT_RE = re.compile(r"([\d,]+)\s*results?", re.IGNORECASE)
_FIRST_INT_RE = re.compile(r"\d[\d,]*")


def parse_total_count(text: str) -> int:
    """Read the integer in a results summary such as ``"1,234 results"``."""

    match = _COUNT_RE.search(text)
    raw = match.group(1) if match else None
    if raw is None or not raw.replace(",", ""):
        fallback = _FIRST_INT_RE.search(text)
        raw = fallback.group(0) if fallback else None
    digits = (raw or "").replace(",", "")
    if not digits:
        raise ParseError(f"Could not parse job count from text: {text!r}")
    return int(digits)


def total_pages(count: int, page_size: int) -> int:
    if count <= 0:
        return 0
    return math.ceil(count / page_size)


class CountProber:
    """Loads page 1 in a fresh session and reads the results summary."""

    def __init__(
        self,
        engine: BrowserEngine,
        listing: ListingConfig,
        browser: BrowserConfig,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.engine = engine
        self.listing = listing
        self.browser = browser
        self.logger = logger or structlog.get_logger("jobbank_crawler.prober")

    def probe(self) -> int:
        """Return the total item count; NavigationError/ParseError propagate."""

        url = self.listing.page_url(1)
        with self.engine.open_session() as session:
            text = session.read_text(
                url,
                self.listing.selectors.results_summary,
                int(self.browser.count_timeout * 1000),
                settle_ms=int(self.browser.count_settle * 1000),
            )
        count = parse_total_count(text)
        self.logger.info("job_count_discovered", count=count, summary=text)
        return count


__all__ = ["CountProber", "parse_total_count", "total_pages"]
