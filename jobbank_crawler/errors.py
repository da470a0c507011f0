"""Error taxonomy shared by the prober, workers, store and orchestrator.

Each error carries a short ``kind`` code that ends up in structured logs and in
``PageError`` values, so a failed page can be explained without a traceback.
Only :class:`ParseError` (and a :class:`NavigationError` raised while probing
the total count) aborts a run; everything else is scoped to one page or one
batch.
"""

from __future__ import annotations


class CrawlerError(Exception):
    """Base class for all expected crawler failures."""

    default_kind = "crawler_error"

    def __init__(self, message: str, *, kind: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind or self.default_kind

    @property
    def message(self) -> str:
        return str(self)


class NavigationError(CrawlerError):
    """Page unreachable or the expected element never rendered."""

    NAVIGATION_TIMEOUT = "navigation_timeout"
    ELEMENT_NOT_FOUND = "element_not_found"

    default_kind = NAVIGATION_TIMEOUT


class ExtractionError(CrawlerError):
    """Page rendered but the extraction produced nothing usable."""

    SCRIPT_EVALUATION = "script_evaluation"
    NO_RECORDS = "no_records"

    default_kind = NO_RECORDS


class ParseError(CrawlerError):
    """The results summary text did not contain a parsable count."""

    default_kind = "count_unparseable"


class PersistenceError(CrawlerError):
    """A batch upsert or run update failed in the job store."""

    default_kind = "batch_failed"


__all__ = [
    "CrawlerError",
    "ExtractionError",
    "NavigationError",
    "ParseError",
    "PersistenceError",
]
