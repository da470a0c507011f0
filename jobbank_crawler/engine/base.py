"""Engine contract shared by the browser and HTTP implementations."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..models import RawListing

# Fallback used when the configured results summary element is missing.
SUMMARY_FALLBACK_SELECTOR = "h2"
SUMMARY_FALLBACK_KEYWORD = "result"


class EngineSession(ABC):
    """One isolated page-rendering session; always closed after use."""

    @abstractmethod
    def fetch_listings(
        self, url: str, wait_selector: str, timeout_ms: int, settle_ms: int
    ) -> list[RawListing]:
        """Navigate, wait for ``wait_selector``, settle, then extract listings."""

    @abstractmethod
    def read_text(
        self,
        url: str,
        selector: str,
        timeout_ms: int,
        *,
        settle_ms: int = 0,
        fallback_selector: str | None = SUMMARY_FALLBACK_SELECTOR,
        fallback_keyword: str | None = SUMMARY_FALLBACK_KEYWORD,
    ) -> str:
        """Return the text of ``selector``, or of the first fallback element
        whose text mentions ``fallback_keyword``."""

    @abstractmethod
    def close(self) -> None:
        ...

    def __enter__(self) -> "EngineSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class BrowserEngine(ABC):
    """Factory of independent sessions; safe to share across worker threads."""

    name = "engine"

    @abstractmethod
    def open_session(self) -> EngineSession:
        ...


__all__ = [
    "BrowserEngine",
    "EngineSession",
    "SUMMARY_FALLBACK_KEYWORD",
    "SUMMARY_FALLBACK_SELECTOR",
]
