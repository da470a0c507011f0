"""Playwright-backed engine: one headless Chromium per session."""

from __future__ import annotations

from typing import Any

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright
import structlog

from ..config import BrowserConfig, ListingSelectors
from ..errors import ExtractionError, NavigationError
from ..models import RawListing
from .base import (
    SUMMARY_FALLBACK_KEYWORD,
    SUMMARY_FALLBACK_SELECTOR,
    BrowserEngine,
    EngineSession,
)

LAUNCH_ARGS = [
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-sandbox",
    "--ignore-certificate-errors",
]

_LOGGER = structlog.get_logger("jobbank_crawler.browser")

EXTRACT_LISTINGS_JS = """
(sel) => {
  const jobs = [];
  document.querySelectorAll(sel.record_container).forEach((article) => {
    try {
      const jobId = (article.id || '').replace('article-', '');
      const titleLink = article.querySelector(sel.title_link);
      if (!titleLink) return;
      const text = (selector) => {
        const el = article.querySelector(selector);
        return el ? el.textContent.trim() : '';
      };
      const title = text(sel.title);
      if (title && jobId && title.length > 2) {
        jobs.push({
          jobId: jobId,
          title: title,
          employer: text(sel.employer) || 'Unknown',
          location: text(sel.location),
          salaryText: text(sel.salary),
          postedDate: text(sel.date),
          lmiaFlag: text(sel.lmia_flag),
          url: titleLink.href,
        });
      }
    } catch (e) {
      // skip malformed article
    }
  });
  return jobs;
}
"""

READ_TEXT_JS = """
(args) => {
  const el = document.querySelector(args.selector);
  if (el) return el.textContent.trim();
  if (args.fallbackSelector) {
    for (const node of document.querySelectorAll(args.fallbackSelector)) {
      const text = node.textContent.trim();
      if (!args.keyword || text.toLowerCase().includes(args.keyword)) return text;
    }
  }
  return '';
}
"""


class PlaywrightSession(EngineSession):
    def __init__(self, config: BrowserConfig, selectors: ListingSelectors) -> None:
        self._config = config
        self._selectors = selectors
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    def _ensure_started(self) -> None:
        if self._playwright is not None:
            return
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(
            headless=self._config.headless, args=LAUNCH_ARGS
        )
        width, height = self._config.viewport
        self._context = self._browser.new_context(
            user_agent=self._config.user_agent,
            locale="en-CA",
            timezone_id="America/Toronto",
            viewport={"width": width, "height": height},
            ignore_https_errors=True,
        )
        self._page = self._context.new_page()

    def _navigate(self, url: str, wait_selector: str, timeout_ms: int) -> None:
        self._ensure_started()
        try:
            self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise NavigationError(f"Navigation timeout for {url}: {exc}") from exc
        except PlaywrightError as exc:
            raise NavigationError(f"Navigation failed for {url}: {exc}") from exc
        try:
            self._page.wait_for_selector(wait_selector, timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise NavigationError(
                f"Selector wait timeout for '{wait_selector}' on {url}",
                kind=NavigationError.ELEMENT_NOT_FOUND,
            ) from exc

    def _evaluate(self, script: str, arg: Any) -> Any:
        try:
            return self._page.evaluate(script, arg)
        except PlaywrightError as exc:
            raise ExtractionError(
                f"Script evaluation failed: {exc}", kind=ExtractionError.SCRIPT_EVALUATION
            ) from exc

    def fetch_listings(
        self, url: str, wait_selector: str, timeout_ms: int, settle_ms: int
    ) -> list[RawListing]:
        self._navigate(url, wait_selector, timeout_ms)
        if settle_ms:
            self._page.wait_for_timeout(settle_ms)
        payload = self._evaluate(EXTRACT_LISTINGS_JS, self._selectors.model_dump())
        if not isinstance(payload, list):
            raise ExtractionError(
                "Extraction script returned a non-list payload",
                kind=ExtractionError.SCRIPT_EVALUATION,
            )
        return [RawListing.from_payload(item) for item in payload if isinstance(item, dict)]

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
        self._navigate(url, "body", timeout_ms)
        if settle_ms:
            self._page.wait_for_timeout(settle_ms)
        text = self._evaluate(
            READ_TEXT_JS,
            {
                "selector": selector,
                "fallbackSelector": fallback_selector,
                "keyword": (fallback_keyword or "").lower(),
            },
        )
        if not isinstance(text, str) or not text.strip():
            raise NavigationError(
                f"Element '{selector}' not found on {url}",
                kind=NavigationError.ELEMENT_NOT_FOUND,
            )
        return text.strip()

    def close(self) -> None:
        """Tear down page, context, browser and driver; a failing step never skips the rest."""

        steps = (
            ("page", self._page, "close"),
            ("context", self._context, "close"),
            ("browser", self._browser, "close"),
            ("playwright", self._playwright, "stop"),
        )
        self._page = self._context = self._browser = self._playwright = None
        for step, resource, method in steps:
            if resource is None:
                continue
            try:
                getattr(resource, method)()
            except Exception as exc:  # noqa: BLE001
                _LOGGER.warning("session_teardown_failed", step=step, error=str(exc))


class PlaywrightEngine(BrowserEngine):
    """Hands out fresh headless Chromium sessions."""

    name = "browser"

    def __init__(self, config: BrowserConfig, selectors: ListingSelectors) -> None:
        self.config = config
        self.selectors = selectors

    def open_session(self) -> PlaywrightSession:
        return PlaywrightSession(self.config, self.selectors)


__all__ = ["EXTRACT_LISTINGS_JS", "PlaywrightEngine", "PlaywrightSession"]
