"""Plain HTTP engine: httpx for transport, selectolax for the DOM. No JavaScript."""

from __future__ import annotations

from urllib.parse import urljoin

import httpx
from selectolax.parser import HTMLParser, Node

from ..config import BrowserConfig, ListingSelectors
from ..errors import NavigationError
from ..models import RawListing
from .base import (
    SUMMARY_FALLBACK_KEYWORD,
    SUMMARY_FALLBACK_SELECTOR,
    BrowserEngine,
    EngineSession,
)


def _node_text(parent: Node, selector: str) -> str:
    node = parent.css_first(selector)
    return node.text(separator=" ", strip=True) if node else ""


def parse_listings(html: str, selectors: ListingSelectors, page_url: str) -> list[RawListing]:
    """Extract listings from static markup with the same rules as the browser script."""

    tree = HTMLParser(html)
    listings: list[RawListing] = []
    for article in tree.css(selectors.record_container):
        job_id = (article.attributes.get("id") or "").replace("article-", "")
        link = article.css_first(selectors.title_link)
        if link is None:
            continue
        title = _node_text(article, selectors.title)
        if not (title and job_id and len(title) > 2):
            continue
        payload = {
            "jobId": job_id,
            "title": title,
            "employer": _node_text(article, selectors.employer) or "Unknown",
            "location": _node_text(article, selectors.location),
            "salaryText": _node_text(article, selectors.salary),
            "postedDate": _node_text(article, selectors.date),
            "lmiaFlag": _node_text(article, selectors.lmia_flag),
            "url": urljoin(page_url, link.attributes.get("href") or ""),
        }
        listings.append(RawListing.from_payload(payload))
    return listings


class HttpSession(EngineSession):
    def __init__(
        self,
        config: BrowserConfig,
        selectors: ListingSelectors,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._selectors = selectors
        self._client = httpx.Client(
            follow_redirects=True,
            headers={"User-Agent": config.user_agent, "Accept-Language": "en-CA,en;q=0.9"},
            transport=transport,
        )

    def _get(self, url: str, timeout_ms: int) -> httpx.Response:
        try:
            response = self._client.get(url, timeout=timeout_ms / 1000)
        except httpx.TimeoutException as exc:
            raise NavigationError(f"Request timeout for {url}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise NavigationError(f"Request failed for {url}: {exc}") from exc
        if response.status_code >= 400:
            raise NavigationError(f"Unexpected status {response.status_code} for {url}")
        return response

    def fetch_listings(
        self, url: str, wait_selector: str, timeout_ms: int, settle_ms: int
    ) -> list[RawListing]:
        response = self._get(url, timeout_ms)
        html = response.text
        if HTMLParser(html).css_first(wait_selector) is None:
            raise NavigationError(
                f"Selector '{wait_selector}' not present on {url}",
                kind=NavigationError.ELEMENT_NOT_FOUND,
            )
        return parse_listings(html, self._selectors, str(response.url))

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
        tree = HTMLParser(self._get(url, timeout_ms).text)
        node = tree.css_first(selector)
        if node is not None:
            text = node.text(separator=" ", strip=True)
            if text:
                return text
        if fallback_selector:
            keyword = (fallback_keyword or "").lower()
            for candidate in tree.css(fallback_selector):
                text = candidate.text(separator=" ", strip=True)
                if text and keyword in text.lower():
                    return text
        raise NavigationError(
            f"Element '{selector}' not found on {url}", kind=NavigationError.ELEMENT_NOT_FOUND
        )

    def close(self) -> None:
        self._client.close()


class HttpEngine(BrowserEngine):
    """Sequential-fetch fallback exposed behind the engine contract."""

    name = "http"

    def __init__(
        self,
        config: BrowserConfig,
        selectors: ListingSelectors,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self.selectors = selectors
        self.transport = transport

    def open_session(self) -> HttpSession:
        return HttpSession(self.config, self.selectors, transport=self.transport)


__all__ = ["HttpEngine", "HttpSession", "parse_listings"]
