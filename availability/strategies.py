"""Site-restricted search strategies used as the availability fallback chain."""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urljoin, urlparse

from bs4 import BeautifulSoup
import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core import SearchHit


logger = logging.getLogger(__name__)

_DDG_BASE = "https://duckduckgo.com"
_DDG_RESULT_SELECTOR = "a.result__a, a.result__url, h2.result__title a"
_DDG_SNIPPET_SELECTOR = ".result__snippet, .result__extras__url"
_DDG_RESULT_CONTAINERS = ["result", "web-result", "result__body"]


async def _http_get_json(url: str, *, params: Optional[Dict[str, Any]] = None, headers=None, timeout: float = 12.0) -> Any:
    async with httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True) as client:
        response = await client.get(url, params=params, headers=headers)
        response.raise_for_status()
        return response.json()


async def _http_get_text(url: str, *, params: Optional[Dict[str, Any]] = None, headers=None, timeout: float = 12.0) -> str:
    async with httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True) as client:
        response = await client.get(url, params=params, headers=headers)
        response.raise_for_status()
        return str(response.text or "")


def site_query(query: str, domain: str) -> str:
    return f"{query} site:{domain}".strip()


class SearchStrategy(ABC):
    """One layer of the fallback chain: site-restricted search for a single domain."""

    name: str = "strategy"

    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def search(self, query: str, domain: str, limit: int = 5) -> List[SearchHit]:
        """
        Search ``query`` restricted to ``domain``.

        Returns at most ``limit`` hits. Raises on provider failure so the
        caller can move on to the next strategy.
        """


@retry(
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)
async def _fetch_search_api(url: str, params: Dict[str, Any], timeout: float) -> Any:
    return await _http_get_json(url, params=params, headers={"Accept": "application/json"}, timeout=timeout)


class SearxSearchStrategy(SearchStrategy):
    """Search-provider client for a SearXNG-compatible JSON API."""

    name = "search_api"

    def __init__(self, api_url: Optional[str] = None, *, timeout: float = 12.0) -> None:
        self.api_url = str(api_url or "").strip()
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.api_url)

    async def search(self, query: str, domain: str, limit: int = 5) -> List[SearchHit]:
        params = {"q": site_query(query, domain), "format": "json", "language": "en-US"}
        payload = await _fetch_search_api(self.api_url, params, self.timeout)
        rows = payload.get("results") if isinstance(payload, dict) else None
        hits: List[SearchHit] = []
        for row in list(rows or []):
            if not isinstance(row, dict):
                continue
            url = str(row.get("url") or "").strip()
            if not url:
                continue
            hits.append(
                SearchHit(
                    title=str(row.get("title") or "").strip(),
                    url=url,
                    snippet=str(row.get("content") or "").strip(),
                )
            )
            if len(hits) >= limit:
                break
        return hits


def decode_duck_link(href: str) -> str:
    """Unwrap DuckDuckGo ``/l/?uddg=<target>`` redirect links."""
    raw = str(href or "").strip()
    if not raw:
        return ""
    try:
        absolute = urljoin(_DDG_BASE, raw)
        redirect = parse_qs(urlparse(absolute).query).get("uddg")
    except ValueError:
        return raw
    if redirect and redirect[0]:
        return redirect[0]
    return raw


def parse_duckduckgo_html(html: str, limit: int = 5) -> List[SearchHit]:
    soup = BeautifulSoup(html or "", "lxml")
    hits: List[SearchHit] = []
    seen = set()
    for anchor in soup.select(_DDG_RESULT_SELECTOR):
        if len(hits) >= limit:
            break
        url = decode_duck_link(anchor.get("href") or "")
        if not url or url in seen:
            continue
        seen.add(url)
        snippet = ""
        container = anchor.find_parent(class_=_DDG_RESULT_CONTAINERS)
        if container is not None:
            node = container.select_one(_DDG_SNIPPET_SELECTOR)
            if node is not None:
                snippet = node.get_text(" ", strip=True)
        hits.append(SearchHit(title=anchor.get_text(" ", strip=True), url=url, snippet=snippet))
    return hits[:limit]


class DuckDuckGoHtmlStrategy(SearchStrategy):
    """Scrape the DuckDuckGo HTML results page (no JS/cookie flow)."""

    name = "html_search"

    def __init__(
        self,
        url: str = "https://html.duckduckgo.com/html/",
        *,
        user_agent: str = "Mozilla/5.0",
        timeout: float = 12.0,
    ) -> None:
        self.url = url
        self.user_agent = user_agent
        self.timeout = timeout

    async def search(self, query: str, domain: str, limit: int = 5) -> List[SearchHit]:
        headers = {
            "User-Agent": self.user_agent,
            "Accept-Language": "en-US,en;q=0.9",
            "Referer": f"{_DDG_BASE}/",
        }
        params = {"q": site_query(query, domain), "kl": "en-us", "ia": "web"}
        html = await _http_get_text(self.url, params=params, headers=headers, timeout=self.timeout)
        hits = parse_duckduckgo_html(html, limit=limit)
        logger.debug("html_search domain=%s results=%s", domain, len(hits))
        return hits
