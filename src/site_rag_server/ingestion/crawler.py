"""
Site Crawler

Bounded breadth-first crawler that renders pages in headless Chromium
(Playwright) and extracts title, visible text and outgoing links.

Resource Model
--------------
- One browser per crawl run.
- A fixed pool of ``concurrency`` browser pages, handed out through an
  ``asyncio.Queue`` and reused round-robin across batches.
- The queue of URLs and the visited set belong to the coroutine running
  ``crawl``. Page workers only return a ``PageVisit``; they never touch the
  frontier.
- Batches are strictly synchronized: the next batch is not dequeued until
  every page of the current one has finished or failed.

Failures are page-scoped. A page that times out or errors is logged and
simply absent from the results; there are no retries within a run.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Deque, List, Optional, Set
from urllib.parse import urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup

from ..config import settings

logger = logging.getLogger("rag.crawler")


USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

EXTRA_HEADERS = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
}

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
]

MAIN_CONTENT_SELECTOR = 'main, #__next, [role="main"], article'

ASSET_EXTENSION_RE = re.compile(
    r"\.(pdf|jpe?g|png|gif|svg|webp|ico|zip|exe|dmg|mp4|mp3|css|js)$",
    re.IGNORECASE,
)

SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:")


# ---------------------------------------------------------------------
# Data Models
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class CrawledPage:
    """A successfully fetched page with enough text to be worth indexing."""
    url: str
    title: str
    raw_content: str


@dataclass
class PageVisit:
    """What a page worker reports back to the crawl loop."""
    url: str
    page: Optional[CrawledPage] = None
    links: List[str] = field(default_factory=list)
    error: Optional[str] = None


# ---------------------------------------------------------------------
# HTML Extraction
# ---------------------------------------------------------------------

def extract_text(html: str) -> str:
    """
    Return the visible text of an HTML document with whitespace collapsed.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    text = soup.get_text(" ")
    return re.sub(r"\s+", " ", text).strip()


def extract_links(html: str, base_url: str) -> List[str]:
    """
    Return absolute, fragment-free URLs of every anchor in the document.
    """
    soup = BeautifulSoup(html, "html.parser")
    links: List[str] = []

    for anchor in soup.select("a[href]"):
        href = (anchor.get("href") or "").strip()
        if not href or href.startswith("#") or href.lower().startswith(SKIPPED_SCHEMES):
            continue
        absolute, _ = urldefrag(urljoin(base_url, href))
        links.append(absolute)

    return links


def is_crawlable_link(link: str, root_host: str, same_host_only: bool) -> bool:
    """
    Check scheme, host and extension rules for a candidate link.
    """
    try:
        parsed = urlparse(link)
    except ValueError:
        return False

    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False

    if same_host_only and parsed.netloc != root_host:
        return False

    if ASSET_EXTENSION_RE.search(parsed.path):
        return False

    return True


# ---------------------------------------------------------------------
# Browser Page Pool
# ---------------------------------------------------------------------

class PagePool:
    """
    Fixed-size pool of reusable browser pages.

    Pages are handed out in FIFO order, so consecutive batches cycle through
    the pool round-robin.
    """

    def __init__(self, pages: List[Any]) -> None:
        if not pages:
            raise ValueError("PagePool requires at least one page.")
        self._pages = list(pages)
        self._available: asyncio.Queue = asyncio.Queue()
        for page in self._pages:
            self._available.put_nowait(page)

    def __len__(self) -> int:
        return len(self._pages)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Any]:
        page = await self._available.get()
        try:
            yield page
        finally:
            self._available.put_nowait(page)

    async def close(self) -> None:
        for page in self._pages:
            try:
                await page.close()
            except Exception:
                logger.debug("Ignoring error while closing browser page", exc_info=True)


@asynccontextmanager
async def launch_chromium() -> AsyncIterator[Any]:
    """
    Launch a headless Chromium browser through Playwright.
    """
    from playwright.async_api import async_playwright

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=True, args=BROWSER_ARGS)
        try:
            yield browser
        finally:
            await browser.close()


BrowserFactory = Callable[[], Any]


# ---------------------------------------------------------------------
# Crawler
# ---------------------------------------------------------------------

class SiteCrawler:
    """
    Breadth-first site crawler with a bounded page budget.

    Parameters
    ----------
    browser_factory : Optional[BrowserFactory]
        Zero-argument callable returning an async context manager that yields
        a browser exposing ``new_page()``. Defaults to headless Chromium.
    min_content_length : Optional[int]
        Pages with less extracted text are dropped from the results
        (their links are still followed).
    settle_delay : Optional[float]
        Seconds to wait after load for client-side rendering to finish.
    """

    def __init__(
        self,
        browser_factory: Optional[BrowserFactory] = None,
        min_content_length: Optional[int] = None,
        settle_delay: Optional[float] = None,
    ) -> None:
        self._browser_factory = browser_factory or launch_chromium
        self.min_content_length = (
            settings.crawl_min_content_length
            if min_content_length is None
            else min_content_length
        )
        self.settle_delay = (
            settings.crawl_settle_delay if settle_delay is None else settle_delay
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def crawl(
        self,
        root_url: str,
        max_pages: int = 100,
        same_host_only: bool = True,
        concurrency: int = 5,
        page_timeout: float = 45.0,
    ) -> List[CrawledPage]:
        """
        Crawl a site breadth-first starting from ``root_url``.

        Parameters
        ----------
        root_url : str
            Seed URL. Its host defines "same host".
        max_pages : int
            Page budget. Bounds both results and the visited+queued frontier.
        same_host_only : bool
            Only follow links on the root's host.
        concurrency : int
            Batch size and browser page pool size.
        page_timeout : float
            Navigation timeout per page, in seconds.

        Returns
        -------
        List[CrawledPage]
            Pages with usable content, in visit order. May be empty (for
            example when the root itself fails); that is not an error.
        """
        if max_pages <= 0:
            return []

        concurrency = max(1, concurrency)
        root_host = urlparse(root_url).netloc

        visited: Set[str] = set()
        queue: Deque[str] = deque([root_url])
        queued: Set[str] = {root_url}
        results: List[CrawledPage] = []

        logger.info(
            "Starting crawl of %s (max_pages=%d, concurrency=%d)",
            root_url,
            max_pages,
            concurrency,
        )

        async with self._browser_factory() as browser:
            pool = await self._open_pool(browser, concurrency)
            try:
                while queue and len(results) < max_pages:
                    batch: List[str] = []
                    while queue and len(batch) < concurrency:
                        url = queue.popleft()
                        queued.discard(url)
                        if url in visited:
                            continue
                        visited.add(url)
                        batch.append(url)

                    if not batch:
                        continue

                    visits = await asyncio.gather(
                        *(self._visit(pool, url, page_timeout) for url in batch)
                    )

                    for visit in visits:
                        if visit.page is not None and len(results) < max_pages:
                            results.append(visit.page)

                        for link in visit.links:
                            if len(visited) + len(queue) >= max_pages:
                                break
                            if link in visited or link in queued:
                                continue
                            if not is_crawlable_link(link, root_host, same_host_only):
                                continue
                            queue.append(link)
                            queued.add(link)

                    logger.info(
                        "Crawl progress: %d/%d pages | queue=%d | visited=%d",
                        len(results),
                        max_pages,
                        len(queue),
                        len(visited),
                    )
            finally:
                await pool.close()

        logger.info("Crawl complete: %d pages from %s", len(results), root_url)
        return results

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _open_pool(self, browser: Any, size: int) -> PagePool:
        pages = []
        for _ in range(size):
            page = await browser.new_page(user_agent=USER_AGENT)
            await page.set_extra_http_headers(EXTRA_HEADERS)
            pages.append(page)
        return PagePool(pages)

    async def _visit(self, pool: PagePool, url: str, page_timeout: float) -> PageVisit:
        """
        Fetch one URL on a pooled page. Never raises.
        """
        async with pool.acquire() as page:
            try:
                # Hard guard on top of Playwright's own navigation timeout.
                guard = page_timeout * 2 + self.settle_delay + 15
                return await asyncio.wait_for(
                    self._render(page, url, page_timeout),
                    timeout=guard,
                )
            except Exception as exc:
                logger.warning(
                    "Failed to crawl %s (%s): %s",
                    url,
                    type(exc).__name__,
                    exc,
                )
                return PageVisit(url=url, error=f"{type(exc).__name__}: {exc}")

    async def _render(self, page: Any, url: str, page_timeout: float) -> PageVisit:
        timeout_ms = int(page_timeout * 1000)

        logger.debug("Fetching %s", url)
        await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
        await page.wait_for_selector("body", timeout=10000)

        if self.settle_delay > 0:
            await asyncio.sleep(self.settle_delay)

        try:
            await page.wait_for_selector(MAIN_CONTENT_SELECTOR, timeout=5000)
        except Exception:
            logger.debug("No main content container on %s, continuing", url)

        title = (await page.title()) or ""
        html = await page.content()

        # Resolve relative links against the post-redirect location.
        base_url = getattr(page, "url", None) or url

        text = extract_text(html)
        links = extract_links(html, base_url)

        logger.debug(
            "Fetched %s: title=%r, %d chars, %d links",
            url,
            title,
            len(text),
            len(links),
        )

        if len(text) <= self.min_content_length:
            logger.info("Content too short on %s (%d chars), skipping", url, len(text))
            return PageVisit(url=url, links=links)

        return PageVisit(
            url=url,
            page=CrawledPage(url=url, title=title.strip(), raw_content=text),
            links=links,
        )
