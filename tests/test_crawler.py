import contextlib

import pytest

from site_rag_server.ingestion.crawler import (
    SiteCrawler,
    extract_links,
    extract_text,
    is_crawlable_link,
)

ROOT = "https://example.com/"
BODY = "<p>" + "Plenty of readable page content for indexing. " * 3 + "</p>"


def page_html(links=(), body=BODY):
    anchors = "".join(f'<a href="{href}">link</a>' for href in links)
    return f"<html><head><title>T</title></head><body>{body}{anchors}</body></html>"


class FakePage:
    def __init__(self, site):
        self.site = site
        self.url = None
        self._html = ""
        self.visits = []

    async def set_extra_http_headers(self, headers):
        self.headers = headers

    async def goto(self, url, wait_until=None, timeout=None):
        self.visits.append(url)
        html = self.site.get(url)
        if html is None:
            raise RuntimeError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        self.url = url
        self._html = html

    async def wait_for_selector(self, selector, timeout=None):
        return None

    async def title(self):
        return "Example"

    async def content(self):
        return self._html

    async def close(self):
        pass


class FakeBrowser:
    def __init__(self, site):
        self.site = site
        self.pages = []

    async def new_page(self, user_agent=None):
        page = FakePage(self.site)
        self.pages.append(page)
        return page


def make_crawler(site):
    browser = FakeBrowser(site)

    @contextlib.asynccontextmanager
    async def factory():
        yield browser

    crawler = SiteCrawler(browser_factory=factory, min_content_length=50, settle_delay=0)
    return crawler, browser


def visited_urls(browser):
    return [url for page in browser.pages for url in page.visits]


# ---------------------------------------------------------------------
# HTML helpers
# ---------------------------------------------------------------------

def test_extract_text_drops_scripts_and_styles():
    html = "<html><body><script>var x = 1;</script><style>p{}</style><p>Hello &amp; welcome</p></body></html>"
    assert extract_text(html) == "Hello & welcome"


def test_extract_links_resolves_and_filters():
    html = page_html(["/about#team", "contact", "mailto:a@example.com", "#top", "javascript:void(0)"])
    links = extract_links(html, "https://example.com/docs/")
    assert links == ["https://example.com/about", "https://example.com/docs/contact"]


@pytest.mark.parametrize(
    "link, expected",
    [
        ("https://example.com/pricing", True),
        ("https://other.com/pricing", False),
        ("https://example.com/brochure.pdf", False),
        ("https://example.com/logo.PNG", False),
        ("ftp://example.com/file", False),
    ],
)
def test_is_crawlable_link(link, expected):
    assert is_crawlable_link(link, "example.com", same_host_only=True) is expected


# ---------------------------------------------------------------------
# Crawl behaviour
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_page_budget_caps_results():
    children = [f"https://example.com/page-{i}" for i in range(20)]
    site = {ROOT: page_html(children)}
    site.update({url: page_html() for url in children})
    crawler, browser = make_crawler(site)

    pages = await crawler.crawl(ROOT, max_pages=5, concurrency=3)

    assert 1 <= len(pages) <= 5
    assert pages[0].url == ROOT
    visited = visited_urls(browser)
    assert len(visited) >= 5
    assert len(visited) == len(set(visited))


@pytest.mark.asyncio
async def test_failing_root_yields_no_pages():
    crawler, _ = make_crawler({})
    assert await crawler.crawl(ROOT, max_pages=10) == []


@pytest.mark.asyncio
async def test_failed_page_does_not_abort_crawl():
    site = {
        ROOT: page_html(["https://example.com/broken", "https://example.com/ok"]),
        "https://example.com/ok": page_html(),
    }
    crawler, _ = make_crawler(site)

    pages = await crawler.crawl(ROOT, max_pages=10)

    assert [p.url for p in pages] == [ROOT, "https://example.com/ok"]


@pytest.mark.asyncio
async def test_short_page_is_skipped_but_its_links_are_followed():
    site = {
        ROOT: page_html(["https://example.com/hub"]),
        "https://example.com/hub": page_html(["https://example.com/deep"], body="<p>tiny</p>"),
        "https://example.com/deep": page_html(),
    }
    crawler, _ = make_crawler(site)

    pages = await crawler.crawl(ROOT, max_pages=10)

    urls = [p.url for p in pages]
    assert "https://example.com/hub" not in urls
    assert "https://example.com/deep" in urls


@pytest.mark.asyncio
async def test_other_hosts_and_assets_are_not_followed():
    site = {
        ROOT: page_html([
            "https://other.com/page",
            "https://example.com/file.zip",
            "https://example.com/team",
        ]),
        "https://example.com/team": page_html(),
        "https://other.com/page": page_html(),
    }
    crawler, browser = make_crawler(site)

    await crawler.crawl(ROOT, max_pages=10)

    visited = visited_urls(browser)
    assert "https://other.com/page" not in visited
    assert "https://example.com/file.zip" not in visited
    assert "https://example.com/team" in visited


@pytest.mark.asyncio
async def test_page_pool_matches_concurrency():
    crawler, browser = make_crawler({ROOT: page_html()})
    await crawler.crawl(ROOT, max_pages=3, concurrency=4)
    assert len(browser.pages) == 4
