import pytest

from cspaudit.config import Settings
from cspaudit.crawler.fetcher import FetchedPage
from cspaudit.utils.errors import FetchFailure


class FakeFetcher:
    """Serves canned pages; a FetchFailure value is raised instead of returned."""

    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    async def fetch(self, url):
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None:
            raise FetchFailure("Domain not found")
        if isinstance(page, Exception):
            raise page
        return page


def make_page(url, html="", headers=None, status=200):
    return FetchedPage(url=url, status=status, headers=headers or {}, text=html)


@pytest.fixture
def fast_settings():
    return Settings(
        fetch_timeout_ms=1000,
        fetch_timeout_ms_long=1000,
        fetch_delay_ms=0,
        fetch_delay_ms_long=0,
        retry_backoff_ms=0,
        batch_pacing_ms=0,
        runtime_max_urls=2,
    )
