"""
Sequential multi-URL audit.

URLs are processed one at a time with a small pacing delay between them;
one URL failing never aborts the run.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from ..detector.discovery import PageAnalysisResult, analyze_page, failed
from .sitemap import is_valid_url

logger = logging.getLogger(__name__)

ProgressCallback = Callable[["AuditRun", str], None]


@dataclass
class AuditRun:
    urls: List[str] = field(default_factory=list)
    results: List[PageAnalysisResult] = field(default_factory=list)
    current_index: int = 0
    total_urls: int = 0
    start_time: float = field(default_factory=time.monotonic)

    def __post_init__(self):
        self.total_urls = len(self.urls)

    def reset(self) -> None:
        self.urls = []
        self.results = []
        self.current_index = 0
        self.total_urls = 0
        self.start_time = time.monotonic()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def estimated_remaining(self) -> float:
        """Seconds left, extrapolated from the average time per processed URL."""
        if not self.current_index:
            return 0.0
        per_url = self.elapsed / self.current_index
        return per_url * (self.total_urls - self.current_index)

    @property
    def succeeded(self) -> List[PageAnalysisResult]:
        return [r for r in self.results if r.ok]

    @property
    def errors(self) -> List[PageAnalysisResult]:
        return [r for r in self.results if not r.ok]


def parse_url_list(text: str) -> List[str]:
    """Split comma/newline separated input and keep only absolute URLs."""
    out = []
    for chunk in text.replace(",", "\n").splitlines():
        u = chunk.strip()
        if u and is_valid_url(u):
            out.append(u)
    return out


async def run_batch(
    urls: List[str],
    fetcher: Any,
    pacing_ms: int = 100,
    with_analysis: bool = True,
    on_progress: Optional[ProgressCallback] = None,
    cancel: Optional[asyncio.Event] = None,
) -> AuditRun:
    run = AuditRun(urls=list(urls))
    for i, url in enumerate(run.urls):
        if cancel is not None and cancel.is_set():
            logger.info("run cancelled after %d/%d urls", i, run.total_urls)
            break
        run.current_index = i + 1
        if on_progress:
            on_progress(run, url)
        logger.info("processing %d/%d: %s", run.current_index, run.total_urls, url)
        try:
            result = await analyze_page(url, fetcher, with_analysis=with_analysis)
        except Exception as e:  # isolate the item, keep the batch going
            logger.exception("unexpected failure on %s", url)
            result = failed(url, f"Failed to analyze page: {e}")
        run.results.append(result)
        if pacing_ms > 0 and i < run.total_urls - 1:
            await asyncio.sleep(pacing_ms / 1000.0)
    return run
