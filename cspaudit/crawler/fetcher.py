# SPDX-License-Identifier: MIT
# -*- coding: utf-8 -*-
"""
PageFetcher: resilient GET with several fetch strategies.

Each strategy sets its own timeout and User-Agent and waits a short
settle delay after a successful response. Strategies are tried in order
with a fixed backoff between attempts; the last failure is raised as a
FetchFailure carrying a user-facing message.
"""
from __future__ import annotations

import asyncio
import logging
import socket
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import aiohttp
from multidict import CIMultiDictProxy

from ..config import Settings
from ..utils.errors import FetchFailure

logger = logging.getLogger(__name__)

UA_CHROME_91 = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
UA_CHROME_120 = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

BROWSER_HEADERS = {
    "Accept": ACCEPT_HTML,
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}


@dataclass
class FetchStrategy:
    name: str
    timeout_ms: int
    settle_ms: int
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class FetchedPage:
    url: str
    status: int
    headers: Dict[str, str]
    text: str


def build_strategies(settings: Settings) -> List[FetchStrategy]:
    if settings.serverless:
        # a single quick attempt keeps a request inside the function time limit
        return [
            FetchStrategy("quick", settings.fetch_timeout_ms, settings.fetch_delay_ms,
                          {"User-Agent": UA_CHROME_120, "Accept": ACCEPT_HTML}),
        ]
    return [
        FetchStrategy("standard", settings.fetch_timeout_ms, settings.fetch_delay_ms,
                      dict(BROWSER_HEADERS, **{"User-Agent": UA_CHROME_91})),
        FetchStrategy("slow-page", settings.fetch_timeout_ms_long, settings.fetch_delay_ms_long,
                      dict(BROWSER_HEADERS, **{"User-Agent": UA_CHROME_91})),
        FetchStrategy("alt-agent", settings.fetch_timeout_ms, settings.fetch_delay_ms,
                      {"User-Agent": UA_CHROME_120, "Accept": ACCEPT_HTML}),
    ]


def _flatten_headers(headers: CIMultiDictProxy[str]) -> Dict[str, str]:
    """Lowercase names; repeated headers are joined with ", " as one field."""
    out: Dict[str, str] = {}
    for name in headers.keys():
        key = name.lower()
        if key not in out:
            out[key] = ", ".join(headers.getall(name))
    return out


def _is_dns_error(exc: BaseException) -> bool:
    dns_cls = getattr(aiohttp, "ClientConnectorDNSError", None)
    if dns_cls is not None and isinstance(exc, dns_cls):
        return True
    os_error = getattr(exc, "os_error", None)
    return isinstance(os_error, socket.gaierror)


def describe_fetch_error(exc: BaseException) -> str:
    """Map a low-level fetch error to the message shown to users."""
    if isinstance(exc, aiohttp.ClientResponseError):
        return f"HTTP {exc.status}: {exc.message}"
    if isinstance(exc, (asyncio.TimeoutError, aiohttp.ServerTimeoutError)):
        return "Request timeout"
    if isinstance(exc, aiohttp.ClientConnectorError):
        if _is_dns_error(exc):
            return "Domain not found"
        if isinstance(getattr(exc, "os_error", None), ConnectionRefusedError):
            return "Connection refused"
    if isinstance(exc, ConnectionRefusedError):
        return "Connection refused"
    if isinstance(exc, socket.gaierror):
        return "Domain not found"
    return "Failed to fetch page"


class PageFetcher:
    def __init__(self, settings: Optional[Settings] = None, strategies: Optional[List[FetchStrategy]] = None):
        self.settings = settings or Settings.from_env()
        self.strategies = strategies or build_strategies(self.settings)

    async def _attempt(self, url: str, strategy: FetchStrategy) -> FetchedPage:
        timeout = aiohttp.ClientTimeout(total=strategy.timeout_ms / 1000.0)
        async with aiohttp.ClientSession(timeout=timeout, headers=strategy.headers) as session:
            async with session.get(url, allow_redirects=True, raise_for_status=True) as resp:
                text = await resp.text(errors="replace")
                headers = _flatten_headers(resp.headers)
                page = FetchedPage(url=str(resp.url), status=resp.status, headers=headers, text=text)
        if strategy.settle_ms > 0:
            await asyncio.sleep(strategy.settle_ms / 1000.0)
        return page

    async def fetch(self, url: str) -> FetchedPage:
        last_exc: Optional[BaseException] = None
        for i, strategy in enumerate(self.strategies):
            try:
                logger.debug("strategy %d (%s) for %s", i + 1, strategy.name, url)
                page = await self._attempt(url, strategy)
                logger.debug("strategy %d succeeded for %s", i + 1, url)
                return page
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
                logger.warning("strategy %d (%s) failed for %s: %s", i + 1, strategy.name, url, e)
                last_exc = e
                if i < len(self.strategies) - 1:
                    await asyncio.sleep(self.settings.retry_backoff_ms / 1000.0)
        status = getattr(last_exc, "status", None)
        raise FetchFailure(describe_fetch_error(last_exc), status=status) from last_exc
