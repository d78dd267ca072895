# cspaudit/crawler/browser_engine.py
# SPDX-License-Identifier: MIT
# -*- coding: utf-8 -*-
"""
Playwright-driven observer for the runtime CSP audit.

One Chromium context per audit, one fresh page per URL. For each page we keep:
- the CSP response headers of the main navigation,
- console messages that report a CSP violation,
- the hosts of every resource the page loaded, bucketed by directive.
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from playwright.async_api import Browser, BrowserContext, ConsoleMessage, Page, Playwright, async_playwright

from ..config import Settings
from ..detector.discovery import CSP_HEADERS
from ..detector.runtime_probe import bucket_resource_entries, collect_resource_entries, is_csp_console_error

logger = logging.getLogger(__name__)

DESKTOP_CHROME_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"


@dataclass
class RuntimeObservation:
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    csp_errors: List[str] = field(default_factory=list)
    origins_by_directive: Dict[str, Set[str]] = field(default_factory=dict)
    error: Optional[str] = None


class BrowserEngine:
    def __init__(
        self,
        headless: bool = True,
        timeout_ms: int = 30000,
        settle_ms: int = 1000,
        pacing_ms: int = 0,
        jitter: float = 0.0,  # fraction of pacing_ms, e.g. 0.2
        user_agent: str = DESKTOP_CHROME_UA,
    ):
        self.headless = headless
        self.timeout_ms = timeout_ms
        self.settle_ms = settle_ms
        self.pacing_ms = pacing_ms
        self.jitter = jitter
        self.user_agent = user_agent

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    @classmethod
    def from_settings(cls, settings: Settings, headless: bool = True) -> "BrowserEngine":
        return cls(headless=headless, timeout_ms=settings.runtime_nav_timeout_ms,
                   pacing_ms=settings.batch_pacing_ms)

    # ---------------------------
    # Lifecycle
    # ---------------------------
    async def __aenter__(self) -> "BrowserEngine":
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.headless)
        self._context = await self._browser.new_context(user_agent=self.user_agent, ignore_https_errors=True)
        logger.debug("chromium started (headless=%s)", self.headless)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if self._context is not None:
                await self._context.close()
            if self._browser is not None:
                await self._browser.close()
        finally:
            if self._playwright is not None:
                await self._playwright.stop()
            self._context = self._browser = self._playwright = None

    async def _pause_between_pages(self) -> None:
        if self.pacing_ms <= 0:
            return
        spread = self.pacing_ms * self.jitter
        await asyncio.sleep(max(0.0, self.pacing_ms + random.uniform(-spread, spread)) / 1000.0)

    # ---------------------------
    # Observation
    # ---------------------------
    async def _record(self, page: Page, url: str, obs: RuntimeObservation) -> None:
        response = await page.goto(url, wait_until="load")
        if response is not None:
            obs.headers = {
                name: value for name, value in (await response.all_headers()).items()
                if name.lower() in CSP_HEADERS
            }
        if self.settle_ms > 0:
            # late scripts and XHRs show up in Resource Timing only after load
            await page.wait_for_timeout(self.settle_ms)
        entries = await collect_resource_entries(page)
        obs.origins_by_directive = bucket_resource_entries(entries, page_url=page.url or url)

    async def observe(self, url: str) -> RuntimeObservation:
        """
        Load `url` and report what it did. Navigation and evaluation errors
        are stored on the observation instead of being raised.
        """
        if self._context is None:
            raise RuntimeError("BrowserEngine must be used as an async context manager")

        obs = RuntimeObservation(url=url)
        page = await self._context.new_page()
        page.set_default_timeout(self.timeout_ms)
        page.on("console", lambda msg: self._on_console(msg, obs))
        try:
            await self._record(page, url, obs)
        except Exception as e:
            logger.warning("runtime observation failed for %s: %s", url, e)
            obs.error = str(e)
        finally:
            await page.close()
        await self._pause_between_pages()
        return obs

    @staticmethod
    def _on_console(msg: ConsoleMessage, obs: RuntimeObservation) -> None:
        if is_csp_console_error(msg.text):
            obs.csp_errors.append(msg.text)
