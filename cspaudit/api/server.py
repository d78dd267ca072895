# SPDX-License-Identifier: MIT
# -*- coding: utf-8 -*-
"""
HTTP API for the CSP auditor.

Error convention:
- 400 when a required request field is missing,
- 500 when the request as a whole cannot be processed,
- 200 with `status: "error"` when a single page could not be fetched.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import Settings
from ..crawler.batch import run_batch
from ..crawler.browser_engine import BrowserEngine
from ..crawler.fetcher import PageFetcher
from ..crawler.runtime_audit import run_runtime_audit
from ..crawler.sitemap import extract_urls_from_sitemap, sitemap_response
from ..detector.discovery import analyze_page
from ..detector.dom import load_dom
from ..detector.gap_analyzer import analyze_violations
from ..detector.resources import classify
from ..utils.errors import FetchFailure

logger = logging.getLogger(__name__)


# ---------------------------
# Request bodies
# ---------------------------
class PageRequest(BaseModel):
    url: Optional[str] = None


class ViolationsRequest(BaseModel):
    url: Optional[str] = None
    blockedResources: Optional[List[Dict[str, Any]]] = None
    currentCSP: Optional[str] = None


class SitemapRequest(BaseModel):
    sitemapUrl: Optional[str] = None


class UrlsRequest(BaseModel):
    urls: Optional[Any] = None


class ExtractRequest(BaseModel):
    urls: Optional[List[str]] = None
    sitemapUrl: Optional[str] = None


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=dict({"error": message}, **extra))


# endpoints that answer `{success, message}` instead of `{error}`
SUCCESS_SHAPED = ("/api/fetch-sitemap", "/api/extract-csp")


async def invalid_body_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """A missing or malformed body is a client error (400), like a missing field."""
    logger.info("rejected body for %s: %s", request.url.path, exc.errors())
    if request.url.path in SUCCESS_SHAPED:
        return JSONResponse(status_code=400, content={"success": False, "message": "Invalid request body"})
    return _error(400, "Invalid request body")


def default_engine_factory(settings: Settings) -> BrowserEngine:
    return BrowserEngine.from_settings(settings)


def create_app(
    settings: Optional[Settings] = None,
    fetcher: Any = None,
    engine_factory: Optional[Callable[[Settings], Any]] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    app = FastAPI(title="cspaudit")
    app.add_exception_handler(RequestValidationError, invalid_body_handler)
    app.state.settings = settings
    app.state.fetcher = fetcher or PageFetcher(settings)
    app.state.engine_factory = engine_factory or default_engine_factory

    @app.post("/api/analyze-page")
    async def analyze_page_endpoint(body: PageRequest):
        if not body.url:
            return _error(400, "URL is required")
        logger.info("analyzing page: %s", body.url)
        try:
            result = await analyze_page(body.url, app.state.fetcher)
        except Exception:
            logger.exception("analysis failed for %s", body.url)
            return _error(500, "Failed to analyze page", status="error")
        return result.to_dict()

    @app.post("/api/analyze-csp-violations")
    async def analyze_violations_endpoint(body: ViolationsRequest):
        if not body.url:
            return _error(400, "URL is required")
        try:
            page = await app.state.fetcher.fetch(body.url)
            resources = classify(load_dom(page.text), page.text)
            analysis = analyze_violations(body.currentCSP, resources, body.blockedResources)
        except Exception:
            logger.exception("violation analysis failed for %s", body.url)
            return _error(500, "Failed to analyze CSP violations", status="error")
        return {
            "url": body.url,
            "currentCSP": body.currentCSP,
            "externalResources": resources,
            "analysis": analysis,
            "status": "success",
        }

    @app.post("/api/process-sitemap")
    async def process_sitemap_endpoint(body: SitemapRequest):
        if not body.sitemapUrl:
            return _error(400, "Sitemap URL is required")
        logger.info("processing sitemap: %s", body.sitemapUrl)
        try:
            page = await app.state.fetcher.fetch(body.sitemapUrl)
        except FetchFailure as e:
            message = e.message if e.status else "Failed to fetch sitemap"
            return _error(500, message, status="error")
        urls = extract_urls_from_sitemap(page.text)
        return {"urls": urls, "totalUrls": len(urls), "status": "success"}

    @app.post("/api/fetch-sitemap")
    async def fetch_sitemap_endpoint(body: SitemapRequest):
        if not body.sitemapUrl:
            return JSONResponse(status_code=400, content={"success": False, "message": "Sitemap URL is required"})
        try:
            page = await app.state.fetcher.fetch(body.sitemapUrl)
        except FetchFailure as e:
            return {"success": False, "message": e.message}
        return sitemap_response(page.text)

    @app.post("/api/analyze-urls")
    async def analyze_urls_endpoint(body: UrlsRequest):
        if body.urls is None or not isinstance(body.urls, list):
            return _error(400, "URLs array is required")
        urls = [str(u) for u in body.urls]
        logger.info("analyzing %d urls", len(urls))
        run = await run_batch(urls, app.state.fetcher, pacing_ms=settings.batch_pacing_ms, with_analysis=False)
        return {
            "results": [r.to_dict() for r in run.results],
            "totalUrls": len(urls),
            "status": "success",
        }

    @app.post("/api/extract-csp")
    async def extract_csp_endpoint(body: ExtractRequest):
        urls = list(body.urls or [])
        if not urls and not body.sitemapUrl:
            return JSONResponse(status_code=400, content={"success": False, "message": "urls or sitemapUrl is required"})
        try:
            if not urls:
                page = await app.state.fetcher.fetch(body.sitemapUrl)
                urls = extract_urls_from_sitemap(page.text)
            if not urls:
                return {"success": False, "message": "No valid URLs to audit"}
            async with app.state.engine_factory(settings) as engine:
                return await run_runtime_audit(urls, engine, settings)
        except FetchFailure as e:
            return JSONResponse(status_code=500, content={"success": False, "message": e.message})
        except Exception as e:
            logger.exception("runtime audit failed")
            return JSONResponse(status_code=500, content={"success": False, "message": f"Runtime audit failed: {e}"})

    return app


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
