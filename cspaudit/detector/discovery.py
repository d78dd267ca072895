# SPDX-License-Identifier: MIT
# -*- coding: utf-8 -*-
"""
Discovery of the effective CSP of a page.

Sources are tried in order and the first hit wins:
header -> meta tag -> script content -> data attribute -> HTML attribute -> none.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from ..utils.csp import NO_CSP, parse_csp
from ..utils.errors import FetchFailure
from .dom import Dom, load_dom
from .gap_analyzer import analyze, no_csp_analysis
from .resources import classify

logger = logging.getLogger(__name__)

SOURCE_HEADER = "header"
SOURCE_META = "meta tag"
SOURCE_SCRIPT = "script content"
SOURCE_DATA_ATTR = "data attribute"
SOURCE_HTML_ATTR = "HTML attribute"
SOURCE_NONE = "none"

CSP_HEADERS = ("content-security-policy", "content-security-policy-report-only")

SCRIPT_PATTERNS = [
    re.compile(r"Content-Security-Policy[\"\s]*:[\"\s]*([^\"'\n]+)", re.IGNORECASE),
    re.compile(r"CSP[\"\s]*:[\"\s]*([^\"'\n]+)", re.IGNORECASE),
    re.compile(r"security[\"\s]*:[\"\s]*([^\"'\n]+)", re.IGNORECASE),
]

DIRECTIVE_MARKERS = ("script-src", "style-src", "img-src", "font-src", "connect-src")


@dataclass(frozen=True)
class PageAnalysisResult:
    url: str
    status: str
    csp: Optional[str] = None
    source: Optional[str] = None
    analysis: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict[str, Any]:
        if self.status == "error":
            return {"url": self.url, "error": self.error, "csp": None, "status": "error"}
        out: Dict[str, Any] = {"url": self.url, "csp": self.csp, "source": self.source, "status": self.status}
        if self.analysis is not None:
            out["analysis"] = self.analysis
        return out


def failed(url: str, message: str) -> PageAnalysisResult:
    return PageAnalysisResult(url=url, status="error", error=message)


# ---------------------------
# Individual checks
# ---------------------------
def from_headers(headers: Mapping[str, str]) -> Optional[str]:
    lowered = {k.lower(): v for k, v in (headers or {}).items()}
    for name in CSP_HEADERS:
        val = lowered.get(name)
        if val:
            return val
    return None


def from_meta(dom: Dom) -> Optional[str]:
    for el in dom.query_all("meta[http-equiv]"):
        attrs = dom.attributes_of(el)
        if attrs.get("http-equiv", "").strip().lower() == "content-security-policy" and attrs.get("content"):
            return attrs["content"]
    return None


def from_script_content(dom: Dom) -> Optional[str]:
    for el in dom.query_all("script"):
        text = dom.text_of(el)
        if not text:
            continue
        for pattern in SCRIPT_PATTERNS:
            m = pattern.search(text)
            if m and m.group(1).strip():
                return m.group(1).strip()
    return None


def from_data_attribute(dom: Dom) -> Optional[str]:
    for el in dom.query_all("[data-csp], [data-content-security-policy]"):
        attrs = dom.attributes_of(el)
        val = attrs.get("data-csp") or attrs.get("data-content-security-policy")
        if val:
            return val
    return None


def from_any_attribute(dom: Dom) -> Optional[str]:
    for el in dom.query_all("*"):
        for val in dom.attributes_of(el).values():
            if val and any(marker in val for marker in DIRECTIVE_MARKERS):
                return val
    return None


def detect_csp(headers: Mapping[str, str], dom: Dom) -> Tuple[Optional[str], str]:
    """Return (policy, source label); policy is None when nothing was found."""
    csp = from_headers(headers)
    if csp:
        return csp, SOURCE_HEADER
    for check, source in (
        (from_meta, SOURCE_META),
        (from_script_content, SOURCE_SCRIPT),
        (from_data_attribute, SOURCE_DATA_ATTR),
        (from_any_attribute, SOURCE_HTML_ATTR),
    ):
        csp = check(dom)
        if csp:
            return csp, source
    return None, SOURCE_NONE


def analyze_document(url: str, headers: Mapping[str, str], html: str, with_analysis: bool = True) -> PageAnalysisResult:
    dom = load_dom(html)
    csp, source = detect_csp(headers, dom)
    if csp is None:
        return PageAnalysisResult(
            url=url, status="success", csp=NO_CSP, source=SOURCE_NONE,
            analysis=no_csp_analysis() if with_analysis else None,
        )
    analysis = None
    if with_analysis:
        analysis = analyze(parse_csp(csp), classify(dom, html), csp)
    return PageAnalysisResult(url=url, status="success", csp=csp, source=source, analysis=analysis)


async def analyze_page(url: str, fetcher: Any, with_analysis: bool = True) -> PageAnalysisResult:
    """Fetch a page, locate its CSP and analyze it. Fetch failures become error results."""
    try:
        page = await fetcher.fetch(url)
    except FetchFailure as e:
        logger.warning("fetch failed for %s: %s", url, e.message)
        return failed(url, e.message)
    result = analyze_document(url, page.headers, page.text, with_analysis=with_analysis)
    logger.info("%s -> %s", url, result.source)
    return result
