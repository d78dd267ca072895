# SPDX-License-Identifier: MIT
# -*- coding: utf-8 -*-
"""
External resource extraction.

Two independent passes:
- structural: tags that load resources (script/link/img) with absolute http(s) URLs.
- heuristic: URLs mentioned inside inline <script> text. Best effort only,
  it both over- and under-matches and is kept apart from the structural pass.
"""
from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlparse

from .dom import Dom, load_dom

ResourceMap = Dict[str, List[str]]

# category key -> directive it is governed by
CATEGORY_DIRECTIVES = {
    "scripts": "script-src",
    "styles": "style-src",
    "images": "img-src",
    "fonts": "font-src",
    "connections": "connect-src",
}

URL_IN_SCRIPT = re.compile(r"https?://[^\s\"']+")

IMAGE_EXTS = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico", ".avif")
FONT_EXTS = (".woff", ".woff2", ".ttf", ".otf", ".eot")


def empty_resources() -> ResourceMap:
    return {"scripts": [], "styles": [], "images": [], "fonts": []}


def _collect(dom: Dom, selector: str, attr: str) -> List[str]:
    out: List[str] = []
    for el in dom.query_all(selector):
        val = dom.attributes_of(el).get(attr, "")
        if val and val.startswith("http"):
            out.append(val)
    return out


def extract_structural(dom: Dom) -> ResourceMap:
    res = empty_resources()
    res["scripts"] = _collect(dom, "script[src]", "src")
    res["styles"] = _collect(dom, 'link[rel="stylesheet"]', "href")
    res["images"] = _collect(dom, "img[src]", "src")
    res["fonts"] = _collect(dom, 'link[rel="preload"][as="font"], link[rel="font"]', "href")
    return res


def inline_script_texts(dom: Dom) -> List[str]:
    return [dom.text_of(el) for el in dom.query_all("script")]


def scan_inline_script_urls(texts: Iterable[str]) -> ResourceMap:
    """Bucket URLs found in script text: `.js`, `/js/` -> scripts; `.css`, `/css/` -> styles."""
    found: ResourceMap = {"scripts": [], "styles": []}
    blob = " ".join(t for t in texts if t)
    for url in URL_IN_SCRIPT.findall(blob):
        if ".js" in url or "/js/" in url:
            found["scripts"].append(url)
        elif ".css" in url or "/css/" in url:
            found["styles"].append(url)
    return found


def classify(dom: Dom, raw_html: Optional[str] = None) -> ResourceMap:
    """
    Extract external resources per category. Lists keep DOM order and may
    contain duplicates; de-duplication happens in the gap analyzer.
    """
    if dom is None:
        dom = load_dom(raw_html or "")
    res = extract_structural(dom)
    dynamic = scan_inline_script_urls(inline_script_texts(dom))
    res["scripts"].extend(dynamic["scripts"])
    res["styles"].extend(dynamic["styles"])
    return res


def classify_blocked_url(url: str) -> Optional[Dict[str, str]]:
    """Guess type and directive of a manually reported blocked URL."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if not parsed.scheme or not parsed.hostname:
        return None
    path = parsed.path.lower()
    rtype = "script"
    if ".css" in path or "/css/" in path:
        rtype = "style"
    elif ".js" in path or "/js/" in path:
        rtype = "script"
    elif any(ext in path for ext in IMAGE_EXTS):
        rtype = "image"
    elif any(ext in path for ext in FONT_EXTS):
        rtype = "font"
    directive = {"script": "script-src", "style": "style-src", "image": "img-src", "font": "font-src"}[rtype]
    return {
        "type": rtype,
        "url": url,
        "directive": directive,
        "recommendation": f"Add {parsed.hostname} to {directive} directive",
        "hostname": parsed.hostname,
    }


def recommend_for_blocked(resources: Iterable[Dict[str, str]]) -> List[str]:
    groups: Dict[str, List[str]] = {}
    for r in resources:
        hosts = groups.setdefault(r["directive"], [])
        if r["hostname"] not in hosts:
            hosts.append(r["hostname"])
    recs = [f"Update {d} to include: {' '.join('https://' + h for h in hosts)}" for d, hosts in groups.items()]
    if recs:
        recs.append(
            "These blocked resources indicate missing domains in your CSP configuration. "
            "Update your CDN CSP rules accordingly."
        )
    return recs
