from typing import Any, Dict, Iterable, List, Mapping, Optional, Set
from urllib.parse import urlparse

from playwright.async_api import Page

from ..utils.csp import RUNTIME_DIRECTIVES

RESOURCE_ENTRIES_SCRIPT = '''
() => {
  try {
    return performance.getEntriesByType('resource').map(e => ({
      name: String(e.name || ''),
      initiatorType: String(e.initiatorType || '')
    }));
  } catch (e) {
    return [];
  }
}
'''

CSP_CONSOLE_MARKER = "content security policy"

INITIATOR_DIRECTIVES = {
    "script": "script-src",
    "link": "style-src",
    "css": "style-src",
    "img": "img-src",
    "image": "img-src",
    "input": "img-src",
    "xmlhttprequest": "connect-src",
    "fetch": "connect-src",
    "beacon": "connect-src",
    "eventsource": "connect-src",
    "video": "media-src",
    "audio": "media-src",
    "track": "media-src",
    "iframe": "frame-src",
    "frame": "frame-src",
    "object": "object-src",
    "embed": "object-src",
}

FONT_EXTS = (".woff", ".woff2", ".ttf", ".otf", ".eot")
IMAGE_EXTS = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico", ".avif")


def directive_for_entry(name: str, initiator_type: str) -> Optional[str]:
    path = urlparse(name).path.lower()
    # fonts and background images are initiated by stylesheets
    if path.endswith(FONT_EXTS):
        return "font-src"
    if initiator_type in ("css", "link") and path.endswith(IMAGE_EXTS):
        return "img-src"
    return INITIATOR_DIRECTIVES.get(initiator_type)


def bucket_resource_entries(entries: Iterable[Mapping[str, Any]], page_url: str = "") -> Dict[str, Set[str]]:
    """
    Group observed resource hosts by the directive that governs them.
    Non-http(s) entries and entries from the page's own host are skipped.
    """
    page_host = urlparse(page_url).hostname if page_url else None
    out: Dict[str, Set[str]] = {d: set() for d in RUNTIME_DIRECTIVES}
    for e in entries:
        name = str(e.get("name") or "")
        try:
            parsed = urlparse(name)
        except ValueError:
            continue
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            continue
        if parsed.hostname == page_host:
            continue
        directive = directive_for_entry(name, str(e.get("initiatorType") or "").lower())
        if directive:
            out[directive].add(parsed.hostname)
    return out


def is_csp_console_error(text: str) -> bool:
    return CSP_CONSOLE_MARKER in (text or "").lower()


async def collect_resource_entries(page: Page) -> List[Dict[str, str]]:
    return await page.evaluate(RESOURCE_ENTRIES_SCRIPT)
