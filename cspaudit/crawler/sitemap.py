import logging
import re
from typing import Any, Dict, List
from urllib.parse import urlparse

from lxml import etree

from ..utils.errors import ParseFailure

logger = logging.getLogger(__name__)

LOC_RE = re.compile(r"<loc>(.*?)</loc>", re.DOTALL)


def is_valid_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc or parsed.path) and " " not in value


def extract_urls_from_sitemap(xml_text: str) -> List[str]:
    """Collect `<loc>` values with a plain regex; invalid URLs are dropped."""
    urls = []
    for m in LOC_RE.finditer(xml_text or ""):
        url = m.group(1).strip()
        if url and is_valid_url(url):
            urls.append(url)
    return urls


def parse_sitemap(xml_text: str) -> List[str]:
    """
    Strict variant: parse the document as XML and read every `loc` element
    (namespaced or not). Raises ParseFailure on malformed XML.
    """
    try:
        root = etree.fromstring((xml_text or "").encode("utf-8"), parser=etree.XMLParser(resolve_entities=False))
    except etree.XMLSyntaxError as e:
        raise ParseFailure(f"Invalid sitemap XML: {e}") from e
    urls = []
    for el in root.iter():
        if not isinstance(el.tag, str) or etree.QName(el).localname != "loc":
            continue
        url = (el.text or "").strip()
        if url and is_valid_url(url):
            urls.append(url)
    return urls


def sitemap_response(xml_text: str) -> Dict[str, Any]:
    try:
        urls = parse_sitemap(xml_text)
    except ParseFailure as e:
        logger.warning("sitemap parse failed: %s", e)
        return {"success": False, "message": str(e)}
    return {"success": True, "urls": urls}
