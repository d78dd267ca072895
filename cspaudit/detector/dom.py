"""
Minimal DOM capability used by the classifier and the discovery orchestrator.

Code in `detector` only talks to `Dom`; `SoupDom` backs it with BeautifulSoup.
"""
from typing import Any, Dict, List, Protocol

from bs4 import BeautifulSoup


class Dom(Protocol):
    def query_all(self, selector: str) -> List[Any]: ...

    def attributes_of(self, element: Any) -> Dict[str, str]: ...

    def text_of(self, element: Any) -> str: ...


class SoupDom:
    def __init__(self, html: str):
        self.soup = BeautifulSoup(html or "", "html.parser")

    def query_all(self, selector: str) -> List[Any]:
        return self.soup.select(selector)

    def attributes_of(self, element: Any) -> Dict[str, str]:
        attrs: Dict[str, str] = {}
        for k, v in (element.attrs or {}).items():
            # multi-valued attributes (class, rel) come back as lists
            attrs[k] = " ".join(v) if isinstance(v, list) else str(v)
        return attrs

    def text_of(self, element: Any) -> str:
        return element.get_text() or element.string or ""


def load_dom(html: str) -> SoupDom:
    return SoupDom(html)
