from typing import Mapping, List, Optional
from urllib.parse import urlparse

# Keywords that never admit a cross-origin resource
_NON_GRANTING = {"'self'", "'unsafe-inline'", "'unsafe-eval'"}


def _hostname(url: str) -> Optional[str]:
    try:
        return urlparse(url).hostname
    except ValueError:
        return None


def token_allows(token: str, resource_host: str) -> bool:
    if token in _NON_GRANTING:
        return False
    if not token.startswith("http"):
        # scheme-only, wildcard, nonce and hash sources are not matched
        return False
    allowed = _hostname(token)
    if not allowed:
        return False
    return resource_host == allowed or resource_host.endswith("." + allowed)


def is_allowed(resource_url: str, model: Mapping[str, List[str]], directive_name: str) -> bool:
    """
    Conservative check of a cross-origin resource against one directive.

    Only host-based `http(s)://` sources can grant: exact host or a
    subdomain of it. Unparseable URLs never match.
    """
    values = model.get(directive_name)
    if values is None:
        return False
    resource_host = _hostname(resource_url)
    if not resource_host:
        return False
    return any(token_allows(v, resource_host) for v in values)
