"""
Browser-driven audit: load each URL in a real browser, collect the
origins it loads per directive and fold them into an updated policy.
"""
import logging
from typing import Any, Dict, List, Set

from ..config import Settings
from ..detector.discovery import from_headers
from ..detector.gap_analyzer import runtime_blocked
from ..utils.csp import RUNTIME_DIRECTIVES, parse_csp
from ..utils.policy import merge, merge_from_observed_origins

logger = logging.getLogger(__name__)


async def run_runtime_audit(urls: List[str], engine: Any, settings: Settings) -> Dict[str, Any]:
    """
    `engine` is an entered BrowserEngine (anything with `async observe(url)`).
    URLs beyond `settings.runtime_max_urls` are ignored.
    """
    todo = urls[: settings.runtime_max_urls]
    if len(urls) > len(todo):
        logger.info("runtime audit capped at %d of %d urls", len(todo), len(urls))

    domains: Dict[str, Set[str]] = {d: set() for d in RUNTIME_DIRECTIVES}
    csp_errors: List[Dict[str, str]] = []
    per_url_headers: Dict[str, Dict[str, str]] = {}
    failed_urls: List[Dict[str, str]] = []
    header_models = []

    for i, url in enumerate(todo):
        logger.info("runtime %d/%d: %s", i + 1, len(todo), url)
        obs = await engine.observe(url)
        if obs.error:
            failed_urls.append({"url": url, "error": obs.error})
        per_url_headers[url] = dict(obs.headers)
        policy = from_headers(obs.headers)
        if policy:
            header_models.append(parse_csp(policy))
        for text in obs.csp_errors:
            csp_errors.append({"url": url, "message": text})
        for directive, hosts in obs.origins_by_directive.items():
            domains.setdefault(directive, set()).update(hosts)

    final_result = {d: sorted(hosts) for d, hosts in domains.items()}
    existing = merge(header_models)
    observed = {d: hosts for d, hosts in final_result.items() if hosts}
    return {
        "success": True,
        "urlsProcessed": len(todo),
        "finalResult": final_result,
        "cspErrors": csp_errors,
        "perUrlHeaders": per_url_headers,
        "failedUrls": failed_urls,
        "updatedCSP": merge_from_observed_origins(existing.rule, observed),
        "blockedResources": runtime_blocked(existing.directives, final_result),
    }
