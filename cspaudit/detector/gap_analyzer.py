"""
Gap analysis: which required directives are missing, which observed
resources the current policy would block, and what to recommend.

The page-level path only checks scripts and styles for blocking; the
runtime path (`runtime_blocked`) checks all eight tracked directives.
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import urlparse

from ..utils.csp import DirectiveModel, REQUIRED_DIRECTIVES, RUNTIME_DIRECTIVES, append_clause, parse_csp
from .permission import is_allowed
from .resources import CATEGORY_DIRECTIVES

DIRECTIVE_CATEGORIES = {v: k for k, v in CATEGORY_DIRECTIVES.items()}

REC_MISSING = "Add missing CSP directives for external resources"
REC_BLOCKED = "Update CSP directives to allow blocked resources"
REC_UNSAFE_INLINE = "Consider removing unsafe-inline for better security"
REC_UNSAFE_EVAL = "Consider removing unsafe-eval for better security"
REC_NO_CSP = "No CSP found - consider implementing basic CSP directives"


def _dedup(items: Iterable[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for i in items:
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out


def _host(url: str) -> str:
    try:
        return urlparse(url).hostname or url
    except ValueError:
        return url


def missing_directives(model: DirectiveModel, resources: Mapping[str, List[str]], reason: str) -> List[Dict[str, Any]]:
    out = []
    for directive in REQUIRED_DIRECTIVES:
        if directive in model:
            continue
        out.append({
            "directive": directive,
            "reason": reason,
            "examples": _dedup(resources.get(DIRECTIVE_CATEGORIES[directive], [])),
        })
    return out


def analyze(model: DirectiveModel, resources: Mapping[str, List[str]], raw_policy: str = "") -> Dict[str, Any]:
    analysis: Dict[str, Any] = {
        "missingDirectives": missing_directives(model, resources, "Required directive for external resources"),
        "blockedResources": [],
        "recommendations": [],
    }

    # A directive that is absent is reported as missing only, never as blocking.
    for rtype, category, directive in (("script", "scripts", "script-src"), ("style", "styles", "style-src")):
        if directive not in model:
            continue
        for url in _dedup(resources.get(category, [])):
            if not is_allowed(url, model, directive):
                analysis["blockedResources"].append({
                    "type": rtype,
                    "url": url,
                    "directive": directive,
                    "recommendation": f"Add {_host(url)} to {directive} directive",
                })

    recs = analysis["recommendations"]
    if analysis["missingDirectives"]:
        recs.append(REC_MISSING)
    if analysis["blockedResources"]:
        recs.append(REC_BLOCKED)
    if "'unsafe-inline'" in raw_policy:
        recs.append(REC_UNSAFE_INLINE)
    if "'unsafe-eval'" in raw_policy:
        recs.append(REC_UNSAFE_EVAL)
    return analysis


def no_csp_analysis() -> Dict[str, Any]:
    return {"missingDirectives": [], "recommendations": [REC_NO_CSP], "blockedResources": []}


def generate_updated_csp(current_csp: str, missing: Iterable[Mapping[str, Any]]) -> str:
    """Append `<name> 'self' https://<host> ...;` for each missing directive that has examples."""
    updated = current_csp or ""
    for m in missing:
        examples = m.get("examples") or []
        if not examples:
            continue
        hosts = _dedup(_host(u) for u in examples)
        clause = f"{m['directive']} 'self' {' '.join('https://' + h for h in hosts)};"
        updated = append_clause(updated, clause)
    return updated


def analyze_violations(current_csp: Optional[str], resources: Mapping[str, List[str]],
                       blocked_resources: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
    current = current_csp or ""
    model = parse_csp(current)
    blocked = list(blocked_resources or [])
    analysis: Dict[str, Any] = {
        "missingDirectives": missing_directives(model, resources, "Required for external resources"),
        "blockedResources": blocked,
        "recommendations": [r["recommendation"] for r in blocked if r.get("recommendation")],
        "updatedCSP": current,
    }
    if analysis["missingDirectives"]:
        analysis["updatedCSP"] = generate_updated_csp(current, analysis["missingDirectives"])
    return analysis


def runtime_blocked(model: DirectiveModel, origins_by_directive: Mapping[str, Iterable[str]]) -> List[Dict[str, Any]]:
    """Every observed origin not admitted by an existing directive, across the eight runtime directives."""
    blocked = []
    for directive in RUNTIME_DIRECTIVES:
        if directive not in model:
            continue
        for origin in sorted(set(origins_by_directive.get(directive, ()))):
            url = origin if "://" in origin else f"https://{origin}/"
            if not is_allowed(url, model, directive):
                blocked.append({
                    "type": directive[:-4],
                    "url": url,
                    "directive": directive,
                    "recommendation": f"Add {_host(url)} to {directive} directive",
                })
    return blocked
