# SPDX-License-Identifier: MIT
# -*- coding: utf-8 -*-
"""
Policy synthesis:
- Union merge of several directive models into one consolidated policy.
- Runtime merge of observed origins into an existing policy.
- Comparison of an existing (CDN) rule against the policies seen on pages.

Merges are permissive: value sets are unions, never intersections, so the
result is wide enough to cover every page seen.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from .csp import DirectiveModel, append_clause, has_csp, parse_csp, serialize_policy


@dataclass
class ConsolidatedPolicy:
    rule: str = ""
    directives: DirectiveModel = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"rule": self.rule, "directives": {k: list(v) for k, v in self.directives.items()}}


def _union_into(target: DirectiveModel, name: str, values: Iterable[str]) -> None:
    bucket = target.setdefault(name, [])
    for v in values:
        if v not in bucket:
            bucket.append(v)


def merge(policies: Iterable[Mapping[str, List[str]]]) -> ConsolidatedPolicy:
    """Fold directive models into one, keeping first-seen directive and value order."""
    merged: DirectiveModel = {}
    for model in policies:
        for name, values in model.items():
            _union_into(merged, name, values)
    return ConsolidatedPolicy(rule=serialize_policy(merged), directives=merged)


def consolidate_results(results: Iterable[Any]) -> ConsolidatedPolicy:
    """Merge the policy of every successful page result that carries a CSP."""
    models = []
    for r in results:
        data = r.to_dict() if hasattr(r, "to_dict") else r
        if data.get("status") == "success" and has_csp(data.get("csp")):
            models.append(parse_csp(data["csp"]))
    return merge(models)


def normalize_origin(origin: str) -> str:
    if "://" in origin:
        return origin
    return f"https://{origin}"


def merge_from_observed_origins(existing_policy: str, origins_by_directive: Mapping[str, Iterable[str]]) -> str:
    """
    Add runtime-observed origins to an existing policy string.

    Guarantees `default-src 'self'`, seeds `'self'` into every observed
    directive and serializes with directive names in sorted order.
    """
    directives = parse_csp(existing_policy or "")
    if "default-src" not in directives:
        directives["default-src"] = ["'self'"]
    for name, origins in origins_by_directive.items():
        bucket = directives.setdefault(name, [])
        if "'self'" not in bucket:
            bucket.insert(0, "'self'")
        _union_into(directives, name, (normalize_origin(o) for o in origins))
    return serialize_policy(directives, sort=True)


# ---------------------------
# CDN rule comparison
# ---------------------------
def find_missing_directives(existing_rule: str, results: Iterable[Any]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """
    Compare an existing rule with the policies found on audited pages.

    Returns (missing, removed): directives seen on pages but absent from the
    rule (unique by name, first seen), and directives of the rule that no
    page declares.
    """
    existing = parse_csp(existing_rule)
    missing: Dict[str, List[str]] = {}
    seen_on_pages = set()
    for r in results:
        data = r.to_dict() if hasattr(r, "to_dict") else r
        if not has_csp(data.get("csp")) or data.get("status") == "error":
            continue
        for name, values in parse_csp(data["csp"]).items():
            seen_on_pages.add(name)
            if name not in existing and name not in missing:
                missing[name] = list(values)
    removed = [{"name": n, "values": list(v)} for n, v in existing.items() if n not in seen_on_pages]
    return [{"name": n, "values": v} for n, v in missing.items()], removed


def generate_updated_rule(existing_rule: str, missing: Iterable[Mapping[str, Any]]) -> str:
    updated = existing_rule.strip()
    done = set()
    for d in missing:
        if d["name"] in done:
            continue
        done.add(d["name"])
        clause = f"{d['name']} {' '.join(d['values'])};"
        updated = append_clause(updated, clause)
    return updated
