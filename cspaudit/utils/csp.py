import re
from typing import Dict, List, Optional

from .errors import InvalidInput

DirectiveModel = Dict[str, List[str]]

NO_CSP = "No CSP found"

# Directives every audited page is expected to declare
REQUIRED_DIRECTIVES = ["script-src", "style-src", "img-src", "font-src", "connect-src"]

# Directives tracked by the runtime (browser) audit
RUNTIME_DIRECTIVES = [
    "script-src", "style-src", "img-src", "font-src",
    "connect-src", "media-src", "frame-src", "object-src",
]

_WS = re.compile(r"\s+")


def _parse_directive_list(val: str) -> List[str]:
    out: List[str] = []
    for t in val.split():
        if t not in out:
            out.append(t)
    return out


def parse_csp(header_value: Optional[str]) -> DirectiveModel:
    """
    Parse a CSP string into an ordered mapping name -> source tokens.

    Segments without a value (e.g. a bare `upgrade-insecure-requests`) are
    dropped. The first occurrence of a repeated directive wins. Directive
    names are kept as written; callers lowercase when comparing.
    """
    if header_value is None:
        raise InvalidInput("CSP string is required")
    directives: DirectiveModel = {}
    for d in header_value.split(";"):
        d = d.strip()
        if not d:
            continue
        parts = _WS.split(d, maxsplit=1)
        if len(parts) < 2:
            continue
        name, val = parts
        if name in directives:
            continue
        directives[name] = _parse_directive_list(val)
    return directives


def serialize_policy(directives: DirectiveModel, sort: bool = False) -> str:
    names = sorted(directives) if sort else list(directives)
    clauses = []
    for name in names:
        values = directives[name]
        clauses.append(f"{name} {' '.join(values)};" if values else f"{name};")
    return " ".join(clauses)


def has_csp(csp: Optional[str]) -> bool:
    return bool(csp) and csp != NO_CSP


def append_clause(policy: str, clause: str) -> str:
    """Append one `name values;` clause, adding the `;` separator the policy may lack."""
    policy = policy.strip()
    if not policy:
        return clause
    if not policy.endswith(";"):
        policy += ";"
    return f"{policy} {clause}"
