from typing import Dict, Any, List

from ..utils.csp import has_csp, parse_csp


def _as_dict(r: Any) -> Dict[str, Any]:
    return r.to_dict() if hasattr(r, "to_dict") else r


def directive_stats(results: List[Any]) -> Dict[str, Dict[str, Any]]:
    """
    Per directive: how many pages declare it and the union of its values.
    Directives keep the order in which they were first seen.
    """
    stats: Dict[str, Dict[str, Any]] = {}
    for r in results:
        r = _as_dict(r)
        if r.get('status') == 'error' or not has_csp(r.get('csp')):
            continue
        for name, values in parse_csp(r['csp']).items():
            entry = stats.setdefault(name, {'count': 0, 'values': []})
            entry['count'] += 1
            for v in values:
                if v not in entry['values']:
                    entry['values'].append(v)
    return stats


def summarize(results: List[Any]) -> Dict[str, Any]:
    """
    Build a run summary: counts by status and CSP source, and the
    recommendations/blocked/missing findings flattened across pages.
    """
    out = {
        'total_urls': len(results),
        'counts_by_status': {'success': 0, 'error': 0},
        'counts_by_source': {},
        'recommendations': [],
        'blocked_resources': [],
        'missing_directives': [],
    }
    for r in results:
        r = _as_dict(r)
        status = r.get('status', 'error')
        out['counts_by_status'][status] = out['counts_by_status'].get(status, 0) + 1
        if status == 'success':
            src = r.get('source') or 'none'
            out['counts_by_source'][src] = out['counts_by_source'].get(src, 0) + 1
        analysis = r.get('analysis') or {}
        out['recommendations'].extend(analysis.get('recommendations') or [])
        for b in analysis.get('blockedResources') or []:
            out['blocked_resources'].append(dict(b, page=r.get('url')))
        for m in analysis.get('missingDirectives') or []:
            out['missing_directives'].append(dict(m, page=r.get('url')))
    return out
