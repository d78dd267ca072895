import csv
import io
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from jinja2 import Environment, FileSystemLoader, select_autoescape

TEMPLATES_DIR = Path(__file__).resolve().parent / 'templates'

CSV_HEADERS = ['URL', 'CSP Source', 'Content Security Policy', 'Error', 'Status']


def extract_domain(url: str) -> str:
    try:
        return urlparse(url).hostname or 'unknown'
    except ValueError:
        return 'unknown'


def file_stamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime('%Y-%m-%dT%H-%M-%S')


def _as_dict(r: Any) -> Dict[str, Any]:
    return r.to_dict() if hasattr(r, 'to_dict') else r


def build_export(results: List[Any], consolidated: Dict[str, Any], total_urls: int, domain: str) -> Dict[str, Any]:
    return {
        'metadata': {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'totalUrls': total_urls,
            'domain': domain,
        },
        'results': [_as_dict(r) for r in results],
        'consolidatedCSP': consolidated,
    }


def render_csv(results: List[Any]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator='\n')
    writer.writerow(CSV_HEADERS)
    for r in results:
        r = _as_dict(r)
        writer.writerow([
            r.get('url') or 'N/A',
            r.get('source') or 'N/A',
            r.get('csp') or 'N/A',
            r.get('error') or 'N/A',
            r.get('status') or 'N/A',
        ])
    return buf.getvalue().rstrip('\n')


def save_json(results: List[Any], outdir: Path, consolidated: Dict[str, Any], total_urls: int, domain: str) -> Path:
    outdir.mkdir(parents=True, exist_ok=True)
    path = outdir / f'csp-analysis-{domain}-{file_stamp()}.json'
    path.write_text(json.dumps(build_export(results, consolidated, total_urls, domain), indent=2, ensure_ascii=False), encoding='utf-8')
    return path


def save_csv(results: List[Any], outdir: Path, domain: str) -> Path:
    outdir.mkdir(parents=True, exist_ok=True)
    path = outdir / f'csp-analysis-{domain}-{file_stamp()}.csv'
    path.write_text(render_csv(results), encoding='utf-8')
    return path


def save_consolidated(consolidated: Dict[str, Any], outdir: Path, domain: str) -> Path:
    outdir.mkdir(parents=True, exist_ok=True)
    path = outdir / f'consolidated-csp-{domain}-{file_stamp()}.json'
    path.write_text(json.dumps(consolidated, indent=2, ensure_ascii=False), encoding='utf-8')
    return path


def save_runtime(runtime: Dict[str, Any], outdir: Path) -> List[Path]:
    outdir.mkdir(parents=True, exist_ok=True)
    domains = outdir / 'runtime-csp-domains.json'
    errors = outdir / 'csp_errors.json'
    domains.write_text(json.dumps(runtime.get('finalResult') or {}, indent=2), encoding='utf-8')
    errors.write_text(json.dumps(runtime.get('cspErrors') or [], indent=2), encoding='utf-8')
    return [domains, errors]


def save_html(results: List[Any], outdir: Path, summary: Dict[str, Any], stats: Dict[str, Any],
              consolidated: Dict[str, Any], domain: str) -> Path:
    env = Environment(
        loader=FileSystemLoader(TEMPLATES_DIR.as_posix()),
        autoescape=select_autoescape()
    )
    tpl = env.get_template('report.html')
    html = tpl.render(
        results=[_as_dict(r) for r in results],
        summary=summary,
        stats=stats,
        consolidated=consolidated,
        domain=domain,
        generated=datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
    )
    outdir.mkdir(parents=True, exist_ok=True)
    path = outdir / f'csp-analysis-{domain}-{file_stamp()}.html'
    path.write_text(html, encoding='utf-8')
    return path
