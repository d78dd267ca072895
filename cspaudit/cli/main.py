import argparse, asyncio, logging
from pathlib import Path
from rich import print as rprint
from rich.logging import RichHandler
from rich.table import Table
from rich.console import Console
from ..config import Settings
from ..crawler.batch import AuditRun, parse_url_list, run_batch
from ..crawler.fetcher import PageFetcher
from ..crawler.sitemap import extract_urls_from_sitemap
from ..detector.resources import classify_blocked_url, recommend_for_blocked
from ..reports import reporter
from ..reports.summary import directive_stats, summarize
from ..utils.errors import FetchFailure
from ..utils.policy import consolidate_results, find_missing_directives, generate_updated_rule

def parse_args(argv=None):
    p = argparse.ArgumentParser(description='cspaudit - Content-Security-Policy auditor')
    p.add_argument('--url', action='append', default=[], help='Page URL to audit (repeatable)')
    p.add_argument('--urls', type=str, default=None, help='Comma or newline separated list of URLs')
    p.add_argument('--sitemap', type=str, default=None, help='Sitemap URL to read page URLs from')
    p.add_argument('--out', type=str, default='./cspaudit_out', help='Output directory')
    p.add_argument('--export-html', action='store_true', help='Also write an HTML report')
    p.add_argument('--existing-rule', type=str, default=None, help='Existing CDN CSP rule to compare against')
    p.add_argument('--blocked', type=str, default=None, help='Comma or newline separated URLs reported as blocked by the browser')
    # Runtime (browser) audit
    p.add_argument('--runtime', action='store_true', help='Also load pages in a headless browser and record what they load')
    p.add_argument('--no-headless', dest='headless', action='store_false', help='Show the browser during runtime audit')
    p.set_defaults(headless=True)
    p.add_argument('--max-urls', type=int, default=None, help='Cap on URLs for the runtime audit')
    # Fetch tuning (override environment)
    p.add_argument('--timeout', type=int, default=None, help='Fetch timeout (ms)')
    p.add_argument('--pacing-ms', type=int, default=None, help='Delay between URLs (ms)')
    p.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return p.parse_args(argv)

async def collect_urls(args, fetcher):
    urls = list(args.url)
    if args.urls:
        urls.extend(parse_url_list(args.urls))
    if args.sitemap:
        page = await fetcher.fetch(args.sitemap)
        found = extract_urls_from_sitemap(page.text)
        rprint(f'[cyan]Sitemap[/cyan]: {len(found)} URLs from {args.sitemap}')
        urls.extend(found)
    return urls

def print_results(run: AuditRun, console: Console):
    table = Table(title='CSP by page')
    table.add_column('URL')
    table.add_column('Source')
    table.add_column('Status')
    table.add_column('Missing')
    table.add_column('Blocked')
    for r in run.results:
        a = r.analysis or {}
        missing = ', '.join(m['directive'] for m in a.get('missingDirectives') or [])
        table.add_row(r.url, r.source or '-', r.status if r.ok else f'[red]{r.error}[/red]', missing, str(len(a.get('blockedResources') or [])))
    console.print(table)

def print_stats(stats, console: Console):
    table = Table(title='Directives')
    table.add_column('Directive')
    table.add_column('Pages')
    table.add_column('Values')
    for name, entry in stats.items():
        table.add_row(name, str(entry['count']), ' '.join(entry['values']))
    console.print(table)

async def run_runtime(urls, settings, args, outdir, console):
    from ..crawler.browser_engine import BrowserEngine
    from ..crawler.runtime_audit import run_runtime_audit

    async with BrowserEngine.from_settings(settings, headless=args.headless) as be:
        runtime = await run_runtime_audit(urls, be, settings)
    table = Table(title=f"Runtime origins ({runtime['urlsProcessed']} URLs)")
    table.add_column('Directive')
    table.add_column('Domains')
    for directive, domains in runtime['finalResult'].items():
        if domains:
            table.add_row(directive, '\n'.join(domains))
    console.print(table)
    rprint(f"[bold]Updated CSP[/bold]: {runtime['updatedCSP']}")
    rprint(f"CSP console errors: {len(runtime['cspErrors'])}")
    for failure in runtime['failedUrls']:
        rprint(f"[red]Could not load[/red] {failure['url']}: {failure['error']}")
    reporter.save_runtime(runtime, outdir)
    return runtime

async def run(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(message)s', handlers=[RichHandler(show_path=False)])

    settings = Settings.from_env().with_overrides(
        fetch_timeout_ms=args.timeout,
        batch_pacing_ms=args.pacing_ms,
        runtime_max_urls=args.max_urls,
    )
    console = Console()
    outdir = Path(args.out)
    fetcher = PageFetcher(settings)

    try:
        urls = await collect_urls(args, fetcher)
    except FetchFailure as e:
        rprint(f'[red]Sitemap processing failed[/red]: {e.message}')
        return 1
    if not urls:
        rprint('[red]No valid URLs to process.[/red] Use --url, --urls or --sitemap.')
        return 2

    def progress(r: AuditRun, url: str):
        eta = r.estimated_remaining()
        rprint(f'[dim]({r.current_index}/{r.total_urls}) {url}  ~{eta:.0f}s left[/dim]')

    run_ = await run_batch(urls, fetcher, pacing_ms=settings.batch_pacing_ms, on_progress=progress)

    consolidated = consolidate_results(run_.results).to_dict()
    stats = directive_stats(run_.results)
    summary = summarize(run_.results)
    domain = reporter.extract_domain(urls[0])

    print_results(run_, console)
    print_stats(stats, console)
    for rec in dict.fromkeys(summary['recommendations']):
        rprint(f'- {rec}')
    rprint(f"[bold]Consolidated CSP[/bold]: {consolidated['rule'] or '(none)'}")

    if args.existing_rule:
        missing, removed = find_missing_directives(args.existing_rule, run_.results)
        rprint(f"Missing from existing rule: {', '.join(d['name'] for d in missing) or 'none'}")
        rprint(f"Not used by any page: {', '.join(d['name'] for d in removed) or 'none'}")
        rprint(f'[bold]Updated rule[/bold]: {generate_updated_rule(args.existing_rule, missing)}')

    if args.blocked:
        manual = [b for b in (classify_blocked_url(u) for u in parse_url_list(args.blocked)) if b]
        table = Table(title='Reported blocked resources')
        table.add_column('Type')
        table.add_column('URL')
        table.add_column('Recommendation')
        for b in manual:
            table.add_row(b['type'], b['url'], b['recommendation'])
        console.print(table)
        for rec in recommend_for_blocked(manual):
            rprint(f'- {rec}')

    reporter.save_json(run_.results, outdir, consolidated, run_.total_urls, domain)
    reporter.save_csv(run_.results, outdir, domain)
    reporter.save_consolidated(consolidated, outdir, domain)
    if args.export_html:
        reporter.save_html(run_.results, outdir, summary, stats, consolidated, domain)

    if args.runtime:
        await run_runtime(urls, settings, args, outdir, console)

    rprint(f'🏁 Reports saved at: [bold]{outdir}[/bold]  ({run_.elapsed:.1f}s)')
    return 0

def main():
    raise SystemExit(asyncio.run(run()))

if __name__ == '__main__':
    main()
