from cspaudit.detector.discovery import PageAnalysisResult
from cspaudit.utils.csp import parse_csp
from cspaudit.utils.policy import (
    consolidate_results,
    find_missing_directives,
    generate_updated_rule,
    merge,
    merge_from_observed_origins,
    normalize_origin,
)


def test_merge_is_order_independent_on_value_sets():
    a = {"script-src": ["'self'"]}
    b = {"script-src": ["https://a.com"]}
    ab = merge([a, b]).directives["script-src"]
    ba = merge([b, a]).directives["script-src"]
    assert set(ab) == set(ba) == {"'self'", "https://a.com"}


def test_merge_is_idempotent():
    model = parse_csp("default-src 'self'; img-src data: https://i.com")
    once = merge([model])
    twice = merge([model, model])
    assert once.directives == twice.directives
    assert once.rule == twice.rule


def test_merge_keeps_first_seen_order_and_unions():
    out = merge([
        parse_csp("script-src 'self'; img-src data:"),
        parse_csp("default-src 'none'; script-src https://a.com 'self'"),
    ])
    assert list(out.directives) == ["script-src", "img-src", "default-src"]
    assert out.directives["script-src"] == ["'self'", "https://a.com"]
    assert out.rule == "script-src 'self' https://a.com; img-src data:; default-src 'none';"
    assert out.to_dict() == {"rule": out.rule, "directives": out.directives}


def test_consolidate_skips_errors_and_pages_without_csp():
    results = [
        PageAnalysisResult(url="https://x.com/a", status="success", csp="script-src 'self'", source="header"),
        PageAnalysisResult(url="https://x.com/b", status="success", csp="No CSP found", source="none"),
        PageAnalysisResult(url="https://x.com/c", status="error", error="Request timeout"),
        {"url": "https://x.com/d", "status": "success", "csp": "style-src https://s.com", "source": "meta tag"},
    ]
    out = consolidate_results(results)
    assert out.directives == {"script-src": ["'self'"], "style-src": ["https://s.com"]}


def test_consolidated_names_are_union_of_page_names():
    pages = ["default-src 'self'; script-src a", "img-src b", "script-src c; frame-src d"]
    out = consolidate_results([{"status": "success", "csp": p} for p in pages])
    expected = set()
    for p in pages:
        expected |= set(parse_csp(p))
    assert set(out.directives) == expected


def test_normalize_origin():
    assert normalize_origin("cdn.com") == "https://cdn.com"
    assert normalize_origin("http://cdn.com") == "http://cdn.com"


def test_merge_from_observed_origins_seeds_self_and_sorts():
    existing = "script-src https://old.com; img-src data:"
    out = merge_from_observed_origins(existing, {
        "script-src": ["cdn.com", "https://old.com"],
        "connect-src": ["api.com"],
    })
    assert out == (
        "connect-src 'self' https://api.com; "
        "default-src 'self'; "
        "img-src data:; "
        "script-src 'self' https://old.com https://cdn.com;"
    )


def test_merge_from_observed_origins_keeps_existing_default():
    out = merge_from_observed_origins("default-src 'none'", {})
    assert out == "default-src 'none';"
    assert merge_from_observed_origins("", {}) == "default-src 'self';"


def test_find_missing_and_removed_directives():
    results = [
        {"status": "success", "csp": "default-src 'self'; script-src https://a.com"},
        {"status": "success", "csp": "script-src https://b.com; img-src data:"},
        {"status": "error", "csp": None},
    ]
    missing, removed = find_missing_directives("default-src 'self'; frame-src https://f.com", results)
    assert missing == [
        {"name": "script-src", "values": ["https://a.com"]},
        {"name": "img-src", "values": ["data:"]},
    ]
    assert removed == [{"name": "frame-src", "values": ["https://f.com"]}]


def test_generate_updated_rule_appends_each_name_once():
    missing = [
        {"name": "script-src", "values": ["https://a.com"]},
        {"name": "script-src", "values": ["https://b.com"]},
        {"name": "img-src", "values": ["data:"]},
    ]
    assert generate_updated_rule("default-src 'self'", missing) == (
        "default-src 'self'; script-src https://a.com; img-src data:;"
    )
