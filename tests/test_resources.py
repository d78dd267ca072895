from cspaudit.detector.dom import load_dom
from cspaudit.detector.resources import (
    classify,
    classify_blocked_url,
    extract_structural,
    recommend_for_blocked,
    scan_inline_script_urls,
)

HTML = """
<html><head>
  <link rel="stylesheet" href="https://fonts.googleapis.com/css?family=Roboto">
  <link rel="stylesheet" href="/local.css">
  <link rel="preload" as="font" href="https://fonts.gstatic.com/r.woff2">
  <link rel="font" href="https://fonts.example.net/f.ttf">
  <link rel="preload" as="script" href="https://cdn.example.com/pre.js">
  <script src="https://cdn.example.com/app.js"></script>
  <script src="//cdn.example.com/relative-scheme.js"></script>
  <script src="/static/main.js"></script>
</head><body>
  <img src="https://img.example.org/logo.png">
  <img src="data:image/png;base64,AAAA">
  <script src="https://cdn.example.com/app.js"></script>
  <script>
    loadScript("https://widgets.example.com/js/embed");
    var css = 'https://themes.example.com/dark.css';
    fetch("https://api.example.com/v1/data");
  </script>
</body></html>
"""


def test_structural_extraction_keeps_only_absolute_http_urls():
    res = extract_structural(load_dom(HTML))
    assert res["scripts"] == ["https://cdn.example.com/app.js", "https://cdn.example.com/app.js"]
    assert res["styles"] == ["https://fonts.googleapis.com/css?family=Roboto"]
    assert res["images"] == ["https://img.example.org/logo.png"]
    assert res["fonts"] == ["https://fonts.gstatic.com/r.woff2", "https://fonts.example.net/f.ttf"]


def test_heuristic_scan_buckets_by_substring():
    found = scan_inline_script_urls([
        'a("https://x.com/lib.js")',
        "b('https://y.com/js/thing')",
        "c('https://z.com/theme.css')",
        "d('https://w.com/api')",
    ])
    assert found["scripts"] == ["https://x.com/lib.js", "https://y.com/js/thing"]
    assert found["styles"] == ["https://z.com/theme.css"]


def test_heuristic_scan_handles_empty_input():
    assert scan_inline_script_urls([]) == {"scripts": [], "styles": []}
    assert scan_inline_script_urls(["", None]) == {"scripts": [], "styles": []}


def test_classify_appends_heuristic_results_after_structural():
    res = classify(load_dom(HTML), HTML)
    assert res["scripts"][:2] == ["https://cdn.example.com/app.js", "https://cdn.example.com/app.js"]
    assert "https://widgets.example.com/js/embed" in res["scripts"]
    assert res["styles"][-1] == "https://themes.example.com/dark.css"
    assert all("api.example.com" not in u for u in res["scripts"] + res["styles"])


def test_classify_builds_dom_from_raw_html():
    res = classify(None, '<script src="https://a.com/x.js"></script>')
    assert res["scripts"] == ["https://a.com/x.js"]


def test_classify_blocked_url_by_path():
    assert classify_blocked_url("https://a.com/site.css")["directive"] == "style-src"
    assert classify_blocked_url("https://a.com/js/app")["type"] == "script"
    img = classify_blocked_url("https://img.a.com/p/logo.PNG")
    assert img["type"] == "image"
    assert img["directive"] == "img-src"
    assert classify_blocked_url("https://f.a.com/x.woff2")["directive"] == "font-src"
    other = classify_blocked_url("https://a.com/unknown")
    assert other["type"] == "script"
    assert other["recommendation"] == "Add a.com to script-src directive"
    assert classify_blocked_url("nope") is None


def test_recommend_for_blocked_groups_hosts_per_directive():
    items = [classify_blocked_url(u) for u in (
        "https://a.com/x.js", "https://b.com/y.js", "https://a.com/z.js", "https://c.com/s.css",
    )]
    recs = recommend_for_blocked(items)
    assert recs[0] == "Update script-src to include: https://a.com https://b.com"
    assert recs[1] == "Update style-src to include: https://c.com"
    assert len(recs) == 3
    assert recommend_for_blocked([]) == []
