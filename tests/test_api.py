import pytest
from conftest import FakeFetcher, make_page
from fastapi.testclient import TestClient

from cspaudit.api.server import create_app
from cspaudit.crawler.browser_engine import RuntimeObservation
from cspaudit.utils.errors import FetchFailure

SITEMAP = "<urlset><url><loc>https://site.com/a</loc></url><url><loc>https://site.com/b</loc></url></urlset>"


class FakeEngine:
    def __init__(self, settings):
        self.settings = settings

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    async def observe(self, url):
        return RuntimeObservation(url=url, origins_by_directive={"img-src": {"img.com"}})


class BrokenEngine(FakeEngine):
    async def __aenter__(self):
        raise RuntimeError("no browser")


@pytest.fixture
def fetcher():
    return FakeFetcher({
        "https://site.com/a": make_page(
            "https://site.com/a",
            '<script src="https://cdn.com/app.js"></script>',
            {"content-security-policy": "default-src 'self'; script-src 'self'"},
        ),
        "https://site.com/b": make_page("https://site.com/b", "<p>no policy</p>"),
        "https://site.com/sitemap.xml": make_page("https://site.com/sitemap.xml", SITEMAP),
        "https://site.com/404.xml": FetchFailure("HTTP 404: Not Found", status=404),
    })


@pytest.fixture
def client(fast_settings, fetcher):
    return TestClient(create_app(fast_settings, fetcher=fetcher, engine_factory=FakeEngine))


def test_analyze_page_requires_url(client):
    r = client.post("/api/analyze-page", json={})
    assert r.status_code == 400
    assert r.json() == {"error": "URL is required"}


def test_analyze_page_success(client):
    r = client.post("/api/analyze-page", json={"url": "https://site.com/a"})
    assert r.status_code == 200
    data = r.json()
    assert data["source"] == "header"
    assert data["analysis"]["blockedResources"][0]["url"] == "https://cdn.com/app.js"


def test_unreachable_page_is_200_with_error_status(client):
    r = client.post("/api/analyze-page", json={"url": "https://gone.com/"})
    assert r.status_code == 200
    assert r.json() == {"url": "https://gone.com/", "error": "Domain not found", "csp": None, "status": "error"}


def test_violations_analysis(client):
    r = client.post("/api/analyze-csp-violations", json={
        "url": "https://site.com/a",
        "currentCSP": "default-src 'self'",
        "blockedResources": [],
    })
    assert r.status_code == 200
    body = r.json()
    assert body["externalResources"]["scripts"] == ["https://cdn.com/app.js"]
    assert body["analysis"]["updatedCSP"] == "default-src 'self'; script-src 'self' https://cdn.com;"


def test_violations_fetch_failure_is_500(client):
    r = client.post("/api/analyze-csp-violations", json={"url": "https://gone.com/"})
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to analyze CSP violations", "status": "error"}


def test_process_sitemap(client):
    assert client.post("/api/process-sitemap", json={}).status_code == 400
    r = client.post("/api/process-sitemap", json={"sitemapUrl": "https://site.com/sitemap.xml"})
    assert r.json() == {"urls": ["https://site.com/a", "https://site.com/b"], "totalUrls": 2, "status": "success"}


def test_process_sitemap_errors(client):
    r = client.post("/api/process-sitemap", json={"sitemapUrl": "https://site.com/404.xml"})
    assert r.status_code == 500
    assert r.json()["error"] == "HTTP 404: Not Found"
    r = client.post("/api/process-sitemap", json={"sitemapUrl": "https://gone.com/s.xml"})
    assert r.json()["error"] == "Failed to fetch sitemap"


def test_fetch_sitemap(client):
    r = client.post("/api/fetch-sitemap", json={"sitemapUrl": "https://site.com/sitemap.xml"})
    assert r.json() == {"success": True, "urls": ["https://site.com/a", "https://site.com/b"]}
    r = client.post("/api/fetch-sitemap", json={"sitemapUrl": "https://gone.com/s.xml"})
    assert r.status_code == 200
    assert r.json() == {"success": False, "message": "Domain not found"}


def test_analyze_urls(client):
    assert client.post("/api/analyze-urls", json={"urls": "https://site.com/a"}).status_code == 400
    r = client.post("/api/analyze-urls", json={"urls": ["https://site.com/a", "https://gone.com/", "https://site.com/b"]})
    body = r.json()
    assert body["totalUrls"] == 3
    assert [x["status"] for x in body["results"]] == ["success", "error", "success"]
    assert "analysis" not in body["results"][0]
    assert body["results"][2]["csp"] == "No CSP found"


def test_extract_csp_from_sitemap(client):
    assert client.post("/api/extract-csp", json={}).status_code == 400
    r = client.post("/api/extract-csp", json={"sitemapUrl": "https://site.com/sitemap.xml"})
    body = r.json()
    assert body["success"] is True
    assert body["urlsProcessed"] == 2
    assert body["finalResult"]["img-src"] == ["img.com"]
    assert body["updatedCSP"] == "default-src 'self'; img-src 'self' https://img.com;"


def test_extract_csp_browser_failure(fast_settings, fetcher):
    client = TestClient(create_app(fast_settings, fetcher=fetcher, engine_factory=BrokenEngine))
    r = client.post("/api/extract-csp", json={"urls": ["https://site.com/a"]})
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "Runtime audit failed: no browser"}


def test_analyze_urls_accepts_empty_list(client):
    r = client.post("/api/analyze-urls", json={"urls": []})
    assert r.status_code == 200
    assert r.json() == {"results": [], "totalUrls": 0, "status": "success"}


def test_missing_body_is_400(client):
    r = client.post("/api/analyze-page")
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid request body"}


def test_wrong_field_type_is_400(client):
    r = client.post("/api/analyze-page", json={"url": 5})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid request body"}


def test_malformed_body_keeps_success_shape(client):
    r = client.post("/api/extract-csp", json={"urls": "https://site.com/a"})
    assert r.status_code == 400
    assert r.json() == {"success": False, "message": "Invalid request body"}
