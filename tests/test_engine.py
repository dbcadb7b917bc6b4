import httpx
import pytest

from webvitals.core import engine
from webvitals.core.config import Settings
from webvitals.core.errors import ConfigurationMissing

from conftest import fake_client_for, finished_result, wappa


def scanner_settings(**overrides):
    values = {
        "cloudflare_account_id": "acct-1",
        "cloudflare_api_token": "token-1",
        "google_api_key": "google-1",
        "technology_max_wait": 5.0,
        "technology_poll_interval": 0.0,
        "security_max_wait": 5.0,
        "security_poll_interval": 0.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def no_network(*args, **kwargs):
    raise AssertionError("no request may be made without credentials")


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("example.com", "https://example.com"),
        ("  https://example.com/path  ", "https://example.com/path"),
        ("http://example.com", "http://example.com"),
    ],
)
def test_normalize_url(raw, expected):
    assert engine.normalize_url(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "https://"])
def test_normalize_url_rejects_garbage(raw):
    with pytest.raises(ValueError):
        engine.normalize_url(raw)


@pytest.mark.anyio
async def test_missing_scanner_credentials_fail_before_any_request(monkeypatch):
    monkeypatch.setattr(engine, "client_for", no_network)

    with pytest.raises(ConfigurationMissing) as excinfo:
        await engine.analyze_technology("example.com", settings=Settings(_env_file=None, cloudflare_account_id="acct-1"))

    assert excinfo.value.names == ["CLOUDFLARE_API_TOKEN"]


@pytest.mark.anyio
async def test_missing_pagespeed_key_fails_before_any_request(monkeypatch):
    monkeypatch.setattr(engine, "client_for", no_network)

    with pytest.raises(ConfigurationMissing) as excinfo:
        await engine.analyze_performance("example.com", settings=Settings(_env_file=None))

    assert excinfo.value.names == ["GOOGLE_API_KEY"]


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("CLOUDFLARE_ACCOUNT_ID", "acct-env")
    monkeypatch.setenv("CLOUDFLARE_API_TOKEN", "token-env")
    monkeypatch.setenv("TECH_SCAN_MAX_WAIT_S", "60")
    monkeypatch.setenv("WEBVITALS_CORS_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.delenv("SECURITY_SCAN_POLL_INTERVAL_S", raising=False)

    settings = Settings(_env_file=None)

    assert settings.require_scanner_credentials() == ("acct-env", "token-env")
    assert settings.technology_budget.max_wait == 60.0
    assert settings.security_budget.poll_interval == 15.0
    assert settings.cors_origins == ["https://a.example", "https://b.example"]


@pytest.mark.anyio
async def test_analyze_technology_end_to_end(monkeypatch):
    seen = []
    results = [httpx.Response(404), finished_result(technologies=[wappa("React", 80, "JavaScript frameworks"), wappa("Nginx", 100, "Web servers")])]

    def handler(request):
        seen.append(request)
        path = request.url.path
        if path.endswith("/search"):
            return httpx.Response(200, json={"results": []})
        if path.endswith("/scan"):
            return httpx.Response(200, json={"uuid": "job-1"})
        item = results.pop(0) if len(results) > 1 else results[0]
        return item if isinstance(item, httpx.Response) else httpx.Response(200, json=item)

    monkeypatch.setattr(engine, "client_for", fake_client_for(handler))

    report = await engine.analyze_technology("example.com", settings=scanner_settings())

    assert report.url == "https://example.com"
    assert [t.name for t in report.technologies] == ["Nginx", "React"]
    assert report.summary.total_detected == 2
    assert report.summary.by_category == {"Web servers": ["Nginx"], "JavaScript frameworks": ["React"]}

    assert all(r.headers["Authorization"] == "Bearer token-1" for r in seen)
    assert all("/accounts/acct-1/urlscanner/v2/" in r.url.path for r in seen)
    submission = next(r for r in seen if r.url.path.endswith("/scan"))
    assert b'"screenshotsResolutions":[]' in submission.content.replace(b" ", b"")


@pytest.mark.anyio
async def test_analyze_security_end_to_end(monkeypatch):
    def handler(request):
        path = request.url.path
        if path.endswith("/search"):
            return httpx.Response(200, json={"results": [{"task": {"uuid": "old-1", "url": "https://example.com"}}]})
        return httpx.Response(200, json=finished_result(
            "old-1",
            url="https://example.com",
            request_urls=["https://example.com/", "http://cdn.example.net/x.js"],
        ))

    monkeypatch.setattr(engine, "client_for", fake_client_for(handler))

    summary = await engine.analyze_security("example.com", settings=scanner_settings())

    assert summary.scan_id == "old-1"
    assert summary.reused is True
    assert summary.status == "Finished"
    assert summary.overview.status == "finished"
    assert summary.security.risk_level == "SAFE"
    assert "Mixed HTTP/HTTPS content" in summary.security.threats
    # 100 - 5 mixed content + 5 https page
    assert summary.security.score == 100
    assert summary.network.http_requests == 1


@pytest.mark.anyio
async def test_analyze_performance_attaches_scores(monkeypatch):
    def handler(request):
        strategy = request.url.params["strategy"]
        if strategy == "mobile":
            return httpx.Response(500)
        return httpx.Response(200, json={"loadingExperience": {"metrics": {
            "LARGEST_CONTENTFUL_PAINT_MS": {"percentile": 3250, "category": "AVERAGE"},
        }}})

    monkeypatch.setattr(engine, "client_for", fake_client_for(handler))

    report = await engine.analyze_performance("example.com", settings=scanner_settings())

    assert report.has_data
    assert report.mobile is None
    assert report.desktop.score.overall_score == 50
    assert report.desktop.score.metrics[0].key == "largest-contentful-paint"


@pytest.mark.anyio
async def test_search_scans(monkeypatch):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"result": {"search": [
            {"task": {"uuid": "a", "url": "https://example.com", "visibility": "Public"}, "page": {"domain": "example.com"}, "verdicts": {"malicious": False}},
            {"task": {}},
        ]}})

    monkeypatch.setattr(engine, "client_for", fake_client_for(handler))

    hits = await engine.search_scans("page.domain:example.com", limit=500, offset=20, settings=scanner_settings())

    assert [h.job_id for h in hits] == ["a"]
    assert hits[0].domain == "example.com"
    assert hits[0].malicious is False
    assert seen[0].url.params["limit"] == "100"
    assert seen[0].url.params["offset"] == "20"


def test_settings_budgets_and_empty_values(monkeypatch):
    monkeypatch.setenv("SECURITY_SCAN_MAX_WAIT_S", "90")
    monkeypatch.setenv("SECURITY_SCAN_POLL_INTERVAL_S", "5")
    monkeypatch.setenv("FIELD_DATA_TIMEOUT_S", "")
    monkeypatch.setenv("CLOUDFLARE_API_TOKEN", "")

    settings = Settings(_env_file=None)

    assert settings.security_budget.max_wait == 90.0
    assert settings.security_budget.poll_interval == 5.0
    assert settings.technology_budget.max_wait == 180.0
    assert settings.field_data_timeout == 120.0
    with pytest.raises(ConfigurationMissing) as excinfo:
        settings.require_scanner_credentials()
    assert excinfo.value.names == ["CLOUDFLARE_ACCOUNT_ID", "CLOUDFLARE_API_TOKEN"]
