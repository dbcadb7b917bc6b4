from contextlib import asynccontextmanager

import httpx
import pytest
from fastapi.testclient import TestClient

from webvitals.main import app

SCANNER_BASE = "https://scanner.test/v2"


@pytest.fixture
def anyio_backend():
    return "asyncio"


CONFIG_ENV = (
    "CLOUDFLARE_ACCOUNT_ID",
    "CLOUDFLARE_API_TOKEN",
    "GOOGLE_API_KEY",
    "TECH_SCAN_MAX_WAIT_S",
    "TECH_SCAN_POLL_INTERVAL_S",
    "SECURITY_SCAN_MAX_WAIT_S",
    "SECURITY_SCAN_POLL_INTERVAL_S",
    "FIELD_DATA_TIMEOUT_S",
    "WEBVITALS_CORS_ORIGINS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in CONFIG_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


class FakeClock:
    """Monotonic clock that only moves when something sleeps on it."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def mock_client(handler, base_url: str = SCANNER_BASE) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=base_url)


def fake_client_for(handler):
    """Drop-in for core.http.client_for that routes everything to `handler`."""

    @asynccontextmanager
    async def _client_for(base_url: str = "", headers=None, timeout=None):
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            base_url=base_url,
            headers=headers,
        ) as client:
            yield client

    return _client_for


def finished_result(
    job_id: str = "job-1",
    url: str = "https://example.com/",
    technologies=None,
    malicious: bool = False,
    categories=None,
    request_urls=None,
    page_url: str = "https://example.com/",
    **flags,
) -> dict:
    return {
        "task": {"uuid": job_id, "url": url, "success": True, "status": "Finished", "time": "2026-10-17T10:00:00Z"},
        "page": {"url": page_url, "domain": "example.com", "country": "US", "server": "cloudflare"},
        "data": {
            "requests": [
                {"request": {"request": {"url": u}}, "response": {"size": 100 * (i + 1), "type": "Script"}}
                for i, u in enumerate(request_urls or [])
            ],
        },
        "lists": {"ips": ["192.0.2.1"]},
        "meta": {"processors": {"wappa": {"data": technologies or []}}},
        "verdicts": {
            "overall": {"malicious": malicious, "categories": categories or []},
            "phishing": {"detected": flags.get("phishing", False)},
            "malware": {"detected": flags.get("malware", False)},
            "spam": {"detected": flags.get("spam", False)},
        },
    }


def pending_result(job_id: str = "job-1") -> dict:
    return {"task": {"uuid": job_id, "url": "https://example.com/", "status": "InProgress"}}


def wappa(name: str, confidence, *categories: str) -> dict:
    return {"app": name, "confidenceTotal": confidence, "categories": [{"name": c} for c in categories]}
