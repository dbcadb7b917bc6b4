import re
from typing import Dict, List, Optional
from urllib.parse import urlsplit

from webvitals.core.config import Settings
from webvitals.core.http import client_for
from webvitals.core.logger import get_logger
from webvitals.metrics.field_data import FieldMetricsAggregator
from webvitals.models.metrics import DeviceType, PerformanceReport
from webvitals.models.scan import ScanSearchHit, ScanVisibility, ScreenshotResolution
from webvitals.models.schemas import SecurityScanSummary, TechnologyReport
from webvitals.scanners.security import scan_security
from webvitals.scanners.technology import detect_technologies
from webvitals.scanners.url_scanner import UrlScannerClient, scanner_base_url
from webvitals.scoring.performance import calculate_lighthouse_score

logger = get_logger(__name__)

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z\d+.-]*://")


def normalize_url(raw: str) -> str:
    value = (raw or "").strip()
    if not value:
        raise ValueError("Please provide a URL.")
    if not _SCHEME_RE.match(value):
        value = "https://" + value
    if not urlsplit(value).hostname:
        raise ValueError(f"Not a valid URL: {raw!r}")
    return value


def _scanner_client(settings: Settings):
    account_id, api_token = settings.require_scanner_credentials()
    return client_for(
        base_url=scanner_base_url(account_id),
        headers={"Authorization": f"Bearer {api_token}", "Content-Type": "application/json"},
    )


async def analyze_performance(
    url: str,
    devices: Optional[List[DeviceType]] = None,
    settings: Optional[Settings] = None,
) -> PerformanceReport:
    settings = settings or Settings()
    api_key = settings.require_pagespeed_key()
    target = normalize_url(url)

    async with client_for(timeout=settings.field_data_timeout) as client:
        aggregator = FieldMetricsAggregator(
            client, api_key, timeout=settings.field_data_timeout, retry=settings.retry,
        )
        report = await aggregator.fetch(target, devices)

    for data_set in (report.mobile, report.desktop):
        if data_set is not None:
            data_set.score = calculate_lighthouse_score(data_set.metrics)
    return report


async def analyze_technology(url: str, settings: Optional[Settings] = None) -> TechnologyReport:
    settings = settings or Settings()
    target = normalize_url(url)

    async with _scanner_client(settings) as client:
        scanner = UrlScannerClient(client, retry=settings.retry)
        return await detect_technologies(scanner, target, settings.technology_budget)


async def analyze_security(
    url: str,
    visibility: ScanVisibility = "Unlisted",
    custom_headers: Optional[Dict[str, str]] = None,
    screenshot_resolutions: Optional[List[ScreenshotResolution]] = None,
    settings: Optional[Settings] = None,
) -> SecurityScanSummary:
    settings = settings or Settings()
    target = normalize_url(url)

    async with _scanner_client(settings) as client:
        scanner = UrlScannerClient(client, retry=settings.retry)
        return await scan_security(
            scanner, target, settings.security_budget,
            visibility=visibility,
            screenshot_resolutions=screenshot_resolutions,
            custom_headers=custom_headers,
        )


async def search_scans(
    query: str,
    limit: int = 20,
    offset: int = 0,
    settings: Optional[Settings] = None,
) -> List[ScanSearchHit]:
    settings = settings or Settings()

    async with _scanner_client(settings) as client:
        scanner = UrlScannerClient(client, retry=settings.retry)
        hits = await scanner.search(query, limit=limit, offset=offset)
    logger.info("Scan search %r returned %d results", query, len(hits))
    return hits
