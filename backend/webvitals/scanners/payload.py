"""Reduce raw URL Scanner v2 result payloads into ``ScanResult`` models.

The raw payload carries full request traces, cookies, console logs and
certificates. Only the verdicts, the technology fingerprint and a counted
network summary survive this step.
"""

import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from webvitals.models.scan import (
    LargestRequest,
    NetworkSummary,
    ScanPage,
    ScanResult,
    ScanTask,
    ScanVerdicts,
    Technology,
)

URL_SHORTENERS = ("bit.ly", "tinyurl", "t.co")
_IPV4_RE = re.compile(r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}")


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _hostname(url: str) -> Optional[str]:
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


def _clamp_confidence(value: Any) -> int:
    try:
        confidence = int(round(float(value)))
    except (TypeError, ValueError):
        confidence = 0
    return max(0, min(100, confidence))


def request_urls(raw: Dict[str, Any]) -> List[str]:
    """Every URL requested during the scan, redirect hops included."""
    urls: List[str] = []
    for entry in _list(_dict(raw.get("data")).get("requests")):
        entry = _dict(entry)
        primary = _dict(_dict(entry.get("request")).get("request")).get("url")
        if primary:
            urls.append(primary)
        for hop in _list(entry.get("requests")):
            hop_url = _dict(_dict(hop).get("request")).get("url")
            if hop_url:
                urls.append(hop_url)
    return urls


def is_suspicious_domain(domain: str) -> bool:
    return (
        any(s in domain for s in URL_SHORTENERS)
        or len(domain.split(".")) > 4  # very deep subdomains
        or bool(_IPV4_RE.search(domain))
    )


def parse_verdicts(raw: Dict[str, Any]) -> ScanVerdicts:
    verdicts = _dict(raw.get("verdicts"))
    overall = _dict(verdicts.get("overall"))
    return ScanVerdicts(
        malicious=bool(overall.get("malicious", False)),
        categories=[str(c) for c in _list(overall.get("categories"))],
        tags=[str(t) for t in _list(overall.get("tags"))],
        phishing=bool(_dict(verdicts.get("phishing")).get("detected", False)),
        malware=bool(_dict(verdicts.get("malware")).get("detected", False)),
        spam=bool(_dict(verdicts.get("spam")).get("detected", False)),
    )


def parse_technologies(raw: Dict[str, Any]) -> List[Technology]:
    wappa = _dict(_dict(_dict(raw.get("meta")).get("processors")).get("wappa"))
    technologies: List[Technology] = []
    for tech in _list(wappa.get("data")):
        tech = _dict(tech)
        name = tech.get("app") or tech.get("name")
        if not name:
            continue
        categories = []
        for cat in _list(tech.get("categories")):
            # categories arrive as plain strings or {"name": ..., "priority": ...}
            label = cat if isinstance(cat, str) else _dict(cat).get("name")
            if label:
                categories.append(str(label))
        technologies.append(Technology(
            name=str(name),
            confidence=_clamp_confidence(tech.get("confidenceTotal", tech.get("confidence"))),
            categories=categories,
        ))
    return sorted(technologies, key=lambda t: t.confidence, reverse=True)


def summarize_network(raw: Dict[str, Any], base_domain: Optional[str]) -> NetworkSummary:
    urls = request_urls(raw)
    hostnames = [h for h in (_hostname(u) for u in urls) if h]
    domains = set(hostnames)

    largest = sorted(
        (
            e for e in (_dict(x) for x in _list(_dict(raw.get("data")).get("requests")))
            if (_dict(e.get("response")).get("size") or 0) > 0
        ),
        key=lambda e: _dict(e.get("response")).get("size") or 0,
        reverse=True,
    )[:5]

    largest_requests = []
    for entry in largest:
        url = _dict(_dict(entry.get("request")).get("request")).get("url") or "Unknown"
        response = _dict(entry.get("response"))
        largest_requests.append(LargestRequest(
            url=f"{url[:50]}..." if len(url) > 50 else url,
            size=int(response.get("size") or 0),
            type=str(response.get("type") or "unknown"),
        ))

    return NetworkSummary(
        total_requests=len(urls),
        unique_domains=len(domains),
        unique_ips=len(set(_list(_dict(raw.get("lists")).get("ips")))),
        http_requests=sum(1 for u in urls if u.startswith("http:")),
        https_requests=sum(1 for u in urls if u.startswith("https:")),
        third_party_requests=sum(1 for h in hostnames if h != base_domain),
        third_party_domains=len([d for d in domains if d != base_domain]),
        suspicious_domains=sorted(d for d in domains if is_suspicious_domain(d)),
        largest_requests=largest_requests,
    )


def has_csp_signal(raw: Dict[str, Any]) -> bool:
    if any("content-security-policy" in u.lower() for u in request_urls(raw)):
        return True
    if any("csp" in k.lower() for k in _dict(raw.get("page"))):
        return True
    for entry in _list(_dict(raw.get("data")).get("requests")):
        response = _dict(_dict(entry).get("response"))
        headers = _dict(_dict(response.get("response")).get("headers")) or _dict(response.get("headers"))
        if any(k.lower() == "content-security-policy" for k in headers):
            return True
    return False


def parse_task(raw: Dict[str, Any], fallback_id: str = "") -> ScanTask:
    task = _dict(raw.get("task"))
    success = task.get("success")
    return ScanTask(
        uuid=str(task.get("uuid") or fallback_id),
        url=str(task.get("url") or ""),
        success=success if isinstance(success, bool) else None,
        status=task.get("status"),
        time=task.get("time"),
    )


def parse_scan_result(raw: Dict[str, Any], fallback_id: str = "") -> ScanResult:
    task = parse_task(raw, fallback_id)
    page = _dict(raw.get("page"))
    screenshot = _dict(page.get("screenshot"))
    base_domain = page.get("domain") or _hostname(task.url)

    return ScanResult(
        task=task,
        page=ScanPage(
            url=page.get("url"),
            domain=page.get("domain"),
            country=page.get("country"),
            server=page.get("server"),
            has_screenshot=bool(screenshot.get("dhash") or screenshot.get("hash")),
        ),
        verdicts=parse_verdicts(raw),
        technologies=parse_technologies(raw),
        network=summarize_network(raw, base_domain),
        has_csp=has_csp_signal(raw),
    )
