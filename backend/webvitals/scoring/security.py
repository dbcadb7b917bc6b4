from typing import List, Optional
from urllib.parse import urlsplit

from webvitals.models.scan import ScanResult, ScanVerdicts, Technology
from webvitals.models.schemas import RiskLevel, ScanOverview, SecuritySummary, TechStackSummary
from webvitals.scoring.performance import round_half_up

MALICIOUS_PENALTY = 60
CATEGORY_PENALTY = 5
THIRD_PARTY_PENALTY = 10
THIRD_PARTY_RATIO_LIMIT = 0.8
MIXED_CONTENT_PENALTY = 5
CSP_BONUS = 5
HTTPS_BONUS = 5
EXCESSIVE_DOMAINS = 20


def get_security_risk_level(verdicts: ScanVerdicts) -> RiskLevel:
    if verdicts.malicious:
        threat_count = sum([verdicts.phishing, verdicts.malware, verdicts.spam])
        if threat_count >= 2:
            return "CRITICAL"
        if verdicts.malware or verdicts.phishing:
            return "HIGH"
        return "MEDIUM"

    if any("suspicious" in c.lower() or "risk" in c.lower() for c in verdicts.categories):
        return "LOW"
    return "SAFE"


def calculate_security_score(result: ScanResult) -> int:
    score = 100
    verdicts = result.verdicts
    network = result.network

    if verdicts.malicious:
        score -= MALICIOUS_PENALTY
    score -= len(verdicts.categories) * CATEGORY_PENALTY

    if network.third_party_domain_ratio > THIRD_PARTY_RATIO_LIMIT:
        score -= THIRD_PARTY_PENALTY
    if network.http_requests > 0:
        score -= MIXED_CONTENT_PENALTY

    if result.has_csp:
        score += CSP_BONUS
    if (result.page.url or "").startswith("https:"):
        score += HTTPS_BONUS

    return max(0, min(100, round_half_up(score)))


# ---- threat / recommendation rules


class MaliciousVerdictRule:
    key = "malicious"

    def evaluate(self, result: ScanResult):
        if result.verdicts.malicious:
            return ["Site flagged as malicious"], ["Do not visit or interact with this site"]
        return [], []


class FlaggedCategoryRule:
    key = "categories"

    def evaluate(self, result: ScanResult):
        return [f"Flagged category: {c}" for c in result.verdicts.categories], []


class MixedContentRule:
    key = "mixed_content"

    def evaluate(self, result: ScanResult):
        if result.network.http_requests > 0:
            return ["Mixed HTTP/HTTPS content"], ["Site uses insecure connections"]
        return [], []


class ExcessiveDomainsRule:
    key = "excessive_domains"

    def evaluate(self, result: ScanResult):
        if result.network.unique_domains > EXCESSIVE_DOMAINS:
            return ["Excessive third-party connections"], ["Site connects to many external domains"]
        return [], []


RULES = [
    MaliciousVerdictRule(),
    FlaggedCategoryRule(),
    MixedContentRule(),
    ExcessiveDomainsRule(),
]


def generate_security_summary(result: ScanResult) -> SecuritySummary:
    risk_level = get_security_risk_level(result.verdicts)
    threats: List[str] = []
    recommendations: List[str] = []

    for rule in RULES:
        found, advice = rule.evaluate(result)
        threats.extend(found)
        for item in advice:
            if item not in recommendations:
                recommendations.append(item)

    if not threats and risk_level == "SAFE":
        recommendations.append("Site appears safe based on current analysis")

    return SecuritySummary(
        risk_level=risk_level,
        malicious=result.verdicts.malicious,
        threats=threats,
        recommendations=recommendations,
        score=calculate_security_score(result),
    )


def scan_overview(result: ScanResult) -> ScanOverview:
    task = result.task
    if task.success is True:
        status = "finished"
    elif task.success is False:
        status = "failed"
    else:
        status = "unknown"
    return ScanOverview(
        url=task.url,
        domain=result.page.domain or urlsplit(task.url).hostname or "",
        final_url=result.page.url or task.url,
        country=result.page.country or "Unknown",
        server=result.page.server or "Unknown",
        scan_time=task.time,
        status=status,
        has_screenshot=result.page.has_screenshot,
    )


def _first_matching(categories: List[str], *needles: str) -> Optional[str]:
    return next((c for c in categories if any(n in c for n in needles)), None)


def extract_tech_stack(technologies: List[Technology]) -> TechStackSummary:
    stack = TechStackSummary()
    for tech in technologies:
        categories = [c.lower() for c in tech.categories]
        if "web servers" in categories:
            stack.web_server = tech.name
        elif "web frameworks" in categories:
            stack.framework = tech.name
        elif "cms" in categories:
            stack.cms = tech.name
        elif _first_matching(categories, "analytics"):
            stack.analytics.append(tech.name)
        elif _first_matching(categories, "javascript", "libraries"):
            stack.libraries.append(tech.name)
        elif _first_matching(categories, "security"):
            stack.security.append(tech.name)
        elif _first_matching(categories, "advertising"):
            stack.advertising.append(tech.name)
        else:
            stack.other.append(tech)
    return stack
