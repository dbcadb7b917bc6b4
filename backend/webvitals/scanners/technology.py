from typing import Dict, List

from webvitals.core.config import PollBudget, TECHNOLOGY_BUDGET
from webvitals.core.logger import get_logger
from webvitals.models.scan import ScanOptions, Technology
from webvitals.models.schemas import TechnologyReport, TechnologySummary
from webvitals.scanners.url_scanner import UrlScannerClient, run_scan_job

logger = get_logger(__name__)

# fingerprinting needs no screenshots
TECHNOLOGY_SCAN_OPTIONS = ScanOptions(screenshot_resolutions=[])


def summarize_technologies(technologies: List[Technology]) -> TechnologySummary:
    by_category: Dict[str, List[str]] = {}
    for tech in technologies:
        for category in tech.categories or ["Other"]:
            by_category.setdefault(category, []).append(tech.name)
    return TechnologySummary(total_detected=len(technologies), by_category=by_category)


async def detect_technologies(
    scanner: UrlScannerClient,
    url: str,
    budget: PollBudget = TECHNOLOGY_BUDGET,
) -> TechnologyReport:
    completed = await run_scan_job(
        scanner, url, budget,
        visibility="Unlisted",
        options=TECHNOLOGY_SCAN_OPTIONS,
    )
    technologies = sorted(completed.result.technologies, key=lambda t: t.confidence, reverse=True)

    logger.info(
        "Technology detection for %s: %d technologies (scan %s, reused=%s)",
        url, len(technologies), completed.job.id, completed.reused,
    )
    return TechnologyReport(
        url=url,
        technologies=technologies,
        summary=summarize_technologies(technologies),
    )
