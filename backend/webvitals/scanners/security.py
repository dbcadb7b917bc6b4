from typing import Dict, List, Optional

from webvitals.core.config import PollBudget, SECURITY_BUDGET
from webvitals.core.logger import get_logger
from webvitals.models.scan import ScanOptions, ScanVisibility, ScreenshotResolution
from webvitals.models.schemas import SecurityScanSummary
from webvitals.scanners.url_scanner import UrlScannerClient, run_scan_job
from webvitals.scoring.security import extract_tech_stack, generate_security_summary, scan_overview

logger = get_logger(__name__)


async def scan_security(
    scanner: UrlScannerClient,
    url: str,
    budget: PollBudget = SECURITY_BUDGET,
    *,
    visibility: ScanVisibility = "Unlisted",
    screenshot_resolutions: Optional[List[ScreenshotResolution]] = None,
    custom_headers: Optional[Dict[str, str]] = None,
) -> SecurityScanSummary:
    options = ScanOptions(custom_headers=custom_headers)
    if screenshot_resolutions is not None:
        options.screenshot_resolutions = list(screenshot_resolutions)

    completed = await run_scan_job(scanner, url, budget, visibility=visibility, options=options)
    result = completed.result
    security = generate_security_summary(result)

    logger.info(
        "Security scan %s for %s: risk=%s score=%d malicious=%s",
        completed.job.id, url, security.risk_level, security.score, security.malicious,
    )
    return SecurityScanSummary(
        scan_id=completed.job.id,
        status=completed.job.status,
        reused=completed.reused,
        overview=scan_overview(result),
        security=security,
        network=result.network,
        technologies=extract_tech_stack(result.technologies),
    )
