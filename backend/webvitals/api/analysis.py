import httpx
from fastapi import APIRouter, HTTPException, Query

from webvitals.core import engine
from webvitals.core.errors import (
    AnalysisError,
    ConfigurationMissing,
    RateLimitedError,
    ScanTimeoutError,
)
from webvitals.core.logger import get_logger
from webvitals.models.metrics import PerformanceReport
from webvitals.models.schemas import (
    PerformanceRequest,
    ScanSearchResponse,
    SecurityRequest,
    SecurityScanSummary,
    TechnologyReport,
    TechnologyRequest,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/analyze", tags=["analyze"])


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, ConfigurationMissing):
        return HTTPException(status_code=500, detail=str(exc))
    if isinstance(exc, RateLimitedError):
        return HTTPException(status_code=429, detail=str(exc), headers={"Retry-After": "30"})
    if isinstance(exc, ScanTimeoutError):
        return HTTPException(status_code=504, detail=str(exc))
    if isinstance(exc, httpx.HTTPError):
        return HTTPException(status_code=502, detail=f"Upstream unreachable: {exc!r}")
    return HTTPException(status_code=502, detail=f"Analysis failed: {exc}")


@router.post("/performance", response_model=PerformanceReport)
async def performance(body: PerformanceRequest):
    try:
        return await engine.analyze_performance(body.url, body.devices)
    except (AnalysisError, httpx.HTTPError, ValueError) as e:
        logger.error("Performance analysis failed for %s: %s", body.url, e)
        raise _http_error(e)


@router.post("/technology", response_model=TechnologyReport)
async def technology(body: TechnologyRequest):
    try:
        return await engine.analyze_technology(body.url)
    except (AnalysisError, httpx.HTTPError, ValueError) as e:
        logger.error("Technology detection failed for %s: %s", body.url, e)
        raise _http_error(e)


@router.post("/security", response_model=SecurityScanSummary)
async def security(body: SecurityRequest):
    try:
        return await engine.analyze_security(
            body.url,
            visibility=body.visibility,
            custom_headers=body.custom_headers,
            screenshot_resolutions=body.screenshot_resolutions,
        )
    except (AnalysisError, httpx.HTTPError, ValueError) as e:
        logger.error("Security scan failed for %s: %s", body.url, e)
        raise _http_error(e)


@router.get("/scans/search", response_model=ScanSearchResponse)
async def search(
    q: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    try:
        hits = await engine.search_scans(q, limit=limit, offset=offset)
    except (AnalysisError, httpx.HTTPError) as e:
        raise _http_error(e)
    return ScanSearchResponse(query=q, results=hits)
