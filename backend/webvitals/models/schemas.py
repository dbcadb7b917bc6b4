from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from webvitals.models.metrics import DeviceType
from webvitals.models.scan import NetworkSummary, ScanSearchHit, ScanVisibility, ScreenshotResolution, Technology

RiskLevel = Literal["SAFE", "LOW", "MEDIUM", "HIGH", "CRITICAL"]


class PerformanceRequest(BaseModel):
    url: str = Field(..., min_length=1)
    devices: Optional[List[DeviceType]] = None  # default: both


class TechnologyRequest(BaseModel):
    url: str = Field(..., min_length=1)


class SecurityRequest(BaseModel):
    url: str = Field(..., min_length=1)
    visibility: ScanVisibility = "Unlisted"
    screenshot_resolutions: List[ScreenshotResolution] = Field(default_factory=lambda: ["desktop"])
    custom_headers: Optional[Dict[str, str]] = None


class TechnologySummary(BaseModel):
    total_detected: int = 0
    by_category: Dict[str, List[str]] = Field(default_factory=dict)


class TechnologyReport(BaseModel):
    url: str
    technologies: List[Technology] = Field(default_factory=list)
    summary: TechnologySummary = Field(default_factory=TechnologySummary)


class SecuritySummary(BaseModel):
    risk_level: RiskLevel
    malicious: bool
    threats: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    score: int = Field(ge=0, le=100)  # higher is safer


class ScanOverview(BaseModel):
    url: str
    domain: str
    final_url: str
    country: str = "Unknown"
    server: str = "Unknown"
    scan_time: Optional[str] = None
    status: Literal["finished", "failed", "unknown"] = "unknown"
    has_screenshot: bool = False


class TechStackSummary(BaseModel):
    web_server: Optional[str] = None
    framework: Optional[str] = None
    cms: Optional[str] = None
    analytics: List[str] = Field(default_factory=list)
    libraries: List[str] = Field(default_factory=list)
    security: List[str] = Field(default_factory=list)
    advertising: List[str] = Field(default_factory=list)
    other: List[Technology] = Field(default_factory=list)


class SecurityScanSummary(BaseModel):
    scan_id: str
    status: str
    reused: bool = False
    overview: ScanOverview
    security: SecuritySummary
    network: NetworkSummary
    technologies: TechStackSummary


class ScanSearchResponse(BaseModel):
    query: str
    results: List[ScanSearchHit] = Field(default_factory=list)
