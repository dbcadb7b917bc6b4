from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

ScanVisibility = Literal["Public", "Unlisted"]
ScreenshotResolution = Literal["desktop", "mobile", "tablet"]
JobStatus = Literal["Submitted", "Reused", "Running", "Finished", "Failed", "TimedOut"]


class ScanJob(BaseModel):
    id: str
    target_url: str
    visibility: ScanVisibility = "Unlisted"
    status: JobStatus = "Submitted"


class ScanOptions(BaseModel):
    screenshot_resolutions: List[ScreenshotResolution] = Field(default_factory=lambda: ["desktop"])
    custom_headers: Optional[Dict[str, str]] = None
    custom_agent: Optional[str] = None
    referer: Optional[str] = None

    def to_payload(self, url: str, visibility: ScanVisibility) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "url": url,
            "visibility": visibility,
            "screenshotsResolutions": list(self.screenshot_resolutions),
        }
        if self.custom_headers:
            payload["customHeaders"] = dict(self.custom_headers)
        if self.custom_agent:
            payload["customagent"] = self.custom_agent
        if self.referer:
            payload["referer"] = self.referer
        return payload


class ScanVerdicts(BaseModel):
    malicious: bool = False
    categories: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    phishing: bool = False
    malware: bool = False
    spam: bool = False


class Technology(BaseModel):
    name: str
    confidence: int = Field(0, ge=0, le=100)
    categories: List[str] = Field(default_factory=list)


class LargestRequest(BaseModel):
    url: str
    size: int
    type: str


class NetworkSummary(BaseModel):
    total_requests: int = 0
    unique_domains: int = 0
    unique_ips: int = 0
    http_requests: int = 0
    https_requests: int = 0
    third_party_requests: int = 0
    third_party_domains: int = 0
    suspicious_domains: List[str] = Field(default_factory=list)
    largest_requests: List[LargestRequest] = Field(default_factory=list)

    @property
    def third_party_domain_ratio(self) -> float:
        if not self.unique_domains:
            return 0.0
        return self.third_party_domains / self.unique_domains


class ScanTask(BaseModel):
    uuid: str
    url: str
    success: Optional[bool] = None
    status: Optional[str] = None
    time: Optional[str] = None


class ScanPage(BaseModel):
    url: Optional[str] = None
    domain: Optional[str] = None
    country: Optional[str] = None
    server: Optional[str] = None
    has_screenshot: bool = False


class ScanResult(BaseModel):
    task: ScanTask
    page: ScanPage = Field(default_factory=ScanPage)
    verdicts: ScanVerdicts = Field(default_factory=ScanVerdicts)
    technologies: List[Technology] = Field(default_factory=list)  # confidence descending
    network: NetworkSummary = Field(default_factory=NetworkSummary)
    has_csp: bool = False


class ScanSearchHit(BaseModel):
    job_id: str
    url: str
    time: Optional[str] = None
    visibility: Optional[str] = None
    domain: Optional[str] = None
    malicious: Optional[bool] = None


# ---- Submission response variants


@dataclass(frozen=True)
class NewJob:
    job_id: str


@dataclass(frozen=True)
class ReusedJob:
    job_id: str


@dataclass(frozen=True)
class MalformedSubmission:
    status_code: int
    message: str


SubmissionOutcome = Union[NewJob, ReusedJob, MalformedSubmission]


# ---- Result fetch variants


@dataclass(frozen=True)
class Ready:
    result: ScanResult


@dataclass(frozen=True)
class NotReady:
    detail: str = ""


@dataclass(frozen=True)
class Failed:
    reason: str


FetchOutcome = Union[Ready, NotReady, Failed]


@dataclass(frozen=True)
class PollOutcome:
    result: ScanResult
    attempts: int
    elapsed_ms: int


@dataclass(frozen=True)
class CompletedScan:
    job: ScanJob
    result: ScanResult
    attempts: int
    elapsed_ms: int
    reused: bool = False
