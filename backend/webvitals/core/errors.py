from typing import Dict, Iterable


class AnalysisError(Exception):
    """Base class for every error raised by the scan and scoring layer."""


class ConfigurationMissing(AnalysisError):
    def __init__(self, names: Iterable[str]):
        self.names = list(names)
        super().__init__(
            f"Configuration missing: {', '.join(self.names)} must be set in the environment or .env"
        )


class HttpError(AnalysisError):
    def __init__(self, status_code: int, message: str, service: str = "upstream"):
        self.status_code = status_code
        self.message = message
        self.service = service
        super().__init__(f"{service} API error {status_code}: {message}")


class ScanSubmissionError(HttpError):
    def __init__(self, status_code: int, message: str):
        super().__init__(status_code, message, service="URL Scanner submission")


class RateLimitedError(AnalysisError):
    def __init__(self, attempts: int, elapsed: float):
        self.attempts = attempts
        self.elapsed = elapsed
        super().__init__(f"Rate limited after {attempts} attempts over {elapsed:.1f}s")


class ScanFailedError(AnalysisError):
    def __init__(self, job_id: str, reason: str = "Scan failed"):
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Scan {job_id} failed: {reason}")


class ScanTimeoutError(AnalysisError):
    def __init__(self, job_id: str, attempts: int, elapsed: float):
        self.job_id = job_id
        self.attempts = attempts
        self.elapsed = elapsed
        super().__init__(
            f"Scan {job_id} did not complete within {elapsed:.1f}s ({attempts} attempts)"
        )


class AggregateFetchError(AnalysisError):
    def __init__(self, failures: Dict[str, BaseException]):
        self.failures = dict(failures)
        detail = "; ".join(f"{device}: {exc}" for device, exc in self.failures.items())
        super().__init__(f"Field data fetch failed for every device ({detail})")
