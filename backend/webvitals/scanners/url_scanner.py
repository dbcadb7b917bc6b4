"""Client for the Cloudflare URL Scanner v2 API.

Every scan, whether a technology fingerprint or a full security scan, goes
through the same shape: look for a recent scan of the URL, otherwise submit
one, then poll the result endpoint until the job is terminal.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

import httpx

from webvitals.core.config import PollBudget, RetryPolicy
from webvitals.core.errors import AnalysisError, HttpError, ScanFailedError, ScanSubmissionError, ScanTimeoutError
from webvitals.core.http import Clock, Sleep, request_with_backoff
from webvitals.core.logger import get_logger
from webvitals.models.scan import (
    CompletedScan,
    Failed,
    FetchOutcome,
    MalformedSubmission,
    NewJob,
    NotReady,
    PollOutcome,
    Ready,
    ReusedJob,
    ScanJob,
    ScanOptions,
    ScanSearchHit,
    ScanVisibility,
    SubmissionOutcome,
)
from webvitals.scanners.payload import parse_scan_result

logger = get_logger(__name__)

API_ROOT = "https://api.cloudflare.com/client/v4/accounts"
SERVICE = "URL Scanner"


def scanner_base_url(account_id: str) -> str:
    return f"{API_ROOT}/{account_id}/urlscanner/v2"


def build_url_query(target_url: str) -> str:
    return f'task.url:"{target_url}"'


def _json(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error_message(response: httpx.Response) -> str:
    body = _json(response)
    errors = body.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        if errors[0].get("message"):
            return str(errors[0]["message"])
    if body.get("message"):
        return str(body["message"])
    return response.text or response.reason_phrase


def parse_submission(status_code: int, body: Dict[str, Any], message: str = "") -> SubmissionOutcome:
    if 200 <= status_code < 300:
        if body.get("uuid"):
            return NewJob(job_id=str(body["uuid"]))
        return MalformedSubmission(status_code, "submission response carried no scan id")

    if status_code == 409:
        # already queued or scanned: the body points at the existing task
        result = body.get("result") if isinstance(body.get("result"), dict) else {}
        tasks = result.get("tasks")
        if isinstance(tasks, list) and tasks and isinstance(tasks[0], dict) and tasks[0].get("uuid"):
            return ReusedJob(job_id=str(tasks[0]["uuid"]))

    return MalformedSubmission(status_code, message or "unexpected submission response")


def _search_entries(body: Dict[str, Any]) -> List[Dict[str, Any]]:
    if isinstance(body.get("results"), list):
        return [e for e in body["results"] if isinstance(e, dict)]
    result = body.get("result")
    if isinstance(result, dict) and isinstance(result.get("search"), list):
        return [e for e in result["search"] if isinstance(e, dict)]
    return []


def _search_hit(entry: Dict[str, Any]) -> Optional[ScanSearchHit]:
    task = entry.get("task") if isinstance(entry.get("task"), dict) else {}
    page = entry.get("page") if isinstance(entry.get("page"), dict) else {}
    verdicts = entry.get("verdicts") if isinstance(entry.get("verdicts"), dict) else {}
    overall = verdicts.get("overall") if isinstance(verdicts.get("overall"), dict) else verdicts
    if not task.get("uuid"):
        return None
    malicious = overall.get("malicious")
    return ScanSearchHit(
        job_id=str(task["uuid"]),
        url=str(task.get("url") or page.get("url") or ""),
        time=task.get("time"),
        visibility=task.get("visibility"),
        domain=page.get("domain") or task.get("domain"),
        malicious=malicious if isinstance(malicious, bool) else None,
    )


class UrlScannerClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        retry: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ):
        self._client = client
        self._retry = retry or RetryPolicy()
        self._sleep = sleep
        self._clock = clock

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        return await request_with_backoff(
            self._client, method, path,
            policy=self._retry, sleep=self._sleep, clock=self._clock, **kwargs,
        )

    async def search(self, query: str, limit: int = 20, offset: int = 0) -> List[ScanSearchHit]:
        params: Dict[str, Any] = {"q": query, "limit": max(1, min(100, limit))}
        if offset:
            params["offset"] = offset
        response = await self._send("GET", "/search", params=params)
        if not response.is_success:
            raise HttpError(response.status_code, _error_message(response), service=SERVICE)
        hits = [_search_hit(e) for e in _search_entries(_json(response))]
        return [h for h in hits if h is not None]

    async def find_recent(self, target_url: str) -> Optional[ScanJob]:
        # most recent match wins regardless of age
        hits = await self.search(build_url_query(target_url), limit=1)
        if not hits:
            return None
        return ScanJob(id=hits[0].job_id, target_url=target_url, status="Reused")

    async def submit(
        self,
        target_url: str,
        visibility: ScanVisibility = "Unlisted",
        options: Optional[ScanOptions] = None,
    ) -> ScanJob:
        options = options or ScanOptions()
        response = await self._send("POST", "/scan", json=options.to_payload(target_url, visibility))
        message = "" if response.is_success else _error_message(response)
        outcome = parse_submission(response.status_code, _json(response), message)

        if isinstance(outcome, NewJob):
            logger.info("Submitted scan %s for %s", outcome.job_id, target_url)
            return ScanJob(id=outcome.job_id, target_url=target_url, visibility=visibility, status="Submitted")
        if isinstance(outcome, ReusedJob):
            logger.info("Scanner already holds scan %s for %s (409)", outcome.job_id, target_url)
            return ScanJob(id=outcome.job_id, target_url=target_url, visibility=visibility, status="Reused")
        if isinstance(outcome, MalformedSubmission):
            raise ScanSubmissionError(outcome.status_code, outcome.message)
        raise TypeError(f"unhandled submission outcome {outcome!r}")

    async def fetch_result(self, job_id: str) -> FetchOutcome:
        response = await self._send("GET", f"/result/{job_id}")

        if response.status_code == 404:
            return NotReady(detail="404")
        if not response.is_success:
            message = _error_message(response)
            if "not ready" in message.lower():
                return NotReady(detail=message)
            raise HttpError(response.status_code, message, service=SERVICE)

        raw = _json(response)
        task = raw.get("task")
        if not isinstance(task, dict):
            raise HttpError(response.status_code, "malformed result payload", service=SERVICE)
        success = task.get("success")
        if success is True:
            return Ready(result=parse_scan_result(raw, fallback_id=job_id))
        if success is False:
            errors = task.get("errors") if isinstance(task.get("errors"), list) else []
            reason = next(
                (str(e.get("message")) for e in errors if isinstance(e, dict) and e.get("message")),
                "Scan failed",
            )
            return Failed(reason=reason)
        return NotReady(detail=str(task.get("status") or "pending"))

    async def await_completion(self, job_id: str, budget: PollBudget) -> PollOutcome:
        started = self._clock()
        attempts = 0

        while True:
            attempts += 1
            remaining = budget.max_wait - (self._clock() - started)
            try:
                # one fetch, 429 backoff included, may not outlive the deadline
                outcome = await asyncio.wait_for(self.fetch_result(job_id), timeout=max(remaining, 0.0))
            except asyncio.TimeoutError:
                raise ScanTimeoutError(job_id, attempts=attempts, elapsed=self._clock() - started)
            elapsed = self._clock() - started

            if isinstance(outcome, Ready):
                return PollOutcome(result=outcome.result, attempts=attempts, elapsed_ms=int(elapsed * 1000))
            if isinstance(outcome, Failed):
                raise ScanFailedError(job_id, outcome.reason)

            if elapsed + budget.poll_interval > budget.max_wait:
                raise ScanTimeoutError(job_id, attempts=attempts, elapsed=elapsed)
            logger.debug("Scan %s not ready (%s), attempt %d", job_id, outcome.detail, attempts)
            await self._sleep(budget.poll_interval)


async def run_scan_job(
    scanner: UrlScannerClient,
    target_url: str,
    budget: PollBudget,
    *,
    visibility: ScanVisibility = "Unlisted",
    options: Optional[ScanOptions] = None,
) -> CompletedScan:
    """Search, submit if needed, then poll the job to a terminal state."""
    job: Optional[ScanJob] = None
    try:
        job = await scanner.find_recent(target_url)
    except (AnalysisError, httpx.HTTPError) as e:
        logger.warning("Scan search failed for %s, submitting a new scan: %s", target_url, e)

    if job is not None:
        logger.info("Reusing recent scan %s for %s", job.id, target_url)
    else:
        job = await scanner.submit(target_url, visibility, options)
    reused = job.status == "Reused"

    outcome = await scanner.fetch_result(job.id)
    if isinstance(outcome, Ready):
        return CompletedScan(
            job=job.model_copy(update={"status": "Finished"}),
            result=outcome.result, attempts=1, elapsed_ms=0, reused=reused,
        )
    if isinstance(outcome, Failed):
        raise ScanFailedError(job.id, outcome.reason)

    job = job.model_copy(update={"status": "Running"})
    try:
        poll = await scanner.await_completion(job.id, budget)
    except ScanTimeoutError:
        logger.warning("Scan %s for %s timed out client-side", job.id, target_url)
        raise

    logger.info("Scan %s finished after %d polls (%d ms)", job.id, poll.attempts, poll.elapsed_ms)
    return CompletedScan(
        job=job.model_copy(update={"status": "Finished"}),
        result=poll.result, attempts=poll.attempts + 1, elapsed_ms=poll.elapsed_ms, reused=reused,
    )
