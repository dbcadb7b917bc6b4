import asyncio
import time
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Dict, Iterator, Optional

import httpx

from webvitals.core.config import RetryPolicy
from webvitals.core.errors import RateLimitedError
from webvitals.core.logger import get_logger

logger = get_logger(__name__)

DEFAULT_UA = "WebVitalsAnalyzer/1.0 (+https://webvitals.local)"

TIMEOUT = httpx.Timeout(30.0, connect=5.0)
HEADERS = {"User-Agent": DEFAULT_UA, "Accept": "application/json"}

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


@asynccontextmanager
async def client_for(
    base_url: str = "",
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
):
    async with httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(timeout, connect=5.0) if timeout else TIMEOUT,
        headers={**HEADERS, **(headers or {})},
        follow_redirects=True,
        http2=True,
        verify=True,
    ) as client:
        yield client


def backoff_delays(policy: RetryPolicy) -> Iterator[float]:
    """Delays slept between attempts: doubling from initial_delay, capped at max_delay."""
    delay = policy.initial_delay
    for _ in range(policy.max_attempts - 1):
        yield min(delay, policy.max_delay)
        delay *= 2


async def request_with_backoff(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    policy: Optional[RetryPolicy] = None,
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.monotonic,
    **kwargs,
) -> httpx.Response:
    """Send a request, retrying only on HTTP 429.

    Any other status is handed back to the caller untouched. Raises
    RateLimitedError once max_attempts or the overall budget is exhausted.
    """
    policy = policy or RetryPolicy()
    started = clock()
    delays = backoff_delays(policy)
    attempts = 0

    while True:
        attempts += 1
        response = await client.request(method, url, **kwargs)
        if response.status_code != 429:
            return response

        elapsed = clock() - started
        delay = next(delays, None)
        if delay is None or elapsed + delay > policy.budget:
            raise RateLimitedError(attempts=attempts, elapsed=elapsed)

        logger.warning(
            "429 from %s %s (attempt %d/%d), retrying in %.1fs",
            method, response.request.url, attempts, policy.max_attempts, delay,
        )
        await sleep(delay)
