import httpx
import pytest

from webvitals.core.config import RetryPolicy
from webvitals.core.errors import RateLimitedError
from webvitals.core.http import backoff_delays, request_with_backoff

from conftest import mock_client


def test_backoff_doubles_from_one_second():
    assert list(backoff_delays(RetryPolicy())) == [1.0, 2.0, 4.0, 8.0]


def test_backoff_is_capped_at_max_delay():
    delays = list(backoff_delays(RetryPolicy(initial_delay=8.0, max_attempts=6)))
    assert delays == [8.0, 16.0, 30.0, 30.0, 30.0]
    assert all(later >= earlier for earlier, later in zip(delays, delays[1:]))


@pytest.mark.anyio
async def test_429_is_retried_until_success(clock):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(429)
        return httpx.Response(200, json={"ok": True})

    async with mock_client(handler) as client:
        response = await request_with_backoff(client, "GET", "/search", sleep=clock.sleep, clock=clock)

    assert response.status_code == 200
    assert len(calls) == 3
    assert clock.sleeps == [1.0, 2.0]


@pytest.mark.anyio
async def test_429_gives_up_after_five_attempts(clock):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429)

    async with mock_client(handler) as client:
        with pytest.raises(RateLimitedError) as excinfo:
            await request_with_backoff(client, "GET", "/search", sleep=clock.sleep, clock=clock)

    assert len(calls) == 5
    assert excinfo.value.attempts == 5
    assert clock.sleeps == [1.0, 2.0, 4.0, 8.0]


@pytest.mark.anyio
async def test_429_gives_up_when_retry_budget_is_spent(clock):
    def handler(request):
        return httpx.Response(429)

    policy = RetryPolicy(budget=5.0)
    async with mock_client(handler) as client:
        with pytest.raises(RateLimitedError) as excinfo:
            await request_with_backoff(client, "GET", "/x", policy=policy, sleep=clock.sleep, clock=clock)

    # 1s + 2s fit in the budget, the next 4s would not
    assert clock.sleeps == [1.0, 2.0]
    assert excinfo.value.attempts == 3
    assert clock.now <= policy.budget


@pytest.mark.anyio
async def test_other_errors_are_not_retried(clock):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, text="boom")

    async with mock_client(handler) as client:
        response = await request_with_backoff(client, "GET", "/x", sleep=clock.sleep, clock=clock)

    assert response.status_code == 500
    assert len(calls) == 1
    assert clock.sleeps == []
