"""Real-user (CrUX) field data for mobile and desktop, fetched side by side."""

import asyncio
import time
from typing import Any, Dict, Iterable, List, Optional

import httpx
from pydantic import ValidationError

from webvitals.core.config import FIELD_DATA_TIMEOUT, RetryPolicy
from webvitals.core.errors import AggregateFetchError, HttpError
from webvitals.core.http import Clock, Sleep, request_with_backoff
from webvitals.core.logger import get_logger
from webvitals.models.metrics import DEVICES, DeviceType, FieldDataSet, FieldMetric, PerformanceReport

logger = get_logger(__name__)

PAGESPEED_URL = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
SERVICE = "PageSpeed Insights"

# Raw API key -> canonical key. Later entries win when both spellings are present.
FIELD_MAPPING: Dict[str, str] = {
    "FIRST_CONTENTFUL_PAINT": "first_contentful_paint",
    "FIRST_CONTENTFUL_PAINT_MS": "first_contentful_paint",
    "LARGEST_CONTENTFUL_PAINT": "largest_contentful_paint",
    "LARGEST_CONTENTFUL_PAINT_MS": "largest_contentful_paint",
    "CUMULATIVE_LAYOUT_SHIFT": "cumulative_layout_shift",
    "CUMULATIVE_LAYOUT_SHIFT_SCORE": "cumulative_layout_shift",
    "INTERACTION_TO_NEXT_PAINT": "interaction_to_next_paint",
    "EXPERIMENTAL_TIME_TO_FIRST_BYTE": "experimental_time_to_first_byte",
    "FIRST_INPUT_DELAY": "first_input_delay",
}

# CLS percentiles and bucket bounds are reported multiplied by 100
SCALED_METRICS = {"cumulative_layout_shift": 100.0}


def _scale(value: Any, factor: float) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value / factor
    return value


def _to_field_metric(key: str, raw: Dict[str, Any]) -> FieldMetric:
    factor = SCALED_METRICS.get(key, 1.0)
    distributions = []
    for bucket in raw.get("distributions") or []:
        if not isinstance(bucket, dict):
            continue
        distributions.append({
            "min": _scale(bucket.get("min", 0), factor),
            "max": _scale(bucket.get("max"), factor),
            "proportion": bucket.get("proportion", 0),
        })
    return FieldMetric(
        percentile=_scale(raw.get("percentile"), factor),
        category=raw.get("category"),
        distributions=distributions,
    )


def transform_metrics(raw_metrics: Dict[str, Any]) -> Dict[str, FieldMetric]:
    result: Dict[str, FieldMetric] = {}
    for api_key, field_key in FIELD_MAPPING.items():
        raw = raw_metrics.get(api_key)
        if not isinstance(raw, dict):
            continue
        try:
            result[field_key] = _to_field_metric(field_key, raw)
        except ValidationError as e:
            logger.warning("Dropping malformed %s metric: %s", api_key, e.errors()[0].get("msg"))
    return result


def to_field_data_set(payload: Dict[str, Any]) -> Optional[FieldDataSet]:
    """Build a device's data set, or None when the source has no usable metrics."""
    experience = payload.get("loadingExperience")
    if not isinstance(experience, dict):
        return None
    metrics = transform_metrics(experience.get("metrics") or {})
    if not metrics:
        return None
    return FieldDataSet(overall_category=experience.get("overall_category"), metrics=metrics)


class FieldMetricsAggregator:
    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        *,
        timeout: float = FIELD_DATA_TIMEOUT,
        retry: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ):
        self._client = client
        self._api_key = api_key
        self._timeout = timeout
        self._retry = retry or RetryPolicy()
        self._sleep = sleep
        self._clock = clock

    async def fetch_device(self, url: str, strategy: DeviceType) -> Dict[str, Any]:
        response = await request_with_backoff(
            self._client, "GET", PAGESPEED_URL,
            params={
                "url": url,
                "strategy": strategy,
                "fields": "loadingExperience,originLoadingExperience",
                "key": self._api_key,
            },
            timeout=self._timeout,
            policy=self._retry, sleep=self._sleep, clock=self._clock,
        )
        if not response.is_success:
            raise HttpError(
                response.status_code,
                f"CrUX request failed for {strategy}: {response.reason_phrase}",
                service=SERVICE,
            )
        body = response.json()
        return body if isinstance(body, dict) else {}

    async def fetch(self, url: str, devices: Optional[Iterable[DeviceType]] = None) -> PerformanceReport:
        requested: List[DeviceType] = [d for d in DEVICES if d in set(devices or DEVICES)]
        results = await asyncio.gather(
            *(self.fetch_device(url, device) for device in requested),
            return_exceptions=True,
        )

        report = PerformanceReport(url=url)
        failures: Dict[str, BaseException] = {}
        for device, outcome in zip(requested, results):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("Field data fetch failed for %s (%s): %s", url, device, outcome)
                failures[device] = outcome
                continue
            data_set = to_field_data_set(outcome)
            if data_set is not None:
                setattr(report, device, data_set)
                report.has_data = True

        if requested and len(failures) == len(requested):
            raise AggregateFetchError(failures)

        logger.info(
            "Field data for %s: mobile=%s desktop=%s",
            url, report.mobile is not None, report.desktop is not None,
        )
        return report
