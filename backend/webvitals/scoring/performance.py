import math
from typing import Dict, Mapping, Tuple

from webvitals.models.metrics import FieldMetric, PerformanceScoreBreakdown, ScoredMetric

# Lighthouse 10 weights
LIGHTHOUSE_WEIGHTS: Dict[str, float] = {
    "largest_contentful_paint": 0.25,
    "interaction_to_next_paint": 0.25,
    "cumulative_layout_shift": 0.25,
    "first_contentful_paint": 0.10,
    "experimental_time_to_first_byte": 0.15,
}

# (good, poor)
LIGHTHOUSE_THRESHOLDS: Dict[str, Tuple[float, float]] = {
    "largest_contentful_paint": (2500, 4000),
    "interaction_to_next_paint": (200, 500),
    "cumulative_layout_shift": (0.1, 0.25),
    "first_contentful_paint": (1800, 3000),
    "experimental_time_to_first_byte": (800, 1800),
}

METRIC_LABELS: Dict[str, str] = {
    "largest_contentful_paint": "LCP",
    "interaction_to_next_paint": "INP",
    "cumulative_layout_shift": "CLS",
    "first_contentful_paint": "FCP",
    "experimental_time_to_first_byte": "TTFB",
    "first_input_delay": "FID",
}

UNKNOWN_METRIC_SCORE = 50


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_metric_score(metric_key: str, value: float) -> int:
    thresholds = LIGHTHOUSE_THRESHOLDS.get(metric_key)
    if thresholds is None:
        return UNKNOWN_METRIC_SCORE
    good, poor = thresholds

    if value <= good:
        return 100
    if value >= poor:
        return 0
    return round_half_up(100 - (value - good) / (poor - good) * 100)


def calculate_lighthouse_score(metrics: Mapping[str, FieldMetric]) -> PerformanceScoreBreakdown:
    """Weighted score over the metrics present.

    The denominator is the sum of the weights actually present, so a missing
    metric redistributes its weight instead of counting as zero.
    """
    total_score = 0.0
    total_weight = 0.0
    scored = []

    for key, weight in LIGHTHOUSE_WEIGHTS.items():
        metric = metrics.get(key)
        if metric is None:
            continue
        score = calculate_metric_score(key, metric.percentile)
        total_score += score * weight
        total_weight += weight
        scored.append(ScoredMetric(
            key=key.replace("_", "-"),
            label=METRIC_LABELS.get(key, key),
            value=metric.percentile,
            weight=weight,
            score=score,
        ))

    overall = round_half_up(total_score / total_weight) if total_weight > 0 else 0
    return PerformanceScoreBreakdown(overall_score=overall, metrics=scored)
