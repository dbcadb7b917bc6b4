from typing import Annotated, Dict, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, Field, model_validator

DeviceType = Literal["mobile", "desktop"]
PerformanceCategory = Literal["FAST", "AVERAGE", "SLOW"]

DEVICES: tuple = ("mobile", "desktop")
DISTRIBUTION_TOLERANCE = 0.01

# CrUX and the newer PSI payloads disagree on naming
CATEGORY_ALIASES = {
    "GOOD": "FAST",
    "NEEDS_IMPROVEMENT": "AVERAGE",
    "POOR": "SLOW",
}


def _normalize_category(value):
    if isinstance(value, str):
        upper = value.strip().upper()
        return CATEGORY_ALIASES.get(upper, upper)
    return value


Category = Annotated[PerformanceCategory, BeforeValidator(_normalize_category)]


def _lenient_category(value):
    # PSI reports "NONE" when a device has too little traffic for a verdict
    value = _normalize_category(value)
    return value if value in ("FAST", "AVERAGE", "SLOW") else None


OverallCategory = Annotated[Optional[PerformanceCategory], BeforeValidator(_lenient_category)]


class MetricDistribution(BaseModel):
    min: float
    max: Optional[float] = None
    proportion: float = Field(ge=0.0, le=1.0)


class FieldMetric(BaseModel):
    percentile: float
    category: Category
    distributions: List[MetricDistribution] = Field(default_factory=list)

    @model_validator(mode="after")
    def _distributions_sum_to_one(self):
        if len(self.distributions) == 3:
            total = sum(d.proportion for d in self.distributions)
            if abs(total - 1.0) > DISTRIBUTION_TOLERANCE:
                raise ValueError(f"distribution proportions sum to {total:.4f}, expected ~1.0")
        return self


class ScoredMetric(BaseModel):
    key: str
    label: str
    value: float
    weight: float
    score: int


class PerformanceScoreBreakdown(BaseModel):
    overall_score: int = Field(ge=0, le=100)
    metrics: List[ScoredMetric] = Field(default_factory=list)


class FieldDataSet(BaseModel):
    overall_category: OverallCategory = None
    metrics: Dict[str, FieldMetric] = Field(default_factory=dict)
    score: Optional[PerformanceScoreBreakdown] = None


class PerformanceReport(BaseModel):
    url: str
    has_data: bool = False
    mobile: Optional[FieldDataSet] = None
    desktop: Optional[FieldDataSet] = None
