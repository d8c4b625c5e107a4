"""Value types shared by the gateway, the data sources and the engine."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

STATISTIC_OPS = ("count", "sum", "avg", "min", "max", "stddev", "var")

T = TypeVar("T")


# ---------- queries ----------

@dataclass(frozen=True)
class StatisticDefinition:
    op: str
    field: str
    output_name: str

    def __post_init__(self):
        if self.op not in STATISTIC_OPS:
            raise ValueError(f"Unsupported statistic type: {self.op!r}")

    def to_dict(self) -> Dict[str, str]:
        return {
            "statisticType": self.op,
            "onStatisticField": self.field,
            "outStatisticFieldName": self.output_name,
        }


@dataclass(frozen=True)
class QueryOptions:
    """One request against an attribute source. Never mutated once built."""

    where: str = "1=1"
    out_fields: Tuple[str, ...] = ()
    out_statistics: Tuple[StatisticDefinition, ...] = ()
    group_by: Tuple[str, ...] = ()
    order_by: Tuple[str, ...] = ()
    return_distinct_values: bool = False
    return_extent_only: bool = False
    limit: Optional[int] = None

    def fingerprint(self) -> Dict[str, Any]:
        return {
            "where": self.where,
            "outFields": list(self.out_fields),
            "outStatistics": [s.to_dict() for s in self.out_statistics],
            "groupByFieldsForStatistics": list(self.group_by),
            "orderByFields": list(self.order_by),
            "returnDistinctValues": self.return_distinct_values,
            "returnExtentOnly": self.return_extent_only,
            "resultRecordCount": self.limit,
        }


@dataclass(frozen=True)
class BoundingBox:
    xmin: float
    ymin: float
    xmax: float
    ymax: float
    wkid: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "xmin": self.xmin,
            "ymin": self.ymin,
            "xmax": self.xmax,
            "ymax": self.ymax,
            "wkid": self.wkid,
        }


@dataclass
class ResponseMetadata:
    timestamp: datetime
    duration: float = 0.0
    cached: bool = False


@dataclass
class QueryResponse(Generic[T]):
    """Gateway result. Check ``success`` before reading ``data``."""

    data: Optional[T]
    success: bool
    metadata: ResponseMetadata
    error: Optional[Exception] = None


# ---------- statistics tree ----------

def _prune(value: Any) -> Any:
    if hasattr(value, "__dataclass_fields__"):
        out = {}
        for f in fields(value):
            v = getattr(value, f.name)
            if v is None:
                continue
            out[f.name] = _prune(v)
        return out
    if isinstance(value, list):
        return [_prune(v) for v in value]
    if isinstance(value, dict):
        return {k: _prune(v) for k, v in value.items() if v is not None}
    if isinstance(value, datetime):
        return value.isoformat()
    return value


@dataclass
class SegmentStatistic:
    count: int
    length_km: float
    percentage: float
    label: str
    model_type: Optional[str] = None


@dataclass
class ScenarioStatistics:
    scenario: str
    title: str
    return_period: str
    total_affected: SegmentStatistic
    model_breakdown: List[SegmentStatistic]
    risk_level: str


@dataclass
class EventCountStatistic:
    key: str
    label: str
    count: float


@dataclass
class PastEventStatistics:
    title: str
    description: str
    total_affected: SegmentStatistic
    event_breakdown: List[SegmentStatistic]
    event_counts: List[EventCountStatistic]
    risk_level: str


@dataclass
class RainfallCategoryDistribution:
    category: int
    label: str
    count: int
    length_km: float
    percentage: float


@dataclass
class RainfallAnalysis:
    label: str
    average: float
    min: float
    max: float
    category_distribution: List[RainfallCategoryDistribution]
    high_risk: SegmentStatistic


@dataclass
class InundationAnalysis:
    scenario: str
    label: str
    average_depth: float
    max_depth: float
    high_risk_segments: SegmentStatistic
    critical_risk_segments: SegmentStatistic


@dataclass
class AreaBreakdown:
    key: str
    label: str
    count: int
    length_km: float
    percentage: float


@dataclass
class CombinedRisk:
    high_rainfall_high_inundation: SegmentStatistic
    critical_infrastructure_at_risk: SegmentStatistic
    lifeline_routes_affected: SegmentStatistic


@dataclass
class PrecipitationStatistics:
    title: str
    description: str
    total_affected: SegmentStatistic
    risk_level: str
    rainfall_analysis: Dict[str, RainfallAnalysis] = field(default_factory=dict)
    inundation_analysis: Dict[str, InundationAnalysis] = field(default_factory=dict)
    geographic_breakdown: List[AreaBreakdown] = field(default_factory=list)
    subnet_breakdown: List[AreaBreakdown] = field(default_factory=list)
    combined_risk: Optional[CombinedRisk] = None


@dataclass
class NetworkStatistics:
    """Root of the statistics tree.

    Exactly one of ``scenarios``, ``past_events`` or ``precipitation`` is
    set; the others stay ``None`` ("not computed") and are left out of
    :meth:`to_dict`. ``degraded`` names the metrics that fell back to zero
    because their query failed.
    """

    total_segments: int
    total_length_km: float
    last_updated: datetime
    scenarios: Optional[List[ScenarioStatistics]] = None
    past_events: Optional[PastEventStatistics] = None
    precipitation: Optional[PrecipitationStatistics] = None
    degraded: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return _prune(self)


__all__ = [
    "AreaBreakdown",
    "BoundingBox",
    "CombinedRisk",
    "EventCountStatistic",
    "InundationAnalysis",
    "NetworkStatistics",
    "PastEventStatistics",
    "PrecipitationStatistics",
    "QueryOptions",
    "QueryResponse",
    "RainfallAnalysis",
    "RainfallCategoryDistribution",
    "ResponseMetadata",
    "STATISTIC_OPS",
    "ScenarioStatistics",
    "SegmentStatistic",
    "StatisticDefinition",
]
