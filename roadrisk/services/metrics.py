"""Derived-metric arithmetic: segments to length, percentage and risk tier."""

from __future__ import annotations

from typing import Dict, Optional

from roadrisk.models import SegmentStatistic

RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"


class Metrics:
    """Encapsulate the fixed network constants and the derivations built on them."""

    def __init__(
        self,
        segment_length_km: float = 0.1,
        total_network_length_km: float = 5338.2,
        risk_thresholds: tuple = (5.0, 15.0),
        labels: Optional[Dict[str, str]] = None,
    ):
        self.segment_length_km = float(segment_length_km)
        self.total_network_length_km = float(total_network_length_km)
        self.risk_thresholds = tuple(risk_thresholds)
        self.labels = dict(labels or {})

    def label(self, key: Optional[str]) -> str:
        if not key:
            return ""
        return self.labels.get(key, key)

    def length_km(self, count: float) -> float:
        return count * self.segment_length_km

    def share_of_network(self, count: float, total_segments: int) -> float:
        """Affected length as a percentage of the whole network.

        Independent of how narrow the filter is; 0 when nothing matched the
        filter at all.
        """
        if total_segments <= 0 or self.total_network_length_km <= 0:
            return 0.0
        return self.length_km(count) / self.total_network_length_km * 100

    @staticmethod
    def share_of(count: float, total_segments: int) -> float:
        """Percentage of the filtered segment total."""
        if total_segments <= 0:
            return 0.0
        return count / total_segments * 100

    def risk_level(self, percentage: float) -> str:
        low, medium = self.risk_thresholds
        if percentage < low:
            return RISK_LOW
        if percentage < medium:
            return RISK_MEDIUM
        return RISK_HIGH

    def segment(
        self,
        count: int,
        label: str,
        total_segments: int,
        of_network: bool = False,
        model_type: Optional[str] = None,
    ) -> SegmentStatistic:
        percentage = (
            self.share_of_network(count, total_segments)
            if of_network
            else self.share_of(count, total_segments)
        )
        return SegmentStatistic(
            count=int(count),
            length_km=self.length_km(count),
            percentage=percentage,
            label=label,
            model_type=model_type,
        )


def metrics_from_config(config) -> Metrics:
    return Metrics(
        segment_length_km=float(config.get("SEGMENT_LENGTH_KM", 0.1)),
        total_network_length_km=float(config.get("TOTAL_NETWORK_LENGTH_KM", 5338.2)),
        risk_thresholds=tuple(config.get("RISK_THRESHOLDS", (5.0, 15.0))),
        labels=config.get("FIELD_LABELS"),
    )


__all__ = ["Metrics", "RISK_HIGH", "RISK_LOW", "RISK_MEDIUM", "metrics_from_config"]
