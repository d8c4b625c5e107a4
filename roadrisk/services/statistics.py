"""Flood-risk statistics over the filtered road network.

``StatisticsEngine.compute`` counts the segments matching the compiled
predicate, then runs one of three branches depending on which filter
category is active:

* future scenarios: per climate scenario, an "any model" count plus one
  count per named hazard model;
* past events: six indicator counts plus four summed event counters;
* precipitation: rainfall and inundation analyses for the active filters,
  county and subnet breakdowns, and combined-risk counts.

Queries inside a branch are independent and are fanned out with
``asyncio.gather``. A failed query degrades its metric to zero and is
listed in ``NetworkStatistics.degraded``; only a failed top-level count
makes the whole tree unavailable.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from roadrisk.catalog import (
    FUTURE,
    PAST,
    PRECIPITATION,
    FilterCatalog,
    check_field_name,
)
from roadrisk.errors import ConfigurationError, StatisticsUnavailableError, ValidationError
from roadrisk.models import (
    AreaBreakdown,
    CombinedRisk,
    EventCountStatistic,
    InundationAnalysis,
    NetworkStatistics,
    PastEventStatistics,
    PrecipitationStatistics,
    RainfallAnalysis,
    RainfallCategoryDistribution,
    ScenarioStatistics,
    StatisticDefinition,
)
from roadrisk.utils.filter_params import FilterValues, is_active, parse_filter_values

from .gateway import QueryGateway
from .metrics import Metrics
from .predicate import MATCH_ALL, all_of, any_of, compare, equals

logger = logging.getLogger("roadrisk")

_REQUIRED_FIELDS = (
    "object_id",
    "county",
    "subnet",
    "criticality",
    "lifeline",
    "historic_flooding_any",
    "rainfall_change_cat",
    "inundation_depth_rcp45",
    "inundation_depth_rcp85",
)


def _group_key(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


class _Run:
    """Per-``compute`` context: the layer, the predicate and degraded metrics."""

    def __init__(self, gateway: QueryGateway, layer, predicate: str, total_segments: int):
        self.gateway = gateway
        self.layer = layer
        self.predicate = predicate
        self.total_segments = total_segments
        self.degraded: List[str] = []

    def _degrade(self, metric: str, error: Optional[Exception]) -> None:
        self.degraded.append(metric)
        logger.warning("Metric %s degraded to zero: %s", metric, error)

    async def count(self, metric: str, clause: Optional[str] = None) -> int:
        response = await self.gateway.count(self.layer, self.predicate, scope=clause)
        if not response.success:
            self._degrade(metric, response.error)
            return 0
        return response.data

    async def aggregate(
        self, metric: str, statistics: Sequence[StatisticDefinition], clause: Optional[str] = None
    ) -> Dict[str, float]:
        response = await self.gateway.aggregate(self.layer, self.predicate, statistics, scope=clause)
        if not response.success:
            self._degrade(metric, response.error)
            return {s.output_name: 0 for s in statistics}
        return response.data

    async def grouped(
        self,
        metric: str,
        group_by: Sequence[str],
        statistics: Sequence[StatisticDefinition],
        order_by: Sequence[str] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        response = await self.gateway.grouped(
            self.layer, self.predicate, group_by, statistics, order_by=order_by, limit=limit
        )
        if not response.success:
            self._degrade(metric, response.error)
            return []
        return response.data


class StatisticsEngine:
    def __init__(
        self,
        config: Mapping[str, Any],
        gateway: QueryGateway,
        metrics: Metrics,
        catalog: FilterCatalog,
    ):
        self.config = config
        self.gateway = gateway
        self.metrics = metrics
        self.catalog = catalog
        self._validate()

    # ---------- configuration ----------

    def _validate(self) -> None:
        """Fail at startup if any field table is incomplete."""
        try:
            fields = self.config["FIELDS"]
            for key in _REQUIRED_FIELDS:
                check_field_name(fields[key], f"FIELDS.{key}")
            for scenario in self.config["FUTURE_SCENARIOS"]:
                check_field_name(scenario["any_field"], scenario["key"])
                for model in scenario["models"]:
                    check_field_name(model["field"], f"{scenario['key']}.{model['key']}")
            for entry in self.config["PAST_EVENT_INDICATORS"]:
                check_field_name(entry["field"], "PAST_EVENT_INDICATORS")
            for entry in self.config["PAST_EVENT_COUNTERS"]:
                check_field_name(entry["field"], "PAST_EVENT_COUNTERS")
            for entry in self.config["RAINFALL_ANALYSES"]:
                check_field_name(entry["category_field"], entry["key"])
                check_field_name(entry["value_field"], entry["key"])
            for entry in self.config["INUNDATION_ANALYSES"]:
                check_field_name(entry["depth_field"], entry["key"])
        except KeyError as exc:
            raise ConfigurationError(
                f"Statistics configuration is missing {exc}", {"key": str(exc)}
            ) from None

    def _setting(self, key: str, default: Any) -> Any:
        return self.config.get(key, default)

    # ---------- category policy ----------

    def active_category(self, filters: Optional[Mapping[str, Any]]) -> str:
        """Which branch to compute for this filter map.

        Precipitation filters win over past-event filters, which win over
        everything else; the future-scenario branch is the default.
        """
        values = parse_filter_values(self.catalog, filters)
        active = {d.category for d in self.catalog if is_active(d, values.get(d.id))}
        if PRECIPITATION in active:
            return PRECIPITATION
        if PAST in active:
            return PAST
        return FUTURE

    # ---------- entry points ----------

    async def compute(
        self, layer, predicate: str, filters: Optional[Mapping[str, Any]] = None
    ) -> NetworkStatistics:
        predicate = predicate or MATCH_ALL
        values = parse_filter_values(self.catalog, filters)

        total = await self.gateway.count(layer, predicate)
        if not total.success:
            raise StatisticsUnavailableError(
                "Failed to load statistics: total segment count unavailable",
                {"where": predicate},
            ) from total.error

        total_segments = int(total.data)
        run = _Run(self.gateway, layer, predicate, total_segments)
        stats = NetworkStatistics(
            total_segments=total_segments,
            total_length_km=self.metrics.length_km(total_segments),
            last_updated=datetime.now(timezone.utc),
        )

        category = self.active_category(values)
        logger.info("Computing %s statistics over %d segment(s)", category, total_segments)
        if category == PRECIPITATION:
            stats.precipitation = await self._precipitation(run, values)
        elif category == PAST:
            stats.past_events = await self._past_events(run)
        else:
            stats.scenarios = await self._scenarios(run)

        stats.degraded = sorted(run.degraded)
        return stats

    async def compute_for_area(
        self, layer, field: str, value: Any, filters: Optional[Mapping[str, Any]] = None
    ) -> NetworkStatistics:
        """Statistics for one administrative area (e.g. a county)."""
        try:
            check_field_name(field, "area")
        except ConfigurationError as exc:
            raise ValidationError(exc.message, exc.context) from None
        value_type = "string"
        for descriptor in self.catalog:
            if descriptor.target_field == field:
                value_type = descriptor.value_type
                break
        return await self.compute(layer, equals(field, value, value_type), filters)

    # ---------- future scenarios ----------

    async def _scenarios(self, run: _Run) -> List[ScenarioStatistics]:
        scenarios = self.config["FUTURE_SCENARIOS"]
        return list(await asyncio.gather(*(self._scenario(run, s) for s in scenarios)))

    async def _scenario(self, run: _Run, scenario: Mapping[str, Any]) -> ScenarioStatistics:
        key = scenario["key"]
        models = scenario["models"]
        affected, *model_counts = await asyncio.gather(
            run.count(f"{key}.total_affected", equals(scenario["any_field"], 1)),
            *(run.count(f"{key}.{m['key']}", equals(m["field"], 1)) for m in models),
        )

        breakdown = [
            self.metrics.segment(count, m["label"], run.total_segments, model_type=m.get("model_type"))
            for m, count in zip(models, model_counts)
            if count > 0
        ]
        # Share of the whole network, not of the filtered total.
        total_affected = self.metrics.segment(
            affected, "Total Roads at Risk", run.total_segments, of_network=True
        )
        return ScenarioStatistics(
            scenario=key,
            title=scenario["title"],
            return_period=scenario["return_period"],
            total_affected=total_affected,
            model_breakdown=breakdown,
            risk_level=self.metrics.risk_level(total_affected.percentage),
        )

    # ---------- past events ----------

    async def _past_events(self, run: _Run) -> PastEventStatistics:
        indicators = self.config["PAST_EVENT_INDICATORS"]
        counters = self.config["PAST_EVENT_COUNTERS"]
        any_field = self.config["FIELDS"]["historic_flooding_any"]

        results = await asyncio.gather(
            run.count("past.total_affected", equals(any_field, 1)),
            *(run.count(f"past.{i['field']}", equals(i["field"], 1)) for i in indicators),
            *(
                run.aggregate(f"past.{c['key']}", [StatisticDefinition("sum", c["field"], "total")])
                for c in counters
            ),
        )
        affected = results[0]
        indicator_counts = results[1 : 1 + len(indicators)]
        counter_sums = results[1 + len(indicators) :]

        breakdown = [
            self.metrics.segment(count, i["label"], run.total_segments)
            for i, count in zip(indicators, indicator_counts)
            if count > 0
        ]
        event_counts = [
            EventCountStatistic(key=c["key"], label=c["label"], count=row["total"])
            for c, row in zip(counters, counter_sums)
        ]
        total_affected = self.metrics.segment(
            affected, self.metrics.label(any_field), run.total_segments, of_network=True
        )
        return PastEventStatistics(
            title="Past Flood Events",
            description="Road segments intersecting recorded past flood events.",
            total_affected=total_affected,
            event_breakdown=breakdown,
            event_counts=event_counts,
            risk_level=self.metrics.risk_level(total_affected.percentage),
        )

    # ---------- precipitation ----------

    async def _precipitation(self, run: _Run, values: FilterValues) -> PrecipitationStatistics:
        active_ids = {d.id for d in self.catalog if is_active(d, values.get(d.id))}
        rainfall = [a for a in self.config["RAINFALL_ANALYSES"] if a["filter_id"] in active_ids]
        inundation = [a for a in self.config["INUNDATION_ANALYSES"] if a["filter_id"] in active_ids]
        fields = self.config["FIELDS"]

        results = await asyncio.gather(
            *(self._rainfall(run, a) for a in rainfall),
            *(self._inundation(run, a) for a in inundation),
            self._breakdown(
                run,
                "precipitation.counties",
                fields["county"],
                limit=int(self._setting("TOP_COUNTIES", 10)),
            ),
            self._breakdown(
                run,
                "precipitation.subnets",
                fields["subnet"],
                labels=self._setting("SUBNET_LABELS", {}),
            ),
            self._combined_risk(run),
        )
        rainfall_results = results[: len(rainfall)]
        inundation_results = results[len(rainfall) : len(rainfall) + len(inundation)]
        counties, subnets, combined = results[len(rainfall) + len(inundation) :]

        total_affected = self.metrics.segment(
            run.total_segments, "Roads in Selection", run.total_segments, of_network=True
        )
        return PrecipitationStatistics(
            title="Precipitation Analysis",
            description="Rainfall and inundation exposure of the selected road segments.",
            total_affected=total_affected,
            risk_level=self.metrics.risk_level(total_affected.percentage),
            rainfall_analysis={a["key"]: r for a, r in zip(rainfall, rainfall_results)},
            inundation_analysis={a["key"]: r for a, r in zip(inundation, inundation_results)},
            geographic_breakdown=counties,
            subnet_breakdown=subnets,
            combined_risk=combined,
        )

    async def _rainfall(self, run: _Run, analysis: Mapping[str, str]) -> RainfallAnalysis:
        key = analysis["key"]
        value_field = analysis["value_field"]
        category_field = analysis["category_field"]
        labels = self._setting("RAINFALL_CATEGORY_LABELS", {})
        categories = sorted(labels) or [1, 2, 3, 4, 5]
        high_from = int(self._setting("HIGH_RAINFALL_CATEGORY", 4))

        summary, *counts = await asyncio.gather(
            run.aggregate(
                f"rainfall.{key}.summary",
                [
                    StatisticDefinition("avg", value_field, "avg_value"),
                    StatisticDefinition("min", value_field, "min_value"),
                    StatisticDefinition("max", value_field, "max_value"),
                ],
            ),
            *(run.count(f"rainfall.{key}.category_{c}", equals(category_field, c)) for c in categories),
        )

        distribution = [
            RainfallCategoryDistribution(
                category=c,
                label=labels.get(c, str(c)),
                count=count,
                length_km=self.metrics.length_km(count),
                percentage=self.metrics.share_of(count, run.total_segments),
            )
            for c, count in zip(categories, counts)
        ]
        high = sum(count for c, count in zip(categories, counts) if c >= high_from)
        return RainfallAnalysis(
            label=analysis.get("label", key),
            average=summary["avg_value"],
            min=summary["min_value"],
            max=summary["max_value"],
            category_distribution=distribution,
            high_risk=self.metrics.segment(high, "High Rainfall Risk", run.total_segments),
        )

    async def _inundation(self, run: _Run, analysis: Mapping[str, str]) -> InundationAnalysis:
        key = analysis["key"]
        depth = analysis["depth_field"]
        high_m = self._setting("HIGH_DEPTH_M", 0.5)
        critical_m = self._setting("CRITICAL_DEPTH_M", 1.0)

        summary, high, critical = await asyncio.gather(
            run.aggregate(
                f"inundation.{key}.summary",
                [
                    StatisticDefinition("avg", depth, "avg_depth"),
                    StatisticDefinition("max", depth, "max_depth"),
                ],
            ),
            run.count(f"inundation.{key}.high_risk", compare(depth, ">", high_m)),
            run.count(f"inundation.{key}.critical_risk", compare(depth, ">", critical_m)),
        )
        return InundationAnalysis(
            scenario=key,
            label=analysis.get("label", key),
            average_depth=summary["avg_depth"],
            max_depth=summary["max_depth"],
            high_risk_segments=self.metrics.segment(
                high, f"Depth > {high_m} m", run.total_segments
            ),
            critical_risk_segments=self.metrics.segment(
                critical, f"Depth > {critical_m} m", run.total_segments
            ),
        )

    async def _breakdown(
        self,
        run: _Run,
        metric: str,
        field: str,
        limit: Optional[int] = None,
        labels: Optional[Mapping[str, str]] = None,
    ) -> List[AreaBreakdown]:
        rows = await run.grouped(
            metric,
            [field],
            [StatisticDefinition("count", self.config["FIELDS"]["object_id"], "segment_count")],
            order_by=["segment_count DESC"],
            limit=limit,
        )
        out = []
        for row in rows:
            if row.get(field) is None:
                continue
            key = _group_key(row[field])
            count = int(row["segment_count"])
            out.append(
                AreaBreakdown(
                    key=key,
                    label=(labels or {}).get(key, key),
                    count=count,
                    length_km=self.metrics.length_km(count),
                    percentage=self.metrics.share_of(count, run.total_segments),
                )
            )
        out.sort(key=lambda a: a.count, reverse=True)
        return out[:limit] if limit else out

    async def _combined_risk(self, run: _Run) -> CombinedRisk:
        fields = self.config["FIELDS"]
        high_m = self._setting("HIGH_DEPTH_M", 0.5)
        high_rain = compare(fields["rainfall_change_cat"], ">=", int(self._setting("HIGH_RAINFALL_CATEGORY", 4)))
        deep = any_of(
            [
                compare(fields["inundation_depth_rcp45"], ">", high_m),
                compare(fields["inundation_depth_rcp85"], ">", high_m),
            ]
        )
        rain_and_flood, critical, lifeline = await asyncio.gather(
            run.count("combined.high_rainfall_high_inundation", all_of([high_rain, deep])),
            run.count(
                "combined.critical_infrastructure",
                compare(fields["criticality"], ">=", int(self._setting("CRITICAL_RATING", 4))),
            ),
            run.count("combined.lifeline_routes", equals(fields["lifeline"], 1)),
        )
        total = run.total_segments
        return CombinedRisk(
            high_rainfall_high_inundation=self.metrics.segment(
                rain_and_flood, "High Rainfall & High Inundation", total
            ),
            critical_infrastructure_at_risk=self.metrics.segment(
                critical, "Critical Infrastructure at Risk", total
            ),
            lifeline_routes_affected=self.metrics.segment(lifeline, "Lifeline Routes Affected", total),
        )


def compare_scenarios(first: ScenarioStatistics, second: ScenarioStatistics) -> Dict[str, float]:
    """How much more of the network ``second`` puts at risk than ``first``."""
    diff = second.total_affected.length_km - first.total_affected.length_km
    base = first.total_affected.length_km
    return {
        "percentage_increase": (diff / base * 100) if base > 0 else 0.0,
        "additional_length_km": diff,
        "additional_segments": second.total_affected.count - first.total_affected.count,
    }


__all__ = ["StatisticsEngine", "compare_scenarios"]
