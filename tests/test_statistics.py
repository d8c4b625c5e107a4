"""Statistics engine over the synthetic 1000-segment network."""

import pytest

from roadrisk.errors import ConfigurationError, StatisticsUnavailableError, ValidationError
from roadrisk.services.metrics import Metrics
from roadrisk.services.predicate import MATCH_ALL, compile_predicate
from roadrisk.services.statistics import StatisticsEngine, compare_scenarios


def compute(run, engine, source, catalog, filters):
    return run(engine.compute(source, compile_predicate(catalog, filters), filters))


class TestMetrics:
    def test_percentage_bases_differ(self):
        metrics = Metrics()
        of_network = metrics.segment(534, "Total Roads at Risk", 1000, of_network=True)
        of_filtered = metrics.segment(534, "CFRAM Fluvial Model", 1000)

        assert of_network.length_km == pytest.approx(53.4)
        assert of_network.percentage == pytest.approx(1.0, abs=0.01)
        assert of_filtered.percentage == pytest.approx(53.4)

    def test_empty_selection_has_zero_percentages(self):
        metrics = Metrics()
        assert metrics.share_of_network(0, 0) == 0
        assert metrics.share_of(5, 0) == 0

    @pytest.mark.parametrize(
        "percentage, level",
        [(0, "low"), (4.99, "low"), (5, "medium"), (14.99, "medium"), (15, "high"), (80, "high")],
    )
    def test_risk_levels(self, percentage, level):
        assert Metrics().risk_level(percentage) == level


class TestFutureScenarios:
    FILTERS = {"flood-scenario": ["future_flood_intersection_h"]}

    def test_end_to_end(self, run, engine, source, catalog):
        stats = compute(run, engine, source, catalog, self.FILTERS)

        assert stats.total_segments == 200
        assert stats.total_length_km == pytest.approx(20.0)
        assert stats.past_events is None and stats.precipitation is None
        assert [s.scenario for s in stats.scenarios] == ["rcp85", "rcp45"]

        rcp85 = stats.scenarios[0]
        assert rcp85.total_affected.label == "Total Roads at Risk"
        assert rcp85.total_affected.count == 200
        assert rcp85.total_affected.length_km == pytest.approx(20.0)
        assert rcp85.total_affected.percentage == pytest.approx(0.375, abs=0.001)
        assert rcp85.risk_level == "low"

    def test_model_breakdown_uses_filtered_total(self, run, engine, source, catalog):
        rcp85, rcp45 = compute(run, engine, source, catalog, self.FILTERS).scenarios

        breakdown = {m.label: m for m in rcp85.model_breakdown}
        # CFRAM coastal has no hits and is left out.
        assert set(breakdown) == {"CFRAM Fluvial Model", "NIFM Fluvial Model", "NCFHM Coastal Model"}
        assert breakdown["CFRAM Fluvial Model"].count == 120
        assert breakdown["CFRAM Fluvial Model"].percentage == pytest.approx(60.0)
        assert breakdown["NCFHM Coastal Model"].model_type == "coastal"

        assert rcp45.total_affected.count == 100
        assert [m.count for m in rcp45.model_breakdown] == [80]

    def test_compare_scenarios(self, run, engine, source, catalog):
        rcp85, rcp45 = compute(run, engine, source, catalog, self.FILTERS).scenarios
        diff = compare_scenarios(rcp45, rcp85)
        assert diff["percentage_increase"] == pytest.approx(100.0)
        assert diff["additional_length_km"] == pytest.approx(10.0)
        assert diff["additional_segments"] == 100

    def test_general_filters_fall_back_to_scenarios(self, run, engine, source, catalog):
        stats = compute(run, engine, source, catalog, {"lifeline": ["1"]})
        assert stats.total_segments == 250
        assert stats.scenarios is not None


class TestPastEvents:
    def test_past_branch(self, run, engine, source, catalog):
        stats = compute(
            run, engine, source, catalog, {"past-flood-event": ["DMS_Defects_2015_2023"]}
        )
        past = stats.past_events

        assert stats.scenarios is None and stats.precipitation is None
        assert stats.total_segments == 50
        assert past.total_affected.count == 50
        assert past.total_affected.length_km == pytest.approx(5.0)
        assert past.risk_level == "low"

        breakdown = {b.label: b.count for b in past.event_breakdown}
        assert breakdown == {"DMS Drainage Defects (2015-2023)": 50, "OPW Past Flood Events": 10}

        shares = {b.label: b.percentage for b in past.event_breakdown}
        assert shares["DMS Drainage Defects (2015-2023)"] == pytest.approx(100.0)
        assert shares["OPW Past Flood Events"] == pytest.approx(20.0)

        counts = {c.key: c.count for c in past.event_counts}
        assert counts == {"drainageDefects": 100, "opwPoints": 10, "nraPoints": 0, "moccPoints": 0}


class TestPrecipitation:
    def test_rainfall_branch(self, run, engine, source, catalog):
        stats = compute(run, engine, source, catalog, {"rainfall-change-cat": ["4", "5"]})
        precip = stats.precipitation

        assert stats.scenarios is None and stats.past_events is None
        assert stats.total_segments == 400
        assert set(precip.rainfall_analysis) == {"change"}
        assert precip.inundation_analysis == {}

        change = precip.rainfall_analysis["change"]
        assert change.average == pytest.approx(9.0)
        assert (change.min, change.max) == (8, 10)
        assert [(d.category, d.count) for d in change.category_distribution] == [
            (1, 0), (2, 0), (3, 0), (4, 200), (5, 200),
        ]
        assert change.high_risk.count == 400
        assert change.high_risk.percentage == pytest.approx(100.0)

    def test_breakdowns_and_combined_risk(self, run, engine, source, catalog):
        precip = compute(
            run, engine, source, catalog, {"rainfall-change-cat": ["4", "5"]}
        ).precipitation

        assert [(a.key, a.count) for a in precip.geographic_breakdown] == [
            ("Cork", 160), ("Kerry", 120), ("Dublin", 100), ("O'Brien's Cross", 20),
        ]
        subnets = {a.key: (a.label, a.count) for a in precip.subnet_breakdown}
        assert subnets == {
            "3": ("Legacy Pavements - High Traffic", 200),
            "4": ("Legacy Pavements - Low Traffic", 200),
        }

        combined = precip.combined_risk
        assert combined.high_rainfall_high_inundation.count == 400
        assert combined.critical_infrastructure_at_risk.count == 400
        assert combined.lifeline_routes_affected.count == 100
        assert combined.lifeline_routes_affected.percentage == pytest.approx(25.0)

    def test_inundation_analysis_for_active_depth_filter(self, run, engine, source, catalog):
        filters = {"rainfall-change-cat": ["4", "5"], "inundation-depth-45": [1, 5]}
        precip = compute(run, engine, source, catalog, filters).precipitation

        assert set(precip.inundation_analysis) == {"rcp45"}
        rcp45 = precip.inundation_analysis["rcp45"]
        assert rcp45.average_depth == pytest.approx(1.7)
        assert rcp45.max_depth == pytest.approx(1.8)
        assert rcp45.high_risk_segments.count == 200
        assert rcp45.critical_risk_segments.count == 200

    def test_precipitation_wins_over_other_categories(self, engine):
        filters = {
            "flood-scenario": ["future_flood_intersection_h"],
            "past-flood-event": ["MOCC_100m"],
            "rainfall-absolute-cat": ["5"],
        }
        assert engine.active_category(filters) == "precipitation"
        del filters["rainfall-absolute-cat"]
        assert engine.active_category(filters) == "past"
        assert engine.active_category({"inundation-depth-45": [0, 5]}) == "future"
        assert engine.active_category(None) == "future"


class TestFailures:
    def test_failed_metric_degrades_to_zero(self, run, config, gateway, metrics, catalog, fake_source):
        source = fake_source(fail_when=lambda options: "cfram_f_h_0100" in options.where)
        engine = StatisticsEngine(config, gateway, metrics, catalog)

        stats = run(engine.compute(source, "Lifeline = 1"))

        assert stats.degraded == ["rcp85.cfram_f"]
        rcp85 = stats.scenarios[0]
        assert "CFRAM Fluvial Model" not in [m.label for m in rcp85.model_breakdown]
        assert rcp85.total_affected.count == 10

    def test_failed_total_count_is_fatal(self, run, config, gateway, metrics, catalog, fake_source):
        engine = StatisticsEngine(config, gateway, metrics, catalog)
        with pytest.raises(StatisticsUnavailableError):
            run(engine.compute(fake_source(fail_when=lambda options: True), "Lifeline = 1"))


class TestArea:
    def test_statistics_for_one_county(self, run, engine, source):
        stats = run(engine.compute_for_area(source, "COUNTY", "O'Brien's Cross"))
        assert stats.total_segments == 50

    def test_numeric_area_field(self, run, engine, source):
        stats = run(engine.compute_for_area(source, "Subnet", "3"))
        assert stats.total_segments == 200

    def test_invalid_area_field(self, run, engine, source):
        with pytest.raises(ValidationError):
            run(engine.compute_for_area(source, "COUNTY = 'x' OR 1", "Cork"))


class TestConfiguration:
    def test_missing_field_mapping(self, config, gateway, metrics, catalog):
        fields = dict(config["FIELDS"])
        del fields["lifeline"]
        with pytest.raises(ConfigurationError):
            StatisticsEngine(dict(config, FIELDS=fields), gateway, metrics, catalog)

    def test_invalid_field_name(self, config, gateway, metrics, catalog):
        fields = dict(config["FIELDS"], county="COUNTY NAME")
        with pytest.raises(ConfigurationError):
            StatisticsEngine(dict(config, FIELDS=fields), gateway, metrics, catalog)


def test_serialised_tree_omits_uncomputed_branches(run, engine, source, catalog):
    stats = compute(run, engine, source, catalog, {"lifeline": ["1"]})
    tree = stats.to_dict()
    assert "past_events" not in tree and "precipitation" not in tree
    assert isinstance(tree["last_updated"], str)
    assert tree["scenarios"][0]["total_affected"]["count"] == 50
    assert tree["degraded"] == []


def test_match_all_predicate_counts_everything(run, engine, source):
    stats = run(engine.compute(source, MATCH_ALL))
    assert stats.total_segments == 1000
