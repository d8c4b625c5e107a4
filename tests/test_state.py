"""Application state store."""

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from roadrisk.catalog import load_catalog
from roadrisk.errors import ValidationError
from roadrisk.models import NetworkStatistics
from roadrisk.services import state as state_module
from roadrisk.services.predicate import MATCH_ALL
from roadrisk.services.state import AppState

SCENARIO_H = {"flood-scenario": ["future_flood_intersection_h"]}


@pytest.fixture
def state(catalog, engine, gateway, source):
    return AppState(catalog, engine, gateway, source)


class GatedEngine:
    """Engine whose ``compute`` calls finish only when the test says so."""

    def __init__(self):
        self.calls = []

    async def compute(self, layer, predicate, filters=None):
        gate = asyncio.Event()
        self.calls.append((predicate, gate))
        await gate.wait()
        return NetworkStatistics(
            total_segments=len(predicate),
            total_length_km=0.0,
            last_updated=datetime.now(timezone.utc),
        )


def test_initial_state(state):
    assert state.status == "idle"
    assert state.current_stats is None
    assert not state.has_active_filters()
    assert state.compiled_predicate == MATCH_ALL


def test_apply_without_filters(run, state):
    assert run(state.apply_filters()) is None
    assert state.status == "no-filter"
    assert state.current_stats is None


def test_default_range_is_not_active(state):
    state.set_filters({"inundation-depth-45": [0, 5]})
    assert not state.has_active_filters()
    assert state.compiled_predicate == MATCH_ALL


def test_apply_filters(run, state):
    state.set_filters(SCENARIO_H)
    stats = run(state.apply_filters())

    assert state.status == "ready"
    assert state.current_stats is stats
    assert stats.total_segments == 200
    assert (state.extent.xmin, state.extent.xmax) == (0, 2000)


def test_set_filters_merges(state):
    state.set_filters(SCENARIO_H)
    state.set_filters({"county": ["Cork"]})
    assert state.compiled_predicate == (
        "(future_flood_intersection_h = 1) AND COUNTY IN ('Cork')"
    )


def test_invalid_values_leave_filters_unchanged(state):
    state.set_filters(SCENARIO_H)
    before = dict(state.current_filters)
    with pytest.raises(ValidationError):
        state.set_filters({"county": ["Kerry"], "inundation-depth-45": [4, 1]})
    assert state.current_filters == before


def test_predicate_is_memoised(state, catalog, monkeypatch):
    calls = []
    real = state_module.compile_predicate

    def counting(*args):
        calls.append(args)
        return real(*args)

    monkeypatch.setattr(state_module, "compile_predicate", counting)
    state.set_filters(SCENARIO_H)
    assert state.compiled_predicate == state.compiled_predicate
    assert len(calls) == 1

    state.set_filters({"county": ["Cork"]})
    state.compiled_predicate
    assert len(calls) == 2


def test_clear_all_filters(run, state):
    state.set_filters(SCENARIO_H)
    run(state.apply_filters())
    state.clear_all_filters()

    assert state.status == "idle"
    assert state.current_stats is None
    assert state.extent is None
    assert not state.has_active_filters()


def test_total_failure(run, catalog, engine, gateway, fake_source):
    state = AppState(catalog, engine, gateway, fake_source(fail_when=lambda options: True))
    state.set_filters(SCENARIO_H)

    assert run(state.apply_filters()) is None
    assert state.status == "failed"
    assert state.current_stats is None
    assert state.snapshot()["error"]["code"] == "STATISTICS_UNAVAILABLE"


def test_snapshot(run, state):
    state.set_filters({"county": ["O'Brien's Cross"]})
    run(state.apply_filters())
    snap = state.snapshot()

    assert snap["status"] == "ready"
    assert snap["active"] is True
    assert snap["filters"]["county"] == ["O'Brien's Cross"]
    assert snap["filters"]["inundation-depth-45"] == [0, 5]
    assert snap["predicate"] == "COUNTY IN ('O''Brien''s Cross')"
    assert snap["statistics"]["total_segments"] == 50
    assert snap["error"] is None


class TestLastRequestWins:
    def _run(self, catalog, gateway, fake_source, release_order):
        engine = GatedEngine()
        state = AppState(catalog, engine, gateway, fake_source())

        async def scenario():
            state.set_filters({"county": ["Cork"]})
            first = asyncio.create_task(state.apply_filters())
            await asyncio.sleep(0)

            state.set_filters({"county": ["Kerry", "Dublin"]})
            second = asyncio.create_task(state.apply_filters())
            await asyncio.sleep(0)

            tasks = [first, second]
            results = [None, None]
            for index in release_order:
                engine.calls[index][1].set()
                results[index] = await tasks[index]
            return results

        return state, asyncio.run(scenario())

    def test_stale_result_finishing_last_is_discarded(self, catalog, gateway, fake_source, caplog):
        caplog.set_level(logging.INFO, logger="roadrisk")
        state, (first, second) = self._run(catalog, gateway, fake_source, release_order=[1, 0])

        assert first is None
        assert second is state.current_stats
        assert state.current_stats.total_segments == len("COUNTY IN ('Kerry', 'Dublin')")
        assert state.status == "ready"
        assert "Discarding stale statistics" in caplog.text

    def test_stale_result_finishing_first_is_discarded(self, catalog, gateway, fake_source):
        state, (first, second) = self._run(catalog, gateway, fake_source, release_order=[0, 1])

        assert first is None
        assert state.current_stats.total_segments == len("COUNTY IN ('Kerry', 'Dublin')")


def test_multi_select_without_field_is_not_active(engine, gateway, source):
    catalog = load_catalog([{"id": "orphan", "type": "multi-select"}])
    state = AppState(catalog, engine, gateway, source)
    state.set_filters({"orphan": ["a"]})

    assert not state.has_active_filters()
    snap = state.snapshot()
    assert snap["active"] is False
    assert snap["predicate"] == MATCH_ALL
