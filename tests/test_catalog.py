"""Filter catalog loading and validation."""

import pytest

from roadrisk.catalog import (
    FUTURE,
    GENERAL,
    PAST,
    PRECIPITATION,
    RANGE_SLIDER,
    load_catalog,
)
from roadrisk.errors import ConfigurationError
from roadrisk.services.predicate import MATCH_ALL, compile_predicate


def _range(**overrides):
    entry = {"id": "depth", "type": "range-slider", "field": "avg_dep_45", "min": 0, "max": 5}
    entry.update(overrides)
    return entry


def test_configured_catalog_loads(catalog):
    assert len(catalog) == 10
    assert [d.id for d in catalog][:2] == ["flood-scenario", "past-flood-event"]
    assert "county" in catalog
    assert catalog.get("missing") is None


def test_categories(catalog):
    assert [d.id for d in catalog.by_category(FUTURE)] == ["flood-scenario"]
    assert [d.id for d in catalog.by_category(PAST)] == ["past-flood-event"]
    assert len(catalog.by_category(PRECIPITATION)) == 4
    assert catalog.get("county").category == GENERAL


def test_range_descriptor(catalog):
    depth = catalog.get("inundation-depth-45")
    assert depth.kind == RANGE_SLIDER
    assert depth.target_field == "avg_dep_45"
    assert (depth.bounds.min, depth.bounds.max, depth.bounds.step) == (0, 5, 0.1)


def test_to_list_is_json_ready(catalog):
    entries = catalog.to_list()
    scenario = entries[0]
    assert scenario["type"] == "scenario-select"
    assert scenario["items"][0] == {
        "label": "Future Flooding (Mid-Range, 10-20yr)",
        "field": "future_flood_intersection_m",
        "value": 1,
    }
    county = next(e for e in entries if e["id"] == "county")
    assert county["options"] == []
    assert county["data_type"] == "string"


@pytest.mark.parametrize(
    "entries",
    [
        [{"type": "multi-select", "field": "COUNTY"}],
        [{"id": "x", "field": "COUNTY"}],
        [{"id": "x", "type": "checkbox", "field": "COUNTY"}],
        [{"id": "x", "type": "multi-select", "field": "COUNTY", "dataType": "date"}],
        [{"id": "x", "type": "multi-select", "field": "COUNTY", "category": "weather"}],
        [{"id": "x", "type": "multi-select", "field": "COUNTY; DROP TABLE"}],
        [{"id": "x", "type": "scenario-select", "items": [{"label": "No field"}]}],
        [_range(field=None)],
        [_range(max=None)],
        [_range(min=6)],
        [_range(min="low")],
        [_range(), _range()],
    ],
    ids=[
        "missing-id",
        "missing-type",
        "unknown-type",
        "unknown-data-type",
        "unknown-category",
        "bad-field-name",
        "scenario-item-without-field",
        "range-without-field",
        "range-without-max",
        "range-min-above-max",
        "range-non-numeric-min",
        "duplicate-id",
    ],
)
def test_defective_entries_are_fatal(entries):
    with pytest.raises(ConfigurationError):
        load_catalog(entries)


def test_multi_select_without_field_is_inert(caplog):
    catalog = load_catalog([{"id": "orphan", "type": "multi-select"}])
    assert catalog.get("orphan").target_field is None
    assert compile_predicate(catalog, {"orphan": ["a"]}) == MATCH_ALL
    assert "no target field" in caplog.text


def test_configuration_error_carries_context():
    with pytest.raises(ConfigurationError) as info:
        load_catalog([_range(min=6)])
    assert info.value.context["filter_id"] == "depth"
    assert info.value.to_dict()["code"] == "CONFIGURATION_ERROR"
