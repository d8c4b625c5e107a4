# filter_params.py
"""Typed filter values, one payload type per descriptor kind."""

import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from roadrisk.catalog import (
    MULTI_SELECT,
    RANGE_SLIDER,
    SCENARIO_SELECT,
    FilterCatalog,
    FilterFieldDescriptor,
)
from roadrisk.errors import ValidationError

Number = Union[int, float]


@dataclass(frozen=True)
class ScenarioSelection:
    # selected scenario target-field names
    fields: Tuple[str, ...] = ()
    kind = SCENARIO_SELECT

    def is_empty(self) -> bool:
        return not self.fields

    def to_json(self):
        return list(self.fields)


@dataclass(frozen=True)
class MultiSelection:
    # selected discrete values, already coerced to the descriptor's value type
    values: Tuple[Union[str, Number], ...] = ()
    kind = MULTI_SELECT

    def is_empty(self) -> bool:
        return not self.values

    def to_json(self):
        return list(self.values)


@dataclass(frozen=True)
class RangeSelection:
    low: Number
    high: Number
    kind = RANGE_SLIDER

    def is_empty(self) -> bool:
        return False

    def to_json(self):
        return [self.low, self.high]


FilterValue = Union[ScenarioSelection, MultiSelection, RangeSelection]
FilterValues = Dict[str, FilterValue]


def _as_number(value: Any, descriptor: FilterFieldDescriptor) -> Number:
    if isinstance(value, bool):
        raise ValidationError(
            f"Filter '{descriptor.id}' expects numbers, got a boolean",
            {"filter_id": descriptor.id, "value": value},
        )
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        num = value
    else:
        try:
            num = float(str(value).strip())
        except ValueError:
            raise ValidationError(
                f"Filter '{descriptor.id}' expects numbers, got {value!r}",
                {"filter_id": descriptor.id, "value": value},
            ) from None
    if not math.isfinite(num):
        raise ValidationError(
            f"Filter '{descriptor.id}' expects finite numbers, got {value!r}",
            {"filter_id": descriptor.id, "value": str(value)},
        )
    if isinstance(value, float):
        return value
    return int(num) if num.is_integer() else num


def _as_list(raw: Any, descriptor: FilterFieldDescriptor) -> list:
    if not isinstance(raw, (list, tuple)):
        raise ValidationError(
            f"Filter '{descriptor.id}' ({descriptor.kind}) expects a list of values",
            {"filter_id": descriptor.id, "value": raw},
        )
    return [v for v in raw if v is not None and v != ""]


def parse_filter_value(descriptor: FilterFieldDescriptor, raw: Any) -> Optional[FilterValue]:
    """Coerce one raw UI value into the payload type for its descriptor.

    ``None`` means "not set". Already-typed values are checked against the
    descriptor kind and passed through.
    """
    if raw is None:
        return None

    if isinstance(raw, (ScenarioSelection, MultiSelection, RangeSelection)):
        if raw.kind != descriptor.kind:
            raise ValidationError(
                f"Filter '{descriptor.id}' is a {descriptor.kind}, got a {raw.kind} value",
                {"filter_id": descriptor.id},
            )
        return raw

    if descriptor.kind == SCENARIO_SELECT:
        fields = []
        for name in _as_list(raw, descriptor):
            name = str(name)
            if descriptor.item_for(name) is None:
                raise ValidationError(
                    f"'{name}' is not an option of filter '{descriptor.id}'",
                    {"filter_id": descriptor.id, "value": name},
                )
            if name not in fields:
                fields.append(name)
        return ScenarioSelection(tuple(fields))

    if descriptor.kind == MULTI_SELECT:
        values = []
        for v in _as_list(raw, descriptor):
            v = _as_number(v, descriptor) if descriptor.value_type == "number" else str(v)
            if v not in values:
                values.append(v)
        return MultiSelection(tuple(values))

    # range-slider
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise ValidationError(
            f"Filter '{descriptor.id}' (range-slider) expects [min, max]",
            {"filter_id": descriptor.id, "value": raw},
        )
    low, high = (_as_number(v, descriptor) for v in raw)
    if low > high:
        raise ValidationError(
            f"Filter '{descriptor.id}' has min greater than max",
            {"filter_id": descriptor.id, "value": [low, high]},
        )
    return RangeSelection(low, high)


def parse_filter_values(catalog: FilterCatalog, raw: Optional[Mapping[str, Any]]) -> FilterValues:
    """Parse a whole value map. Unknown filter ids are ignored."""
    out: FilterValues = {}
    for filter_id, value in (raw or {}).items():
        descriptor = catalog.get(filter_id)
        if descriptor is None:
            continue
        parsed = parse_filter_value(descriptor, value)
        if parsed is not None:
            out[filter_id] = parsed
    return out


def is_active(descriptor: FilterFieldDescriptor, value: Optional[FilterValue]) -> bool:
    """True when ``value`` would constrain the predicate."""
    if value is None or value.is_empty():
        return False
    if isinstance(value, MultiSelection) and not descriptor.target_field:
        return False
    if isinstance(value, RangeSelection):
        bounds = descriptor.bounds
        if bounds is None:
            return False
        return (value.low, value.high) != (bounds.min, bounds.max)
    return True


def default_value(descriptor: FilterFieldDescriptor) -> FilterValue:
    if descriptor.kind == SCENARIO_SELECT:
        return ScenarioSelection()
    if descriptor.kind == MULTI_SELECT:
        return MultiSelection()
    return RangeSelection(descriptor.bounds.min, descriptor.bounds.max)


def default_values(catalog: FilterCatalog) -> FilterValues:
    return {d.id: default_value(d) for d in catalog}


def freeze(values: Mapping[str, FilterValue]) -> Tuple[Tuple[str, FilterValue], ...]:
    """Hashable form of a value map, used as a memoisation key."""
    return tuple(sorted(values.items(), key=lambda kv: kv[0]))


def to_json(values: Mapping[str, FilterValue]) -> Dict[str, Any]:
    return {k: v.to_json() for k, v in values.items()}


__all__ = [
    "FilterValue",
    "FilterValues",
    "MultiSelection",
    "RangeSelection",
    "ScenarioSelection",
    "default_value",
    "default_values",
    "freeze",
    "is_active",
    "parse_filter_value",
    "parse_filter_values",
    "to_json",
]
