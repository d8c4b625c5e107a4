"""Filter field catalog: immutable descriptors loaded once at startup."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import ConfigurationError

logger = logging.getLogger("roadrisk")

SCENARIO_SELECT = "scenario-select"
MULTI_SELECT = "multi-select"
RANGE_SLIDER = "range-slider"
KINDS = (SCENARIO_SELECT, MULTI_SELECT, RANGE_SLIDER)

VALUE_TYPES = ("string", "number")

# Which statistics branch a filter drives.
FUTURE = "future"
PAST = "past"
PRECIPITATION = "precipitation"
GENERAL = "general"
CATEGORIES = (FUTURE, PAST, PRECIPITATION, GENERAL)

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

Scalar = Union[str, int, float]


@dataclass(frozen=True)
class Bounds:
    min: float
    max: float
    step: Optional[float] = None


@dataclass(frozen=True)
class ScenarioItem:
    label: str
    target_field: str
    match_value: Scalar = 1


@dataclass(frozen=True)
class FilterOption:
    label: str
    value: str


@dataclass(frozen=True)
class FilterFieldDescriptor:
    id: str
    kind: str
    label: str = ""
    target_field: Optional[str] = None
    value_type: str = "string"
    bounds: Optional[Bounds] = None
    scenario_items: Tuple[ScenarioItem, ...] = ()
    category: str = GENERAL
    description: str = ""
    options: Tuple[FilterOption, ...] = ()

    def item_for(self, target_field: str) -> Optional[ScenarioItem]:
        for item in self.scenario_items:
            if item.target_field == target_field:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "type": self.kind,
            "label": self.label,
            "category": self.category,
            "description": self.description,
        }
        if self.target_field:
            out["field"] = self.target_field
            out["data_type"] = self.value_type
        if self.bounds is not None:
            out.update({"min": self.bounds.min, "max": self.bounds.max, "step": self.bounds.step})
        if self.scenario_items:
            out["items"] = [
                {"label": i.label, "field": i.target_field, "value": i.match_value}
                for i in self.scenario_items
            ]
        if self.kind == MULTI_SELECT:
            out["options"] = [{"label": o.label, "value": o.value} for o in self.options]
        return out


class FilterCatalog:
    """Ordered, read-only collection of filter descriptors."""

    def __init__(self, descriptors: Sequence[FilterFieldDescriptor]):
        self._descriptors: Tuple[FilterFieldDescriptor, ...] = tuple(descriptors)
        self._by_id: Dict[str, FilterFieldDescriptor] = {d.id: d for d in self._descriptors}

    def __iter__(self) -> Iterator[FilterFieldDescriptor]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def __contains__(self, filter_id: object) -> bool:
        return filter_id in self._by_id

    def get(self, filter_id: str) -> Optional[FilterFieldDescriptor]:
        return self._by_id.get(filter_id)

    def by_category(self, category: str) -> List[FilterFieldDescriptor]:
        return [d for d in self._descriptors if d.category == category]

    def to_list(self) -> List[Dict[str, Any]]:
        return [d.to_dict() for d in self._descriptors]


def _require(entry: Mapping[str, Any], key: str, filter_id: str) -> Any:
    value = entry.get(key)
    if value in (None, ""):
        raise ConfigurationError(
            f"Filter '{filter_id}' is missing required key '{key}'",
            {"filter_id": filter_id, "key": key},
        )
    return value


def _check_field(name: Any, filter_id: str) -> str:
    if not isinstance(name, str) or not _FIELD_RE.match(name):
        raise ConfigurationError(
            f"Filter '{filter_id}' references an invalid field name: {name!r}",
            {"filter_id": filter_id, "field": name},
        )
    return name


def _to_number(value: Any, filter_id: str, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Filter '{filter_id}' has a non-numeric '{key}': {value!r}",
            {"filter_id": filter_id, "key": key},
        ) from None


def _parse_descriptor(entry: Mapping[str, Any]) -> FilterFieldDescriptor:
    filter_id = str(_require(entry, "id", "<unknown>"))
    kind = _require(entry, "type", filter_id)
    if kind not in KINDS:
        raise ConfigurationError(
            f"Filter '{filter_id}' has unsupported type {kind!r}",
            {"filter_id": filter_id, "type": kind},
        )

    value_type = entry.get("dataType") or entry.get("data_type") or "string"
    if value_type not in VALUE_TYPES:
        raise ConfigurationError(
            f"Filter '{filter_id}' has unsupported data type {value_type!r}",
            {"filter_id": filter_id, "data_type": value_type},
        )

    category = entry.get("category") or GENERAL
    if category not in CATEGORIES:
        raise ConfigurationError(
            f"Filter '{filter_id}' has unknown category {category!r}",
            {"filter_id": filter_id, "category": category},
        )

    target_field = entry.get("field") or None
    bounds = None
    items: Tuple[ScenarioItem, ...] = ()
    options: Tuple[FilterOption, ...] = ()

    if kind == SCENARIO_SELECT:
        raw_items = _require(entry, "items", filter_id)
        parsed = []
        for raw in raw_items:
            item_field = _check_field(_require(raw, "field", filter_id), filter_id)
            parsed.append(
                ScenarioItem(
                    label=str(raw.get("label") or item_field),
                    target_field=item_field,
                    match_value=raw.get("value", 1),
                )
            )
        items = tuple(parsed)
    elif kind == RANGE_SLIDER:
        target_field = _check_field(_require(entry, "field", filter_id), filter_id)
        lo = _to_number(_require(entry, "min", filter_id), filter_id, "min")
        hi = _to_number(_require(entry, "max", filter_id), filter_id, "max")
        if lo > hi:
            raise ConfigurationError(
                f"Filter '{filter_id}' has min greater than max",
                {"filter_id": filter_id, "min": lo, "max": hi},
            )
        step = entry.get("step")
        bounds = Bounds(lo, hi, _to_number(step, filter_id, "step") if step is not None else None)
    else:
        if target_field:
            _check_field(target_field, filter_id)
        else:
            # Inert at compile time rather than fatal.
            logger.warning("Multi-select filter '%s' has no target field", filter_id)
        options = tuple(
            FilterOption(label=str(o.get("label", o.get("value"))), value=str(o.get("value")))
            for o in entry.get("options") or []
        )

    return FilterFieldDescriptor(
        id=filter_id,
        kind=kind,
        label=str(entry.get("label") or filter_id),
        target_field=target_field,
        value_type=value_type,
        bounds=bounds,
        scenario_items=items,
        category=category,
        description=str(entry.get("description") or ""),
        options=options,
    )


def load_catalog(entries: Sequence[Mapping[str, Any]]) -> FilterCatalog:
    """Validate raw catalog entries and build a :class:`FilterCatalog`.

    Raises :class:`ConfigurationError` on the first defective entry or on
    duplicate ids.
    """
    descriptors: List[FilterFieldDescriptor] = []
    seen = set()
    for entry in entries:
        descriptor = _parse_descriptor(entry)
        if descriptor.id in seen:
            raise ConfigurationError(
                f"Duplicate filter id '{descriptor.id}'", {"filter_id": descriptor.id}
            )
        seen.add(descriptor.id)
        descriptors.append(descriptor)
    logger.info("Loaded filter catalog with %d descriptor(s)", len(descriptors))
    return FilterCatalog(descriptors)


def check_field_name(name: Any, owner: str) -> str:
    """Validate an attribute name referenced from configuration."""
    return _check_field(name, owner)


__all__ = [
    "Bounds",
    "CATEGORIES",
    "FUTURE",
    "FilterCatalog",
    "FilterFieldDescriptor",
    "FilterOption",
    "GENERAL",
    "KINDS",
    "MULTI_SELECT",
    "PAST",
    "PRECIPITATION",
    "RANGE_SLIDER",
    "SCENARIO_SELECT",
    "ScenarioItem",
    "check_field_name",
    "load_catalog",
]
