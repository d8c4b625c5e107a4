"""Filter predicate compiler.

Every piece of predicate text in the package is produced here, so quoting
and escaping rules have exactly one enforcement point. The engine uses the
small clause helpers (``equals``, ``compare``, ``restrict``...) for its
per-metric sub-queries; the store uses :func:`compile_predicate`.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, List, Mapping, Optional, Union

from roadrisk.catalog import (
    MULTI_SELECT,
    RANGE_SLIDER,
    SCENARIO_SELECT,
    FilterCatalog,
    FilterFieldDescriptor,
)
from roadrisk.errors import ValidationError
from roadrisk.utils.filter_params import (
    FilterValue,
    MultiSelection,
    RangeSelection,
    ScenarioSelection,
    is_active,
    parse_filter_value,
)

# Feature services read "1=1" as "every row"; a compiled clause never equals it.
MATCH_ALL = "1=1"

_COMPARISON_OPS = ("=", "<>", ">", ">=", "<", "<=")


def is_match_all(predicate: Optional[str]) -> bool:
    return not predicate or predicate.strip() == MATCH_ALL


def quote(value: str) -> str:
    """Quote a string literal, doubling embedded single quotes."""
    return "'" + str(value).replace("'", "''") + "'"


def format_number(value: Union[int, float]) -> str:
    if isinstance(value, bool):
        raise ValidationError("Booleans are not valid numeric literals", {"value": value})
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"{value!r} is not a finite number", {"value": str(value)})
        return str(int(value)) if value.is_integer() else repr(value)
    return str(int(value))


def literal(value: Any, value_type: Optional[str] = None) -> str:
    """Render a literal; numbers are never quoted, strings always are."""
    if value_type == "string":
        return quote(str(value))
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_number(value)
    if value_type == "number":
        try:
            return format_number(float(value))
        except (TypeError, ValueError):
            raise ValidationError(f"{value!r} is not a number", {"value": value}) from None
    return quote(str(value))


# ---------- clause helpers ----------

def equals(field: str, value: Any, value_type: Optional[str] = None) -> str:
    return f"{field} = {literal(value, value_type)}"


def compare(field: str, op: str, value: Any) -> str:
    if op not in _COMPARISON_OPS:
        raise ValueError(f"Unsupported comparison operator: {op!r}")
    return f"{field} {op} {literal(value)}"


def any_of(clauses: Iterable[str]) -> str:
    parts = [c for c in clauses if c]
    if not parts:
        return ""
    return "(" + " OR ".join(parts) + ")"


def all_of(clauses: Iterable[str]) -> str:
    parts = [c for c in clauses if c and not is_match_all(c)]
    if not parts:
        return MATCH_ALL
    return " AND ".join(parts)


def restrict(predicate: Optional[str], clause: Optional[str]) -> str:
    """AND an extra clause onto a predicate, keeping both sides grouped."""
    if is_match_all(clause):
        return predicate if not is_match_all(predicate) else MATCH_ALL
    if is_match_all(predicate):
        return f"({clause})"
    return f"({predicate}) AND ({clause})"


# ---------- compiler ----------

def _scenario_clause(descriptor: FilterFieldDescriptor, value: ScenarioSelection) -> str:
    parts = []
    for name in value.fields:
        item = descriptor.item_for(name)
        if item is None:
            continue
        parts.append(equals(item.target_field, item.match_value))
    return any_of(parts)


def _multi_clause(descriptor: FilterFieldDescriptor, value: MultiSelection) -> str:
    rendered = ", ".join(literal(v, descriptor.value_type) for v in value.values)
    return f"{descriptor.target_field} IN ({rendered})"


def _range_clause(descriptor: FilterFieldDescriptor, value: RangeSelection) -> str:
    return (
        f"{descriptor.target_field} BETWEEN "
        f"{format_number(value.low)} AND {format_number(value.high)}"
    )


def compile_clause(descriptor: FilterFieldDescriptor, value: Optional[FilterValue]) -> str:
    """Clause for a single filter, or ``""`` when the value is inert."""
    if not is_active(descriptor, value):
        return ""
    if descriptor.kind == SCENARIO_SELECT:
        return _scenario_clause(descriptor, value)
    if descriptor.kind == MULTI_SELECT:
        return _multi_clause(descriptor, value)
    if descriptor.kind == RANGE_SLIDER:
        return _range_clause(descriptor, value)
    return ""


def compile_predicate(catalog: FilterCatalog, values: Optional[Mapping[str, Any]]) -> str:
    """Compile a filter value map into a single predicate.

    Values may be typed selections or raw UI values (lists, ``[min, max]``
    pairs); raw values are validated against their descriptor. Unknown
    filter ids are ignored. Clauses follow catalog order and are joined
    with AND; with no clauses the result is :data:`MATCH_ALL`.
    """
    values = values or {}
    clauses: List[str] = []
    for descriptor in catalog:
        if descriptor.id not in values:
            continue
        value = parse_filter_value(descriptor, values[descriptor.id])
        clause = compile_clause(descriptor, value)
        if clause:
            clauses.append(clause)
    if not clauses:
        return MATCH_ALL
    return " AND ".join(clauses)


__all__ = [
    "MATCH_ALL",
    "all_of",
    "any_of",
    "compare",
    "compile_clause",
    "compile_predicate",
    "equals",
    "format_number",
    "is_match_all",
    "literal",
    "quote",
    "restrict",
]
