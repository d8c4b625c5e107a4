"""Statistics endpoints."""

from __future__ import annotations

from flask import jsonify, request

from . import bp, get_engine, get_source, get_state
from roadrisk.errors import ValidationError
from roadrisk.services.statistics import compare_scenarios


def _comparison(stats):
    if not stats or not stats.scenarios or len(stats.scenarios) < 2:
        return None
    by_key = {s.scenario: s for s in stats.scenarios}
    if "rcp45" in by_key and "rcp85" in by_key:
        return compare_scenarios(by_key["rcp45"], by_key["rcp85"])
    return None


@bp.route("/statistics", methods=["GET"])
def statistics():
    state = get_state()
    stats = state.current_stats
    return jsonify(
        {
            "status": state.status,
            "statistics": stats.to_dict() if stats else None,
            "comparison": _comparison(stats),
            "error": state.error.to_dict() if state.error else None,
        }
    )


@bp.route("/statistics/area", methods=["GET"])
async def area_statistics():
    field = (request.args.get("field") or "").strip()
    value = request.args.get("value")
    if not field or value is None or value == "":
        raise ValidationError("Both 'field' and 'value' query parameters are required")

    stats = await get_engine().compute_for_area(get_source(), field, value)
    return jsonify(
        {
            "field": field,
            "value": value,
            "statistics": stats.to_dict(),
            "comparison": _comparison(stats),
        }
    )
