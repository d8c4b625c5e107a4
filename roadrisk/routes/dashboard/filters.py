"""Filter catalog and filter state endpoints."""

from __future__ import annotations

from flask import jsonify

from . import bp, get_catalog, get_gateway, get_source, get_state
from .helpers import filters_payload
from roadrisk.catalog import MULTI_SELECT
from roadrisk.services.state import STATUS_FAILED


@bp.route("/filters/catalog", methods=["GET"])
def filter_catalog():
    return jsonify({"filters": get_catalog().to_list()})


@bp.route("/filters/options/<filter_id>", methods=["GET"])
async def filter_options(filter_id: str):
    descriptor = get_catalog().get(filter_id)
    if descriptor is None:
        return jsonify({"error": f"Unknown filter: {filter_id}"}), 404
    if descriptor.kind != MULTI_SELECT or descriptor.options or not descriptor.target_field:
        return jsonify({"id": filter_id, "options": descriptor.to_dict().get("options", [])})

    # No static options configured: offer the layer's distinct values.
    response = await get_gateway().distinct_values(get_source(), descriptor.target_field)
    if not response.success:
        raise response.error
    return jsonify({"id": filter_id, "options": response.data, "cached": response.metadata.cached})


@bp.route("/filters", methods=["GET"])
def current_filters():
    return jsonify(get_state().snapshot())


@bp.route("/filters", methods=["POST"])
async def apply_filters():
    state = get_state()
    state.set_filters(filters_payload())
    await state.apply_filters()
    snapshot = state.snapshot()
    return jsonify(snapshot), (502 if state.status == STATUS_FAILED else 200)


@bp.route("/filters", methods=["DELETE"])
def clear_filters():
    state = get_state()
    state.clear_all_filters()
    return jsonify(state.snapshot())
