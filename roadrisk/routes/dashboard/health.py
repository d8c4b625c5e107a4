"""Healthcheck endpoint."""

from __future__ import annotations

from flask import jsonify

from . import bp, get_catalog, get_gateway, get_source
from roadrisk.services.predicate import MATCH_ALL


@bp.route("/health", methods=["GET"])
async def health():
    gateway = get_gateway()
    source = get_source()
    response = await gateway.count(source, MATCH_ALL)
    body = {
        "ok": response.success,
        "source": source.identity,
        "filters": len(get_catalog()),
        "cache": gateway.cache.stats(),
    }
    if not response.success:
        body["error"] = response.error.to_dict()
        return jsonify(body), 503
    body["segments"] = int(response.data)
    return jsonify(body), 200
