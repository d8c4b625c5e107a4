"""Shared helpers and error handlers for dashboard routes."""

from __future__ import annotations

from typing import Any, Dict

from flask import current_app, jsonify, request

from roadrisk.errors import AppError, ValidationError

from . import bp


def error_response(exc: AppError, status: int):
    return jsonify(exc.to_dict()), status


@bp.app_errorhandler(ValidationError)
def handle_validation_error(exc: ValidationError):
    return error_response(exc, 400)


@bp.app_errorhandler(AppError)
def handle_app_error(exc: AppError):
    current_app.logger.error("Request failed: %s", exc)
    return error_response(exc, 502)


def filters_payload() -> Dict[str, Any]:
    """Filter map from a JSON body, either bare or under ``"filters"``."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    if "filters" in payload:
        payload = payload["filters"]
        if not isinstance(payload, dict):
            raise ValidationError("'filters' must be a JSON object")
    return payload


__all__ = ["error_response", "filters_payload"]
