"""Dashboard blueprint package."""

from __future__ import annotations

from flask import Blueprint

bp = Blueprint("dashboard", __name__)


def get_catalog():
    from flask import current_app

    return current_app.extensions["catalog"]


def get_gateway():
    from flask import current_app

    return current_app.extensions["gateway"]


def get_source():
    from flask import current_app

    return current_app.extensions["source"]


def get_engine():
    from flask import current_app

    return current_app.extensions["engine"]


def get_state():
    from flask import current_app

    return current_app.extensions["state"]


from . import filters, health, helpers, statistics  # noqa: E402,F401

__all__ = ["bp", "get_catalog", "get_engine", "get_gateway", "get_source", "get_state"]
