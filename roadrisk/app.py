"""Application factory for the road-network flood-risk service."""

from __future__ import annotations

import logging

from typing import Any, Mapping, Optional, Union

from flask import Flask

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("roadrisk")

from .catalog import load_catalog
from .config import Config
from .errors import ConfigurationError
from .routes.dashboard import bp as dashboard_bp
from .services import datastore, feature_service
from .services.gateway import QueryGateway
from .services.metrics import metrics_from_config
from .services.state import AppState
from .services.statistics import StatisticsEngine


def build_source(config: Mapping[str, Any]):
    """Attribute source named by ``DATA_SOURCE``."""
    kind = config.get("DATA_SOURCE", "feature-service")
    if kind == "duckdb":
        return datastore.source_from_config(config)
    if kind == "feature-service":
        if not config.get("FEATURE_SERVICE_URL"):
            raise ConfigurationError(
                "ROADRISK_FEATURE_SERVICE_URL is required for the feature-service data source"
            )
        return feature_service.source_from_config(config)
    raise ConfigurationError(f"Unknown data source: {kind!r}", {"DATA_SOURCE": kind})


def create_app(
    config_object: Optional[Union[str, Mapping[str, Any], type]] = None,
    source=None,
) -> Flask:
    """Create and configure the Flask application.

    ``source`` overrides the attribute source built from the config; tests
    pass an in-memory DuckDB source or a fake.
    """
    app = Flask(__name__)

    if config_object is None:
        app.config.from_object(Config)
    elif isinstance(config_object, Mapping):
        app.config.from_mapping(config_object)
    else:
        app.config.from_object(config_object)

    catalog = load_catalog(app.config["FILTER_CATALOG"])
    metrics = metrics_from_config(app.config)
    gateway = QueryGateway(
        ttl_seconds=float(app.config.get("CACHE_TTL_SECONDS", 300)),
        max_entries=int(app.config.get("CACHE_MAX_ENTRIES", 100)),
    )
    if source is None:
        source = build_source(app.config)
    engine = StatisticsEngine(app.config, gateway, metrics, catalog)
    state = AppState(catalog, engine, gateway, source)

    app.extensions["catalog"] = catalog
    app.extensions["metrics"] = metrics
    app.extensions["gateway"] = gateway
    app.extensions["source"] = source
    app.extensions["engine"] = engine
    app.extensions["state"] = state

    app.register_blueprint(dashboard_bp)

    logger.info("Loaded %d filter(s); data source %s", len(catalog), source.identity)
    return app


__all__ = ["build_source", "create_app"]
