"""Application state: current filters, their predicate and the latest statistics."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from roadrisk.catalog import FilterCatalog
from roadrisk.errors import AppError, NetworkError
from roadrisk.models import BoundingBox, NetworkStatistics
from roadrisk.utils.filter_params import (
    FilterValues,
    default_values,
    freeze,
    is_active,
    parse_filter_values,
    to_json,
)

from .gateway import QueryGateway
from .predicate import compile_predicate, is_match_all
from .statistics import StatisticsEngine

logger = logging.getLogger("roadrisk")

STATUS_IDLE = "idle"
STATUS_NO_FILTER = "no-filter"
STATUS_LOADING = "loading"
STATUS_READY = "ready"
STATUS_FAILED = "failed"


class AppState:
    """Single owner of the dashboard's filter and statistics state.

    ``apply_filters`` may be awaited again while an earlier call is still
    in flight. Each call takes a new request token; when a call resumes
    and its token is no longer the latest, its results are dropped, so
    the last initiated call wins.
    """

    def __init__(
        self,
        catalog: FilterCatalog,
        engine: StatisticsEngine,
        gateway: QueryGateway,
        layer,
    ):
        self.catalog = catalog
        self.engine = engine
        self.gateway = gateway
        self.layer = layer

        self.current_filters: FilterValues = default_values(catalog)
        self.current_stats: Optional[NetworkStatistics] = None
        self.extent: Optional[BoundingBox] = None
        self.status = STATUS_IDLE
        self.error: Optional[AppError] = None

        self._token = 0
        self._memo: Optional[Tuple[Any, str]] = None

    @property
    def compiled_predicate(self) -> str:
        key = freeze(self.current_filters)
        if self._memo is None or self._memo[0] != key:
            self._memo = (key, compile_predicate(self.catalog, self.current_filters))
        return self._memo[1]

    def set_filters(self, raw: Optional[Mapping[str, Any]]) -> FilterValues:
        """Merge new values into the current filters.

        The whole map is validated first; on ``ValidationError`` nothing
        changes. Unknown filter ids are ignored and filters not named in
        ``raw`` keep their values.
        """
        parsed = parse_filter_values(self.catalog, raw)
        updated = dict(self.current_filters)
        updated.update(parsed)
        self.current_filters = updated
        return updated

    def has_active_filters(self) -> bool:
        return any(is_active(d, self.current_filters.get(d.id)) for d in self.catalog)

    def clear_all_filters(self) -> None:
        self._token += 1
        self.current_filters = default_values(self.catalog)
        self.current_stats = None
        self.extent = None
        self.error = None
        self.status = STATUS_IDLE

    def _is_stale(self, token: int) -> bool:
        if token != self._token:
            logger.info("Discarding stale statistics (request %d, latest %d)", token, self._token)
            return True
        return False

    async def apply_filters(self) -> Optional[NetworkStatistics]:
        self._token += 1
        token = self._token
        predicate = self.compiled_predicate
        filters = dict(self.current_filters)

        if is_match_all(predicate):
            self.current_stats = None
            self.extent = None
            self.error = None
            self.status = STATUS_NO_FILTER
            return None

        self.status = STATUS_LOADING
        self.error = None
        try:
            stats = await self.engine.compute(self.layer, predicate, filters)
        except NetworkError as exc:
            if self._is_stale(token):
                return None
            logger.error("Statistics failed for %s: %s", predicate, exc)
            self.current_stats = None
            self.extent = None
            self.error = exc
            self.status = STATUS_FAILED
            return None

        if self._is_stale(token):
            return None

        response = await self.gateway.extent(self.layer, predicate)
        if self._is_stale(token):
            return None

        self.current_stats = stats
        self.extent = response.data if response.success else None
        self.status = STATUS_READY
        return stats

    def snapshot(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "filters": to_json(self.current_filters),
            "active": self.has_active_filters(),
            "predicate": self.compiled_predicate,
            "statistics": self.current_stats.to_dict() if self.current_stats else None,
            "extent": self.extent.to_dict() if self.extent else None,
            "error": self.error.to_dict() if self.error else None,
        }


__all__ = [
    "AppState",
    "STATUS_FAILED",
    "STATUS_IDLE",
    "STATUS_LOADING",
    "STATUS_NO_FILTER",
    "STATUS_READY",
]
