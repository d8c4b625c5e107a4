"""Attribute query gateway: one cached, failure-safe entry point per query shape."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from roadrisk.errors import NetworkError
from roadrisk.models import (
    BoundingBox,
    QueryOptions,
    QueryResponse,
    ResponseMetadata,
    StatisticDefinition,
)

from .cache import DEFAULT_MAX_ENTRIES, DEFAULT_TTL_SECONDS, QueryCache
from .predicate import MATCH_ALL, restrict

logger = logging.getLogger("roadrisk")


def _number(value: Any) -> float:
    if value is None:
        return 0
    try:
        num = float(value)
    except (TypeError, ValueError):
        return 0
    if num != num:  # NaN
        return 0
    return int(num) if num.is_integer() else num


def zero_filled(row: Optional[Dict[str, Any]], statistics: Sequence[StatisticDefinition]) -> Dict[str, float]:
    """One numeric value per requested output name, 0 when missing.

    Output names are matched case-insensitively because some services
    return them upper- or lower-cased.
    """
    lowered = {str(k).lower(): v for k, v in (row or {}).items()}
    return {s.output_name: _number(lowered.get(s.output_name.lower())) for s in statistics}


def _detached(data: Any) -> Any:
    # row lists are shared with the cache; hand out fresh row dicts
    if isinstance(data, list):
        return [dict(row) if isinstance(row, dict) else row for row in data]
    return data


class QueryGateway:
    """Run queries against an attribute source with a shared result cache.

    Sources are blocking clients (``requests`` or DuckDB), so each miss is
    executed with :func:`asyncio.to_thread`. Public methods never raise on
    query failure: they return a :class:`QueryResponse` with
    ``success=False`` and a :class:`NetworkError` attached.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cache = QueryCache(ttl_seconds=ttl_seconds, max_entries=max_entries, clock=clock)

    @staticmethod
    def cache_key(layer, options: QueryOptions) -> str:
        return f"{layer.identity}::{json.dumps(options.fingerprint(), sort_keys=True)}"

    @property
    def cache_size(self) -> int:
        return len(self.cache)

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Query cache cleared")

    async def execute(self, layer, options: QueryOptions) -> QueryResponse:
        started = time.perf_counter()
        key = self.cache_key(layer, options)

        entry = self.cache.get(key)
        if entry is not None:
            logger.debug("Query cache hit: %s", options.where)
            return QueryResponse(
                data=_detached(entry.value),
                success=True,
                metadata=ResponseMetadata(timestamp=datetime.now(timezone.utc), cached=True),
            )

        try:
            if options.return_extent_only:
                data = await asyncio.to_thread(layer.query_extent, options.where)
            else:
                data = await asyncio.to_thread(layer.query, options)
        except Exception as exc:
            logger.error("Query failed (where=%s): %s", options.where, exc)
            error = exc if isinstance(exc, NetworkError) else NetworkError(
                str(exc) or "Query failed",
                {"where": options.where, "layer": layer.identity},
            )
            if error is not exc:
                error.__cause__ = exc
            return QueryResponse(
                data=None,
                success=False,
                error=error,
                metadata=ResponseMetadata(
                    timestamp=datetime.now(timezone.utc),
                    duration=time.perf_counter() - started,
                ),
            )

        self.cache.put(key, _detached(data))
        return QueryResponse(
            data=data,
            success=True,
            metadata=ResponseMetadata(
                timestamp=datetime.now(timezone.utc),
                duration=time.perf_counter() - started,
            ),
        )

    @staticmethod
    def _with(response: QueryResponse, data: Any) -> QueryResponse:
        return QueryResponse(data=data, success=True, metadata=response.metadata)

    async def aggregate(
        self,
        layer,
        predicate: str,
        statistics: Sequence[StatisticDefinition],
        scope: Optional[str] = None,
    ) -> QueryResponse:
        """Ungrouped statistics, zero-filled for every requested output name."""
        options = QueryOptions(
            where=restrict(predicate, scope) if scope else (predicate or MATCH_ALL),
            out_statistics=tuple(statistics),
        )
        response = await self.execute(layer, options)
        if not response.success:
            return response
        rows = response.data or []
        return self._with(response, zero_filled(rows[0] if rows else None, statistics))

    async def count(self, layer, predicate: str, scope: Optional[str] = None) -> QueryResponse:
        stat = StatisticDefinition("count", layer.object_id_field, "total_count")
        response = await self.aggregate(layer, predicate, [stat], scope=scope)
        if not response.success:
            return response
        return self._with(response, int(response.data["total_count"]))

    async def grouped(
        self,
        layer,
        predicate: str,
        group_by: Sequence[str],
        statistics: Sequence[StatisticDefinition],
        order_by: Sequence[str] = (),
        limit: Optional[int] = None,
    ) -> QueryResponse:
        options = QueryOptions(
            where=predicate or MATCH_ALL,
            out_statistics=tuple(statistics),
            group_by=tuple(group_by),
            order_by=tuple(order_by),
            limit=limit,
        )
        response = await self.execute(layer, options)
        if not response.success:
            return response
        rows: List[Dict[str, Any]] = []
        for row in response.data or []:
            lowered = {str(k).lower(): v for k, v in row.items()}
            out = {g: lowered.get(g.lower()) for g in group_by}
            out.update(zero_filled(row, statistics))
            rows.append(out)
        return self._with(response, rows)

    async def distinct_values(self, layer, field: str) -> QueryResponse:
        options = QueryOptions(
            where=MATCH_ALL,
            out_fields=(field,),
            return_distinct_values=True,
            order_by=(field,),
        )
        response = await self.execute(layer, options)
        if not response.success:
            return response
        values = []
        for row in response.data or []:
            value = row.get(field)
            if value is None or str(value).strip() == "":
                continue
            values.append({"label": str(value), "value": str(value)})
        return self._with(response, values)

    async def extent(self, layer, predicate: str) -> QueryResponse:
        options = QueryOptions(where=predicate or MATCH_ALL, return_extent_only=True)
        response = await self.execute(layer, options)
        if not response.success:
            return response
        data = response.data
        return self._with(response, data if isinstance(data, BoundingBox) else None)


__all__ = ["QueryGateway", "zero_filled"]
