"""Remote attribute source: an ArcGIS-style feature service layer."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional

import requests

from roadrisk.errors import NetworkError
from roadrisk.models import BoundingBox, QueryOptions

logger = logging.getLogger("roadrisk")


class FeatureServiceSource:
    """Query a feature layer's REST ``/query`` endpoint.

    ``url`` is the layer URL (``.../FeatureServer/0``). Every call is a
    single blocking GET; the gateway runs it in a worker thread.
    """

    def __init__(
        self,
        url: str,
        object_id_field: str = "OBJECTID",
        api_key: Optional[str] = None,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.url = url.rstrip("/")
        self.object_id_field = object_id_field
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def identity(self) -> str:
        return self.url

    @staticmethod
    def build_params(options: QueryOptions) -> Dict[str, Any]:
        params: Dict[str, Any] = {"where": options.where or "1=1", "f": "json"}
        if options.out_statistics:
            params["outStatistics"] = json.dumps([s.to_dict() for s in options.out_statistics])
        if options.out_fields:
            params["outFields"] = ",".join(options.out_fields)
        if options.group_by:
            params["groupByFieldsForStatistics"] = ",".join(options.group_by)
        if options.order_by:
            params["orderByFields"] = ",".join(options.order_by)
        if options.return_distinct_values:
            params["returnDistinctValues"] = "true"
            params["returnGeometry"] = "false"
        if options.return_extent_only:
            params["returnExtentOnly"] = "true"
        if options.limit is not None:
            params["resultRecordCount"] = int(options.limit)
        if not options.return_extent_only and not options.out_statistics:
            params.setdefault("returnGeometry", "false")
        return params

    def _get(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = dict(params)
        if self.api_key:
            query["token"] = self.api_key
        resp = self.session.get(f"{self.url}/query", params=query, timeout=self.timeout)
        resp.raise_for_status()
        payload = resp.json()
        # Services report query errors with HTTP 200 and an "error" member.
        if isinstance(payload, dict) and payload.get("error"):
            err = payload["error"]
            raise NetworkError(
                f"Feature service error: {err.get('message', 'unknown error')}",
                {"code": err.get("code"), "details": err.get("details"), "where": params.get("where")},
            )
        return payload

    def query(self, options: QueryOptions) -> List[Dict[str, Any]]:
        payload = self._get(self.build_params(options))
        return [f.get("attributes", {}) for f in payload.get("features", [])]

    def query_extent(self, where: str) -> Optional[BoundingBox]:
        payload = self._get(self.build_params(QueryOptions(where=where, return_extent_only=True)))
        extent = payload.get("extent")
        if not extent or extent.get("xmin") in (None, "NaN"):
            return None
        wkid = (extent.get("spatialReference") or {}).get("wkid")
        return BoundingBox(
            float(extent["xmin"]),
            float(extent["ymin"]),
            float(extent["xmax"]),
            float(extent["ymax"]),
            wkid,
        )


def source_from_config(config: Mapping[str, Any]) -> FeatureServiceSource:
    return FeatureServiceSource(
        url=config["FEATURE_SERVICE_URL"],
        object_id_field=config["FIELDS"]["object_id"],
        api_key=config.get("API_KEY"),
        timeout=float(config.get("QUERY_TIMEOUT", 30)),
    )


__all__ = ["FeatureServiceSource", "source_from_config"]
