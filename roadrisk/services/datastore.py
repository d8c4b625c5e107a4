"""Local attribute source backed by DuckDB."""

from __future__ import annotations

import glob as _glob
import logging
import os
import re
import threading
from typing import Any, Dict, List, Mapping, Optional, Sequence

import duckdb
import pandas as pd

from roadrisk.models import BoundingBox, QueryOptions

logger = logging.getLogger("roadrisk")

_SQL_OPS = {
    "count": "COUNT",
    "sum": "SUM",
    "avg": "AVG",
    "min": "MIN",
    "max": "MAX",
    "stddev": "STDDEV_SAMP",
    "var": "VAR_SAMP",
}
_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_ORDER_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)(?:\s+(ASC|DESC))?$", re.IGNORECASE)


def _ident(name: str) -> str:
    if not _IDENT_RE.match(name or ""):
        raise ValueError(f"Invalid identifier: {name!r}")
    return name


def records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame rows as plain dicts, with NaN/NaT turned into ``None``."""
    if df is None or df.empty:
        return []
    clean = df.astype(object).where(pd.notna(df), None)
    return clean.to_dict(orient="records")


class DuckDBSource:
    """Serve attribute queries from a DuckDB table.

    Storage backend: DuckDB (.duckdb file or ``:memory:``)
    - Source data: CSV files matched by ``csv_glob`` or a pandas DataFrame
    - Materialized table: ``table`` (default ``roads.segments``)

    Predicates compiled for the feature service are plain SQL-92 and run
    unchanged as the WHERE clause.
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        table: str = "roads.segments",
        object_id_field: str = "OBJECTID",
        extent_fields: Sequence[str] = ("xmin", "ymin", "xmax", "ymax"),
        csv_glob: Optional[str] = None,
    ):
        self.db_path = str(db_path)
        self.table = table
        self.object_id_field = object_id_field
        self.extent_fields = tuple(extent_fields)
        self.csv_glob = csv_glob
        self._con: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.Lock()
        schema, _, name = table.rpartition(".")
        self._schema = _ident(schema or "main")
        self._name = _ident(name)

    @property
    def identity(self) -> str:
        if self.db_path == ":memory:":
            return f"duckdb:memory-{id(self):x}:{self.table}"
        return f"duckdb:{self.db_path}:{self.table}"

    # ---------- DuckDB helpers ----------

    def _connect(self) -> duckdb.DuckDBPyConnection:
        if self._con is None:
            if self.db_path != ":memory:":
                os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
            self._con = duckdb.connect(self.db_path)
        return self._con

    def _table_exists(self) -> bool:
        con = self._connect()
        try:
            return bool(
                con.execute(
                    "SELECT COUNT(*) FROM information_schema.tables "
                    "WHERE table_schema = ? AND table_name = ?;",
                    [self._schema, self._name],
                ).fetchone()[0]
            )
        except duckdb.Error:
            return False

    def _columns(self) -> List[str]:
        df = self.run_query(
            "SELECT column_name FROM information_schema.columns "
            "WHERE table_schema = ? AND table_name = ?;",
            [self._schema, self._name],
        )
        return df["column_name"].tolist()

    def rebuild_from_csv(self, csv_glob: Optional[str] = None) -> int:
        """Full rebuild of the segment table from CSVs matched by ``csv_glob``."""
        con = self._connect()
        csv_glob = csv_glob or self.csv_glob
        files = _glob.glob(csv_glob) if csv_glob else []
        if not files:
            logger.warning("No CSV files found for glob %s; segment table not rebuilt", csv_glob)
            return 0

        logger.info("Building %s from %d CSV file(s): %s", self.table, len(files), csv_glob)
        con.execute(f"CREATE SCHEMA IF NOT EXISTS {self._schema};")
        con.execute(f"DROP TABLE IF EXISTS {self._schema}.{self._name};")
        pattern = csv_glob.replace("'", "''")
        con.execute(
            f"CREATE TABLE {self._schema}.{self._name} AS "
            f"SELECT * FROM read_csv_auto('{pattern}', HEADER=TRUE);"
        )
        con.execute(f"ANALYZE {self._schema}.{self._name};")
        n = con.execute(f"SELECT COUNT(*) FROM {self._schema}.{self._name};").fetchone()[0]
        logger.info("DuckDB table %s rebuilt with %d segment(s).", self.table, n)
        return int(n)

    def set_df(self, df: pd.DataFrame) -> None:
        """Replace the segment table with the contents of ``df``."""
        con = self._connect()
        con.execute(f"CREATE SCHEMA IF NOT EXISTS {self._schema};")
        con.execute(f"DROP TABLE IF EXISTS {self._schema}.{self._name};")
        con.register("tmp_df", df)
        con.execute(f"CREATE TABLE {self._schema}.{self._name} AS SELECT * FROM tmp_df;")
        con.unregister("tmp_df")
        con.execute(f"ANALYZE {self._schema}.{self._name};")
        logger.info("Persisted %d segment(s) into DuckDB %s.", len(df), self.table)

    def ensure_data(self) -> None:
        if not self._table_exists():
            logger.info("DuckDB table %s missing; attempting to build from CSV.", self.table)
            self.rebuild_from_csv()

    def run_query(self, sql: str, params=None) -> pd.DataFrame:
        """Execute SQL on DuckDB and return as pandas DataFrame."""
        # One cursor per call: queries may arrive from several worker threads.
        with self._lock:
            cur = self._connect().cursor()
        try:
            return cur.execute(sql, params or []).df()
        finally:
            cur.close()

    # ---------- attribute source contract ----------

    def build_sql(self, options: QueryOptions) -> str:
        select: List[str] = []
        if options.out_statistics:
            select.extend(_ident(f) for f in options.group_by)
            for stat in options.out_statistics:
                select.append(
                    f"{_SQL_OPS[stat.op]}({_ident(stat.field)}) AS {_ident(stat.output_name)}"
                )
        elif options.out_fields:
            select.extend(_ident(f) for f in options.out_fields)
        else:
            select.append("*")

        distinct = "DISTINCT " if options.return_distinct_values and not options.out_statistics else ""
        sql = f"SELECT {distinct}{', '.join(select)} FROM {self._schema}.{self._name} WHERE {options.where or '1=1'}"

        if options.out_statistics and options.group_by:
            sql += " GROUP BY " + ", ".join(_ident(f) for f in options.group_by)
        if options.order_by:
            order = []
            for term in options.order_by:
                m = _ORDER_RE.match(term.strip())
                if not m:
                    raise ValueError(f"Invalid order-by term: {term!r}")
                order.append(f"{m.group(1)} {(m.group(2) or 'ASC').upper()}")
            sql += " ORDER BY " + ", ".join(order)
        if options.limit is not None:
            sql += f" LIMIT {int(options.limit)}"
        return sql

    def query(self, options: QueryOptions) -> List[Dict[str, Any]]:
        return records(self.run_query(self.build_sql(options)))

    def query_extent(self, where: str) -> Optional[BoundingBox]:
        columns = set(self._columns())
        if not all(c in columns for c in self.extent_fields):
            logger.debug("Extent columns %s not present in %s", self.extent_fields, self.table)
            return None
        x0, y0, x1, y1 = (_ident(c) for c in self.extent_fields)
        df = self.run_query(
            f"SELECT MIN({x0}) AS xmin, MIN({y0}) AS ymin, MAX({x1}) AS xmax, MAX({y1}) AS ymax "
            f"FROM {self._schema}.{self._name} WHERE {where or '1=1'}"
        )
        row = records(df)[0] if not df.empty else {}
        if any(row.get(k) is None for k in ("xmin", "ymin", "xmax", "ymax")):
            return None
        return BoundingBox(
            float(row["xmin"]), float(row["ymin"]), float(row["xmax"]), float(row["ymax"])
        )

    def close(self) -> None:
        if self._con is not None:
            self._con.close()
            self._con = None


def source_from_config(config: Mapping[str, Any]) -> DuckDBSource:
    source = DuckDBSource(
        db_path=str(config.get("DUCKDB_PATH", ":memory:")),
        table=config.get("TABLE", "roads.segments"),
        object_id_field=config["FIELDS"]["object_id"],
        extent_fields=config.get("EXTENT_FIELDS", ("xmin", "ymin", "xmax", "ymax")),
        csv_glob=config.get("CSV_GLOB"),
    )
    source.ensure_data()
    return source


__all__ = ["DuckDBSource", "records", "source_from_config"]
