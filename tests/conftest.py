"""Shared fixtures: the configured catalog and a synthetic 1000-segment network."""

import asyncio

import pandas as pd
import pytest

from roadrisk.catalog import load_catalog
from roadrisk.config import TestConfig, to_mapping
from roadrisk.errors import NetworkError
from roadrisk.models import QueryOptions
from roadrisk.services.datastore import DuckDBSource
from roadrisk.services.gateway import QueryGateway
from roadrisk.services.metrics import metrics_from_config
from roadrisk.services.statistics import StatisticsEngine

COUNTIES = ["Cork"] * 400 + ["Kerry"] * 300 + ["Dublin"] * 250 + ["O'Brien's Cross"] * 50


def make_segments(n: int = 1000) -> pd.DataFrame:
    """One row per 100 m segment.

    * rows 0-199 lie in the high-range future flood zone, rows 0-99 in the
      mid-range one;
    * every 10th row has historic flooding;
    * categories, ratings and depths cycle with the row index.
    """
    rows = []
    for i in range(n):
        rows.append(
            {
                "OBJECTID": i + 1,
                "COUNTY": COUNTIES[i % len(COUNTIES)],
                "Subnet": i % 5,
                "Criticality_Rating_Num1": i % 5 + 1,
                "Lifeline": 1 if i % 4 == 0 else 0,
                "future_flood_intersection_h": 1 if i < 200 else 0,
                "future_flood_intersection_m": 1 if i < 100 else 0,
                "cfram_f_h_0100": 1 if i < 120 else 0,
                "cfram_c_h_0200": 0,
                "nifm_f_h_0100": 1 if i < 50 else 0,
                "ncfhm_c_c_0200": 1 if 190 <= i < 200 else 0,
                "cfram_f_m_0010": 1 if i < 80 else 0,
                "cfram_c_m_0010": 0,
                "nifm_f_m_0020": 0,
                "ncfhm_c_m_0010": 0,
                "historic_intersection_m": 1 if i < 100 and i % 10 == 0 else 0,
                "historic_intersection_h": 1 if i < 200 and i % 10 == 0 else 0,
                "hist_no_future_m": 1 if i >= 100 and i % 10 == 0 else 0,
                "hist_no_future_h": 1 if i >= 200 and i % 10 == 0 else 0,
                "historic_flooding_any": 1 if i % 10 == 0 else 0,
                "DMS_Defects_2015_2023": 1 if i % 20 == 0 else 0,
                "opw_jba_flood_points": 1 if i % 50 == 0 else 0,
                "GSI_2015_2016_SurfWater": 0,
                "GSI_Hist_Groundwater": 0,
                "JBA_Hist_Floods_NRA_Points": 0,
                "MOCC_100m": 0,
                "Drainage_Defects_count": 2 if i % 20 == 0 else 0,
                "OPW_flood_points_count": 1 if i % 50 == 0 else 0,
                "NRA_flood_points_count": 0,
                "mocc_point_count": 0,
                "Rainfall_Change_category": i % 5 + 1,
                "Rainfall_Absolute_category": i // 200 + 1,
                "Rainfall_Change_2050": float(i % 5 + 1) * 2.0,
                "Rainfall_Absolute_2050": 800.0 + i,
                "avg_dep_45": round((i % 10) * 0.2, 1),
                "avg_dep_85": round((i % 10) * 0.3, 1),
                "xmin": float(i * 10),
                "ymin": float(i * 5),
                "xmax": float(i * 10 + 10),
                "ymax": float(i * 5 + 5),
            }
        )
    return pd.DataFrame(rows)


class FakeSource:
    """In-process attribute source with scripted failures.

    ``fail_when`` is a predicate on the ``QueryOptions``; matching calls
    raise :class:`NetworkError`.
    """

    object_id_field = "OBJECTID"

    def __init__(self, rows=None, fail_when=None, identity="fake://segments"):
        self.rows = rows if rows is not None else [{"total_count": 10}]
        self.fail_when = fail_when
        self.identity = identity
        self.calls = []

    def query(self, options: QueryOptions):
        self.calls.append(options)
        if self.fail_when is not None and self.fail_when(options):
            raise NetworkError("Service unavailable", {"where": options.where})
        return self.rows

    def query_extent(self, where):
        self.calls.append(where)
        return None


@pytest.fixture
def config():
    return to_mapping(TestConfig)


@pytest.fixture
def catalog(config):
    return load_catalog(config["FILTER_CATALOG"])


@pytest.fixture
def segments():
    return make_segments()


@pytest.fixture
def source(segments):
    src = DuckDBSource(db_path=":memory:", table="roads.segments")
    src.set_df(segments)
    yield src
    src.close()


@pytest.fixture
def gateway():
    return QueryGateway()


@pytest.fixture
def metrics(config):
    return metrics_from_config(config)


@pytest.fixture
def engine(config, gateway, metrics, catalog):
    return StatisticsEngine(config, gateway, metrics, catalog)


@pytest.fixture
def run():
    return asyncio.run


@pytest.fixture
def fake_source():
    return FakeSource
