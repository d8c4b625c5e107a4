"""Application configuration objects."""

import os
import sys
from pathlib import Path
from typing import Any, Dict, List

from dotenv import load_dotenv

if getattr(sys, "frozen", False):
    load_dotenv(os.path.join(sys._MEIPASS, ".env"))
else:
    load_dotenv()


class Config:
    """Base configuration for the road-network flood-risk service."""

    JSON_SORT_KEYS = False
    TESTING = False

    # -------------------------
    # Attribute source
    # -------------------------
    # "feature-service" (remote REST layer) or "duckdb" (local table)
    DATA_SOURCE = os.getenv("ROADRISK_DATA_SOURCE", "feature-service")

    FEATURE_SERVICE_URL = os.getenv("ROADRISK_FEATURE_SERVICE_URL", "")
    API_KEY = os.getenv("ROADRISK_API_KEY")
    # Transport timeout (seconds); the core adds none of its own
    QUERY_TIMEOUT = float(os.getenv("ROADRISK_QUERY_TIMEOUT", "30"))

    DUCKDB_PATH = Path(os.getenv("ROADRISK_DUCKDB_PATH", "data/roads.duckdb"))
    TABLE = os.getenv("ROADRISK_TABLE", "roads.segments")
    CSV_GLOB = os.getenv("ROADRISK_CSV_GLOB", "data/*.csv")
    EXTENT_FIELDS = ("xmin", "ymin", "xmax", "ymax")

    # -------------------------
    # Query cache
    # -------------------------
    CACHE_TTL_SECONDS = float(os.getenv("ROADRISK_CACHE_TTL_SECONDS", "300"))
    CACHE_MAX_ENTRIES = int(os.getenv("ROADRISK_CACHE_MAX_ENTRIES", "100"))

    # -------------------------
    # Network constants
    # -------------------------
    SEGMENT_LENGTH_KM = float(os.getenv("ROADRISK_SEGMENT_LENGTH_KM", "0.1"))
    TOTAL_NETWORK_LENGTH_KM = float(os.getenv("ROADRISK_TOTAL_NETWORK_LENGTH_KM", "5338.2"))

    # percentage < 5 low, < 15 medium, else high
    RISK_THRESHOLDS = (5.0, 15.0)

    # -------------------------
    # Attribute names
    # -------------------------
    FIELDS: Dict[str, str] = {
        "object_id": "OBJECTID",
        "county": "COUNTY",
        "subnet": "Subnet",
        "criticality": "Criticality_Rating_Num1",
        "lifeline": "Lifeline",
        "historic_flooding_any": "historic_flooding_any",
        "rainfall_change_cat": "Rainfall_Change_category",
        "rainfall_absolute_cat": "Rainfall_Absolute_category",
        "rainfall_change_2050": "Rainfall_Change_2050",
        "rainfall_absolute_2050": "Rainfall_Absolute_2050",
        "inundation_depth_rcp45": "avg_dep_45",
        "inundation_depth_rcp85": "avg_dep_85",
    }

    # High-range first, matching the order the dashboard shows them.
    FUTURE_SCENARIOS: List[Dict[str, Any]] = [
        {
            "key": "rcp85",
            "title": "RCP 8.5 Flood Scenario",
            "return_period": "100-200 year return period",
            "any_field": "future_flood_intersection_h",
            "models": [
                {"key": "cfram_f", "label": "CFRAM Fluvial Model", "field": "cfram_f_h_0100", "model_type": "fluvial"},
                {"key": "cfram_c", "label": "CFRAM Coastal Model", "field": "cfram_c_h_0200", "model_type": "coastal"},
                {"key": "nifm_f", "label": "NIFM Fluvial Model", "field": "nifm_f_h_0100", "model_type": "fluvial"},
                {"key": "ncfhm_c", "label": "NCFHM Coastal Model", "field": "ncfhm_c_c_0200", "model_type": "coastal"},
            ],
        },
        {
            "key": "rcp45",
            "title": "RCP 4.5 Flood Scenario",
            "return_period": "10-20 year return period",
            "any_field": "future_flood_intersection_m",
            "models": [
                {"key": "cfram_f", "label": "CFRAM Fluvial Model", "field": "cfram_f_m_0010", "model_type": "fluvial"},
                {"key": "cfram_c", "label": "CFRAM Coastal Model", "field": "cfram_c_m_0010", "model_type": "coastal"},
                {"key": "nifm_f", "label": "NIFM Fluvial Model", "field": "nifm_f_m_0020", "model_type": "fluvial"},
                {"key": "ncfhm_c", "label": "NCFHM Coastal Model", "field": "ncfhm_c_m_0010", "model_type": "coastal"},
            ],
        },
    ]

    PAST_EVENT_INDICATORS: List[Dict[str, str]] = [
        {"label": "DMS Drainage Defects (2015-2023)", "field": "DMS_Defects_2015_2023"},
        {"label": "OPW Past Flood Events", "field": "opw_jba_flood_points"},
        {"label": "GSI Surface Water Flood Map (2015-2016)", "field": "GSI_2015_2016_SurfWater"},
        {"label": "GSI Historic Groundwater Flood Map", "field": "GSI_Hist_Groundwater"},
        {"label": "JBA Historic Flooding (NRA Points)", "field": "JBA_Hist_Floods_NRA_Points"},
        {"label": "MOCC Flood Events", "field": "MOCC_100m"},
    ]

    # Summed independently of the indicator breakdown above.
    PAST_EVENT_COUNTERS: List[Dict[str, str]] = [
        {"key": "drainageDefects", "label": "Drainage Defects", "field": "Drainage_Defects_count"},
        {"key": "opwPoints", "label": "OPW Points", "field": "OPW_flood_points_count"},
        {"key": "nraPoints", "label": "NRA Points", "field": "NRA_flood_points_count"},
        {"key": "moccPoints", "label": "MOCC Events", "field": "mocc_point_count"},
    ]

    RAINFALL_ANALYSES: List[Dict[str, str]] = [
        {
            "key": "change",
            "label": "Rainfall Change 2050",
            "filter_id": "rainfall-change-cat",
            "category_field": "Rainfall_Change_category",
            "value_field": "Rainfall_Change_2050",
        },
        {
            "key": "absolute",
            "label": "Rainfall Absolute 2050",
            "filter_id": "rainfall-absolute-cat",
            "category_field": "Rainfall_Absolute_category",
            "value_field": "Rainfall_Absolute_2050",
        },
    ]
    RAINFALL_CATEGORY_LABELS: Dict[int, str] = {
        1: "Very Low (1)",
        2: "Low (2)",
        3: "Medium (3)",
        4: "High (4)",
        5: "Very High (5)",
    }
    HIGH_RAINFALL_CATEGORY = 4

    INUNDATION_ANALYSES: List[Dict[str, str]] = [
        {"key": "rcp45", "label": "RCP 4.5", "filter_id": "inundation-depth-45", "depth_field": "avg_dep_45"},
        {"key": "rcp85", "label": "RCP 8.5", "filter_id": "inundation-depth-85", "depth_field": "avg_dep_85"},
    ]
    HIGH_DEPTH_M = 0.5
    CRITICAL_DEPTH_M = 1.0
    CRITICAL_RATING = 4
    TOP_COUNTIES = 10

    SUBNET_LABELS: Dict[str, str] = {
        "0": "Motorway/Dual Carriageway",
        "1": "Engineered Pavements",
        "2": "Urban Roads",
        "3": "Legacy Pavements - High Traffic",
        "4": "Legacy Pavements - Low Traffic",
    }

    FIELD_LABELS: Dict[str, str] = {
        "historic_flooding_any": "Any Historic Flooding",
        "future_flood_intersection_m": "Any Future Flood (Mid-Range, 10-20yr)",
        "future_flood_intersection_h": "Any Future Flood (High-Range, 100-200yr)",
    }

    # -------------------------
    # Filter catalog
    # -------------------------
    _RATING_OPTIONS = [
        {"label": "Very High (5)", "value": "5"},
        {"label": "High (4)", "value": "4"},
        {"label": "Medium (3)", "value": "3"},
        {"label": "Low (2)", "value": "2"},
        {"label": "Very Low (1)", "value": "1"},
    ]

    FILTER_CATALOG: List[Dict[str, Any]] = [
        {
            "id": "flood-scenario",
            "label": "Flood Scenario",
            "type": "scenario-select",
            "category": "future",
            "description": "Select one or more flood scenarios to analyze.",
            "items": [
                {"label": "Future Flooding (Mid-Range, 10-20yr)", "field": "future_flood_intersection_m", "value": 1},
                {"label": "Future Flooding (High-Range, 100-200yr)", "field": "future_flood_intersection_h", "value": 1},
                {"label": "Historic & Future (Mid-Range, 10-20yr)", "field": "historic_intersection_m", "value": 1},
                {"label": "Historic & Future (High-Range, 100-200yr)", "field": "historic_intersection_h", "value": 1},
                {"label": "Historic Only (Mid-Range, 10-20yr)", "field": "hist_no_future_m", "value": 1},
                {"label": "Historic Only (High-Range, 100-200yr)", "field": "hist_no_future_h", "value": 1},
                {"label": "Historic Any", "field": "historic_flooding_any", "value": 1},
            ],
        },
        {
            "id": "past-flood-event",
            "label": "Past Flood Event",
            "type": "scenario-select",
            "category": "past",
            "description": "Select one or more past flood event types to analyze.",
            "items": [
                {"label": "DMS Drainage Defects (2015-2023)", "field": "DMS_Defects_2015_2023", "value": 1},
                {"label": "OPW Past Flood Events", "field": "opw_jba_flood_points", "value": 1},
                {"label": "GSI Surface Water Flood Map (2015-2016)", "field": "GSI_2015_2016_SurfWater", "value": 1},
                {"label": "GSI Historic Groundwater Flood Map", "field": "GSI_Hist_Groundwater", "value": 1},
                {"label": "JBA Historic Flooding (NRA Points)", "field": "JBA_Hist_Floods_NRA_Points", "value": 1},
                {"label": "MOCC Flood Events", "field": "MOCC_100m", "value": 1},
            ],
        },
        {
            "id": "rainfall-absolute-cat",
            "label": "Rainfall Absolute Category",
            "type": "multi-select",
            "category": "precipitation",
            "field": "Rainfall_Absolute_category",
            "dataType": "number",
            "description": "Filter road segments by their predicted absolute rainfall category (1-5).",
            "options": _RATING_OPTIONS,
        },
        {
            "id": "rainfall-change-cat",
            "label": "Rainfall Change Category",
            "type": "multi-select",
            "category": "precipitation",
            "field": "Rainfall_Change_category",
            "dataType": "number",
            "description": "Filter road segments by their predicted rainfall change category (1-5).",
            "options": _RATING_OPTIONS,
        },
        {
            "id": "inundation-depth-45",
            "label": "Inundation Depth (RCP 4.5)",
            "type": "range-slider",
            "category": "precipitation",
            "field": "avg_dep_45",
            "dataType": "number",
            "description": "Filter by average inundation depth (in meters) for the RCP 4.5 scenario.",
            "min": 0,
            "max": 5,
            "step": 0.1,
        },
        {
            "id": "inundation-depth-85",
            "label": "Inundation Depth (RCP 8.5)",
            "type": "range-slider",
            "category": "precipitation",
            "field": "avg_dep_85",
            "dataType": "number",
            "description": "Filter by average inundation depth (in meters) for the RCP 8.5 scenario.",
            "min": 0,
            "max": 5,
            "step": 0.1,
        },
        {
            "id": "county",
            "label": "County",
            "type": "multi-select",
            "field": "COUNTY",
            "dataType": "string",
            "description": "Filter by administrative county boundaries.",
            "options": [],  # populated from distinct values
        },
        {
            "id": "criticality",
            "label": "Criticality Rating",
            "type": "multi-select",
            "field": "Criticality_Rating_Num1",
            "dataType": "number",
            "description": "Infrastructure criticality assessment based on usage and importance.",
            "options": _RATING_OPTIONS,
        },
        {
            "id": "subnet",
            "label": "Road Subnet",
            "type": "multi-select",
            "field": "Subnet",
            "dataType": "number",
            "description": "Classification of road infrastructure by construction and traffic patterns.",
            "options": [{"label": f"{v} ({k})", "value": k} for k, v in SUBNET_LABELS.items()],
        },
        {
            "id": "lifeline",
            "label": "Lifeline Route",
            "type": "multi-select",
            "field": "Lifeline",
            "dataType": "number",
            "description": "Critical routes essential for emergency services and vital community functions.",
            "options": [
                {"label": "Lifeline Route", "value": "1"},
                {"label": "Non-lifeline Route", "value": "0"},
            ],
        },
    ]


class DevConfig(Config):
    DEBUG = True


class TestConfig(Config):
    TESTING = True
    DATA_SOURCE = "duckdb"
    DUCKDB_PATH = ":memory:"
    CSV_GLOB = None


def to_mapping(config_object=Config) -> Dict[str, Any]:
    """Upper-case attributes of a config class, as Flask's ``from_object`` reads them."""
    return {key: getattr(config_object, key) for key in dir(config_object) if key.isupper()}


__all__ = ["Config", "DevConfig", "TestConfig", "to_mapping"]
