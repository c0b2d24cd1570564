"""Shared layer fixtures.

Two copies of the same small scenario are provided:

- ``feet_*`` layers in NC State Plane (EPSG:2264, US survey feet), so
  distances can be written down directly in frame units;
- ``wgs84_*`` layers in lon/lat around central North Carolina, used where
  projection itself is under test.

In both, only S1 survives every stage: S2 lies in the rejected region R2 and
S3 is too far from the area feature.
"""

from __future__ import annotations

import geopandas as gpd
import pytest
from shapely.geometry import LineString, Point, box

FEET_CRS = "EPSG:2264"
ALBERS_CRS = "EPSG:5070"
WGS84 = "EPSG:4326"

# 20 miles and 10 miles in US survey feet
LINEAR_THRESHOLD_FT = 105_600.0
AREA_THRESHOLD_FT = 52_800.0

REGION_PREDICATES = [("farms", ">", 500), ("workforce", ">=", 25000), ("density", "<", 150)]
SITE_PREDICATES = [("population", ">=", 10000)]


def _regions(geometries, crs):
    return gpd.GeoDataFrame(
        {
            "record_id": ["R1", "R2"],
            "name": ["R1", "R2"],
            "farms": [847, 400],
            "workforce": [71214, 10000],
            "density": [96, 200],
        },
        geometry=geometries,
        crs=crs,
    )


def _sites(geometries, crs):
    return gpd.GeoDataFrame(
        {
            "record_id": ["S1", "S2", "S3"],
            "name": ["S1", "S2", "S3"],
            "population": [20000, 50000, 15000],
        },
        geometry=geometries,
        crs=crs,
    )


def _linear(geometries, crs):
    return gpd.GeoDataFrame({"record_id": ["I-1"], "name": ["I-1"]}, geometry=geometries, crs=crs)


def _area(geometries, crs):
    return gpd.GeoDataFrame({"record_id": ["A1"]}, geometry=geometries, crs=crs)


@pytest.fixture
def feet_regions() -> gpd.GeoDataFrame:
    return _regions(
        [box(1_800_000, 500_000, 1_900_000, 600_000), box(1_900_000, 500_000, 2_000_000, 600_000)],
        FEET_CRS,
    )


@pytest.fixture
def feet_sites() -> gpd.GeoDataFrame:
    # S1 is exactly 100,000 ft east of the linear feature.
    return _sites(
        [Point(1_850_000, 550_000), Point(1_950_000, 550_000), Point(1_805_000, 505_000)],
        FEET_CRS,
    )


@pytest.fixture
def feet_linear() -> gpd.GeoDataFrame:
    return _linear([LineString([(1_750_000, 400_000), (1_750_000, 700_000)])], FEET_CRS)


@pytest.fixture
def feet_area() -> gpd.GeoDataFrame:
    return _area([box(1_860_000, 560_000, 1_870_000, 570_000)], FEET_CRS)


@pytest.fixture
def wgs84_regions() -> gpd.GeoDataFrame:
    return _regions([box(-80.0, 35.0, -79.0, 36.0), box(-79.0, 35.0, -78.0, 36.0)], WGS84)


@pytest.fixture
def wgs84_sites() -> gpd.GeoDataFrame:
    return _sites([Point(-79.5, 35.5), Point(-78.5, 35.5), Point(-79.9, 35.1)], WGS84)


@pytest.fixture
def wgs84_linear() -> gpd.GeoDataFrame:
    # ~27 km west of S1, ~9 km west of S3
    return _linear([LineString([(-79.8, 34.8), (-79.8, 36.2)])], WGS84)


@pytest.fixture
def wgs84_area() -> gpd.GeoDataFrame:
    # ~4.5 km east of S1, ~56 km from S3
    return _area([box(-79.45, 35.45, -79.4, 35.5)], WGS84)
