"""Geometry adapter: CRS handling, projection and spatial predicates.

Every containment and distance decision in the pipeline goes through
:class:`GeometryAdapter`, so the filters never touch shapely or pyproj
directly and can be exercised with a fake adapter in tests.
"""

from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass

import geopandas as gpd
import numpy as np
import pandas as pd
import shapely
from pyproj import CRS as ProjCRS
from pyproj.exceptions import CRSError, ProjError
from shapely.geometry import Point

from site_selection.errors import FrameMismatchError, InvalidThresholdError, ProjectionError

LOGGER = logging.getLogger(__name__)

# Slack allowed when comparing geographic bounds with a frame's area of use
AREA_OF_USE_TOLERANCE_DEG = 0.5

# Metres per unit for user-facing threshold units
DISTANCE_UNITS_M = {
    "m": 1.0,
    "km": 1000.0,
    "ft": 0.3048,
    "us-ft": 1200.0 / 3937.0,
    "mi": 1609.344,
}


@dataclass(frozen=True)
class CRSConfig:
    """Centralized CRS configuration."""

    wgs84: str = "EPSG:4326"
    # NAD83 / Conus Albers, metres
    target: str = "EPSG:5070"


CRS = CRSConfig()


def as_crs(value) -> ProjCRS:
    """Parse any pyproj-accepted CRS input, raising ProjectionError on failure."""

    if value is None:
        raise ProjectionError("Reference frame is undefined.")
    try:
        return ProjCRS.from_user_input(value)
    except CRSError as exc:
        raise ProjectionError(f"Unsupported reference frame {value!r}: {exc}") from exc


def is_linear_frame(crs) -> bool:
    """True for projected frames whose horizontal axes use a linear unit."""

    crs = as_crs(crs)
    if not crs.is_projected or not crs.axis_info:
        return False
    return crs.axis_info[0].unit_name not in ("degree", "radian", "grad")


def linear_unit_factor(crs) -> float:
    """Metres per unit of a linear frame."""

    crs = as_crs(crs)
    if not is_linear_frame(crs):
        raise FrameMismatchError(f"{crs.to_string()} is not a linear frame; distances would be in degrees.")
    return float(crs.axis_info[0].unit_conversion_factor)


def validate_threshold(value) -> float:
    """Return ``value`` as a float, rejecting non-numeric, non-finite and non-positive input."""

    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidThresholdError(f"Threshold must be a number in frame units, got {value!r}.")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidThresholdError(f"Threshold must be finite, got {value!r}.")
    if value <= 0:
        raise InvalidThresholdError(f"Threshold must be positive, got {value!r}.")
    return value


def to_frame_units(value, unit: str, crs) -> float:
    """Convert a distance in ``unit`` (m, km, ft, us-ft, mi) into units of ``crs``."""

    value = validate_threshold(value)
    key = unit.strip().lower()
    if key not in DISTANCE_UNITS_M:
        raise InvalidThresholdError(f"Unknown distance unit {unit!r}; expected one of {sorted(DISTANCE_UNITS_M)}.")
    return value * DISTANCE_UNITS_M[key] / linear_unit_factor(crs)


def geometry_array(geoms: gpd.GeoSeries) -> np.ndarray:
    """Plain 1-D object array of shapely geometries, in series order."""

    return np.array(list(geoms), dtype=object)


def make_points_from_latlon(df: pd.DataFrame, lat_col: str = "lat", lon_col: str = "lon") -> gpd.GeoDataFrame:
    """Create GeoDataFrame from lat/lon."""

    if lat_col not in df or lon_col not in df:
        raise ValueError(f"Missing lat/lon columns: {lat_col}, {lon_col}.")
    geometry = [Point(xy) for xy in zip(df[lon_col], df[lat_col])]
    return gpd.GeoDataFrame(df.drop(columns=[lat_col, lon_col]), geometry=geometry, crs=CRS.wgs84)


def _require_same_frame(a: gpd.GeoSeries, b: gpd.GeoSeries) -> ProjCRS:
    if a.crs is None or b.crs is None:
        raise FrameMismatchError("Both geometry collections need a CRS before they can be compared.")
    if a.crs != b.crs:
        raise FrameMismatchError(f"Frame mismatch: {a.crs.to_string()} vs {b.crs.to_string()}.")
    return a.crs


def _check_area_of_use(geoms: gpd.GeoSeries, target: ProjCRS) -> None:
    area = target.area_of_use
    if area is None or geoms.empty:
        return
    minx, miny, maxx, maxy = geoms.to_crs(CRS.wgs84).total_bounds
    tol = AREA_OF_USE_TOLERANCE_DEG
    lat_ok = miny >= area.south - tol and maxy <= area.north + tol
    # Areas crossing the antimeridian report west > east; only latitude is checked there.
    lon_ok = area.west > area.east or (minx >= area.west - tol and maxx <= area.east + tol)
    if not (lat_ok and lon_ok):
        raise ProjectionError(
            f"Coordinates with bounds ({minx:.4f}, {miny:.4f}, {maxx:.4f}, {maxy:.4f}) fall outside "
            f"the area of use of {target.to_string()} ({area.name}: "
            f"{area.west}, {area.south}, {area.east}, {area.north})."
        )


class GeometryAdapter:
    """Projection and predicate seam over geopandas / shapely / pyproj.

    ``contains`` and ``distance_within`` evaluate every (inner, other) pair at
    once and return a boolean matrix shaped ``(len(inner), len(other))``.
    """

    def project(self, geoms: gpd.GeoSeries, crs) -> gpd.GeoSeries:
        """Re-project ``geoms`` into the linear frame ``crs``."""

        if geoms.crs is None:
            raise ProjectionError("Geometries missing CRS; please set a source CRS before projecting.")
        target = as_crs(crs)
        if not is_linear_frame(target):
            raise ProjectionError(f"Target frame {target.to_string()} is not projected with a linear unit.")
        missing = geoms.isna() | geoms.is_empty
        if missing.any():
            sample = geoms.index[missing][:5].tolist()
            raise ProjectionError(f"{int(missing.sum())} geometries are missing or empty. Sample index: {sample}")

        _check_area_of_use(geoms, target)
        if geoms.crs != target:
            LOGGER.info("Reprojecting %d geometries from %s to %s", len(geoms), geoms.crs.to_string(), target.to_string())
        try:
            projected = geoms.to_crs(target)
        except (CRSError, ProjError) as exc:
            raise ProjectionError(f"Could not project from {geoms.crs.to_string()} to {target.to_string()}: {exc}") from exc

        coords = shapely.get_coordinates(geometry_array(projected))
        if not np.isfinite(coords).all():
            raise ProjectionError(f"Projection to {target.to_string()} produced non-finite coordinates.")
        return projected

    def contains(self, outer: gpd.GeoSeries, inner: gpd.GeoSeries) -> np.ndarray:
        """Boundary-inclusive containment of each inner geometry by each outer geometry."""

        _require_same_frame(outer, inner)
        return shapely.covers(geometry_array(outer)[np.newaxis, :], geometry_array(inner)[:, np.newaxis])

    def distance_within(self, a: gpd.GeoSeries, b: gpd.GeoSeries, threshold) -> np.ndarray:
        """Whether the minimum distance of each (a, b) pair is at most ``threshold`` frame units."""

        threshold = validate_threshold(threshold)
        frame = _require_same_frame(a, b)
        if not is_linear_frame(frame):
            raise FrameMismatchError(f"{frame.to_string()} is not a linear frame; distances would be in degrees.")
        return shapely.dwithin(geometry_array(a)[:, np.newaxis], geometry_array(b)[np.newaxis, :], threshold)


DEFAULT_ADAPTER = GeometryAdapter()
