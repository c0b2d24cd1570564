"""In-memory record store for regions, sites, linear and area features."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Iterable

import geopandas as gpd
import pandas as pd

from site_selection.data.geometry import (
    CRS,
    DEFAULT_ADAPTER,
    GeometryAdapter,
    as_crs,
    is_linear_frame,
    make_points_from_latlon,
)
from site_selection.errors import ProjectionError, RecordLoadError

LOGGER = logging.getLogger(__name__)

PROJECTED_GEOMETRY = "geometry_projected"
REGION_ID = "region_id"
REGION_NAME = "region_name"

ID_CANDIDATES = ("record_id", "id", "fid", "gid", "objectid", "geoid")
NAME_CANDIDATES = ("name", "namelsad", "fullname", "full_name", "county_name", "city_name", "label")

# Columns that are never treated as scalar attributes
RESERVED_COLUMNS = frozenset({"geometry", PROJECTED_GEOMETRY, "name", REGION_ID, REGION_NAME})


class RecordKind(str, Enum):
    REGION = "region"
    SITE = "site"
    LINEAR_FEATURE = "linear_feature"
    AREA_FEATURE = "area_feature"


GEOMETRY_TYPES = {
    RecordKind.REGION: frozenset({"Polygon", "MultiPolygon"}),
    RecordKind.SITE: frozenset({"Point"}),
    RecordKind.LINEAR_FEATURE: frozenset({"LineString", "MultiLineString"}),
    RecordKind.AREA_FEATURE: frozenset({"Polygon", "MultiPolygon"}),
}

NAME_REQUIRED = frozenset({RecordKind.REGION, RecordKind.SITE})


def _find_column(gdf: gpd.GeoDataFrame, candidates: Iterable[str]) -> str | None:
    lower_map = {str(col).lower(): col for col in gdf.columns}
    return next((lower_map[c.lower()] for c in candidates if c.lower() in lower_map), None)


def _normalize_records(raw: gpd.GeoDataFrame, kind: RecordKind) -> gpd.GeoDataFrame:
    gdf = raw.copy()
    if gdf.geometry.name != "geometry":
        gdf = gdf.rename_geometry("geometry")
    if PROJECTED_GEOMETRY in gdf.columns:
        gdf = gdf.drop(columns=[PROJECTED_GEOMETRY])

    id_col = _find_column(gdf, ID_CANDIDATES)
    if id_col is None:
        raise RecordLoadError(f"{kind.value}: could not find an identifier column among {ID_CANDIDATES}.")
    gdf = gdf.rename(columns={id_col: "record_id"})
    if gdf["record_id"].isna().any():
        raise RecordLoadError(f"{kind.value}: identifier column contains missing values.")
    if gdf["record_id"].duplicated().any():
        dup_keys = gdf.loc[gdf["record_id"].duplicated(), "record_id"].head(10).tolist()
        raise RecordLoadError(f"{kind.value}: duplicate identifiers found. Sample duplicates: {dup_keys}")

    name_col = _find_column(gdf, NAME_CANDIDATES)
    if name_col is not None:
        gdf = gdf.rename(columns={name_col: "name"})
        if kind in NAME_REQUIRED and gdf["name"].isna().any():
            missing = gdf.loc[gdf["name"].isna(), "record_id"].head(10).tolist()
            raise RecordLoadError(f"{kind.value}: name column contains missing values. Sample identifiers: {missing}")
        gdf["name"] = gdf["name"].astype(str).str.strip()
    elif kind in NAME_REQUIRED:
        raise RecordLoadError(f"{kind.value}: could not find a name column among {NAME_CANDIDATES}.")
    else:
        gdf["name"] = None
    return gdf.set_index("record_id")


def _check_geometry_types(gdf: gpd.GeoDataFrame, kind: RecordKind) -> None:
    present = gdf.geometry.dropna()
    allowed = GEOMETRY_TYPES[kind]
    bad = present[~present.geom_type.isin(allowed)]
    if not bad.empty:
        sample = bad.geom_type.head(5).to_dict()
        raise RecordLoadError(f"{kind.value}: expected {sorted(allowed)} geometries. Sample violators: {sample}")


def attribute_fields(collection: pd.DataFrame) -> list[str]:
    """Numeric, non-reserved columns usable in attribute predicates."""

    return [
        col
        for col in collection.columns
        if col not in RESERVED_COLUMNS
        and pd.api.types.is_numeric_dtype(collection[col])
        and not pd.api.types.is_bool_dtype(collection[col])
    ]


def read_layer(path: str | Path, lat_col: str = "lat", lon_col: str = "lon") -> gpd.GeoDataFrame:
    """Read a vector file (or a lat/lon CSV of points) into a GeoDataFrame."""

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing layer at {path}.")
    if path.suffix.lower() == ".csv":
        return make_points_from_latlon(pd.read_csv(path), lat_col=lat_col, lon_col=lon_col)
    gdf = gpd.read_file(path)
    if gdf.crs is None:
        gdf = gdf.set_crs(CRS.wgs84)
    return gdf


class RecordStore:
    """Load-once collections keyed by :class:`RecordKind`.

    Every collection is indexed by ``record_id`` and carries its original
    ``geometry`` plus a ``geometry_projected`` column in the store frame,
    computed once at load time.
    """

    def __init__(self, crs=CRS.target, adapter: GeometryAdapter | None = None):
        self.crs = as_crs(crs)
        if not is_linear_frame(self.crs):
            raise ProjectionError(f"Store frame {self.crs.to_string()} is not projected with a linear unit.")
        self._adapter = adapter or DEFAULT_ADAPTER
        self._collections: dict[RecordKind, gpd.GeoDataFrame] = {}

    def load(self, kind: RecordKind | str, raw: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
        kind = RecordKind(kind)
        if not isinstance(raw, gpd.GeoDataFrame):
            raise RecordLoadError(f"{kind.value}: expected a GeoDataFrame, got {type(raw).__name__}.")
        records = _normalize_records(raw, kind)
        _check_geometry_types(records, kind)
        records[PROJECTED_GEOMETRY] = self._adapter.project(records.geometry, self.crs)
        self._collections[kind] = records
        LOGGER.info("Loaded %d %s records (frame %s)", len(records), kind.value, self.crs.to_string())
        return records

    def get(self, kind: RecordKind | str) -> gpd.GeoDataFrame:
        kind = RecordKind(kind)
        if kind not in self._collections:
            raise RecordLoadError(f"No {kind.value} records have been loaded.")
        return self._collections[kind]

    @property
    def kinds(self) -> list[RecordKind]:
        return list(self._collections)

    def __contains__(self, kind) -> bool:
        return RecordKind(kind) in self._collections
