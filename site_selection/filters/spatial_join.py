"""Containment and proximity semi-joins between record collections.

Both joins keep an inner record when *at least one* record of the other
collection satisfies the predicate. The result is a boolean mask over the
inner rows, so each inner identifier appears at most once no matter how
many matches it has; no cross product is ever materialized as rows.
"""

from __future__ import annotations

import logging

import geopandas as gpd
import numpy as np

from site_selection.data.geometry import DEFAULT_ADAPTER, GeometryAdapter, validate_threshold
from site_selection.data.records import PROJECTED_GEOMETRY, REGION_ID, REGION_NAME

LOGGER = logging.getLogger(__name__)


def _projected(collection: gpd.GeoDataFrame, label: str) -> gpd.GeoSeries:
    if PROJECTED_GEOMETRY not in collection.columns:
        raise ValueError(f"{label} collection has no {PROJECTED_GEOMETRY!r} column; load it through a RecordStore.")
    return collection[PROJECTED_GEOMETRY]


def filter_contained(
    inner: gpd.GeoDataFrame,
    outer: gpd.GeoDataFrame,
    adapter: GeometryAdapter | None = None,
) -> gpd.GeoDataFrame:
    """Keep inner records covered by at least one outer record.

    Survivors are annotated with ``region_id`` / ``region_name`` of the first
    covering outer record in outer iteration order. Overlapping outer
    polygons are therefore resolved deterministically by position.
    """

    adapter = adapter or DEFAULT_ADAPTER
    matches = np.asarray(
        adapter.contains(_projected(outer, "outer"), _projected(inner, "inner")),
        dtype=bool,
    ).reshape(len(inner), len(outer))
    keep = matches.any(axis=1)

    result = inner.loc[keep].copy()
    if len(result):
        first = matches[keep].argmax(axis=1)
        result[REGION_ID] = outer.index.to_numpy()[first]
        result[REGION_NAME] = outer["name"].to_numpy()[first]
    else:
        result[REGION_ID] = []
        result[REGION_NAME] = []

    overlaps = int((matches.sum(axis=1) > 1).sum())
    if overlaps:
        LOGGER.warning("%d records fall inside more than one outer polygon; first match kept.", overlaps)
    if outer.empty:
        LOGGER.warning("Containment filter received an empty outer collection.")
    LOGGER.info("Containment filter: %d of %d records kept", len(result), len(inner))
    return result


def filter_within_distance(
    inner: gpd.GeoDataFrame,
    other: gpd.GeoDataFrame,
    threshold: float,
    adapter: GeometryAdapter | None = None,
) -> gpd.GeoDataFrame:
    """Keep inner records within ``threshold`` frame units of at least one other record."""

    threshold = validate_threshold(threshold)
    adapter = adapter or DEFAULT_ADAPTER
    matches = np.asarray(
        adapter.distance_within(_projected(inner, "inner"), _projected(other, "other"), threshold),
        dtype=bool,
    ).reshape(len(inner), len(other))
    keep = matches.any(axis=1)

    result = inner.loc[keep].copy()
    if other.empty:
        LOGGER.warning("Proximity filter received an empty comparison collection.")
    LOGGER.info("Proximity filter (<= %s units): %d of %d records kept", threshold, len(result), len(inner))
    return result
