"""Named, materialized filter stages for candidate site selection.

Stage order is fixed:

1. ``suitable_regions``  - region attribute predicates
2. ``suitable_sites``    - sites inside a suitable region, then site predicates
3. ``sites_near_linear`` - suitable sites near any linear feature
4. ``final_candidates``  - those sites near any area feature

Each stage result is cached under its name and can be inspected on its own.
"""

from __future__ import annotations

import dataclasses
import logging

import geopandas as gpd
import pandas as pd

from site_selection.config import (
    STAGE_FINAL_CANDIDATES,
    STAGE_NAMES,
    STAGE_SITES_NEAR_LINEAR,
    STAGE_SUITABLE_REGIONS,
    STAGE_SUITABLE_SITES,
    PipelineConfig,
)
from site_selection.data.geometry import GeometryAdapter, as_crs
from site_selection.data.records import PROJECTED_GEOMETRY, RecordKind, RecordStore
from site_selection.errors import FrameMismatchError, UnknownStageError
from site_selection.filters.attributes import filter_attributes
from site_selection.filters.spatial_join import filter_contained, filter_within_distance

LOGGER = logging.getLogger(__name__)

# First stage whose output depends on each config field
_CONFIG_STAGE = {
    "target_crs": STAGE_SUITABLE_REGIONS,
    "region_predicates": STAGE_SUITABLE_REGIONS,
    "site_predicates": STAGE_SUITABLE_SITES,
    "linear_threshold": STAGE_SITES_NEAR_LINEAR,
    "area_threshold": STAGE_FINAL_CANDIDATES,
}


def _require_stage(name: str) -> None:
    if name not in STAGE_NAMES:
        raise UnknownStageError(f"Unknown stage {name!r}; expected one of {list(STAGE_NAMES)}.")


class SiteSelectionPipeline:
    """Runs the four filter stages over a loaded :class:`RecordStore`."""

    def __init__(
        self,
        store: RecordStore,
        config: PipelineConfig | None = None,
        adapter: GeometryAdapter | None = None,
    ):
        self.store = store
        self.config = config or PipelineConfig()
        self._adapter = adapter
        self._results: dict[str, gpd.GeoDataFrame] = {}

    @classmethod
    def from_frames(
        cls,
        config: PipelineConfig,
        regions: gpd.GeoDataFrame,
        sites: gpd.GeoDataFrame,
        linear_features: gpd.GeoDataFrame,
        area_features: gpd.GeoDataFrame,
        adapter: GeometryAdapter | None = None,
    ) -> "SiteSelectionPipeline":
        """Load the four raw collections into a store framed by ``config.target_crs``."""

        store = RecordStore(config.target_crs, adapter=adapter)
        store.load(RecordKind.REGION, regions)
        store.load(RecordKind.SITE, sites)
        store.load(RecordKind.LINEAR_FEATURE, linear_features)
        store.load(RecordKind.AREA_FEATURE, area_features)
        return cls(store, config, adapter=adapter)

    def _check_frame(self) -> None:
        target = as_crs(self.config.target_crs)
        if self.store.crs != target:
            raise FrameMismatchError(
                f"Store was projected to {self.store.crs.to_string()} but the pipeline targets "
                f"{target.to_string()}; reload the records."
            )

    def _invalidate(self, name: str) -> None:
        for stage in STAGE_NAMES[STAGE_NAMES.index(name):]:
            self._results.pop(stage, None)

    def _compute(self, name: str) -> gpd.GeoDataFrame:
        if name == STAGE_SUITABLE_REGIONS:
            return filter_attributes(self.store.get(RecordKind.REGION), self.config.region_predicates)
        if name == STAGE_SUITABLE_SITES:
            contained = filter_contained(
                self.store.get(RecordKind.SITE),
                self.stage(STAGE_SUITABLE_REGIONS),
                adapter=self._adapter,
            )
            return filter_attributes(contained, self.config.site_predicates)
        if name == STAGE_SITES_NEAR_LINEAR:
            return filter_within_distance(
                self.stage(STAGE_SUITABLE_SITES),
                self.store.get(RecordKind.LINEAR_FEATURE),
                self.config.linear_threshold,
                adapter=self._adapter,
            )
        return filter_within_distance(
            self.stage(STAGE_SITES_NEAR_LINEAR),
            self.store.get(RecordKind.AREA_FEATURE),
            self.config.area_threshold,
            adapter=self._adapter,
        )

    def run_stage(self, name: str) -> gpd.GeoDataFrame:
        """Recompute ``name`` (and any missing upstream stage); downstream results are dropped."""

        _require_stage(name)
        self._check_frame()
        self._invalidate(name)
        result = self._compute(name)
        self._results[name] = result
        LOGGER.info("Stage %s: %d records", name, len(result))
        if result.empty:
            LOGGER.warning("Stage %s produced no records.", name)
        return result

    def run(self) -> dict[str, gpd.GeoDataFrame]:
        """Recompute every stage in order and return them keyed by name."""

        for name in STAGE_NAMES:
            self.run_stage(name)
        return {name: self._results[name] for name in STAGE_NAMES}

    def stage(self, name: str) -> gpd.GeoDataFrame:
        """Cached result of ``name``, computed on first access."""

        _require_stage(name)
        if name not in self._results:
            return self.run_stage(name)
        return self._results[name]

    def count(self, name: str) -> int:
        return len(self.stage(name))

    def listing(self, name: str) -> pd.DataFrame:
        """Attribute table of a stage, without geometry columns."""

        result = self.stage(name)
        geometry_cols = [col for col in ("geometry", PROJECTED_GEOMETRY) if col in result.columns]
        return pd.DataFrame(result.drop(columns=geometry_cols)).reset_index()

    def summary(self) -> dict[str, int]:
        return {name: self.count(name) for name in STAGE_NAMES}

    @property
    def completed_stages(self) -> list[str]:
        return [name for name in STAGE_NAMES if name in self._results]

    def update_config(self, **changes) -> PipelineConfig:
        """Replace config fields and drop the first affected stage and everything after it."""

        unknown = set(changes) - set(_CONFIG_STAGE)
        if unknown:
            raise TypeError(f"Unknown configuration fields: {sorted(unknown)}")
        new_config = dataclasses.replace(self.config, **changes)
        changed = [key for key in changes if getattr(new_config, key) != getattr(self.config, key)]
        self.config = new_config
        if changed:
            first = min(STAGE_NAMES.index(_CONFIG_STAGE[key]) for key in changed)
            LOGGER.info("Config change %s invalidates stages from %s", sorted(changed), STAGE_NAMES[first])
            self._invalidate(STAGE_NAMES[first])
        return new_config
