"""End-to-end tests for the staged pipeline."""

from __future__ import annotations

import pytest

from site_selection.config import STAGE_NAMES, PipelineConfig
from site_selection.data.geometry import to_frame_units
from site_selection.data.records import REGION_NAME, RecordKind
from site_selection.errors import (
    FrameMismatchError,
    InvalidThresholdError,
    UnknownFieldError,
    UnknownStageError,
)
from site_selection.pipeline.stages import SiteSelectionPipeline

from conftest import (
    ALBERS_CRS,
    AREA_THRESHOLD_FT,
    FEET_CRS,
    LINEAR_THRESHOLD_FT,
    REGION_PREDICATES,
    SITE_PREDICATES,
)


@pytest.fixture
def feet_config() -> PipelineConfig:
    return PipelineConfig(
        target_crs=FEET_CRS,
        region_predicates=REGION_PREDICATES,
        site_predicates=SITE_PREDICATES,
        linear_threshold=LINEAR_THRESHOLD_FT,
        area_threshold=AREA_THRESHOLD_FT,
    )


@pytest.fixture
def pipeline(feet_config, feet_regions, feet_sites, feet_linear, feet_area) -> SiteSelectionPipeline:
    return SiteSelectionPipeline.from_frames(feet_config, feet_regions, feet_sites, feet_linear, feet_area)


def _membership(results):
    return {name: frame.index.tolist() for name, frame in results.items()}


def _wgs84_pipeline(crs, regions, sites, linear, area) -> SiteSelectionPipeline:
    config = PipelineConfig(
        target_crs=crs,
        region_predicates=REGION_PREDICATES,
        site_predicates=SITE_PREDICATES,
        linear_threshold=to_frame_units(20, "mi", crs),
        area_threshold=to_frame_units(10, "mi", crs),
    )
    return SiteSelectionPipeline.from_frames(config, regions, sites, linear, area)


class TestEndToEnd:
    def test_single_final_candidate(self, pipeline) -> None:
        results = pipeline.run()
        assert list(results) == list(STAGE_NAMES)
        assert _membership(results) == {
            "suitable_regions": ["R1"],
            "suitable_sites": ["S1", "S3"],
            "sites_near_linear": ["S1", "S3"],
            "final_candidates": ["S1"],
        }
        assert results["final_candidates"].loc["S1", REGION_NAME] == "R1"

    def test_idempotent(self, pipeline) -> None:
        first = pipeline.run()
        second = pipeline.run()
        assert _membership(first) == _membership(second)
        assert first["final_candidates"][REGION_NAME].tolist() == second["final_candidates"][REGION_NAME].tolist()

    def test_monotonic_narrowing_without_duplicates(self, pipeline) -> None:
        results = pipeline.run()
        sites = pipeline.store.get(RecordKind.SITE)
        inputs = {
            "suitable_regions": pipeline.store.get(RecordKind.REGION),
            "suitable_sites": sites,
            "sites_near_linear": results["suitable_sites"],
            "final_candidates": results["sites_near_linear"],
        }
        for name, frame in results.items():
            assert frame.index.is_unique
            assert len(frame) <= len(inputs[name])
            assert set(frame.index) <= set(inputs[name].index)

    def test_frame_invariance(self, wgs84_regions, wgs84_sites, wgs84_linear, wgs84_area) -> None:
        albers = _wgs84_pipeline(ALBERS_CRS, wgs84_regions, wgs84_sites, wgs84_linear, wgs84_area)
        feet = _wgs84_pipeline(FEET_CRS, wgs84_regions, wgs84_sites, wgs84_linear, wgs84_area)
        assert _membership(albers.run()) == _membership(feet.run())
        assert albers.stage("final_candidates").index.tolist() == ["S1"]


class TestStageCache:
    def test_stage_results_are_cached(self, pipeline) -> None:
        pipeline.run()
        assert pipeline.stage("suitable_sites") is pipeline.stage("suitable_sites")
        assert pipeline.completed_stages == list(STAGE_NAMES)

    def test_stage_on_demand_computes_upstream(self, pipeline) -> None:
        assert pipeline.count("sites_near_linear") == 2
        assert pipeline.completed_stages == ["suitable_regions", "suitable_sites", "sites_near_linear"]

    def test_summary_and_listing(self, pipeline) -> None:
        assert pipeline.summary() == {
            "suitable_regions": 1,
            "suitable_sites": 2,
            "sites_near_linear": 2,
            "final_candidates": 1,
        }
        listing = pipeline.listing("final_candidates")
        assert listing["record_id"].tolist() == ["S1"]
        assert {"name", "population", REGION_NAME} <= set(listing.columns)
        assert "geometry" not in listing.columns
        assert "geometry_projected" not in listing.columns

    def test_unknown_stage(self, pipeline) -> None:
        with pytest.raises(UnknownStageError, match="Unknown stage"):
            pipeline.stage("everything")
        with pytest.raises(KeyError):
            pipeline.count("everything")


class TestConfigChanges:
    def test_threshold_change_invalidates_downstream_only(self, pipeline) -> None:
        pipeline.run()
        regions = pipeline.stage("suitable_regions")
        pipeline.update_config(linear_threshold=60_000.0)
        assert pipeline.completed_stages == ["suitable_regions", "suitable_sites"]
        assert pipeline.stage("suitable_regions") is regions
        # S1 is 100,000 ft from the interstate, S3 only 55,000.
        assert pipeline.stage("sites_near_linear").index.tolist() == ["S3"]
        assert pipeline.stage("final_candidates").empty

    def test_unchanged_value_keeps_cache(self, pipeline) -> None:
        pipeline.run()
        pipeline.update_config(area_threshold=AREA_THRESHOLD_FT)
        assert pipeline.completed_stages == list(STAGE_NAMES)

    def test_unknown_config_field(self, pipeline) -> None:
        with pytest.raises(TypeError):
            pipeline.update_config(buffer=10)

    def test_failed_stage_caches_nothing(self, pipeline) -> None:
        pipeline.run()
        pipeline.update_config(region_predicates=[("acres", ">", 1)])
        with pytest.raises(UnknownFieldError):
            pipeline.run()
        assert pipeline.completed_stages == []

    def test_invalid_threshold_fails_its_stage(self, pipeline) -> None:
        pipeline.update_config(area_threshold=-1.0)
        with pytest.raises(InvalidThresholdError):
            pipeline.run()
        assert pipeline.completed_stages == ["suitable_regions", "suitable_sites", "sites_near_linear"]

    def test_target_frame_change_requires_reload(self, pipeline) -> None:
        pipeline.update_config(target_crs=ALBERS_CRS)
        with pytest.raises(FrameMismatchError, match="reload"):
            pipeline.run()
