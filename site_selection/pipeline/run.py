"""Run the site selection stages over vector files and persist every stage."""

from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from site_selection.config import LOG_DIR, STAGE_NAMES, PipelineConfig, load_config
from site_selection.data.records import read_layer
from site_selection.pipeline.stages import SiteSelectionPipeline


def _configure_logging() -> None:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.FileHandler(LOG_DIR / "site_selection.log"), logging.StreamHandler()],
    )


def _build_report(pipeline: SiteSelectionPipeline, output_path: Path) -> dict:
    report = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "target_crs": pipeline.store.crs.to_string(),
        "config": pipeline.config.to_dict(),
        "stage_counts": pipeline.summary(),
        "final_candidates": pipeline.listing(STAGE_NAMES[-1])["record_id"].tolist(),
    }
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(report, indent=2, default=str), encoding="utf-8")
    return report


def run_site_selection(
    regions_path: Path,
    sites_path: Path,
    linear_path: Path,
    area_path: Path,
    output_dir: Path,
    config: PipelineConfig | None = None,
) -> SiteSelectionPipeline:
    """Load the four layers, run every stage, write one CSV per stage plus a JSON report."""

    for path in (regions_path, sites_path, linear_path, area_path):
        if not Path(path).exists():
            raise FileNotFoundError(f"Missing input layer at {path}.")
    config = config or PipelineConfig()

    logging.info("Loading layers into frame %s", config.target_crs)
    pipeline = SiteSelectionPipeline.from_frames(
        config,
        regions=read_layer(regions_path),
        sites=read_layer(sites_path),
        linear_features=read_layer(linear_path),
        area_features=read_layer(area_path),
    )
    pipeline.run()

    output_dir.mkdir(parents=True, exist_ok=True)
    for name in STAGE_NAMES:
        pipeline.listing(name).to_csv(output_dir / f"{name}.csv", index=False)
    report = _build_report(pipeline, output_dir / "stage_report.json")
    logging.info("Stage counts: %s", report["stage_counts"])
    return pipeline


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Select candidate sites by attribute and proximity filters.")
    parser.add_argument("--regions", type=Path, default=Path("data/raw/regions.geojson"))
    parser.add_argument("--sites", type=Path, default=Path("data/raw/sites.geojson"))
    parser.add_argument("--linear", type=Path, default=Path("data/raw/linear_features.geojson"))
    parser.add_argument("--area", type=Path, default=Path("data/raw/area_features.geojson"))
    parser.add_argument("--config", type=Path, default=None, help="JSON file with predicates and thresholds.")
    parser.add_argument("--output-dir", type=Path, default=Path("data/processed/stages"))
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    _configure_logging()
    args = parse_args(argv)
    config = load_config(args.config) if args.config else PipelineConfig()
    pipeline = run_site_selection(
        regions_path=args.regions,
        sites_path=args.sites,
        linear_path=args.linear,
        area_path=args.area,
        output_dir=args.output_dir,
        config=config,
    )
    print(f"Final candidates: {pipeline.count(STAGE_NAMES[-1])}")


if __name__ == "__main__":
    main()
