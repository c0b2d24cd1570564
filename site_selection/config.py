"""Project-wide configuration constants and the pipeline configuration object."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path

from site_selection.data.geometry import CRS, to_frame_units, validate_threshold
from site_selection.errors import SiteSelectionError
from site_selection.filters.attributes import Predicate

# Proximity defaults, converted into the target frame's unit
LINEAR_THRESHOLD_MILES_DEFAULT = 20.0
AREA_THRESHOLD_MILES_DEFAULT = 10.0

# Stage names, in execution order
STAGE_SUITABLE_REGIONS = "suitable_regions"
STAGE_SUITABLE_SITES = "suitable_sites"
STAGE_SITES_NEAR_LINEAR = "sites_near_linear"
STAGE_FINAL_CANDIDATES = "final_candidates"
STAGE_NAMES = (
    STAGE_SUITABLE_REGIONS,
    STAGE_SUITABLE_SITES,
    STAGE_SITES_NEAR_LINEAR,
    STAGE_FINAL_CANDIDATES,
)

LOG_DIR = Path("logs")


@dataclass(frozen=True)
class PipelineConfig:
    """Caller-supplied options for one analysis run.

    Thresholds are in units of ``target_crs``; ``None`` picks the mileage
    defaults above converted into that frame.
    """

    target_crs: str = CRS.target
    region_predicates: tuple[Predicate, ...] = ()
    site_predicates: tuple[Predicate, ...] = ()
    linear_threshold: float | None = None
    area_threshold: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "region_predicates", tuple(Predicate.coerce(p) for p in self.region_predicates))
        object.__setattr__(self, "site_predicates", tuple(Predicate.coerce(p) for p in self.site_predicates))
        if self.linear_threshold is None:
            object.__setattr__(
                self, "linear_threshold", to_frame_units(LINEAR_THRESHOLD_MILES_DEFAULT, "mi", self.target_crs)
            )
        if self.area_threshold is None:
            object.__setattr__(
                self, "area_threshold", to_frame_units(AREA_THRESHOLD_MILES_DEFAULT, "mi", self.target_crs)
            )

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineConfig":
        """Build a config from parsed JSON.

        Thresholds may be plain numbers or ``{"value": .., "unit": ..}``; a
        missing unit means frame units, the same as a plain number.
        """

        known = {"target_crs", "region_predicates", "site_predicates", "linear_threshold", "area_threshold"}
        unknown = set(data) - known
        if unknown:
            raise SiteSelectionError(f"Unknown configuration keys: {sorted(unknown)}")

        target_crs = data.get("target_crs", CRS.target)
        kwargs = {"target_crs": target_crs}
        for key in ("region_predicates", "site_predicates"):
            if key in data:
                kwargs[key] = tuple(data[key])
        for key in ("linear_threshold", "area_threshold"):
            if key in data:
                kwargs[key] = _threshold_from_json(data[key], target_crs)
        return cls(**kwargs)

    def to_dict(self) -> dict:
        out = asdict(self)
        out["region_predicates"] = [list(p) for p in self.region_predicates]
        out["site_predicates"] = [list(p) for p in self.site_predicates]
        return out


def _threshold_from_json(value, target_crs: str):
    if isinstance(value, dict):
        if "value" not in value:
            raise SiteSelectionError(f"Threshold object needs a 'value' key: {value!r}")
        if "unit" not in value:
            return validate_threshold(value["value"])
        return to_frame_units(value["value"], value["unit"], target_crs)
    return value


def load_config(path: str | Path) -> PipelineConfig:
    """Read a JSON configuration file."""

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing configuration file at {path}.")
    return PipelineConfig.from_dict(json.loads(path.read_text(encoding="utf-8")))
