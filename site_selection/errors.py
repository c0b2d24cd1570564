"""Error taxonomy for loading records and running filter stages."""

from __future__ import annotations


class SiteSelectionError(ValueError):
    """Base class for every error raised by the site selection core."""


class ProjectionError(SiteSelectionError):
    """A geometry could not be re-projected into the target frame."""


class FrameMismatchError(SiteSelectionError):
    """Two geometries were compared in different (or non-linear) frames."""


class UnknownFieldError(SiteSelectionError):
    """A predicate references a field the collection does not carry."""

    def __init__(self, field: str, available: list[str]):
        self.field = field
        self.available = available
        super().__init__(f"Unknown attribute field {field!r}; available fields: {available}")


class InvalidPredicateError(SiteSelectionError):
    """A predicate has an unsupported comparator or a non-numeric literal."""


class InvalidThresholdError(SiteSelectionError):
    """A distance threshold is non-numeric, non-finite or not positive."""


class RecordLoadError(SiteSelectionError):
    """An input collection is malformed (ids, geometry kind, columns)."""


class UnknownStageError(SiteSelectionError, KeyError):
    """A stage name is not part of the pipeline."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""
