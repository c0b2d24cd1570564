"""Scalar attribute predicates over record collections."""

from __future__ import annotations

import logging
import math
import numbers
import operator
from typing import Callable, Iterable, NamedTuple

import pandas as pd

from site_selection.data.records import attribute_fields
from site_selection.errors import InvalidPredicateError, UnknownFieldError

LOGGER = logging.getLogger(__name__)

COMPARATORS: dict[str, Callable] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "=": operator.eq,
    "==": operator.eq,
}


class Predicate(NamedTuple):
    field: str
    comparator: str
    value: float

    @classmethod
    def coerce(cls, item) -> "Predicate":
        """Build a Predicate from a Predicate, a 3-sequence or a mapping."""

        if isinstance(item, cls):
            return item
        if isinstance(item, dict):
            try:
                return cls(item["field"], item["comparator"], item["value"])
            except KeyError as exc:
                raise InvalidPredicateError(f"Predicate mapping missing key {exc}: {item!r}") from exc
        if isinstance(item, (list, tuple)) and len(item) == 3:
            return cls(*item)
        raise InvalidPredicateError(f"Predicate must be (field, comparator, value), got {item!r}.")

    def __str__(self) -> str:
        return f"{self.field} {self.comparator} {self.value}"


def _validate(collection: pd.DataFrame, predicates: list[Predicate]) -> None:
    fields = attribute_fields(collection)
    for pred in predicates:
        if pred.comparator not in COMPARATORS:
            raise InvalidPredicateError(
                f"Unsupported comparator {pred.comparator!r} in {pred}; expected one of {sorted(COMPARATORS)}."
            )
        value = pred.value
        if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
            raise InvalidPredicateError(f"Predicate literal must be a finite number, got {value!r} in {pred.field}.")
        if pred.field not in fields:
            if pred.field in collection.columns:
                raise InvalidPredicateError(f"Field {pred.field!r} is not a numeric attribute.")
            raise UnknownFieldError(pred.field, fields)


def filter_attributes(collection: pd.DataFrame, predicates: Iterable) -> pd.DataFrame:
    """Keep records satisfying every predicate (ANDed), preserving order.

    Predicates are validated before any record is inspected. Missing values
    never satisfy a comparison.
    """

    preds = [Predicate.coerce(p) for p in predicates]
    _validate(collection, preds)

    mask = pd.Series(True, index=collection.index)
    for pred in preds:
        mask &= COMPARATORS[pred.comparator](collection[pred.field], pred.value).fillna(False).astype(bool)

    result = collection.loc[mask].copy()
    LOGGER.info(
        "Attribute filter [%s]: %d of %d records kept",
        " AND ".join(str(p) for p in preds) or "no predicates",
        len(result),
        len(collection),
    )
    return result
