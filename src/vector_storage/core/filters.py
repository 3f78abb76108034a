"""Payload filters with a closed set of operators.

A filter mapping is validated once, when it is parsed into a
``SearchFilters`` object, and then applied to payloads. Supported forms::

    {"tag": "a"}                         # equality
    {"score": {"gte": 0.5, "lt": 1.0}}   # numeric range (gte/gt/lte/lt)
    {"lang": {"any": ["en", "de"]}}      # set membership

Fields whose value is ``None`` are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Union

from vector_storage.core.errors import InvalidInputError

RANGE_OPERATORS = ("gte", "gt", "lte", "lt")
SET_OPERATORS = ("any",)

FilterSpec = Mapping[str, Any]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equals(a: Any, b: Any) -> bool:
    """Equality that keeps booleans apart from 0 and 1."""
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any

    def matches(self, payload: Mapping[str, Any]) -> bool:
        if self.field not in payload:
            return False
        return _strict_equals(payload[self.field], self.value)


@dataclass(frozen=True)
class Range:
    field: str
    gte: float | None = None
    gt: float | None = None
    lte: float | None = None
    lt: float | None = None

    def matches(self, payload: Mapping[str, Any]) -> bool:
        value = payload.get(self.field)
        if not _is_number(value):
            return False
        if self.gte is not None and value < self.gte:
            return False
        if self.gt is not None and value <= self.gt:
            return False
        if self.lte is not None and value > self.lte:
            return False
        if self.lt is not None and value >= self.lt:
            return False
        return True

    def bounds(self) -> dict[str, float]:
        """Operators that are actually set."""
        return {
            op: bound
            for op, bound in (("gte", self.gte), ("gt", self.gt), ("lte", self.lte), ("lt", self.lt))
            if bound is not None
        }


@dataclass(frozen=True)
class AnyOf:
    field: str
    values: tuple[Any, ...]

    def matches(self, payload: Mapping[str, Any]) -> bool:
        if self.field not in payload:
            return False
        value = payload[self.field]
        return any(_strict_equals(value, candidate) for candidate in self.values)


Condition = Union[Equals, Range, AnyOf]


def _parse_condition(field: str, value: Any) -> Condition:
    if not isinstance(value, Mapping):
        return Equals(field, value)

    keys = set(value.keys())
    if keys and keys <= set(RANGE_OPERATORS):
        bounds: dict[str, float] = {}
        for op in keys:
            bound = value[op]
            if not _is_number(bound):
                raise InvalidInputError(
                    f"Range operator '{op}' on field '{field}' requires a number, got {bound!r}",
                    "filter",
                )
            bounds[op] = bound
        return Range(field, **bounds)

    if keys == set(SET_OPERATORS):
        candidates = value["any"]
        if isinstance(candidates, (str, bytes)) or not isinstance(candidates, (list, tuple, set, frozenset)):
            raise InvalidInputError(
                f"Operator 'any' on field '{field}' requires a list of values",
                "filter",
            )
        return AnyOf(field, tuple(candidates))

    raise InvalidInputError(
        f"Unsupported filter operators for field '{field}': {sorted(keys)}. "
        f"Supported: {', '.join(RANGE_OPERATORS + SET_OPERATORS)}",
        "filter",
    )


class SearchFilters:
    """A validated conjunction of payload conditions."""

    def __init__(self, conditions: list[Condition] | None = None) -> None:
        self.conditions: list[Condition] = list(conditions or [])

    @classmethod
    def parse(cls, filters: "FilterSpec | SearchFilters | None") -> "SearchFilters":
        """Build filters from a mapping, raising InvalidInputError on bad operators."""
        if filters is None:
            return cls()
        if isinstance(filters, SearchFilters):
            return filters
        if not isinstance(filters, Mapping):
            raise InvalidInputError(
                f"Filters must be a mapping, got {type(filters).__name__}", "filter"
            )

        conditions = [
            _parse_condition(field, value)
            for field, value in filters.items()
            if value is not None
        ]
        return cls(conditions)

    def __bool__(self) -> bool:
        return bool(self.conditions)

    def __repr__(self) -> str:
        return f"SearchFilters({self.conditions!r})"

    def matches(self, payload: Mapping[str, Any] | None) -> bool:
        """True if the payload satisfies every condition."""
        if not self.conditions:
            return True
        if payload is None:
            return False
        return all(condition.matches(payload) for condition in self.conditions)

    def as_predicate(self, lookup: Callable[[int], Mapping[str, Any] | None]) -> Callable[[int], bool]:
        """Predicate over ids, resolving payloads through ``lookup``."""

        def predicate(vector_id: int) -> bool:
            return self.matches(lookup(vector_id))

        return predicate
