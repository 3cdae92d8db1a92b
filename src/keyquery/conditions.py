"""Field conditions and their canonical per-field normal form."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from keyquery.errors import ConflictingConditionError, UnsupportedOperatorError

EQ = "eq"
IN = "in"
LT = "lt"
LTE = "lte"
GT = "gt"
GTE = "gte"

RANGE_OPS = frozenset({LT, LTE, GT, GTE})
EXACT_OPS = frozenset({EQ, IN})
SUPPORTED_OPS = EXACT_OPS | RANGE_OPS

_OP_ALIASES: dict[str, str] = {
    "==": EQ,
    "=": EQ,
    "<": LT,
    "<=": LTE,
    ">": GT,
    ">=": GTE,
}

_MISSING = object()


def canonical_op(field_name: str, op: Any) -> str:
    """Map an operator token to its canonical lower-case name."""
    if not isinstance(op, str):
        raise UnsupportedOperatorError(field_name, op)
    token = op.strip()
    token = _OP_ALIASES.get(token, token.lower())
    if token not in SUPPORTED_OPS:
        raise UnsupportedOperatorError(field_name, op)
    return token


@dataclass(frozen=True)
class Condition:
    """A single ``field op value`` predicate.

    ``in`` values are kept as a tuple so conditions stay hashable.
    """

    field: str
    op: str
    value: Any = None

    def __post_init__(self) -> None:
        op = canonical_op(self.field, self.op)
        object.__setattr__(self, "op", op)
        if op == IN:
            if isinstance(self.value, (str, bytes)) or not isinstance(self.value, Iterable):
                raise TypeError(f"'in' condition on '{self.field}' needs a collection of values")
            object.__setattr__(self, "value", tuple(self.value))

    @property
    def is_exact(self) -> bool:
        return self.op in EXACT_OPS

    @property
    def is_range(self) -> bool:
        return self.op in RANGE_OPS

    @property
    def exact_values(self) -> tuple[Any, ...]:
        if self.op == EQ:
            return (self.value,)
        if self.op == IN:
            return self.value
        raise ValueError(f"'{self.op}' is not an exact condition")

    def __str__(self) -> str:
        return f"{self.field} {self.op} {self.value!r}"


ConditionLike = Union[Condition, tuple[str, str, Any]]


def as_condition(raw: ConditionLike) -> Condition:
    if isinstance(raw, Condition):
        return raw
    field_name, op, value = raw
    return Condition(field_name, op, value)


def _dedupe(values: Iterable[Any]) -> tuple[Any, ...]:
    out: list[Any] = []
    for v in values:
        if v not in out:
            out.append(v)
    return tuple(out)


@dataclass
class FieldConstraint:
    """Merged constraints for one field: one exact set and one range bound at most."""

    field: str
    exact: tuple[Any, ...] | None = None
    range: Condition | None = None
    sources: list[Condition] = field(default_factory=list)

    @property
    def exact_sources(self) -> list[Condition]:
        return [c for c in self.sources if c.is_exact]

    def add(self, condition: Condition) -> None:
        if condition.is_range:
            if self.range is not None:
                raise ConflictingConditionError(self.field, str(self.range), str(condition))
            self.range = condition
        elif self.exact is None:
            self.exact = _dedupe(condition.exact_values)
        else:
            incoming = condition.exact_values
            self.exact = tuple(v for v in self.exact if v in incoming)
        self.sources.append(condition)


class NormalizedConditions(Mapping[str, FieldConstraint]):
    """Canonical form of a condition list, keyed by field.

    ``eq(x)`` is folded into ``in((x,))``; several exact conditions on one field
    intersect. The original conditions are kept, in input order, in
    ``conditions``.
    """

    def __init__(self, conditions: Iterable[Condition]) -> None:
        self.conditions: tuple[Condition, ...] = tuple(conditions)
        self._by_field: dict[str, FieldConstraint] = {}
        for condition in self.conditions:
            constraint = self._by_field.get(condition.field)
            if constraint is None:
                constraint = self._by_field[condition.field] = FieldConstraint(condition.field)
            constraint.add(condition)

    def __getitem__(self, field_name: str) -> FieldConstraint:
        return self._by_field[field_name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_field)

    def __len__(self) -> int:
        return len(self._by_field)

    def exact_values(self, field_name: str | None) -> tuple[Any, ...] | None:
        if field_name is None or field_name not in self._by_field:
            return None
        return self._by_field[field_name].exact

    def range_condition(self, field_name: str | None) -> Condition | None:
        if field_name is None or field_name not in self._by_field:
            return None
        return self._by_field[field_name].range

    def exact_sources(self, field_name: str) -> list[Condition]:
        if field_name not in self._by_field:
            return []
        return self._by_field[field_name].exact_sources

    def __repr__(self) -> str:
        return f"NormalizedConditions({list(self.conditions)!r})"


def normalize_conditions(conditions: Iterable[ConditionLike]) -> NormalizedConditions:
    """Group raw conditions per field, rejecting unsupported or conflicting ones."""
    return NormalizedConditions(as_condition(c) for c in conditions)


def condition_matches(item: Mapping[str, Any], condition: Condition) -> bool:
    """Evaluate one condition against a raw item. Missing attributes never match."""
    value = item.get(condition.field, _MISSING)
    if value is _MISSING or value is None:
        return False
    op = condition.op
    rhs = condition.value
    if op == EQ:
        return value == rhs
    if op == IN:
        return value in rhs
    try:
        if op == LT:
            return value < rhs
        if op == LTE:
            return value <= rhs
        if op == GT:
            return value > rhs
        if op == GTE:
            return value >= rhs
    except TypeError:
        return False
    return False


def matches_all(item: Mapping[str, Any], conditions: Iterable[Condition]) -> bool:
    return all(condition_matches(item, c) for c in conditions)
