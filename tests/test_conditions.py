"""Tests for conditions: canonical operators, normalization and residual matching."""

from __future__ import annotations

import pytest

from keyquery.conditions import (
    Condition,
    as_condition,
    canonical_op,
    condition_matches,
    matches_all,
    normalize_conditions,
)
from keyquery.errors import ConflictingConditionError, UnsupportedOperatorError


class TestCondition:
    def test_symbolic_aliases(self):
        assert Condition("age", "<", 5).op == "lt"
        assert Condition("age", "<=", 5).op == "lte"
        assert Condition("age", ">", 5).op == "gt"
        assert Condition("age", ">=", 5).op == "gte"
        assert Condition("age", "==", 5).op == "eq"

    def test_operator_is_case_insensitive(self):
        assert Condition("id", "IN", ["a"]).op == "in"
        assert canonical_op("id", " Eq ") == "eq"

    def test_unsupported_operator(self):
        with pytest.raises(UnsupportedOperatorError, match="'ne'"):
            Condition("age", "ne", 5)

    def test_non_string_operator(self):
        with pytest.raises(UnsupportedOperatorError):
            Condition("age", None, 5)

    def test_in_values_become_tuple(self):
        c = Condition("id", "in", ["a", "b"])
        assert c.value == ("a", "b")
        assert hash(c) == hash(Condition("id", "in", ("a", "b")))

    def test_in_rejects_string(self):
        with pytest.raises(TypeError):
            Condition("id", "in", "abc")

    def test_exact_values(self):
        assert Condition("id", "eq", "a").exact_values == ("a",)
        assert Condition("id", "in", ["a", "b"]).exact_values == ("a", "b")
        with pytest.raises(ValueError):
            _ = Condition("age", "lt", 3).exact_values

    def test_as_condition_from_triple(self):
        c = as_condition(("age", ">=", 18))
        assert c == Condition("age", "gte", 18)

    def test_str(self):
        assert str(Condition("email", "eq", "x")) == "email eq 'x'"


class TestNormalizeConditions:
    def test_groups_by_field(self):
        n = normalize_conditions([("id", "eq", "a"), ("age", "lt", 50)])
        assert set(n) == {"id", "age"}
        assert n.exact_values("id") == ("a",)
        assert n.range_condition("age") == Condition("age", "lt", 50)
        assert n.exact_values("age") is None

    def test_keeps_original_conditions_in_order(self):
        raw = [Condition("b", "eq", 1), Condition("a", "gt", 2)]
        assert normalize_conditions(raw).conditions == tuple(raw)

    def test_eq_and_in_intersect(self):
        n = normalize_conditions([("id", "eq", "a"), ("id", "in", ["a", "b"])])
        assert n.exact_values("id") == ("a",)
        assert len(n.exact_sources("id")) == 2

    def test_disjoint_exact_conditions_match_nothing(self):
        n = normalize_conditions([("id", "eq", "a"), ("id", "eq", "b")])
        assert n.exact_values("id") == ()

    def test_in_values_deduplicated_in_order(self):
        n = normalize_conditions([("id", "in", ["b", "a", "b"])])
        assert n.exact_values("id") == ("b", "a")

    def test_second_range_condition_conflicts(self):
        with pytest.raises(ConflictingConditionError) as exc_info:
            normalize_conditions([("age", "gt", 10), ("age", "lt", 50)])
        assert exc_info.value.field == "age"

    def test_range_and_exact_on_same_field(self):
        n = normalize_conditions([("age", "eq", 30), ("age", "lt", 50)])
        assert n.exact_values("age") == (30,)
        assert n.range_condition("age") is not None

    def test_unknown_field_lookups(self):
        n = normalize_conditions([])
        assert len(n) == 0
        assert n.exact_values("x") is None
        assert n.range_condition(None) is None
        assert n.exact_sources("x") == []


class TestConditionMatches:
    def test_eq_and_in(self):
        item = {"id": "a", "age": 3}
        assert condition_matches(item, Condition("id", "eq", "a"))
        assert condition_matches(item, Condition("id", "in", ["x", "a"]))
        assert not condition_matches(item, Condition("id", "in", []))

    def test_range_ops(self):
        item = {"age": 30}
        assert condition_matches(item, Condition("age", "lt", 31))
        assert condition_matches(item, Condition("age", "lte", 30))
        assert condition_matches(item, Condition("age", "gt", 29))
        assert condition_matches(item, Condition("age", "gte", 30))
        assert not condition_matches(item, Condition("age", "gt", 30))

    def test_missing_or_null_attribute_never_matches(self):
        assert not condition_matches({}, Condition("age", "lt", 5))
        assert not condition_matches({"age": None}, Condition("age", "eq", None))

    def test_incomparable_types_do_not_match(self):
        assert not condition_matches({"age": "old"}, Condition("age", "lt", 5))

    def test_matches_all(self):
        item = {"email": "x", "age": 20}
        assert matches_all(item, [Condition("email", "eq", "x"), Condition("age", "gt", 18)])
        assert not matches_all(item, [Condition("email", "eq", "x"), Condition("age", "gt", 21)])
        assert matches_all(item, [])
