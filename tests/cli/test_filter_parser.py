"""Tests for CLI filter parsing."""

import pytest

from keyquery.cli._filters import group_filter_args, parse_cli_filters
from keyquery.conditions import Condition


def test_parse_empty():
    assert parse_cli_filters([]) == []
    assert group_filter_args(None) == []


def test_parse_single_eq():
    assert parse_cli_filters([("email", "eq", '"a@x"')]) == [Condition("email", "eq", "a@x")]


def test_parse_numeric():
    [condition] = parse_cli_filters([("age", "lt", "50")])
    assert condition.op == "lt"
    assert condition.value == 50


def test_parse_in():
    [condition] = parse_cli_filters([("id", "in", '["c1","c2"]')])
    assert condition.op == "in"
    assert condition.value == ("c1", "c2")


def test_parse_multiple():
    result = parse_cli_filters([("first_name", "eq", '"Alice"'), ("age", "gte", "18")])
    assert [c.field for c in result] == ["first_name", "age"]


def test_parse_all_ops():
    for op_token in ["eq", "gt", "gte", "lt", "lte"]:
        [condition] = parse_cli_filters([("age", op_token, "1")])
        assert condition.op == op_token


def test_unknown_operator():
    with pytest.raises(ValueError, match="Unknown filter operator 'ne'"):
        parse_cli_filters([("age", "ne", "1")])


def test_invalid_json():
    with pytest.raises(ValueError, match="not valid JSON"):
        parse_cli_filters([("email", "eq", "alice")])


def test_in_needs_array():
    with pytest.raises(ValueError, match="JSON array"):
        parse_cli_filters([("id", "in", '"c1"')])


def test_group_separate_tokens():
    args = ["email", "eq", '"a@x"', "age", "gt", "3"]
    assert group_filter_args(args) == [("email", "eq", '"a@x"'), ("age", "gt", "3")]


def test_group_combined_strings():
    args = ['email eq "a@x"', 'id in ["c1", "c2"]']
    assert group_filter_args(args) == [("email", "eq", '"a@x"'), ("id", "in", '["c1", "c2"]')]


def test_group_rejects_short_filter():
    with pytest.raises(ValueError, match="Invalid filter"):
        group_filter_args(["email eq"])
