"""Tests for kq plan."""

import json

from keyquery.cli import _exitcodes as ec

from tests.cli.conftest import invoke


def test_plan_index_query_json(runner, schema_file):
    result = invoke(
        runner, ["--json", "plan", "Person", "--filter", 'email eq "alice@test.com"'], schema_file
    )
    assert result.exit_code == 0
    summary = json.loads(result.output)
    assert summary["kind"] == "index_query"
    assert summary["index"] == "email_index"
    assert summary["residual"] == []


def test_plan_fan_out_text(runner, schema_file):
    result = invoke(
        runner,
        [
            "plan",
            "Person",
            "--filter",
            'first_name in ["Alice", "Bob"]',
            "--filter",
            "age lt 50",
        ],
        schema_file,
    )
    assert result.exit_code == 0
    assert "kind: index_query" in result.output
    assert "index: first_name_age" in result.output
    assert "fan_out: 2" in result.output
    assert "residual: -" in result.output


def test_plan_direct_get_with_residual(runner, schema_file):
    result = invoke(
        runner,
        ["plan", "Person", "--filter", 'id eq "c1"', "--filter", "age gt 3"],
        schema_file,
    )
    assert result.exit_code == 0
    assert "kind: direct_get" in result.output
    assert "residual: age gt 3" in result.output


def test_plan_unknown_operator(runner, schema_file):
    result = invoke(runner, ["plan", "Person", "--filter", "age ne 3"], schema_file)
    assert result.exit_code == ec.USAGE_ERROR
    assert "Unknown filter operator" in result.output


def test_plan_unknown_record_type(runner, schema_file):
    result = invoke(runner, ["plan", "Invoice"], schema_file)
    assert result.exit_code == ec.USAGE_ERROR


def test_plan_needs_schema(runner, monkeypatch):
    monkeypatch.delenv("KEYQUERY_SCHEMA", raising=False)
    result = invoke(runner, ["plan", "Person"])
    assert result.exit_code == ec.GENERAL_ERROR
    assert "No schema file given" in result.output
