"""Tests for kq get and kq query."""

import json

from keyquery.cli import _exitcodes as ec

from tests.cli.conftest import invoke


class TestGet:
    def test_get_by_hash_value(self, runner, schema_file, seeded_store):
        result = invoke(runner, ["--json", "get", "Person", '"c1"'], schema_file)
        assert result.exit_code == 0
        assert json.loads(result.output)["first_name"] == "Alice"

    def test_get_bare_string_key(self, runner, schema_file, seeded_store):
        result = invoke(runner, ["get", "Person", "c2"], schema_file)
        assert result.exit_code == 0
        assert "first_name: Bob" in result.output

    def test_get_composite_key(self, runner, schema_file, seeded_store):
        result = invoke(
            runner, ["--json", "get", "BookPage", '{"id": "b1", "page_num": 2}'], schema_file
        )
        assert result.exit_code == 0
        assert json.loads(result.output)["text"] == "p2"

    def test_get_missing(self, runner, schema_file, seeded_store):
        result = invoke(runner, ["get", "Person", '"nobody"'], schema_file)
        assert result.exit_code == ec.NOT_FOUND

    def test_get_ambiguous_key(self, runner, schema_file, seeded_store):
        result = invoke(runner, ["get", "BookPage", '"b1"'], schema_file)
        assert result.exit_code == ec.EXECUTION_FAILURE
        assert "ambiguous" in result.output


class TestQuery:
    def test_query_by_index(self, runner, schema_file, seeded_store):
        result = invoke(
            runner,
            ["--json", "query", "Person", "--filter", 'email eq "bob@test.com"'],
            schema_file,
        )
        assert result.exit_code == 0
        assert [p["id"] for p in json.loads(result.output)] == ["c2"]

    def test_query_composite_index_fields(self, runner, schema_file, seeded_store):
        result = invoke(
            runner,
            [
                "query",
                "Person",
                "--filter",
                "first_name",
                "--filter",
                "eq",
                "--filter",
                '"Alice"',
                "--fields",
                "id,age",
            ],
            schema_file,
        )
        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines[0].split() == ["id", "age"]
        assert [line.split() for line in lines[2:]] == [["c1", "30"], ["c3", "61"]]

    def test_query_range_on_partition(self, runner, schema_file, seeded_store):
        result = invoke(
            runner,
            [
                "--json",
                "query",
                "BookPage",
                "--filter",
                'id eq "b1"',
                "--filter",
                "page_num gte 2",
            ],
            schema_file,
        )
        assert result.exit_code == 0
        assert [p["page_num"] for p in json.loads(result.output)] == [2]

    def test_query_limit(self, runner, schema_file, seeded_store):
        result = invoke(
            runner,
            ["--json", "query", "Person", "--filter", 'id in ["c1", "c2", "c3"]', "--limit", "2"],
            schema_file,
        )
        assert result.exit_code == 0
        assert len(json.loads(result.output)) == 2

    def test_query_bad_filter(self, runner, schema_file, seeded_store):
        result = invoke(runner, ["query", "Person", "--filter", "age lt"], schema_file)
        assert result.exit_code == ec.USAGE_ERROR

    def test_query_unprocessed_keys_prints_partial(
        self, runner, schema_file, seeded_store, monkeypatch
    ):
        monkeypatch.setenv("KEYQUERY_MAX_RETRIES", "0")
        seeded_store.batch_capacity = 1
        result = invoke(
            runner,
            ["query", "Person", "--filter", 'id in ["c1", "c2", "c3"]', "--fields", "id"],
            schema_file,
        )
        assert result.exit_code == ec.EXECUTION_FAILURE
        assert "unprocessed" in result.output.lower()
        assert "c1" in result.output
