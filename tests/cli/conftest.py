"""Shared fixtures for CLI tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import yaml
from typer.testing import CliRunner

from keyquery import Catalog, DictMapper, Engine, InMemoryStore
from keyquery.cli import app

if TYPE_CHECKING:
    from click.testing import Result

SCHEMA_DOCS = [
    {
        "record_type": "Person",
        "table_name": "people",
        "hash_field": "id",
        "fields": ["id", "first_name", "age", "email"],
        "indexes": [
            {"name": "email_index", "hash_field": "email"},
            {"name": "first_name_age", "hash_field": "first_name", "range_field": "age"},
        ],
    },
    {
        "record_type": "BookPage",
        "table_name": "book_pages",
        "hash_field": "id",
        "range_field": "page_num",
        "fields": ["id", "page_num", "text"],
    },
]

PEOPLE = [
    {"id": "c1", "first_name": "Alice", "age": 30, "email": "alice@test.com"},
    {"id": "c2", "first_name": "Bob", "age": 25, "email": "bob@test.com"},
    {"id": "c3", "first_name": "Alice", "age": 61, "email": "alice.b@test.com"},
]


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def schema_file(tmp_path):
    """Write the schema catalog as YAML and return its path."""
    path = tmp_path / "schema.yaml"
    path.write_text(yaml.safe_dump({"schemas": SCHEMA_DOCS}), encoding="utf-8")
    return str(path)


@pytest.fixture
def seeded_store(monkeypatch):
    """An in-memory store with seed data, opened by every CLI command."""
    catalog = Catalog.from_documents(SCHEMA_DOCS)
    store = InMemoryStore(catalog)
    engine = Engine(store, DictMapper(catalog))
    engine.write_many("Person", PEOPLE)
    engine.write_many("BookPage", [{"id": "b1", "page_num": n, "text": f"p{n}"} for n in (1, 2)])
    monkeypatch.setattr("keyquery.cli._storage.open_store", lambda catalog, config: store)
    return store


def invoke(runner: CliRunner, args: list[str], schema: str | None = None) -> "Result":
    """Invoke CLI with proper state setup."""
    if schema:
        args = ["--schema", schema] + args
    return runner.invoke(app, args, catch_exceptions=False)
