"""Tests for the schema catalog."""

from __future__ import annotations

import pytest

from keyquery.errors import SchemaError, UnknownRecordTypeError
from keyquery.schema import (
    PROJECTION_KEYS_ONLY,
    Catalog,
    IndexDescriptor,
    PrimaryKey,
    SchemaDescriptor,
)

from tests.conftest import BookPage, Person


def _orders_schema(**overrides):
    data = {
        "record_type": "Order",
        "primary_key": PrimaryKey("id"),
        "fields": frozenset({"id", "customer_id", "total"}),
        "indexes": (IndexDescriptor("by_customer", "customer_id", "total"),),
    }
    data.update(overrides)
    return SchemaDescriptor(**data)


class TestSchemaDescriptor:
    def test_table_name_defaults_to_record_type(self):
        assert _orders_schema().table_name == "Order"

    def test_key_fields_are_schema_fields(self):
        schema = SchemaDescriptor("T", PrimaryKey("pk", "sk"))
        assert {"pk", "sk"} <= schema.fields

    def test_index_hash_field_must_exist(self):
        with pytest.raises(SchemaError, match="hash field 'nope'"):
            _orders_schema(indexes=(IndexDescriptor("bad", "nope"),))

    def test_index_range_field_must_exist(self):
        with pytest.raises(SchemaError, match="range field 'nope'"):
            _orders_schema(indexes=(IndexDescriptor("bad", "customer_id", "nope"),))

    def test_duplicate_index_names(self):
        idx = IndexDescriptor("dup", "customer_id")
        with pytest.raises(SchemaError, match="duplicate index"):
            _orders_schema(indexes=(idx, idx))

    def test_index_lookup(self):
        schema = _orders_schema()
        assert schema.index("by_customer").range_field == "total"
        with pytest.raises(SchemaError):
            schema.index("missing")

    def test_key_of(self):
        schema = _orders_schema()
        assert schema.key_of({"id": "o1", "total": 3}) == {"id": "o1"}
        with pytest.raises(SchemaError, match="missing key fields"):
            schema.key_of({"total": 3})

    def test_normalize_key(self):
        assert _orders_schema().normalize_key("o1") == {"id": "o1"}
        pages = BookPage.__schema__
        assert pages.normalize_key({"id": "b", "page_num": 1, "text": "x"}) == {
            "id": "b",
            "page_num": 1,
        }
        with pytest.raises(SchemaError, match="ambiguous"):
            pages.normalize_key("b")

    def test_dict_round_trip_keeps_indexes(self):
        schema = _orders_schema(
            indexes=(IndexDescriptor("by_customer", "customer_id", projection=("total",)),)
        )
        restored = SchemaDescriptor.from_dict(schema.to_dict())
        assert restored == schema

    def test_from_dict_requires_hash_field(self):
        with pytest.raises(SchemaError, match="hash_field"):
            SchemaDescriptor.from_dict({"record_type": "T"})


class TestIndexProjection:
    def test_all_projection_covers_everything(self):
        assert IndexDescriptor("i", "a").projected_fields(PrimaryKey("id")) is None

    def test_keys_only(self):
        idx = IndexDescriptor("i", "a", "b", projection=PROJECTION_KEYS_ONLY)
        assert idx.projected_fields(PrimaryKey("id")) == frozenset({"a", "b", "id"})

    def test_include_list(self):
        idx = IndexDescriptor("i", "a", projection=("c",))
        assert idx.projected_fields(PrimaryKey("id", "sk")) == frozenset({"a", "c", "id", "sk"})


class TestCatalog:
    def test_describe(self):
        catalog = Catalog([Person.__schema__, BookPage.__schema__])
        assert catalog.describe("Person") is Person.__schema__
        assert "BookPage" in catalog
        assert len(catalog) == 2
        assert catalog.record_types() == ["Person", "BookPage"]

    def test_unknown_record_type(self):
        with pytest.raises(UnknownRecordTypeError, match="Ghost"):
            Catalog().describe("Ghost")

    def test_duplicate_registration(self):
        with pytest.raises(SchemaError, match="registered twice"):
            Catalog([Person.__schema__, Person.__schema__])

    def test_from_documents(self):
        catalog = Catalog.from_documents(
            [
                {
                    "name": "Page",
                    "hash_field": "book",
                    "range_field": "num",
                    "table_name": "pages",
                    "indexes": [{"name": "by_num", "hash_field": "num"}],
                }
            ]
        )
        schema = catalog.describe("Page")
        assert schema.table_name == "pages"
        assert schema.primary_key == PrimaryKey("book", "num")
        assert schema.indexes[0].projection == "ALL"
