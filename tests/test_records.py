"""Tests for Record/Field declarations and mappers."""

from __future__ import annotations

import pytest

from keyquery import Field, IndexDescriptor, Record
from keyquery.conditions import Condition
from keyquery.errors import MappingError, SchemaError, UnknownRecordTypeError
from keyquery.records import DictMapper, FieldProxy, RecordMapper, record_type_name
from keyquery.schema import Catalog

from tests.conftest import Address, BookPage, Person


class TestFieldProxy:
    def test_comparisons_build_conditions(self):
        assert (Person.email == "x") == Condition("email", "eq", "x")
        assert (Person.age < 50) == Condition("age", "lt", 50)
        assert (Person.age <= 50) == Condition("age", "lte", 50)
        assert (Person.age > 40) == Condition("age", "gt", 40)
        assert (Person.age >= 40) == Condition("age", "gte", 40)
        assert Person.id.in_(["a", "b"]) == Condition("id", "in", ("a", "b"))

    def test_not_equal_is_rejected(self):
        with pytest.raises(TypeError, match="!="):
            _ = Person.age != 3

    def test_proxy_uses_stored_attribute_name(self):
        class Renamed(Record):
            id: Field[str] = Field(hash_key=True, attribute="pk")

        assert isinstance(Renamed.id, FieldProxy)
        assert (Renamed.id == "a").field == "pk"


class TestRecordSchema:
    def test_person_schema(self):
        schema = Person.__schema__
        assert schema.record_type == "Person"
        assert schema.table_name == "test_person"
        assert schema.primary_key.hash_field == "id"
        assert [i.name for i in schema.indexes] == ["email_index", "first_name_age"]
        assert schema.index("first_name_age").range_field == "age"
        assert "addresses" in schema.fields

    def test_hash_range_schema(self):
        assert BookPage.__schema__.primary_key.fields == ("id", "page_num")

    def test_missing_hash_key(self):
        with pytest.raises(SchemaError, match="exactly one"):

            class NoKey(Record):
                name: Field[str]

    def test_two_range_keys(self):
        with pytest.raises(SchemaError, match="range_key"):

            class TwoRanges(Record):
                id: Field[str] = Field(hash_key=True)
                a: Field[int] = Field(range_key=True)
                b: Field[int] = Field(range_key=True)

    def test_bad_declared_index(self):
        with pytest.raises(SchemaError):

            class BadIndex(Record):
                __indexes__ = (IndexDescriptor("by_x", "x"),)
                id: Field[str] = Field(hash_key=True)

    def test_custom_name_and_named_index(self):
        class Thing(Record, name="thing", table="things"):
            id: Field[str] = Field(hash_key=True)
            owner: Field[str] = Field(index="by_owner")

        assert Thing.__schema__.record_type == "thing"
        assert Thing.__schema__.table_name == "things"
        assert Thing.__schema__.indexes[0].name == "by_owner"


class TestRecord:
    def test_validation_and_defaults(self):
        p = Person(id="p1", first_name="Ann", age="34", email="a@x.com")
        assert p.age == 34
        assert p.last_name is None
        assert p.addresses == []

    def test_key(self):
        page = BookPage(id="b", page_num=2, text="x")
        assert page.key() == {"id": "b", "page_num": 2}

    def test_equality(self):
        assert BookPage(id="b", page_num=1) == BookPage(id="b", page_num=1)
        assert BookPage(id="b", page_num=1) != BookPage(id="b", page_num=2)


class TestRecordMapper:
    def test_to_raw_item_drops_none_and_flattens_models(self, mapper):
        p = Person(
            id="p1",
            first_name="Ann",
            age=3,
            email="a@x.com",
            addresses=[Address(street_number=245, street_name="W 17th St")],
        )
        item = mapper.to_raw_item(p)
        assert "last_name" not in item
        assert item["addresses"] == [{"street_number": 245, "street_name": "W 17th St"}]

    def test_from_raw_item_restores_embedded_models(self, mapper):
        record = mapper.from_raw_item(
            "Person",
            {
                "id": "p1",
                "first_name": "Ann",
                "age": 3,
                "email": "a@x.com",
                "addresses": [{"street_number": 1385, "street_name": "Broadway"}],
            },
        )
        assert isinstance(record, Person)
        assert record.addresses[0].street_name == "Broadway"

    def test_from_raw_item_mismatch(self, mapper):
        with pytest.raises(MappingError, match="Person"):
            mapper.from_raw_item("Person", {"id": "p1", "age": "not a number"})

    def test_to_raw_item_rejects_non_records(self, mapper):
        with pytest.raises(MappingError):
            mapper.to_raw_item({"id": "p1"})

    def test_unknown_type(self, mapper):
        with pytest.raises(UnknownRecordTypeError):
            mapper.record_class("Ghost")

    def test_apply_changes(self, mapper):
        p = Person(id="p1", first_name="Ann", age=3, email="a@x.com")
        updated = mapper.apply_changes("Person", p, {"first_name": "Anne", "age": "4"})
        assert updated.first_name == "Anne"
        assert updated.age == 4
        assert p.first_name == "Ann"

    def test_apply_changes_unknown_field(self, mapper):
        p = Person(id="p1", first_name="Ann", age=3, email="a@x.com")
        with pytest.raises(MappingError, match="unknown fields"):
            mapper.apply_changes("Person", p, {"nickname": "A"})


class TestDictMapper:
    def test_round_trip(self):
        mapper = DictMapper(Catalog([Person.__schema__]))
        item = mapper.to_raw_item({"id": "p1", "role": None})
        assert item == {"id": "p1"}
        assert mapper.from_raw_item("Person", item) == {"id": "p1"}
        assert mapper.apply_changes("Person", item, {"age": 3}) == {"id": "p1", "age": 3}


def test_record_type_name():
    assert record_type_name(Person) == "Person"
    assert record_type_name("BookPage") == "BookPage"
    with pytest.raises(TypeError):
        record_type_name(42)


def test_record_mapper_catalog():
    mapper = RecordMapper([Person])
    assert mapper.catalog.record_types() == ["Person"]
