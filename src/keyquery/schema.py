"""Schema catalog: primary keys and secondary indexes per record type."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from keyquery.errors import SchemaError, UnknownRecordTypeError

Projection = Union[str, tuple[str, ...]]

PROJECTION_ALL = "ALL"
PROJECTION_KEYS_ONLY = "KEYS_ONLY"


@dataclass(frozen=True)
class PrimaryKey:
    """Hash field plus optional range field identifying one item."""

    hash_field: str
    range_field: str | None = None

    @property
    def fields(self) -> tuple[str, ...]:
        if self.range_field is None:
            return (self.hash_field,)
        return (self.hash_field, self.range_field)


@dataclass(frozen=True)
class IndexDescriptor:
    """A secondary index: an alternate hash/range pair over the same items.

    ``projection`` is ``"ALL"``, ``"KEYS_ONLY"`` or a tuple of extra field
    names stored in the index besides the keys.
    """

    name: str
    hash_field: str
    range_field: str | None = None
    projection: Projection = PROJECTION_ALL

    def projects_all(self) -> bool:
        return self.projection == PROJECTION_ALL

    def projected_fields(self, primary_key: PrimaryKey) -> frozenset[str] | None:
        """Fields readable from the index alone, or None when every field is."""
        if self.projects_all():
            return None
        keys = {self.hash_field, *primary_key.fields}
        if self.range_field is not None:
            keys.add(self.range_field)
        if self.projection == PROJECTION_KEYS_ONLY:
            return frozenset(keys)
        return frozenset(keys | set(self.projection))


@dataclass(frozen=True)
class SchemaDescriptor:
    """Static description of one record type's keys and indexes."""

    record_type: str
    primary_key: PrimaryKey
    indexes: tuple[IndexDescriptor, ...] = ()
    fields: frozenset[str] = field(default_factory=frozenset)
    table_name: str = ""

    def __post_init__(self) -> None:
        if not self.table_name:
            object.__setattr__(self, "table_name", self.record_type)
        known = set(self.fields) | set(self.primary_key.fields)
        object.__setattr__(self, "fields", frozenset(known))

        seen: set[str] = set()
        for index in self.indexes:
            if index.name in seen:
                raise SchemaError(self.record_type, f"duplicate index name '{index.name}'")
            seen.add(index.name)
            if index.hash_field not in known:
                raise SchemaError(
                    self.record_type,
                    f"index '{index.name}' hash field '{index.hash_field}' is not a schema field",
                )
            if index.range_field is not None and index.range_field not in known:
                raise SchemaError(
                    self.record_type,
                    f"index '{index.name}' range field '{index.range_field}' "
                    "is not a schema field",
                )

    def index(self, name: str) -> IndexDescriptor:
        for index in self.indexes:
            if index.name == name:
                return index
        raise SchemaError(self.record_type, f"no index named '{name}'")

    def key_of(self, item: Mapping[str, Any]) -> dict[str, Any]:
        """Extract the primary key attributes from an item."""
        missing = [f for f in self.primary_key.fields if f not in item]
        if missing:
            raise SchemaError(self.record_type, f"item is missing key fields {missing}")
        return {f: item[f] for f in self.primary_key.fields}

    def normalize_key(self, key: Any) -> dict[str, Any]:
        """Accept a bare hash value or a key mapping and return a key mapping."""
        pk = self.primary_key
        if isinstance(key, Mapping):
            return self.key_of(key)
        if pk.range_field is not None:
            raise SchemaError(
                self.record_type,
                f"a bare key value is ambiguous; give both '{pk.hash_field}' "
                f"and '{pk.range_field}'",
            )
        return {pk.hash_field: key}

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_type": self.record_type,
            "table_name": self.table_name,
            "hash_field": self.primary_key.hash_field,
            "range_field": self.primary_key.range_field,
            "fields": sorted(self.fields),
            "indexes": [
                {
                    "name": i.name,
                    "hash_field": i.hash_field,
                    "range_field": i.range_field,
                    "projection": i.projection
                    if isinstance(i.projection, str)
                    else list(i.projection),
                }
                for i in self.indexes
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SchemaDescriptor:
        record_type = data.get("record_type") or data.get("name")
        if not record_type:
            raise SchemaError("<unnamed>", "missing 'record_type'")
        if "hash_field" not in data:
            raise SchemaError(record_type, "missing 'hash_field'")
        indexes = []
        for raw in data.get("indexes") or []:
            projection = raw.get("projection", PROJECTION_ALL)
            if isinstance(projection, list):
                projection = tuple(projection)
            indexes.append(
                IndexDescriptor(
                    name=raw["name"],
                    hash_field=raw["hash_field"],
                    range_field=raw.get("range_field"),
                    projection=projection,
                )
            )
        return cls(
            record_type=record_type,
            primary_key=PrimaryKey(data["hash_field"], data.get("range_field")),
            indexes=tuple(indexes),
            fields=frozenset(data.get("fields") or ()),
            table_name=data.get("table_name") or "",
        )


class Catalog:
    """Read-only registry of SchemaDescriptors, built once and passed around."""

    def __init__(self, schemas: Iterable[SchemaDescriptor] = ()) -> None:
        by_name: dict[str, SchemaDescriptor] = {}
        for schema in schemas:
            if schema.record_type in by_name:
                raise SchemaError(schema.record_type, "registered twice")
            by_name[schema.record_type] = schema
        self._schemas: Mapping[str, SchemaDescriptor] = by_name

    def describe(self, record_type: str) -> SchemaDescriptor:
        try:
            return self._schemas[record_type]
        except KeyError:
            raise UnknownRecordTypeError(record_type) from None

    def __contains__(self, record_type: object) -> bool:
        return record_type in self._schemas

    def __iter__(self):
        return iter(self._schemas.values())

    def __len__(self) -> int:
        return len(self._schemas)

    def record_types(self) -> list[str]:
        return list(self._schemas)

    @classmethod
    def from_documents(cls, documents: Iterable[Mapping[str, Any]]) -> Catalog:
        return cls(SchemaDescriptor.from_dict(doc) for doc in documents)
