"""Record and Field declarations, condition proxies, and record mappers."""

from __future__ import annotations

import sys
from collections.abc import Iterable, Mapping
from typing import Any, ClassVar, Generic, Protocol, TypeVar, get_args

from pydantic import BaseModel, create_model
from pydantic import ValidationError as PydanticValidationError

from keyquery.conditions import Condition
from keyquery.errors import MappingError, SchemaError
from keyquery.schema import (
    PROJECTION_ALL,
    Catalog,
    IndexDescriptor,
    PrimaryKey,
    SchemaDescriptor,
)

T = TypeVar("T")

_SENTINEL = object()

NE_ERROR = "The store cannot plan '!=' conditions; filter the returned records instead."


class FieldProxy:
    """Class-level stand-in for a field that turns comparisons into Conditions.

    Usage: ``Person.email == "x"``, ``Person.age < 50``, ``Person.id.in_([...])``.
    """

    def __init__(self, name: str) -> None:
        self._name = name

    def __eq__(self, other: object) -> Condition:  # type: ignore[override]
        return Condition(self._name, "eq", other)

    def __ne__(self, other: object) -> Condition:  # type: ignore[override]
        raise TypeError(NE_ERROR)

    def __lt__(self, other: Any) -> Condition:
        return Condition(self._name, "lt", other)

    def __le__(self, other: Any) -> Condition:
        return Condition(self._name, "lte", other)

    def __gt__(self, other: Any) -> Condition:
        return Condition(self._name, "gt", other)

    def __ge__(self, other: Any) -> Condition:
        return Condition(self._name, "gte", other)

    def in_(self, values: Iterable[Any]) -> Condition:
        return Condition(self._name, "in", tuple(values))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"FieldProxy({self._name!r})"


class Field(Generic[T]):
    """Typed field descriptor for Record schemas.

    ``hash_key``/``range_key`` mark the primary key; ``index=True`` declares a
    hash-only secondary index named ``<field>_index`` projecting all fields.
    """

    def __init__(
        self,
        default: Any = _SENTINEL,
        *,
        default_factory: Any | None = None,
        hash_key: bool = False,
        range_key: bool = False,
        index: bool | str = False,
        attribute: str | None = None,
    ) -> None:
        self.default = default
        self.default_factory = default_factory
        self.hash_key = hash_key
        self.range_key = range_key
        self.index = index
        self.attribute = attribute
        self.name: str = ""
        self.annotation: Any = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return FieldProxy(self.attribute_name)
        return obj.__dict__.get(self.name, _SENTINEL)

    def __set__(self, obj: Any, value: Any) -> None:
        obj.__dict__[self.name] = value

    @property
    def attribute_name(self) -> str:
        return self.attribute or self.name

    def has_default(self) -> bool:
        return self.default is not _SENTINEL or self.default_factory is not None


def _resolve_annotation(ann: Any, module_name: str) -> Any:
    """Resolve string annotations and extract the inner type from Field[T]."""
    if isinstance(ann, str):
        module = sys.modules.get(module_name, None)
        ns = vars(module) if module else {}
        try:
            ann = eval(ann, ns)  # noqa: S307
        except Exception:
            return Any

    origin = getattr(ann, "__origin__", None)
    if origin is Field:
        args = get_args(ann)
        return args[0] if args else Any
    return ann


def _collect_fields(cls: type) -> dict[str, Field[Any]]:
    """Collect Field descriptors from class annotations, parents first."""
    fields: dict[str, Field[Any]] = {}
    for base in reversed(cls.__mro__[1:]):
        fields.update(getattr(base, "_field_definitions", {}))

    annotations = cls.__dict__.get("__annotations__", {})
    for name, ann in annotations.items():
        origin = getattr(ann, "__origin__", None)
        is_field_ann = origin is Field or (isinstance(ann, str) and ann.startswith("Field"))
        if not is_field_ann:
            continue

        val = cls.__dict__.get(name, _SENTINEL)
        field_desc: Field[Any]
        if isinstance(val, Field):
            field_desc = val
        elif val is _SENTINEL:
            field_desc = Field()
        else:
            field_desc = Field(default=val)

        field_desc.name = name
        field_desc.annotation = _resolve_annotation(ann, cls.__module__)
        fields[name] = field_desc

        if not isinstance(cls.__dict__.get(name), Field):
            setattr(cls, name, field_desc)

    return fields


def _build_pydantic_model(model_name: str, fields: dict[str, Field[Any]]) -> type[BaseModel]:
    pydantic_fields: dict[str, Any] = {}
    for name, f in fields.items():
        ann = f.annotation if f.annotation is not None else Any
        if f.default_factory is not None:
            from pydantic import Field as PydanticField

            pydantic_fields[name] = (ann, PydanticField(default_factory=f.default_factory))
        elif f.default is not _SENTINEL:
            pydantic_fields[name] = (ann, f.default)
        else:
            pydantic_fields[name] = (ann, ...)

    return create_model(model_name, **pydantic_fields)  # type: ignore[call-overload]


def _build_schema(cls: type[Record], fields: dict[str, Field[Any]]) -> SchemaDescriptor:
    record_type = cls.__record_type__
    hash_fields = [f for f in fields.values() if f.hash_key]
    range_fields = [f for f in fields.values() if f.range_key]
    if len(hash_fields) != 1:
        raise SchemaError(
            record_type,
            f"expected exactly one Field(hash_key=True), found {len(hash_fields)}",
        )
    if len(range_fields) > 1:
        raise SchemaError(record_type, "at most one Field(range_key=True) is allowed")

    indexes: list[IndexDescriptor] = []
    for f in fields.values():
        if f.index:
            name = f.index if isinstance(f.index, str) else f"{f.attribute_name}_index"
            indexes.append(IndexDescriptor(name, f.attribute_name, None, PROJECTION_ALL))
    indexes.extend(getattr(cls, "__indexes__", ()))

    return SchemaDescriptor(
        record_type=record_type,
        primary_key=PrimaryKey(
            hash_fields[0].attribute_name,
            range_fields[0].attribute_name if range_fields else None,
        ),
        indexes=tuple(indexes),
        fields=frozenset(f.attribute_name for f in fields.values()),
        table_name=getattr(cls, "__table__", None) or record_type,
    )


class Record:
    """Base class for typed records stored as items.

    Subclasses declare fields as ``Field[T]`` annotations and composite
    secondary indexes through ``__indexes__``::

        class Person(Record):
            __indexes__ = (IndexDescriptor("first_name_age", "first_name", "age"),)

            id: Field[str] = Field(hash_key=True)
            email: Field[str] = Field(index=True)
    """

    __record_type__: ClassVar[str]
    __record_fields__: ClassVar[tuple[str, ...]]
    __schema__: ClassVar[SchemaDescriptor]
    __indexes__: ClassVar[tuple[IndexDescriptor, ...]] = ()
    _pydantic_model: ClassVar[type[BaseModel]]
    _field_definitions: ClassVar[dict[str, Field[Any]]] = {}

    def __init_subclass__(
        cls, name: str | None = None, table: str | None = None, **kwargs: Any
    ) -> None:
        super().__init_subclass__(**kwargs)
        cls.__record_type__ = name or cls.__name__
        if table is not None:
            cls.__table__ = table

        fields = _collect_fields(cls)
        cls._field_definitions = fields
        cls.__record_fields__ = tuple(fields)
        cls._pydantic_model = _build_pydantic_model(f"_{cls.__record_type__}Model", fields)
        cls.__schema__ = _build_schema(cls, fields)

    def __init__(self, **data: Any) -> None:
        validated = self._pydantic_model(**data)
        for name in self.__record_fields__:
            setattr(self, name, getattr(validated, name))

    def model_dump(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.__record_fields__}

    @classmethod
    def model_validate(cls, data: Mapping[str, Any]) -> Any:
        return cls(**data)

    def key(self) -> dict[str, Any]:
        return self.__schema__.key_of(_to_item(self))

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={getattr(self, k)!r}" for k in self.__record_fields__)
        return f"{self.__class__.__name__}({fields})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, self.__class__):
            return NotImplemented
        return self.model_dump() == other.model_dump()


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return {k: _plain(v) for k, v in value.model_dump().items() if v is not None}
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def _to_item(record: Record) -> dict[str, Any]:
    item: dict[str, Any] = {}
    for name, f in record._field_definitions.items():
        value = getattr(record, name)
        if value is None or value is _SENTINEL:
            continue
        item[f.attribute_name] = _plain(value)
    return item


class Mapper(Protocol):
    """Schema-mapping collaborator contract consumed by the engine."""

    catalog: Catalog

    def describe(self, record_type: str) -> SchemaDescriptor: ...

    def to_raw_item(self, record: Any) -> dict[str, Any]: ...

    def from_raw_item(self, record_type: str, item: Mapping[str, Any]) -> Any: ...

    def apply_changes(self, record_type: str, record: Any, changes: Mapping[str, Any]) -> Any: ...


def record_type_name(record_type: Any) -> str:
    """Accept a Record subclass or a registered type name."""
    if isinstance(record_type, str):
        return record_type
    name = getattr(record_type, "__record_type__", None)
    if name is None:
        raise TypeError(f"Expected a Record subclass or type name, got {record_type!r}")
    return name


class RecordMapper:
    """Maps Record subclasses to and from raw items."""

    def __init__(self, record_types: Iterable[type[Record]]) -> None:
        self._classes: dict[str, type[Record]] = {}
        for cls in record_types:
            self._classes[cls.__record_type__] = cls
        self.catalog = Catalog(cls.__schema__ for cls in self._classes.values())

    def describe(self, record_type: str) -> SchemaDescriptor:
        return self.catalog.describe(record_type)

    def record_class(self, record_type: str) -> type[Record]:
        self.catalog.describe(record_type)
        return self._classes[record_type]

    def to_raw_item(self, record: Any) -> dict[str, Any]:
        if not isinstance(record, Record):
            raise MappingError(
                type(record).__name__, f"expected a Record instance, got {type(record).__name__}"
            )
        if record.__record_type__ not in self._classes:
            self.catalog.describe(record.__record_type__)
        return _to_item(record)

    def from_raw_item(self, record_type: str, item: Mapping[str, Any]) -> Record:
        cls = self.record_class(record_type)
        data = {}
        for name, f in cls._field_definitions.items():
            if f.attribute_name in item:
                data[name] = item[f.attribute_name]
        try:
            return cls(**data)
        except PydanticValidationError as e:
            raise MappingError(record_type, str(e)) from e

    def apply_changes(self, record_type: str, record: Any, changes: Mapping[str, Any]) -> Record:
        """Return a new validated record with ``changes`` (by field name) applied."""
        cls = self.record_class(record_type)
        unknown = set(changes) - set(cls.__record_fields__)
        if unknown:
            raise MappingError(record_type, f"unknown fields {sorted(unknown)}")
        try:
            return cls(**{**record.model_dump(), **changes})
        except PydanticValidationError as e:
            raise MappingError(record_type, str(e)) from e


class DictMapper:
    """Mapper for schema-only use where records are plain dicts."""

    def __init__(self, catalog: Catalog) -> None:
        self.catalog = catalog

    def describe(self, record_type: str) -> SchemaDescriptor:
        return self.catalog.describe(record_type)

    def to_raw_item(self, record: Any) -> dict[str, Any]:
        if not isinstance(record, Mapping):
            raise MappingError("dict", f"expected a mapping, got {type(record).__name__}")
        return {k: _plain(v) for k, v in record.items() if v is not None}

    def from_raw_item(self, record_type: str, item: Mapping[str, Any]) -> dict[str, Any]:
        self.catalog.describe(record_type)
        return dict(item)

    def apply_changes(
        self, record_type: str, record: Any, changes: Mapping[str, Any]
    ) -> dict[str, Any]:
        self.catalog.describe(record_type)
        return {**record, **changes}
