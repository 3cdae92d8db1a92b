"""Store client contract, response types, and an in-memory store."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

from keyquery.conditions import Condition, condition_matches
from keyquery.config import KeyQueryConfig
from keyquery.errors import ConditionFailedError, StoreValidationError
from keyquery.schema import Catalog, SchemaDescriptor

Item = dict[str, Any]
Key = dict[str, Any]
Token = Mapping[str, Any]


@dataclass(frozen=True)
class WriteRequest:
    """One entry of a batch write: a put of ``item`` or a delete of ``key``."""

    kind: Literal["put", "delete"]
    item: Mapping[str, Any] | None = None
    key: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        if self.kind == "put" and self.item is None:
            raise ValueError("put requests need an item")
        if self.kind == "delete" and self.key is None:
            raise ValueError("delete requests need a key")
        if self.kind not in ("put", "delete"):
            raise ValueError(f"unknown write request kind {self.kind!r}")

    @classmethod
    def put(cls, item: Mapping[str, Any]) -> WriteRequest:
        return cls(kind="put", item=item)

    @classmethod
    def delete(cls, key: Mapping[str, Any]) -> WriteRequest:
        return cls(kind="delete", key=key)


@dataclass
class Page:
    """One page of a query or scan; ``next_token`` is None on the last page."""

    items: list[Item] = field(default_factory=list)
    next_token: Token | None = None


@dataclass
class BatchGetResult:
    items: list[Item] = field(default_factory=list)
    unprocessed_keys: list[Key] = field(default_factory=list)


@dataclass
class BatchWriteResult:
    unprocessed: list[WriteRequest] = field(default_factory=list)


@runtime_checkable
class StoreClient(Protocol):
    """Async contract the executor drives. One table per call."""

    async def get_item(
        self, table: str, key: Key, *, consistent_read: bool = False
    ) -> Item | None: ...

    async def batch_get_item(
        self, table: str, keys: Sequence[Key], *, consistent_read: bool = False
    ) -> BatchGetResult: ...

    async def query(
        self,
        table: str,
        *,
        index_name: str | None,
        hash_field: str,
        hash_value: Any,
        range_condition: Condition | None = None,
        limit: int | None = None,
        start_token: Token | None = None,
        consistent_read: bool = False,
    ) -> Page: ...

    async def scan(
        self,
        table: str,
        *,
        limit: int | None = None,
        start_token: Token | None = None,
        consistent_read: bool = False,
    ) -> Page: ...

    async def put_item(self, table: str, item: Item, *, unless_exists: str | None = None) -> None:
        """Put ``item``; with ``unless_exists`` set to a key attribute, fail with
        ConditionFailedError instead of overwriting an existing item."""
        ...

    async def batch_write_item(
        self, table: str, requests: Sequence[WriteRequest]
    ) -> BatchWriteResult: ...

    async def delete_item(self, table: str, key: Key) -> Item | None:
        """Delete by key and return the removed item, or None if it did not exist."""
        ...


def _key_tuple(schema: SchemaDescriptor, key: Mapping[str, Any]) -> tuple[Any, ...]:
    try:
        return tuple(key[f] for f in schema.primary_key.fields)
    except KeyError as e:
        raise StoreValidationError(
            "key", f"key for table '{schema.table_name}' is missing attribute {e.args[0]!r}"
        ) from None


def _sort_value(value: Any) -> tuple[int, Any]:
    if value is None:
        return (1, "")
    return (0, value)


class InMemoryStore:
    """Dict-backed store honoring the batch ceilings and pagination contract.

    Test knobs:
        page_size: items per query/scan page when the caller gives no limit
        batch_capacity: process at most this many items per batch call and
            report the rest as unprocessed, simulating throttling
        throttle: optional callable ``(operation, attempt) -> int | None``
            overriding batch_capacity per call
        calls: ``(operation, item_count)`` for every store call, in order
    """

    def __init__(
        self,
        catalog: Catalog,
        *,
        config: KeyQueryConfig | None = None,
        page_size: int | None = None,
        batch_capacity: int | None = None,
        throttle: Callable[[str, int], int | None] | None = None,
    ) -> None:
        self._config = config or KeyQueryConfig()
        self._schemas: dict[str, SchemaDescriptor] = {s.table_name: s for s in catalog}
        self._tables: dict[str, dict[tuple[Any, ...], Item]] = {
            name: {} for name in self._schemas
        }
        self.page_size = page_size
        self.batch_capacity = batch_capacity
        self.throttle = throttle
        self.calls: list[tuple[str, int]] = []
        self._errors: dict[str, list[BaseException]] = {}
        self._attempts: dict[str, int] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    # --- Test helpers ---

    def inject_errors(self, operation: str, *errors: BaseException) -> None:
        """Make the next calls of ``operation`` raise ``errors`` in order."""
        self._errors.setdefault(operation, []).extend(errors)

    def items(self, table: str) -> list[Item]:
        return [copy.deepcopy(i) for i in self._table(table).values()]

    def calls_for(self, operation: str) -> list[int]:
        return [n for op, n in self.calls if op == operation]

    # --- Internals ---

    def _schema(self, table: str) -> SchemaDescriptor:
        try:
            return self._schemas[table]
        except KeyError:
            raise StoreValidationError("resolve_table", f"no table named '{table}'") from None

    def _table(self, table: str) -> dict[tuple[Any, ...], Item]:
        self._schema(table)
        return self._tables[table]

    async def _enter(self, operation: str, count: int) -> None:
        self.calls.append((operation, count))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            pending = self._errors.get(operation)
            if pending:
                raise pending.pop(0)
        except BaseException:
            self.in_flight -= 1
            raise

    def _leave(self) -> None:
        self.in_flight -= 1

    def _capacity(self, operation: str) -> int | None:
        attempt = self._attempts.get(operation, 0)
        self._attempts[operation] = attempt + 1
        if self.throttle is not None:
            return self.throttle(operation, attempt)
        return self.batch_capacity

    def _paginate(self, rows: list[Item], limit: int | None, start_token: Token | None) -> Page:
        offset = int(start_token["offset"]) if start_token else 0
        size = limit or self.page_size
        if size is None:
            return Page(items=rows[offset:], next_token=None)
        end = offset + size
        next_token = {"offset": end} if end < len(rows) else None
        return Page(items=rows[offset:end], next_token=next_token)

    # --- StoreClient ---

    async def get_item(
        self, table: str, key: Key, *, consistent_read: bool = False
    ) -> Item | None:
        await self._enter("get_item", 1)
        try:
            schema = self._schema(table)
            found = self._tables[table].get(_key_tuple(schema, key))
            return copy.deepcopy(found) if found is not None else None
        finally:
            self._leave()

    async def batch_get_item(
        self, table: str, keys: Sequence[Key], *, consistent_read: bool = False
    ) -> BatchGetResult:
        await self._enter("batch_get_item", len(keys))
        try:
            if len(keys) > self._config.read_batch_limit:
                raise StoreValidationError(
                    "batch_get_item",
                    f"{len(keys)} keys exceeds the limit of {self._config.read_batch_limit}",
                )
            schema = self._schema(table)
            capacity = self._capacity("batch_get_item")
            served = keys if capacity is None else keys[:capacity]
            result = BatchGetResult(unprocessed_keys=[dict(k) for k in keys[len(served) :]])
            for key in served:
                found = self._tables[table].get(_key_tuple(schema, key))
                if found is not None:
                    result.items.append(copy.deepcopy(found))
            return result
        finally:
            self._leave()

    async def query(
        self,
        table: str,
        *,
        index_name: str | None,
        hash_field: str,
        hash_value: Any,
        range_condition: Condition | None = None,
        limit: int | None = None,
        start_token: Token | None = None,
        consistent_read: bool = False,
    ) -> Page:
        await self._enter("query", 1)
        try:
            schema = self._schema(table)
            if index_name is None:
                range_field = schema.primary_key.range_field
                projected = None
            else:
                index = schema.index(index_name)
                range_field = index.range_field
                projected = index.projected_fields(schema.primary_key)

            rows = [
                i
                for i in self._tables[table].values()
                if hash_field in i and i[hash_field] == hash_value
            ]
            if index_name is not None and range_field is not None:
                # secondary indexes are sparse: no range attribute, no index entry
                rows = [i for i in rows if i.get(range_field) is not None]
            if range_condition is not None:
                rows = [i for i in rows if condition_matches(i, range_condition)]
            if range_field is not None:
                rows.sort(key=lambda i: _sort_value(i.get(range_field)))
            if projected is not None:
                rows = [{k: v for k, v in i.items() if k in projected} for i in rows]
            else:
                rows = [copy.deepcopy(i) for i in rows]
            return self._paginate(rows, limit, start_token)
        finally:
            self._leave()

    async def scan(
        self,
        table: str,
        *,
        limit: int | None = None,
        start_token: Token | None = None,
        consistent_read: bool = False,
    ) -> Page:
        await self._enter("scan", 1)
        try:
            rows = [copy.deepcopy(i) for i in self._table(table).values()]
            return self._paginate(rows, limit, start_token)
        finally:
            self._leave()

    async def put_item(self, table: str, item: Item, *, unless_exists: str | None = None) -> None:
        await self._enter("put_item", 1)
        try:
            schema = self._schema(table)
            key = _key_tuple(schema, item)
            existing = self._tables[table].get(key)
            if unless_exists is not None and existing is not None and unless_exists in existing:
                raise ConditionFailedError("put_item", f"an item with key {key!r} already exists")
            self._tables[table][key] = copy.deepcopy(dict(item))
        finally:
            self._leave()

    async def batch_write_item(
        self, table: str, requests: Sequence[WriteRequest]
    ) -> BatchWriteResult:
        await self._enter("batch_write_item", len(requests))
        try:
            if len(requests) > self._config.write_batch_limit:
                raise StoreValidationError(
                    "batch_write_item",
                    f"{len(requests)} requests exceeds the limit of "
                    f"{self._config.write_batch_limit}",
                )
            schema = self._schema(table)
            rows = self._tables[table]
            capacity = self._capacity("batch_write_item")
            served = requests if capacity is None else requests[:capacity]
            for request in served:
                if request.kind == "put":
                    assert request.item is not None
                    rows[_key_tuple(schema, request.item)] = copy.deepcopy(dict(request.item))
                else:
                    assert request.key is not None
                    rows.pop(_key_tuple(schema, request.key), None)
            return BatchWriteResult(unprocessed=list(requests[len(served) :]))
        finally:
            self._leave()

    async def delete_item(self, table: str, key: Key) -> Item | None:
        await self._enter("delete_item", 1)
        try:
            schema = self._schema(table)
            return self._tables[table].pop(_key_tuple(schema, key), None)
        finally:
            self._leave()
