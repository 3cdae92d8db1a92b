"""Caller-facing engine: plan, execute and materialize in one call."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterable, Mapping, Sequence
from typing import Any, TypeVar, Union

from keyquery.conditions import EQ, IN, Condition, ConditionLike
from keyquery.config import KeyQueryConfig
from keyquery.errors import MappingError, SchemaError, UnprocessedKeysError
from keyquery.executor import (
    DeleteOutcome,
    Executor,
    FailedItem,
    PlanResult,
    WriteOutcome,
)
from keyquery.materializer import Materializer
from keyquery.planner import AccessPlanner, QueryPlan
from keyquery.records import Mapper, record_type_name
from keyquery.retry import Backoff
from keyquery.schema import SchemaDescriptor
from keyquery.store import Item, Key, StoreClient, WriteRequest

T = TypeVar("T")

Conditions = Union[Iterable[ConditionLike], Mapping[str, Any]]


def _as_conditions(conditions: Conditions) -> list[ConditionLike]:
    """Accept condition objects/triples, or a ``{field: value}`` shorthand.

    In the shorthand a list, tuple or set value means ``in``, anything else ``eq``.
    """
    if isinstance(conditions, Mapping):
        out: list[ConditionLike] = []
        for name, value in conditions.items():
            if isinstance(value, (list, tuple, set, frozenset)):
                out.append(Condition(name, IN, tuple(value)))
            else:
                out.append(Condition(name, EQ, value))
        return out
    return list(conditions)


def _key_id(schema: SchemaDescriptor, key: Mapping[str, Any]) -> tuple[Any, ...]:
    return tuple(key[f] for f in schema.primary_key.fields)


class AsyncEngine:
    """Async entry point over a StoreClient and a Mapper.

    ``record_type`` arguments accept a Record subclass or a registered type name.
    """

    def __init__(
        self,
        store: StoreClient,
        mapper: Mapper,
        config: KeyQueryConfig | None = None,
        *,
        backoff: Backoff | None = None,
    ) -> None:
        self._config = config or KeyQueryConfig()
        self._mapper = mapper
        self._planner = AccessPlanner(mapper.catalog)
        self._executor = Executor(store, self._config, backoff=backoff)
        self._materializer = Materializer(mapper)

    @property
    def config(self) -> KeyQueryConfig:
        return self._config

    @property
    def mapper(self) -> Mapper:
        return self._mapper

    async def _bounded(self, aw: Awaitable[T]) -> T:
        """Apply ``call_timeout_s``; on expiry in-flight chunk calls are cancelled.

        Writes already applied by finished chunks stay applied.
        """
        if self._config.call_timeout_s is None:
            return await aw
        return await asyncio.wait_for(aw, timeout=self._config.call_timeout_s)

    def plan(self, record_type: Any, conditions: Conditions) -> QueryPlan:
        """Return the access plan ``fetch_many`` would execute, without running it."""
        return self._planner.plan(record_type_name(record_type), _as_conditions(conditions))

    async def _run_plan(
        self, record_type: Any, conditions: Conditions
    ) -> tuple[str, list[PlanResult]]:
        name = record_type_name(record_type)
        schema = self._mapper.describe(name)
        query_plan = self._planner.plan(name, _as_conditions(conditions))
        results = await self._executor.run(query_plan, schema)
        return name, results

    # --- Reads ---

    async def fetch_one(self, record_type: Any, key: Any) -> Any | None:
        """Fetch one record by primary key; ``key`` is a hash value or a key mapping."""
        name = record_type_name(record_type)
        schema = self._mapper.describe(name)
        item = await self._bounded(
            self._executor.get_item(schema.table_name, schema.normalize_key(key))
        )
        if item is None:
            return None
        return self._mapper.from_raw_item(name, item)

    async def fetch_many(self, record_type: Any, conditions: Conditions) -> list[Any]:
        """Fetch every record matching all ``conditions``.

        Raises:
            UnprocessedKeysError: If a batch read still had unprocessed keys
                after the retry budget; the error carries the records read.
        """
        name, results = await self._bounded(self._run_plan(record_type, conditions))
        records = self._materializer.materialize(name, results)
        unprocessed = [key for result in results for key in result.unprocessed_keys]
        if unprocessed:
            raise UnprocessedKeysError(name, unprocessed, records)
        return records

    # --- Writes ---

    async def write_many(self, record_type: Any, records: Sequence[Any]) -> WriteOutcome:
        """Put ``records`` in batches.

        Records that fail to map are reported in ``failed_items`` without being
        sent. When several records share a primary key the last one wins and
        the earlier ones share its outcome.
        """
        return await self._bounded(self._write_many(record_type, records))

    async def _write_many(self, record_type: Any, records: Sequence[Any]) -> WriteOutcome:
        name = record_type_name(record_type)
        schema = self._mapper.describe(name)

        failed: list[FailedItem] = []
        groups: dict[tuple[Any, ...], list[int]] = {}
        items: dict[tuple[Any, ...], Item] = {}
        for index, record in enumerate(records):
            try:
                own_type = getattr(record, "__record_type__", name)
                if own_type != name:
                    raise MappingError(name, f"got a '{own_type}' record")
                item = self._mapper.to_raw_item(record)
                key_id = _key_id(schema, schema.key_of(item))
            except (MappingError, SchemaError) as e:
                failed.append(FailedItem(index, record, str(e)))
                continue
            groups.setdefault(key_id, []).append(index)
            items[key_id] = item

        winners = list(groups)
        outcome = await self._executor.batch_write(
            schema.table_name, [WriteRequest.put(items[k]) for k in winners]
        )

        lost: set[int] = set()
        for failure in outcome.failed_items:
            for index in groups[winners[failure.index]]:
                lost.add(index)
                failed.append(FailedItem(index, records[index], failure.reason))

        sent = sum(len(indexes) for indexes in groups.values())
        failed.sort(key=lambda f: f.index)
        return WriteOutcome(succeeded_count=sent - len(lost), failed_items=failed)

    async def insert_one(self, record: Any, *, overwrite: bool = False) -> Any:
        """Put a single record.

        Raises:
            ConditionFailedError: If an item with the same key exists and
                ``overwrite`` is False.
        """
        name = getattr(record, "__record_type__", None)
        if name is None:
            raise MappingError(type(record).__name__, "insert_one needs a Record instance")
        schema = self._mapper.describe(name)
        item = self._mapper.to_raw_item(record)
        schema.key_of(item)
        unless_exists = None if overwrite else schema.primary_key.hash_field
        await self._bounded(
            self._executor.put_item(schema.table_name, item, unless_exists=unless_exists)
        )
        return record

    async def update_one(
        self, record_type: Any, key: Any, changes: Mapping[str, Any]
    ) -> Any | None:
        """Read, apply ``changes`` and put back. Returns None if the record is missing.

        This is a plain read-modify-write, not a conditional update.
        """
        return await self._bounded(self._update_one(record_type, key, changes))

    async def _update_one(self, record_type: Any, key: Any, changes: Mapping[str, Any]) -> Any:
        name = record_type_name(record_type)
        schema = self._mapper.describe(name)
        key_map = schema.normalize_key(key)
        item = await self._executor.get_item(schema.table_name, key_map)
        if item is None:
            return None

        current = self._mapper.from_raw_item(name, item)
        updated = self._mapper.apply_changes(name, current, changes)
        new_item = self._mapper.to_raw_item(updated)
        if schema.key_of(new_item) != key_map:
            raise MappingError(name, "changes may not modify the primary key")
        await self._executor.put_item(schema.table_name, new_item)
        return updated

    # --- Deletes ---

    async def delete_one(self, record_type: Any, key: Any) -> bool:
        """Delete one record by key; True if it existed."""
        name = record_type_name(record_type)
        schema = self._mapper.describe(name)
        removed = await self._bounded(
            self._executor.delete_item(schema.table_name, schema.normalize_key(key))
        )
        return removed is not None

    async def delete_many(self, record_type: Any, conditions: Conditions) -> DeleteOutcome:
        """Delete every record matching ``conditions``.

        Keys a read could not resolve are reported in ``failed_keys``.
        """
        return await self._bounded(self._delete_many(record_type, conditions))

    async def _delete_many(self, record_type: Any, conditions: Conditions) -> DeleteOutcome:
        name, results = await self._run_plan(record_type, conditions)
        schema = self._mapper.describe(name)

        keys: list[Key] = []
        seen: set[tuple[Any, ...]] = set()
        for item in self._materializer.filter_items(results):
            key = schema.key_of(item)
            key_id = _key_id(schema, key)
            if key_id not in seen:
                seen.add(key_id)
                keys.append(key)

        outcome = await self._executor.batch_write(
            schema.table_name, [WriteRequest.delete(k) for k in keys]
        )
        failed = [FailedItem(f.index, keys[f.index], f.reason) for f in outcome.failed_items]
        unread = [key for result in results for key in result.unprocessed_keys]
        failed.extend(
            FailedItem(len(keys) + offset, key, "read left unprocessed after retries")
            for offset, key in enumerate(unread)
        )
        return DeleteOutcome(deleted_count=outcome.succeeded_count, failed_keys=failed)


class Engine:
    """Synchronous facade over AsyncEngine; each call runs on its own event loop.

    Do not call it from inside a running event loop; use AsyncEngine there.
    """

    def __init__(
        self,
        store: StoreClient,
        mapper: Mapper,
        config: KeyQueryConfig | None = None,
        *,
        backoff: Backoff | None = None,
    ) -> None:
        self._async = AsyncEngine(store, mapper, config, backoff=backoff)

    @property
    def config(self) -> KeyQueryConfig:
        return self._async.config

    @property
    def aio(self) -> AsyncEngine:
        return self._async

    def plan(self, record_type: Any, conditions: Conditions) -> QueryPlan:
        return self._async.plan(record_type, conditions)

    def fetch_one(self, record_type: Any, key: Any) -> Any | None:
        return asyncio.run(self._async.fetch_one(record_type, key))

    def fetch_many(self, record_type: Any, conditions: Conditions) -> list[Any]:
        return asyncio.run(self._async.fetch_many(record_type, conditions))

    def write_many(self, record_type: Any, records: Sequence[Any]) -> WriteOutcome:
        return asyncio.run(self._async.write_many(record_type, records))

    def insert_one(self, record: Any, *, overwrite: bool = False) -> Any:
        return asyncio.run(self._async.insert_one(record, overwrite=overwrite))

    def update_one(self, record_type: Any, key: Any, changes: Mapping[str, Any]) -> Any | None:
        return asyncio.run(self._async.update_one(record_type, key, changes))

    def delete_one(self, record_type: Any, key: Any) -> bool:
        return asyncio.run(self._async.delete_one(record_type, key))

    def delete_many(self, record_type: Any, conditions: Conditions) -> DeleteOutcome:
        return asyncio.run(self._async.delete_many(record_type, conditions))
