"""Batch execution against the store.

The executor takes chunked batches or planned accesses, issues the store
calls, and reconciles partial results:

- batch writes and batch gets retry only the unprocessed subset of each chunk,
  with jittered exponential backoff, and report leftovers instead of raising;
- queries and scans follow continuation tokens until exhausted;
- sibling chunks and fan-out plans run concurrently under one semaphore per
  logical call, and the caller only sees the aggregate.

Writes are not transactional across chunks: if a call is cancelled (for
example by a timeout) chunks already written stay written.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine, Iterable, Sequence
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, TypeVar

from keyquery.chunker import BatchChunk, chunk_reads, chunk_writes
from keyquery.config import KeyQueryConfig
from keyquery.errors import (
    MappingError,
    RetryExhaustedError,
    SchemaError,
    StoreUnavailableError,
    StoreValidationError,
    ThrottledRequestError,
)
from keyquery.planner import AccessPlan, BatchGet, DirectGet, IndexQuery, QueryPlan, Scan
from keyquery.retry import Backoff
from keyquery.schema import SchemaDescriptor
from keyquery.store import Item, Key, StoreClient, WriteRequest
from keyquery.telemetry import (
    log_chunk_completed,
    log_chunk_error,
    log_chunk_exhausted,
    log_chunk_retry,
    log_execution_complete,
)

T = TypeVar("T")


@dataclass
class FailedItem:
    """An item a batch could not apply, with its position in the caller's list."""

    index: int
    item: Any
    reason: str


@dataclass
class WriteOutcome:
    succeeded_count: int = 0
    failed_items: list[FailedItem] = field(default_factory=list)


@dataclass
class ReadOutcome:
    items_found: list[Item] = field(default_factory=list)
    unprocessed_keys: list[Key] = field(default_factory=list)


@dataclass
class DeleteOutcome:
    deleted_count: int = 0
    failed_keys: list[FailedItem] = field(default_factory=list)


@dataclass
class PlanResult:
    """Raw items returned for one access plan, before residual filtering."""

    plan: AccessPlan
    items: list[Item] = field(default_factory=list)
    unprocessed_keys: list[Key] = field(default_factory=list)


def _match_unprocessed(
    pending: list[tuple[int, WriteRequest]], unprocessed: Iterable[WriteRequest]
) -> list[tuple[int, WriteRequest]]:
    remaining = list(pending)
    matched: list[tuple[int, WriteRequest]] = []
    for request in unprocessed:
        for pos, (index, candidate) in enumerate(remaining):
            if candidate is request or candidate == request:
                matched.append((index, candidate))
                del remaining[pos]
                break
    return matched


async def gather_all(coros: Sequence[Coroutine[Any, Any, T]]) -> list[T]:
    """Run coroutines concurrently; on the first failure cancel the rest."""
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class Executor:
    """Issues planned requests and batches against a StoreClient."""

    def __init__(
        self,
        store: StoreClient,
        config: KeyQueryConfig | None = None,
        *,
        backoff: Backoff | None = None,
    ) -> None:
        self._store = store
        self._config = config or KeyQueryConfig()
        self._backoff = backoff or Backoff.from_config(self._config)

    @property
    def config(self) -> KeyQueryConfig:
        return self._config

    def _semaphore(self) -> asyncio.Semaphore:
        return asyncio.Semaphore(self._config.max_concurrency)

    # --- Request helpers ---

    async def _call(
        self, operation: str, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Invoke a store call, retrying StoreUnavailableError a fixed number of times."""
        attempt = 0
        while True:
            try:
                return await fn(*args, **kwargs)
            except StoreUnavailableError:
                attempt += 1
                if attempt >= self._config.unavailable_attempts:
                    raise
                await self._backoff.wait(attempt - 1)

    async def _request(
        self, operation: str, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Invoke a single-request call, retrying throttling within the retry budget."""
        throttled = 0
        while True:
            try:
                return await self._call(operation, fn, *args, **kwargs)
            except ThrottledRequestError:
                throttled += 1
                if throttled > self._backoff.max_retries:
                    raise RetryExhaustedError(operation, throttled) from None
                await self._backoff.wait(throttled - 1)

    # --- Batch writes ---

    async def batch_write(
        self,
        table: str,
        requests: Sequence[WriteRequest],
        *,
        semaphore: asyncio.Semaphore | None = None,
    ) -> WriteOutcome:
        """Write ``requests`` in store-sized chunks, concurrently.

        Failed items carry their position in ``requests``. Pass ``semaphore``
        to share one concurrency bound with the rest of a logical call.
        """
        if not requests:
            return WriteOutcome()

        chunks = chunk_writes(requests, self._config)
        if semaphore is None:
            semaphore = self._semaphore()
        results = await gather_all(
            [self._write_chunk(table, chunk, semaphore) for chunk in chunks]
        )

        outcome = WriteOutcome()
        for succeeded, failed in results:
            outcome.succeeded_count += succeeded
            outcome.failed_items.extend(failed)
        outcome.failed_items.sort(key=lambda f: f.index)

        log_execution_complete(
            operation="batch_write_item",
            chunks=len(chunks),
            succeeded=outcome.succeeded_count,
            failed=len(outcome.failed_items),
        )
        return outcome

    async def _write_chunk(
        self,
        table: str,
        chunk: BatchChunk[WriteRequest],
        semaphore: asyncio.Semaphore,
    ) -> tuple[int, list[FailedItem]]:
        async with semaphore:
            started = perf_counter()
            pending = list(zip(chunk.original_indexes, chunk.items))
            failed: list[FailedItem] = []
            attempts = 0

            while pending:
                try:
                    result = await self._call(
                        "batch_write_item",
                        self._store.batch_write_item,
                        table,
                        [request for _, request in pending],
                    )
                    unprocessed = _match_unprocessed(pending, result.unprocessed)
                except ThrottledRequestError:
                    unprocessed = pending
                except StoreValidationError as e:
                    log_chunk_error(
                        operation="batch_write_item",
                        chunk_index=chunk.chunk_index,
                        error_type=type(e).__name__,
                        error_message=str(e),
                    )
                    failed.extend(await self._isolate_writes(table, pending))
                    pending = []
                    attempts += 1
                    break

                attempts += 1
                pending = unprocessed
                if not pending or attempts > self._backoff.max_retries:
                    break
                delay = await self._backoff.wait(attempts - 1)
                log_chunk_retry(
                    operation="batch_write_item",
                    chunk_index=chunk.chunk_index,
                    attempt=attempts,
                    remaining=len(pending),
                    delay_ms=delay,
                )

            if pending:
                log_chunk_exhausted(
                    operation="batch_write_item",
                    chunk_index=chunk.chunk_index,
                    attempts=attempts,
                    remaining=len(pending),
                )
                failed.extend(
                    FailedItem(index, request, "unprocessed after retries")
                    for index, request in pending
                )

            log_chunk_completed(
                operation="batch_write_item",
                chunk_index=chunk.chunk_index,
                items=len(chunk),
                attempts=attempts,
                unprocessed=len(failed),
                latency_ms=(perf_counter() - started) * 1000.0,
            )
            return len(chunk) - len(failed), failed

    async def _isolate_writes(
        self, table: str, pending: list[tuple[int, WriteRequest]]
    ) -> list[FailedItem]:
        """Apply a rejected chunk one item at a time so one bad item fails alone."""
        failed: list[FailedItem] = []
        for index, request in pending:
            try:
                if request.kind == "put":
                    assert request.item is not None
                    await self._request("put_item", self._store.put_item, table, dict(request.item))
                else:
                    assert request.key is not None
                    await self._request(
                        "delete_item", self._store.delete_item, table, dict(request.key)
                    )
            except (StoreValidationError, MappingError, SchemaError, RetryExhaustedError) as e:
                failed.append(FailedItem(index, request, str(e)))
        return failed

    # --- Batch reads ---

    async def batch_get(
        self,
        table: str,
        keys: Sequence[Key],
        *,
        semaphore: asyncio.Semaphore | None = None,
    ) -> ReadOutcome:
        """Read ``keys`` in store-sized chunks; result order is unspecified."""
        if not keys:
            return ReadOutcome()

        chunks = chunk_reads(keys, self._config)
        if semaphore is None:
            semaphore = self._semaphore()
        results = await gather_all([self._read_chunk(table, chunk, semaphore) for chunk in chunks])

        outcome = ReadOutcome()
        for found, unprocessed in results:
            outcome.items_found.extend(found)
            outcome.unprocessed_keys.extend(unprocessed)

        log_execution_complete(
            operation="batch_get_item",
            chunks=len(chunks),
            found=len(outcome.items_found),
            unprocessed=len(outcome.unprocessed_keys),
        )
        return outcome

    async def _read_chunk(
        self, table: str, chunk: BatchChunk[Key], semaphore: asyncio.Semaphore
    ) -> tuple[list[Item], list[Key]]:
        async with semaphore:
            started = perf_counter()
            pending: list[Key] = list(chunk.items)
            found: list[Item] = []
            attempts = 0

            while pending:
                try:
                    result = await self._call(
                        "batch_get_item",
                        self._store.batch_get_item,
                        table,
                        pending,
                        consistent_read=self._config.consistent_read,
                    )
                    found.extend(result.items)
                    unprocessed = list(result.unprocessed_keys)
                except ThrottledRequestError:
                    unprocessed = pending

                attempts += 1
                pending = unprocessed
                if not pending or attempts > self._backoff.max_retries:
                    break
                delay = await self._backoff.wait(attempts - 1)
                log_chunk_retry(
                    operation="batch_get_item",
                    chunk_index=chunk.chunk_index,
                    attempt=attempts,
                    remaining=len(pending),
                    delay_ms=delay,
                )

            if pending:
                log_chunk_exhausted(
                    operation="batch_get_item",
                    chunk_index=chunk.chunk_index,
                    attempts=attempts,
                    remaining=len(pending),
                )

            log_chunk_completed(
                operation="batch_get_item",
                chunk_index=chunk.chunk_index,
                items=len(chunk),
                attempts=attempts,
                unprocessed=len(pending),
                latency_ms=(perf_counter() - started) * 1000.0,
            )
            return found, pending

    # --- Single requests and paginated reads ---

    async def get_item(self, table: str, key: Key) -> Item | None:
        return await self._request(
            "get_item",
            self._store.get_item,
            table,
            key,
            consistent_read=self._config.consistent_read,
        )

    async def put_item(self, table: str, item: Item, *, unless_exists: str | None = None) -> None:
        await self._request(
            "put_item", self._store.put_item, table, item, unless_exists=unless_exists
        )

    async def delete_item(self, table: str, key: Key) -> Item | None:
        return await self._request("delete_item", self._store.delete_item, table, key)

    async def query_all(
        self,
        table: str,
        plan: IndexQuery,
        *,
        semaphore: asyncio.Semaphore | None = None,
    ) -> list[Item]:
        """Run one partition query, following continuation tokens to the end.

        With ``semaphore`` each page request holds one of its slots.
        """
        items: list[Item] = []
        token = None
        while True:
            async with _slot(semaphore):
                page = await self._request(
                    "query",
                    self._store.query,
                    table,
                    index_name=plan.index_name,
                    hash_field=plan.hash_field,
                    hash_value=plan.hash_value,
                    range_condition=plan.range_condition,
                    limit=self._config.page_size,
                    start_token=token,
                    consistent_read=self._config.consistent_read and plan.index_name is None,
                )
            items.extend(page.items)
            token = page.next_token
            if token is None:
                return items

    async def scan_all(
        self, table: str, *, semaphore: asyncio.Semaphore | None = None
    ) -> list[Item]:
        """Scan the whole table, following continuation tokens to the end."""
        items: list[Item] = []
        token = None
        while True:
            async with _slot(semaphore):
                page = await self._request(
                    "scan",
                    self._store.scan,
                    table,
                    limit=self._config.page_size,
                    start_token=token,
                    consistent_read=self._config.consistent_read,
                )
            items.extend(page.items)
            token = page.next_token
            if token is None:
                return items

    # --- Plans ---

    async def run(self, query_plan: QueryPlan, schema: SchemaDescriptor) -> list[PlanResult]:
        """Execute every access plan of ``query_plan``; fan-out siblings run concurrently.

        One semaphore bounds every store call of the query, follow-up batch
        reads included; a slot is held per store call, never across calls.
        """
        if not query_plan.plans:
            return []
        semaphore = self._semaphore()
        return await gather_all(
            [self.run_access(plan, schema, semaphore=semaphore) for plan in query_plan.plans]
        )

    async def run_access(
        self,
        plan: AccessPlan,
        schema: SchemaDescriptor,
        *,
        semaphore: asyncio.Semaphore | None = None,
    ) -> PlanResult:
        if semaphore is None:
            semaphore = self._semaphore()
        table = schema.table_name
        if isinstance(plan, DirectGet):
            async with semaphore:
                item = await self.get_item(table, dict(plan.key))
            return PlanResult(plan, [item] if item is not None else [])
        if isinstance(plan, BatchGet):
            outcome = await self.batch_get(
                table, [dict(k) for k in plan.keys], semaphore=semaphore
            )
            return PlanResult(plan, outcome.items_found, outcome.unprocessed_keys)
        if isinstance(plan, IndexQuery):
            items = await self.query_all(table, plan, semaphore=semaphore)
            if not plan.fetch_full_items:
                return PlanResult(plan, items)
            keys: list[Key] = []
            for item in items:
                key = schema.key_of(item)
                if key not in keys:
                    keys.append(key)
            outcome = await self.batch_get(table, keys, semaphore=semaphore)
            return PlanResult(plan, outcome.items_found, outcome.unprocessed_keys)
        if isinstance(plan, Scan):
            return PlanResult(plan, await self.scan_all(table, semaphore=semaphore))
        raise TypeError(f"Unknown access plan type: {type(plan).__name__}")


def _slot(semaphore: asyncio.Semaphore | None) -> AbstractAsyncContextManager[Any]:
    return semaphore if semaphore is not None else nullcontext()
