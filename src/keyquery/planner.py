"""Access planning: choose the cheapest store access pattern for a condition set.

Priority, first match wins:

1. exact single value on the primary hash (and range, when the table has one)
   -> ``DirectGet``
2. exact values on the primary hash otherwise -> one ``BatchGet`` over the
   full keys, or one primary-key ``IndexQuery`` per hash value when the range
   part is a predicate or unconstrained
3. exact values on a secondary index hash -> one ``IndexQuery`` per value,
   preferring indexes whose range field is constrained, then declaration order
4. anything else -> ``Scan`` with every condition left for post-filtering

Conditions not consumed by the key match stay in ``residual_conditions`` and
are applied to the returned items, so a weaker match costs reads but never
correctness.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from keyquery.conditions import (
    EQ,
    Condition,
    ConditionLike,
    NormalizedConditions,
    normalize_conditions,
)
from keyquery.schema import Catalog, IndexDescriptor, SchemaDescriptor
from keyquery.telemetry import log_plan_selected, log_scan_fallback


@dataclass(frozen=True)
class DirectGet:
    """Fetch one item by its full primary key."""

    kind: ClassVar[str] = "direct_get"

    key: Mapping[str, Any]
    residual_conditions: tuple[Condition, ...] = ()


@dataclass(frozen=True)
class IndexQuery:
    """Query one hash partition of a secondary index or of the table itself.

    ``index_name`` is None when the table's primary key is queried.
    ``fetch_full_items`` is set when the index projection lacks fields the
    record needs, so matching keys must be re-read from the table.
    """

    kind: ClassVar[str] = "index_query"

    index_name: str | None
    hash_field: str
    hash_value: Any
    range_condition: Condition | None = None
    fetch_full_items: bool = False
    residual_conditions: tuple[Condition, ...] = ()


@dataclass(frozen=True)
class Scan:
    """Traverse the whole table and filter client-side."""

    kind: ClassVar[str] = "scan"

    residual_conditions: tuple[Condition, ...] = ()


@dataclass(frozen=True)
class BatchGet:
    """Fetch a list of full primary keys, in store-determined order."""

    kind: ClassVar[str] = "batch_get"

    keys: tuple[Mapping[str, Any], ...] = ()
    residual_conditions: tuple[Condition, ...] = ()


AccessPlan = Union[DirectGet, IndexQuery, Scan, BatchGet]


@dataclass(frozen=True)
class QueryPlan:
    """Planner output: one access plan, or independent fan-out siblings."""

    record_type: str
    kind: str
    plans: tuple[AccessPlan, ...]
    consumed_conditions: tuple[Condition, ...] = ()
    residual_conditions: tuple[Condition, ...] = ()
    index_name: str | None = None

    @property
    def is_fan_out(self) -> bool:
        return len(self.plans) > 1

    def describe(self) -> dict[str, Any]:
        """JSON-friendly summary used by the CLI ``plan`` command."""
        out: dict[str, Any] = {
            "record_type": self.record_type,
            "kind": self.kind,
            "index": self.index_name,
            "fan_out": len(self.plans),
            "consumed": [str(c) for c in self.consumed_conditions],
            "residual": [str(c) for c in self.residual_conditions],
        }
        details: list[dict[str, Any]] = []
        for plan in self.plans:
            if isinstance(plan, DirectGet):
                details.append({"kind": plan.kind, "key": dict(plan.key)})
            elif isinstance(plan, BatchGet):
                details.append({"kind": plan.kind, "keys": [dict(k) for k in plan.keys]})
            elif isinstance(plan, IndexQuery):
                details.append(
                    {
                        "kind": plan.kind,
                        "index": plan.index_name,
                        "hash": {plan.hash_field: plan.hash_value},
                        "range": str(plan.range_condition) if plan.range_condition else None,
                        "fetch_full_items": plan.fetch_full_items,
                    }
                )
            else:
                details.append({"kind": plan.kind})
        out["plans"] = details
        return out


@dataclass
class _IndexCandidate:
    position: int
    index: IndexDescriptor
    hash_values: tuple[Any, ...]
    range_condition: Condition | None
    consumed: list[Condition] = field(default_factory=list)

    @property
    def rank(self) -> tuple[int, int]:
        return (0 if self.range_condition is not None else 1, self.position)


def _without(conditions: Iterable[Condition], consumed: list[Condition]) -> tuple[Condition, ...]:
    return tuple(c for c in conditions if not any(c is k for k in consumed))


class AccessPlanner:
    """Chooses the lowest-cost AccessPlan for a condition set."""

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    def plan(
        self,
        record_type: str,
        conditions: Iterable[ConditionLike] | NormalizedConditions,
    ) -> QueryPlan:
        schema = self._catalog.describe(record_type)
        if isinstance(conditions, NormalizedConditions):
            normalized = conditions
        else:
            normalized = normalize_conditions(conditions)

        query_plan = (
            self._plan_primary(schema, normalized)
            or self._plan_index(schema, normalized)
            or self._plan_scan(schema, normalized)
        )

        log_plan_selected(
            record_type=schema.record_type,
            plan_kind=query_plan.kind,
            fan_out=len(query_plan.plans),
            residual_count=len(query_plan.residual_conditions),
            index_name=query_plan.index_name,
        )
        return query_plan

    def _plan_primary(
        self, schema: SchemaDescriptor, normalized: NormalizedConditions
    ) -> QueryPlan | None:
        pk = schema.primary_key
        hash_values = normalized.exact_values(pk.hash_field)
        if hash_values is None:
            return None

        consumed = list(normalized.exact_sources(pk.hash_field))
        range_values: tuple[Any, ...] | None = None
        if pk.range_field is None:
            keys = [{pk.hash_field: hv} for hv in hash_values]
        else:
            range_values = normalized.exact_values(pk.range_field)
            if range_values is not None:
                consumed.extend(normalized.exact_sources(pk.range_field))
                keys = [
                    {pk.hash_field: hv, pk.range_field: rv}
                    for hv in hash_values
                    for rv in range_values
                ]
            else:
                return self._plan_partition_queries(schema, normalized, hash_values, consumed)

        residual = _without(normalized.conditions, consumed)
        plan: AccessPlan
        if len(keys) == 1:
            plan = DirectGet(key=keys[0], residual_conditions=residual)
        else:
            plan = BatchGet(keys=tuple(keys), residual_conditions=residual)
        return QueryPlan(
            record_type=schema.record_type,
            kind=plan.kind,
            plans=(plan,),
            consumed_conditions=tuple(consumed),
            residual_conditions=residual,
        )

    def _plan_partition_queries(
        self,
        schema: SchemaDescriptor,
        normalized: NormalizedConditions,
        hash_values: tuple[Any, ...],
        consumed: list[Condition],
    ) -> QueryPlan:
        pk = schema.primary_key
        range_condition = normalized.range_condition(pk.range_field)
        if range_condition is not None:
            consumed.append(range_condition)
        residual = _without(normalized.conditions, consumed)
        if not hash_values:
            empty = BatchGet(keys=(), residual_conditions=residual)
            return QueryPlan(
                record_type=schema.record_type,
                kind=empty.kind,
                plans=(empty,),
                consumed_conditions=tuple(consumed),
                residual_conditions=residual,
            )
        plans = tuple(
            IndexQuery(
                index_name=None,
                hash_field=pk.hash_field,
                hash_value=hv,
                range_condition=range_condition,
                residual_conditions=residual,
            )
            for hv in hash_values
        )
        return QueryPlan(
            record_type=schema.record_type,
            kind=IndexQuery.kind,
            plans=plans,
            consumed_conditions=tuple(consumed),
            residual_conditions=residual,
        )

    def _range_match(
        self, normalized: NormalizedConditions, range_field: str | None
    ) -> tuple[Condition | None, list[Condition]]:
        if range_field is None:
            return None, []
        values = normalized.exact_values(range_field)
        if values is not None and len(values) == 1:
            sources = normalized.exact_sources(range_field)
            if len(sources) == 1 and sources[0].op == EQ:
                return sources[0], sources
            return Condition(range_field, EQ, values[0]), sources
        range_condition = normalized.range_condition(range_field)
        if range_condition is not None:
            return range_condition, [range_condition]
        return None, []

    def _plan_index(
        self, schema: SchemaDescriptor, normalized: NormalizedConditions
    ) -> QueryPlan | None:
        candidates: list[_IndexCandidate] = []
        for position, index in enumerate(schema.indexes):
            hash_values = normalized.exact_values(index.hash_field)
            if hash_values is None:
                continue
            range_condition, range_sources = self._range_match(normalized, index.range_field)
            candidates.append(
                _IndexCandidate(
                    position=position,
                    index=index,
                    hash_values=hash_values,
                    range_condition=range_condition,
                    consumed=[*normalized.exact_sources(index.hash_field), *range_sources],
                )
            )
        if not candidates:
            return None

        best = min(candidates, key=lambda c: c.rank)
        index = best.index
        projected = index.projected_fields(schema.primary_key)
        fetch_full_items = projected is not None and not schema.fields <= projected

        residual = _without(normalized.conditions, best.consumed)
        plans = tuple(
            IndexQuery(
                index_name=index.name,
                hash_field=index.hash_field,
                hash_value=hv,
                range_condition=best.range_condition,
                fetch_full_items=fetch_full_items,
                residual_conditions=residual,
            )
            for hv in best.hash_values
        )
        return QueryPlan(
            record_type=schema.record_type,
            kind=IndexQuery.kind,
            plans=plans,
            consumed_conditions=tuple(best.consumed),
            residual_conditions=residual,
            index_name=index.name,
        )

    def _plan_scan(self, schema: SchemaDescriptor, normalized: NormalizedConditions) -> QueryPlan:
        log_scan_fallback(record_type=schema.record_type, fields=list(normalized))
        scan = Scan(residual_conditions=normalized.conditions)
        return QueryPlan(
            record_type=schema.record_type,
            kind=scan.kind,
            plans=(scan,),
            residual_conditions=normalized.conditions,
        )
