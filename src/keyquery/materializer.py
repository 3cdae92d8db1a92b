"""Turn raw plan results into records."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from keyquery.conditions import matches_all
from keyquery.executor import PlanResult
from keyquery.records import Mapper
from keyquery.store import Item


class Materializer:
    """Applies residual conditions, then maps surviving items to records.

    Items keep the store's response order; fan-out results are concatenated
    in plan order.
    """

    def __init__(self, mapper: Mapper) -> None:
        self._mapper = mapper

    def filter_items(self, results: Iterable[PlanResult]) -> list[Item]:
        items: list[Item] = []
        for result in results:
            residual = result.plan.residual_conditions
            items.extend(item for item in result.items if matches_all(item, residual))
        return items

    def materialize(self, record_type: str, results: Iterable[PlanResult]) -> list[Any]:
        return [
            self._mapper.from_raw_item(record_type, item) for item in self.filter_items(results)
        ]
