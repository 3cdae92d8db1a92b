"""CLI filter token parser: converts CLI triples to Conditions."""

from __future__ import annotations

import json
from typing import Any

from keyquery.conditions import EQ, GT, GTE, IN, LT, LTE, Condition

_OP_MAP: dict[str, str] = {
    "eq": EQ,
    "gt": GT,
    "gte": GTE,
    "lt": LT,
    "lte": LTE,
    "in": IN,
}


def group_filter_args(filter_args: list[str] | None) -> list[tuple[str, str, str]]:
    """Group repeated ``--filter`` values into (FIELD, OP, VALUE_JSON) triples.

    Accepts three separate ``--filter`` tokens per condition, or one
    space-separated ``"FIELD OP VALUE_JSON"`` string per condition.
    """
    if not filter_args:
        return []
    if len(filter_args) % 3 == 0 and all(len(a.split()) == 1 for a in filter_args[1::3]):
        return [
            (filter_args[i], filter_args[i + 1], filter_args[i + 2])
            for i in range(0, len(filter_args), 3)
        ]

    triples: list[tuple[str, str, str]] = []
    for arg in filter_args:
        parts = arg.split(None, 2)
        if len(parts) != 3:
            raise ValueError(f"Invalid filter (expected 'FIELD OP VALUE_JSON'): {arg}")
        triples.append((parts[0], parts[1], parts[2]))
    return triples


def parse_cli_filters(triples: list[tuple[str, str, str]]) -> list[Condition]:
    """Parse CLI filter triples (FIELD, OP, VALUE_JSON) into Conditions.

    Multiple filters are AND-combined.
    """
    conditions: list[Condition] = []
    for field_name, op_token, value_json in triples:
        op = _OP_MAP.get(op_token)
        if op is None:
            raise ValueError(
                f"Unknown filter operator '{op_token}'. "
                f"Valid operators: {', '.join(sorted(_OP_MAP.keys()))}"
            )
        try:
            value: Any = json.loads(value_json)
        except json.JSONDecodeError as e:
            raise ValueError(f"Filter value for '{field_name}' is not valid JSON: {e}") from e
        if op == IN and not isinstance(value, list):
            raise ValueError(f"'in' filter on '{field_name}' needs a JSON array")
        conditions.append(Condition(field_name, op, value))
    return conditions
