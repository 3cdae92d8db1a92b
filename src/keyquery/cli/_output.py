"""Rendering of items, plans and errors for kq commands."""

from __future__ import annotations

import json
import sys
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel


def _json_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, BaseModel):
        return value.model_dump()
    return str(value)


def to_json(data: Any, *, indent: int | None = 2) -> str:
    return json.dumps(data, indent=indent, default=_json_default)


def _cell(value: Any) -> str:
    """Scalars print as-is; nested attributes print as compact JSON."""
    if value is None:
        return ""
    if isinstance(value, (Mapping, list, tuple, set, frozenset)):
        return to_json(value, indent=None)
    return str(value)


def print_table(headers: list[str], rows: list[list[Any]], *, json_mode: bool = False) -> None:
    """Print rows under ``headers`` as aligned columns, or as a JSON array of objects."""
    if json_mode:
        print(to_json([dict(zip(headers, row)) for row in rows]))
        return
    if not rows:
        return

    cells = [[_cell(v) for v in row] for row in rows]
    widths = [max([len(h)] + [len(row[i]) for row in cells]) for i, h in enumerate(headers)]
    print("  ".join(h.ljust(widths[i]) for i, h in enumerate(headers)).rstrip())
    print("  ".join("-" * w for w in widths))
    for row in cells:
        print("  ".join(val.ljust(widths[i]) for i, val in enumerate(row)).rstrip())


def print_object(item: Mapping[str, Any], *, json_mode: bool = False) -> None:
    """Print one item as JSON or ``attribute: value`` lines."""
    if json_mode:
        print(to_json(dict(item)))
        return
    for name, value in item.items():
        print(f"{name}: {_cell(value)}")


def print_items(
    items: Sequence[Mapping[str, Any]],
    fields: list[str] | None = None,
    *,
    json_mode: bool = False,
) -> None:
    """Print query results.

    With ``fields`` the items become table rows of those attributes (missing
    attributes print empty); otherwise each item prints as a block.
    """
    if fields:
        print_table(fields, [[item.get(f) for f in fields] for item in items], json_mode=json_mode)
        return
    if json_mode:
        print(to_json([dict(item) for item in items]))
        return
    for n, item in enumerate(items):
        if n:
            print()
        print_object(item)


def print_error(msg: str) -> None:
    """Print an error message to stderr."""
    print(f"Error: {msg}", file=sys.stderr)
