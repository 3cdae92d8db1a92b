"""kq query: fetch every item matching a condition set."""

from __future__ import annotations

from typing import Optional

import typer

from keyquery.cli import _exitcodes as ec
from keyquery.cli._filters import group_filter_args, parse_cli_filters
from keyquery.cli._output import print_error, print_items
from keyquery.cli._storage import load_catalog, open_engine
from keyquery.errors import KeyQueryError, UnprocessedKeysError


def query_cmd(
    record_type: str = typer.Argument(..., help="Record type name"),
    filter_args: Optional[list[str]] = typer.Option(
        None, "--filter", help="FIELD OP VALUE_JSON (repeatable)"
    ),
    limit: Optional[int] = typer.Option(None, "--limit", help="Max results to print"),
    fields: Optional[str] = typer.Option(
        None, "--fields", help="Comma-separated fields for table output"
    ),
) -> None:
    """Query items of a record type; an empty condition set scans the table."""
    from keyquery.cli import state

    try:
        conditions = parse_cli_filters(group_filter_args(filter_args))
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)

    try:
        catalog = load_catalog()
    except (OSError, ValueError, KeyQueryError) as e:
        print_error(f"Failed to load schema: {e}")
        raise typer.Exit(ec.GENERAL_ERROR)

    partial = False
    try:
        items = open_engine(catalog).fetch_many(record_type, conditions)
    except UnprocessedKeysError as e:
        items = e.items_found
        partial = True
        print_error(str(e))
    except KeyQueryError as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)

    if limit is not None:
        items = items[:limit]

    columns = [f.strip() for f in fields.split(",") if f.strip()] if fields else None
    print_items(items, columns, json_mode=state.json_output)

    if partial:
        raise typer.Exit(ec.EXECUTION_FAILURE)
