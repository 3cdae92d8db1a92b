"""kq plan: show the access plan chosen for a condition set, without running it."""

from __future__ import annotations

from typing import Optional

import typer

from keyquery.cli import _exitcodes as ec
from keyquery.cli._filters import group_filter_args, parse_cli_filters
from keyquery.cli._output import print_error, print_object
from keyquery.cli._storage import load_catalog
from keyquery.errors import KeyQueryError
from keyquery.planner import AccessPlanner


def plan_cmd(
    record_type: str = typer.Argument(..., help="Record type name"),
    filter_args: Optional[list[str]] = typer.Option(
        None, "--filter", help="FIELD OP VALUE_JSON (repeatable)"
    ),
) -> None:
    """Explain how a query would reach the store."""
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

    try:
        query_plan = AccessPlanner(catalog).plan(record_type, conditions)
    except KeyQueryError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)

    summary = query_plan.describe()
    if state.json_output:
        print_object(summary, json_mode=True)
        return

    print(f"record_type: {summary['record_type']}")
    print(f"kind: {summary['kind']}")
    if summary["index"]:
        print(f"index: {summary['index']}")
    print(f"fan_out: {summary['fan_out']}")
    print(f"consumed: {', '.join(summary['consumed']) or '-'}")
    print(f"residual: {', '.join(summary['residual']) or '-'}")
