"""kq get: fetch one item by primary key."""

from __future__ import annotations

import json
from typing import Any

import typer

from keyquery.cli import _exitcodes as ec
from keyquery.cli._output import print_error, print_object
from keyquery.cli._storage import load_catalog, open_engine
from keyquery.errors import KeyQueryError


def get_cmd(
    record_type: str = typer.Argument(..., help="Record type name"),
    key_json: str = typer.Argument(
        ..., help='Hash key value, or a key object such as \'{"id": "b1", "page_num": 2}\''
    ),
) -> None:
    """Fetch a single item by its primary key."""
    from keyquery.cli import state

    try:
        key: Any = json.loads(key_json)
    except json.JSONDecodeError:
        key = key_json

    try:
        catalog = load_catalog()
    except (OSError, ValueError, KeyQueryError) as e:
        print_error(f"Failed to load schema: {e}")
        raise typer.Exit(ec.GENERAL_ERROR)

    try:
        item = open_engine(catalog).fetch_one(record_type, key)
    except KeyQueryError as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)

    if item is None:
        print_error(f"No '{record_type}' item with key {key_json}")
        raise typer.Exit(ec.NOT_FOUND)
    print_object(item, json_mode=state.json_output)
