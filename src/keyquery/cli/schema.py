"""kq schema: inspect the schema catalog."""

from __future__ import annotations

from typing import Optional

import typer
import yaml

from keyquery.cli import _exitcodes as ec
from keyquery.cli._output import print_error, print_table, to_json
from keyquery.cli._storage import load_catalog
from keyquery.errors import KeyQueryError

app = typer.Typer(no_args_is_help=True)


@app.command(name="show")
def schema_show_cmd(
    record_type: Optional[str] = typer.Argument(None, help="Record type name (default: all)"),
    fmt: str = typer.Option("text", "--format", help="Output format: text, json or yaml"),
) -> None:
    """Show record types with their keys and indexes."""
    from keyquery.cli import state

    if fmt not in ("text", "json", "yaml"):
        print_error("--format must be one of: text, json, yaml")
        raise typer.Exit(ec.USAGE_ERROR)

    try:
        catalog = load_catalog()
    except (OSError, ValueError, KeyQueryError) as e:
        print_error(f"Failed to load schema: {e}")
        raise typer.Exit(ec.GENERAL_ERROR)

    try:
        schemas = [catalog.describe(record_type)] if record_type else list(catalog)
    except KeyQueryError as e:
        print_error(str(e))
        raise typer.Exit(ec.NOT_FOUND)

    docs = [s.to_dict() for s in schemas]
    if fmt == "yaml":
        print(yaml.safe_dump(docs, sort_keys=False), end="")
        return
    if fmt == "json" or state.json_output:
        print(to_json(docs))
        return

    print_table(
        ["record_type", "table", "hash", "range", "indexes"],
        [
            [
                d["record_type"],
                d["table_name"],
                d["hash_field"],
                d["range_field"],
                ", ".join(i["name"] for i in d["indexes"]),
            ]
            for d in docs
        ],
    )
