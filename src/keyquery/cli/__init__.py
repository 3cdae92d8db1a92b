"""keyquery CLI: operator console for planning and running key-based reads."""

from __future__ import annotations

from typing import Optional

import typer

from keyquery.cli import get, plan, query, schema

app = typer.Typer(
    name="kq",
    help="keyquery CLI: explain and run key-based reads against DynamoDB tables.",
    no_args_is_help=True,
)


class _State:
    """Global CLI state shared across subcommands."""

    schema: str | None = None
    table_prefix: str | None = None
    region: str | None = None
    endpoint_url: str | None = None
    json_output: bool = False


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        try:
            from importlib.metadata import version

            v = version("keyquery")
        except Exception:
            v = "unknown"
        print(f"kq {v}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    schema_path: Optional[str] = typer.Option(
        None,
        "--schema",
        "-s",
        envvar="KEYQUERY_SCHEMA",
        help="YAML file describing record types, keys and indexes",
    ),
    table_prefix: Optional[str] = typer.Option(
        None, "--table-prefix", envvar="KEYQUERY_TABLE_PREFIX", help="Prefix for table names"
    ),
    region: Optional[str] = typer.Option(
        None, "--region", envvar="KEYQUERY_DYNAMODB_REGION", help="DynamoDB region"
    ),
    endpoint_url: Optional[str] = typer.Option(
        None,
        "--endpoint-url",
        envvar="KEYQUERY_DYNAMODB_ENDPOINT_URL",
        help="DynamoDB endpoint (e.g. http://localhost:8000 for DynamoDB Local)",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all kq commands."""
    state.schema = schema_path
    state.table_prefix = table_prefix
    state.region = region
    state.endpoint_url = endpoint_url
    state.json_output = json_output
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


app.add_typer(schema.app, name="schema", help="Schema catalog commands")

app.command(name="plan")(plan.plan_cmd)
app.command(name="get")(get.get_cmd)
app.command(name="query")(query.query_cmd)


def main() -> None:
    """Entry point for the kq CLI."""
    app()
