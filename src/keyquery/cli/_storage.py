"""CLI helpers for config, schema catalog and engine construction."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from keyquery.config import KeyQueryConfig
from keyquery.engine import Engine
from keyquery.records import DictMapper
from keyquery.schema import Catalog
from keyquery.store import StoreClient
from keyquery.store_dynamodb import DynamoDBStore

_TRUE = {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


def config_from_env() -> KeyQueryConfig:
    """Build runtime config from CLI state and ``KEYQUERY_*`` environment defaults."""
    from keyquery.cli import state

    timeout = os.getenv("KEYQUERY_CALL_TIMEOUT_S")
    return KeyQueryConfig(
        max_concurrency=_env_int("KEYQUERY_MAX_CONCURRENCY", 8),
        max_retries=_env_int("KEYQUERY_MAX_RETRIES", 5),
        call_timeout_s=float(timeout) if timeout else None,
        consistent_read=os.getenv("KEYQUERY_CONSISTENT_READ", "").lower() in _TRUE,
        dynamodb_region=state.region or os.getenv("KEYQUERY_DYNAMODB_REGION"),
        dynamodb_endpoint_url=state.endpoint_url or os.getenv("KEYQUERY_DYNAMODB_ENDPOINT_URL"),
        table_prefix=state.table_prefix or "",
    )


def load_catalog(path: str | None = None) -> Catalog:
    """Load schema documents from a YAML file.

    The file holds a list of schema documents, or a mapping with a
    ``schemas`` list.
    """
    from keyquery.cli import state

    schema_path = path or state.schema
    if not schema_path:
        raise ValueError("No schema file given (use --schema or KEYQUERY_SCHEMA)")
    with Path(schema_path).open(encoding="utf-8") as fh:
        doc: Any = yaml.safe_load(fh)
    if isinstance(doc, dict):
        doc = doc.get("schemas")
    if not isinstance(doc, list):
        raise ValueError(f"Schema file '{schema_path}' must contain a list of schemas")
    return Catalog.from_documents(doc)


def open_store(catalog: Catalog, config: KeyQueryConfig) -> StoreClient:
    """Open the store the CLI talks to."""
    return DynamoDBStore(config=config)


def open_engine(catalog: Catalog | None = None) -> Engine:
    """Open a dict-mapping engine using global CLI schema and store selection."""
    catalog = catalog or load_catalog()
    config = config_from_env()
    return Engine(open_store(catalog, config), DictMapper(catalog), config)
