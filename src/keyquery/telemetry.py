"""Structured logging for planning and batch execution.

Every event is a fixed message name with its details in ``extra`` so log
pipelines can index them without parsing text.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


def log_plan_selected(
    *,
    record_type: str,
    plan_kind: str,
    fan_out: int,
    residual_count: int,
    index_name: str | None = None,
) -> None:
    """Log the access pattern chosen for a condition set.

    Args:
        record_type: Record type being queried
        plan_kind: Variant name of the chosen access plan
        fan_out: Number of independent sub-plans
        residual_count: Number of conditions left for post-filtering
        index_name: Secondary index used, if any
    """
    logger.debug(
        "plan_selected",
        extra={
            "record_type": record_type,
            "plan_kind": plan_kind,
            "fan_out": fan_out,
            "residual_count": residual_count,
            "index_name": index_name,
        },
    )


def log_scan_fallback(*, record_type: str, fields: list[str]) -> None:
    """Warn that no key or index condition exists and a full scan will run."""
    logger.warning(
        "scan_fallback",
        extra={"record_type": record_type, "fields": fields},
    )


def log_chunk_plan(*, operation: str, total_items: int, total_chunks: int, ceiling: int) -> None:
    logger.info(
        "chunk_plan_created",
        extra={
            "operation": operation,
            "total_items": total_items,
            "total_chunks": total_chunks,
            "ceiling": ceiling,
        },
    )


def log_chunk_completed(
    *,
    operation: str,
    chunk_index: int,
    items: int,
    attempts: int,
    unprocessed: int,
    latency_ms: float | None = None,
) -> None:
    """Log completion of a single chunk, successful or not.

    Args:
        operation: Store operation name
        chunk_index: Zero-based index of the chunk
        items: Number of items submitted in the chunk
        attempts: Number of store calls the chunk needed
        unprocessed: Items still unprocessed after the last attempt
        latency_ms: Wall time of the chunk in milliseconds
    """
    logger.info(
        "chunk_completed",
        extra={
            "operation": operation,
            "chunk_index": chunk_index,
            "items": items,
            "attempts": attempts,
            "unprocessed": unprocessed,
            "latency_ms": latency_ms,
        },
    )


def log_chunk_retry(
    *, operation: str, chunk_index: int, attempt: int, remaining: int, delay_ms: float
) -> None:
    logger.info(
        "chunk_retry",
        extra={
            "operation": operation,
            "chunk_index": chunk_index,
            "attempt": attempt,
            "remaining": remaining,
            "delay_ms": delay_ms,
        },
    )


def log_chunk_exhausted(*, operation: str, chunk_index: int, attempts: int, remaining: int) -> None:
    logger.warning(
        "chunk_retry_exhausted",
        extra={
            "operation": operation,
            "chunk_index": chunk_index,
            "attempts": attempts,
            "remaining": remaining,
        },
    )


def log_chunk_error(
    *,
    operation: str,
    chunk_index: int,
    error_type: str,
    error_message: str,
) -> None:
    logger.error(
        "chunk_error",
        extra={
            "operation": operation,
            "chunk_index": chunk_index,
            "error_type": error_type,
            "error_message": error_message,
        },
    )


def log_execution_complete(*, operation: str, chunks: int, **counts: Any) -> None:
    logger.info(
        "execution_complete",
        extra={"operation": operation, "chunks": chunks, **counts},
    )
