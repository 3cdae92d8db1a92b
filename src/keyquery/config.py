"""Configuration for the keyquery engine."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class KeyQueryConfig:
    """Configuration for planning and batch execution.

    The batch ceilings are properties of the store (BatchWriteItem accepts 25
    requests, BatchGetItem 100 keys); they live here so the chunker never
    hard-codes them.
    """

    write_batch_limit: int = 25
    read_batch_limit: int = 100
    max_concurrency: int = 8
    max_retries: int = 5
    backoff_base_ms: int = 50
    backoff_max_ms: int = 5000
    backoff_jitter_ms: int = 50
    unavailable_attempts: int = 3
    call_timeout_s: float | None = None
    page_size: int | None = None
    consistent_read: bool = False
    dynamodb_region: str | None = None
    dynamodb_endpoint_url: str | None = None
    dynamodb_request_timeout_s: float = 10.0
    table_prefix: str = ""

    def __post_init__(self) -> None:
        if self.write_batch_limit <= 0 or self.read_batch_limit <= 0:
            raise ValueError("batch limits must be positive")
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.unavailable_attempts <= 0:
            raise ValueError("unavailable_attempts must be positive")
