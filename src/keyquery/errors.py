"""Structured error types for keyquery."""

from __future__ import annotations

from typing import Any


class KeyQueryError(Exception):
    """Base error for all keyquery errors."""


class SchemaError(KeyQueryError):
    """Raised when a schema or index declaration is inconsistent."""

    def __init__(self, record_type: str, detail: str) -> None:
        self.record_type = record_type
        self.detail = detail
        super().__init__(f"Invalid schema for '{record_type}': {detail}")


class UnknownRecordTypeError(KeyQueryError):
    """Raised when a record type is not registered in the catalog."""

    def __init__(self, record_type: str) -> None:
        self.record_type = record_type
        super().__init__(f"Record type '{record_type}' is not registered in the catalog")


class UnsupportedOperatorError(KeyQueryError):
    """Raised when a condition uses an operator the planner cannot handle."""

    def __init__(self, field: str, op: Any) -> None:
        self.field = field
        self.op = op
        super().__init__(
            f"Unsupported operator {op!r} on field '{field}'. "
            "Supported operators: eq, in, lt, lte, gt, gte"
        )


class ConflictingConditionError(KeyQueryError):
    """Raised when a field carries more than one range condition."""

    def __init__(self, field: str, existing: str, incoming: str) -> None:
        self.field = field
        self.existing = existing
        self.incoming = incoming
        super().__init__(
            f"Conflicting range conditions on field '{field}': "
            f"'{existing}' already given, cannot also apply '{incoming}'"
        )


class MappingError(KeyQueryError):
    """Raised when a raw item cannot be mapped to or from a record."""

    def __init__(self, record_type: str, detail: str) -> None:
        self.record_type = record_type
        self.detail = detail
        super().__init__(f"Cannot map item for '{record_type}': {detail}")


class StoreError(KeyQueryError):
    """Base class for errors reported by the store client."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Store error during {operation}: {detail}")


class ThrottledRequestError(StoreError):
    """Raised when the store rejects a request for exceeding its throughput."""


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached or reports an internal failure."""


class StoreValidationError(StoreError):
    """Raised when the store rejects a request as malformed."""


class ConditionFailedError(StoreError):
    """Raised when a conditional write is rejected, e.g. the key already exists."""


class RetryExhaustedError(KeyQueryError):
    """Raised when a single-request read keeps being throttled past the retry budget."""

    def __init__(self, operation: str, attempts: int) -> None:
        self.operation = operation
        self.attempts = attempts
        super().__init__(f"{operation} still throttled after {attempts} attempts")


class UnprocessedKeysError(KeyQueryError):
    """Raised when a read still has unprocessed keys after the retry budget.

    ``items_found`` holds what was read so the caller can decide what to do.
    """

    def __init__(
        self, record_type: str, unprocessed_keys: list[Any], items_found: list[Any]
    ) -> None:
        self.record_type = record_type
        self.unprocessed_keys = unprocessed_keys
        self.items_found = items_found
        super().__init__(
            f"{len(unprocessed_keys)} key(s) of '{record_type}' were left unprocessed "
            "after retries"
        )
