"""keyquery: key-aware query planning and batch execution for DynamoDB-style stores."""

__version__ = "0.1.0"

from keyquery.conditions import Condition, normalize_conditions
from keyquery.config import KeyQueryConfig
from keyquery.engine import AsyncEngine, Engine
from keyquery.errors import (
    ConditionFailedError,
    ConflictingConditionError,
    KeyQueryError,
    MappingError,
    RetryExhaustedError,
    SchemaError,
    StoreError,
    StoreUnavailableError,
    StoreValidationError,
    ThrottledRequestError,
    UnknownRecordTypeError,
    UnprocessedKeysError,
    UnsupportedOperatorError,
)
from keyquery.executor import DeleteOutcome, Executor, FailedItem, ReadOutcome, WriteOutcome
from keyquery.planner import AccessPlanner, BatchGet, DirectGet, IndexQuery, QueryPlan, Scan
from keyquery.records import DictMapper, Field, Record, RecordMapper
from keyquery.schema import Catalog, IndexDescriptor, PrimaryKey, SchemaDescriptor
from keyquery.store import InMemoryStore, StoreClient, WriteRequest
from keyquery.store_dynamodb import DynamoDBStore

__all__ = [
    "__version__",
    "Record",
    "Field",
    "RecordMapper",
    "DictMapper",
    "Condition",
    "normalize_conditions",
    "Catalog",
    "SchemaDescriptor",
    "PrimaryKey",
    "IndexDescriptor",
    "AccessPlanner",
    "QueryPlan",
    "DirectGet",
    "IndexQuery",
    "Scan",
    "BatchGet",
    "Executor",
    "WriteOutcome",
    "ReadOutcome",
    "DeleteOutcome",
    "FailedItem",
    "StoreClient",
    "InMemoryStore",
    "DynamoDBStore",
    "WriteRequest",
    "AsyncEngine",
    "Engine",
    "KeyQueryConfig",
    "KeyQueryError",
    "SchemaError",
    "UnknownRecordTypeError",
    "UnsupportedOperatorError",
    "ConflictingConditionError",
    "ConditionFailedError",
    "MappingError",
    "StoreError",
    "ThrottledRequestError",
    "StoreUnavailableError",
    "StoreValidationError",
    "RetryExhaustedError",
    "UnprocessedKeysError",
]
