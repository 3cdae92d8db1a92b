"""DynamoDB store client backed by boto3."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from decimal import Decimal
from typing import Any, TypeVar

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from keyquery.conditions import EQ, GT, GTE, LT, LTE, Condition
from keyquery.config import KeyQueryConfig
from keyquery.errors import (
    ConditionFailedError,
    StoreError,
    StoreUnavailableError,
    StoreValidationError,
    ThrottledRequestError,
)
from keyquery.store import (
    BatchGetResult,
    BatchWriteResult,
    Item,
    Key,
    Page,
    Token,
    WriteRequest,
)

T = TypeVar("T")

THROTTLE_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
    }
)
UNAVAILABLE_CODES = frozenset({"InternalServerError", "ServiceUnavailable"})
CONDITION_CODES = frozenset({"ConditionalCheckFailedException"})
VALIDATION_CODES = frozenset({"ValidationException"})

_KEY_OPERATORS = {EQ: "=", LT: "<", LTE: "<=", GT: ">", GTE: ">="}

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _to_dynamo_value(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, Mapping):
        return {k: _to_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo_value(v) for v in value]
    return value


def _from_dynamo_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, Mapping):
        return {k: _from_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_from_dynamo_value(v) for v in value]
    if isinstance(value, set):
        return {_from_dynamo_value(v) for v in value}
    return value


def _serialize_value(name: str, value: Any) -> dict[str, Any]:
    try:
        return _serializer.serialize(_to_dynamo_value(value))
    except TypeError as e:
        raise StoreValidationError("serialize", f"attribute '{name}': {e}") from e


def serialize_item(item: Mapping[str, Any]) -> dict[str, Any]:
    """Convert a plain item to DynamoDB's attribute-value wire format.

    Raises:
        StoreValidationError: If an attribute value has no DynamoDB type.
    """
    return {k: _serialize_value(k, v) for k, v in item.items()}


def deserialize_item(item: Mapping[str, Any]) -> Item:
    return {k: _from_dynamo_value(_deserializer.deserialize(v)) for k, v in item.items()}


def translate_client_error(operation: str, err: ClientError) -> StoreError:
    """Map a botocore ClientError to the keyquery store error taxonomy."""
    code = err.response.get("Error", {}).get("Code", "")
    message = err.response.get("Error", {}).get("Message", str(err))
    detail = f"{code}: {message}" if code else message
    if code in THROTTLE_CODES:
        return ThrottledRequestError(operation, detail)
    if code in UNAVAILABLE_CODES:
        return StoreUnavailableError(operation, detail)
    if code in CONDITION_CODES:
        return ConditionFailedError(operation, detail)
    if code in VALIDATION_CODES:
        return StoreValidationError(operation, detail)
    return StoreError(operation, detail)


def key_condition_expression(
    hash_field: str, hash_value: Any, range_condition: Condition | None
) -> tuple[str, dict[str, str], dict[str, Any]]:
    """Build KeyConditionExpression, attribute names and values for a query."""
    expression = "#h = :h"
    names = {"#h": hash_field}
    values = {":h": _serialize_value(hash_field, hash_value)}
    if range_condition is not None:
        operator = _KEY_OPERATORS.get(range_condition.op)
        if operator is None:
            raise StoreValidationError(
                "query", f"'{range_condition}' cannot be used as a key condition"
            )
        expression += f" AND #r {operator} :r"
        names["#r"] = range_condition.field
        values[":r"] = _serialize_value(range_condition.field, range_condition.value)
    return expression, names, values


class DynamoDBStore:
    """StoreClient implementation over a boto3 DynamoDB client.

    boto3 calls are blocking; each one runs in a worker thread. botocore's own
    retries are disabled so throttling and partial batches surface to the
    executor, which owns the retry budget.
    """

    def __init__(self, *, config: KeyQueryConfig | None = None, client: Any | None = None) -> None:
        self._config = config or KeyQueryConfig()
        if client is None:
            session = boto3.Session(region_name=self._config.dynamodb_region)
            client = session.client(
                "dynamodb",
                region_name=self._config.dynamodb_region,
                endpoint_url=self._config.dynamodb_endpoint_url,
                config=BotoConfig(
                    connect_timeout=self._config.dynamodb_request_timeout_s,
                    read_timeout=self._config.dynamodb_request_timeout_s,
                    retries={"max_attempts": 1, "mode": "standard"},
                ),
            )
        self._client = client

    def _table(self, table: str) -> str:
        return f"{self._config.table_prefix}{table}"

    async def _invoke(self, operation: str, fn: Callable[..., T], **kwargs: Any) -> T:
        try:
            return await asyncio.to_thread(fn, **kwargs)
        except ClientError as e:
            raise translate_client_error(operation, e) from e
        except (
            EndpointConnectionError,
            ConnectTimeoutError,
            ReadTimeoutError,
            ConnectionClosedError,
        ) as e:
            raise StoreUnavailableError(operation, str(e)) from e

    async def get_item(
        self, table: str, key: Key, *, consistent_read: bool = False
    ) -> Item | None:
        resp = await self._invoke(
            "get_item",
            self._client.get_item,
            TableName=self._table(table),
            Key=serialize_item(key),
            ConsistentRead=consistent_read,
        )
        raw = resp.get("Item")
        return deserialize_item(raw) if raw else None

    async def batch_get_item(
        self, table: str, keys: Sequence[Key], *, consistent_read: bool = False
    ) -> BatchGetResult:
        name = self._table(table)
        resp = await self._invoke(
            "batch_get_item",
            self._client.batch_get_item,
            RequestItems={
                name: {
                    "Keys": [serialize_item(k) for k in keys],
                    "ConsistentRead": consistent_read,
                }
            },
        )
        items = [deserialize_item(i) for i in resp.get("Responses", {}).get(name, [])]
        unprocessed = resp.get("UnprocessedKeys", {}).get(name, {}).get("Keys", [])
        return BatchGetResult(
            items=items, unprocessed_keys=[deserialize_item(k) for k in unprocessed]
        )

    async def query(
        self,
        table: str,
        *,
        index_name: str | None,
        hash_field: str,
        hash_value: Any,
        range_condition: Condition | None = None,
        limit: int | None = None,
        start_token: Token | None = None,
        consistent_read: bool = False,
    ) -> Page:
        expression, names, values = key_condition_expression(
            hash_field, hash_value, range_condition
        )
        params: dict[str, Any] = {
            "TableName": self._table(table),
            "KeyConditionExpression": expression,
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
        }
        if index_name is not None:
            params["IndexName"] = index_name
        else:
            params["ConsistentRead"] = consistent_read
        if limit is not None:
            params["Limit"] = limit
        if start_token is not None:
            params["ExclusiveStartKey"] = dict(start_token)

        resp = await self._invoke("query", self._client.query, **params)
        return Page(
            items=[deserialize_item(i) for i in resp.get("Items", [])],
            next_token=resp.get("LastEvaluatedKey"),
        )

    async def scan(
        self,
        table: str,
        *,
        limit: int | None = None,
        start_token: Token | None = None,
        consistent_read: bool = False,
    ) -> Page:
        params: dict[str, Any] = {
            "TableName": self._table(table),
            "ConsistentRead": consistent_read,
        }
        if limit is not None:
            params["Limit"] = limit
        if start_token is not None:
            params["ExclusiveStartKey"] = dict(start_token)

        resp = await self._invoke("scan", self._client.scan, **params)
        return Page(
            items=[deserialize_item(i) for i in resp.get("Items", [])],
            next_token=resp.get("LastEvaluatedKey"),
        )

    async def put_item(self, table: str, item: Item, *, unless_exists: str | None = None) -> None:
        params: dict[str, Any] = {
            "TableName": self._table(table),
            "Item": serialize_item(item),
        }
        if unless_exists is not None:
            params["ConditionExpression"] = "attribute_not_exists(#k)"
            params["ExpressionAttributeNames"] = {"#k": unless_exists}
        await self._invoke("put_item", self._client.put_item, **params)

    async def batch_write_item(
        self, table: str, requests: Sequence[WriteRequest]
    ) -> BatchWriteResult:
        name = self._table(table)
        wire: list[dict[str, Any]] = []
        for request in requests:
            if request.kind == "put":
                assert request.item is not None
                wire.append({"PutRequest": {"Item": serialize_item(request.item)}})
            else:
                assert request.key is not None
                wire.append({"DeleteRequest": {"Key": serialize_item(request.key)}})

        resp = await self._invoke(
            "batch_write_item",
            self._client.batch_write_item,
            RequestItems={name: wire},
        )
        unprocessed_wire = resp.get("UnprocessedItems", {}).get(name, [])
        return BatchWriteResult(unprocessed=_match_wire(requests, wire, unprocessed_wire))

    async def delete_item(self, table: str, key: Key) -> Item | None:
        resp = await self._invoke(
            "delete_item",
            self._client.delete_item,
            TableName=self._table(table),
            Key=serialize_item(key),
            ReturnValues="ALL_OLD",
        )
        raw = resp.get("Attributes")
        return deserialize_item(raw) if raw else None


def _match_wire(
    requests: Sequence[WriteRequest],
    wire: list[dict[str, Any]],
    unprocessed_wire: list[dict[str, Any]],
) -> list[WriteRequest]:
    """Map unprocessed wire entries back to the caller's WriteRequest objects."""
    remaining = list(zip(wire, requests))
    unprocessed: list[WriteRequest] = []
    for entry in unprocessed_wire:
        for pos, (sent, request) in enumerate(remaining):
            if sent == entry:
                unprocessed.append(request)
                del remaining[pos]
                break
    return unprocessed
