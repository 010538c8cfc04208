"""DynamoDB-backed index store (boto3).

Table layout::

    primary key   p (S, HASH) + s (B, RANGE)
    keys-index    GSI on k (S), KEYS_ONLY, used to find a document's postings
    hash-index    LSI on p + h (B), KEYS_ONLY

boto3 clients are synchronous; each call runs in a worker thread so the
engines stay on the event loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from decimal import Decimal
import logging
from typing import Any

import boto3
from boto3.dynamodb.types import Binary, TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError

from kvsearch.adapters.index_store import AbstractIndexStore, Item, ItemRead, QueryPage, validate_batch
from kvsearch.errors import ResourceInUseError, ResourceNotFoundError, StoreError
from kvsearch.search.records import (
    ATTR_HASH,
    ATTR_KEYS,
    ATTR_PK,
    ATTR_SK,
    INDEX_HASH,
    INDEX_KEYS,
)


logger = logging.getLogger(__name__)

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()

_MAX_UNPROCESSED_RETRIES = 5
_UNPROCESSED_BASE_DELAY_SECONDS = 0.05


def _plain(value: Any) -> Any:
    if isinstance(value, Binary):
        return bytes(value.value)
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


def serialize_item(item: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Plain item -> DynamoDB typed attribute map."""
    return {name: _serializer.serialize(value) for name, value in item.items()}


def deserialize_item(item: Mapping[str, Mapping[str, Any]]) -> Item:
    """DynamoDB typed attribute map -> plain item (Decimal as int, Binary as bytes)."""
    return {name: _plain(_deserializer.deserialize(value)) for name, value in item.items()}


def _consumed(response: Mapping[str, Any]) -> float:
    return float(response.get("ConsumedCapacity", {}).get("CapacityUnits", 0.0))


class DynamoDBIndexStore(AbstractIndexStore):
    """Index table stored in Amazon DynamoDB (or DynamoDB Local)."""

    def __init__(
        self,
        table_name: str,
        *,
        client: Any | None = None,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        max_unprocessed_retries: int = _MAX_UNPROCESSED_RETRIES,
    ) -> None:
        self.table_name = table_name
        self.client = client or boto3.client("dynamodb", endpoint_url=endpoint_url, region_name=region_name)
        self.max_unprocessed_retries = max_unprocessed_retries

    async def _call(self, operation: str, **params: Any) -> dict[str, Any]:
        method = getattr(self.client, operation)
        try:
            return await asyncio.to_thread(method, **params)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code == "ResourceInUseException":
                raise ResourceInUseError(f"Table already exists: {self.table_name}") from exc
            if code == "ResourceNotFoundException":
                raise ResourceNotFoundError(f"Table not found: {self.table_name}") from exc
            raise

    # ------------------------------------------------------------------
    # Table lifecycle
    # ------------------------------------------------------------------

    def table_definition(self, **table_properties: Any) -> dict[str, Any]:
        definition: dict[str, Any] = {
            "TableName": self.table_name,
            "AttributeDefinitions": [
                {"AttributeName": ATTR_PK, "AttributeType": "S"},
                {"AttributeName": ATTR_SK, "AttributeType": "B"},
                {"AttributeName": ATTR_KEYS, "AttributeType": "S"},
                {"AttributeName": ATTR_HASH, "AttributeType": "B"},
            ],
            "KeySchema": [
                {"AttributeName": ATTR_PK, "KeyType": "HASH"},
                {"AttributeName": ATTR_SK, "KeyType": "RANGE"},
            ],
            "GlobalSecondaryIndexes": [
                {
                    "IndexName": INDEX_KEYS,
                    "KeySchema": [{"AttributeName": ATTR_KEYS, "KeyType": "HASH"}],
                    "Projection": {"ProjectionType": "KEYS_ONLY"},
                }
            ],
            "LocalSecondaryIndexes": [
                {
                    "IndexName": INDEX_HASH,
                    "KeySchema": [
                        {"AttributeName": ATTR_PK, "KeyType": "HASH"},
                        {"AttributeName": ATTR_HASH, "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "KEYS_ONLY"},
                }
            ],
            "BillingMode": "PAY_PER_REQUEST",
        }
        definition.update(table_properties)
        return definition

    async def create_table(self, *, if_not_exists: bool = False, wait: bool = True, **table_properties: Any) -> None:
        try:
            await self._call("create_table", **self.table_definition(**table_properties))
        except ResourceInUseError:
            if if_not_exists:
                return
            raise
        logger.info("Created DynamoDB index table %s", self.table_name)
        if wait:
            waiter = self.client.get_waiter("table_exists")
            await asyncio.to_thread(waiter.wait, TableName=self.table_name)

    async def delete_table(self, *, if_exists: bool = False) -> None:
        try:
            await self._call("delete_table", TableName=self.table_name)
        except ResourceNotFoundError:
            if if_exists:
                return
            raise
        logger.info("Deleted DynamoDB index table %s", self.table_name)

    # ------------------------------------------------------------------
    # Item operations
    # ------------------------------------------------------------------

    async def batch_write(self, puts: Sequence[Item] = (), deletes: Sequence[Item] = ()) -> None:
        validate_batch(puts, deletes)
        requests: list[dict[str, Any]] = [{"PutRequest": {"Item": serialize_item(item)}} for item in puts]
        requests.extend(
            {"DeleteRequest": {"Key": serialize_item({ATTR_PK: item[ATTR_PK], ATTR_SK: item[ATTR_SK]})}}
            for item in deletes
        )
        if not requests:
            return

        pending: dict[str, list[dict[str, Any]]] = {self.table_name: requests}
        for attempt in range(self.max_unprocessed_retries + 1):
            response = await self._call("batch_write_item", RequestItems=pending)
            pending = {name: items for name, items in (response.get("UnprocessedItems") or {}).items() if items}
            if not pending:
                return
            if attempt == self.max_unprocessed_retries:
                break
            remaining = sum(len(items) for items in pending.values())
            logger.debug(
                "batch_write_item left %d unprocessed requests (attempt %d/%d)",
                remaining,
                attempt + 1,
                self.max_unprocessed_retries + 1,
            )
            await asyncio.sleep(_UNPROCESSED_BASE_DELAY_SECONDS * (2**attempt))

        remaining = sum(len(items) for items in pending.values())
        raise StoreError(f"{remaining} write requests still unprocessed after {self.max_unprocessed_retries} retries")

    async def query(
        self,
        partition: str,
        *,
        descending: bool = True,
        limit: int | None = None,
        exclusive_start_key: Item | None = None,
    ) -> QueryPage:
        params: dict[str, Any] = {
            "TableName": self.table_name,
            "KeyConditionExpression": "#pk = :pk",
            "ExpressionAttributeNames": {"#pk": ATTR_PK},
            "ExpressionAttributeValues": {":pk": {"S": partition}},
            "ScanIndexForward": not descending,
            "ReturnConsumedCapacity": "TOTAL",
        }
        if limit:
            params["Limit"] = limit
        if exclusive_start_key is not None:
            params["ExclusiveStartKey"] = serialize_item(exclusive_start_key)
        response = await self._call("query", **params)
        return self._page(response)

    async def query_document_keys(
        self,
        encoded_key: str,
        *,
        exclusive_start_key: Item | None = None,
    ) -> QueryPage:
        params: dict[str, Any] = {
            "TableName": self.table_name,
            "IndexName": INDEX_KEYS,
            "KeyConditionExpression": "#keys = :keys",
            "ProjectionExpression": "#pk, #sk",
            "ExpressionAttributeNames": {"#pk": ATTR_PK, "#sk": ATTR_SK, "#keys": ATTR_KEYS},
            "ExpressionAttributeValues": {":keys": {"S": encoded_key}},
            "ReturnConsumedCapacity": "TOTAL",
        }
        if exclusive_start_key is not None:
            params["ExclusiveStartKey"] = serialize_item(exclusive_start_key)
        response = await self._call("query", **params)
        return self._page(response)

    @staticmethod
    def _page(response: Mapping[str, Any]) -> QueryPage:
        last_key = response.get("LastEvaluatedKey")
        return QueryPage(
            items=[deserialize_item(item) for item in response.get("Items", [])],
            last_evaluated_key=deserialize_item(last_key) if last_key else None,
            consumed_capacity=_consumed(response),
        )

    async def get_item(self, key: Item) -> ItemRead:
        response = await self._call(
            "get_item",
            TableName=self.table_name,
            Key=serialize_item({ATTR_PK: key[ATTR_PK], ATTR_SK: key[ATTR_SK]}),
            ReturnConsumedCapacity="TOTAL",
        )
        item = response.get("Item")
        return ItemRead(item=deserialize_item(item) if item else None, consumed_capacity=_consumed(response))

    async def increment(self, key: Item, deltas: Mapping[str, int]) -> None:
        if not deltas:
            return
        expressions: list[str] = []
        names: dict[str, str] = {}
        values: dict[str, dict[str, str]] = {":zero": {"N": "0"}}
        for index, (name, delta) in enumerate(deltas.items()):
            expressions.append(f"#attr{index} = if_not_exists(#attr{index}, :zero) + :val{index}")
            names[f"#attr{index}"] = name
            values[f":val{index}"] = {"N": str(int(delta))}
        await self._call(
            "update_item",
            TableName=self.table_name,
            Key=serialize_item({ATTR_PK: key[ATTR_PK], ATTR_SK: key[ATTR_SK]}),
            UpdateExpression="SET " + ", ".join(expressions),
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
        )

    async def scan(self) -> list[Item]:
        items: list[Item] = []
        params: dict[str, Any] = {"TableName": self.table_name}
        while True:
            response = await self._call("scan", **params)
            items.extend(deserialize_item(item) for item in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            params["ExclusiveStartKey"] = last_key
