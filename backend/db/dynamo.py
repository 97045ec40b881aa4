"""DynamoDB-backed :class:`~backend.db.store.ItemStore`.

Table layout: partition key ``pk`` (S), sort key ``sk`` (S).  Everything else
is stored as ordinary attributes.  Enable with ``STORAGE_BACKEND=dynamodb``
and ``TABLE_NAME=<table>``; credentials come from the usual boto3 chain.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from backend.db.errors import StorageError
from backend.db.store import Item, ItemStore, _require_keys

logger = logging.getLogger(__name__)


def _to_dynamo(value: Any) -> Any:
    """boto3 rejects float; store it as Decimal."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_dynamo(v) for v in value]
    return value


def _plain(value: Any) -> Any:
    """Convert boto3's Decimal numbers back to int/float, recursively."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


class DynamoItemStore(ItemStore):
    """Items in a single DynamoDB table."""

    def __init__(self, table_name: str, region: Optional[str] = None, table: Any = None) -> None:
        self.table_name = table_name
        self.table = table if table is not None else (
            boto3.resource("dynamodb", region_name=region).Table(table_name)
        )

    def put_item(self, item: Item) -> None:
        _require_keys(item)
        try:
            self.table.put_item(Item=_to_dynamo(item))
        except (BotoCoreError, ClientError) as exc:
            logger.error("dynamo.put_failed", extra={"sk": item.get("sk"), "error": str(exc)})
            raise StorageError(f"failed to write item {item['sk']!r}: {exc}") from exc

    def get_item(self, pk: str, sk: str) -> Optional[Item]:
        try:
            out = self.table.get_item(Key={"pk": pk, "sk": sk})
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"failed to read item {sk!r}: {exc}") from exc
        item = out.get("Item")
        return _plain(item) if item is not None else None

    def delete_item(self, pk: str, sk: str) -> None:
        try:
            self.table.delete_item(Key={"pk": pk, "sk": sk})
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"failed to delete item {sk!r}: {exc}") from exc

    def query(self, pk: str) -> list[Item]:
        items: list[Item] = []
        kwargs: dict[str, Any] = {"KeyConditionExpression": Key("pk").eq(pk)}
        try:
            while True:
                out = self.table.query(**kwargs)
                items.extend(out.get("Items", []))
                start = out.get("LastEvaluatedKey")
                if not start:
                    break
                kwargs["ExclusiveStartKey"] = start
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"failed to query partition {pk!r}: {exc}") from exc
        return sorted((_plain(i) for i in items), key=lambda i: i["sk"])

    def scan_prefix(self, sk_prefix: str) -> list[Item]:
        items: list[Item] = []
        kwargs: dict[str, Any] = {"FilterExpression": Attr("sk").begins_with(sk_prefix)}
        try:
            while True:
                out = self.table.scan(**kwargs)
                items.extend(out.get("Items", []))
                start = out.get("LastEvaluatedKey")
                if not start:
                    break
                kwargs["ExclusiveStartKey"] = start
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"failed to scan {sk_prefix!r}: {exc}") from exc
        return sorted((_plain(i) for i in items), key=lambda i: (i["pk"], i["sk"]))
