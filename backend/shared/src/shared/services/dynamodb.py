"""DynamoDB access for the payments, plantations and provider-events tables.

Every state change in reconciliation is a conditional write. The condition
is evaluated atomically with the write, so two paths racing on one record
cannot both apply; `update_item` reports which of them lost and whether the
record was still there.
"""

import os
from dataclasses import dataclass
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

CONDITION_FAILED = "ConditionalCheckFailedException"

# Module-level singleton for connection reuse across Lambda invocations
_dynamodb_service_instance: "DynamoDBService | None" = None


def get_dynamodb_service(environment: str | None = None) -> "DynamoDBService":
    """Get or create the shared DynamoDBService (environment used on first call only)."""
    global _dynamodb_service_instance
    if _dynamodb_service_instance is None:
        _dynamodb_service_instance = DynamoDBService(environment)
    return _dynamodb_service_instance


def reset_dynamodb_service() -> None:
    """Drop the shared instance so tests can rebuild it inside mock_aws."""
    global _dynamodb_service_instance
    _dynamodb_service_instance = None


@dataclass(frozen=True)
class ConditionalWrite:
    """Outcome of a conditional update.

    `item` is the record after the write when it applied, and the record as
    it currently stands when the condition failed (None if it does not exist).
    """

    applied: bool
    item: dict[str, Any] | None

    @property
    def missing(self) -> bool:
        return not self.applied and self.item is None


class DynamoDBService:
    """Table-prefixed access to the reconciliation tables."""

    def __init__(self, environment: str | None = None) -> None:
        self.environment = environment or os.getenv("ENVIRONMENT", "dev")
        self.name_prefix = os.getenv(
            "DYNAMODB_TABLE_PREFIX", f"agricapital-{self.environment}"
        )
        self._dynamodb = boto3.resource("dynamodb")

    def _table(self, table: str) -> Any:
        return self._dynamodb.Table(f"{self.name_prefix}-{table}")

    def get_item(self, table: str, key: dict[str, Any]) -> dict[str, Any] | None:
        """Strongly consistent read of one item, or None if absent.

        Conditional writes are decided against the latest value, so reads
        that feed them must not be stale.
        """
        response = self._table(table).get_item(Key=key, ConsistentRead=True)
        item: dict[str, Any] | None = response.get("Item")
        return item

    def put_item(
        self,
        table: str,
        item: dict[str, Any],
        condition_expression: str | None = None,
    ) -> bool:
        """Write an item; False if the condition failed.

        Raises:
            ClientError: Any other storage error
        """
        kwargs: dict[str, Any] = {"Item": item}
        if condition_expression:
            kwargs["ConditionExpression"] = condition_expression
        try:
            self._table(table).put_item(**kwargs)
        except ClientError as e:
            if e.response["Error"]["Code"] == CONDITION_FAILED:
                return False
            raise
        return True

    def update_item(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any],
        expression_attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> ConditionalWrite:
        """Apply an update expression, optionally guarded by a condition.

        Args:
            table: Table name without prefix
            key: Primary key dict
            update_expression: DynamoDB update expression
            expression_attribute_values: Values for the expressions
            expression_attribute_names: Placeholders for reserved attribute names
            condition_expression: Guard evaluated atomically with the write

        Returns:
            ConditionalWrite with the new image, or with the current image
            (re-read consistently) when the condition failed

        Raises:
            ClientError: Any storage error other than a failed condition
        """
        kwargs: dict[str, Any] = {
            "Key": key,
            "UpdateExpression": update_expression,
            "ExpressionAttributeValues": expression_attribute_values,
            "ReturnValues": "ALL_NEW",
        }
        if expression_attribute_names:
            kwargs["ExpressionAttributeNames"] = expression_attribute_names
        if condition_expression:
            kwargs["ConditionExpression"] = condition_expression

        try:
            response = self._table(table).update_item(**kwargs)
        except ClientError as e:
            if e.response["Error"]["Code"] != CONDITION_FAILED:
                raise
            return ConditionalWrite(applied=False, item=self.get_item(table, key))
        return ConditionalWrite(applied=True, item=response.get("Attributes"))

    def query_by_gsi(
        self,
        table: str,
        index_name: str,
        partition_key_name: str,
        partition_key_value: str,
    ) -> list[dict[str, Any]]:
        """Items of a sparse GSI under one partition key.

        GSI reads are eventually consistent; callers re-read the base item by
        primary key before acting on it.
        """
        response = self._table(table).query(
            IndexName=index_name,
            KeyConditionExpression=Key(partition_key_name).eq(partition_key_value),
        )
        items: list[dict[str, Any]] = response.get("Items", [])
        return items
