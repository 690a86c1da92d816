"""DynamoDB access for the shared idempotency cache.

Table names are ``{DYNAMODB_TABLE_PREFIX}-{table}``; the prefix defaults to
``fanflow-{ENVIRONMENT}``.
"""

import os
from typing import Any

import boto3

# Reused across warm Lambda invocations
_dynamodb_service_instance: "DynamoDBService | None" = None


def get_dynamodb_service(environment: str | None = None) -> "DynamoDBService":
    """Get the process-wide DynamoDBService; ``environment`` only applies on first call."""
    global _dynamodb_service_instance
    if _dynamodb_service_instance is None:
        _dynamodb_service_instance = DynamoDBService(environment)
    return _dynamodb_service_instance


def reset_dynamodb_service() -> None:
    """Drop the shared instance so the next call builds a fresh boto3 resource."""
    global _dynamodb_service_instance
    _dynamodb_service_instance = None


class DynamoDBService:
    """Key-value operations on prefixed tables."""

    def __init__(self, environment: str | None = None) -> None:
        self.environment = environment or os.getenv("ENVIRONMENT", "dev")
        self.name_prefix = os.getenv("DYNAMODB_TABLE_PREFIX", f"fanflow-{self.environment}")
        self._resource = boto3.resource("dynamodb")

    def table_name(self, table: str) -> str:
        return f"{self.name_prefix}-{table}"

    def get_item(self, table: str, key: dict[str, Any]) -> dict[str, Any] | None:
        """Strongly consistent read of one item; None when absent."""
        response = self._resource.Table(self.table_name(table)).get_item(
            Key=key, ConsistentRead=True
        )
        item: dict[str, Any] | None = response.get("Item")
        return item

    def put_item(self, table: str, item: dict[str, Any]) -> None:
        """Write an item, replacing any existing item with the same key."""
        self._resource.Table(self.table_name(table)).put_item(Item=item)

    def delete_item(self, table: str, key: dict[str, Any]) -> None:
        """Delete an item; deleting a missing key is not an error."""
        self._resource.Table(self.table_name(table)).delete_item(Key=key)
