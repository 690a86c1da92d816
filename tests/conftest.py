"""Pytest configuration and fixtures for the FanFlow webhook service tests.

This module provides reusable fixtures for testing:
- Environment and AWS credential setup for moto
- In-memory ledger store and idempotency cache
- A FastAPI TestClient wired to those collaborators
"""

import os
from datetime import timedelta
from typing import Any, Generator

import boto3
import pytest
from fastapi.testclient import TestClient
from moto import mock_aws

from fakes import TEST_WEBHOOK_SECRET, InMemoryLedgerStore, SleepRecorder

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ["DYNAMODB_TABLE_PREFIX"] = "test-fanflow"
os.environ["THIRDWEB_WEBHOOK_SECRET"] = TEST_WEBHOOK_SECRET
os.environ["XANO_API_URL"] = "https://xano.test/api:fanflow"

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")


# === Service Singletons ===


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset cached services and settings before and after each test.

    This ensures tests using mock_aws get fresh boto3 clients inside
    the mock context, and tests changing the environment see new settings.
    """
    from fanflow_api.dependencies import reset_services
    from fanflow_shared.services.ssm_service import SSMService

    reset_services()
    SSMService.clear_cache()
    yield
    reset_services()
    SSMService.clear_cache()


# === AWS Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def idempotency_table(aws_credentials: None) -> Generator[Any, None, None]:
    """Create the mocked DynamoDB idempotency cache table."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        client.create_table(
            TableName="test-fanflow-webhook-idempotency",
            KeySchema=[{"AttributeName": "event_id", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "event_id", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )
        yield boto3.resource("dynamodb", region_name="eu-west-1").Table(
            "test-fanflow-webhook-idempotency"
        )


# === Pipeline Fixtures ===


@pytest.fixture
def ledger_store() -> InMemoryLedgerStore:
    """Empty in-memory ledger store."""
    return InMemoryLedgerStore()


@pytest.fixture
def idempotency_cache() -> Any:
    """In-process idempotency cache with the default TTL."""
    from fanflow_shared.services.idempotency import InMemoryIdempotencyCache

    return InMemoryIdempotencyCache()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    """Records retry backoff delays instead of sleeping."""
    return SleepRecorder()


@pytest.fixture
def webhook_handler(
    ledger_store: InMemoryLedgerStore,
    idempotency_cache: Any,
    sleep_recorder: SleepRecorder,
) -> Any:
    """Ingestion handler over the in-memory collaborators."""
    from fanflow_shared.services.idempotency import IdempotencyLedger
    from fanflow_shared.services.reconciliation import ReconciliationExecutor
    from fanflow_shared.services.webhook_handler import WebhookIngestionHandler

    return WebhookIngestionHandler(
        idempotency=IdempotencyLedger(idempotency_cache, ledger_store),
        executor=ReconciliationExecutor(ledger_store, default_agency_id=1),
        secret_provider=lambda: TEST_WEBHOOK_SECRET,
        replay_window=timedelta(minutes=5),
        sleep=sleep_recorder,
    )


@pytest.fixture
def client(
    ledger_store: InMemoryLedgerStore,
    webhook_handler: Any,
) -> Generator[TestClient, None, None]:
    """TestClient with the ledger store and handler overridden."""
    from fanflow_api.dependencies import get_ledger_store, get_webhook_handler
    from fanflow_api.main import app

    app.dependency_overrides[get_ledger_store] = lambda: ledger_store
    app.dependency_overrides[get_webhook_handler] = lambda: webhook_handler
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
