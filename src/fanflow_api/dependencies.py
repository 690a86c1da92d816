"""FastAPI dependency injection providers for shared services.

This module provides factory functions for service instances using @lru_cache
to ensure singleton behavior per process. Services are lazily instantiated
and cached, so a warm Lambda container reuses its HTTP client and cache.

Usage in routes:
    from fanflow_api.dependencies import get_webhook_handler

    @router.post("/webhook")
    async def receive_webhook(
        handler: WebhookIngestionHandler = Depends(get_webhook_handler),
    ):
        ...

Service Dependency Graph:
    WebhookSettings (singleton via get_webhook_settings)
        ├── XanoClient (LedgerStore)
        │       ├── ReconciliationExecutor
        │       └── PaymentUpdateService
        ├── IdempotencyCache (memory or DynamoDB)
        │       └── IdempotencyLedger (with XanoClient)
        └── WebhookIngestionHandler

Testing:
    Use reset_services() to clear cached instances between tests, or
    override get_ledger_store / get_idempotency_cache via
    app.dependency_overrides.
"""

from datetime import timedelta
from functools import lru_cache

from fastapi import Depends

from fanflow_shared.config import WebhookSettings, get_webhook_settings
from fanflow_shared.services.dynamodb import get_dynamodb_service
from fanflow_shared.services.idempotency import (
    DynamoDBIdempotencyCache,
    IdempotencyCache,
    IdempotencyLedger,
    InMemoryIdempotencyCache,
)
from fanflow_shared.services.ledger_store import LedgerStore
from fanflow_shared.services.payment_update import PaymentUpdateService
from fanflow_shared.services.reconciliation import ReconciliationExecutor
from fanflow_shared.services.ssm_service import resolve_webhook_secret
from fanflow_shared.services.webhook_handler import WebhookIngestionHandler
from fanflow_shared.services.xano_client import XanoClient


def get_settings() -> WebhookSettings:
    """Get the process-wide WebhookSettings."""
    return get_webhook_settings()


@lru_cache
def _xano_client() -> XanoClient:
    settings = get_webhook_settings()
    return XanoClient(settings.xano_api_url, timeout=settings.xano_timeout_seconds)


def get_ledger_store() -> LedgerStore:
    """Get cached ledger store (Xano client).

    Returns:
        XanoClient configured from XANO_API_URL.
    """
    return _xano_client()


@lru_cache
def _idempotency_cache() -> IdempotencyCache:
    settings = get_webhook_settings()
    if settings.idempotency_cache_backend == "dynamodb":
        return DynamoDBIdempotencyCache(
            db=get_dynamodb_service(settings.environment),
            ttl_seconds=settings.idempotency_cache_ttl_seconds,
        )
    return InMemoryIdempotencyCache(ttl_seconds=settings.idempotency_cache_ttl_seconds)


def get_idempotency_cache() -> IdempotencyCache:
    """Get cached idempotency cache for the configured backend.

    Returns:
        InMemoryIdempotencyCache or DynamoDBIdempotencyCache.
    """
    return _idempotency_cache()


def get_webhook_handler(
    settings: WebhookSettings = Depends(get_settings),
    store: LedgerStore = Depends(get_ledger_store),
    cache: IdempotencyCache = Depends(get_idempotency_cache),
) -> WebhookIngestionHandler:
    """Build the ingestion handler over the cached collaborators.

    The handler itself is stateless; all process-wide state lives in the
    cache and store it is given.
    """
    return WebhookIngestionHandler(
        idempotency=IdempotencyLedger(cache, store),
        executor=ReconciliationExecutor(store, default_agency_id=settings.default_agency_id),
        secret_provider=lambda: resolve_webhook_secret(settings),
        replay_window=timedelta(seconds=settings.replay_window_seconds),
        retry_attempts=settings.retry_attempts,
        retry_initial_delay=settings.retry_initial_delay_seconds,
    )


def get_payment_update_service(
    store: LedgerStore = Depends(get_ledger_store),
) -> PaymentUpdateService:
    """Get PaymentUpdateService over the ledger store."""
    return PaymentUpdateService(store)


def reset_services() -> None:
    """Clear all cached service instances.

    Call this in test fixtures to ensure clean state between tests.
    Also resets the settings and the underlying DynamoDB singleton.

    Example:
        @pytest.fixture(autouse=True)
        def reset_state():
            yield
            reset_services()
    """
    from fanflow_shared.services.dynamodb import reset_dynamodb_service
    from fanflow_shared.services.ssm_service import get_ssm_service

    if _xano_client.cache_info().currsize:
        _xano_client().close()
    _xano_client.cache_clear()
    _idempotency_cache.cache_clear()
    get_webhook_settings.cache_clear()
    get_ssm_service.cache_clear()

    reset_dynamodb_service()
