"""Xano API client for the ledger (ff_transaction) and audit log (ff_webhook_event).

Server-side only: the Xano base URL grants write access to the ledger.
"""

import logging
import os
from typing import Any

import httpx

from fanflow_shared.models import (
    AuditLogCreate,
    AuditLogRecord,
    LedgerEntry,
    LedgerEntryCreate,
    LedgerEntryUpdate,
)

logger = logging.getLogger(__name__)


class XanoClientError(Exception):
    """Raised when a Xano API call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize with message and optional HTTP status.

        Args:
            message: Human-readable error message.
            status_code: HTTP status returned by Xano, None for network errors.
        """
        super().__init__(message)
        self.status_code = status_code


class XanoClient:
    """Ledger store backed by the Xano REST API.

    Usage:
        xano = XanoClient(base_url="https://x123.xano.io/api:abc")
        entry = xano.find_by_idempotency_key("evt_123")
    """

    TRANSACTIONS_PATH = "/ff_transaction"
    WEBHOOK_EVENTS_PATH = "/ff_webhook_event"

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            base_url: Xano API group URL. Defaults to XANO_API_URL env var.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests use httpx.MockTransport).

        Raises:
            XanoClientError: If no base URL is configured.
        """
        base_url = base_url or os.environ.get("XANO_API_URL")
        if not base_url:
            raise XanoClientError("Missing XANO_API_URL environment variable")

        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "XanoClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = self._client.request(method, path, params=params, json=json_body)
        except httpx.HTTPError as e:
            logger.error("Xano client error on %s %s: %s", method, path, e)
            raise XanoClientError(f"Network Error: {e}") from e

        if response.is_error:
            logger.error("Xano API error [%d] on %s %s: %s", response.status_code, method, path, response.text)
            raise XanoClientError(
                f"API Error: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        return response.json()

    # === Ledger entries ===

    def find_by_idempotency_key(self, key: str) -> LedgerEntry | None:
        """Find the ledger entry created for an idempotency key.

        Xano returns either a list or a single record for filtered queries;
        results are re-checked against the key in both cases.
        """
        data = self._request("GET", self.TRANSACTIONS_PATH, params={"idempotency_key": key})
        candidates = data if isinstance(data, list) else [data] if isinstance(data, dict) else []
        for item in candidates:
            if item.get("idempotency_key") == key:
                return LedgerEntry.model_validate(item)
        return None

    def get_ledger_entry(self, entry_id: int) -> LedgerEntry | None:
        try:
            data = self._request("GET", f"{self.TRANSACTIONS_PATH}/{entry_id}")
        except XanoClientError as e:
            if e.status_code == 404:
                return None
            raise
        return LedgerEntry.model_validate(data) if data else None

    def create_ledger_entry(self, entry: LedgerEntryCreate) -> LedgerEntry:
        """Create a ledger entry; ``net_amount`` is already ``amount - fee``."""
        data = self._request(
            "POST",
            self.TRANSACTIONS_PATH,
            json_body=entry.model_dump(mode="json", exclude_none=True),
        )
        return LedgerEntry.model_validate(data)

    def update_ledger_entry(self, entry_id: int, patch: LedgerEntryUpdate) -> LedgerEntry:
        """Patch a ledger entry, recomputing ``net_amount`` when amount or fee change."""
        body = patch.model_dump(mode="json", exclude_none=True)

        if patch.amount is not None or patch.fee is not None:
            current = self.get_ledger_entry(entry_id)
            if current is not None:
                amount = patch.amount if patch.amount is not None else current.amount
                fee = patch.fee if patch.fee is not None else current.fee
                body["net_amount"] = float(amount - fee)

        data = self._request("PATCH", f"{self.TRANSACTIONS_PATH}/{entry_id}", json_body=body)
        return LedgerEntry.model_validate(data)

    # === Audit log ===

    def append_audit_log(self, record: AuditLogCreate) -> AuditLogRecord:
        data = self._request(
            "POST",
            self.WEBHOOK_EVENTS_PATH,
            json_body=record.model_dump(mode="json", exclude_none=True),
        )
        return AuditLogRecord.model_validate(data)

    def list_audit_logs(self) -> list[AuditLogRecord]:
        data = self._request("GET", self.WEBHOOK_EVENTS_PATH)
        return [AuditLogRecord.model_validate(item) for item in data or []]
