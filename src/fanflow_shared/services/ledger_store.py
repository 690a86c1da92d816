"""Operations the pipeline needs from the external ledger store."""

from typing import Protocol

from fanflow_shared.models import (
    AuditLogCreate,
    AuditLogRecord,
    LedgerEntry,
    LedgerEntryCreate,
    LedgerEntryUpdate,
)


class LedgerStore(Protocol):
    """Ledger and audit-log persistence (Xano in production).

    Implementations raise on transport or API errors. The create path must
    be safe under concurrent deliveries of the same idempotency key (for
    example a unique constraint on ``idempotency_key``).
    """

    def find_by_idempotency_key(self, key: str) -> LedgerEntry | None: ...

    def get_ledger_entry(self, entry_id: int) -> LedgerEntry | None: ...

    def create_ledger_entry(self, entry: LedgerEntryCreate) -> LedgerEntry: ...

    def update_ledger_entry(self, entry_id: int, patch: LedgerEntryUpdate) -> LedgerEntry: ...

    def append_audit_log(self, record: AuditLogCreate) -> AuditLogRecord: ...

    def list_audit_logs(self) -> list[AuditLogRecord]: ...
