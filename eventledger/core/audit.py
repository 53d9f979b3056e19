"""Audit log for admin actions on events and balances."""

from typing import Any

from eventledger.models.audit_log import AuditLog
from eventledger.storage.base import DocumentStore


async def log_event(
    store: DocumentStore,
    actor_id: str | None,
    event_type: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Append to audit_logs collection."""
    await store.insert_audit_log(
        AuditLog(
            actor_id=actor_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata or {},
        )
    )
