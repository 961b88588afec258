"""Audit sinks -- fire-and-forget recording of billing actions.

Audit-log storage is an external collaborator.  Services hand entries to an
``AuditSink``; ``emit_audit`` makes the hand-off fire-and-forget, so a broken
sink is logged but never fails a billing run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from windpark_kernel.logging_config import get_logger

logger = get_logger("services.audit")


@dataclass(frozen=True)
class AuditEntry:
    """One recorded action."""

    tenant_id: UUID
    action: str
    entity_type: str
    entity_id: UUID
    actor_id: UUID | None
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class AuditSink(Protocol):
    """Receives audit entries."""

    def record(self, entry: AuditEntry) -> None:
        ...


class LoggingAuditSink:
    """AuditSink that writes entries to the structured log."""

    def record(self, entry: AuditEntry) -> None:
        logger.info(
            "audit_recorded",
            extra={
                "audit_action": entry.action,
                "entity_type": entry.entity_type,
                "entity_id": str(entry.entity_id),
                "audit_tenant_id": str(entry.tenant_id),
                "audit_actor_id": str(entry.actor_id) if entry.actor_id else None,
                "occurred_at": entry.occurred_at,
                "payload": entry.payload,
            },
        )


class InMemoryAuditSink:
    """AuditSink that keeps entries in a list."""

    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    def record(self, entry: AuditEntry) -> None:
        self.entries.append(entry)

    def actions(self) -> list[str]:
        return [e.action for e in self.entries]


def emit_audit(sink: AuditSink | None, entry: AuditEntry) -> None:
    """Hand an entry to the sink; sink failures are logged, never raised."""
    if sink is None:
        return
    try:
        sink.record(entry)
    except Exception:
        logger.exception(
            "audit_sink_failed",
            extra={"audit_action": entry.action, "entity_id": str(entry.entity_id)},
        )
