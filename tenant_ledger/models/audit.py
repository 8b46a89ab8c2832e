"""
Audit Models for the Ledger

Every ledger mutation and every security-relevant refusal is logged.
This provides:
1. Traceability of who changed which balance and when
2. Debugging information when a recomputation or cascade misbehaves
3. A record of non-fatal anomalies (missing transfer counterparts)

DESIGN DECISION: Audit logs are append-only and tenant-scoped.
We never delete or modify them, and a tenant only ever reads its own.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from tenant_ledger.services.storage.interface import MonotonicClock


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Entity lifecycle
    ENTITY_CREATED = "entity_created"
    ENTITY_UPDATED = "entity_updated"
    ENTITY_DELETED = "entity_deleted"
    CASCADE_DELETED = "cascade_deleted"

    # Transactions
    TRANSFER_CREATED = "transfer_created"
    LINKED_TRANSACTION_MISSING = "linked_transaction_missing"

    # Balances
    BALANCE_RECOMPUTED = "balance_recomputed"

    # Tenant isolation
    PROTECTED_FIELDS_STRIPPED = "protected_fields_stripped"
    AUTHORIZATION_DENIED = "authorization_denied"
    TENANT_INITIALIZED = "tenant_initialized"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# Events of one process never share a timestamp, so the trail sorts stably
_clock = MonotonicClock()


def _utcnow() -> datetime:
    return _clock.now()


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Whose data this is about; None only for events with no valid tenant
    tenant_id: Optional[str] = Field(
        default=None,
        description="Tenant the event belongs to"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'sub_account', 'transaction')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one cascade)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "tenant_id": self.tenant_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_document(self) -> dict:
        """
        Convert to a document for the audit_log collection.

        The document id is the event id.
        """
        document = self.to_log_dict()
        document["id"] = document.pop("event_id")
        document["timestamp"] = self.timestamp
        return document


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entity_created(tenant_id, "account", account_id)
        event = AuditEventBuilder.balance_recomputed(tenant_id, "sub_account", sub_id, balance)
    """

    @staticmethod
    def entity_created(
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_CREATED,
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type} created",
            details=details or {},
        )

    @staticmethod
    def entity_updated(
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_UPDATED,
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type} updated: {', '.join(fields) or 'no fields'}",
            details={"fields": fields},
        )

    @staticmethod
    def entity_deleted(
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_DELETED,
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type} deleted",
        )

    @staticmethod
    def cascade_deleted(
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        summary = ", ".join(f"{count} {name}" for name, count in counts.items())
        return AuditEvent(
            event_type=AuditEventType.CASCADE_DELETED,
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type} deleted with {summary}",
            details={"deleted": counts},
        )

    @staticmethod
    def transfer_created(
        tenant_id: str,
        outgoing_id: str,
        incoming_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_CREATED,
            tenant_id=tenant_id,
            entity_type="transaction",
            entity_id=outgoing_id,
            correlation_id=correlation_id,
            description=f"Transfer of {amount} created",
            details={
                "outgoing_id": outgoing_id,
                "incoming_id": incoming_id,
                "amount": amount,
            },
        )

    @staticmethod
    def linked_transaction_missing(
        tenant_id: str,
        transaction_id: str,
        linked_transaction_id: str,
        operation: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LINKED_TRANSACTION_MISSING,
            severity=AuditSeverity.WARNING,
            tenant_id=tenant_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Linked transaction missing during {operation}",
            details={
                "linked_transaction_id": linked_transaction_id,
                "operation": operation,
            },
        )

    @staticmethod
    def balance_recomputed(
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        balance: str,
        attempts: int = 1,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_RECOMPUTED,
            severity=AuditSeverity.DEBUG,
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type} balance recomputed: {balance}",
            details={
                "balance": balance,
                "attempts": attempts,
            },
        )

    @staticmethod
    def protected_fields_stripped(
        tenant_id: str,
        entity_type: str,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROTECTED_FIELDS_STRIPPED,
            severity=AuditSeverity.WARNING,
            tenant_id=tenant_id,
            entity_type=entity_type,
            description=f"Protected fields ignored on {entity_type} update",
            details={"fields": fields},
        )

    @staticmethod
    def authorization_denied(
        tenant_id: Optional[str],
        entity_type: str,
        entity_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTHORIZATION_DENIED,
            severity=AuditSeverity.WARNING,
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"Access to {entity_type} denied",
        )

    @staticmethod
    def tenant_initialized(
        tenant_id: str,
        account_count: int,
        sub_account_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TENANT_INITIALIZED,
            tenant_id=tenant_id,
            description=(
                f"Default ledger created: {account_count} accounts, "
                f"{sub_account_count} sub-accounts"
            ),
            details={
                "account_count": account_count,
                "sub_account_count": sub_account_count,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        tenant_id: Optional[str] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            tenant_id=tenant_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
