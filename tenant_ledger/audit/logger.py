"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Complete traceability of balance changes
2. Debugging capability for cascades and transfer pairs
3. A record of refused cross-tenant access

The audit logger:
- Is async to fit the ledger's call flow
- Gracefully handles failures (a failed audit write never fails a ledger write)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from tenant_ledger.models.audit import AuditEvent, AuditEventBuilder
from tenant_ledger.services.storage import DocumentStore, FieldFilter, OrderBy
from tenant_ledger.services.storage.collections import AUDIT_LOG


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through the stdlib root logger at `level`."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level))
    logging.getLogger().setLevel(getattr(logging, level))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The tenant-scoped audit_log collection (for persistence)
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
    ):
        """
        Initialize audit logger.

        Args:
            store: Document store for persistence.
                   If None, only logs locally.
        """
        self._store = store
        self._logger = structlog.get_logger("tenant_ledger.audit")

    @property
    def store(self) -> Optional[DocumentStore]:
        return self._store

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Events without a tenant have nowhere to live in a tenant-scoped log
        if self._store and event.tenant_id:
            try:
                batch = self._store.batch()
                batch.set(AUDIT_LOG, str(event.event_id), event.to_document())
                await self._store.commit(batch)
                return True
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_created(
        self,
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log entity creation."""
        await self.log(AuditEventBuilder.entity_created(
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_updated(
        self,
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log entity update."""
        await self.log(AuditEventBuilder.entity_updated(
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            fields=fields,
            correlation_id=correlation_id,
        ))

    async def log_deleted(
        self,
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log entity deletion."""
        await self.log(AuditEventBuilder.entity_deleted(
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        ))

    async def log_cascade_deleted(
        self,
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a cascading delete and how much it removed."""
        await self.log(AuditEventBuilder.cascade_deleted(
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            counts=counts,
            correlation_id=correlation_id,
        ))

    async def log_transfer_created(
        self,
        tenant_id: str,
        outgoing_id: str,
        incoming_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log creation of a transfer pair."""
        await self.log(AuditEventBuilder.transfer_created(
            tenant_id=tenant_id,
            outgoing_id=outgoing_id,
            incoming_id=incoming_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_linked_missing(
        self,
        tenant_id: str,
        transaction_id: str,
        linked_transaction_id: str,
        operation: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a transfer whose counterpart could not be found."""
        await self.log(AuditEventBuilder.linked_transaction_missing(
            tenant_id=tenant_id,
            transaction_id=transaction_id,
            linked_transaction_id=linked_transaction_id,
            operation=operation,
            correlation_id=correlation_id,
        ))

    async def log_balance_recomputed(
        self,
        tenant_id: str,
        entity_type: str,
        entity_id: str,
        balance: str,
        attempts: int = 1,
    ) -> None:
        """Log a balance recomputation."""
        await self.log(AuditEventBuilder.balance_recomputed(
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            balance=balance,
            attempts=attempts,
        ))

    async def log_fields_stripped(
        self,
        tenant_id: str,
        entity_type: str,
        fields: list[str],
    ) -> None:
        """Log protected fields removed from an update payload."""
        await self.log(AuditEventBuilder.protected_fields_stripped(
            tenant_id=tenant_id,
            entity_type=entity_type,
            fields=fields,
        ))

    async def log_authorization_denied(
        self,
        tenant_id: Optional[str],
        entity_type: str,
        entity_id: Optional[str],
    ) -> None:
        """Log a refused cross-tenant access."""
        await self.log(AuditEventBuilder.authorization_denied(
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
        ))

    async def log_tenant_initialized(
        self,
        tenant_id: str,
        account_count: int,
        sub_account_count: int,
    ) -> None:
        """Log creation of a tenant's default ledger."""
        await self.log(AuditEventBuilder.tenant_initialized(
            tenant_id=tenant_id,
            account_count=account_count,
            sub_account_count=sub_account_count,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        tenant_id: Optional[str] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            tenant_id=tenant_id,
            details=details,
            correlation_id=correlation_id,
        ))

    async def recent_events(
        self,
        tenant_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get a tenant's most recent audit events (newest first).

        `tenant_id` must already have passed TenantGuard.
        """
        if self._store is None:
            return []

        documents = await self._store.query(
            AUDIT_LOG,
            filters=[FieldFilter("tenant_id", "==", tenant_id)],
            order_by=[OrderBy("timestamp", descending=True)],
            limit=limit,
        )
        events = []
        for document in documents:
            document["event_id"] = document.pop("id")
            events.append(AuditEvent.model_validate(document))
        return events


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a logical ledger operation
    and pass it through all subsequent audit calls.
    """
    return uuid4()
