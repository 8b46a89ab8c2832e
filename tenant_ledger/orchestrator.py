"""
Component Wiring for the Ledger

This module ties together all the components:
    TenantGuard -> BalanceAggregator -> FavoritesIndex
                -> TransactionEngine -> LedgerStore

DESIGN DECISION: Components receive their collaborators explicitly.
There is no module-level "current tenant" or shared engine instance;
callers build one LedgerComponents bundle and pass tenant ids to every
call.
"""

from dataclasses import dataclass
from typing import Optional

from tenant_ledger.accounts import LedgerStore
from tenant_ledger.audit import AuditLogger, configure_logging
from tenant_ledger.balances import BalanceAggregator
from tenant_ledger.bootstrap import initialize_tenant_accounts
from tenant_ledger.config import LedgerSettings, get_settings
from tenant_ledger.favorites import FavoritesIndex
from tenant_ledger.models.ledger import BootstrapResult
from tenant_ledger.services.storage import (
    DocumentStore,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
)
from tenant_ledger.transactions import TransactionEngine
from tenant_ledger.validation import TenantGuard


@dataclass
class LedgerComponents:
    """Everything a caller layer needs to drive the ledger."""

    store: DocumentStore
    audit_logger: AuditLogger
    guard: TenantGuard
    balances: BalanceAggregator
    favorites: FavoritesIndex
    transactions: TransactionEngine
    accounts: LedgerStore

    async def initialize_tenant(self, tenant_id: str) -> BootstrapResult:
        """Create the default accounts for a tenant that has none."""
        return await initialize_tenant_accounts(
            self.accounts, tenant_id, audit_logger=self.audit_logger
        )


def build_document_store(settings: Optional[LedgerSettings] = None) -> DocumentStore:
    """
    Create the document store selected by `storage_backend`.

    Raises:
        ConnectionError: Google Sheets selected but not reachable
    """
    settings = settings or get_settings().ledger

    if settings.storage_backend == "google_sheets":
        client = GoogleSheetsClient(get_settings().google_sheets)
        client.get_spreadsheet()
        return GoogleSheetsDocumentStore(client, max_batch_size=settings.max_batch_size)

    return InMemoryDocumentStore(max_batch_size=settings.max_batch_size)


def create_ledger_components(
    document_store: Optional[DocumentStore] = None,
    settings: Optional[LedgerSettings] = None,
) -> LedgerComponents:
    """
    Factory function to create all ledger components.

    Args:
        document_store: Store to use. Built from settings if None.
        settings: Ledger settings. Loaded from the environment if None.

    Returns:
        LedgerComponents sharing one store and one audit logger
    """
    settings = settings or get_settings().ledger
    configure_logging(settings.log_level)

    store = document_store if document_store is not None else build_document_store(settings)
    audit_logger = AuditLogger(store if settings.persist_audit_events else None)

    guard = TenantGuard(audit_logger)
    balances = BalanceAggregator(store, guard, audit_logger, settings)
    favorites = FavoritesIndex(store, guard, audit_logger)
    transactions = TransactionEngine(store, guard, balances, audit_logger, settings)
    accounts = LedgerStore(
        store, guard, balances, transactions, favorites, audit_logger, settings
    )

    return LedgerComponents(
        store=store,
        audit_logger=audit_logger,
        guard=guard,
        balances=balances,
        favorites=favorites,
        transactions=transactions,
        accounts=accounts,
    )
