"""
Data Models Package

This package contains all Pydantic models used by the ledger.
All documents and payloads flowing through the system must conform to these schemas.
"""

from tenant_ledger.models.ledger import (
    Account,
    AccountCreate,
    AccountType,
    AccountUpdate,
    BootstrapResult,
    Favorite,
    FavoriteType,
    LedgerDocument,
    SubAccount,
    SubAccountCreate,
    SubAccountUpdate,
    Transaction,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
    TransferType,
)
from tenant_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountCreate",
    "AccountType",
    "AccountUpdate",
    "BootstrapResult",
    "Favorite",
    "FavoriteType",
    "LedgerDocument",
    "SubAccount",
    "SubAccountCreate",
    "SubAccountUpdate",
    "Transaction",
    "TransactionCreate",
    "TransactionType",
    "TransactionUpdate",
    "TransferType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
