"""Services package."""

from tenant_ledger.services.identity import (
    IdentityProvider,
    StaticIdentityProvider,
)
from tenant_ledger.services.storage import (
    SERVER_TIMESTAMP,
    BatchTooLargeError,
    ConflictError,
    ConnectionError,
    DocumentNotFoundError,
    DocumentStore,
    FieldFilter,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
    OrderBy,
    StorageError,
    WriteBatch,
    conflict_retrying,
)

__all__ = [
    # Identity services
    "IdentityProvider",
    "StaticIdentityProvider",
    # Storage services
    "SERVER_TIMESTAMP",
    "BatchTooLargeError",
    "ConflictError",
    "ConnectionError",
    "DocumentNotFoundError",
    "DocumentStore",
    "FieldFilter",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryDocumentStore",
    "OrderBy",
    "StorageError",
    "WriteBatch",
    "conflict_retrying",
]
