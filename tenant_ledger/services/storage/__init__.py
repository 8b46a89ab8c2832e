"""
Storage Services Package

Provides the abstract document store interface and concrete implementations.
In-memory for tests and embedding, Google Sheets for persistence.
"""

from tenant_ledger.services.storage.interface import (
    SERVER_TIMESTAMP,
    BatchTooLargeError,
    ConflictError,
    ConnectionError,
    DocumentNotFoundError,
    DocumentStore,
    FieldFilter,
    OrderBy,
    StorageError,
    WriteBatch,
)
from tenant_ledger.services.storage.memory import InMemoryDocumentStore
from tenant_ledger.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)
from tenant_ledger.services.storage.concurrency import conflict_retrying

__all__ = [
    # Interface
    "SERVER_TIMESTAMP",
    "DocumentStore",
    "FieldFilter",
    "OrderBy",
    "WriteBatch",
    "conflict_retrying",
    # Exceptions
    "BatchTooLargeError",
    "ConflictError",
    "ConnectionError",
    "DocumentNotFoundError",
    "StorageError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryDocumentStore",
]
