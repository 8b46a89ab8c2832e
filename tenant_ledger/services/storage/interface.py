"""
Abstract Document Store Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for Firestore or a real database later
2. Use in-memory storage for testing
3. Keep ledger logic decoupled from storage implementation

The interface is intentionally small - we're not building a full ORM.
Keyed documents in named collections, equality/range filters, ordering,
and atomic multi-document batches. That is all the ledger needs.

Every document carries a store-managed `version` that increases on each
write. A batch operation may name the version it expects; if the stored
document has moved on, the whole batch fails with ConflictError and
nothing is written.
"""

import copy
import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Optional
from uuid import uuid4


class _ServerTimestamp:
    """Placeholder resolved to the commit time by the store."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


@dataclass(frozen=True)
class FieldFilter:
    """A single `field <op> value` predicate."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, document: dict) -> bool:
        actual = document.get(self.field)
        if self.op in ("==", "!="):
            return _OPERATORS[self.op](actual, self.value)
        # Range predicates never match a missing field
        if actual is None:
            return False
        return _OPERATORS[self.op](actual, self.value)


@dataclass(frozen=True)
class OrderBy:
    """Sort key for a query."""

    field: str
    descending: bool = False


class WriteKind(str, Enum):
    SET = "set"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class WriteOperation:
    """One write inside a batch."""

    kind: WriteKind
    collection: str
    doc_id: str
    data: dict = field(default_factory=dict)
    if_version: Optional[int] = None


class WriteBatch:
    """
    An ordered set of writes committed all-or-nothing.

    The batch is bounded: adding more than `max_size` writes raises
    BatchTooLargeError before anything reaches the store.
    """

    def __init__(self, max_size: int = 500):
        self._max_size = max_size
        self._operations: list[WriteOperation] = []

    def _add(self, operation: WriteOperation) -> "WriteBatch":
        if not operation.doc_id:
            raise StorageError("Document id is required for batch writes")
        if len(self._operations) >= self._max_size:
            raise BatchTooLargeError(
                f"Batch exceeds the limit of {self._max_size} writes"
            )
        self._operations.append(operation)
        return self

    def set(self, collection: str, doc_id: str, data: dict) -> "WriteBatch":
        """Create or overwrite a document."""
        return self._add(WriteOperation(WriteKind.SET, collection, doc_id, dict(data)))

    def update(
        self,
        collection: str,
        doc_id: str,
        data: dict,
        if_version: Optional[int] = None,
    ) -> "WriteBatch":
        """Merge fields into an existing document."""
        return self._add(
            WriteOperation(WriteKind.UPDATE, collection, doc_id, dict(data), if_version)
        )

    def delete(
        self,
        collection: str,
        doc_id: str,
        if_version: Optional[int] = None,
    ) -> "WriteBatch":
        """Delete a document. Deleting a missing document is a no-op."""
        return self._add(
            WriteOperation(WriteKind.DELETE, collection, doc_id, if_version=if_version)
        )

    @property
    def operations(self) -> list[WriteOperation]:
        return list(self._operations)

    def __len__(self) -> int:
        return len(self._operations)


class MonotonicClock:
    """Server timestamps that never repeat or go backwards."""

    def __init__(self):
        self._last: Optional[datetime] = None

    def now(self) -> datetime:
        current = datetime.now(timezone.utc)
        if self._last is not None and current <= self._last:
            current = self._last + timedelta(microseconds=1)
        self._last = current
        return current


class DocumentStore(ABC):
    """
    Abstract interface for document storage.

    Any storage implementation (Google Sheets, Firestore, etc.)
    must implement these methods.
    """

    def __init__(self, max_batch_size: int = 500):
        self._max_batch_size = max_batch_size

    def new_id(self, collection: str) -> str:
        """
        Allocate a document id without writing anything.

        Used to let two documents of one batch reference each other.
        """
        return uuid4().hex

    def batch(self) -> WriteBatch:
        """Start a new atomic batch."""
        return WriteBatch(self._max_batch_size)

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """
        Retrieve a document by id.

        Returns:
            A copy of the document (including `id` and `version`),
            or None if it does not exist
        """
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter] = (),
        order_by: Iterable[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> list[dict]:
        """
        List documents matching all filters.

        Args:
            collection: Collection name
            filters: Predicates that must all hold
            order_by: Sort keys, most significant first
            limit: Maximum number of results

        Returns:
            Copies of the matching documents
        """
        pass

    @abstractmethod
    async def commit(self, batch: WriteBatch) -> None:
        """
        Apply every write of the batch atomically.

        Raises:
            ConflictError: If an if_version precondition does not hold
            DocumentNotFoundError: If an update targets a missing document
            StorageError: If the write fails
        """
        pass


# =============================================================================
# HELPERS SHARED BY IMPLEMENTATIONS
# =============================================================================

def _sort_key(value: Any) -> tuple:
    # Missing values sort before everything else
    if value is None:
        return (0, 0)
    return (1, value)


def select_documents(
    documents: Iterable[dict],
    filters: Iterable[FieldFilter] = (),
    order_by: Iterable[OrderBy] = (),
    limit: Optional[int] = None,
) -> list[dict]:
    """Filter, sort and limit documents in Python."""
    filters = list(filters)
    selected = [doc for doc in documents if all(f.matches(doc) for f in filters)]

    # Stable sorts applied least significant key first
    for order in reversed(list(order_by)):
        selected.sort(
            key=lambda doc, name=order.field: _sort_key(doc.get(name)),
            reverse=order.descending,
        )

    if limit is not None:
        selected = selected[:limit]
    return [copy.deepcopy(doc) for doc in selected]


def _resolve(data: dict, now: datetime) -> dict:
    resolved = {}
    for key, value in data.items():
        if key in ("id", "version"):
            continue
        resolved[key] = now if value is SERVER_TIMESTAMP else copy.deepcopy(value)
    return resolved


def apply_batch(
    collections: dict[str, dict[str, dict]],
    batch: WriteBatch,
    now: datetime,
) -> None:
    """
    Apply a batch to an in-memory snapshot of collections.

    Mutates `collections`; callers pass a copy and only publish it
    when this returns without raising.
    """
    for op in batch.operations:
        documents = collections.setdefault(op.collection, {})
        current = documents.get(op.doc_id)

        if op.if_version is not None:
            if current is None or current.get("version") != op.if_version:
                raise ConflictError(
                    f"{op.collection}/{op.doc_id} changed since it was read "
                    f"(expected version {op.if_version})"
                )

        if op.kind == WriteKind.SET:
            document = _resolve(op.data, now)
            document["id"] = op.doc_id
            document["version"] = (current.get("version", 0) if current else 0) + 1
            documents[op.doc_id] = document
        elif op.kind == WriteKind.UPDATE:
            if current is None:
                raise DocumentNotFoundError(op.collection, op.doc_id)
            document = {**current, **_resolve(op.data, now)}
            document["version"] = current.get("version", 0) + 1
            documents[op.doc_id] = document
        else:
            documents.pop(op.doc_id, None)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DocumentNotFoundError(StorageError):
    """A write targeted a document that does not exist."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} does not exist")


class ConflictError(StorageError):
    """A version precondition failed; the batch was not applied."""
    pass


class BatchTooLargeError(StorageError):
    """A batch exceeded the store's write limit."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
