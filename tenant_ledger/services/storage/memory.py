"""
In-Memory Document Store

Holds every collection in process memory. Used by the test suite and
for embedding the ledger where persistence is not needed.

Commits are atomic: the batch is applied to a copy of the touched
collections, and the copy replaces the originals only if every write
succeeded.
"""

import copy
from typing import Iterable, Optional

from tenant_ledger.services.storage.interface import (
    DocumentStore,
    FieldFilter,
    MonotonicClock,
    OrderBy,
    WriteBatch,
    apply_batch,
    select_documents,
)


class InMemoryDocumentStore(DocumentStore):
    """Process-local DocumentStore implementation."""

    def __init__(self, max_batch_size: int = 500):
        super().__init__(max_batch_size)
        self._collections: dict[str, dict[str, dict]] = {}
        self._clock = MonotonicClock()
        self.commit_count = 0

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        document = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter] = (),
        order_by: Iterable[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> list[dict]:
        documents = self._collections.get(collection, {}).values()
        return select_documents(documents, filters, order_by, limit)

    async def commit(self, batch: WriteBatch) -> None:
        if not len(batch):
            return

        touched = {op.collection for op in batch.operations}
        snapshot = {
            name: copy.deepcopy(self._collections.get(name, {}))
            for name in touched
        }
        apply_batch(snapshot, batch, self._clock.now())

        self._collections.update(snapshot)
        self.commit_count += 1

    def dump(self) -> dict[str, dict[str, dict]]:
        """Copy of every stored document, keyed by collection then id."""
        return copy.deepcopy(self._collections)
