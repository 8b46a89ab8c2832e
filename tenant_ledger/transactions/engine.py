"""
Transaction Engine

Creates, updates and deletes ledger entries and keeps balances in step.

DESIGN DECISION: A transfer is two documents written in one batch.
- The Outgoing half lives on the source sub-account and names the
  destination (to_*)
- The Incoming half lives on the destination and names the source (from_*)
- Both ids are allocated before the batch so each half can point at
  the other through linked_transaction_id

Shared fields (amount, transaction_date, description, category, tags)
are always written to both halves in the same batch. A missing half is
a ConsistencyWarning, never an error: the remaining half is still
updated or deleted.

Every write also touches the affected sub-accounts (updated_at), so a
balance recomputation that raced the write loses its version check and
runs again.
"""

import warnings
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import structlog

from tenant_ledger.audit import AuditLogger, create_correlation_id
from tenant_ledger.balances import BalanceAggregator
from tenant_ledger.config import LedgerSettings, get_settings
from tenant_ledger.errors import ConsistencyWarning, NotFoundError, ValidationError
from tenant_ledger.models.ledger import (
    Transaction,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
    TransferType,
)
from tenant_ledger.services.storage import (
    SERVER_TIMESTAMP,
    DocumentNotFoundError,
    DocumentStore,
    FieldFilter,
    OrderBy,
    WriteBatch,
)
from tenant_ledger.services.storage.collections import (
    ACCOUNTS,
    SUB_ACCOUNTS,
    TRANSACTIONS,
)
from tenant_ledger.validation import (
    TRANSACTION_PROTECTED_FIELDS,
    TenantGuard,
    parse_payload,
)


logger = structlog.get_logger("tenant_ledger.transactions")

# Fields both halves of a transfer always agree on
SHARED_FIELDS = ("amount", "transaction_date", "description", "category", "tags")


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TransactionEngine:
    """
    Transaction CRUD with transfer pairing and balance recomputation.

    Usage:
        engine = TransactionEngine(store, guard, aggregator)
        txn_id = await engine.create_transaction(tenant_id, {
            "account_id": a1, "sub_account_id": s1,
            "transaction_type": "Income", "amount": "5000",
        })
    """

    def __init__(
        self,
        store: DocumentStore,
        guard: TenantGuard,
        aggregator: BalanceAggregator,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._guard = guard
        self._aggregator = aggregator
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().ledger

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _load_pair(
        self,
        tenant_id: str,
        account_id: str,
        sub_account_id: str,
        field_prefix: str = "",
    ) -> dict:
        """Load a sub-account and check it sits under the given account."""
        await self._guard.load_owned(
            self._store, ACCOUNTS, account_id, tenant_id, "account"
        )
        sub_account = await self._guard.load_owned(
            self._store, SUB_ACCOUNTS, sub_account_id, tenant_id, "sub_account"
        )
        if sub_account.get("account_id") != account_id:
            raise ValidationError(
                f"{field_prefix}sub_account_id",
                f"sub-account {sub_account_id} does not belong to account {account_id}",
            )
        return sub_account

    async def _load_linked(
        self,
        tenant_id: str,
        transaction: Transaction,
        operation: str,
        correlation_id=None,
    ) -> Optional[dict]:
        """
        Load the other half of a transfer.

        Returns None (after a ConsistencyWarning) if it no longer exists.
        """
        if not transaction.is_linked:
            return None
        try:
            return await self._guard.load_owned(
                self._store,
                TRANSACTIONS,
                transaction.linked_transaction_id,
                tenant_id,
                "transaction",
            )
        except NotFoundError:
            detail = (
                f"Linked transaction {transaction.linked_transaction_id} of "
                f"{transaction.id} not found during {operation}"
            )
            logger.warning(
                "linked_transaction_missing",
                transaction_id=transaction.id,
                linked_transaction_id=transaction.linked_transaction_id,
                operation=operation,
            )
            warnings.warn(ConsistencyWarning(detail), stacklevel=3)
            await self._audit.log_linked_missing(
                tenant_id,
                transaction.id,
                transaction.linked_transaction_id,
                operation,
                correlation_id=correlation_id,
            )
            return None

    async def _stage_touch(self, batch: WriteBatch, sub_account_ids: Iterable[str]) -> None:
        """Bump updated_at of each existing sub-account in `batch`."""
        for sub_account_id in dict.fromkeys(sub_account_ids):
            if await self._store.get(SUB_ACCOUNTS, sub_account_id) is not None:
                batch.update(SUB_ACCOUNTS, sub_account_id, {"updated_at": SERVER_TIMESTAMP})

    async def _commit_with_parents(self, batch: WriteBatch, sub_account_ids: Iterable[str]) -> None:
        """
        Commit `batch` together with a touch of each parent sub-account.

        The touch fails the whole batch if a parent was deleted after it
        was read, so no transaction is written under a deleted sub-account.
        """
        for sub_account_id in dict.fromkeys(sub_account_ids):
            batch.update(SUB_ACCOUNTS, sub_account_id, {"updated_at": SERVER_TIMESTAMP})
        try:
            await self._store.commit(batch)
        except DocumentNotFoundError as e:
            raise NotFoundError("sub_account", e.doc_id) from e

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_transaction(self, tenant_id: str, payload: Any) -> str:
        """
        Record a new transaction.

        Returns:
            The new transaction id (the Outgoing half for a transfer)

        Raises:
            ValidationError: Bad type, non-positive amount, missing
                destination, or a sub-account outside its account
            NotFoundError: A referenced account or sub-account is missing
            AuthorizationError: A referenced entity belongs to another tenant
        """
        tenant_id = self._guard.require_tenant(tenant_id)
        data = parse_payload(TransactionCreate, payload)

        await self._load_pair(tenant_id, data.account_id, data.sub_account_id)

        transaction_date = _as_utc(data.transaction_date or datetime.now(timezone.utc))
        base = {
            "tenant_id": tenant_id,
            "amount": data.amount,
            "description": data.description,
            "category": data.category,
            "tags": list(data.tags),
            "transaction_date": transaction_date,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        }

        batch = self._store.batch()

        if data.transaction_type == TransactionType.TRANSFER:
            await self._load_pair(
                tenant_id, data.to_account_id, data.to_sub_account_id, field_prefix="to_"
            )

            outgoing_id = self._store.new_id(TRANSACTIONS)
            incoming_id = self._store.new_id(TRANSACTIONS)

            batch.set(TRANSACTIONS, outgoing_id, {
                **base,
                "account_id": data.account_id,
                "sub_account_id": data.sub_account_id,
                "transaction_type": TransactionType.TRANSFER.value,
                "transfer_type": TransferType.OUTGOING.value,
                "linked_transaction_id": incoming_id,
                "to_account_id": data.to_account_id,
                "to_sub_account_id": data.to_sub_account_id,
            })
            batch.set(TRANSACTIONS, incoming_id, {
                **base,
                "account_id": data.to_account_id,
                "sub_account_id": data.to_sub_account_id,
                "transaction_type": TransactionType.TRANSFER.value,
                "transfer_type": TransferType.INCOMING.value,
                "linked_transaction_id": outgoing_id,
                "from_account_id": data.account_id,
                "from_sub_account_id": data.sub_account_id,
            })
            await self._commit_with_parents(
                batch, [data.sub_account_id, data.to_sub_account_id]
            )

            await self._audit.log_transfer_created(
                tenant_id, outgoing_id, incoming_id, str(data.amount)
            )
            await self._aggregator.recompute_touched(tenant_id, [
                (data.account_id, data.sub_account_id),
                (data.to_account_id, data.to_sub_account_id),
            ])
            return outgoing_id

        transaction_id = self._store.new_id(TRANSACTIONS)
        batch.set(TRANSACTIONS, transaction_id, {
            **base,
            "account_id": data.account_id,
            "sub_account_id": data.sub_account_id,
            "transaction_type": data.transaction_type.value,
        })
        await self._commit_with_parents(batch, [data.sub_account_id])

        await self._audit.log_created(
            tenant_id,
            "transaction",
            transaction_id,
            details={
                "transaction_type": data.transaction_type.value,
                "amount": str(data.amount),
                "sub_account_id": data.sub_account_id,
            },
        )
        await self._aggregator.recompute_touched(
            tenant_id, [(data.account_id, data.sub_account_id)]
        )
        return transaction_id

    # =========================================================================
    # READ
    # =========================================================================

    async def get_transaction(self, tenant_id: str, transaction_id: str) -> Transaction:
        """Get a single transaction owned by the tenant."""
        tenant_id = self._guard.require_tenant(tenant_id)
        document = await self._guard.load_owned(
            self._store, TRANSACTIONS, transaction_id, tenant_id, "transaction"
        )
        return Transaction.model_validate(document)

    async def list_transactions(
        self,
        tenant_id: str,
        sub_account_id: str,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """A sub-account's transactions, most recent transaction_date first."""
        tenant_id = self._guard.require_tenant(tenant_id)
        await self._guard.load_owned(
            self._store, SUB_ACCOUNTS, sub_account_id, tenant_id, "sub_account"
        )
        documents = await self._store.query(
            TRANSACTIONS,
            filters=[
                FieldFilter("tenant_id", "==", tenant_id),
                FieldFilter("sub_account_id", "==", sub_account_id),
            ],
            order_by=[OrderBy("transaction_date", descending=True)],
            limit=limit,
        )
        return [
            Transaction.model_validate(document)
            for document in self._guard.filter_owned(documents, tenant_id, "transaction")
        ]

    async def list_all_transactions(
        self,
        tenant_id: str,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """Every transaction of the tenant, most recent first."""
        tenant_id = self._guard.require_tenant(tenant_id)
        documents = await self._store.query(
            TRANSACTIONS,
            filters=[FieldFilter("tenant_id", "==", tenant_id)],
            order_by=[OrderBy("transaction_date", descending=True)],
            limit=limit,
        )
        return [
            Transaction.model_validate(document)
            for document in self._guard.filter_owned(documents, tenant_id, "transaction")
        ]

    # =========================================================================
    # UPDATE / DELETE
    # =========================================================================

    async def update_transaction(
        self,
        tenant_id: str,
        transaction_id: str,
        patch: Any,
    ) -> None:
        """
        Apply a partial update.

        Parent references and transfer wiring cannot be changed and are
        dropped from the patch. A transfer's shared fields are written to
        both halves.
        """
        tenant_id = self._guard.require_tenant(tenant_id)
        document = await self._guard.load_owned(
            self._store, TRANSACTIONS, transaction_id, tenant_id, "transaction"
        )
        transaction = Transaction.model_validate(document)

        patch = await self._guard.strip_protected(
            patch, TRANSACTION_PROTECTED_FIELDS, "transaction", tenant_id
        )
        fields = parse_payload(TransactionUpdate, patch).model_dump(
            exclude_unset=True, exclude_none=True
        )

        new_type = fields.get("transaction_type")
        if new_type is not None:
            is_transfer = transaction.transaction_type == TransactionType.TRANSFER
            if is_transfer != (new_type == TransactionType.TRANSFER):
                raise ValidationError(
                    "transaction_type",
                    "a transaction cannot be changed to or from Transfer",
                )
            fields["transaction_type"] = new_type.value
        if "transaction_date" in fields:
            fields["transaction_date"] = _as_utc(fields["transaction_date"])

        correlation_id = create_correlation_id()
        batch = self._store.batch()
        batch.update(TRANSACTIONS, transaction_id, {**fields, "updated_at": SERVER_TIMESTAMP})
        touched = [(transaction.account_id, transaction.sub_account_id)]

        linked = await self._load_linked(tenant_id, transaction, "update", correlation_id)
        if linked is not None:
            shared = {key: fields[key] for key in SHARED_FIELDS if key in fields}
            batch.update(TRANSACTIONS, linked["id"], {**shared, "updated_at": SERVER_TIMESTAMP})
            touched.append((linked["account_id"], linked["sub_account_id"]))

        await self._stage_touch(batch, [sub for _, sub in touched])
        await self._store.commit(batch)

        await self._audit.log_updated(
            tenant_id, "transaction", transaction_id, sorted(fields),
            correlation_id=correlation_id,
        )
        if linked is not None:
            await self._audit.log_updated(
                tenant_id, "transaction", linked["id"],
                sorted(key for key in SHARED_FIELDS if key in fields),
                correlation_id=correlation_id,
            )
        await self._aggregator.recompute_touched(tenant_id, touched)

    async def delete_transaction(self, tenant_id: str, transaction_id: str) -> None:
        """Delete a transaction, and its counterpart if it is a transfer."""
        tenant_id = self._guard.require_tenant(tenant_id)
        document = await self._guard.load_owned(
            self._store, TRANSACTIONS, transaction_id, tenant_id, "transaction"
        )
        transaction = Transaction.model_validate(document)

        correlation_id = create_correlation_id()
        batch = self._store.batch()
        batch.delete(TRANSACTIONS, transaction_id)
        touched = [(transaction.account_id, transaction.sub_account_id)]

        linked = await self._load_linked(tenant_id, transaction, "delete", correlation_id)
        if linked is not None:
            batch.delete(TRANSACTIONS, linked["id"])
            touched.append((linked["account_id"], linked["sub_account_id"]))

        await self._stage_touch(batch, [sub for _, sub in touched])
        await self._store.commit(batch)

        await self._audit.log_deleted(
            tenant_id, "transaction", transaction_id, correlation_id=correlation_id
        )
        if linked is not None:
            await self._audit.log_deleted(
                tenant_id, "transaction", linked["id"], correlation_id=correlation_id
            )
        await self._aggregator.recompute_touched(tenant_id, touched)

    # =========================================================================
    # CASCADE SUPPORT
    # =========================================================================

    async def stage_cascade(
        self,
        tenant_id: str,
        sub_account_ids: Iterable[str],
        batch: WriteBatch,
    ) -> tuple[int, list[tuple[str, str]]]:
        """
        Add deletes of every transaction of the given sub-accounts to `batch`.

        Transfer counterparts living on other sub-accounts are deleted too,
        so no surviving record points at a deleted sub-account.

        Returns:
            (number of transactions staged, (account_id, sub_account_id)
            pairs outside the cascade whose balances must be recomputed)
        """
        sub_account_ids = list(dict.fromkeys(sub_account_ids))
        doomed = set(sub_account_ids)
        staged: set[str] = set()
        external: list[tuple[str, str]] = []

        for sub_account_id in sub_account_ids:
            documents = await self._store.query(
                TRANSACTIONS,
                filters=[
                    FieldFilter("tenant_id", "==", tenant_id),
                    FieldFilter("sub_account_id", "==", sub_account_id),
                ],
            )
            for document in documents:
                if document["id"] not in staged:
                    batch.delete(TRANSACTIONS, document["id"])
                    staged.add(document["id"])

                linked_id = document.get("linked_transaction_id")
                if not linked_id or linked_id in staged:
                    continue
                linked = await self._store.get(TRANSACTIONS, linked_id)
                if linked is None or linked.get("tenant_id") != tenant_id:
                    continue
                if linked.get("sub_account_id") in doomed:
                    # Picked up when its own sub-account is enumerated
                    continue

                batch.delete(TRANSACTIONS, linked_id)
                staged.add(linked_id)
                pair = (linked["account_id"], linked["sub_account_id"])
                if pair not in external:
                    external.append(pair)
                    await self._stage_touch(batch, [linked["sub_account_id"]])

        return len(staged), external
