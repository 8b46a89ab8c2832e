"""
Balance Aggregation

DESIGN DECISION: Balances are materialized views, never authoritative.

- A sub-account balance is a full fold over its transactions
- An account total is the sum of its sub-accounts' stored balances
  (two-level aggregation, the transaction log is not scanned again)

Both recomputations are idempotent. The balance write is conditional on
the version read at the start of the recomputation; if anything wrote
the document in between (a new transaction touches its sub-account, a
new sub-account touches its account) the recomputation is re-run from
a fresh read.
"""

from decimal import Decimal
from typing import Iterable, Mapping, Optional

import structlog

from tenant_ledger.audit import AuditLogger
from tenant_ledger.config import LedgerSettings, get_settings
from tenant_ledger.errors import NotFoundError
from tenant_ledger.models.ledger import Transaction
from tenant_ledger.services.storage import (
    SERVER_TIMESTAMP,
    DocumentStore,
    FieldFilter,
    StorageError,
    conflict_retrying,
)
from tenant_ledger.services.storage.collections import (
    ACCOUNTS,
    SUB_ACCOUNTS,
    TRANSACTIONS,
)
from tenant_ledger.validation import TenantGuard


logger = structlog.get_logger("tenant_ledger.balances")


class BalanceAggregator:
    """Recomputes cached sub-account and account balances."""

    def __init__(
        self,
        store: DocumentStore,
        guard: TenantGuard,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._guard = guard
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().ledger

    @staticmethod
    def fold_balance(transactions: Iterable[Mapping]) -> Decimal:
        """
        Sign-adjusted sum of transaction documents.

        Income adds, Expense subtracts, a Transfer adds only when it is
        the Incoming half.
        """
        balance = Decimal("0")
        for document in transactions:
            balance += Transaction.model_validate(document).signed_amount
        return balance

    async def recompute_sub_account_balance(
        self,
        tenant_id: str,
        sub_account_id: str,
    ) -> Decimal:
        """Rescan a sub-account's transactions and store the balance."""
        tenant_id = self._guard.require_tenant(tenant_id)

        attempts = 0
        async for attempt in conflict_retrying(self._settings.conflict_retry_attempts):
            with attempt:
                attempts += 1
                sub_account = await self._guard.load_owned(
                    self._store, SUB_ACCOUNTS, sub_account_id, tenant_id, "sub_account"
                )
                transactions = await self._store.query(
                    TRANSACTIONS,
                    filters=[
                        FieldFilter("tenant_id", "==", tenant_id),
                        FieldFilter("sub_account_id", "==", sub_account_id),
                    ],
                )
                balance = self.fold_balance(transactions)

                batch = self._store.batch()
                batch.update(
                    SUB_ACCOUNTS,
                    sub_account_id,
                    {"balance": balance, "updated_at": SERVER_TIMESTAMP},
                    if_version=sub_account["version"],
                )
                await self._store.commit(batch)

        await self._audit.log_balance_recomputed(
            tenant_id, "sub_account", sub_account_id, str(balance), attempts
        )
        return balance

    async def recompute_account_balance(
        self,
        tenant_id: str,
        account_id: str,
    ) -> Decimal:
        """Sum the stored balances of an account's sub-accounts."""
        tenant_id = self._guard.require_tenant(tenant_id)

        attempts = 0
        async for attempt in conflict_retrying(self._settings.conflict_retry_attempts):
            with attempt:
                attempts += 1
                account = await self._guard.load_owned(
                    self._store, ACCOUNTS, account_id, tenant_id, "account"
                )
                sub_accounts = await self._store.query(
                    SUB_ACCOUNTS,
                    filters=[
                        FieldFilter("tenant_id", "==", tenant_id),
                        FieldFilter("account_id", "==", account_id),
                    ],
                )
                total = sum(
                    (Decimal(str(sub.get("balance") or 0)) for sub in sub_accounts),
                    Decimal("0"),
                )

                batch = self._store.batch()
                batch.update(
                    ACCOUNTS,
                    account_id,
                    {"total_balance": total, "updated_at": SERVER_TIMESTAMP},
                    if_version=account["version"],
                )
                await self._store.commit(batch)

        await self._audit.log_balance_recomputed(
            tenant_id, "account", account_id, str(total), attempts
        )
        return total

    async def recompute_touched(
        self,
        tenant_id: str,
        touched: Iterable[tuple[str, Optional[str]]],
    ) -> None:
        """
        Recompute every (account_id, sub_account_id) pair a mutation touched.

        Each sub-account and each account is recomputed once, sub-accounts
        first. A sub_account_id of None recomputes only the account.
        Entities deleted in the meantime are skipped. A storage failure is
        recorded in the audit trail and re-raised; the mutation that called
        this has already committed, and re-running the recomputation repairs
        the cached balance.
        """
        tenant_id = self._guard.require_tenant(tenant_id)

        account_ids = []
        sub_account_ids = []
        for account_id, sub_account_id in touched:
            if sub_account_id and sub_account_id not in sub_account_ids:
                sub_account_ids.append(sub_account_id)
            if account_id and account_id not in account_ids:
                account_ids.append(account_id)

        for sub_account_id in sub_account_ids:
            await self._recompute_after_commit(
                tenant_id, "sub_account", sub_account_id, self.recompute_sub_account_balance
            )
        for account_id in account_ids:
            await self._recompute_after_commit(
                tenant_id, "account", account_id, self.recompute_account_balance
            )

    async def _recompute_after_commit(self, tenant_id, resource, entity_id, recompute) -> None:
        try:
            await recompute(tenant_id, entity_id)
        except NotFoundError:
            logger.info("recompute_skipped", resource=resource, id=entity_id)
        except StorageError as e:
            logger.error(
                "recompute_failed",
                tenant_id=tenant_id,
                resource=resource,
                id=entity_id,
                error=str(e),
            )
            await self._audit.log_error(
                type(e).__name__,
                str(e),
                tenant_id=tenant_id,
                details={
                    "operation": "recompute_balance",
                    "entity_type": resource,
                    "entity_id": entity_id,
                },
            )
            raise
