"""
Ledger Store

CRUD for accounts and sub-accounts, including cascading deletes.

DESIGN DECISION: Cascades are snapshot-read-then-conditional-batch.
1. Enumerate the children (sub-accounts, transactions, favorites)
2. Stage every delete into one batch
3. Condition the delete of each parent on the version read in step 1

Creating a child touches its parent, so a child created between steps 1
and 3 changes the parent's version and the batch fails with
ConflictError. The cascade is then enumerated again from scratch.
"""

from decimal import Decimal
from typing import Any, Optional

from tenant_ledger.audit import AuditLogger, create_correlation_id
from tenant_ledger.balances import BalanceAggregator
from tenant_ledger.config import LedgerSettings, get_settings
from tenant_ledger.favorites import FavoritesIndex
from tenant_ledger.models.ledger import (
    Account,
    AccountCreate,
    AccountUpdate,
    SubAccount,
    SubAccountCreate,
    SubAccountUpdate,
)
from tenant_ledger.services.storage import (
    SERVER_TIMESTAMP,
    DocumentStore,
    FieldFilter,
    OrderBy,
    conflict_retrying,
)
from tenant_ledger.services.storage.collections import ACCOUNTS, SUB_ACCOUNTS
from tenant_ledger.transactions import TransactionEngine
from tenant_ledger.validation import (
    ACCOUNT_PROTECTED_FIELDS,
    SUB_ACCOUNT_PROTECTED_FIELDS,
    TenantGuard,
    parse_payload,
)


class LedgerStore:
    """
    Accounts and sub-accounts of every tenant.

    All methods take the tenant id explicitly and validate it first.
    """

    def __init__(
        self,
        store: DocumentStore,
        guard: TenantGuard,
        aggregator: BalanceAggregator,
        transactions: TransactionEngine,
        favorites: FavoritesIndex,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._guard = guard
        self._aggregator = aggregator
        self._transactions = transactions
        self._favorites = favorites
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().ledger

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def create_account(self, tenant_id: str, payload: Any) -> str:
        """
        Create an account with a zero balance.

        The name defaults to the account type and the color to the
        configured default.
        """
        tenant_id = self._guard.require_tenant(tenant_id)
        data = parse_payload(AccountCreate, payload)

        account_id = self._store.new_id(ACCOUNTS)
        batch = self._store.batch()
        batch.set(ACCOUNTS, account_id, {
            "tenant_id": tenant_id,
            "account_type": data.account_type.value,
            "name": data.name or data.account_type.value,
            "total_balance": Decimal("0"),
            "is_favorite": data.is_favorite,
            "color": data.color or self._settings.default_color,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        })
        await self._store.commit(batch)

        await self._audit.log_created(
            tenant_id, "account", account_id,
            details={"account_type": data.account_type.value},
        )
        return account_id

    async def get_account(self, tenant_id: str, account_id: str) -> Account:
        tenant_id = self._guard.require_tenant(tenant_id)
        document = await self._guard.load_owned(
            self._store, ACCOUNTS, account_id, tenant_id, "account"
        )
        return Account.model_validate(document)

    async def list_accounts(self, tenant_id: str) -> list[Account]:
        """The tenant's accounts by type, newest first within a type."""
        tenant_id = self._guard.require_tenant(tenant_id)
        documents = await self._store.query(
            ACCOUNTS,
            filters=[FieldFilter("tenant_id", "==", tenant_id)],
            order_by=[
                OrderBy("account_type"),
                OrderBy("created_at", descending=True),
            ],
        )
        return [
            Account.model_validate(document)
            for document in self._guard.filter_owned(documents, tenant_id, "account")
        ]

    async def update_account(self, tenant_id: str, account_id: str, patch: Any) -> None:
        """Apply a partial update. Balances and identity fields are ignored."""
        tenant_id = self._guard.require_tenant(tenant_id)
        await self._guard.load_owned(
            self._store, ACCOUNTS, account_id, tenant_id, "account"
        )

        patch = await self._guard.strip_protected(
            patch, ACCOUNT_PROTECTED_FIELDS, "account", tenant_id
        )
        fields = parse_payload(AccountUpdate, patch).model_dump(
            exclude_unset=True, exclude_none=True
        )
        if "account_type" in fields:
            fields["account_type"] = fields["account_type"].value

        batch = self._store.batch()
        batch.update(ACCOUNTS, account_id, {**fields, "updated_at": SERVER_TIMESTAMP})
        await self._store.commit(batch)

        await self._audit.log_updated(tenant_id, "account", account_id, sorted(fields))

    async def delete_account(self, tenant_id: str, account_id: str) -> dict[str, int]:
        """
        Delete an account and everything under it in one batch.

        Returns:
            Number of deleted documents per kind
        """
        tenant_id = self._guard.require_tenant(tenant_id)
        correlation_id = create_correlation_id()

        async for attempt in conflict_retrying(self._settings.conflict_retry_attempts):
            with attempt:
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

                batch = self._store.batch()
                transaction_count, external = await self._transactions.stage_cascade(
                    tenant_id, [sub["id"] for sub in sub_accounts], batch
                )
                favorite_count = 0
                for sub_account in sub_accounts:
                    favorite_count += await self._favorites.stage_removal(
                        tenant_id, batch, sub_account_id=sub_account["id"]
                    )
                    batch.delete(
                        SUB_ACCOUNTS, sub_account["id"], if_version=sub_account["version"]
                    )
                favorite_count += await self._favorites.stage_removal(
                    tenant_id, batch, account_id=account_id
                )
                batch.delete(ACCOUNTS, account_id, if_version=account["version"])

                await self._store.commit(batch)

        counts = {
            "sub_accounts": len(sub_accounts),
            "transactions": transaction_count,
            "favorites": favorite_count,
        }
        await self._audit.log_cascade_deleted(
            tenant_id, "account", account_id, counts, correlation_id=correlation_id
        )
        await self._aggregator.recompute_touched(tenant_id, external)
        return counts

    # =========================================================================
    # SUB-ACCOUNTS
    # =========================================================================

    async def create_sub_account(
        self,
        tenant_id: str,
        account_id: str,
        payload: Any,
    ) -> str:
        """Create a zero-balance sub-account under a tenant-owned account."""
        tenant_id = self._guard.require_tenant(tenant_id)
        await self._guard.load_owned(
            self._store, ACCOUNTS, account_id, tenant_id, "account"
        )
        data = parse_payload(SubAccountCreate, payload)

        sub_account_id = self._store.new_id(SUB_ACCOUNTS)
        batch = self._store.batch()
        batch.set(SUB_ACCOUNTS, sub_account_id, {
            "tenant_id": tenant_id,
            "account_id": account_id,
            "name": data.name,
            "balance": Decimal("0"),
            "is_favorite": data.is_favorite,
            "color": data.color or self._settings.default_color,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        })
        # Fails the batch if the parent was deleted after we read it
        batch.update(ACCOUNTS, account_id, {"updated_at": SERVER_TIMESTAMP})
        await self._store.commit(batch)

        await self._audit.log_created(
            tenant_id, "sub_account", sub_account_id,
            details={"account_id": account_id},
        )
        return sub_account_id

    async def get_sub_account(self, tenant_id: str, sub_account_id: str) -> SubAccount:
        tenant_id = self._guard.require_tenant(tenant_id)
        document = await self._guard.load_owned(
            self._store, SUB_ACCOUNTS, sub_account_id, tenant_id, "sub_account"
        )
        return SubAccount.model_validate(document)

    async def list_sub_accounts(self, tenant_id: str, account_id: str) -> list[SubAccount]:
        """Sub-accounts of one account, by name."""
        tenant_id = self._guard.require_tenant(tenant_id)
        await self._guard.load_owned(
            self._store, ACCOUNTS, account_id, tenant_id, "account"
        )
        documents = await self._store.query(
            SUB_ACCOUNTS,
            filters=[
                FieldFilter("tenant_id", "==", tenant_id),
                FieldFilter("account_id", "==", account_id),
            ],
            order_by=[OrderBy("name")],
        )
        return [
            SubAccount.model_validate(document)
            for document in self._guard.filter_owned(documents, tenant_id, "sub_account")
        ]

    async def update_sub_account(
        self,
        tenant_id: str,
        sub_account_id: str,
        patch: Any,
    ) -> None:
        """Apply a partial update. The parent account cannot change."""
        tenant_id = self._guard.require_tenant(tenant_id)
        await self._guard.load_owned(
            self._store, SUB_ACCOUNTS, sub_account_id, tenant_id, "sub_account"
        )

        patch = await self._guard.strip_protected(
            patch, SUB_ACCOUNT_PROTECTED_FIELDS, "sub_account", tenant_id
        )
        fields = parse_payload(SubAccountUpdate, patch).model_dump(
            exclude_unset=True, exclude_none=True
        )

        batch = self._store.batch()
        batch.update(SUB_ACCOUNTS, sub_account_id, {**fields, "updated_at": SERVER_TIMESTAMP})
        await self._store.commit(batch)

        await self._audit.log_updated(tenant_id, "sub_account", sub_account_id, sorted(fields))

    async def delete_sub_account(self, tenant_id: str, sub_account_id: str) -> dict[str, int]:
        """
        Delete a sub-account with its transactions and favorites.

        The parent account's total is recomputed afterwards.
        """
        tenant_id = self._guard.require_tenant(tenant_id)
        correlation_id = create_correlation_id()

        async for attempt in conflict_retrying(self._settings.conflict_retry_attempts):
            with attempt:
                sub_account = await self._guard.load_owned(
                    self._store, SUB_ACCOUNTS, sub_account_id, tenant_id, "sub_account"
                )
                parent_id = sub_account["account_id"]

                batch = self._store.batch()
                transaction_count, external = await self._transactions.stage_cascade(
                    tenant_id, [sub_account_id], batch
                )
                favorite_count = await self._favorites.stage_removal(
                    tenant_id, batch, sub_account_id=sub_account_id
                )
                batch.delete(SUB_ACCOUNTS, sub_account_id, if_version=sub_account["version"])

                await self._store.commit(batch)

        counts = {"transactions": transaction_count, "favorites": favorite_count}
        await self._audit.log_cascade_deleted(
            tenant_id, "sub_account", sub_account_id, counts, correlation_id=correlation_id
        )
        await self._aggregator.recompute_touched(tenant_id, [(parent_id, None), *external])
        return counts
