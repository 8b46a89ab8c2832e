"""
Favorites Index

Tenant-scoped bookmarks on accounts and sub-accounts.

A favorite points at exactly one tenant-owned target. Bookmarking the
same target twice returns the existing favorite. Favorites of a deleted
account or sub-account are removed inside the deleting cascade's batch.
"""

from typing import Optional

from tenant_ledger.audit import AuditLogger
from tenant_ledger.errors import ValidationError
from tenant_ledger.models.ledger import Favorite, FavoriteType
from tenant_ledger.services.storage import (
    SERVER_TIMESTAMP,
    DocumentStore,
    FieldFilter,
    OrderBy,
    WriteBatch,
)
from tenant_ledger.services.storage.collections import (
    ACCOUNTS,
    FAVORITES,
    SUB_ACCOUNTS,
)
from tenant_ledger.validation import TenantGuard


class FavoritesIndex:
    """Add, list and remove favorites for one tenant at a time."""

    def __init__(
        self,
        store: DocumentStore,
        guard: TenantGuard,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._guard = guard
        self._audit = audit_logger or AuditLogger()

    async def _load_target(
        self,
        tenant_id: str,
        account_id: Optional[str],
        sub_account_id: Optional[str],
    ) -> tuple[str, str, str, FavoriteType]:
        """Check that exactly one owned target is named."""
        if bool(account_id) == bool(sub_account_id):
            raise ValidationError(
                "favorite", "exactly one of account_id or sub_account_id is required"
            )

        if account_id:
            collection, field, target_id = ACCOUNTS, "account_id", account_id
            favorite_type, resource = FavoriteType.ACCOUNT, "account"
        else:
            collection, field, target_id = SUB_ACCOUNTS, "sub_account_id", sub_account_id
            favorite_type, resource = FavoriteType.SUB_ACCOUNT, "sub_account"

        await self._guard.load_owned(
            self._store, collection, target_id, tenant_id, resource
        )
        return collection, field, target_id, favorite_type

    async def _find(self, tenant_id: str, field: str, target_id: str) -> Optional[dict]:
        existing = await self._store.query(
            FAVORITES,
            filters=[
                FieldFilter("tenant_id", "==", tenant_id),
                FieldFilter(field, "==", target_id),
            ],
            limit=1,
        )
        return existing[0] if existing else None

    async def add(
        self,
        tenant_id: str,
        account_id: Optional[str] = None,
        sub_account_id: Optional[str] = None,
    ) -> str:
        """
        Bookmark an account or a sub-account.

        Returns:
            The favorite id (the existing one if already bookmarked)
        """
        tenant_id = self._guard.require_tenant(tenant_id)
        collection, field, target_id, favorite_type = await self._load_target(
            tenant_id, account_id, sub_account_id
        )

        existing = await self._find(tenant_id, field, target_id)
        if existing:
            return existing["id"]

        favorite_id = self._store.new_id(FAVORITES)
        batch = self._store.batch()
        batch.set(FAVORITES, favorite_id, {
            "tenant_id": tenant_id,
            "account_id": account_id or None,
            "sub_account_id": sub_account_id or None,
            "favorite_type": favorite_type.value,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        })
        # Touch the target so a concurrent cascade over it conflicts
        batch.update(collection, target_id, {"updated_at": SERVER_TIMESTAMP})
        await self._store.commit(batch)

        await self._audit.log_created(
            tenant_id, "favorite", favorite_id, details={field: target_id}
        )
        return favorite_id

    async def get(self, tenant_id: str, favorite_id: str) -> Favorite:
        tenant_id = self._guard.require_tenant(tenant_id)
        document = await self._guard.load_owned(
            self._store, FAVORITES, favorite_id, tenant_id, "favorite"
        )
        return Favorite.model_validate(document)

    async def update(
        self,
        tenant_id: str,
        favorite_id: str,
        account_id: Optional[str] = None,
        sub_account_id: Optional[str] = None,
    ) -> None:
        """
        Point a favorite at another account or sub-account.

        Raises:
            ValidationError: If the new target already has a favorite
        """
        tenant_id = self._guard.require_tenant(tenant_id)
        await self._guard.load_owned(
            self._store, FAVORITES, favorite_id, tenant_id, "favorite"
        )
        collection, field, target_id, favorite_type = await self._load_target(
            tenant_id, account_id, sub_account_id
        )

        existing = await self._find(tenant_id, field, target_id)
        if existing and existing["id"] != favorite_id:
            raise ValidationError(field, f"{target_id} is already a favorite")

        batch = self._store.batch()
        batch.update(FAVORITES, favorite_id, {
            "account_id": account_id or None,
            "sub_account_id": sub_account_id or None,
            "favorite_type": favorite_type.value,
            "updated_at": SERVER_TIMESTAMP,
        })
        batch.update(collection, target_id, {"updated_at": SERVER_TIMESTAMP})
        await self._store.commit(batch)

        await self._audit.log_updated(tenant_id, "favorite", favorite_id, [field])

    async def remove(self, tenant_id: str, favorite_id: str) -> None:
        """Delete one of the tenant's favorites."""
        tenant_id = self._guard.require_tenant(tenant_id)
        await self._guard.load_owned(
            self._store, FAVORITES, favorite_id, tenant_id, "favorite"
        )

        batch = self._store.batch()
        batch.delete(FAVORITES, favorite_id)
        await self._store.commit(batch)

        await self._audit.log_deleted(tenant_id, "favorite", favorite_id)

    async def stage_removal(
        self,
        tenant_id: str,
        batch: WriteBatch,
        account_id: Optional[str] = None,
        sub_account_id: Optional[str] = None,
    ) -> int:
        """
        Add deletes of every favorite pointing at a target to `batch`.

        Returns the number of favorites staged.
        """
        if account_id:
            field, target_id = "account_id", account_id
        else:
            field, target_id = "sub_account_id", sub_account_id

        favorites = await self._store.query(
            FAVORITES,
            filters=[
                FieldFilter("tenant_id", "==", tenant_id),
                FieldFilter(field, "==", target_id),
            ],
        )
        for favorite in favorites:
            batch.delete(FAVORITES, favorite["id"])
        return len(favorites)

    async def list(self, tenant_id: str) -> list[Favorite]:
        """All of the tenant's favorites, newest first."""
        tenant_id = self._guard.require_tenant(tenant_id)
        documents = await self._store.query(
            FAVORITES,
            filters=[FieldFilter("tenant_id", "==", tenant_id)],
            order_by=[OrderBy("created_at", descending=True)],
        )
        return [
            Favorite.model_validate(document)
            for document in self._guard.filter_owned(documents, tenant_id, "favorite")
        ]
