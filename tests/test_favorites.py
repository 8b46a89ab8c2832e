"""Tests for FavoritesIndex."""

import pytest

from conftest import OTHER_TENANT, TENANT
from tenant_ledger.errors import AuthorizationError, NotFoundError, ValidationError
from tenant_ledger.models.ledger import FavoriteType
from tenant_ledger.services.storage.collections import FAVORITES


class TestFavorites:
    """Tests for adding, listing and removing favorites."""

    @pytest.mark.asyncio
    async def test_add_account_favorite(self, ledger, hierarchy):
        favorite_id = await ledger.favorites.add(TENANT, account_id=hierarchy["a1"])

        favorites = await ledger.favorites.list(TENANT)
        assert [f.id for f in favorites] == [favorite_id]
        assert favorites[0].favorite_type == FavoriteType.ACCOUNT
        assert favorites[0].account_id == hierarchy["a1"]
        assert favorites[0].sub_account_id is None

    @pytest.mark.asyncio
    async def test_same_target_twice_returns_existing(self, ledger, store, hierarchy):
        first = await ledger.favorites.add(TENANT, sub_account_id=hierarchy["s1"])
        second = await ledger.favorites.add(TENANT, sub_account_id=hierarchy["s1"])

        assert first == second
        assert len(store.dump()[FAVORITES]) == 1

    @pytest.mark.asyncio
    async def test_exactly_one_target_required(self, ledger, hierarchy):
        with pytest.raises(ValidationError):
            await ledger.favorites.add(TENANT)
        with pytest.raises(ValidationError):
            await ledger.favorites.add(
                TENANT, account_id=hierarchy["a1"], sub_account_id=hierarchy["s1"]
            )

    @pytest.mark.asyncio
    async def test_target_must_be_owned(self, ledger, store, hierarchy):
        with pytest.raises(AuthorizationError):
            await ledger.favorites.add(OTHER_TENANT, account_id=hierarchy["a1"])
        with pytest.raises(NotFoundError):
            await ledger.favorites.add(TENANT, sub_account_id="missing")
        assert FAVORITES not in store.dump()

    @pytest.mark.asyncio
    async def test_list_newest_first_and_tenant_scoped(self, ledger, hierarchy):
        h = hierarchy
        first = await ledger.favorites.add(TENANT, account_id=h["a1"])
        second = await ledger.favorites.add(TENANT, sub_account_id=h["s2"])
        other_account = await ledger.accounts.create_account(OTHER_TENANT, {"account_type": "Asset"})
        await ledger.favorites.add(OTHER_TENANT, account_id=other_account)

        assert [f.id for f in await ledger.favorites.list(TENANT)] == [second, first]
        assert len(await ledger.favorites.list(OTHER_TENANT)) == 1

    @pytest.mark.asyncio
    async def test_get(self, ledger, hierarchy):
        favorite_id = await ledger.favorites.add(TENANT, sub_account_id=hierarchy["s1"])

        favorite = await ledger.favorites.get(TENANT, favorite_id)
        assert favorite.favorite_type == FavoriteType.SUB_ACCOUNT
        assert favorite.sub_account_id == hierarchy["s1"]
        with pytest.raises(AuthorizationError):
            await ledger.favorites.get(OTHER_TENANT, favorite_id)

    @pytest.mark.asyncio
    async def test_update_moves_to_new_target(self, ledger, hierarchy):
        h = hierarchy
        favorite_id = await ledger.favorites.add(TENANT, account_id=h["a1"])

        await ledger.favorites.update(TENANT, favorite_id, sub_account_id=h["s2"])

        favorite = await ledger.favorites.get(TENANT, favorite_id)
        assert favorite.favorite_type == FavoriteType.SUB_ACCOUNT
        assert favorite.account_id is None
        assert favorite.sub_account_id == h["s2"]
        assert favorite.updated_at > favorite.created_at

    @pytest.mark.asyncio
    async def test_update_rejects_taken_or_foreign_target(self, ledger, hierarchy):
        h = hierarchy
        first = await ledger.favorites.add(TENANT, account_id=h["a1"])
        await ledger.favorites.add(TENANT, account_id=h["a2"])
        foreign = await ledger.accounts.create_account(OTHER_TENANT, {"account_type": "Asset"})

        with pytest.raises(ValidationError) as excinfo:
            await ledger.favorites.update(TENANT, first, account_id=h["a2"])
        assert excinfo.value.field == "account_id"
        with pytest.raises(AuthorizationError):
            await ledger.favorites.update(TENANT, first, account_id=foreign)

        # Re-pointing at its own target is allowed
        await ledger.favorites.update(TENANT, first, account_id=h["a1"])
        assert (await ledger.favorites.get(TENANT, first)).account_id == h["a1"]

    @pytest.mark.asyncio
    async def test_remove(self, ledger, hierarchy):
        favorite_id = await ledger.favorites.add(TENANT, account_id=hierarchy["a1"])

        with pytest.raises(AuthorizationError):
            await ledger.favorites.remove(OTHER_TENANT, favorite_id)
        await ledger.favorites.remove(TENANT, favorite_id)

        assert await ledger.favorites.list(TENANT) == []
        with pytest.raises(NotFoundError):
            await ledger.favorites.remove(TENANT, favorite_id)

    @pytest.mark.asyncio
    async def test_removed_with_target(self, ledger, hierarchy):
        """Deleting a bookmarked sub-account removes its favorite."""
        h = hierarchy
        await ledger.favorites.add(TENANT, sub_account_id=h["s1"])
        kept = await ledger.favorites.add(TENANT, account_id=h["a2"])

        counts = await ledger.accounts.delete_sub_account(TENANT, h["s1"])

        assert counts["favorites"] == 1
        assert [f.id for f in await ledger.favorites.list(TENANT)] == [kept]
