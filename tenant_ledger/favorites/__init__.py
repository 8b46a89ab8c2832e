"""Tenant-scoped favorites."""

from tenant_ledger.favorites.index import FavoritesIndex

__all__ = ["FavoritesIndex"]
