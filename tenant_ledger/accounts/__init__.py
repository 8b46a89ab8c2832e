"""Account and sub-account storage."""

from tenant_ledger.accounts.store import LedgerStore

__all__ = ["LedgerStore"]
