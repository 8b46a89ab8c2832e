"""Transaction engine."""

from tenant_ledger.transactions.engine import SHARED_FIELDS, TransactionEngine

__all__ = ["SHARED_FIELDS", "TransactionEngine"]
