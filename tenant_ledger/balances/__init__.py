"""Balance recomputation."""

from tenant_ledger.balances.aggregator import BalanceAggregator

__all__ = ["BalanceAggregator"]
