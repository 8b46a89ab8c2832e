"""
Tenant Ledger - Source Package

A multi-tenant ledger engine: accounts and sub-accounts whose balances
are derived from an append-style transaction log.

DESIGN PRINCIPLES:
1. Every operation takes an explicit tenant id
2. Every read is re-checked for ownership
3. Each logical write is one atomic batch
4. Cached balances are derived, never authoritative
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Tenant Ledger Team"
