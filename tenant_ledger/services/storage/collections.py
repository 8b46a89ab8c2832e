"""Collection names (schema-in-code).

Document stores create collections on first write. Use these constants
so collection names stay consistent across the ledger.
"""

ACCOUNTS = "accounts"
SUB_ACCOUNTS = "sub_accounts"
TRANSACTIONS = "transactions"
FAVORITES = "favorites"
AUDIT_LOG = "audit_log"
