"""Tenant isolation and payload validation."""

from tenant_ledger.validation.tenant_guard import (
    ACCOUNT_PROTECTED_FIELDS,
    SUB_ACCOUNT_PROTECTED_FIELDS,
    TRANSACTION_PROTECTED_FIELDS,
    TenantGuard,
    parse_payload,
)

__all__ = [
    "TenantGuard",
    "parse_payload",
    # Protected field sets
    "ACCOUNT_PROTECTED_FIELDS",
    "SUB_ACCOUNT_PROTECTED_FIELDS",
    "TRANSACTION_PROTECTED_FIELDS",
]
