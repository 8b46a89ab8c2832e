"""
Tenant Bootstrap

Creates the default chart of accounts for a new tenant.

The routine is a no-op for a tenant that already has any account, so it
is safe to call on every sign-in.
"""

from typing import Optional

import structlog

from tenant_ledger.accounts import LedgerStore
from tenant_ledger.audit import AuditLogger
from tenant_ledger.models.ledger import AccountType, BootstrapResult


logger = structlog.get_logger("tenant_ledger.bootstrap")


DEFAULT_ACCOUNTS = [
    {
        "account_type": AccountType.ASSET,
        "name": "Assets",
        "color": "#2196f3",
        "sub_accounts": ["Cash in Wallet", "Checking Account", "Savings Account"],
    },
    {
        "account_type": AccountType.LIABILITY,
        "name": "Liabilities",
        "color": "#f44336",
        "sub_accounts": ["Credit Cards", "Loans"],
    },
    {
        "account_type": AccountType.INCOME,
        "name": "Income",
        "color": "#4caf50",
        "sub_accounts": ["Salary", "Business Income"],
    },
    {
        "account_type": AccountType.EXPENSE,
        "name": "Expenses",
        "color": "#ff9800",
        "sub_accounts": ["Groceries", "Bills", "Entertainment"],
    },
    {
        "account_type": AccountType.EQUITY,
        "name": "Equity",
        "color": "#9c27b0",
        "sub_accounts": ["Opening Balances"],
    },
]


async def initialize_tenant_accounts(
    ledger_store: LedgerStore,
    tenant_id: str,
    audit_logger: Optional[AuditLogger] = None,
) -> BootstrapResult:
    """
    Create the default accounts and sub-accounts for a tenant.

    Sub-accounts share their account's color.

    Returns:
        BootstrapResult with the created ids, or skipped=True if the
        tenant already had accounts
    """
    audit = audit_logger or AuditLogger()

    if await ledger_store.list_accounts(tenant_id):
        logger.info("bootstrap_skipped", tenant_id=tenant_id)
        return BootstrapResult(skipped=True)
    # list_accounts has validated the id
    tenant_id = tenant_id.strip()

    result = BootstrapResult()
    try:
        for config in DEFAULT_ACCOUNTS:
            account_id = await ledger_store.create_account(tenant_id, {
                "account_type": config["account_type"],
                "name": config["name"],
                "color": config["color"],
                "is_favorite": False,
            })
            result.account_ids.append(account_id)

            for name in config["sub_accounts"]:
                sub_account_id = await ledger_store.create_sub_account(
                    tenant_id,
                    account_id,
                    {"name": name, "color": config["color"], "is_favorite": False},
                )
                result.sub_account_ids.append(sub_account_id)
    except Exception as e:
        logger.error(
            "bootstrap_failed",
            tenant_id=tenant_id,
            error=str(e),
            created_accounts=len(result.account_ids),
        )
        raise

    await audit.log_tenant_initialized(
        tenant_id, len(result.account_ids), len(result.sub_account_ids)
    )
    return result
