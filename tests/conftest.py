"""
Shared fixtures for the ledger tests.

Every test runs against a fresh InMemoryDocumentStore; no test talks
to Google Sheets.
"""

import pytest
import pytest_asyncio

from tenant_ledger.config import LedgerSettings
from tenant_ledger.orchestrator import LedgerComponents, create_ledger_components
from tenant_ledger.services.storage import InMemoryDocumentStore


TENANT = "tenant-alice"
OTHER_TENANT = "tenant-bob"


@pytest.fixture
def settings() -> LedgerSettings:
    """Settings independent of the environment."""
    return LedgerSettings(
        storage_backend="memory",
        default_color="#2196f3",
        max_batch_size=500,
        conflict_retry_attempts=5,
        persist_audit_events=True,
        log_level="WARNING",
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def ledger(store, settings) -> LedgerComponents:
    return create_ledger_components(store, settings)


@pytest_asyncio.fixture
async def hierarchy(ledger) -> dict:
    """
    Two accounts, each with one sub-account, all owned by TENANT.

    a1 (Asset) -> s1, a2 (Asset) -> s2
    """
    a1 = await ledger.accounts.create_account(TENANT, {"account_type": "Asset", "name": "Bank"})
    s1 = await ledger.accounts.create_sub_account(TENANT, a1, {"name": "Checking"})
    a2 = await ledger.accounts.create_account(TENANT, {"account_type": "Asset", "name": "Wallet"})
    s2 = await ledger.accounts.create_sub_account(TENANT, a2, {"name": "Cash"})
    return {"a1": a1, "s1": s1, "a2": a2, "s2": s2}


def income(account_id: str, sub_account_id: str, amount: str, **extra) -> dict:
    return {
        "account_id": account_id,
        "sub_account_id": sub_account_id,
        "transaction_type": "Income",
        "amount": amount,
        **extra,
    }


def expense(account_id: str, sub_account_id: str, amount: str, **extra) -> dict:
    return {
        "account_id": account_id,
        "sub_account_id": sub_account_id,
        "transaction_type": "Expense",
        "amount": amount,
        **extra,
    }


def transfer(
    account_id: str,
    sub_account_id: str,
    to_account_id: str,
    to_sub_account_id: str,
    amount: str,
    **extra,
) -> dict:
    return {
        "account_id": account_id,
        "sub_account_id": sub_account_id,
        "transaction_type": "Transfer",
        "amount": amount,
        "to_account_id": to_account_id,
        "to_sub_account_id": to_sub_account_id,
        **extra,
    }
