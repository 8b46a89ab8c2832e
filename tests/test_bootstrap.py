"""Tests for tenant bootstrap and component wiring."""

import pytest

from conftest import OTHER_TENANT, TENANT
from tenant_ledger.bootstrap import DEFAULT_ACCOUNTS, initialize_tenant_accounts
from tenant_ledger.errors import ValidationError
from tenant_ledger.models.audit import AuditEventType
from tenant_ledger.orchestrator import build_document_store, create_ledger_components
from tenant_ledger.services.storage import InMemoryDocumentStore


class TestBootstrap:
    """Tests for initialize_tenant_accounts."""

    @pytest.mark.asyncio
    async def test_creates_default_chart(self, ledger):
        result = await ledger.initialize_tenant(TENANT)

        assert not result.skipped
        assert len(result.account_ids) == 5
        assert len(result.sub_account_ids) == 11
        assert result.message == "Successfully initialized 5 accounts and 11 sub-accounts"

        accounts = await ledger.accounts.list_accounts(TENANT)
        assert [a.name for a in accounts] == [
            "Assets", "Equity", "Expenses", "Income", "Liabilities",
        ]

    @pytest.mark.asyncio
    async def test_sub_accounts_share_account_color(self, ledger):
        await ledger.initialize_tenant(TENANT)

        for account in await ledger.accounts.list_accounts(TENANT):
            config = next(c for c in DEFAULT_ACCOUNTS if c["name"] == account.name)
            sub_accounts = await ledger.accounts.list_sub_accounts(TENANT, account.id)

            assert account.color == config["color"]
            assert sorted(s.name for s in sub_accounts) == sorted(config["sub_accounts"])
            assert {s.color for s in sub_accounts} == {config["color"]}

    @pytest.mark.asyncio
    async def test_second_run_is_skipped(self, ledger, store):
        await ledger.initialize_tenant(TENANT)
        commits = store.commit_count

        result = await ledger.initialize_tenant(TENANT)

        assert result.skipped
        assert result.message == "Tenant already has accounts; nothing created"
        assert store.commit_count == commits
        assert len(await ledger.accounts.list_accounts(TENANT)) == 5

    @pytest.mark.asyncio
    async def test_tenants_are_initialized_independently(self, ledger):
        await ledger.initialize_tenant(TENANT)
        result = await ledger.initialize_tenant(OTHER_TENANT)

        assert not result.skipped
        assert len(await ledger.accounts.list_accounts(OTHER_TENANT)) == 5

    @pytest.mark.asyncio
    async def test_records_audit_event(self, ledger):
        await initialize_tenant_accounts(ledger.accounts, TENANT, ledger.audit_logger)

        events = await ledger.audit_logger.recent_events(TENANT, limit=1)
        assert events[0].event_type == AuditEventType.TENANT_INITIALIZED
        assert events[0].details == {"account_count": 5, "sub_account_count": 11}

    @pytest.mark.asyncio
    async def test_invalid_tenant(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.initialize_tenant("   ")


class TestWiring:
    """Tests for the component factory."""

    def test_memory_backend(self, settings):
        store = build_document_store(settings.model_copy(update={"max_batch_size": 50}))
        assert isinstance(store, InMemoryDocumentStore)
        assert len(store.batch().operations) == 0

    def test_components_share_one_store(self, store, settings):
        ledger = create_ledger_components(store, settings)
        assert ledger.store is store
        assert ledger.audit_logger.store is store

    def test_audit_persistence_can_be_disabled(self, store, settings):
        ledger = create_ledger_components(
            store, settings.model_copy(update={"persist_audit_events": False})
        )
        assert ledger.audit_logger.store is None
