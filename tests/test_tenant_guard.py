"""Tests for TenantGuard and payload parsing."""

import pytest

from tenant_ledger.audit import AuditLogger
from tenant_ledger.errors import AuthorizationError, NotFoundError, ValidationError
from tenant_ledger.models.audit import AuditEventType
from tenant_ledger.models.ledger import AccountCreate, TransactionCreate
from tenant_ledger.services.identity import StaticIdentityProvider
from tenant_ledger.services.storage import InMemoryDocumentStore
from tenant_ledger.validation import (
    SUB_ACCOUNT_PROTECTED_FIELDS,
    TRANSACTION_PROTECTED_FIELDS,
    TenantGuard,
    parse_payload,
)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def guard(store) -> TenantGuard:
    return TenantGuard(AuditLogger(store))


async def _put(store, collection, doc_id, data):
    batch = store.batch()
    batch.set(collection, doc_id, data)
    await store.commit(batch)


class NumericIdentityProvider(StaticIdentityProvider):
    """Provider that hands out non-string tenant ids."""

    async def get_tenant_id(self, session):
        return 1234


class TestValidate:
    """Tests for tenant id validation."""

    def test_returns_trimmed_id(self, guard):
        assert guard.validate("  tenant-1 ") == "tenant-1"

    @pytest.mark.parametrize("bad", [None, "", "   "])
    def test_missing_or_blank_id(self, guard, bad):
        with pytest.raises(ValidationError) as excinfo:
            guard.validate(bad)
        assert excinfo.value.field == "tenant_id"

    def test_non_string_id(self, guard):
        with pytest.raises(ValidationError, match="must be a string"):
            guard.validate(42)

    def test_caller_mismatch(self, guard):
        """Test that a different caller identity is refused."""
        with pytest.raises(AuthorizationError) as excinfo:
            guard.validate("tenant-1", caller_id="tenant-2")
        assert excinfo.value.tenant_id == "tenant-2"

    @pytest.mark.parametrize("caller", [42, ["tenant-1"], "", "  "])
    def test_unusable_caller_id(self, guard, caller):
        with pytest.raises(AuthorizationError) as excinfo:
            guard.validate("tenant-1", caller_id=caller)
        assert excinfo.value.tenant_id is None

    def test_caller_match(self, guard):
        assert guard.validate("tenant-1", caller_id="tenant-1") == "tenant-1"

    def test_require_tenant(self, guard):
        assert guard.require_tenant("tenant-1") == "tenant-1"
        with pytest.raises(ValidationError):
            guard.require_tenant(None)


class TestAuthorize:
    """Tests for identity provider integration."""

    @pytest.mark.asyncio
    async def test_authorized_session(self, guard):
        provider = StaticIdentityProvider({"token-a": "tenant-a"})
        assert await guard.authorize(provider, "token-a", "tenant-a") == "tenant-a"

    @pytest.mark.asyncio
    async def test_session_for_other_tenant(self, guard, store):
        """Test that a session cannot act for another tenant."""
        provider = StaticIdentityProvider({"token-a": "tenant-a"})
        with pytest.raises(AuthorizationError):
            await guard.authorize(provider, "token-a", "tenant-b")

        events = await AuditLogger(store).recent_events("tenant-a")
        assert events[0].event_type == AuditEventType.AUTHORIZATION_DENIED

    @pytest.mark.asyncio
    async def test_unknown_session(self, guard):
        provider = StaticIdentityProvider({})
        with pytest.raises(AuthorizationError, match="not authenticated"):
            await guard.authorize(provider, "nope", "tenant-a")

    @pytest.mark.asyncio
    async def test_non_string_session_tenant(self, guard, store):
        """A provider returning a non-string id never authorizes anything."""
        with pytest.raises(AuthorizationError) as excinfo:
            await guard.authorize(NumericIdentityProvider({}), "token-a", "1234")
        assert excinfo.value.tenant_id is None
        assert store.commit_count == 0


class TestOwnership:
    """Tests for document ownership checks."""

    def test_verify_ownership(self, guard):
        guard.verify_ownership({"tenant_id": "t1"}, "t1", "account")
        with pytest.raises(AuthorizationError):
            guard.verify_ownership({"tenant_id": "t2"}, "t1", "account")
        with pytest.raises(AuthorizationError):
            guard.verify_ownership({}, "t1", "account")

    @pytest.mark.asyncio
    async def test_load_owned(self, guard, store):
        await _put(store, "accounts", "a1", {"tenant_id": "t1"})
        document = await guard.load_owned(store, "accounts", "a1", "t1", "account")
        assert document["id"] == "a1"

    @pytest.mark.asyncio
    async def test_load_owned_missing(self, guard, store):
        with pytest.raises(NotFoundError) as excinfo:
            await guard.load_owned(store, "accounts", "nope", "t1", "account")
        assert excinfo.value.resource == "account"
        assert excinfo.value.id == "nope"

    @pytest.mark.asyncio
    async def test_load_owned_requires_id(self, guard, store):
        with pytest.raises(ValidationError) as excinfo:
            await guard.load_owned(store, "accounts", "  ", "t1", "account")
        assert excinfo.value.field == "account_id"

    @pytest.mark.asyncio
    async def test_load_owned_foreign_document_is_audited(self, guard, store):
        """A cross-tenant read fails and leaves an audit trail."""
        await _put(store, "accounts", "a1", {"tenant_id": "t2"})
        with pytest.raises(AuthorizationError):
            await guard.load_owned(store, "accounts", "a1", "t1", "account")

        events = await AuditLogger(store).recent_events("t1")
        assert events[0].event_type == AuditEventType.AUTHORIZATION_DENIED
        assert events[0].entity_id == "a1"

    def test_filter_owned_drops_foreign_documents(self, guard):
        documents = [
            {"id": "a1", "tenant_id": "t1"},
            {"id": "a2", "tenant_id": "t2"},
        ]
        assert guard.filter_owned(documents, "t1", "account") == [documents[0]]


class TestStripProtected:
    """Tests for protect-by-omission on updates."""

    @pytest.mark.asyncio
    async def test_strips_parent_and_tenant(self, guard, store):
        patch = {"name": "New", "tenant_id": "evil", "account_id": "a9"}
        cleaned = await guard.strip_protected(
            patch, SUB_ACCOUNT_PROTECTED_FIELDS, "sub_account", "t1"
        )
        assert cleaned == {"name": "New"}
        # Caller's payload is untouched
        assert "tenant_id" in patch

        events = await AuditLogger(store).recent_events("t1")
        assert events[0].event_type == AuditEventType.PROTECTED_FIELDS_STRIPPED
        assert events[0].details["fields"] == ["account_id", "tenant_id"]

    @pytest.mark.asyncio
    async def test_nothing_to_strip_is_not_audited(self, guard, store):
        cleaned = await guard.strip_protected(
            {"amount": "5"}, TRANSACTION_PROTECTED_FIELDS, "transaction", "t1"
        )
        assert cleaned == {"amount": "5"}
        assert await AuditLogger(store).recent_events("t1") == []

    def test_transaction_fields_cover_transfer_wiring(self):
        for field in ("sub_account_id", "linked_transaction_id", "to_account_id", "transfer_type"):
            assert field in TRANSACTION_PROTECTED_FIELDS


class TestParsePayload:
    """Tests for translating pydantic errors."""

    def test_model_instance_passes_through(self):
        payload = AccountCreate(account_type="Asset")
        assert parse_payload(AccountCreate, payload) is payload

    def test_mapping_is_validated(self):
        payload = parse_payload(AccountCreate, {"account_type": "Equity"})
        assert payload.account_type.value == "Equity"

    def test_bad_enum_names_field(self):
        with pytest.raises(ValidationError) as excinfo:
            parse_payload(AccountCreate, {"account_type": "Savings"})
        assert excinfo.value.field == "account_type"

    def test_non_positive_amount_names_field(self):
        with pytest.raises(ValidationError) as excinfo:
            parse_payload(TransactionCreate, {
                "account_id": "a1",
                "sub_account_id": "s1",
                "transaction_type": "Income",
                "amount": "0",
            })
        assert excinfo.value.field == "amount"

    def test_model_level_error_names_payload(self):
        with pytest.raises(ValidationError) as excinfo:
            parse_payload(TransactionCreate, {
                "account_id": "a1",
                "sub_account_id": "s1",
                "transaction_type": "Transfer",
                "amount": "10",
            })
        assert excinfo.value.field == "payload"
        assert "to_account_id" in excinfo.value.reason

    def test_non_mapping_rejected(self):
        with pytest.raises(ValidationError):
            parse_payload(AccountCreate, ["Asset"])
