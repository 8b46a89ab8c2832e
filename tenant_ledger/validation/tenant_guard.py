"""
Tenant Guard

DESIGN DECISION: Tenant isolation is enforced in two layers.

LAYER 1 - QUERY SCOPING:
- Every query the ledger issues carries a tenant_id equality filter

LAYER 2 - DOCUMENT RE-VERIFICATION:
- Every document read by id is checked against the caller's tenant
- A mismatch raises AuthorizationError even if the store returned it

Partial updates never fail because of protected fields. tenant_id,
parent references and store-managed fields are dropped from the patch
("protect by omission") and the drop is logged.
"""

from typing import Any, Iterable, Mapping, Optional, TypeVar

import pydantic
import structlog

from tenant_ledger.audit import AuditLogger
from tenant_ledger.errors import AuthorizationError, NotFoundError, ValidationError
from tenant_ledger.services.identity import IdentityProvider
from tenant_ledger.services.storage import DocumentStore


ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)

logger = structlog.get_logger("tenant_ledger.tenant_guard")


# Fields no update payload may change, per resource
STORE_MANAGED_FIELDS = frozenset({"id", "tenant_id", "version", "created_at", "updated_at"})

ACCOUNT_PROTECTED_FIELDS = STORE_MANAGED_FIELDS | {"total_balance"}
SUB_ACCOUNT_PROTECTED_FIELDS = STORE_MANAGED_FIELDS | {"account_id", "balance"}
TRANSACTION_PROTECTED_FIELDS = STORE_MANAGED_FIELDS | {
    "account_id",
    "sub_account_id",
    "transfer_type",
    "linked_transaction_id",
    "to_account_id",
    "to_sub_account_id",
    "from_account_id",
    "from_sub_account_id",
}


def parse_payload(model_cls: type[ModelT], payload: Any) -> ModelT:
    """
    Validate a payload into a pydantic model.

    Accepts an instance of the model or a mapping. pydantic errors are
    reported as a ValidationError naming the first offending field.
    """
    if isinstance(payload, model_cls):
        return payload
    if not isinstance(payload, Mapping):
        raise ValidationError("payload", f"expected a mapping, got {type(payload).__name__}")

    try:
        return model_cls.model_validate(dict(payload))
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "payload"
        raise ValidationError(field, first["msg"])


class TenantGuard:
    """
    Validates tenant ids and checks that documents belong to the caller.

    Every public ledger operation starts with require_tenant().
    """

    def __init__(self, audit_logger: Optional[AuditLogger] = None):
        self._audit = audit_logger or AuditLogger()

    def validate(self, tenant_id: Any, caller_id: Optional[str] = None) -> str:
        """
        Validate a tenant id, optionally against the authenticated caller.

        Returns:
            The tenant id with surrounding whitespace removed

        Raises:
            ValidationError: If the id is missing, not a string or blank
            AuthorizationError: If caller_id is given and is not a usable
                tenant id or differs
        """
        if tenant_id is None:
            raise ValidationError("tenant_id", "User ID is required")
        if not isinstance(tenant_id, str):
            raise ValidationError("tenant_id", "User ID must be a string")

        tenant_id = tenant_id.strip()
        if not tenant_id:
            raise ValidationError("tenant_id", "User ID cannot be empty")

        if caller_id is not None:
            if not isinstance(caller_id, str) or not caller_id.strip():
                raise AuthorizationError("tenant", None)
            if caller_id.strip() != tenant_id:
                raise AuthorizationError("tenant", caller_id)

        return tenant_id

    def require_tenant(self, tenant_id: Any) -> str:
        """Entry point of every ledger operation."""
        return self.validate(tenant_id)

    async def authorize(
        self,
        provider: IdentityProvider,
        session: Any,
        tenant_id: Any,
    ) -> str:
        """Resolve the session's tenant and check `tenant_id` against it."""
        caller_id = await provider.get_tenant_id(session)
        try:
            return self.validate(tenant_id, caller_id)
        except AuthorizationError:
            denied_tenant = caller_id.strip() if isinstance(caller_id, str) else None
            await self._audit.log_authorization_denied(denied_tenant or None, "tenant", None)
            raise

    def verify_ownership(
        self,
        document: Mapping[str, Any],
        tenant_id: str,
        resource: str,
    ) -> None:
        """Raise AuthorizationError unless `document` belongs to `tenant_id`."""
        if not document.get("tenant_id") or document["tenant_id"] != tenant_id:
            raise AuthorizationError(resource, tenant_id)

    def filter_owned(
        self,
        documents: Iterable[Mapping[str, Any]],
        tenant_id: str,
        resource: str,
    ) -> list:
        """Drop query results that do not belong to `tenant_id`."""
        owned = []
        for document in documents:
            if document.get("tenant_id") != tenant_id:
                logger.warning(
                    "foreign_document_in_results",
                    resource=resource,
                    id=document.get("id"),
                    tenant_id=tenant_id,
                )
                continue
            owned.append(document)
        return owned

    async def load_owned(
        self,
        store: DocumentStore,
        collection: str,
        doc_id: Any,
        tenant_id: str,
        resource: str,
    ) -> dict:
        """
        Read a document by id and verify the caller owns it.

        Raises:
            ValidationError: If doc_id is missing or blank
            NotFoundError: If the document does not exist
            AuthorizationError: If it belongs to another tenant
        """
        if not isinstance(doc_id, str) or not doc_id.strip():
            raise ValidationError(f"{resource}_id", f"{resource} id is required")

        document = await store.get(collection, doc_id)
        if document is None:
            raise NotFoundError(resource, doc_id)

        try:
            self.verify_ownership(document, tenant_id, resource)
        except AuthorizationError:
            await self._audit.log_authorization_denied(tenant_id, resource, doc_id)
            raise
        return document

    async def strip_protected(
        self,
        patch: Mapping[str, Any],
        protected: Iterable[str],
        resource: str,
        tenant_id: str,
    ) -> dict:
        """
        Return a copy of `patch` without protected keys.

        Removal is silent for the caller; it is recorded in the audit log.
        """
        if not isinstance(patch, Mapping):
            return patch

        protected = frozenset(protected)
        stripped = sorted(key for key in patch if key in protected)
        if stripped:
            logger.warning(
                "protected_fields_stripped",
                resource=resource,
                tenant_id=tenant_id,
                fields=stripped,
            )
            await self._audit.log_fields_stripped(tenant_id, resource, stripped)

        return {key: value for key, value in patch.items() if key not in protected}
