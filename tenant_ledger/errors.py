"""
Ledger Error Types

DESIGN DECISION: A closed set of error kinds, each carrying the structured
fields a caller needs to present it. No string-only errors.

- ValidationError: malformed or missing input
- AuthorizationError: tenant mismatch
- NotFoundError: referenced entity does not exist
- ConsistencyWarning: non-fatal anomaly, the operation still proceeds

Validation and authorization failures are raised immediately and never
retried. ConsistencyWarning is a Warning, issued through warnings.warn.
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class ValidationError(LedgerError):
    """A field is missing, malformed, or outside its allowed values."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class AuthorizationError(LedgerError):
    """The caller's tenant does not own the requested resource."""

    def __init__(self, resource: str, tenant_id: Optional[str], message: Optional[str] = None):
        self.resource = resource
        self.tenant_id = tenant_id
        super().__init__(
            message or f"Unauthorized: {resource} does not belong to the authenticated tenant"
        )


class NotFoundError(LedgerError):
    """A referenced entity does not exist."""

    def __init__(self, resource: str, id: str):
        self.resource = resource
        self.id = id
        super().__init__(f"{resource} not found: {id}")


class ConsistencyWarning(UserWarning):
    """A linked record was expected but is missing."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)
