"""Identity services package."""

from tenant_ledger.services.identity.provider import (
    IdentityProvider,
    StaticIdentityProvider,
)

__all__ = ["IdentityProvider", "StaticIdentityProvider"]
