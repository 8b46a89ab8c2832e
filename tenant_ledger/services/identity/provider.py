"""
Identity Provider Interface

The ledger never authenticates anyone itself. Whatever sits in front of
it (a web session, a CLI login, a test) asks an IdentityProvider which
tenant the caller is, and passes that id explicitly into every operation.

The tenant id is opaque: the ledger only requires that it is a
non-empty string and never inspects its structure.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping

from tenant_ledger.errors import AuthorizationError


class IdentityProvider(ABC):
    """Resolves an authenticated session to a tenant id."""

    @abstractmethod
    async def get_tenant_id(self, session: Any) -> str:
        """
        Get the tenant id of the session's caller.

        Raises:
            AuthorizationError: If the session is not authenticated
        """
        pass


class StaticIdentityProvider(IdentityProvider):
    """
    Identity provider backed by a fixed token → tenant mapping.

    Useful for tests and for embedding the ledger behind an
    authentication layer that has already resolved the caller.
    """

    def __init__(self, sessions: Mapping[str, str]):
        self._sessions = dict(sessions)

    async def get_tenant_id(self, session: Any) -> str:
        tenant_id = self._sessions.get(session)
        if not tenant_id:
            raise AuthorizationError(
                "session", None, "User is not authenticated. A tenant id is required."
            )
        return tenant_id
