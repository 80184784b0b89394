"""Auth gateway protocol."""

from typing import Any, Protocol

from kaamconnect.core.channel import Subscription
from kaamconnect.domain.entities.session import AuthEvent, Session


class IAuthGateway(Protocol):
    """Interface to the remote auth service.

    Failures raise ``RemoteError`` (usually ``AuthApiError``).
    """

    async def get_session(self) -> Session | None:
        """Return the current session, or None when signed out."""
        ...

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        """Sign in with email and password."""
        ...

    async def sign_up(
        self, email: str, password: str, metadata: dict[str, Any] | None = None
    ) -> Session | None:
        """Register a new user.

        Returns None when the server requires confirmation before issuing a session.
        """
        ...

    async def sign_out(self) -> None:
        """End the current session. Completion is announced as SIGNED_OUT."""
        ...

    def subscribe(self) -> Subscription[AuthEvent]:
        """Ordered stream of auth state changes; close it at teardown."""
        ...
