"""Request-scoped identity context.

A Session is created per request from whatever the identity collaborator
resolved (a verified user-pool token, an API key, or nothing), handed to the
route guard and the rule evaluator, and discarded when the request ends.
It is never persisted and never shared across requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class AuthMode(str, Enum):
    """How the caller proved its identity."""

    USER_POOL = "user_pool"  # Signed-in user (session token)
    API_KEY = "api_key"  # Public API key, no user behind it
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class Session:
    """Identity context for one request.

    Attributes:
        subject_id: Stable identity of the signed-in user (None = nobody).
        email: Optional email claim.
        groups: Group memberships (e.g. ``{"editor"}``).
        authenticated: True only for signed-in users.
        auth_mode: Transport the identity came through.
        api_key_id: Identifier of the API key for API-key requests.

    API-key requests are not sessions: they carry no subject and are not
    authenticated, they only qualify for public-key rules.
    """

    subject_id: str | None = None
    email: str | None = None
    groups: frozenset[str] = frozenset()
    authenticated: bool = False
    auth_mode: AuthMode = AuthMode.ANONYMOUS
    api_key_id: str | None = None

    def __post_init__(self) -> None:
        if self.authenticated and not self.subject_id:
            raise ValueError("Authenticated session requires a subject_id")
        if self.authenticated and self.auth_mode is not AuthMode.USER_POOL:
            raise ValueError("Only user-pool sessions can be authenticated")

    @classmethod
    def anonymous(cls) -> Session:
        """Session for a request without any credential."""
        return cls()

    @classmethod
    def for_user(
        cls,
        subject_id: str,
        *,
        email: str | None = None,
        groups: Iterable[str] = (),
    ) -> Session:
        """Session for a signed-in user."""
        return cls(
            subject_id=subject_id,
            email=email,
            groups=frozenset(groups),
            authenticated=True,
            auth_mode=AuthMode.USER_POOL,
        )

    @classmethod
    def for_api_key(cls, api_key_id: str) -> Session:
        """Context for a request authenticated by a public API key."""
        return cls(auth_mode=AuthMode.API_KEY, api_key_id=api_key_id)

    @property
    def is_anonymous(self) -> bool:
        return not self.authenticated

    @property
    def via_api_key(self) -> bool:
        return self.auth_mode is AuthMode.API_KEY

    def in_group(self, group: str) -> bool:
        """Check group membership. Only signed-in users have groups."""
        return self.authenticated and group in self.groups


__all__ = ["AuthMode", "Session"]
