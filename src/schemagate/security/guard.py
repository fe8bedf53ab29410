"""Session/route guard: page-level gate ahead of any data operation.

Provides:
- ``RouteClass`` / ``RouteTable``: classify a request path as protected,
  auth-only (login/signup surface) or public.
- ``GuardDecision``: pass through, or redirect with a location.
- ``RouteGuard``: decides per request; ``check`` first resolves the session
  through the external identity collaborator.

This gate only answers "may this visitor see this page". Record-level access
is decided separately by ``schemagate.permissions``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from urllib.parse import quote, urlencode

from ..config import RouteConfig
from ..exceptions import ConfigurationError
from ..identity import Credential, IdentityVerifier, extract_credential_from_http_request, resolve_session
from ..session import Session

logger = logging.getLogger(__name__)


# ── Route classification ─────────────────────────────────────────


class RouteClass(str, Enum):
    PROTECTED = "protected"
    AUTH_ONLY = "auth_only"
    PUBLIC = "public"


def _strip_path(path: str) -> str:
    path = path.split("#", 1)[0].split("?", 1)[0]
    return path or "/"


def _prefix_matches(prefix: str, path: str) -> bool:
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix + "/")


@dataclass(frozen=True)
class RouteTable:
    """Protected and auth-only path prefixes.

    Prefixes match whole path segments (``/admin`` covers ``/admin/users``
    but not ``/administrator``). When several prefixes match, the longest
    one decides.
    """

    protected: tuple[str, ...] = ()
    auth_only: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "protected", tuple(self.protected))
        object.__setattr__(self, "auth_only", tuple(self.auth_only))
        overlap = set(self.protected) & set(self.auth_only)
        if overlap:
            raise ConfigurationError(
                f"Route prefixes cannot be both protected and auth-only: {sorted(overlap)}",
                prefixes=sorted(overlap),
            )

    @classmethod
    def from_config(cls, routes: RouteConfig) -> RouteTable:
        return cls(protected=tuple(routes.protected), auth_only=tuple(routes.auth_only))

    def classify(self, path: str) -> RouteClass:
        path = _strip_path(path)
        best: Optional[tuple[int, RouteClass]] = None
        for route_class, prefixes in ((RouteClass.PROTECTED, self.protected), (RouteClass.AUTH_ONLY, self.auth_only)):
            for prefix in prefixes:
                if _prefix_matches(prefix, path) and (best is None or len(prefix) > best[0]):
                    best = (len(prefix), route_class)
        return best[1] if best is not None else RouteClass.PUBLIC


# ── Guard decision ───────────────────────────────────────────────


class GuardAction(str, Enum):
    PASS = "pass"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class GuardDecision:
    """Result of a route check."""

    action: GuardAction
    route_class: RouteClass
    location: Optional[str] = None
    reason: str = ""
    session: Optional[Session] = field(default=None, compare=False)

    @property
    def redirect(self) -> bool:
        return self.action is GuardAction.REDIRECT

    @property
    def passed(self) -> bool:
        return self.action is GuardAction.PASS


# ── Route guard ──────────────────────────────────────────────────


class RouteGuard:
    """Per-request route gate.

    Rules:
        protected + no valid session  -> redirect to the auth surface,
                                         carrying the path as resume parameter
        auth-only + valid session     -> redirect to the default destination
        anything else                 -> pass through

    A valid session is a signed-in user; API-key callers and anonymous
    visitors count as "no session".
    """

    def __init__(self, config: Optional[RouteConfig] = None, table: Optional[RouteTable] = None) -> None:
        self._config = config or RouteConfig()
        self._table = table or RouteTable.from_config(self._config)

    @property
    def table(self) -> RouteTable:
        return self._table

    def classify(self, path: str) -> RouteClass:
        return self._table.classify(path)

    def login_location(self, path: str) -> str:
        query = urlencode({self._config.resume_param: _strip_path(path)}, quote_via=quote, safe="/")
        return f"{self._config.auth_path}?{query}"

    def decide(self, path: str, session: Optional[Session]) -> GuardDecision:
        """Pure decision from the path and the session (None = no session)."""
        route_class = self._table.classify(path)
        has_session = session is not None and session.authenticated

        if route_class is RouteClass.PROTECTED and not has_session:
            location = self.login_location(path)
            logger.info("Redirecting unauthenticated request for %s to %s", _strip_path(path), location)
            return GuardDecision(
                action=GuardAction.REDIRECT,
                route_class=route_class,
                location=location,
                reason="authentication required",
                session=session,
            )

        if route_class is RouteClass.AUTH_ONLY and has_session:
            logger.debug("Signed-in user on auth route %s, redirecting", _strip_path(path))
            return GuardDecision(
                action=GuardAction.REDIRECT,
                route_class=route_class,
                location=self._config.default_destination,
                reason="already signed in",
                session=session,
            )

        return GuardDecision(action=GuardAction.PASS, route_class=route_class, session=session)

    async def check(
        self,
        path: str,
        credential: Optional[Credential],
        verifier: IdentityVerifier,
    ) -> GuardDecision:
        """Resolve the session for ``credential``, then decide."""
        session = await resolve_session(credential, verifier)
        return self.decide(path, session)

    async def check_request(self, request, verifier: IdentityVerifier) -> GuardDecision:
        """Check an HTTP request (Django ``request.path`` or Starlette ``request.url.path``)."""
        path = getattr(request, "path", None)
        if not isinstance(path, str):
            path = request.url.path
        credential = extract_credential_from_http_request(request)
        return await self.check(path, credential, verifier)


__all__ = [
    "GuardAction",
    "GuardDecision",
    "RouteClass",
    "RouteGuard",
    "RouteTable",
]
