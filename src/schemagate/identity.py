"""Credential extraction and session resolution.

The engine never verifies tokens itself. This module:
- pulls the raw credential out of gRPC metadata or HTTP headers
- hands it to the external identity collaborator (an IdentityVerifier)
- falls back to an anonymous session when there is nothing to verify

Verification failures are logged and treated as "no session"; the route
guard and the rule evaluator then decide what an anonymous caller may do.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

import grpc

from .logging import safe_log_value
from .session import Session

logger = logging.getLogger(__name__)

# gRPC metadata keys
GRPC_AUTH_HEADER = "authorization"
GRPC_API_KEY_HEADER = "x-api-key"

# HTTP header keys
HTTP_AUTH_HEADER = "HTTP_AUTHORIZATION"
HTTP_API_KEY_HEADER = "X-Api-Key"

# Cookie carrying the session token for browser requests
SESSION_COOKIE = "session"


@dataclass(frozen=True)
class Credential:
    """Raw, unverified credential taken from a request.

    Attributes:
        kind: ``"bearer"`` for session tokens, ``"api_key"`` for API keys.
        value: The token or key string.
    """

    kind: str
    value: str

    def __repr__(self) -> str:
        return f"Credential(kind={self.kind!r}, value={safe_log_value(self.value, limit=12)!r})"


@runtime_checkable
class IdentityVerifier(Protocol):
    """External identity collaborator.

    Returns the resolved Session for a valid credential, or None when the
    credential is unknown, expired or forged.
    """

    async def verify(self, credential: Credential) -> Optional[Session]: ...


# =========================================
# gRPC credential extraction
# =========================================


def extract_credential_from_grpc_metadata(
    context: grpc.ServicerContext,
) -> Optional[Credential]:
    """Extract a credential from gRPC invocation metadata.

    Looks for:
    1. metadata['authorization'] (Bearer token)
    2. metadata['x-api-key'] (public API key)

    Args:
        context: gRPC servicer context with invocation_metadata()

    Returns:
        Credential if found, None otherwise
    """
    try:
        metadata = dict(context.invocation_metadata() or ())
    except (TypeError, ValueError) as e:
        logger.warning("Failed to read gRPC metadata: %s", e)
        return None

    auth_header = metadata.get(GRPC_AUTH_HEADER, "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return Credential(kind="bearer", value=token)

    api_key = metadata.get(GRPC_API_KEY_HEADER, "").strip()
    if api_key:
        return Credential(kind="api_key", value=api_key)

    return None


# =========================================
# HTTP credential extraction
# =========================================


def extract_credential_from_http_request(request) -> Optional[Credential]:
    """Extract a credential from an HTTP request (Django/Starlette style).

    Looks for:
    1. request.META['HTTP_AUTHORIZATION'] / request.headers['authorization'] (Bearer)
    2. request.META['HTTP_X_API_KEY'] / request.headers['x-api-key']
    3. request.cookies['session'] (browser session token)

    Args:
        request: Django HttpRequest or Starlette/FastAPI Request object

    Returns:
        Credential if found, None otherwise
    """
    meta = getattr(request, "META", None)
    if isinstance(meta, dict):
        auth_header = meta.get(HTTP_AUTH_HEADER, "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
            if token:
                return Credential(kind="bearer", value=token)

        api_key = meta.get(f"HTTP_{HTTP_API_KEY_HEADER.upper().replace('-', '_')}", "").strip()
        if api_key:
            return Credential(kind="api_key", value=api_key)

    headers = getattr(request, "headers", None)
    if headers is not None:
        auth_header = headers.get("authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
            if token:
                return Credential(kind="bearer", value=token)

        api_key = headers.get(HTTP_API_KEY_HEADER.lower(), "").strip()
        if api_key:
            return Credential(kind="api_key", value=api_key)

    cookies = getattr(request, "cookies", None)
    if cookies is not None:
        token = (cookies.get(SESSION_COOKIE) or "").strip()
        if token:
            return Credential(kind="bearer", value=token)

    return None


# =========================================
# Session resolution
# =========================================


async def resolve_session(
    credential: Optional[Credential],
    verifier: IdentityVerifier,
) -> Session:
    """Resolve the request Session through the identity collaborator.

    A missing credential, a rejected credential and a verifier failure all
    yield an anonymous session. Verifier exceptions are logged, not raised.
    """
    if credential is None:
        return Session.anonymous()

    try:
        session = await verifier.verify(credential)
    except Exception as e:
        logger.warning("Identity verification failed for %r: %s", credential, e)
        return Session.anonymous()

    if session is None:
        logger.info("Credential rejected by identity verifier: %r", credential)
        return Session.anonymous()

    return session


__all__ = [
    "Credential",
    "IdentityVerifier",
    "extract_credential_from_grpc_metadata",
    "extract_credential_from_http_request",
    "resolve_session",
    "GRPC_AUTH_HEADER",
    "GRPC_API_KEY_HEADER",
    "HTTP_AUTH_HEADER",
    "HTTP_API_KEY_HEADER",
    "SESSION_COOKIE",
]
