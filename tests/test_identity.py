"""Tests for credential extraction and session resolution."""

from __future__ import annotations

import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from schemagate import Credential, IdentityVerifier, Session, resolve_session
from schemagate.identity import (
    extract_credential_from_grpc_metadata,
    extract_credential_from_http_request,
)


def _grpc_context(metadata) -> MagicMock:
    context = MagicMock()
    context.invocation_metadata.return_value = metadata
    return context


class TestGrpcExtraction:
    """Credentials from gRPC metadata."""

    def test_bearer_token(self) -> None:
        context = _grpc_context([("authorization", "Bearer tok-123")])
        assert extract_credential_from_grpc_metadata(context) == Credential("bearer", "tok-123")

    def test_api_key(self) -> None:
        context = _grpc_context([("x-api-key", "key-1")])
        assert extract_credential_from_grpc_metadata(context) == Credential("api_key", "key-1")

    def test_bearer_wins_over_api_key(self) -> None:
        context = _grpc_context([("x-api-key", "key-1"), ("authorization", "Bearer tok-123")])
        assert extract_credential_from_grpc_metadata(context).kind == "bearer"

    def test_no_credential(self) -> None:
        assert extract_credential_from_grpc_metadata(_grpc_context([])) is None
        assert extract_credential_from_grpc_metadata(_grpc_context(None)) is None

    def test_non_bearer_authorization_ignored(self) -> None:
        context = _grpc_context([("authorization", "Basic dXNlcjpwdw==")])
        assert extract_credential_from_grpc_metadata(context) is None


class TestHttpExtraction:
    """Credentials from Django/Starlette style requests."""

    def test_django_meta(self) -> None:
        request = SimpleNamespace(META={"HTTP_AUTHORIZATION": "Bearer tok-1"})
        assert extract_credential_from_http_request(request) == Credential("bearer", "tok-1")

    def test_django_meta_api_key(self) -> None:
        request = SimpleNamespace(META={"HTTP_X_API_KEY": "key-1"})
        assert extract_credential_from_http_request(request) == Credential("api_key", "key-1")

    def test_headers(self) -> None:
        request = SimpleNamespace(headers={"authorization": "Bearer tok-2"})
        assert extract_credential_from_http_request(request) == Credential("bearer", "tok-2")

    def test_headers_api_key(self) -> None:
        request = SimpleNamespace(headers={"x-api-key": "key-2"})
        assert extract_credential_from_http_request(request) == Credential("api_key", "key-2")

    def test_session_cookie(self) -> None:
        request = SimpleNamespace(headers={}, cookies={"session": "tok-3"})
        assert extract_credential_from_http_request(request) == Credential("bearer", "tok-3")

    def test_nothing(self) -> None:
        assert extract_credential_from_http_request(SimpleNamespace()) is None


class TestCredential:
    def test_repr_does_not_leak_value(self) -> None:
        credential = Credential("bearer", "password=supersecretvalue")
        assert "supersecretvalue" not in repr(credential)


class _Verifier:
    def __init__(self, session=None, error=None) -> None:
        self.verify = AsyncMock(return_value=session, side_effect=error)


class TestResolveSession:
    """Session resolution through the identity collaborator."""

    def test_verifier_protocol(self) -> None:
        assert isinstance(_Verifier(), IdentityVerifier)

    @pytest.mark.asyncio
    async def test_no_credential_is_anonymous(self) -> None:
        verifier = _Verifier(Session.for_user("u1"))
        session = await resolve_session(None, verifier)
        assert session.is_anonymous
        verifier.verify.assert_not_called()

    @pytest.mark.asyncio
    async def test_verified(self) -> None:
        user = Session.for_user("u1")
        verifier = _Verifier(user)
        assert await resolve_session(Credential("bearer", "tok"), verifier) is user

    @pytest.mark.asyncio
    async def test_rejected(self) -> None:
        session = await resolve_session(Credential("bearer", "tok"), _Verifier(None))
        assert session.is_anonymous

    @pytest.mark.asyncio
    async def test_verifier_failure_logged(self, caplog) -> None:
        verifier = _Verifier(error=ConnectionError("identity provider down"))
        with caplog.at_level(logging.WARNING, logger="schemagate.identity"):
            session = await resolve_session(Credential("bearer", "tok"), verifier)
        assert session.is_anonymous
        assert any("identity provider down" in r.getMessage() for r in caplog.records)
