"""Tests for the gRPC operation service."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import grpc
import pytest
from schemagate.dispatch import HandlerRegistry, OperationDispatcher
from schemagate.exceptions import AuthorizationError, SchemaGateError, ValidationError
from schemagate.service import (
    OperationService,
    add_operation_service,
    create_server,
    decode_request,
    encode_payload,
    error_from_rpc,
)
from schemagate.session import Session

USER = Session.for_user("user-1")


def _context(metadata=()) -> MagicMock:
    context = MagicMock()
    context.invocation_metadata.return_value = tuple(metadata)
    context.abort = AsyncMock()
    return context


def _service(registry, handler=None, session=USER) -> tuple[OperationService, AsyncMock]:
    handler = handler or AsyncMock(return_value={"postCount": 3})
    dispatcher = OperationDispatcher(registry, HandlerRegistry({"functions/getAuthorStats": handler}))
    verifier = AsyncMock()
    verifier.verify.return_value = session
    return OperationService(dispatcher, verifier), handler


def _request(**payload) -> bytes:
    return json.dumps(payload).encode("utf-8")


class _FailedCall(grpc.RpcError):
    def __init__(self, details: str, metadata=()) -> None:
        self._details = details
        self._metadata = metadata

    def details(self) -> str:
        return self._details

    def trailing_metadata(self):
        return self._metadata


class TestInvoke:
    """Invoke over gRPC with JSON payloads."""

    @pytest.mark.asyncio
    async def test_completed(self, registry) -> None:
        service, handler = _service(registry)
        context = _context([("authorization", "Bearer tok")])

        raw = await service.Invoke(_request(operation="getAuthorStats", arguments={"userId": "u1"}), context)

        assert json.loads(raw) == {
            "operation": "getAuthorStats",
            "value": {"postCount": 3, "totalViews": None},
        }
        handler.assert_awaited_once()
        context.abort.assert_not_called()

    @pytest.mark.asyncio
    async def test_denied_without_credential(self, registry) -> None:
        """An anonymous call is aborted with PERMISSION_DENIED; the handler never runs."""
        service, handler = _service(registry)
        context = _context()

        await service.Invoke(_request(operation="getAuthorStats", arguments={"userId": "u1"}), context)

        context.set_trailing_metadata.assert_called_once_with([("error-code", "AUTHORIZATION_ERROR")])
        status, _ = context.abort.await_args.args
        assert status == grpc.StatusCode.PERMISSION_DENIED
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, registry) -> None:
        service, _ = _service(registry)
        context = _context([("authorization", "Bearer tok")])

        await service.Invoke(_request(operation="getAuthorStats", arguments={}), context)

        status, message = context.abort.await_args.args
        assert status == grpc.StatusCode.INVALID_ARGUMENT
        assert message.startswith("[VALIDATION_ERROR]")

    @pytest.mark.asyncio
    async def test_unknown_operation(self, registry) -> None:
        service, _ = _service(registry)
        context = _context([("authorization", "Bearer tok")])
        await service.Invoke(_request(operation="missing"), context)
        assert context.abort.await_args.args[0] == grpc.StatusCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_malformed_request(self, registry) -> None:
        service, _ = _service(registry)
        context = _context()
        await service.Invoke(b"{not json", context)
        assert context.abort.await_args.args[0] == grpc.StatusCode.INVALID_ARGUMENT

    @pytest.mark.asyncio
    async def test_handler_failure_hides_detail(self, registry) -> None:
        handler = AsyncMock(side_effect=RuntimeError("db password=hunter2 rejected"))
        service, _ = _service(registry, handler)
        context = _context([("authorization", "Bearer tok")])

        await service.Invoke(_request(operation="getAuthorStats", arguments={"userId": "u1"}), context)

        status, message = context.abort.await_args.args
        assert status == grpc.StatusCode.INTERNAL
        assert "hunter2" not in message


class TestPayloads:
    """Request parsing and response encoding."""

    def test_decode_request(self) -> None:
        raw = _request(operation="searchPosts", arguments={"query": "q"}, requestId="req-1")
        assert decode_request(raw) == ("searchPosts", {"query": "q"}, "req-1")

    def test_arguments_default_to_empty(self) -> None:
        assert decode_request(_request(operation="internalReindex")) == ("internalReindex", {}, None)

    @pytest.mark.parametrize(
        "raw",
        [
            b"[]",
            _request(arguments={}),
            _request(operation="searchPosts", arguments=["q"]),
            _request(operation="searchPosts", requestId=7),
            b"\xff",
        ],
    )
    def test_rejected_requests(self, raw) -> None:
        with pytest.raises(ValidationError):
            decode_request(raw)

    def test_encode_dates(self) -> None:
        when = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        payload = json.loads(encode_payload({"value": {"publishedAt": when, "tags": ("a",)}}))
        assert payload == {"value": {"publishedAt": "2024-01-02T03:04:05+00:00", "tags": ["a"]}}


class TestServer:
    """Server wiring."""

    def test_add_operation_service(self, registry) -> None:
        service, _ = _service(registry)
        server = MagicMock()
        add_operation_service(service, server)
        server.add_generic_rpc_handlers.assert_called_once()
        (handlers,) = server.add_generic_rpc_handlers.call_args.args
        assert len(handlers) == 1

    def test_create_server_insecure(self, registry) -> None:
        service, _ = _service(registry)
        with patch("schemagate.service.grpc.aio.server") as server_factory:
            server = create_server(service, "[::]:50051")
        assert server is server_factory.return_value
        server.add_insecure_port.assert_called_once_with("[::]:50051")
        server.add_secure_port.assert_not_called()

    def test_create_server_with_credentials(self, registry) -> None:
        service, _ = _service(registry)
        credentials = MagicMock()
        with patch("schemagate.service.grpc.aio.server") as server_factory:
            create_server(service, "[::]:50051", credentials)
        server_factory.return_value.add_secure_port.assert_called_once_with("[::]:50051", credentials)


class TestErrorFromRpc:
    """Client-side reconstruction of typed errors."""

    def test_known_code(self) -> None:
        failed = _FailedCall(
            "[AUTHORIZATION_ERROR] Not authorized to invoke publishPost",
            (("error-code", "AUTHORIZATION_ERROR"),),
        )
        error = error_from_rpc(failed)
        assert isinstance(error, AuthorizationError)
        assert error.message == "Not authorized to invoke publishPost"

    def test_missing_code(self) -> None:
        error = error_from_rpc(_FailedCall("[INTERNAL_ERROR] An internal error occurred"))
        assert type(error) is SchemaGateError
        assert error.code == "INTERNAL_ERROR"
        assert error.message == "An internal error occurred"
