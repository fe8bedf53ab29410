"""Tests for the error taxonomy and gRPC error mapping."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import grpc
import pytest
from schemagate.exceptions import (
    AuthorizationError,
    Cancelled,
    ConfigurationError,
    HandlerError,
    NoPlanFound,
    NotFoundError,
    SchemaError,
    SchemaGateError,
    ValidationError,
    error_registry,
    get_grpc_status_code,
    grpc_error_handler,
    register_error,
)


class TestErrorTaxonomy:
    """Stable codes and details on every error."""

    @pytest.mark.parametrize(
        "error_cls,code",
        [
            (ConfigurationError, "CONFIGURATION_ERROR"),
            (SchemaError, "SCHEMA_ERROR"),
            (NotFoundError, "NOT_FOUND"),
            (ValidationError, "VALIDATION_ERROR"),
            (AuthorizationError, "AUTHORIZATION_ERROR"),
            (NoPlanFound, "NO_PLAN_FOUND"),
            (HandlerError, "HANDLER_ERROR"),
            (Cancelled, "CANCELLED"),
        ],
    )
    def test_codes(self, error_cls, code) -> None:
        error = error_cls()
        assert isinstance(error, SchemaGateError)
        assert error.code == code
        assert error_registry.get(code) is error_cls

    def test_message_and_details(self) -> None:
        error = NotFoundError("Unknown model: Post", model="Post")
        assert str(error) == "Unknown model: Post"
        assert error.details == {"model": "Post"}

    def test_default_message(self) -> None:
        """HandlerError never carries the handler's own message by default."""
        assert HandlerError().message == "Operation handler failed"

    def test_register_custom_error(self) -> None:
        @register_error("QUOTA_EXCEEDED")
        class QuotaExceeded(SchemaGateError):
            code = "QUOTA_EXCEEDED"

        assert error_registry.get("QUOTA_EXCEEDED") is QuotaExceeded
        assert "QUOTA_EXCEEDED" in error_registry.all()


class TestGrpcMapping:
    """Error code to gRPC status."""

    @pytest.mark.parametrize(
        "error,status",
        [
            (NotFoundError(), grpc.StatusCode.NOT_FOUND),
            (ValidationError(), grpc.StatusCode.INVALID_ARGUMENT),
            (AuthorizationError(), grpc.StatusCode.PERMISSION_DENIED),
            (NoPlanFound(), grpc.StatusCode.FAILED_PRECONDITION),
            (SchemaError(), grpc.StatusCode.FAILED_PRECONDITION),
            (HandlerError(), grpc.StatusCode.INTERNAL),
            (Cancelled(), grpc.StatusCode.CANCELLED),
            (SchemaGateError(), grpc.StatusCode.INTERNAL),
        ],
    )
    def test_status_codes(self, error, status) -> None:
        assert get_grpc_status_code(error) == status


class _Service:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error

    @grpc_error_handler
    async def Invoke(self, request, context):
        if self.error is not None:
            raise self.error
        return "ok"


class TestGrpcErrorHandler:
    """Decorator for async gRPC service methods."""

    @pytest.mark.asyncio
    async def test_passes_result_through(self) -> None:
        context = MagicMock()
        context.abort = AsyncMock()
        assert await _Service().Invoke(object(), context) == "ok"
        context.abort.assert_not_called()

    @pytest.mark.asyncio
    async def test_aborts_with_mapped_status(self) -> None:
        context = MagicMock()
        context.abort = AsyncMock()
        await _Service(AuthorizationError("Not authorized to invoke publishPost")).Invoke(object(), context)
        context.set_trailing_metadata.assert_called_once_with([("error-code", "AUTHORIZATION_ERROR")])
        context.abort.assert_awaited_once_with(
            grpc.StatusCode.PERMISSION_DENIED,
            "[AUTHORIZATION_ERROR] Not authorized to invoke publishPost",
        )

    @pytest.mark.asyncio
    async def test_unexpected_error_hides_detail(self) -> None:
        context = MagicMock()
        context.abort = AsyncMock()
        await _Service(RuntimeError("connection string leaked")).Invoke(object(), context)
        status, message = context.abort.await_args.args
        assert status == grpc.StatusCode.INTERNAL
        assert "leaked" not in message
