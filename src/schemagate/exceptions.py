"""Unified exception hierarchy for schemagate.

Every error raised by the engine inherits from SchemaGateError. This module
provides:
- The error taxonomy with stable error codes
- ErrorRegistry for protocol mapping
- gRPC status mapping and an error handler decorator for service methods

Usage:
    from schemagate.exceptions import (
        AuthorizationError,
        NotFoundError,
        grpc_error_handler,
    )

Propagation policy:
    SchemaError is fatal and only raised while the registry is built.
    Everything else is a per-request client or collaborator error and is
    handed back to the caller as a typed error, never retried.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, TypeVar, cast

__all__ = [
    # Base hierarchy
    "SchemaGateError",
    "ConfigurationError",
    "SchemaError",
    "NotFoundError",
    "ValidationError",
    "AuthorizationError",
    "NoPlanFound",
    "HandlerError",
    "Cancelled",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
    # gRPC helpers
    "get_grpc_status_code",
    "grpc_error_handler",
]

logger = logging.getLogger(__name__)


# ---- Exception Hierarchy ----------------------------------------------------


class SchemaGateError(Exception):
    """Base exception for schemagate.

    Attributes:
        code: Stable error code string for protocol mapping (e.g. "NOT_FOUND").
        message: Human-readable error description, safe to show to clients.
        details: Additional context as keyword arguments.
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(self, message: str | None = None, code: str | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = kwargs
        super().__init__(self.message)


class ConfigurationError(SchemaGateError):
    """Invalid or missing configuration."""

    code: str = "CONFIGURATION_ERROR"


class SchemaError(SchemaGateError):
    """Inconsistent schema definition. Raised only while building the registry."""

    code: str = "SCHEMA_ERROR"
    message: str = "Invalid schema definition"


class NotFoundError(SchemaGateError):
    """Unknown model, operation, custom type, enum or index."""

    code: str = "NOT_FOUND"
    message: str = "Not found"


class ValidationError(SchemaGateError):
    """Arguments do not satisfy the declared argument schema."""

    code: str = "VALIDATION_ERROR"
    message: str = "Invalid arguments"


class AuthorizationError(SchemaGateError):
    """No authorization rule allows the requested operation."""

    code: str = "AUTHORIZATION_ERROR"
    message: str = "Not authorized"


class NoPlanFound(SchemaGateError):
    """No index or primary key can serve a query predicate.

    The caller decides whether to reject the query or run an unindexed scan.
    """

    code: str = "NO_PLAN_FOUND"
    message: str = "No index can serve this query"


class HandlerError(SchemaGateError):
    """External operation handler failed or returned an unusable value.

    The message is generic; the original failure is chained as ``__cause__``
    and logged for the operator.
    """

    code: str = "HANDLER_ERROR"
    message: str = "Operation handler failed"


class Cancelled(SchemaGateError):
    """Handler dispatch was cancelled or timed out; its result is discarded."""

    code: str = "CANCELLED"
    message: str = "Operation was cancelled"


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[SchemaGateError])


class ErrorRegistry:
    """Registry for mapping internal errors to external protocol codes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[SchemaGateError]] = {}

    def register(self, code: str, error_cls: type[SchemaGateError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[SchemaGateError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[SchemaGateError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("QUOTA_EXCEEDED")
        class QuotaExceeded(SchemaGateError):
            code = "QUOTA_EXCEEDED"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


error_registry.register("INTERNAL_ERROR", SchemaGateError)
error_registry.register("CONFIGURATION_ERROR", ConfigurationError)
error_registry.register("SCHEMA_ERROR", SchemaError)
error_registry.register("NOT_FOUND", NotFoundError)
error_registry.register("VALIDATION_ERROR", ValidationError)
error_registry.register("AUTHORIZATION_ERROR", AuthorizationError)
error_registry.register("NO_PLAN_FOUND", NoPlanFound)
error_registry.register("HANDLER_ERROR", HandlerError)
error_registry.register("CANCELLED", Cancelled)


# ---- gRPC Error Handling Utilities ------------------------------------------


def get_grpc_status_code(error: SchemaGateError) -> Any:
    """Map a SchemaGateError to a gRPC status code.

    Returns the grpc.StatusCode value for the given error type.
    grpc is imported locally to keep the engine importable without a server.
    """
    import grpc

    error_to_status = {
        "CONFIGURATION_ERROR": grpc.StatusCode.FAILED_PRECONDITION,
        "SCHEMA_ERROR": grpc.StatusCode.FAILED_PRECONDITION,
        "NOT_FOUND": grpc.StatusCode.NOT_FOUND,
        "VALIDATION_ERROR": grpc.StatusCode.INVALID_ARGUMENT,
        "AUTHORIZATION_ERROR": grpc.StatusCode.PERMISSION_DENIED,
        "NO_PLAN_FOUND": grpc.StatusCode.FAILED_PRECONDITION,
        "HANDLER_ERROR": grpc.StatusCode.INTERNAL,
        "CANCELLED": grpc.StatusCode.CANCELLED,
    }
    return error_to_status.get(error.code, grpc.StatusCode.INTERNAL)


def grpc_error_handler(method):
    """Decorator for unary gRPC service methods with proper error handling.

    Catches SchemaGateError and aborts with the mapped gRPC status code.
    Anything else is logged with its traceback and reported as INTERNAL
    without leaking the original message.

    Usage:
        @grpc_error_handler
        async def Invoke(self, request, context):
            ...
    """

    @functools.wraps(method)
    async def wrapper(self, request, context):
        try:
            return await method(self, request, context)
        except SchemaGateError as e:
            status_code = get_grpc_status_code(e)
            error_message = f"[{e.code}] {e.message}"

            logger.error(
                "%s failed: %s",
                method.__name__,
                error_message,
                extra={
                    "error_code": e.code,
                    "error_details": e.details,
                },
            )

            context.set_trailing_metadata([("error-code", e.code)])
            await context.abort(status_code, error_message)
            return

        except Exception as e:
            import grpc

            logger.exception("%s unexpected error: %s", method.__name__, e)
            await context.abort(grpc.StatusCode.INTERNAL, "[INTERNAL_ERROR] An internal error occurred")
            return

    return wrapper
