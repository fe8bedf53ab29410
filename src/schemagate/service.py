"""gRPC surface for custom operation invocation.

Exposes ``OperationDispatcher`` as a unary ``Invoke`` method with JSON
payloads, so no generated stubs are needed:

    request:  {"operation": "getAuthorStats", "arguments": {...}, "requestId": "..."}
    response: {"operation": "getAuthorStats", "value": ...}

The caller's session is resolved from the ``authorization`` / ``x-api-key``
metadata through the identity collaborator. Typed errors abort the call with
the mapped status code and an ``error-code`` trailing metadata entry, which
``error_from_rpc`` turns back into the typed error on the client side.

Usage::

    service = OperationService(dispatcher, verifier)
    server = create_server(service, "[::]:50051")
    await server.start()
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Optional

import grpc
import grpc.aio

from .dispatch import OperationDispatcher
from .exceptions import SchemaGateError, ValidationError, error_registry, grpc_error_handler
from .identity import IdentityVerifier, extract_credential_from_grpc_metadata, resolve_session

logger = logging.getLogger(__name__)

SERVICE_NAME = "schemagate.v1.OperationService"
INVOKE_METHOD = "Invoke"
ERROR_CODE_METADATA = "error-code"


# ── JSON payloads ────────────────────────────────────────────────


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def encode_payload(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(payload, default=_json_default, separators=(",", ":")).encode("utf-8")


def decode_request(raw: bytes) -> tuple[str, dict[str, Any], Optional[str]]:
    """Parse an Invoke request into ``(operation, arguments, request_id)``.

    Raises:
        ValidationError: the payload is not a JSON object of the expected shape.
    """
    try:
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"Request is not valid JSON: {e}") from None
    if not isinstance(payload, dict):
        raise ValidationError("Request must be a JSON object")

    operation = payload.get("operation")
    if not isinstance(operation, str) or not operation:
        raise ValidationError("Request needs an 'operation' name")
    arguments = payload.get("arguments", {})
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise ValidationError("'arguments' must be a JSON object", operation=operation)
    request_id = payload.get("requestId")
    if request_id is not None and not isinstance(request_id, str):
        raise ValidationError("'requestId' must be a string", operation=operation)
    return operation, arguments, request_id


# ── Service ──────────────────────────────────────────────────────


class OperationService:
    """Servicer that routes ``Invoke`` calls to the dispatcher."""

    def __init__(self, dispatcher: OperationDispatcher, verifier: IdentityVerifier) -> None:
        self._dispatcher = dispatcher
        self._verifier = verifier

    @grpc_error_handler
    async def Invoke(self, request: bytes, context: grpc.aio.ServicerContext) -> bytes:
        operation, arguments, request_id = decode_request(request)
        credential = extract_credential_from_grpc_metadata(context)
        session = await resolve_session(credential, self._verifier)
        value = await self._dispatcher.call(operation, arguments, session, request_id=request_id)
        return encode_payload({"operation": operation, "value": value})


def add_operation_service(service: OperationService, server: grpc.aio.Server) -> None:
    """Register ``service`` on ``server`` under :data:`SERVICE_NAME`."""
    handler = grpc.method_handlers_generic_handler(
        SERVICE_NAME,
        {INVOKE_METHOD: grpc.unary_unary_rpc_method_handler(service.Invoke)},
    )
    server.add_generic_rpc_handlers((handler,))


def create_server(
    service: OperationService,
    address: str,
    credentials: Optional[grpc.ServerCredentials] = None,
) -> grpc.aio.Server:
    """Create an asyncio gRPC server with the operation service bound to ``address``.

    Without ``credentials`` the port is insecure (development only).
    """
    server = grpc.aio.server()
    add_operation_service(service, server)
    if credentials is None:
        server.add_insecure_port(address)
    else:
        server.add_secure_port(address, credentials)
    logger.info("Operation service listening on %s (tls=%s)", address, credentials is not None)
    return server


# ── Client side ──────────────────────────────────────────────────


def error_from_rpc(error: grpc.RpcError) -> SchemaGateError:
    """Rebuild the typed error from a failed ``Invoke`` call."""
    metadata = dict(error.trailing_metadata() or ())
    code = metadata.get(ERROR_CODE_METADATA, "INTERNAL_ERROR")
    error_cls = error_registry.get(code) or SchemaGateError
    message = error.details() or ""
    prefix = f"[{code}] "
    if message.startswith(prefix):
        message = message[len(prefix) :]
    return error_cls(message or None, code=code)


__all__ = [
    "ERROR_CODE_METADATA",
    "INVOKE_METHOD",
    "SERVICE_NAME",
    "OperationService",
    "add_operation_service",
    "create_server",
    "decode_request",
    "encode_payload",
    "error_from_rpc",
]
