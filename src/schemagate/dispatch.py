"""Custom operation dispatcher.

Routes a named custom query/mutation to its external handler under the same
authorization contract as model operations:

    received -> validated -> authorized -> dispatched -> completed | failed

Arguments are validated and the operation's rules are checked before the
handler runs; a denied or invalid request never reaches the handler. Handler
failures are reported once and never retried.

Usage::

    handlers = HandlerRegistry()

    @handlers.handler("functions/getAuthorInfo")
    async def get_author_info(args, session):
        return {"name": ..., "postCount": ...}

    dispatcher = OperationDispatcher(registry, handlers, config.dispatch)
    outcome = await dispatcher.invoke("getAuthorInfo", {"authorId": "a1"}, session)
    value = outcome.unwrap()
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel

from .config import DispatchConfig
from .exceptions import (
    AuthorizationError,
    Cancelled,
    ConfigurationError,
    HandlerError,
    SchemaGateError,
    ValidationError,
)
from .logging import get_request_logger, safe_log_value
from .permissions.access import require_authorized
from .permissions.constants import Operation
from .schema.registry import SchemaRegistry
from .schema.types import CustomOperation, RefKind, TypeRef
from .schema.values import type_error
from .session import Session

Handler = Callable[[Mapping[str, Any], Session], Union[Any, Awaitable[Any]]]

_MISSING = object()


class InvocationState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    AUTHORIZED = "authorized"
    DISPATCHED = "dispatched"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class InvocationOutcome:
    """Result of one invocation.

    Attributes:
        operation: Operation name as requested.
        state: Terminal state, ``completed`` or ``failed``.
        reached: Last state passed before the terminal one.
        value: Normalized handler result (completed only).
        error: Typed error (failed only).
        processing_ms: Wall time spent in ``invoke``.
    """

    operation: str
    state: InvocationState
    reached: InvocationState
    value: Any = None
    error: Optional[SchemaGateError] = None
    processing_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state is InvocationState.COMPLETED

    @property
    def failed(self) -> bool:
        return self.state is InvocationState.FAILED

    def unwrap(self) -> Any:
        """Return the value, or raise the error of a failed invocation."""
        if self.error is not None:
            raise self.error
        return self.value


# ── Handler bindings ─────────────────────────────────────────────


class HandlerRegistry:
    """Binds handler references from the schema to callables.

    A handler takes ``(validated_args, session)`` and returns the result,
    directly or as an awaitable. Synchronous handlers run in a worker thread.
    """

    def __init__(self, bindings: Optional[Mapping[str, Handler]] = None) -> None:
        self._handlers: dict[str, Handler] = {}
        for reference, fn in (bindings or {}).items():
            self.bind(reference, fn)

    def bind(self, reference: str, fn: Handler) -> None:
        if not callable(fn):
            raise ConfigurationError(f"Handler for {reference!r} is not callable")
        if reference in self._handlers:
            raise ConfigurationError(f"Handler {reference!r} is already bound", handler=reference)
        self._handlers[reference] = fn

    def handler(self, reference: str) -> Callable[[Handler], Handler]:
        """Decorator form of :meth:`bind`."""

        def decorator(fn: Handler) -> Handler:
            self.bind(reference, fn)
            return fn

        return decorator

    def get(self, reference: str) -> Optional[Handler]:
        return self._handlers.get(reference)

    def __contains__(self, reference: object) -> bool:
        return reference in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


# ── Argument validation / result normalization ───────────────────


def validate_arguments(operation: CustomOperation, raw_args: Any) -> dict[str, Any]:
    """Check raw arguments against the operation's argument schema.

    Omitted optional arguments get their declared default, or None.

    Raises:
        ValidationError: with ``details["problems"]`` mapping argument name
            to what is wrong with it.
    """
    if raw_args is None:
        raw_args = {}
    if not isinstance(raw_args, Mapping):
        raise ValidationError(
            f"Arguments for {operation.name} must be an object",
            operation=operation.name,
        )

    problems: dict[str, str] = {}
    for name in raw_args:
        if operation.argument(name) is None:
            problems[name] = "unknown argument"

    validated: dict[str, Any] = {}
    for arg in operation.arguments:
        value = raw_args.get(arg.name, _MISSING)
        if value is _MISSING:
            if arg.has_default:
                validated[arg.name] = arg.default
            elif arg.required:
                problems[arg.name] = "missing required argument"
            else:
                validated[arg.name] = None
            continue
        if value is None:
            if arg.required:
                problems[arg.name] = "required argument is null"
            else:
                validated[arg.name] = None
            continue
        problem = type_error(arg.type, value, arg.enum_values)
        if problem:
            problems[arg.name] = problem
            continue
        validated[arg.name] = value

    if problems:
        summary = "; ".join(f"{k}: {v}" for k, v in sorted(problems.items()))
        raise ValidationError(
            f"Invalid arguments for {operation.name}: {summary}",
            operation=operation.name,
            problems=problems,
        )
    return validated


def _as_mapping(value: Any) -> Optional[dict[str, Any]]:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, Mapping):
        return dict(value)
    return None


class _ShapeMismatch(Exception):
    pass


def _normalize_element(registry: SchemaRegistry, ref: TypeRef, value: Any) -> Any:
    if ref.kind is RefKind.MODEL or ref.kind is RefKind.CUSTOM_TYPE:
        obj = _as_mapping(value)
        if obj is None:
            raise _ShapeMismatch(f"expected {ref.name} object, got {type(value).__name__}")
        if ref.kind is RefKind.MODEL:
            return obj
        shape = registry.lookup_custom_type(ref.name)
        result: dict[str, Any] = {}
        for f in shape.fields:
            member = obj.get(f.name)
            if member is None and f.required:
                raise _ShapeMismatch(f"{ref.name}.{f.name} is required")
            result[f.name] = member
        return result

    enum_values = registry.lookup_enum(ref.name) if ref.kind is RefKind.ENUM else None
    problem = type_error(TypeRef(kind=ref.kind, name=ref.name), value, enum_values)
    if problem:
        raise _ShapeMismatch(problem)
    return value


def normalize_result(registry: SchemaRegistry, ref: TypeRef, value: Any) -> Any:
    """Shape-check a handler result against the declared return type.

    Objects are converted to plain dicts; custom type results are projected
    onto their declared fields. Values are not deep-validated.
    """
    if value is None:
        return None
    if not ref.is_array:
        return _normalize_element(registry, ref, value)
    if isinstance(value, (str, bytes, Mapping)) or not hasattr(value, "__iter__"):
        raise _ShapeMismatch(f"expected a list of {ref.name}, got {type(value).__name__}")
    items = []
    for position, item in enumerate(value):
        if item is None:
            raise _ShapeMismatch(f"item {position} is null")
        try:
            items.append(_normalize_element(registry, ref, item))
        except _ShapeMismatch as e:
            raise _ShapeMismatch(f"item {position}: {e}") from None
    return items


# ── Dispatcher ───────────────────────────────────────────────────


class OperationDispatcher:
    """Validates, authorizes and dispatches custom operations.

    Holds only read-only state; concurrent invocations are independent.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        handlers: HandlerRegistry,
        config: Optional[DispatchConfig] = None,
    ) -> None:
        self._registry = registry
        self._handlers = handlers
        self._config = config or DispatchConfig()

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    def unbound_handlers(self) -> list[str]:
        """Names of operations whose handler reference has no binding."""
        return sorted(
            name for name, op in self._registry.operations.items() if op.handler not in self._handlers
        )

    async def invoke(
        self,
        name: str,
        raw_args: Optional[Mapping[str, Any]] = None,
        session: Optional[Session] = None,
        *,
        request_id: Optional[str] = None,
    ) -> InvocationOutcome:
        """Run one invocation to a terminal state.

        Per-request errors are returned on the outcome, never raised. Only
        cancellation of the calling task propagates.
        """
        session = session or Session.anonymous()
        log = get_request_logger(__name__, request_id=request_id, session=session)
        start = time.monotonic()
        reached = InvocationState.RECEIVED

        def finish(value: Any = None, error: Optional[SchemaGateError] = None) -> InvocationOutcome:
            return InvocationOutcome(
                operation=name,
                state=InvocationState.FAILED if error is not None else InvocationState.COMPLETED,
                reached=reached,
                value=value,
                error=error,
                processing_ms=(time.monotonic() - start) * 1000,
            )

        try:
            operation = self._registry.lookup_operation(name)
            args = validate_arguments(operation, raw_args)
            reached = InvocationState.VALIDATED

            require_authorized(session, operation, Operation.INVOKE)
            reached = InvocationState.AUTHORIZED
        except AuthorizationError as e:
            log.info("Invocation of %s denied", name)
            return finish(error=e)
        except SchemaGateError as e:
            log.info("Invocation of %s rejected: [%s] %s", name, e.code, e.message)
            return finish(error=e)

        fn = self._handlers.get(operation.handler)
        if fn is None:
            log.error("No handler bound for %s (%s)", name, operation.handler)
            return finish(error=HandlerError(operation=name))

        log.debug("Dispatching %s args=%s", name, safe_log_value(args))
        reached = InvocationState.DISPATCHED
        deadline = asyncio.timeout(self._config.handler_timeout_seconds)
        try:
            async with deadline:
                result = await self._call(fn, args, session)
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            log.warning("Handler for %s was cancelled", name)
            return finish(error=Cancelled(operation=name))
        except Exception as e:
            if isinstance(e, TimeoutError) and deadline.expired():
                log.warning("Handler for %s timed out after %ss", name, self._config.handler_timeout_seconds)
                return finish(error=Cancelled(f"Operation {name} timed out", operation=name))
            log.exception("Handler for %s failed: %s", name, e)
            error = HandlerError(operation=name)
            error.__cause__ = e
            return finish(error=error)

        try:
            value = normalize_result(self._registry, operation.returns, result)
        except _ShapeMismatch as e:
            log.error("Handler for %s returned an unexpected shape: %s", name, e)
            return finish(error=HandlerError(operation=name, problem=str(e)))

        log.debug("Invocation of %s completed", name)
        return finish(value=value)

    async def call(
        self,
        name: str,
        raw_args: Optional[Mapping[str, Any]] = None,
        session: Optional[Session] = None,
        *,
        request_id: Optional[str] = None,
    ) -> Any:
        """Invoke and return the value, raising the typed error on failure."""
        outcome = await self.invoke(name, raw_args, session, request_id=request_id)
        return outcome.unwrap()

    async def _call(self, fn: Handler, args: dict[str, Any], session: Session) -> Any:
        if inspect.iscoroutinefunction(fn):
            return await fn(args, session)
        return await self._call_sync(fn, args, session)

    @staticmethod
    async def _call_sync(fn: Handler, args: dict[str, Any], session: Session) -> Any:
        result = await asyncio.to_thread(fn, args, session)
        if inspect.isawaitable(result):
            result = await result
        return result


__all__ = [
    "Handler",
    "HandlerRegistry",
    "InvocationOutcome",
    "InvocationState",
    "OperationDispatcher",
    "normalize_result",
    "validate_arguments",
]
