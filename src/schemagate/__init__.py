from .schema import SchemaRegistry, build_registry, load_schema, load_schema_file
from .session import AuthMode, Session
from .config import GateConfig, LogLevel, RouteConfig, DispatchConfig, load_config_from_env
from .permissions import AuthorizationDecision, Operation, authorize, filter_readable, require_authorized
from .planner import IndexPlan, Predicate, RangeConstraint, plan_query
from .dispatch import HandlerRegistry, InvocationOutcome, InvocationState, OperationDispatcher
from .security import GuardDecision, RouteClass, RouteGuard, RouteTable
from .identity import Credential, IdentityVerifier, resolve_session
from .exceptions import (
    SchemaGateError,
    ConfigurationError,
    SchemaError,
    NotFoundError,
    ValidationError,
    AuthorizationError,
    NoPlanFound,
    HandlerError,
    Cancelled,
)
from .logging import (
    safe_preview,
    redact_secrets,
    safe_log_value,
    GateFormatter,
    RequestLoggerAdapter,
    setup_logging,
    get_request_logger,
)

__version__ = "0.1.0"

__all__ = [
    'SchemaRegistry',
    'build_registry',
    'load_schema',
    'load_schema_file',
    'AuthMode',
    'Session',
    'GateConfig',
    'LogLevel',
    'RouteConfig',
    'DispatchConfig',
    'load_config_from_env',
    'AuthorizationDecision',
    'Operation',
    'authorize',
    'filter_readable',
    'require_authorized',
    'IndexPlan',
    'Predicate',
    'RangeConstraint',
    'plan_query',
    'HandlerRegistry',
    'InvocationOutcome',
    'InvocationState',
    'OperationDispatcher',
    'GuardDecision',
    'RouteClass',
    'RouteGuard',
    'RouteTable',
    'Credential',
    'IdentityVerifier',
    'resolve_session',
    'SchemaGateError',
    'ConfigurationError',
    'SchemaError',
    'NotFoundError',
    'ValidationError',
    'AuthorizationError',
    'NoPlanFound',
    'HandlerError',
    'Cancelled',
    'safe_preview',
    'redact_secrets',
    'safe_log_value',
    'GateFormatter',
    'RequestLoggerAdapter',
    'setup_logging',
    'get_request_logger',
]
