"""Configuration contract for schemagate.

This module provides Pydantic-validated configuration models for everything
the engine reads at startup: logging, where the schema document lives, the
route classification table used by the session/route guard, and dispatcher
limits.

Direct os.environ/os.getenv usage is confined to load_config_from_env().
Everything else receives a GateConfig instance.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .exceptions import ConfigurationError


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _normalize_prefix(value: str) -> str:
    value = value.strip()
    if not value.startswith("/"):
        raise ValueError(f"Route prefix must start with '/': {value!r}")
    if len(value) > 1:
        value = value.rstrip("/")
    return value


class RouteConfig(BaseModel):
    """Route classification table for the session/route guard.

    Environment variables:
        ROUTES_PROTECTED: comma-separated prefixes that need a session
        ROUTES_AUTH_ONLY: comma-separated login/signup prefixes
        ROUTES_AUTH_PATH: where unauthenticated users are sent
        ROUTES_RESUME_PARAM: query parameter carrying the original path
        ROUTES_DEFAULT_DESTINATION: where signed-in users leaving the auth surface land
    """

    model_config = {"extra": "ignore"}

    protected: list[str] = Field(
        default_factory=lambda: ["/admin", "/tutor", "/problems"],
        description="Path prefixes that require a valid session",
    )
    auth_only: list[str] = Field(
        default_factory=lambda: ["/auth"],
        description="Path prefixes only meant for visitors without a session",
    )
    auth_path: str = Field(
        default="/auth",
        description="Auth surface that protected routes redirect to",
    )
    resume_param: str = Field(
        default="next",
        description="Query parameter that carries the originally requested path",
    )
    default_destination: str = Field(
        default="/tutor",
        description="Authenticated landing page for visitors of auth-only routes",
    )

    @field_validator("protected", "auth_only")
    @classmethod
    def validate_prefixes(cls, v: list[str]) -> list[str]:
        """Normalize prefixes to a leading slash and no trailing slash."""
        return [_normalize_prefix(p) for p in v if p.strip()]

    @field_validator("auth_path", "default_destination")
    @classmethod
    def validate_path(cls, v: str) -> str:
        return _normalize_prefix(v)

    @field_validator("resume_param")
    @classmethod
    def validate_resume_param(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Resume parameter name must not be empty")
        return v


class DispatchConfig(BaseModel):
    """Custom operation dispatcher limits.

    Environment variables:
        DISPATCH_HANDLER_TIMEOUT_SECONDS: upper bound for a handler call (unset = none)
    """

    model_config = {"extra": "ignore"}

    handler_timeout_seconds: Optional[float] = Field(
        default=None,
        description="Seconds before an in-flight handler call is cancelled (None = no limit)",
    )

    @field_validator("handler_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("Handler timeout must be positive")
        return v


class GateConfig(BaseModel):
    """Top-level configuration for a schemagate deployment."""

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    # Service identification
    service_name: Optional[str] = Field(
        default=None,
        description="Service name used as the application logger name",
    )
    service_version: Optional[str] = Field(
        default=None,
        description="Service version for observability",
    )

    # Schema document loaded once at startup
    schema_path: Optional[str] = Field(
        default=None,
        description="Path to the JSON schema document",
    )

    routes: RouteConfig = Field(
        default_factory=RouteConfig,
        description="Route classification table",
    )
    dispatch: DispatchConfig = Field(
        default_factory=DispatchConfig,
        description="Custom operation dispatcher limits",
    )

    @field_validator("schema_path")
    @classmethod
    def validate_schema_path(cls, v: Optional[str]) -> Optional[str]:
        """Reject anything that is not a .json document."""
        if v is None:
            return v
        if not v.endswith(".json"):
            raise ValueError("Schema path must point to a .json document")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    model_config = {
        "use_enum_values": True,
        "extra": "forbid",
    }


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_seconds(env_name: str, raw: str) -> Optional[float]:
    raw = raw.strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{env_name} must be a number of seconds, got {raw!r}", variable=env_name) from None


def load_config_from_env() -> GateConfig:
    """Load configuration from environment variables.

    This is the ONLY place where os.getenv is allowed.

    Environment variables:
    - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - LOG_JSON: Use JSON log format (true/false, default: false)
    - SERVICE_NAME: Service name
    - SERVICE_VERSION: Service version
    - SCHEMA_PATH: JSON schema document
    - ROUTES_PROTECTED / ROUTES_AUTH_ONLY: comma-separated prefixes
    - ROUTES_AUTH_PATH / ROUTES_RESUME_PARAM / ROUTES_DEFAULT_DESTINATION
    - DISPATCH_HANDLER_TIMEOUT_SECONDS: handler timeout

    Returns:
        GateConfig instance with values from environment or defaults.

    Raises:
        ConfigurationError: a numeric variable does not parse.
    """
    import os

    route_values: dict[str, object] = {}
    protected = os.getenv("ROUTES_PROTECTED")
    if protected is not None:
        route_values["protected"] = _split_csv(protected)
    auth_only = os.getenv("ROUTES_AUTH_ONLY")
    if auth_only is not None:
        route_values["auth_only"] = _split_csv(auth_only)
    for env_name, key in (
        ("ROUTES_AUTH_PATH", "auth_path"),
        ("ROUTES_RESUME_PARAM", "resume_param"),
        ("ROUTES_DEFAULT_DESTINATION", "default_destination"),
    ):
        value = os.getenv(env_name)
        if value is not None:
            route_values[key] = value

    timeout = _parse_seconds("DISPATCH_HANDLER_TIMEOUT_SECONDS", os.getenv("DISPATCH_HANDLER_TIMEOUT_SECONDS", ""))
    dispatch = DispatchConfig(handler_timeout_seconds=timeout)

    return GateConfig(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=os.getenv("LOG_JSON", "false").lower() in ("true", "1", "yes"),
        service_name=os.getenv("SERVICE_NAME"),
        service_version=os.getenv("SERVICE_VERSION"),
        schema_path=os.getenv("SCHEMA_PATH"),
        routes=RouteConfig(**route_values),
        dispatch=dispatch,
    )


__all__ = [
    "DispatchConfig",
    "GateConfig",
    "LogLevel",
    "RouteConfig",
    "load_config_from_env",
]
