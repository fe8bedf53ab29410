"""Centralized logging utilities for schemagate.

This module provides:
- Logging configuration from GateConfig
- Safe preview utilities for argument values and handler results
- Secret redaction
- Structured logging with request_id / subject_id propagation
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Optional

from .config import GateConfig, LogLevel

if TYPE_CHECKING:
    from .session import Session


# Patterns for detecting secrets (common patterns to redact)
SECRET_PATTERNS = [
    r'(?i)(?:password|passwd|pwd|secret|token|key|api[_-]?key|auth[_-]?token)\s*[:=]\s*["\']?([^"\'\s]+)',
    r'(?i)(?:bearer|basic)\s+([a-zA-Z0-9+/=._-]+)',
    r'(?i)(?:sk-|pk-)[a-zA-Z0-9]{32,}',
    r'(?i)(?:x-api-key|x-auth-token|x-access-token)\s*[:=]\s*["\']?([^"\'\s]+)',
    r'[a-f0-9]{32,}',  # Long hex strings (could be hashes or keys)
    r'(?i)(?:-----BEGIN\s+(?:RSA\s+)?(?:PRIVATE\s+)?KEY-----).*?(?:-----END\s+(?:RSA\s+)?(?:PRIVATE\s+)?KEY-----)',
]

# Record attributes that belong to logging itself and are never copied as extras
_RESERVED_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "exc_info", "exc_text", "stack_info",
        "taskName", "request_id", "subject_id",
    }
)


def safe_preview(value: Any, limit: int = 240) -> str:
    """Create a safe, length-bounded preview of a value for logging.

    Args:
        value: The value to preview (any type)
        limit: Maximum length of the preview (default: 240)

    Returns:
        A single-line, truncated string representation
    """
    if value is None:
        return ""

    if isinstance(value, str):
        s = value
    elif isinstance(value, (dict, list, tuple)):
        try:
            s = json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            s = str(value)
    else:
        s = str(value)

    s = " ".join(s.split())

    if len(s) > limit:
        return s[: limit - 1] + "…"

    return s


def redact_secrets(text: str, replacement: str = "[REDACTED]") -> str:
    """Redact secret patterns (API keys, tokens, passwords, private keys) from text.

    Args:
        text: The text to redact
        replacement: String to replace secrets with (default: "[REDACTED]")

    Returns:
        Text with secrets redacted
    """
    if not isinstance(text, str):
        return text

    result = text
    for pattern in SECRET_PATTERNS:
        result = re.sub(pattern, replacement, result, flags=re.IGNORECASE | re.DOTALL)

    return result


def safe_log_value(value: Any, limit: int = 240, redact: bool = True) -> str:
    """Combine safe_preview() and redact_secrets().

    This is the function to use when logging operation arguments, handler
    results or anything else that may carry user data.
    """
    preview = safe_preview(value, limit=limit)
    if redact:
        preview = redact_secrets(preview)
    return preview


class GateFormatter(logging.Formatter):
    """Formatter that includes request context and supports JSON output.

    This formatter:
    - Extracts request_id and subject_id from log records (if available)
    - Formats logs as JSON or as a single plain-text line
    - Previews and redacts extra fields
    """

    def __init__(
        self,
        include_request_context: bool = True,
        json_format: bool = True,
        redact_secrets: bool = True,
        *args: Any,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.include_request_context = include_request_context
        self.json_format = json_format
        self.redact_secrets = redact_secrets

    def format(self, record: logging.LogRecord) -> str:
        request_id = getattr(record, "request_id", None)
        subject_id = getattr(record, "subject_id", None)

        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_request_context:
            if request_id:
                log_data["request_id"] = str(request_id)
            if subject_id:
                log_data["subject_id"] = str(subject_id)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = safe_log_value(value, redact=self.redact_secrets)

        if self.redact_secrets:
            log_data["message"] = redact_secrets(log_data["message"])

        if self.json_format:
            return json.dumps(log_data, default=str, ensure_ascii=False)

        parts = [
            f"[{log_data['timestamp']}]",
            f"{log_data['level']}",
            f"{log_data['logger']}",
        ]
        if request_id:
            parts.append(f"request_id={log_data.get('request_id', '')}")
        if subject_id:
            parts.append(f"subject_id={log_data.get('subject_id', '')}")
        parts.append(f": {log_data['message']}")
        line = " ".join(parts)
        if "exception" in log_data:
            line = f"{line}\n{log_data['exception']}"
        return line


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds request_id and subject_id to log records.

    Usage:
        logger = get_request_logger(__name__, request_id=rid, session=session)
        logger.info("Invoking operation %s", name)
    """

    def __init__(
        self,
        logger: logging.Logger,
        request_id: Optional[str] = None,
        subject_id: Optional[str] = None,
    ):
        super().__init__(logger, {})
        self.request_id = request_id
        self.subject_id = subject_id

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        request_id = kwargs.pop("request_id", self.request_id)
        subject_id = kwargs.pop("subject_id", self.subject_id)

        extra = dict(kwargs.get("extra") or {})
        if request_id:
            extra["request_id"] = request_id
        if subject_id:
            extra["subject_id"] = subject_id
        kwargs["extra"] = extra

        return msg, kwargs


def setup_logging(
    config: Optional[GateConfig] = None,
    json_format: Optional[bool] = None,
    redact_secrets: bool = True,
) -> None:
    """Configure root logging for a schemagate process.

    Args:
        config: GateConfig instance (if None, loads from environment)
        json_format: Force JSON (True) or plain text (False); defaults to config.log_json
        redact_secrets: Whether to redact secrets
    """
    if config is None:
        from .config import load_config_from_env

        config = load_config_from_env()

    level_map = {
        LogLevel.DEBUG: logging.DEBUG,
        LogLevel.INFO: logging.INFO,
        LogLevel.WARNING: logging.WARNING,
        LogLevel.ERROR: logging.ERROR,
        LogLevel.CRITICAL: logging.CRITICAL,
    }
    log_level = level_map.get(config.log_level, logging.INFO)
    if json_format is None:
        json_format = config.log_json

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        GateFormatter(
            include_request_context=True,
            json_format=json_format,
            redact_secrets=redact_secrets,
        )
    )
    root_logger.addHandler(console_handler)

    if config.service_name:
        logging.getLogger(config.service_name).setLevel(log_level)


def get_request_logger(
    name: str,
    request_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> RequestLoggerAdapter:
    """Get a logger adapter bound to one request.

    Args:
        name: Logger name (typically __name__)
        request_id: Optional request identifier to include in all logs
        session: Optional Session whose subject_id is included in all logs

    Returns:
        RequestLoggerAdapter instance
    """
    logger = logging.getLogger(name)
    subject_id = session.subject_id if session is not None else None
    return RequestLoggerAdapter(logger, request_id=request_id, subject_id=subject_id)


__all__ = [
    "safe_preview",
    "redact_secrets",
    "safe_log_value",
    "GateFormatter",
    "RequestLoggerAdapter",
    "setup_logging",
    "get_request_logger",
]
