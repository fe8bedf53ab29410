"""Value/type compatibility checks.

Used three ways: defaults and condition literals are checked when the
registry is built, operation arguments are checked before dispatch, and
handler results are shape-checked after dispatch.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Optional
from urllib.parse import urlparse

from .types import RefKind, ScalarType, TypeRef

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")


def _is_iso_datetime(value: str) -> bool:
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        datetime.fromisoformat(value)
    except ValueError:
        return False
    return True


def _is_iso_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def is_json_value(value: Any) -> bool:
    """True for values that survive a JSON round-trip unchanged in shape."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return True
    if isinstance(value, (list, tuple)):
        return all(is_json_value(item) for item in value)
    if isinstance(value, Mapping):
        return all(isinstance(k, str) and is_json_value(v) for k, v in value.items())
    return False


def scalar_matches(scalar: ScalarType, value: Any) -> bool:
    """Check one non-null value against a scalar type."""
    if scalar in (ScalarType.ID, ScalarType.STRING):
        return isinstance(value, str)
    if scalar is ScalarType.EMAIL:
        return isinstance(value, str) and bool(_EMAIL_RE.match(value))
    if scalar is ScalarType.URL:
        if not isinstance(value, str):
            return False
        parsed = urlparse(value)
        return bool(parsed.scheme and parsed.netloc)
    if scalar is ScalarType.INTEGER:
        return isinstance(value, int) and not isinstance(value, bool)
    if scalar is ScalarType.FLOAT:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if scalar is ScalarType.BOOLEAN:
        return isinstance(value, bool)
    if scalar is ScalarType.JSON:
        return is_json_value(value)
    if scalar is ScalarType.DATETIME:
        if isinstance(value, datetime):
            return True
        return isinstance(value, str) and _is_iso_datetime(value)
    if scalar is ScalarType.DATE:
        if isinstance(value, date) and not isinstance(value, datetime):
            return True
        return isinstance(value, str) and _is_iso_date(value)
    return False


def _element_error(ref: TypeRef, value: Any, enum_values: Optional[tuple[str, ...]]) -> Optional[str]:
    if ref.kind is RefKind.SCALAR:
        if not scalar_matches(ScalarType(ref.name), value):
            return f"expected {ref.name}, got {type(value).__name__}"
        return None
    if ref.kind is RefKind.ENUM:
        if enum_values is None or value not in enum_values:
            return f"expected one of {list(enum_values or ())}, got {value!r}"
        return None
    # Models and custom types are checked for shape only.
    if not isinstance(value, Mapping):
        return f"expected {ref.name} object, got {type(value).__name__}"
    return None


def type_error(
    ref: TypeRef,
    value: Any,
    enum_values: Optional[tuple[str, ...]] = None,
) -> Optional[str]:
    """Describe why ``value`` does not fit ``ref``, or return None if it does.

    ``value`` must not be None; nullability is the caller's concern.
    Array elements must all be non-null and fit the element type.
    """
    if ref.is_array:
        if not isinstance(value, (list, tuple)):
            return f"expected a list of {ref.name}, got {type(value).__name__}"
        for position, item in enumerate(value):
            if item is None:
                return f"item {position} is null"
            problem = _element_error(ref, item, enum_values)
            if problem:
                return f"item {position}: {problem}"
        return None
    return _element_error(ref, value, enum_values)


def is_compatible(ref: TypeRef, value: Any, enum_values: Optional[tuple[str, ...]] = None) -> bool:
    return type_error(ref, value, enum_values) is None


__all__ = [
    "is_compatible",
    "is_json_value",
    "scalar_matches",
    "type_error",
]
