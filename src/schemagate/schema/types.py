"""Resolved, immutable schema types.

These are the plain records the registry builds from the definition surface
(see ``definitions.py``). Everything here is a frozen dataclass holding
tuples/frozensets, so a registry can be shared by any number of concurrent
requests without locking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from pydantic import BaseModel

    from ..permissions.constants import ActorKind, Operation


class ScalarType(str, Enum):
    """Built-in scalar field types."""

    ID = "id"
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    JSON = "json"
    DATETIME = "datetime"
    DATE = "date"
    EMAIL = "email"
    URL = "url"


class RefKind(str, Enum):
    """What a TypeRef points at."""

    SCALAR = "scalar"
    ENUM = "enum"
    MODEL = "model"
    CUSTOM_TYPE = "custom_type"


class RelationKind(str, Enum):
    HAS_MANY = "hasMany"
    HAS_ONE = "hasOne"
    BELONGS_TO = "belongsTo"


class OperationKind(str, Enum):
    QUERY = "query"
    MUTATION = "mutation"


# System fields present on every stored record.
SYSTEM_FIELDS: dict[str, ScalarType] = {
    "id": ScalarType.ID,
    "createdAt": ScalarType.DATETIME,
    "updatedAt": ScalarType.DATETIME,
    "owner": ScalarType.STRING,
}

DEFAULT_IDENTIFIER: tuple[str, ...] = ("id",)


class _NoDefault:
    """Sentinel for "no default declared" (None is a legal default)."""

    _instance: Optional[_NoDefault] = None

    def __new__(cls) -> _NoDefault:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_DEFAULT"

    def __bool__(self) -> bool:
        return False


NO_DEFAULT: Any = _NoDefault()


@dataclass(frozen=True)
class TypeRef:
    """A resolved field type: a scalar or a named enum/model/custom type."""

    kind: RefKind
    name: str
    is_array: bool = False

    @property
    def scalar(self) -> Optional[ScalarType]:
        return ScalarType(self.name) if self.kind is RefKind.SCALAR else None

    def __str__(self) -> str:
        return f"[{self.name}]" if self.is_array else self.name


@dataclass(frozen=True)
class Relationship:
    """hasMany / hasOne / belongsTo link to another model."""

    kind: RelationKind
    target: str
    references: str


@dataclass(frozen=True)
class Field:
    """A model field, custom type field or operation argument."""

    name: str
    type: TypeRef
    required: bool = False
    default: Any = NO_DEFAULT
    enum_values: Optional[tuple[str, ...]] = None
    relationship: Optional[Relationship] = None

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT

    @property
    def is_stored(self) -> bool:
        """Relationship fields are resolved by the storage layer, not stored."""
        return self.relationship is None


@dataclass(frozen=True)
class Condition:
    """``record[field] <operator> value`` predicate attached to a rule."""

    field: str
    operator: str
    value: Any


@dataclass(frozen=True)
class AuthorizationRule:
    """One independently sufficient access grant."""

    actor: ActorKind
    operations: frozenset[Operation]
    groups: tuple[str, ...] = ()
    owner_field: str = "owner"
    condition: Optional[Condition] = None

    @property
    def is_conditional(self) -> bool:
        return self.condition is not None


@dataclass(frozen=True)
class SecondaryIndex:
    name: str
    partition_key: str
    sort_key: Optional[str] = None


@dataclass(frozen=True)
class Model:
    """A persisted entity: fields, rules and access paths."""

    name: str
    fields: tuple[Field, ...]
    rules: tuple[AuthorizationRule, ...]
    indexes: tuple[SecondaryIndex, ...] = ()
    identifier: tuple[str, ...] = DEFAULT_IDENTIFIER
    source: Optional[BaseModel] = field(default=None, compare=False, repr=False)

    def get_field(self, name: str) -> Optional[Field]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def has_field(self, name: str) -> bool:
        """True for declared stored fields and system fields."""
        declared = self.get_field(name)
        if declared is not None:
            return declared.is_stored
        return name in SYSTEM_FIELDS

    def index(self, name: str) -> Optional[SecondaryIndex]:
        for idx in self.indexes:
            if idx.name == name:
                return idx
        return None


@dataclass(frozen=True)
class CustomType:
    """Return-shape descriptor; never persisted."""

    name: str
    fields: tuple[Field, ...]
    source: Optional[BaseModel] = field(default=None, compare=False, repr=False)

    def get_field(self, name: str) -> Optional[Field]:
        for f in self.fields:
            if f.name == name:
                return f
        return None


@dataclass(frozen=True)
class CustomOperation:
    """A named query or mutation routed to an external handler."""

    name: str
    kind: OperationKind
    arguments: tuple[Field, ...]
    returns: TypeRef
    handler: str
    rules: tuple[AuthorizationRule, ...]
    source: Optional[BaseModel] = field(default=None, compare=False, repr=False)

    def argument(self, name: str) -> Optional[Field]:
        for arg in self.arguments:
            if arg.name == name:
                return arg
        return None


__all__ = [
    "DEFAULT_IDENTIFIER",
    "NO_DEFAULT",
    "SYSTEM_FIELDS",
    "AuthorizationRule",
    "Condition",
    "CustomOperation",
    "CustomType",
    "Field",
    "Model",
    "OperationKind",
    "RefKind",
    "RelationKind",
    "Relationship",
    "ScalarType",
    "SecondaryIndex",
    "TypeRef",
]
