"""Declarative schema definition surface.

Pydantic models describing models, fields, authorization rules, secondary
indexes, enums, custom types and custom operations, exactly as they appear in
a schema document. Keys are camelCase in documents (``partitionKey``,
``secondaryIndexes``) and snake_case in Python; both are accepted.

Definitions are frozen. They only describe; cross-references are resolved
and checked by ``SchemaRegistry.register``.

Example document fragment::

    {
      "models": [{
        "name": "Post",
        "fields": [
          {"name": "title", "type": "string", "required": true},
          {"name": "published", "type": "boolean", "default": false}
        ],
        "authorization": [
          {"allow": "owner"},
          {"allow": "authenticated", "operations": ["read"],
           "when": {"field": "published", "operator": "eq", "value": true}}
        ],
        "secondaryIndexes": [
          {"name": "byPublished", "partitionKey": "published", "sortKey": "publishedAt"}
        ]
      }]
    }
"""

from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..permissions.constants import ActorKind, ConditionOperator, Operation
from .types import OperationKind, RelationKind

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_name(value: str) -> str:
    if not _NAME_RE.match(value):
        raise ValueError(f"Invalid name {value!r}: use letters, digits and underscores")
    return value


class _Definition(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_validator("name", check_fields=False)
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _check_name(v)


class FieldDefinition(_Definition):
    """A field, custom type member or operation argument.

    ``type`` is a scalar name (``string``, ``integer``, ...) or the name of an
    enum, model or custom type. Relationship fields set ``relation`` and
    ``references`` and name the target model in ``type``.
    """

    name: str
    type: str
    array: bool = False
    required: bool = False
    default: Any = None
    relation: Optional[RelationKind] = None
    references: Optional[str] = None

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set

    @model_validator(mode="after")
    def check_relation(self) -> FieldDefinition:
        if self.relation is not None and not self.references:
            raise ValueError(f"Relationship field {self.name!r} must name its reference field")
        if self.relation is None and self.references is not None:
            raise ValueError(f"Field {self.name!r} sets 'references' without a relation")
        if self.relation is not None and self.has_default:
            raise ValueError(f"Relationship field {self.name!r} cannot have a default")
        return self


class ConditionDefinition(_Definition):
    field: str
    operator: ConditionOperator = ConditionOperator.EQ
    value: Any = None


class RuleDefinition(_Definition):
    """One ``allow`` entry.

    ``operations`` omitted means every operation the target supports.
    """

    allow: ActorKind
    operations: Optional[tuple[Operation, ...]] = None
    groups: tuple[str, ...] = ()
    owner_field: str = "owner"
    when: Optional[ConditionDefinition] = None

    @model_validator(mode="after")
    def check_groups(self) -> RuleDefinition:
        if self.allow is ActorKind.GROUPS and not self.groups:
            raise ValueError("A groups rule must name at least one group")
        if self.allow is not ActorKind.GROUPS and self.groups:
            raise ValueError(f"'groups' is only valid on groups rules, not {self.allow.value!r}")
        return self


class IndexDefinition(_Definition):
    """Secondary index. Unnamed indexes are named ``by<PartitionKey>[And<SortKey>]``."""

    name: Optional[str] = None
    partition_key: str
    sort_key: Optional[str] = None

    @property
    def resolved_name(self) -> str:
        if self.name:
            return self.name
        name = "by" + self.partition_key[:1].upper() + self.partition_key[1:]
        if self.sort_key:
            name += "And" + self.sort_key[:1].upper() + self.sort_key[1:]
        return name


class ModelDefinition(_Definition):
    name: str
    fields: tuple[FieldDefinition, ...] = ()
    authorization: tuple[RuleDefinition, ...] = ()
    secondary_indexes: tuple[IndexDefinition, ...] = ()
    identifier: Optional[tuple[str, ...]] = None

    @field_validator("identifier")
    @classmethod
    def validate_identifier(cls, v: Optional[tuple[str, ...]]) -> Optional[tuple[str, ...]]:
        if v is not None and not 1 <= len(v) <= 2:
            raise ValueError("Identifier must be a partition key and an optional sort key")
        return v


class EnumDefinition(_Definition):
    name: str
    values: tuple[str, ...]

    @field_validator("values")
    @classmethod
    def validate_values(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("Enum must declare at least one value")
        if len(set(v)) != len(v):
            raise ValueError("Enum values must be unique")
        return v


class CustomTypeDefinition(_Definition):
    name: str
    fields: tuple[FieldDefinition, ...]


class ReturnDefinition(_Definition):
    """Operation return type: a named type, or an inline custom type via ``fields``.

    A bare string is accepted as shorthand for ``{"type": <name>}``.
    """

    type: Optional[str] = None
    array: bool = False
    fields: Optional[tuple[FieldDefinition, ...]] = None

    @model_validator(mode="before")
    @classmethod
    def accept_shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"type": data}
        return data

    @model_validator(mode="after")
    def check_exclusive(self) -> ReturnDefinition:
        if (self.type is None) == (self.fields is None):
            raise ValueError("A return type needs exactly one of 'type' or 'fields'")
        return self


class OperationDefinition(_Definition):
    name: str
    kind: OperationKind
    arguments: tuple[FieldDefinition, ...] = ()
    returns: ReturnDefinition
    handler: str
    authorization: tuple[RuleDefinition, ...] = ()

    @field_validator("handler")
    @classmethod
    def validate_handler(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Handler reference must not be empty")
        return v


class SchemaDefinition(_Definition):
    """A whole schema document."""

    enums: tuple[EnumDefinition, ...] = ()
    models: tuple[ModelDefinition, ...] = ()
    custom_types: tuple[CustomTypeDefinition, ...] = Field(default=())
    operations: tuple[OperationDefinition, ...] = ()


__all__ = [
    "ConditionDefinition",
    "CustomTypeDefinition",
    "EnumDefinition",
    "FieldDefinition",
    "IndexDefinition",
    "ModelDefinition",
    "OperationDefinition",
    "ReturnDefinition",
    "RuleDefinition",
    "SchemaDefinition",
]
