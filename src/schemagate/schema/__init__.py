"""Declarative schema: definitions, resolved types and the registry.

Usage::

    from schemagate.schema import load_schema_file

    registry = load_schema_file("schema.json")
    post = registry.lookup_model("Post")
"""

from .definitions import (
    ConditionDefinition,
    CustomTypeDefinition,
    EnumDefinition,
    FieldDefinition,
    IndexDefinition,
    ModelDefinition,
    OperationDefinition,
    ReturnDefinition,
    RuleDefinition,
    SchemaDefinition,
)
from .registry import SchemaRegistry, build_registry, load_schema, load_schema_file
from .types import (
    SYSTEM_FIELDS,
    AuthorizationRule,
    Condition,
    CustomOperation,
    CustomType,
    Field,
    Model,
    OperationKind,
    RefKind,
    RelationKind,
    Relationship,
    ScalarType,
    SecondaryIndex,
    TypeRef,
)

__all__ = [
    "SYSTEM_FIELDS",
    "AuthorizationRule",
    "Condition",
    "ConditionDefinition",
    "CustomOperation",
    "CustomType",
    "CustomTypeDefinition",
    "EnumDefinition",
    "Field",
    "FieldDefinition",
    "IndexDefinition",
    "Model",
    "ModelDefinition",
    "OperationDefinition",
    "OperationKind",
    "RefKind",
    "RelationKind",
    "Relationship",
    "ReturnDefinition",
    "RuleDefinition",
    "ScalarType",
    "SchemaDefinition",
    "SchemaRegistry",
    "SecondaryIndex",
    "TypeRef",
    "build_registry",
    "load_schema",
    "load_schema_file",
]
