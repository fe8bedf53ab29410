"""Schema Registry: load-once, read-many schema state.

``SchemaRegistry.register`` turns definitions into resolved, frozen schema
types, checking every cross-reference. Any inconsistency aborts with a single
SchemaError listing all problems found, so a broken schema never serves a
request. After construction nothing can be added, removed or replaced.

Usage::

    registry = SchemaRegistry.register(
        model_defs=[post_def, comment_def],
        custom_type_defs=[stats_def],
        operation_defs=[get_author_info_def],
    )
    post = registry.lookup_model("Post")

    # or from a JSON document
    registry = load_schema_file("schema.json")

    # or at startup, from the configured document
    registry = build_registry(load_config_from_env())
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..config import GateConfig
from ..exceptions import ConfigurationError, NotFoundError, SchemaError
from ..permissions.constants import (
    MODEL_OPERATIONS,
    OPERATION_INVOKE,
    ORDERING_OPERATORS,
    ActorKind,
    ConditionOperator,
)
from .definitions import (
    CustomTypeDefinition,
    EnumDefinition,
    FieldDefinition,
    ModelDefinition,
    OperationDefinition,
    RuleDefinition,
    SchemaDefinition,
)
from .types import (
    AuthorizationRule,
    Condition,
    CustomOperation,
    CustomType,
    Field,
    Model,
    RefKind,
    RelationKind,
    Relationship,
    ScalarType,
    SecondaryIndex,
    SYSTEM_FIELDS,
    DEFAULT_IDENTIFIER,
    NO_DEFAULT,
    TypeRef,
)
from .values import type_error

logger = logging.getLogger(__name__)

_SCALAR_NAMES = frozenset(s.value for s in ScalarType)
_ORDERABLE_SCALARS = frozenset(
    {ScalarType.INTEGER, ScalarType.FLOAT, ScalarType.STRING, ScalarType.DATETIME, ScalarType.DATE}
)
_KEY_UNSUPPORTED_SCALARS = frozenset({ScalarType.JSON, ScalarType.BOOLEAN})

ModelInput = Union[ModelDefinition, Mapping[str, Any]]
CustomTypeInput = Union[CustomTypeDefinition, Mapping[str, Any]]
OperationInput = Union[OperationDefinition, Mapping[str, Any]]
EnumInput = Union[EnumDefinition, Mapping[str, Any]]


def _coerce(definition_cls, items: Iterable[Any], kind: str) -> list:
    coerced = []
    for item in items:
        if isinstance(item, definition_cls):
            coerced.append(item)
            continue
        try:
            coerced.append(definition_cls.model_validate(item))
        except PydanticValidationError as e:
            raise SchemaError(f"Invalid {kind} definition: {e}", errors=e.errors()) from e
    return coerced


def _is_scalar_literal(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


class _RegistryBuilder:
    """Resolves definitions into schema types, collecting every problem."""

    def __init__(
        self,
        models: list[ModelDefinition],
        custom_types: list[CustomTypeDefinition],
        operations: list[OperationDefinition],
        enums: list[EnumDefinition],
    ) -> None:
        self.model_defs = models
        self.custom_type_defs = custom_types
        self.operation_defs = operations
        self.enum_defs = enums
        self.problems: list[str] = []

        self.type_kinds: dict[str, RefKind] = {}
        self.enum_values: dict[str, tuple[str, ...]] = {}
        self.models_by_name: dict[str, ModelDefinition] = {}

    # -- helpers ---------------------------------------------------------

    def problem(self, message: str) -> None:
        self.problems.append(message)

    def _claim_type_name(self, name: str, kind: RefKind, what: str) -> bool:
        if name in _SCALAR_NAMES:
            self.problem(f"{what} {name!r} shadows a built-in scalar type")
            return False
        if name in self.type_kinds:
            self.problem(f"Duplicate type name {name!r} ({what})")
            return False
        self.type_kinds[name] = kind
        return True

    def resolve_type(self, name: str, is_array: bool, where: str) -> Optional[TypeRef]:
        if name in _SCALAR_NAMES:
            return TypeRef(kind=RefKind.SCALAR, name=name, is_array=is_array)
        kind = self.type_kinds.get(name)
        if kind is None:
            self.problem(f"{where}: unresolved type reference {name!r}")
            return None
        return TypeRef(kind=kind, name=name, is_array=is_array)

    def _model_declares(self, model_name: str, field_name: str) -> bool:
        model_def = self.models_by_name.get(model_name)
        if model_def is None:
            return False
        for f in model_def.fields:
            if f.name == field_name:
                return f.relation is None
        return field_name in SYSTEM_FIELDS

    # -- fields ----------------------------------------------------------

    def build_fields(
        self,
        defs: Iterable[FieldDefinition],
        owner: str,
        *,
        model_name: Optional[str] = None,
        arguments: bool = False,
    ) -> tuple[Field, ...]:
        fields: list[Field] = []
        seen: set[str] = set()
        for fd in defs:
            where = f"{owner}.{fd.name}"
            if fd.name in seen:
                self.problem(f"{owner}: duplicate field name {fd.name!r}")
                continue
            seen.add(fd.name)

            is_array = fd.array or fd.relation is RelationKind.HAS_MANY
            ref = self.resolve_type(fd.type, is_array, where)
            if ref is None:
                continue

            relationship = None
            if fd.relation is not None:
                relationship = self._build_relationship(fd, ref, where, model_name)
                if relationship is None:
                    continue
            elif arguments and ref.kind not in (RefKind.SCALAR, RefKind.ENUM):
                self.problem(f"{where}: argument type {fd.type!r} is not an input type")
                continue

            enum_values = self.enum_values.get(ref.name) if ref.kind is RefKind.ENUM else None

            default = NO_DEFAULT
            if fd.has_default:
                default = fd.default
                if default is None:
                    if fd.required:
                        self.problem(f"{where}: required field cannot default to null")
                else:
                    problem = type_error(ref, default, enum_values)
                    if problem:
                        self.problem(f"{where}: default {default!r} is not a valid {ref}: {problem}")
                        continue

            fields.append(
                Field(
                    name=fd.name,
                    type=ref,
                    required=fd.required,
                    default=default,
                    enum_values=enum_values,
                    relationship=relationship,
                )
            )
        return tuple(fields)

    def _build_relationship(
        self,
        fd: FieldDefinition,
        ref: TypeRef,
        where: str,
        model_name: Optional[str],
    ) -> Optional[Relationship]:
        if model_name is None:
            self.problem(f"{where}: relationships are only allowed on models")
            return None
        if ref.kind is not RefKind.MODEL:
            self.problem(f"{where}: relationship target {fd.type!r} is not a model")
            return None
        if fd.relation is None or fd.references is None:
            self.problem(f"{where}: relationship needs both a relation kind and a reference field")
            return None
        if fd.relation is RelationKind.BELONGS_TO:
            holder = model_name
        else:
            holder = ref.name
        if not self._model_declares(holder, fd.references):
            self.problem(f"{where}: reference field {fd.references!r} does not exist on model {holder!r}")
            return None
        return Relationship(kind=fd.relation, target=ref.name, references=fd.references)

    # -- rules -----------------------------------------------------------

    def build_condition(self, rd: RuleDefinition, model: Model, where: str) -> Optional[Condition]:
        cd = rd.when
        if cd is None:
            return None
        if not model.has_field(cd.field):
            self.problem(f"{where}: condition field {cd.field!r} does not exist")
            return None

        declared = model.get_field(cd.field)
        if declared is not None:
            ref, enum_values = declared.type, declared.enum_values
        else:
            ref, enum_values = TypeRef(kind=RefKind.SCALAR, name=SYSTEM_FIELDS[cd.field].value), None
        element_ref = TypeRef(kind=ref.kind, name=ref.name)

        value = cd.value
        if cd.operator is ConditionOperator.IN:
            if not isinstance(value, (list, tuple)) or not all(_is_scalar_literal(v) for v in value):
                self.problem(f"{where}: 'in' condition needs a list of scalar literals")
                return None
            for item in value:
                if item is not None and type_error(element_ref, item, enum_values):
                    self.problem(f"{where}: literal {item!r} does not fit field {cd.field!r} ({ref})")
                    return None
            value = tuple(value)
        else:
            if not _is_scalar_literal(value):
                self.problem(f"{where}: condition literal must be a scalar")
                return None
            if cd.operator in ORDERING_OPERATORS:
                if ref.is_array or ref.kind is not RefKind.SCALAR or ScalarType(ref.name) not in _ORDERABLE_SCALARS:
                    self.problem(f"{where}: field {cd.field!r} ({ref}) cannot be compared with {cd.operator.value!r}")
                    return None
                if value is None:
                    self.problem(f"{where}: {cd.operator.value!r} needs a non-null literal")
                    return None
            if value is not None and type_error(element_ref, value, enum_values):
                self.problem(f"{where}: literal {value!r} does not fit field {cd.field!r} ({ref})")
                return None

        return Condition(field=cd.field, operator=cd.operator, value=value)

    def build_model_rules(self, md: ModelDefinition, model: Model) -> tuple[AuthorizationRule, ...]:
        rules: list[AuthorizationRule] = []
        for position, rd in enumerate(md.authorization):
            where = f"{md.name} rule #{position} ({rd.allow.value})"
            operations = frozenset(rd.operations) if rd.operations is not None else MODEL_OPERATIONS
            invalid = operations - MODEL_OPERATIONS
            if invalid:
                self.problem(f"{where}: {sorted(op.value for op in invalid)} not allowed on models")
                continue
            if not operations:
                self.problem(f"{where}: empty operation set")
                continue
            if rd.allow is ActorKind.OWNER and not model.has_field(rd.owner_field):
                self.problem(f"{where}: owner field {rd.owner_field!r} does not exist")
                continue
            condition = None
            if rd.when is not None:
                condition = self.build_condition(rd, model, where)
                if condition is None:
                    continue
            rules.append(
                AuthorizationRule(
                    actor=rd.allow,
                    operations=operations,
                    groups=tuple(rd.groups),
                    owner_field=rd.owner_field,
                    condition=condition,
                )
            )
        return tuple(rules)

    def build_operation_rules(self, od: OperationDefinition) -> tuple[AuthorizationRule, ...]:
        rules: list[AuthorizationRule] = []
        for position, rd in enumerate(od.authorization):
            where = f"{od.name} rule #{position} ({rd.allow.value})"
            operations = frozenset(rd.operations) if rd.operations is not None else OPERATION_INVOKE
            if operations != OPERATION_INVOKE:
                self.problem(f"{where}: custom operation rules may only grant 'invoke'")
                continue
            if rd.when is not None:
                self.problem(f"{where}: custom operation rules cannot carry conditions")
                continue
            if rd.allow is ActorKind.OWNER:
                logger.warning("%s: owner rules never match a custom operation (no record)", where)
            rules.append(
                AuthorizationRule(
                    actor=rd.allow,
                    operations=operations,
                    groups=tuple(rd.groups),
                    owner_field=rd.owner_field,
                )
            )
        return tuple(rules)

    # -- models ----------------------------------------------------------

    def _check_key_field(self, model: Model, field_name: str, where: str) -> bool:
        if not model.has_field(field_name):
            self.problem(f"{where}: key field {field_name!r} does not exist")
            return False
        declared = model.get_field(field_name)
        if declared is None:
            return True
        ref = declared.type
        if ref.is_array or ref.kind not in (RefKind.SCALAR, RefKind.ENUM):
            self.problem(f"{where}: key field {field_name!r} ({ref}) is not a scalar")
            return False
        if ref.kind is RefKind.SCALAR and ScalarType(ref.name) is ScalarType.JSON:
            self.problem(f"{where}: key field {field_name!r} cannot be json")
            return False
        return True

    def build_model(self, md: ModelDefinition) -> Model:
        fields = self.build_fields(md.fields, md.name, model_name=md.name)
        identifier = tuple(md.identifier) if md.identifier else DEFAULT_IDENTIFIER
        base = Model(name=md.name, fields=fields, rules=(), identifier=identifier, source=md)

        for key in identifier:
            self._check_key_field(base, key, f"{md.name} identifier")

        indexes: list[SecondaryIndex] = []
        seen: set[str] = set()
        for idx in md.secondary_indexes:
            name = idx.resolved_name
            where = f"{md.name} index {name!r}"
            if name in seen:
                self.problem(f"{md.name}: duplicate index name {name!r}")
                continue
            seen.add(name)
            ok = self._check_key_field(base, idx.partition_key, where)
            if idx.sort_key is not None:
                ok = self._check_key_field(base, idx.sort_key, where) and ok
                if idx.sort_key == idx.partition_key:
                    self.problem(f"{where}: sort key repeats the partition key")
                    ok = False
            if ok:
                indexes.append(SecondaryIndex(name=name, partition_key=idx.partition_key, sort_key=idx.sort_key))

        rules = self.build_model_rules(md, base)
        return Model(
            name=md.name,
            fields=fields,
            rules=rules,
            indexes=tuple(indexes),
            identifier=identifier,
            source=md,
        )

    # -- operations ------------------------------------------------------

    def build_operation(self, od: OperationDefinition, custom_types: dict[str, CustomType]) -> Optional[CustomOperation]:
        arguments = self.build_fields(od.arguments, f"{od.name}()", arguments=True)

        returns_def = od.returns
        if returns_def.fields is not None:
            inline_name = f"{od.name[:1].upper()}{od.name[1:]}Return"
            if not self._claim_type_name(inline_name, RefKind.CUSTOM_TYPE, f"inline return type of {od.name}"):
                return None
            inline_def = CustomTypeDefinition(name=inline_name, fields=returns_def.fields)
            custom_types[inline_name] = CustomType(
                name=inline_name,
                fields=self.build_fields(inline_def.fields, inline_name),
                source=inline_def,
            )
            returns = TypeRef(kind=RefKind.CUSTOM_TYPE, name=inline_name, is_array=returns_def.array)
        elif returns_def.type is not None:
            ref = self.resolve_type(returns_def.type, returns_def.array, f"{od.name} return type")
            if ref is None:
                return None
            returns = ref
        else:
            self.problem(f"{od.name}: return clause needs a type or inline fields")
            return None

        return CustomOperation(
            name=od.name,
            kind=od.kind,
            arguments=arguments,
            returns=returns,
            handler=od.handler,
            rules=self.build_operation_rules(od),
            source=od,
        )

    # -- entry point -----------------------------------------------------

    def build(self) -> SchemaRegistry:
        for ed in self.enum_defs:
            if self._claim_type_name(ed.name, RefKind.ENUM, "enum"):
                self.enum_values[ed.name] = tuple(ed.values)
        for md in self.model_defs:
            if self._claim_type_name(md.name, RefKind.MODEL, "model"):
                self.models_by_name[md.name] = md
        for cd in self.custom_type_defs:
            self._claim_type_name(cd.name, RefKind.CUSTOM_TYPE, "custom type")

        models = {md.name: self.build_model(md) for md in self.models_by_name.values()}

        custom_types: dict[str, CustomType] = {}
        for cd in self.custom_type_defs:
            if cd.name in custom_types or self.type_kinds.get(cd.name) is not RefKind.CUSTOM_TYPE:
                continue
            custom_types[cd.name] = CustomType(
                name=cd.name,
                fields=self.build_fields(cd.fields, cd.name),
                source=cd,
            )

        operations: dict[str, CustomOperation] = {}
        for od in self.operation_defs:
            if od.name in operations:
                self.problem(f"Duplicate operation name {od.name!r}")
                continue
            operation = self.build_operation(od, custom_types)
            if operation is not None:
                operations[od.name] = operation

        if self.problems:
            for message in self.problems:
                logger.error("Schema problem: %s", message)
            raise SchemaError(
                f"Schema has {len(self.problems)} problem(s): {self.problems[0]}",
                problems=list(self.problems),
            )

        return SchemaRegistry(
            models=models,
            custom_types=custom_types,
            operations=operations,
            enums=self.enum_values,
            explicit_custom_types=tuple(cd.name for cd in self.custom_type_defs),
        )


class SchemaRegistry:
    """Immutable registry of models, custom types, enums and custom operations.

    Build it with :meth:`register` (or :func:`load_schema`); the constructor
    only wraps already-resolved state.
    """

    __slots__ = ("_models", "_custom_types", "_operations", "_enums", "_explicit_custom_types")

    def __init__(
        self,
        *,
        models: Mapping[str, Model],
        custom_types: Mapping[str, CustomType],
        operations: Mapping[str, CustomOperation],
        enums: Mapping[str, tuple[str, ...]],
        explicit_custom_types: tuple[str, ...] = (),
    ) -> None:
        self._models = MappingProxyType(dict(models))
        self._custom_types = MappingProxyType(dict(custom_types))
        self._operations = MappingProxyType(dict(operations))
        self._enums = MappingProxyType(dict(enums))
        self._explicit_custom_types = explicit_custom_types

    def __setattr__(self, name: str, value: Any) -> None:
        if hasattr(self, "_explicit_custom_types"):
            raise AttributeError("SchemaRegistry is read-only")
        object.__setattr__(self, name, value)

    @classmethod
    def register(
        cls,
        model_defs: Iterable[ModelInput] = (),
        custom_type_defs: Iterable[CustomTypeInput] = (),
        operation_defs: Iterable[OperationInput] = (),
        enum_defs: Iterable[EnumInput] = (),
    ) -> SchemaRegistry:
        """Build the registry.

        Raises:
            SchemaError: unresolved references, duplicates, or any other
                inconsistency; ``details["problems"]`` lists all of them.
        """
        builder = _RegistryBuilder(
            models=_coerce(ModelDefinition, model_defs, "model"),
            custom_types=_coerce(CustomTypeDefinition, custom_type_defs, "custom type"),
            operations=_coerce(OperationDefinition, operation_defs, "operation"),
            enums=_coerce(EnumDefinition, enum_defs, "enum"),
        )
        registry = builder.build()
        logger.info(
            "Schema registered: %d models, %d custom types, %d operations, %d enums",
            len(registry.models),
            len(registry.custom_types),
            len(registry.operations),
            len(registry.enums),
        )
        return registry

    # -- read-only views -------------------------------------------------

    @property
    def models(self) -> Mapping[str, Model]:
        return self._models

    @property
    def custom_types(self) -> Mapping[str, CustomType]:
        return self._custom_types

    @property
    def operations(self) -> Mapping[str, CustomOperation]:
        return self._operations

    @property
    def enums(self) -> Mapping[str, tuple[str, ...]]:
        return self._enums

    # -- lookups ---------------------------------------------------------

    def lookup_model(self, name: str) -> Model:
        try:
            return self._models[name]
        except KeyError:
            raise NotFoundError(f"Unknown model: {name}", model=name) from None

    def lookup_operation(self, name: str) -> CustomOperation:
        try:
            return self._operations[name]
        except KeyError:
            raise NotFoundError(f"Unknown operation: {name}", operation=name) from None

    def lookup_custom_type(self, name: str) -> CustomType:
        try:
            return self._custom_types[name]
        except KeyError:
            raise NotFoundError(f"Unknown custom type: {name}", custom_type=name) from None

    def lookup_enum(self, name: str) -> tuple[str, ...]:
        try:
            return self._enums[name]
        except KeyError:
            raise NotFoundError(f"Unknown enum: {name}", enum=name) from None

    def lookup_index(self, model_name: str, index_name: str) -> SecondaryIndex:
        index = self.lookup_model(model_name).index(index_name)
        if index is None:
            raise NotFoundError(f"Unknown index {index_name} on {model_name}", model=model_name, index=index_name)
        return index

    def definition(self) -> SchemaDefinition:
        """Return the schema document this registry was built from."""
        return SchemaDefinition(
            enums=tuple(EnumDefinition(name=name, values=values) for name, values in self._enums.items()),
            models=tuple(m.source for m in self._models.values()),
            custom_types=tuple(self._custom_types[name].source for name in self._explicit_custom_types),
            operations=tuple(op.source for op in self._operations.values()),
        )

    def __repr__(self) -> str:
        return (
            f"SchemaRegistry(models={list(self._models)}, operations={list(self._operations)}, "
            f"custom_types={list(self._custom_types)})"
        )


def load_schema(document: Union[SchemaDefinition, Mapping[str, Any]]) -> SchemaRegistry:
    """Build a registry from a whole schema document."""
    if not isinstance(document, SchemaDefinition):
        try:
            document = SchemaDefinition.model_validate(document)
        except PydanticValidationError as e:
            raise SchemaError(f"Invalid schema document: {e}", errors=e.errors()) from e
    return SchemaRegistry.register(
        model_defs=document.models,
        custom_type_defs=document.custom_types,
        operation_defs=document.operations,
        enum_defs=document.enums,
    )


def load_schema_file(path: Union[str, Path]) -> SchemaRegistry:
    """Read and register a JSON schema document."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SchemaError(f"Cannot read schema document {path}: {e}", path=str(path)) from e
    try:
        document = SchemaDefinition.model_validate_json(raw)
    except PydanticValidationError as e:
        raise SchemaError(f"Invalid schema document {path}: {e}", path=str(path), errors=e.errors()) from e
    logger.info("Loading schema document %s", path)
    return load_schema(document)


def build_registry(config: GateConfig) -> SchemaRegistry:
    """Build the registry named by ``config.schema_path`` at process start.

    Nothing may be served until this returns; a raised error stops startup.

    Raises:
        ConfigurationError: no schema path is configured.
        SchemaError: the document cannot be read or is inconsistent.
    """
    if config.schema_path is None:
        raise ConfigurationError("No schema document configured (SCHEMA_PATH)", setting="schema_path")
    try:
        return load_schema_file(config.schema_path)
    except SchemaError as e:
        logger.critical("Schema document %s rejected, refusing to start: %s", config.schema_path, e.message)
        raise


__all__ = [
    "SchemaRegistry",
    "build_registry",
    "load_schema",
    "load_schema_file",
]
