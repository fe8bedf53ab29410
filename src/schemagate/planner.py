"""Secondary index planner.

Picks the access path (primary key or a secondary index) that serves a query
predicate. The planner never plans a scan: when no path qualifies it raises
NoPlanFound and the caller decides whether to reject the query or scan.

A secondary index qualifies when its partition key is equality-constrained
and the range constraint, if any, is on its sort key. Among qualifying
indexes, one whose sort key is constrained beats one matched on the
partition key only; remaining ties break by index name.

The primary key is the fallback: it serves a predicate only when no index
qualifies and every constrained field belongs to the model's identifier.
The choice depends only on the model and the predicate's shape, never on
declaration order.

Example::

    plan = plan_query(post, Predicate(
        equals={"published": True},
        range=RangeConstraint("publishedAt", "ge", "2024-01-01"),
    ))
    plan.index_name        # "byPublished"
    plan.residual_filters  # ()
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional

from .exceptions import NoPlanFound, ValidationError
from .schema.types import Model

logger = logging.getLogger(__name__)

PRIMARY_INDEX_NAME = "primary"


class RangeOperator(str, Enum):
    GT = "gt"
    GE = "ge"
    LT = "lt"
    LE = "le"
    BETWEEN = "between"
    BEGINS_WITH = "beginsWith"


class PlanKind(str, Enum):
    PRIMARY_KEY = "primary_key"
    INDEX = "index"


@dataclass(frozen=True)
class RangeConstraint:
    """At most one per predicate. ``between`` takes a ``(low, high)`` pair."""

    field: str
    operator: RangeOperator
    value: Any

    def __post_init__(self) -> None:
        try:
            operator = RangeOperator(self.operator)
        except ValueError:
            raise ValidationError(f"Unknown range operator {self.operator!r}", field=self.field) from None
        object.__setattr__(self, "operator", operator)

        if operator is RangeOperator.BETWEEN:
            if not isinstance(self.value, (list, tuple)) or len(self.value) != 2:
                raise ValidationError("'between' needs a (low, high) pair", field=self.field)
            object.__setattr__(self, "value", tuple(self.value))
        elif operator is RangeOperator.BEGINS_WITH:
            if not isinstance(self.value, str):
                raise ValidationError("'beginsWith' needs a string prefix", field=self.field)
        elif self.value is None:
            raise ValidationError(f"{operator.value!r} needs a value", field=self.field)


@dataclass(frozen=True)
class Predicate:
    """Equality constraints plus at most one range constraint."""

    equals: Mapping[str, Any] = field(default_factory=dict)
    range: Optional[RangeConstraint] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "equals", MappingProxyType(dict(self.equals)))
        if self.range is not None and self.range.field in self.equals:
            raise ValidationError(
                f"Field {self.range.field!r} has both an equality and a range constraint",
                field=self.range.field,
            )

    @property
    def fields(self) -> frozenset[str]:
        names = set(self.equals)
        if self.range is not None:
            names.add(self.range.field)
        return frozenset(names)


@dataclass(frozen=True)
class FieldCondition:
    """One key condition or residual filter. ``operator`` is ``eq`` or a range operator."""

    field: str
    operator: str
    value: Any


@dataclass(frozen=True)
class IndexPlan:
    """Chosen access path for a query."""

    model: str
    index_name: str
    kind: PlanKind
    partition: FieldCondition
    sort: Optional[FieldCondition] = None
    residual_filters: tuple[FieldCondition, ...] = ()
    unique: bool = False

    @property
    def uses_primary_key(self) -> bool:
        return self.kind is PlanKind.PRIMARY_KEY


@dataclass(frozen=True)
class _AccessPath:
    name: str
    kind: PlanKind
    partition_key: str
    sort_key: Optional[str]


def _access_paths(model: Model) -> list[_AccessPath]:
    identifier = model.identifier
    paths = [
        _AccessPath(
            name=PRIMARY_INDEX_NAME,
            kind=PlanKind.PRIMARY_KEY,
            partition_key=identifier[0],
            sort_key=identifier[1] if len(identifier) > 1 else None,
        )
    ]
    for index in model.indexes:
        paths.append(_AccessPath(index.name, PlanKind.INDEX, index.partition_key, index.sort_key))
    return paths


def _build_plan(model: Model, path: _AccessPath, predicate: Predicate) -> Optional[tuple[int, IndexPlan]]:
    """Return ``(tier, plan)`` if the path qualifies, lower tier is better."""
    if path.partition_key not in predicate.equals:
        return None
    if path.kind is PlanKind.PRIMARY_KEY and not predicate.fields <= set(model.identifier):
        return None
    rng = predicate.range
    if rng is not None and rng.field != path.sort_key:
        return None

    consumed = {path.partition_key}
    sort: Optional[FieldCondition] = None
    if path.sort_key is not None:
        if rng is not None:
            sort = FieldCondition(rng.field, rng.operator.value, rng.value)
            consumed.add(rng.field)
        elif path.sort_key in predicate.equals:
            sort = FieldCondition(path.sort_key, "eq", predicate.equals[path.sort_key])
            consumed.add(path.sort_key)

    unique = path.kind is PlanKind.PRIMARY_KEY and all(key in predicate.equals for key in model.identifier)
    if path.kind is PlanKind.PRIMARY_KEY:
        tier = 2
    elif sort is not None:
        tier = 0
    else:
        tier = 1

    residual = tuple(
        FieldCondition(name, "eq", value)
        for name, value in sorted(predicate.equals.items())
        if name not in consumed
    )
    plan = IndexPlan(
        model=model.name,
        index_name=path.name,
        kind=path.kind,
        partition=FieldCondition(path.partition_key, "eq", predicate.equals[path.partition_key]),
        sort=sort,
        residual_filters=residual,
        unique=unique,
    )
    return tier, plan


def plan_query(model: Model, predicate: Predicate) -> IndexPlan:
    """Choose the access path that serves ``predicate`` on ``model``.

    Raises:
        ValidationError: the predicate names a field the model does not store.
        NoPlanFound: no secondary index qualifies and the predicate reaches
            beyond the identifier.
    """
    unknown = sorted(name for name in predicate.fields if not model.has_field(name))
    if unknown:
        raise ValidationError(
            f"Unknown field(s) in predicate for {model.name}: {', '.join(unknown)}",
            model=model.name,
            fields=unknown,
        )

    candidates: list[tuple[int, str, IndexPlan]] = []
    for path in _access_paths(model):
        built = _build_plan(model, path, predicate)
        if built is not None:
            tier, plan = built
            candidates.append((tier, path.name, plan))

    if not candidates:
        logger.debug("No plan for %s predicate fields=%s", model.name, sorted(predicate.fields))
        raise NoPlanFound(
            f"No index on {model.name} serves the predicate",
            model=model.name,
            fields=sorted(predicate.fields),
        )

    candidates.sort(key=lambda c: (c[0], c[1]))
    plan = candidates[0][2]
    logger.debug("Planned %s via %s (unique=%s)", model.name, plan.index_name, plan.unique)
    return plan


__all__ = [
    "PRIMARY_INDEX_NAME",
    "FieldCondition",
    "IndexPlan",
    "PlanKind",
    "Predicate",
    "RangeConstraint",
    "RangeOperator",
    "plan_query",
]
