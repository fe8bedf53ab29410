"""Operation and actor constants for authorization rules.

Provides:
- ``Operation``: what a rule can grant (CRUD on models, invoke on custom operations).
- ``ActorKind``: who a rule applies to.
- ``ConditionOperator``: comparison used by conditional rules.
"""

from __future__ import annotations

from enum import Enum


class Operation(str, Enum):
    """Operations a rule can grant.

    Model rules grant a subset of ``MODEL_OPERATIONS``; custom-operation
    rules grant ``INVOKE``.
    """

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    INVOKE = "invoke"


MODEL_OPERATIONS = frozenset({Operation.CREATE, Operation.READ, Operation.UPDATE, Operation.DELETE})
OPERATION_INVOKE = frozenset({Operation.INVOKE})


class ActorKind(str, Enum):
    """Actor classifier of a rule.

    - ``owner``: the signed-in user stored in the record's owner field
    - ``authenticated``: any signed-in user
    - ``groups``: signed-in users holding one of the named groups
    - ``public``: requests authenticated by a public API key
    """

    OWNER = "owner"
    AUTHENTICATED = "authenticated"
    GROUPS = "groups"
    PUBLIC = "public"


class ConditionOperator(str, Enum):
    EQ = "eq"
    NE = "ne"
    IN = "in"
    GT = "gt"
    GE = "ge"
    LT = "lt"
    LE = "le"


ORDERING_OPERATORS = frozenset({ConditionOperator.GT, ConditionOperator.GE, ConditionOperator.LT, ConditionOperator.LE})


__all__ = [
    "ActorKind",
    "ConditionOperator",
    "MODEL_OPERATIONS",
    "OPERATION_INVOKE",
    "ORDERING_OPERATORS",
    "Operation",
]
