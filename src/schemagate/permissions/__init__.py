"""Authorization rules for models and custom operations.

Defines:
- Operation, ActorKind, ConditionOperator: rule vocabulary
- authorize(): OR-combination of independently sufficient rules
- require_authorized(), filter_readable(): helpers for callers
"""

from .access import (
    AuthorizationDecision,
    actor_matches,
    authorize,
    evaluate_condition,
    filter_readable,
    require_authorized,
    rule_matches,
)
from .constants import (
    MODEL_OPERATIONS,
    OPERATION_INVOKE,
    ActorKind,
    ConditionOperator,
    Operation,
)

__all__ = [
    "MODEL_OPERATIONS",
    "OPERATION_INVOKE",
    "ActorKind",
    "AuthorizationDecision",
    "ConditionOperator",
    "Operation",
    "actor_matches",
    "authorize",
    "evaluate_condition",
    "filter_readable",
    "require_authorized",
    "rule_matches",
]
