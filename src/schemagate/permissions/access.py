"""Authorization rule evaluation.

Decides whether a session may perform an operation on a model (optionally
against a concrete record) or invoke a custom operation. Rules are
independently sufficient grants: the decision is the logical OR of every
rule, computed over the rule *set* so declaration order never matters.

Pure and deterministic; safe to call concurrently.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional, Union

from ..exceptions import AuthorizationError
from ..schema.types import AuthorizationRule, Condition, CustomOperation, Model
from ..session import Session
from .constants import ActorKind, ConditionOperator, Operation

logger = logging.getLogger(__name__)

Target = Union[Model, CustomOperation]
Record = Mapping[str, Any]


@dataclass(frozen=True)
class AuthorizationDecision:
    """Outcome of :func:`authorize`.

    Truthy when allowed. ``matched`` holds every rule that granted access.
    """

    allowed: bool
    target: str
    operation: Operation
    matched: frozenset[AuthorizationRule] = frozenset()

    @property
    def denied(self) -> bool:
        return not self.allowed

    def __bool__(self) -> bool:
        return self.allowed


# ── Condition evaluation ─────────────────────────────────────────


def _comparable(left: Any, right: Any) -> tuple[Any, Any]:
    # datetime/date record values against ISO literals
    if isinstance(left, (datetime, date)) and isinstance(right, str):
        try:
            right = type(left).fromisoformat(right.replace("Z", "+00:00"))
        except ValueError:
            pass
    return left, right


def evaluate_condition(condition: Condition, record: Optional[Record]) -> bool:
    """Evaluate ``record[field] <op> literal``. False when the field is absent."""
    if record is None or condition.field not in record:
        return False
    actual = record[condition.field]
    op = ConditionOperator(condition.operator)
    expected = condition.value

    if op is ConditionOperator.EQ:
        return actual == expected
    if op is ConditionOperator.NE:
        return actual != expected
    if op is ConditionOperator.IN:
        return actual in expected

    if actual is None:
        return False
    left, right = _comparable(actual, expected)
    try:
        if op is ConditionOperator.GT:
            return left > right
        if op is ConditionOperator.GE:
            return left >= right
        if op is ConditionOperator.LT:
            return left < right
        if op is ConditionOperator.LE:
            return left <= right
    except TypeError:
        return False
    return False


# ── Rule matching ────────────────────────────────────────────────


def _owner_matches(session: Session, rule: AuthorizationRule, operation: Operation, record: Optional[Record]) -> bool:
    if not session.authenticated:
        return False
    owner = record.get(rule.owner_field) if record is not None else None
    if owner is None:
        # New record without an owner yet: it will be stamped with the caller.
        return operation is Operation.CREATE
    if isinstance(owner, (list, tuple, frozenset, set)):
        return session.subject_id in owner
    return owner == session.subject_id


def actor_matches(
    session: Session,
    rule: AuthorizationRule,
    operation: Operation,
    record: Optional[Record] = None,
) -> bool:
    """Check the actor classifier of a rule against a session.

    Anonymous sessions and API-key requests never match owner,
    authenticated or groups rules. Public rules match API-key requests only.
    """
    actor = ActorKind(rule.actor)
    if actor is ActorKind.PUBLIC:
        return session.via_api_key
    if actor is ActorKind.AUTHENTICATED:
        return session.authenticated
    if actor is ActorKind.GROUPS:
        return any(session.in_group(group) for group in rule.groups)
    if actor is ActorKind.OWNER:
        return _owner_matches(session, rule, operation, record)
    return False


def rule_matches(
    session: Session,
    rule: AuthorizationRule,
    operation: Operation,
    record: Optional[Record] = None,
) -> bool:
    if operation not in rule.operations:
        return False
    if rule.condition is not None:
        if operation is Operation.CREATE or record is None:
            return False
        if not evaluate_condition(rule.condition, record):
            return False
    return actor_matches(session, rule, operation, record)


# ── Public API ───────────────────────────────────────────────────


def authorize(
    session: Session,
    target: Target,
    operation: Union[Operation, str],
    record: Optional[Record] = None,
) -> AuthorizationDecision:
    """Decide whether ``session`` may perform ``operation`` on ``target``.

    Args:
        session: Identity context of the request.
        target: A model or a custom operation from the registry.
        operation: ``create``/``read``/``update``/``delete`` for models,
            ``invoke`` for custom operations.
        record: Candidate record for model operations. Conditional and
            owner rules need it (except owner rules on ``create``).

    Returns:
        AuthorizationDecision; allowed iff at least one rule matches.
        A target without rules is always denied.

    Example::

        decision = authorize(session, registry.lookup_model("Post"), "update", post)
        if not decision:
            ...
    """
    operation = Operation(operation)
    matched = frozenset(
        rule for rule in frozenset(target.rules) if rule_matches(session, rule, operation, record)
    )
    return AuthorizationDecision(
        allowed=bool(matched),
        target=target.name,
        operation=operation,
        matched=matched,
    )


def require_authorized(
    session: Session,
    target: Target,
    operation: Union[Operation, str],
    record: Optional[Record] = None,
) -> AuthorizationDecision:
    """Like :func:`authorize`, but raise AuthorizationError on deny."""
    decision = authorize(session, target, operation, record)
    if decision.denied:
        logger.info(
            "Denied %s on %s for subject=%s mode=%s",
            decision.operation.value,
            decision.target,
            session.subject_id or "-",
            session.auth_mode.value,
        )
        raise AuthorizationError(
            f"Not authorized to {decision.operation.value} {decision.target}",
            target=decision.target,
            operation=decision.operation.value,
        )
    return decision


def filter_readable(session: Session, model: Model, records: Iterable[Record]) -> Iterator[Record]:
    """Yield only the records ``session`` may read."""
    for record in records:
        if authorize(session, model, Operation.READ, record):
            yield record


__all__ = [
    "AuthorizationDecision",
    "actor_matches",
    "authorize",
    "evaluate_condition",
    "filter_readable",
    "require_authorized",
    "rule_matches",
]
