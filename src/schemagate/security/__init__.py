"""Request-level security for schemagate.

The route guard decides, per request path, whether a visitor may proceed,
must sign in first, or is already signed in and should leave the auth
surface. It runs once per inbound request ahead of any data operation.

Usage::

    from schemagate.security import RouteGuard

    guard = RouteGuard(config.routes)
    decision = await guard.check(path, credential, verifier)
    if decision.redirect:
        return redirect(decision.location)

Configuration (env vars)::

    ROUTES_PROTECTED=/admin,/tutor,/problems
    ROUTES_AUTH_ONLY=/auth
"""

from __future__ import annotations

from .guard import (
    GuardAction,
    GuardDecision,
    RouteClass,
    RouteGuard,
    RouteTable,
)

__all__ = [
    "GuardAction",
    "GuardDecision",
    "RouteClass",
    "RouteGuard",
    "RouteTable",
]
