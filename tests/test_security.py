"""Tests for schemagate.security route guard."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from schemagate import Credential, RouteConfig, Session
from schemagate.exceptions import ConfigurationError
from schemagate.security import GuardAction, GuardDecision, RouteClass, RouteGuard, RouteTable

USER = Session.for_user("user-1")


class TestRouteTable:
    """Path classification."""

    def test_default_table(self) -> None:
        table = RouteTable.from_config(RouteConfig())
        assert table.classify("/admin") is RouteClass.PROTECTED
        assert table.classify("/tutor/session/42") is RouteClass.PROTECTED
        assert table.classify("/problems?page=2") is RouteClass.PROTECTED
        assert table.classify("/auth") is RouteClass.AUTH_ONLY
        assert table.classify("/auth/signup") is RouteClass.AUTH_ONLY
        assert table.classify("/") is RouteClass.PUBLIC
        assert table.classify("/pricing") is RouteClass.PUBLIC

    def test_whole_segments_only(self) -> None:
        table = RouteTable(protected=("/admin",), auth_only=("/auth",))
        assert table.classify("/administrator") is RouteClass.PUBLIC
        assert table.classify("/authors") is RouteClass.PUBLIC

    def test_longest_prefix_wins(self) -> None:
        table = RouteTable(protected=("/account",), auth_only=("/account/login",))
        assert table.classify("/account/settings") is RouteClass.PROTECTED
        assert table.classify("/account/login") is RouteClass.AUTH_ONLY

    def test_root_prefix(self) -> None:
        table = RouteTable(protected=("/",), auth_only=("/auth",))
        assert table.classify("/anything") is RouteClass.PROTECTED
        assert table.classify("/auth") is RouteClass.AUTH_ONLY

    def test_overlap_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            RouteTable(protected=("/auth",), auth_only=("/auth",))


class TestRouteGuardDecide:
    """Redirect rules."""

    def test_protected_without_session_redirects(self) -> None:
        """Path /admin with no session goes to the auth surface with resume parameter."""
        decision = RouteGuard().decide("/admin", None)
        assert decision.action is GuardAction.REDIRECT
        assert decision.route_class is RouteClass.PROTECTED
        assert decision.location == "/auth?next=/admin"

    def test_protected_with_session_passes(self) -> None:
        decision = RouteGuard().decide("/admin", USER)
        assert decision.passed
        assert decision.location is None

    def test_anonymous_session_is_no_session(self) -> None:
        assert RouteGuard().decide("/tutor", Session.anonymous()).redirect

    def test_api_key_is_no_session(self) -> None:
        assert RouteGuard().decide("/tutor", Session.for_api_key("key-1")).redirect

    def test_resume_parameter_drops_query(self) -> None:
        decision = RouteGuard().decide("/problems/7?tab=hints", None)
        assert decision.location == "/auth?next=/problems/7"

    def test_resume_parameter_is_encoded(self) -> None:
        decision = RouteGuard().decide("/tutor/a b&c", None)
        assert decision.location == "/auth?next=/tutor/a%20b%26c"

    def test_auth_route_with_session_redirects(self) -> None:
        decision = RouteGuard().decide("/auth", USER)
        assert decision.redirect
        assert decision.location == "/tutor"

    def test_auth_route_without_session_passes(self) -> None:
        assert RouteGuard().decide("/auth/login", None).passed

    def test_public_route_passes(self) -> None:
        for session in (None, USER):
            decision = RouteGuard().decide("/pricing", session)
            assert decision == GuardDecision(action=GuardAction.PASS, route_class=RouteClass.PUBLIC)

    def test_custom_config(self) -> None:
        config = RouteConfig(
            protected=["/dashboard"],
            auth_only=["/login"],
            auth_path="/login",
            resume_param="returnTo",
            default_destination="/dashboard",
        )
        guard = RouteGuard(config)
        assert guard.decide("/dashboard/stats", None).location == "/login?returnTo=/dashboard/stats"
        assert guard.decide("/login", USER).location == "/dashboard"
        assert guard.decide("/admin", None).passed

    def test_decide_is_pure(self) -> None:
        guard = RouteGuard()
        assert {guard.decide("/admin", None) for _ in range(3)} == {guard.decide("/admin", None)}


class TestRouteGuardCheck:
    """Session resolution ahead of the decision."""

    @pytest.mark.asyncio
    async def test_check_with_valid_credential(self) -> None:
        verifier = AsyncMock()
        verifier.verify.return_value = USER
        decision = await RouteGuard().check("/admin", Credential("bearer", "tok"), verifier)
        assert decision.passed
        assert decision.session is USER
        verifier.verify.assert_awaited_once_with(Credential("bearer", "tok"))

    @pytest.mark.asyncio
    async def test_check_without_credential(self) -> None:
        verifier = AsyncMock()
        decision = await RouteGuard().check("/admin", None, verifier)
        assert decision.location == "/auth?next=/admin"
        verifier.verify.assert_not_called()

    @pytest.mark.asyncio
    async def test_check_with_rejected_credential(self) -> None:
        verifier = AsyncMock()
        verifier.verify.return_value = None
        decision = await RouteGuard().check("/admin", Credential("bearer", "expired"), verifier)
        assert decision.redirect

    @pytest.mark.asyncio
    async def test_check_with_failing_verifier(self) -> None:
        verifier = AsyncMock()
        verifier.verify.side_effect = TimeoutError("identity provider timeout")
        decision = await RouteGuard().check("/auth", Credential("bearer", "tok"), verifier)
        assert decision.passed

    @pytest.mark.asyncio
    async def test_check_request_django_style(self) -> None:
        verifier = AsyncMock()
        verifier.verify.return_value = USER
        request = SimpleNamespace(path="/auth/login", META={"HTTP_AUTHORIZATION": "Bearer tok"})
        decision = await RouteGuard().check_request(request, verifier)
        assert decision.location == "/tutor"

    @pytest.mark.asyncio
    async def test_check_request_starlette_style(self) -> None:
        verifier = AsyncMock()
        request = SimpleNamespace(url=SimpleNamespace(path="/problems"), headers={}, cookies={})
        decision = await RouteGuard().check_request(request, verifier)
        assert decision.location == "/auth?next=/problems"
