"""Tests for the request Session."""

from __future__ import annotations

import dataclasses

import pytest
from schemagate import AuthMode, Session


class TestSession:
    """Session construction and invariants."""

    def test_anonymous(self) -> None:
        session = Session.anonymous()
        assert session.is_anonymous
        assert session.subject_id is None
        assert session.auth_mode is AuthMode.ANONYMOUS
        assert session.groups == frozenset()

    def test_for_user(self) -> None:
        session = Session.for_user("user-1", email="a@example.com", groups=["admin", "admin", "editor"])
        assert session.authenticated
        assert not session.is_anonymous
        assert session.auth_mode is AuthMode.USER_POOL
        assert session.groups == frozenset({"admin", "editor"})
        assert session.in_group("admin")
        assert not session.in_group("owner")

    def test_for_api_key(self) -> None:
        """API-key requests are not authenticated sessions."""
        session = Session.for_api_key("key-1")
        assert session.via_api_key
        assert not session.authenticated
        assert session.subject_id is None

    def test_groups_only_count_when_signed_in(self) -> None:
        session = Session(groups=frozenset({"admin"}))
        assert not session.in_group("admin")

    def test_authenticated_requires_subject(self) -> None:
        with pytest.raises(ValueError, match="subject_id"):
            Session(authenticated=True, auth_mode=AuthMode.USER_POOL)

    def test_api_key_cannot_be_authenticated(self) -> None:
        with pytest.raises(ValueError, match="user-pool"):
            Session(subject_id="u1", authenticated=True, auth_mode=AuthMode.API_KEY)

    def test_frozen(self) -> None:
        session = Session.for_user("user-1")
        with pytest.raises(dataclasses.FrozenInstanceError):
            session.subject_id = "user-2"  # type: ignore[misc]

    def test_hashable_and_comparable(self) -> None:
        assert Session.for_user("u1", groups=["a"]) == Session.for_user("u1", groups=["a"])
        assert len({Session.for_user("u1"), Session.for_user("u1")}) == 1
