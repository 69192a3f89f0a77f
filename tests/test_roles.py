# tests/test_roles.py

"""
Tests for role normalization and session role resolution.
"""

from unittest.mock import Mock

import pytest

from core.roles import Role, normalize_role, home_path_for
from dependencies.auth import resolve_session, fetch_role


@pytest.mark.parametrize(
    "stored,expected",
    [
        ("ADMIN", Role.ADMIN),
        ("driver", Role.DRIVER),
        (" partner_staff ", Role.PARTNER_STAFF),
        ("wizard", Role.USER),
        (None, Role.USER),
        ("", Role.USER),
    ],
)
def test_normalize_role(stored, expected):
    assert normalize_role(stored) == expected


def test_unknown_role_goes_to_default_home():
    assert home_path_for("wizard") == "/dashboard"


def auth_user(user_id="u1", metadata=None):
    return Mock(user=Mock(id=user_id, email="u1@example.com", user_metadata=metadata or {}))


def test_session_takes_role_from_users_row(fake_supabase):
    fake = fake_supabase
    fake.client.auth.get_user.return_value = auth_user(metadata={"name": "Pat"})
    fake.set("users", [{"role": "DRIVER"}])

    user = resolve_session(fake.client, "token")

    assert user.role == Role.DRIVER
    assert user.full_name == "Pat"
    assert not user.role_defaulted


def test_missing_role_row_defaults_to_user(fake_supabase):
    fake = fake_supabase
    fake.client.auth.get_user.return_value = auth_user()
    fake.set("users", [])

    user = resolve_session(fake.client, "token")

    assert user.role == Role.USER
    assert user.role_defaulted


def test_role_lookup_error_defaults_to_user(fake_supabase):
    fake = fake_supabase
    fake.client.auth.get_user.return_value = auth_user()
    fake.set("users").execute.side_effect = Exception("connection reset")

    assert fetch_role(fake.client, "u1") is None
    assert resolve_session(fake.client, "token").role == Role.USER


def test_rejected_token_gives_no_session(fake_supabase):
    fake = fake_supabase
    fake.client.auth.get_user.side_effect = Exception("invalid JWT")

    assert resolve_session(fake.client, "bad") is None
