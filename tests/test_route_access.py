# tests/test_route_access.py

"""
Tests for the route table and the gate decision function.
"""

import pytest

from core.roles import Role
from core.route_access import (
    RouteRule,
    decide,
    match_rule,
    needs_session,
    is_auth_entry,
)


def test_anonymous_on_protected_page_goes_to_login():
    decision = decide("/admin/dashboard", None)
    assert not decision.allowed
    assert decision.redirect_to == "/auth/login"


@pytest.mark.parametrize("path", ["/", "/compare", "/cars/123", "/about", "/api/cars/available", "/health/app"])
def test_public_paths_allow_anonymous(path):
    assert decide(path, None).allowed


def test_root_is_exact_only():
    """'/' being public must not make every path public."""
    assert match_rule("/").prefix == "/"
    assert match_rule("/dashboard") is None
    assert not decide("/dashboard", None).allowed


def test_unmatched_path_needs_any_session():
    assert decide("/dashboard", Role.USER).allowed
    assert decide("/settings/profile", Role.DRIVER).allowed


@pytest.mark.parametrize("role", [Role.SUPER_ADMIN, Role.ADMIN, Role.ADMIN_STAFF])
def test_admin_roles_enter_admin_zone(role):
    assert decide("/admin/dashboard", role).allowed


@pytest.mark.parametrize("role", [Role.DRIVER, Role.PARTNER, Role.PARTNER_STAFF, Role.USER])
def test_non_admins_bounced_from_admin_zone(role):
    decision = decide("/admin/users", role)
    assert not decision.allowed
    assert decision.redirect_to == "/auth/login"


def test_partner_prefix_matches_on_segment_boundary():
    assert match_rule("/partner").prefix == "/partner"
    assert match_rule("/partner/fleet").prefix == "/partner"
    assert match_rule("/partner-staff/rota").prefix == "/partner-staff"
    assert match_rule("/partnership") is None


def test_partner_staff_may_use_partner_zone():
    assert decide("/partner", Role.PARTNER_STAFF).allowed
    assert decide("/partner-staff", Role.PARTNER).allowed
    assert not decide("/partner", Role.DRIVER).allowed


def test_driver_zone_is_driver_only():
    assert decide("/driver/bookings", Role.DRIVER).allowed
    assert not decide("/driver", Role.ADMIN).allowed


@pytest.mark.parametrize(
    "role,home",
    [
        (Role.SUPER_ADMIN, "/admin/dashboard"),
        (Role.ADMIN_STAFF, "/admin/dashboard"),
        (Role.PARTNER, "/partner"),
        (Role.PARTNER_STAFF, "/partner"),
        (Role.DRIVER, "/driver"),
        (Role.USER, "/dashboard"),
    ],
)
def test_signed_in_user_on_login_goes_home(role, home):
    decision = decide("/auth/login", role)
    assert not decision.allowed
    assert decision.redirect_to == home


def test_register_is_an_auth_entry_but_forgot_password_is_not():
    assert is_auth_entry("/auth/register")
    assert not is_auth_entry("/auth/forgot-password")
    assert decide("/auth/forgot-password", Role.DRIVER).allowed


def test_longest_prefix_wins_over_shorter_rule():
    table = (
        RouteRule("/admin", frozenset({Role.ADMIN})),
        RouteRule("/admin/public-report"),
    )
    assert decide("/admin/public-report", None, table).allowed
    assert not decide("/admin/other", None, table).allowed


def test_needs_session_only_when_decision_depends_on_it():
    assert not needs_session("/api/bookings/create")
    assert not needs_session("/compare")
    assert needs_session("/auth/login")
    assert needs_session("/admin/dashboard")
    assert needs_session("/dashboard")
