# tests/test_permissions.py

"""
Tests for role permission levels and the permission dependency.
"""

import pytest
from fastapi import HTTPException

from core.permission_helpers import (
    has_permission,
    level_rank,
    permission_level,
    requires_permission,
)
from core.permissions import PERMISSION_AREAS, ROLE_PERMISSIONS
from core.roles import Role
from dependencies.auth import CurrentUser


def test_every_role_covers_every_area():
    for role, levels in ROLE_PERMISSIONS.items():
        assert set(levels) == set(PERMISSION_AREAS), role


def test_super_admin_has_full_everywhere():
    for area in PERMISSION_AREAS:
        assert has_permission(Role.SUPER_ADMIN, area, "FULL")


def test_admin_cannot_manage_roles():
    assert not has_permission(Role.ADMIN, "roleManagement", "VIEW")
    assert has_permission(Role.ADMIN, "bookingManagement", "FULL")


def test_admin_staff_manages_support_only():
    assert has_permission(Role.ADMIN_STAFF, "supportManagement", "MANAGE")
    assert not has_permission(Role.ADMIN_STAFF, "supportManagement", "FULL")
    assert has_permission(Role.ADMIN_STAFF, "driverManagement", "VIEW")
    assert not has_permission(Role.ADMIN_STAFF, "driverApproval", "VIEW")


def test_levels_are_ordered():
    assert level_rank("NONE") < level_rank("VIEW") < level_rank("LIMITED") < level_rank("MANAGE") < level_rank("FULL")


def test_unknown_level_rejected():
    with pytest.raises(ValueError):
        level_rank("ROOT")


def test_unknown_role_and_area_resolve_to_none():
    assert permission_level("JANITOR", "bookingManagement") == "NONE"
    assert permission_level(Role.ADMIN, "timeTravel") == "NONE"


def test_lowercase_role_strings_are_normalized():
    assert has_permission("partner", "fleetManagement", "MANAGE")


def test_dependency_rejects_insufficient_level():
    check = requires_permission("fleetManagement", "MANAGE")
    staff = CurrentUser(id="s1", role=Role.PARTNER_STAFF)

    with pytest.raises(HTTPException) as exc:
        check(current_user=staff)

    assert exc.value.status_code == 403


def test_dependency_returns_user_when_allowed():
    check = requires_permission("fleetManagement", "MANAGE")
    partner = CurrentUser(id="p1", role=Role.PARTNER)

    assert check(current_user=partner) is partner
