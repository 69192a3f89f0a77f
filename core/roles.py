# core/roles.py

from enum import Enum
from typing import Optional


class Role(str, Enum):
    """Fixed access tiers stored on the users row / auth metadata."""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    ADMIN_STAFF = "ADMIN_STAFF"
    PARTNER = "PARTNER"
    PARTNER_STAFF = "PARTNER_STAFF"
    DRIVER = "DRIVER"
    USER = "USER"

    def __str__(self):
        return str(self.value)


# ============================================
# ROLE GROUPS
# ============================================
FULL_ADMIN_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN})
ADMIN_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN, Role.ADMIN_STAFF})
PARTNER_ROLES = frozenset({Role.PARTNER, Role.PARTNER_STAFF})

DEFAULT_ROLE = Role.USER


# ============================================
# ROLE → LANDING PAGE
# ============================================
ROLE_HOME_PATHS = {
    Role.SUPER_ADMIN: "/admin/dashboard",
    Role.ADMIN: "/admin/dashboard",
    Role.ADMIN_STAFF: "/admin/dashboard",
    Role.PARTNER: "/partner",
    Role.PARTNER_STAFF: "/partner",
    Role.DRIVER: "/driver",
    Role.USER: "/dashboard",
}


def normalize_role(value: Optional[str]) -> Role:
    """
    Map a stored role string onto the fixed set.
    Rows written by older registration flows use lowercase ("driver").
    Anything unknown falls back to USER.
    """
    if isinstance(value, Role):
        return value
    if not value or not isinstance(value, str):
        return DEFAULT_ROLE
    try:
        return Role(value.strip().upper())
    except ValueError:
        return DEFAULT_ROLE


def home_path_for(role: Optional[str]) -> str:
    return ROLE_HOME_PATHS[normalize_role(role)]
