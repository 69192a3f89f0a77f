from fastapi import Depends, HTTPException
from typing import Optional
from dependencies.auth import get_current_user, CurrentUser
from core.permissions import PERMISSION_LEVELS, ROLE_PERMISSIONS
from core.roles import ADMIN_ROLES, normalize_role


# -----------------------------------------------------
# Level lookup
# -----------------------------------------------------
def permission_level(role: Optional[str], area: str) -> str:
    """Level a role holds on an area. Unknown areas resolve to NONE."""
    levels = ROLE_PERMISSIONS.get(normalize_role(role), {})
    return levels.get(area, "NONE")


def level_rank(level: str) -> int:
    try:
        return PERMISSION_LEVELS.index(level.upper())
    except ValueError:
        raise ValueError(f"Unknown permission level: {level}")


# -----------------------------------------------------
# Permission evaluation
# -----------------------------------------------------
def has_permission(role: Optional[str], area: str, level: str = "VIEW") -> bool:
    """True when the role holds at least `level` on `area`."""
    return level_rank(permission_level(role, area)) >= level_rank(level)


# -----------------------------------------------------
# FastAPI dependency wrapper
# -----------------------------------------------------
def requires_permission(area: str, level: str = "VIEW"):
    """
    Usage:
        @router.post("/", dependencies=[Depends(requires_permission("supportManagement", "MANAGE"))])
    """
    level_rank(level)

    def dependency(current_user: CurrentUser = Depends(get_current_user)):
        if not has_permission(current_user.role, area, level):
            raise HTTPException(
                status_code=403,
                detail=f"Insufficient permissions: '{area}' requires {level}"
            )
        return current_user

    return dependency


# ============================================================
# ROLE-LEVEL HELPERS
# ============================================================

def is_admin(user: CurrentUser) -> bool:
    """Any admin tier (SUPER_ADMIN, ADMIN, ADMIN_STAFF)."""
    return user.role in ADMIN_ROLES

