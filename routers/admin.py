# routers/admin.py

import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from core.activity_log import log_admin_activity, raise_security_alert, client_ip
from core.errors import supabase_error, extract_supabase_error, handle_supabase_error
from core.logging_config import logger
from core.permission_helpers import requires_permission
from core.permissions import normalize_sidebar_access
from core.roles import Role, ADMIN_ROLES, FULL_ADMIN_ROLES, normalize_role
from core.supabase_client import get_supabase_client
from core.supabase_helpers import apply_range, first_row, rows
from core.utils import utc_now_iso
from dependencies.auth import CurrentUser, requires_role
from models.admin import (
    DeleteUserRequest,
    BlockUserRequest,
    UpdateUserRoleRequest,
    ResolveAlertRequest,
    TerminateSessionRequest,
    StaffCreate,
    StaffUpdate,
)


router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(requires_role(ADMIN_ROLES))],
)

require_full_admin = requires_role(FULL_ADMIN_ROLES)

# Tables holding per-user rows removed after the auth account is gone
USER_CLEANUP_TABLES = (
    ("admin_staff", "user_id"),
    ("users", "id"),
    ("user_sessions", "user_id"),
    ("user_action_logs", "user_id"),
)


def _client():
    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Server configuration missing")
    return client


def _auth_user(client, user_id: str):
    """Auth record for user_id, or None."""
    try:
        resp = client.auth.admin.get_user_by_id(user_id)
    except Exception as e:
        logger.warning(f"Auth lookup failed for {user_id}: {extract_supabase_error(e)}")
        return None
    return getattr(resp, "user", None)


# -----------------------------------------------------
# DELETE USER
# -----------------------------------------------------
@router.delete("/delete-user", summary="Delete a user account")
def delete_user(
    payload: DeleteUserRequest,
    request: Request,
    current_user: CurrentUser = Depends(require_full_admin),
):
    if payload.user_id == current_user.id:
        raise HTTPException(400, "Cannot delete your own account")

    client = _client()

    try:
        client.auth.admin.delete_user(payload.user_id)
    except Exception as e:
        supabase_error(e, "Failed to delete user")

    for table, column in USER_CLEANUP_TABLES:
        try:
            client.table(table).delete().eq(column, payload.user_id).execute()
        except Exception as e:
            logger.warning(f"Cleanup of {table} failed for {payload.user_id}: {extract_supabase_error(e)}")

    log_admin_activity(
        client, current_user.id, "delete_user", "user", payload.user_id,
        ip_address=client_ip(request),
    )

    return {"success": True, "message": "User deleted successfully"}


# -----------------------------------------------------
# BLOCK / UNBLOCK USER
# -----------------------------------------------------
@router.post("/block-user", summary="Block or unblock a user")
def block_user(
    payload: BlockUserRequest,
    request: Request,
    current_user: CurrentUser = Depends(require_full_admin),
):
    if payload.blocked and payload.user_id == current_user.id:
        raise HTTPException(400, "Cannot block your own account")

    client = _client()

    target = _auth_user(client, payload.user_id)
    if not target:
        raise HTTPException(404, "User not found")

    metadata = dict(target.user_metadata or {})
    if payload.blocked:
        metadata.update({"status": "suspended", "blocked": True, "blocked_at": utc_now_iso()})
    else:
        metadata.update({"status": "active", "blocked": False, "unblocked_at": utc_now_iso()})

    action = "blocked" if payload.blocked else "unblocked"

    try:
        client.auth.admin.update_user_by_id(payload.user_id, {"user_metadata": metadata})
    except Exception as e:
        supabase_error(e, f"Failed to {'block' if payload.blocked else 'unblock'} user")

    log_admin_activity(
        client, current_user.id, "block_user" if payload.blocked else "unblock_user",
        "user", payload.user_id, ip_address=client_ip(request),
    )

    return {
        "success": True,
        "action": action,
        "message": f"User {action} successfully",
    }


# -----------------------------------------------------
# UPDATE USER ROLE
# -----------------------------------------------------
@router.post("/update-user-role", summary="Change a user's role")
def update_user_role(
    payload: UpdateUserRoleRequest,
    request: Request,
    current_user: CurrentUser = Depends(require_full_admin),
):
    try:
        new_role = Role(payload.role.strip().upper())
    except ValueError:
        raise HTTPException(400, "Invalid role")

    if new_role == Role.SUPER_ADMIN and current_user.role != Role.SUPER_ADMIN:
        raise HTTPException(403, "Only SUPER_ADMIN can assign SUPER_ADMIN role")

    client = _client()

    target = _auth_user(client, payload.user_id)
    if not target:
        raise HTTPException(404, "User not found")

    now = utc_now_iso()
    metadata = {
        **(target.user_metadata or {}),
        "role": new_role.value,
        "role_updated_at": now,
        "role_updated_by": current_user.id,
    }

    try:
        client.auth.admin.update_user_by_id(payload.user_id, {"user_metadata": metadata})
        # The gate reads the role from the users row
        client.table("users").update({"role": new_role.value, "updated_at": now}).eq("id", payload.user_id).execute()
    except Exception as e:
        supabase_error(e, "Failed to update user role")

    if new_role in ADMIN_ROLES:
        try:
            staff = first_row(
                client.table("admin_staff").select("id").eq("user_id", payload.user_id).limit(1).execute()
            )
            if staff:
                client.table("admin_staff").update(
                    {"role": new_role.value, "updated_at": now}
                ).eq("user_id", payload.user_id).execute()
            else:
                client.table("admin_staff").insert({
                    "user_id": payload.user_id,
                    "role": new_role.value,
                    "is_active": True,
                    "created_at": now,
                    "updated_at": now,
                }).execute()
        except Exception as e:
            logger.warning(f"Admin staff update failed (non-critical): {extract_supabase_error(e)}")

    log_admin_activity(
        client, current_user.id, "update_user_role", "user", payload.user_id,
        details={"role": new_role.value}, ip_address=client_ip(request),
    )

    return {"success": True, "message": f"User role updated to {new_role.value}"}


# -----------------------------------------------------
# RESOLVE SECURITY ALERT
# -----------------------------------------------------
@router.post("/resolve-alert", summary="Mark a security alert resolved")
def resolve_alert(
    payload: ResolveAlertRequest,
    request: Request,
    current_user: CurrentUser = Depends(require_full_admin),
):
    client = _client()
    ip = client_ip(request)

    try:
        result = (
            client.table("security_alerts")
            .update({
                "resolved": True,
                "resolved_by": current_user.id,
                "resolved_at": utc_now_iso(),
            })
            .eq("id", payload.alert_id)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to resolve alert")

    alert = first_row(result)
    if not alert:
        raise HTTPException(404, "Alert not found")

    log_admin_activity(
        client, current_user.id, "resolve_alert", "security_alert", payload.alert_id,
        details={"alert_id": payload.alert_id, "resolved": True}, ip_address=ip,
    )

    return {"success": True, "alert": alert}


# -----------------------------------------------------
# TERMINATE USER SESSION
# -----------------------------------------------------
@router.post("/terminate-session", summary="Deactivate a user session")
def terminate_session(
    payload: TerminateSessionRequest,
    request: Request,
    current_user: CurrentUser = Depends(require_full_admin),
):
    client = _client()
    ip = client_ip(request)

    try:
        session = first_row(
            client.table("user_sessions").select("*").eq("id", payload.session_id).limit(1).execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to load session")

    if not session:
        raise HTTPException(404, "Session not found")

    try:
        result = (
            client.table("user_sessions")
            .update({
                "is_active": False,
                "terminated_at": utc_now_iso(),
                "terminated_by": current_user.id,
            })
            .eq("id", payload.session_id)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to terminate session")

    log_admin_activity(
        client, current_user.id, "terminate_session", "user_session", payload.session_id,
        details={"session_id": payload.session_id, "user_id": session.get("user_id")},
        ip_address=ip,
    )
    raise_security_alert(
        client,
        "session_terminated",
        f"User session terminated by {current_user.email}",
        user_id=session.get("user_id"),
        ip_address=ip,
    )

    return {"success": True, "session": first_row(result) or session}


# -----------------------------------------------------
# LISTINGS
# -----------------------------------------------------
def _driver_view(driver: dict) -> dict:
    user = driver.get("user") or {}
    if user:
        full_name = f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()
    else:
        full_name = driver.get("full_name")

    return {
        **driver,
        "email": user.get("email") or driver.get("email"),
        "full_name": full_name,
        "phone": user.get("phone") or driver.get("phone"),
        "role": user.get("role") or driver.get("role"),
        "created_at": user.get("created_at") or driver.get("created_at"),
        "bookings": [],
        "source": "drivers",
    }


@router.get(
    "/drivers",
    summary="List drivers with their user profile",
    dependencies=[Depends(requires_permission("driverManagement", "VIEW"))],
)
def list_drivers(offset: int = Query(0, ge=0), limit: int = Query(100, ge=1, le=500)):
    client = _client()

    query = (
        client.table("drivers")
        .select("*, user:users(id, email, first_name, last_name, phone, role, created_at)")
        .order("created_at", desc=True)
    )

    try:
        result = apply_range(query, offset, limit).execute()
    except Exception as e:
        supabase_error(e, "Failed to fetch drivers")

    drivers = [_driver_view(d) for d in rows(result)]
    return {"success": True, "drivers": drivers, "count": len(drivers)}


@router.get(
    "/partners",
    summary="List partners",
    dependencies=[Depends(requires_permission("partnerManagement", "VIEW"))],
)
def list_partners(offset: int = Query(0, ge=0), limit: int = Query(100, ge=1, le=500)):
    client = _client()

    query = client.table("partners").select("*").order("created_at", desc=True)

    try:
        result = apply_range(query, offset, limit).execute()
    except Exception as e:
        supabase_error(e, "Failed to fetch partners")

    partners = rows(result)
    return {"success": True, "partners": partners, "count": len(partners)}




# -----------------------------------------------------
# ADMIN STAFF
# -----------------------------------------------------
def check_password_strength(password: str):
    if len(password) < 8:
        raise HTTPException(400, "Password must be at least 8 characters long")
    if not (re.search(r"[a-z]", password) and re.search(r"[A-Z]", password) and re.search(r"\d", password)):
        raise HTTPException(
            400,
            "Password must contain at least one uppercase letter, one lowercase letter, and one number",
        )


def staff_role(value: str, current_user: CurrentUser) -> Role:
    """Staff accounts carry an admin-tier role; only SUPER_ADMIN hands out SUPER_ADMIN."""
    try:
        role = Role(value.strip().upper())
    except ValueError:
        raise HTTPException(400, "Invalid role")

    if role not in ADMIN_ROLES:
        raise HTTPException(400, "Invalid role")
    if role == Role.SUPER_ADMIN and current_user.role != Role.SUPER_ADMIN:
        raise HTTPException(403, "Only SUPER_ADMIN can assign SUPER_ADMIN role")
    return role


def _staff_member(client, staff_id: str, columns: str = "*"):
    try:
        return first_row(
            client.table("admin_staff").select(columns).eq("id", staff_id).limit(1).execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to load staff member")


@router.get("/staff", summary="List admin staff")
@router.get("/get-staff", summary="List admin staff", include_in_schema=False)
def list_staff(
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: CurrentUser = Depends(require_full_admin),
):
    client = _client()

    query = client.table("admin_staff").select("*").order("created_at", desc=True)

    try:
        result = apply_range(query, offset, limit).execute()
    except Exception as e:
        supabase_error(e, "Failed to fetch staff members")

    return {"success": True, "staff": rows(result)}


@router.post("/create-staff", summary="Create an admin staff account")
def create_staff(
    payload: StaffCreate,
    request: Request,
    current_user: CurrentUser = Depends(require_full_admin),
):
    role = staff_role(payload.role, current_user)
    check_password_strength(payload.password)

    client = _client()

    try:
        created = client.auth.admin.create_user({
            "email": payload.email,
            "password": payload.password,
            "email_confirm": True,
            "user_metadata": {"name": payload.name, "role": role.value},
        })
    except Exception as e:
        raise handle_supabase_error(e, "Failed to create user")

    user_id = created.user.id
    now = utc_now_iso()

    try:
        # The gate reads the role from the users row
        client.table("users").upsert({
            "id": user_id,
            "email": payload.email,
            "first_name": payload.name,
            "role": role.value,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }).execute()
        client.table("admin_staff").insert({
            "user_id": user_id,
            "name": payload.name,
            "email": payload.email,
            "role": role.value,
            "department": payload.department,
            "position": payload.position,
            "permissions": payload.permissions or {},
            "sidebar_access": normalize_sidebar_access(payload.sidebar_access),
            "is_active": True,
            "is_online": False,
            "login_count": 0,
            "join_date": now,
            "created_at": now,
            "updated_at": now,
        }).execute()
    except Exception as e:
        logger.error(f"Staff record for {user_id} failed: {extract_supabase_error(e)}")
        # No orphaned login without a staff row
        try:
            client.auth.admin.delete_user(user_id)
        except Exception as cleanup_error:
            logger.warning(f"Failed to remove auth user {user_id}: {extract_supabase_error(cleanup_error)}")
        raise HTTPException(500, "Failed to create staff record")

    log_admin_activity(
        client, current_user.id, "create_staff", "admin_staff", user_id,
        details={"role": role.value, "department": payload.department},
        ip_address=client_ip(request),
    )
    logger.info(f"Staff member {user_id} ({role.value}) created by {current_user.id}")

    return {
        "success": True,
        "message": f"Staff member {payload.name} created successfully",
        "user": {"id": user_id, "email": payload.email, "name": payload.name, "role": role.value},
    }


@router.put("/update-staff", summary="Update an admin staff account")
def update_staff(
    payload: StaffUpdate,
    request: Request,
    current_user: CurrentUser = Depends(require_full_admin),
):
    client = _client()

    staff = _staff_member(client, payload.staff_id, "user_id, role")
    if not staff:
        raise HTTPException(404, "Staff member not found")

    role = staff_role(payload.role, current_user) if payload.role else normalize_role(staff.get("role"))
    role_changed = role.value != staff.get("role")

    if payload.password:
        check_password_strength(payload.password)

    if payload.password or role_changed:
        attrs = {"user_metadata": {"name": payload.name, "role": role.value}}
        if payload.password:
            attrs["password"] = payload.password
        try:
            client.auth.admin.update_user_by_id(staff["user_id"], attrs)
        except Exception as e:
            supabase_error(e, "Failed to update user")

    now = utc_now_iso()

    try:
        client.table("admin_staff").update({
            "name": payload.name,
            "email": payload.email,
            "role": role.value,
            "department": payload.department,
            "position": payload.position,
            "permissions": payload.permissions or {},
            "sidebar_access": normalize_sidebar_access(payload.sidebar_access),
            "updated_at": now,
        }).eq("id", payload.staff_id).execute()
    except Exception as e:
        supabase_error(e, "Failed to update staff record")

    if role_changed:
        try:
            client.table("users").update({"role": role.value, "updated_at": now}).eq("id", staff["user_id"]).execute()
        except Exception as e:
            logger.warning(f"Failed to sync role for {staff['user_id']}: {extract_supabase_error(e)}")

    log_admin_activity(
        client, current_user.id, "update_staff", "admin_staff", payload.staff_id,
        details={"role": role.value, "password_changed": bool(payload.password)},
        ip_address=client_ip(request),
    )

    return {"success": True, "message": f"Staff member {payload.name} updated successfully"}


@router.delete("/delete-staff", summary="Delete an admin staff account")
def delete_staff(
    request: Request,
    staff_id: Optional[str] = Query(None, alias="id"),
    current_user: CurrentUser = Depends(require_full_admin),
):
    if not staff_id:
        raise HTTPException(400, "Staff ID is required")

    client = _client()

    staff = _staff_member(client, staff_id, "user_id, name")
    if not staff:
        raise HTTPException(404, "Staff member not found")
    if staff.get("user_id") == current_user.id:
        raise HTTPException(400, "Cannot delete your own account")

    # The staff row goes even when the auth account is already gone
    try:
        client.auth.admin.delete_user(staff["user_id"])
    except Exception as e:
        logger.warning(f"Auth delete failed for {staff['user_id']}: {extract_supabase_error(e)}")

    try:
        client.table("admin_staff").delete().eq("id", staff_id).execute()
    except Exception as e:
        supabase_error(e, "Failed to delete staff record")

    log_admin_activity(
        client, current_user.id, "delete_staff", "admin_staff", staff_id,
        details={"user_id": staff.get("user_id")}, ip_address=client_ip(request),
    )

    return {"success": True, "message": f"Staff member {staff.get('name')} deleted successfully"}
