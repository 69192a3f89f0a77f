# routers/support_notifications.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from core.errors import supabase_error
from core.permission_helpers import is_admin, requires_permission
from core.supabase_client import get_supabase_client
from core.supabase_helpers import apply_range, first_row, rows
from core.utils import utc_now_iso
from dependencies.auth import get_current_user, CurrentUser
from models.support import SupportNotificationCreate, SupportNotificationUpdate


router = APIRouter(
    prefix="/api/support/notifications",
    tags=["Support"],
)


def _client():
    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")
    return client


def _owned_or_admin(client, notification_id: str, current_user: CurrentUser):
    if is_admin(current_user):
        return
    try:
        row = first_row(
            client.table("support_notifications").select("user_id").eq("id", notification_id).limit(1).execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to fetch notification")
    if not row:
        raise HTTPException(404, "Notification not found")
    if row.get("user_id") != current_user.id:
        raise HTTPException(403, "Forbidden")


@router.get("", summary="List support notifications")
def list_notifications(
    user_id: Optional[str] = None,
    type: Optional[str] = None,
    is_read: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
):
    # Non-admins only ever see their own
    if not is_admin(current_user):
        user_id = current_user.id

    client = _client()

    query = client.table("support_notifications").select("*").order("created_at", desc=True)
    if user_id:
        query = query.eq("user_id", user_id)
    if type:
        query = query.eq("type", type)
    if is_read is not None:
        query = query.eq("is_read", is_read)

    try:
        result = apply_range(query, offset, limit).execute()
    except Exception as e:
        supabase_error(e, "Failed to fetch notifications")

    return {"success": True, "notifications": rows(result)}


@router.post(
    "",
    summary="Send a support notification",
    dependencies=[Depends(requires_permission("supportManagement", "MANAGE"))],
)
def create_notification(payload: SupportNotificationCreate):
    client = _client()

    record = payload.model_dump(mode="json")
    record["data"] = payload.data or {}
    record["is_read"] = False

    try:
        notification = first_row(client.table("support_notifications").insert(record).execute())
    except Exception as e:
        supabase_error(e, "Failed to create notification")

    return {"success": True, "notification": notification}


@router.put("/{notification_id}", summary="Mark a support notification read or unread")
def update_notification(
    payload: SupportNotificationUpdate,
    notification_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
):
    if payload.is_read is None:
        raise HTTPException(400, "No fields to update")

    client = _client()
    _owned_or_admin(client, notification_id, current_user)

    update = {"is_read": payload.is_read}
    if payload.is_read:
        update["read_at"] = payload.read_at or utc_now_iso()

    try:
        notification = first_row(
            client.table("support_notifications").update(update).eq("id", notification_id).execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to update notification")

    if not notification:
        raise HTTPException(404, "Notification not found")

    return {"success": True, "notification": notification}


@router.delete("/{notification_id}", summary="Delete a support notification")
def delete_notification(
    notification_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()
    _owned_or_admin(client, notification_id, current_user)

    try:
        client.table("support_notifications").delete().eq("id", notification_id).execute()
    except Exception as e:
        supabase_error(e, "Failed to delete notification")

    return {"success": True, "message": "Notification deleted successfully"}
