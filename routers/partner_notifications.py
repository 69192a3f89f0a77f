# routers/partner_notifications.py

from fastapi import APIRouter, Depends, HTTPException, Path

from core.errors import supabase_error
from core.partners import partner_scope
from core.supabase_helpers import first_row, rows
from core.utils import utc_now_iso
from models.partner import NotificationIds


router = APIRouter(
    prefix="/api/partner/notifications",
    tags=["Partner Notifications"],
)

LIST_COLUMNS = "id, type, title, message, is_read, data, created_at"


def to_frontend(notification: dict) -> dict:
    data = notification.get("data") or {}
    return {
        "id": notification.get("id"),
        "type": notification.get("type"),
        "title": notification.get("title"),
        "message": notification.get("message"),
        "isRead": notification.get("is_read"),
        "data": notification.get("data"),
        "createdAt": notification.get("created_at"),
        "priority": data.get("priority") or "medium",
        "category": data.get("category") or "System",
        "tags": data.get("tags") or [],
    }


def _set_read(client, partner_id: str, notification_id: str, is_read: bool) -> dict:
    now = utc_now_iso()
    update = {"is_read": is_read, "read_at": now if is_read else None, "updated_at": now}

    try:
        result = (
            client.table("notifications")
            .update(update)
            .eq("id", notification_id)
            .eq("partner_id", partner_id)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to update notification")

    notification = first_row(result)
    if not notification:
        raise HTTPException(404, "Notification not found")
    return notification


# -----------------------------------------------------
# LIST
# -----------------------------------------------------
@router.get("", summary="Notifications for the caller's partner")
def list_notifications(scope=Depends(partner_scope)):
    client, partner_id = scope

    try:
        result = (
            client.table("notifications")
            .select(LIST_COLUMNS)
            .eq("partner_id", partner_id)
            .order("created_at", desc=True)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to fetch notifications")

    return {"success": True, "notifications": [to_frontend(n) for n in rows(result)]}


# -----------------------------------------------------
# BULK (declared before /{notification_id})
# -----------------------------------------------------
@router.put("/bulk-read", summary="Mark several notifications read")
def bulk_read(payload: NotificationIds, scope=Depends(partner_scope)):
    client, partner_id = scope
    now = utc_now_iso()

    try:
        result = (
            client.table("notifications")
            .update({"is_read": True, "read_at": now, "updated_at": now})
            .in_("id", payload.notification_ids)
            .eq("partner_id", partner_id)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to mark notifications as read")

    updated = rows(result)
    return {
        "success": True,
        "notifications": updated,
        "message": f"{len(updated)} notifications marked as read",
    }


@router.delete("/bulk-delete", summary="Delete several notifications")
def bulk_delete(payload: NotificationIds, scope=Depends(partner_scope)):
    client, partner_id = scope

    try:
        result = (
            client.table("notifications")
            .delete()
            .in_("id", payload.notification_ids)
            .eq("partner_id", partner_id)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to delete notifications")

    deleted = len(rows(result))
    return {
        "success": True,
        "deleted": deleted,
        "message": f"{deleted} notifications deleted successfully",
    }


# -----------------------------------------------------
# SINGLE NOTIFICATION
# -----------------------------------------------------
@router.get("/{notification_id}", summary="One notification")
def get_notification(notification_id: str = Path(...), scope=Depends(partner_scope)):
    client, partner_id = scope

    try:
        result = (
            client.table("notifications")
            .select("*")
            .eq("id", notification_id)
            .eq("partner_id", partner_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to fetch notification")

    notification = first_row(result)
    if not notification:
        raise HTTPException(404, "Notification not found")

    return {"success": True, "notification": notification}


@router.delete("/{notification_id}", summary="Delete one notification")
def delete_notification(notification_id: str = Path(...), scope=Depends(partner_scope)):
    client, partner_id = scope

    try:
        result = (
            client.table("notifications")
            .delete()
            .eq("id", notification_id)
            .eq("partner_id", partner_id)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to delete notification")

    if not rows(result):
        raise HTTPException(404, "Notification not found")

    return {"success": True, "message": "Notification deleted successfully"}


@router.put("/{notification_id}/read", summary="Mark a notification read")
def mark_read(notification_id: str = Path(...), scope=Depends(partner_scope)):
    client, partner_id = scope
    notification = _set_read(client, partner_id, notification_id, True)
    return {"success": True, "notification": notification, "message": "Notification marked as read"}


@router.put("/{notification_id}/unread", summary="Mark a notification unread")
def mark_unread(notification_id: str = Path(...), scope=Depends(partner_scope)):
    client, partner_id = scope
    notification = _set_read(client, partner_id, notification_id, False)
    return {"success": True, "notification": notification, "message": "Notification marked as unread"}
