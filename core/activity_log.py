# core/activity_log.py
"""
Follow-up writes that accompany a primary change: admin activity rows,
booking history rows and notifications. They are separate calls with no
transaction around them; a failure is logged and never raised, so the
primary change stands.
"""

from typing import Optional

from supabase import Client

from core.errors import extract_supabase_error
from core.logging_config import logger
from core.utils import utc_now_iso


def _best_effort_insert(client: Client, table: str, payload: dict, what: str) -> bool:
    try:
        client.table(table).insert(payload).execute()
        return True
    except Exception as e:
        logger.warning(f"Failed to write {what}: {extract_supabase_error(e)}")
        return False


def log_admin_activity(
    client: Client,
    admin_id: str,
    action_type: str,
    target_type: str,
    target_id: Optional[str],
    details: Optional[dict] = None,
    ip_address: Optional[str] = None,
) -> bool:
    payload = {
        "admin_id": admin_id,
        "action_type": action_type,
        "target_type": target_type,
        "target_id": target_id,
        "details": {**(details or {}), "ip_address": ip_address},
        "ip_address": ip_address,
    }
    return _best_effort_insert(client, "admin_activity_logs", payload, "admin activity log")


def raise_security_alert(
    client: Client,
    alert_type: str,
    message: str,
    user_id: Optional[str] = None,
    severity: str = "medium",
    category: str = "session_management",
    ip_address: Optional[str] = None,
) -> bool:
    payload = {
        "alert_type": alert_type,
        "severity": severity,
        "message": message,
        "user_id": user_id,
        "ip_address": ip_address,
        "category": category,
        "source": "admin_action",
    }
    return _best_effort_insert(client, "security_alerts", payload, "security alert")


def record_booking_history(
    client: Client,
    booking_id: str,
    action: str,
    performed_by: Optional[str],
    performed_by_type: str,
    description: str,
    details: Optional[dict] = None,
) -> bool:
    payload = {
        "booking_id": booking_id,
        "action": action,
        "performed_by": performed_by,
        "performed_by_type": performed_by_type,
        "details": details or {},
        "description": description,
        "created_at": utc_now_iso(),
    }
    return _best_effort_insert(client, "booking_history", payload, "booking history")


def create_notification(
    client: Client,
    type: str,
    title: str,
    message: str,
    recipient_id: Optional[str] = None,
    recipient_type: Optional[str] = None,
    data: Optional[dict] = None,
    priority: str = "medium",
) -> bool:
    """recipient_id None means an admin-wide notification."""
    payload = {
        "type": type,
        "title": title,
        "message": message,
        "data": data or {},
        "priority": priority,
        "created_at": utc_now_iso(),
    }
    if recipient_id:
        payload["recipient_id"] = recipient_id
        payload["recipient_type"] = recipient_type

    return _best_effort_insert(client, "notifications", payload, f"{type} notification")


def client_ip(request) -> str:
    """Caller address for audit rows."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "Unknown"
