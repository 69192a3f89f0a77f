# core/partners.py

from typing import Optional, Tuple

from fastapi import Depends, HTTPException, Query
from supabase import Client

from core.errors import supabase_error
from core.supabase_client import get_supabase_client
from core.supabase_helpers import first_row
from core.permission_helpers import is_admin
from dependencies.auth import CurrentUser, get_current_user


def ensure_self_or_admin(current_user: CurrentUser, user_id: Optional[str]):
    """
    Partner endpoints take the acting user id as a query parameter.
    Non-admins may only pass their own id.
    """
    if not user_id:
        raise HTTPException(400, "User ID is required")

    if user_id != current_user.id and not is_admin(current_user):
        raise HTTPException(403, "Forbidden")


def resolve_partner_id(client: Client, user_id: str) -> Optional[str]:
    """
    Partner a user acts for: the staff link wins, then the partner they own.
    """
    try:
        staff = first_row(
            client.table("partner_staff")
            .select("partner_id")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if staff and staff.get("partner_id"):
            return staff["partner_id"]

        owner = first_row(
            client.table("partners")
            .select("id")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to resolve partner")

    return owner["id"] if owner else None


def require_partner_id(client: Client, user_id: str) -> str:
    partner_id = resolve_partner_id(client, user_id)
    if not partner_id:
        raise HTTPException(404, "Partner not found")
    return partner_id


def ensure_partner_access(client: Client, current_user: CurrentUser, partner_id: str):
    """Admins see any partner; everyone else only the partner they act for."""
    if is_admin(current_user):
        return
    if resolve_partner_id(client, current_user.id) != partner_id:
        raise HTTPException(403, "Forbidden")


def partner_scope(
    user_id: Optional[str] = Query(None, alias="userId"),
    current_user: CurrentUser = Depends(get_current_user),
) -> Tuple[Client, str]:
    """
    Dependency for endpoints addressed by ?userId=: checks the caller may
    act for that user and resolves the partner they belong to.
    """
    ensure_self_or_admin(current_user, user_id)

    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")

    return client, require_partner_id(client, user_id)
