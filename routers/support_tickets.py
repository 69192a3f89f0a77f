# routers/support_tickets.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from core.errors import supabase_error
from core.logging_config import logger
from core.partners import ensure_self_or_admin
from core.permission_helpers import is_admin, requires_permission
from core.roles import ADMIN_ROLES
from core.supabase_client import get_supabase_client
from core.supabase_helpers import apply_range, clean_payload, first_row, rows
from core.utils import utc_now_iso
from dependencies.auth import get_current_user, requires_role, CurrentUser
from models.enums import TicketStatus
from models.support import TicketCreate, TicketUpdate


router = APIRouter(
    prefix="/api/support/tickets",
    tags=["Support"],
)

TICKET_SELECT = "*, customer:user_id(name, email), assigned_agent:assigned_to(name, email)"


def _client():
    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")
    return client


@router.get("", summary="List support tickets")
def list_tickets(
    status: Optional[str] = None,
    priority: Optional[str] = None,
    assigned_to: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(requires_role(ADMIN_ROLES)),
):
    client = _client()

    query = client.table("support_tickets").select(TICKET_SELECT).order("created_at", desc=True)

    if status and status != "all":
        query = query.eq("status", status)
    if priority and priority != "all":
        query = query.eq("priority", priority)
    if assigned_to:
        query = query.eq("assigned_to", assigned_to)

    try:
        result = apply_range(query, offset, limit).execute()
    except Exception as e:
        supabase_error(e, "Failed to fetch tickets")

    return {"success": True, "tickets": rows(result)}


@router.post("", summary="Open a support ticket")
def create_ticket(
    payload: TicketCreate,
    current_user: CurrentUser = Depends(get_current_user),
):
    ensure_self_or_admin(current_user, payload.user_id)
    client = _client()

    record = clean_payload(payload.model_dump(mode="json"))
    record["status"] = TicketStatus.open.value

    try:
        ticket = first_row(client.table("support_tickets").insert(record).execute())
    except Exception as e:
        supabase_error(e, "Failed to create ticket")

    logger.info(f"Support ticket opened by {payload.user_id}: {payload.subject}")
    return {"success": True, "ticket": ticket}


@router.get("/{ticket_id}", summary="One support ticket")
def get_ticket(
    ticket_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
):
    client = _client()

    try:
        ticket = first_row(
            client.table("support_tickets").select(TICKET_SELECT).eq("id", ticket_id).limit(1).execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to fetch ticket")

    if not ticket:
        raise HTTPException(404, "Ticket not found")

    if not is_admin(current_user) and ticket.get("user_id") != current_user.id:
        raise HTTPException(403, "Forbidden")

    return {"success": True, "ticket": ticket}


@router.put(
    "/{ticket_id}",
    summary="Update status, assignment or feedback",
    dependencies=[Depends(requires_permission("supportManagement", "MANAGE"))],
)
def update_ticket(payload: TicketUpdate, ticket_id: str = Path(...)):
    fields = payload.model_fields_set
    update = {}
    now = utc_now_iso()

    if payload.status:
        update["status"] = payload.status.value
        if payload.status == TicketStatus.resolved:
            update["resolved_at"] = now

    if "assigned_to" in fields:
        update["assigned_to"] = payload.assigned_to
        update["assigned_at"] = now if payload.assigned_to else None

    for name in ("internal_notes", "satisfaction_rating", "satisfaction_comment"):
        if name in fields:
            update[name] = getattr(payload, name)

    if not update:
        raise HTTPException(400, "No fields to update")

    client = _client()

    try:
        ticket = first_row(client.table("support_tickets").update(update).eq("id", ticket_id).execute())
    except Exception as e:
        supabase_error(e, "Failed to update ticket")

    if not ticket:
        raise HTTPException(404, "Ticket not found")

    return {"success": True, "ticket": ticket}


@router.delete(
    "/{ticket_id}",
    summary="Delete a support ticket",
    dependencies=[Depends(requires_permission("supportManagement", "FULL"))],
)
def delete_ticket(ticket_id: str = Path(...)):
    client = _client()

    try:
        client.table("support_tickets").delete().eq("id", ticket_id).execute()
    except Exception as e:
        supabase_error(e, "Failed to delete ticket")

    return {"success": True, "message": "Ticket deleted successfully"}
