# routers/support_chat.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from core.errors import supabase_error, extract_supabase_error
from core.logging_config import logger
from core.partners import ensure_self_or_admin
from core.permission_helpers import is_admin, requires_permission
from core.roles import ADMIN_ROLES
from core.supabase_client import get_supabase_client
from core.supabase_helpers import apply_range, first_row, rows
from core.utils import utc_now_iso
from dependencies.auth import get_current_user, requires_role, CurrentUser
from models.enums import ChatStatus
from models.support import ChatSessionCreate, ChatMessageCreate, QuickResponseCreate


router = APIRouter(
    prefix="/api/support",
    tags=["Support"],
)


def _client():
    client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")
    return client


def _chat_session(client, chat_session_id: str) -> Optional[dict]:
    try:
        return first_row(
            client.table("chat_sessions").select("*").eq("id", chat_session_id).limit(1).execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to load chat session")


# =====================================================
# CHAT SESSIONS
# =====================================================
@router.get("/chat", summary="List live chat sessions")
def list_chat_sessions(
    status: Optional[str] = None,
    customer_type: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(requires_role(ADMIN_ROLES)),
):
    client = _client()

    query = (
        client.table("chat_sessions")
        .select("*, customer:customer_id(name, email), agent:agent_id(name, email)")
        .order("created_at", desc=True)
    )
    if status and status != "all":
        query = query.eq("status", status)
    if customer_type:
        query = query.eq("customer_type", customer_type)

    try:
        result = apply_range(query, offset, limit).execute()
    except Exception as e:
        supabase_error(e, "Failed to fetch chat sessions")

    return {"success": True, "chatSessions": rows(result)}


@router.post("/chat", summary="Start a chat session")
def create_chat_session(
    payload: ChatSessionCreate,
    current_user: CurrentUser = Depends(get_current_user),
):
    ensure_self_or_admin(current_user, payload.customer_id)
    client = _client()

    record = payload.model_dump(mode="json")
    record["status"] = ChatStatus.waiting.value

    try:
        chat_session = first_row(client.table("chat_sessions").insert(record).execute())
    except Exception as e:
        supabase_error(e, "Failed to create chat session")

    return {"success": True, "chatSession": chat_session}


# =====================================================
# CHAT MESSAGES
# =====================================================
@router.get("/chat/messages", summary="Messages in a chat session")
def list_messages(
    chat_session_id: Optional[str] = None,
    current_user: CurrentUser = Depends(get_current_user),
):
    if not chat_session_id:
        raise HTTPException(400, "Chat session ID is required")

    client = _client()

    if not is_admin(current_user):
        chat_session = _chat_session(client, chat_session_id)
        if not chat_session:
            raise HTTPException(404, "Chat session not found")
        if chat_session.get("customer_id") != current_user.id:
            raise HTTPException(403, "Forbidden")

    try:
        result = (
            client.table("chat_messages")
            .select("*, sender:sender_id(name, email)")
            .eq("chat_session_id", chat_session_id)
            .order("created_at")
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to fetch messages")

    return {"success": True, "messages": rows(result)}


@router.post("/chat/messages", summary="Post a chat message")
def create_message(
    payload: ChatMessageCreate,
    current_user: CurrentUser = Depends(get_current_user),
):
    ensure_self_or_admin(current_user, payload.sender_id)
    client = _client()

    chat_session = _chat_session(client, payload.chat_session_id)
    if not chat_session:
        raise HTTPException(404, "Chat session not found")
    if not is_admin(current_user) and chat_session.get("customer_id") != current_user.id:
        raise HTTPException(403, "Forbidden")

    try:
        message = first_row(
            client.table("chat_messages").insert(payload.model_dump(mode="json")).execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to create message")

    # Counter bump is a separate write; the message is already stored
    try:
        client.table("chat_sessions").update({
            "message_count": (chat_session.get("message_count") or 0) + 1,
            "updated_at": utc_now_iso(),
        }).eq("id", payload.chat_session_id).execute()
    except Exception as e:
        logger.warning(f"Failed to bump message count on {payload.chat_session_id}: {extract_supabase_error(e)}")

    return {"success": True, "message": message}


# =====================================================
# QUICK RESPONSES (canned agent replies)
# =====================================================
@router.get("/quick-responses", summary="Canned replies for agents")
def list_quick_responses(
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    is_active: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(requires_role(ADMIN_ROLES)),
):
    client = _client()

    query = client.table("quick_responses").select("*").order("title")
    if category:
        query = query.eq("category", category)
    if subcategory:
        query = query.eq("subcategory", subcategory)
    if is_active is not None:
        query = query.eq("is_active", is_active)

    try:
        result = apply_range(query, offset, limit).execute()
    except Exception as e:
        supabase_error(e, "Failed to fetch quick responses")

    return {"success": True, "quickResponses": rows(result)}


@router.post(
    "/quick-responses",
    summary="Add a canned reply",
)
def create_quick_response(
    payload: QuickResponseCreate,
    current_user: CurrentUser = Depends(requires_permission("supportManagement", "MANAGE")),
):
    client = _client()

    record = payload.model_dump(mode="json")
    record["is_active"] = True
    record["created_by"] = payload.created_by or current_user.id

    try:
        quick_response = first_row(client.table("quick_responses").insert(record).execute())
    except Exception as e:
        supabase_error(e, "Failed to create quick response")

    return {"success": True, "quickResponse": quick_response}
