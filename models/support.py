from typing import Optional, List

from pydantic import BaseModel, Field

from .enums import TicketPriority, TicketStatus


# -------------------------------------------------
# Tickets
# -------------------------------------------------
class TicketCreate(BaseModel):
    user_id: str = Field(..., min_length=1)
    user_type: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    priority: TicketPriority


class TicketUpdate(BaseModel):
    status: Optional[TicketStatus] = None
    assigned_to: Optional[str] = None
    internal_notes: Optional[str] = None
    satisfaction_rating: Optional[int] = Field(None, ge=1, le=5)
    satisfaction_comment: Optional[str] = None


# -------------------------------------------------
# Live chat
# -------------------------------------------------
class ChatSessionCreate(BaseModel):
    customer_id: str = Field(..., min_length=1)
    customer_type: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    priority: TicketPriority
    subject: Optional[str] = None


class ChatMessageCreate(BaseModel):
    chat_session_id: str = Field(..., min_length=1)
    sender_id: str = Field(..., min_length=1)
    sender_type: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    message_type: str = "text"
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None


class QuickResponseCreate(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    subcategory: Optional[str] = None
    tags: List[str] = []
    created_by: Optional[str] = None


# -------------------------------------------------
# Support notifications
# -------------------------------------------------
class SupportNotificationCreate(BaseModel):
    user_id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    data: Optional[dict] = None
    expires_at: Optional[str] = None


class SupportNotificationUpdate(BaseModel):
    is_read: Optional[bool] = None
    read_at: Optional[str] = None
