"""Support ticket Pydantic schemas."""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from recruitdesk.models.support_ticket import (
    MESSAGE_MAX_LENGTH,
    RESOLUTION_NOTES_MAX_LENGTH,
    MessageType,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)


class TicketCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=1000)
    priority: TicketPriority = TicketPriority.MEDIUM
    category: TicketCategory = TicketCategory.GENERAL


class TicketUpdate(BaseModel):
    """Staff-only edits. ``assigned_to`` accepts a user id or ``"unassign"``."""
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    assigned_to: Optional[Union[int, str]] = None
    resolution_notes: Optional[str] = Field(None, max_length=RESOLUTION_NOTES_MAX_LENGTH)
    tags: Optional[List[str]] = None


class MessageCreate(BaseModel):
    message: str = Field(..., max_length=MESSAGE_MAX_LENGTH)
    message_type: MessageType = MessageType.TEXT
    attachments: List[Dict[str, Any]] = Field(default_factory=list)


class MarkMessagesRead(BaseModel):
    messageIds: List[str]
