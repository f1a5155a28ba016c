"""Request and response contracts of the HTTP API."""

from typing import Any, Dict, Generic, List, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field

from ..domain.models import Attachment, CamelModel

T = TypeVar("T")


class ConversationCreate(CamelModel):
    """Body of a conversation creation request"""

    participant_ids: List[str]
    is_group: bool = False
    name: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)


class MessageCreate(CamelModel):
    """Body of a message send request"""

    content: str = Field(min_length=1)
    attachments: List[Attachment] = Field(default_factory=list)


class SocketMessage(MessageCreate):
    """Payload of the ``sendMessage`` socket event"""

    conversation_id: UUID


class UnreadSummary(CamelModel):
    unread_count: int
    by_conversation: Dict[str, int] = Field(default_factory=dict)


class MarkReadResult(CamelModel):
    marked: int


class ItemResponse(BaseModel, Generic[T]):
    """Envelope for a single resource"""

    success: bool = True
    data: T


class ListResponse(BaseModel, Generic[T]):
    """Envelope for a collection"""

    success: bool = True
    count: int
    data: List[T]


class ErrorResponse(BaseModel):
    """Envelope for a failed request"""

    success: bool = False
    error: str
    message: str
    details: Optional[List[Dict[str, Any]]] = None
