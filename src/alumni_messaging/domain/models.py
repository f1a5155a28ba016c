"""Domain models for the messaging service."""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys for the web client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Attachment(CamelModel):
    """File reference carried by a message. Upload happens elsewhere."""

    filename: Optional[str] = None
    url: Optional[str] = None
    size: Optional[int] = Field(default=None, ge=0)
    mimetype: Optional[str] = None


class ReadReceipt(CamelModel):
    """Record that a user has seen a message."""

    user: str
    read_at: datetime = Field(default_factory=utcnow)


class Conversation(CamelModel):
    """Conversation between a fixed set of participants."""

    id: UUID = Field(default_factory=uuid4)
    participants: List[str]
    is_group: bool = False
    name: Optional[str] = None
    description: Optional[str] = None
    admin: Optional[str] = None
    last_message_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def has_participant(self, user_id: str) -> bool:
        """Check whether the user is a member of this conversation."""
        return user_id in self.participants

    def is_direct_between(self, user_a: str, user_b: str) -> bool:
        """Check whether this is the 1:1 conversation of the given pair."""
        return (
            not self.is_group
            and len(self.participants) == 2
            and set(self.participants) == {user_a, user_b}
        )


class Message(CamelModel):
    """Message posted to a conversation."""

    id: UUID = Field(default_factory=uuid4)
    conversation_id: UUID
    sender: str
    content: str
    attachments: List[Attachment] = Field(default_factory=list)
    read_by: List[ReadReceipt] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    def is_read_by(self, user_id: str) -> bool:
        """Check whether the user already has a read receipt on this message."""
        return any(receipt.user == user_id for receipt in self.read_by)

    def is_unread_for(self, user_id: str) -> bool:
        """A message is unread for everyone but its sender until they read it."""
        return self.sender != user_id and not self.is_read_by(user_id)


class Identity(BaseModel):
    """Verified caller identity attached by the authentication layer."""

    user_id: str
    role: str = "user"


class UserSummary(CamelModel):
    """Display identity of a user as supplied by the user directory."""

    id: str
    name: Optional[str] = None
    profile_photo: Optional[str] = None


class MessageView(CamelModel):
    """Message with the sender resolved to a display identity."""

    id: UUID
    conversation_id: UUID
    sender: UserSummary
    content: str
    attachments: List[Attachment] = Field(default_factory=list)
    read_by: List[ReadReceipt] = Field(default_factory=list)
    created_at: datetime


class ConversationView(CamelModel):
    """Conversation with participants and last message resolved for display."""

    id: UUID
    participants: List[UserSummary]
    is_group: bool
    name: Optional[str] = None
    description: Optional[str] = None
    admin: Optional[str] = None
    last_message: Optional[MessageView] = None
    unread_count: int = 0
    created_at: datetime
    updated_at: datetime
