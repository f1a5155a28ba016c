"""Base repository interfaces."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from ..domain.models import Conversation, Message


class ConversationStore(ABC):
    """Persistence of conversation entities."""

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Conversation:
        """Persist a new conversation."""
        pass

    @abstractmethod
    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        """Retrieve a conversation by ID."""
        pass

    @abstractmethod
    async def get_or_create_direct(self, conversation: Conversation) -> Tuple[Conversation, bool]:
        """Return the 1:1 conversation of the pair in ``conversation``, storing it if absent.

        The boolean is True when the given conversation was stored. Lookup and
        insert must be atomic so that a pair never ends up with two direct
        conversations.
        """
        pass

    @abstractmethod
    async def list_conversations(
        self, user_id: str, limit: Optional[int] = None, offset: int = 0
    ) -> List[Conversation]:
        """List conversations the user participates in, most recently updated first."""
        pass


class MessageStore(ABC):
    """Persistence of messages and their read receipts."""

    @abstractmethod
    async def append_message(self, message: Message) -> Message:
        """Store a message and point its conversation's last message at it.

        Both writes happen as one unit. Raises NotFoundError when the
        conversation does not exist.
        """
        pass

    @abstractmethod
    async def get_message(self, message_id: UUID) -> Optional[Message]:
        """Retrieve a message by ID."""
        pass

    @abstractmethod
    async def list_messages(
        self, conversation_id: UUID, limit: Optional[int] = None, offset: int = 0
    ) -> List[Message]:
        """Get messages for a conversation, oldest first."""
        pass

    @abstractmethod
    async def mark_read(self, conversation_id: UUID, reader_id: str, read_at: datetime) -> int:
        """Add a read receipt for every message unread by the reader. Returns how many were marked."""
        pass

    @abstractmethod
    async def delete_message(self, message_id: UUID, repair_last_message: bool = True) -> Optional[Message]:
        """Remove a message, returning it, or None if it did not exist."""
        pass

    @abstractmethod
    async def count_unread(self, user_id: str, conversation_ids: Iterable[UUID]) -> Dict[UUID, int]:
        """Count messages unread by the user in each of the given conversations."""
        pass


class Repository(ConversationStore, MessageStore):
    """A backend that stores conversations and their messages together.

    Appending a message moves the conversation's last message pointer, so
    both halves must share one transaction boundary.
    """
