"""In-memory repository implementation."""

import asyncio
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

import structlog

from ..domain.errors import NotFoundError
from ..domain.models import Conversation, Message, ReadReceipt, utcnow
from .base import Repository

logger = structlog.get_logger()


def _page(items: List, limit: Optional[int], offset: int) -> List:
    if limit is None:
        return items[offset:]
    return items[offset : offset + limit]


class InMemoryRepository(Repository):
    """Conversation and message storage held in process memory.

    Every command runs under one asyncio lock, and results are deep copies,
    so each command is a single atomic state transition.
    """

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._conversations: Dict[UUID, Conversation] = {}
        # Per conversation, in commit order.
        self._messages: Dict[UUID, List[Message]] = {}
        self._message_owner: Dict[UUID, UUID] = {}
        self._lock = asyncio.Lock()
        logger.info("repository_initialized", backend="memory")

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        """Persist a new conversation."""
        stored = conversation.model_copy(deep=True)
        async with self._lock:
            self._conversations[stored.id] = stored
            self._messages[stored.id] = []
        logger.info(
            "conversation_created",
            conversation_id=str(stored.id),
            is_group=stored.is_group,
            participants=len(stored.participants),
        )
        return stored.model_copy(deep=True)

    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        """Retrieve a conversation by ID."""
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                logger.warning("conversation_not_found", conversation_id=str(conversation_id))
                return None
            return conversation.model_copy(deep=True)

    async def get_or_create_direct(self, conversation: Conversation) -> Tuple[Conversation, bool]:
        """Return the pair's existing 1:1 conversation or store the given one."""
        user_a, user_b = conversation.participants
        async with self._lock:
            for existing in self._conversations.values():
                if existing.is_direct_between(user_a, user_b):
                    return existing.model_copy(deep=True), False
            stored = conversation.model_copy(deep=True)
            self._conversations[stored.id] = stored
            self._messages[stored.id] = []
        logger.info("conversation_created", conversation_id=str(stored.id), is_group=False, participants=2)
        return stored.model_copy(deep=True), True

    async def list_conversations(
        self, user_id: str, limit: Optional[int] = None, offset: int = 0
    ) -> List[Conversation]:
        """List the user's conversations, most recently updated first."""
        async with self._lock:
            conversations = sorted(
                (c for c in self._conversations.values() if c.has_participant(user_id)),
                key=lambda c: c.updated_at,
                reverse=True,
            )
            return [c.model_copy(deep=True) for c in _page(conversations, limit, offset)]

    async def append_message(self, message: Message) -> Message:
        """Add a message and move the conversation's last message pointer to it."""
        async with self._lock:
            conversation = self._conversations.get(message.conversation_id)
            if conversation is None:
                logger.error(
                    "conversation_not_found_for_message",
                    conversation_id=str(message.conversation_id),
                )
                raise NotFoundError(f"Conversation {message.conversation_id} not found")

            stored = message.model_copy(deep=True, update={"created_at": utcnow(), "read_by": []})
            self._messages[conversation.id].append(stored)
            self._message_owner[stored.id] = conversation.id
            conversation.last_message_id = stored.id
            conversation.updated_at = stored.created_at

            logger.info(
                "message_added",
                conversation_id=str(conversation.id),
                message_id=str(stored.id),
                attachments=len(stored.attachments),
            )
            return stored.model_copy(deep=True)

    async def get_message(self, message_id: UUID) -> Optional[Message]:
        """Retrieve a message by ID."""
        async with self._lock:
            message = self._find_message(message_id)
            return message.model_copy(deep=True) if message else None

    async def list_messages(
        self, conversation_id: UUID, limit: Optional[int] = None, offset: int = 0
    ) -> List[Message]:
        """Get messages for a conversation in chronological order."""
        async with self._lock:
            if conversation_id not in self._conversations:
                logger.error("conversation_not_found_for_messages", conversation_id=str(conversation_id))
                raise NotFoundError(f"Conversation {conversation_id} not found")
            # Stable sort keeps commit order for equal timestamps.
            messages = sorted(self._messages[conversation_id], key=lambda m: m.created_at)
            return [m.model_copy(deep=True) for m in _page(messages, limit, offset)]

    async def mark_read(self, conversation_id: UUID, reader_id: str, read_at: datetime) -> int:
        """Add the reader to ``read_by`` of every message still unread by them."""
        async with self._lock:
            if conversation_id not in self._conversations:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            marked = 0
            for message in self._messages[conversation_id]:
                if message.is_unread_for(reader_id):
                    message.read_by.append(ReadReceipt(user=reader_id, read_at=read_at))
                    marked += 1
        logger.info("messages_marked_read", conversation_id=str(conversation_id), reader=reader_id, marked=marked)
        return marked

    async def delete_message(self, message_id: UUID, repair_last_message: bool = True) -> Optional[Message]:
        """Remove a message, optionally repointing the conversation's last message."""
        async with self._lock:
            message = self._find_message(message_id)
            if message is None:
                return None
            conversation_id = self._message_owner.pop(message_id)
            remaining = self._messages[conversation_id]
            remaining.remove(message)

            conversation = self._conversations[conversation_id]
            if repair_last_message and conversation.last_message_id == message_id:
                conversation.last_message_id = remaining[-1].id if remaining else None

            logger.info(
                "message_deleted",
                conversation_id=str(conversation_id),
                message_id=str(message_id),
                last_message_id=str(conversation.last_message_id) if conversation.last_message_id else None,
            )
            return message

    async def count_unread(self, user_id: str, conversation_ids: Iterable[UUID]) -> Dict[UUID, int]:
        """Count messages unread by the user, per conversation."""
        async with self._lock:
            return {
                conversation_id: sum(
                    1 for m in self._messages.get(conversation_id, []) if m.is_unread_for(user_id)
                )
                for conversation_id in conversation_ids
            }

    def _find_message(self, message_id: UUID) -> Optional[Message]:
        conversation_id = self._message_owner.get(message_id)
        if conversation_id is None:
            return None
        for message in self._messages[conversation_id]:
            if message.id == message_id:
                return message
        return None
