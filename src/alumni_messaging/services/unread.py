"""Unread message accounting."""

from typing import Dict
from uuid import UUID

import structlog

from ..repositories.base import ConversationStore, MessageStore

logger = structlog.get_logger()


class UnreadAccounting:
    """Derives unread counts from read receipts at query time.

    There is no stored counter to drift out of sync with ``read_by``; every
    call recounts.
    """

    def __init__(self, conversations: ConversationStore, messages: MessageStore) -> None:
        self._conversations = conversations
        self._messages = messages

    async def unread_by_conversation(self, user_id: str) -> Dict[UUID, int]:
        """Unread messages per conversation the user participates in."""
        conversations = await self._conversations.list_conversations(user_id)
        return await self._messages.count_unread(user_id, [c.id for c in conversations])

    async def unread_count(self, user_id: str) -> int:
        """Total unread messages across all of the user's conversations."""
        counts = await self.unread_by_conversation(user_id)
        total = sum(counts.values())
        logger.debug("unread_count_computed", user_id=user_id, conversations=len(counts), unread=total)
        return total
