"""Participant-based authorization for conversations."""

from enum import Enum
from uuid import UUID

import structlog

from ..domain.errors import ForbiddenError, NotFoundError
from ..domain.models import Conversation
from ..repositories.base import ConversationStore

logger = structlog.get_logger()


class Action(str, Enum):
    """What the caller intends to do with the conversation."""

    READ = "read"
    WRITE = "write"


class MembershipGuard:
    """The one place that decides whether a user may touch a conversation."""

    def __init__(self, conversations: ConversationStore) -> None:
        self._conversations = conversations

    async def authorize(
        self, user_id: str, conversation_id: UUID, action: Action = Action.READ
    ) -> Conversation:
        """Return the conversation if ``user_id`` participates in it.

        Raises NotFoundError for an unknown conversation and ForbiddenError
        for a non-participant. Reads and writes share the same rule.
        """
        conversation = await self._conversations.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        if not conversation.has_participant(user_id):
            logger.warning(
                "conversation_access_denied",
                conversation_id=str(conversation_id),
                user_id=user_id,
                action=action.value,
            )
            raise ForbiddenError(f"Not authorized to {action.value} this conversation")
        return conversation
