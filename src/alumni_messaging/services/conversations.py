"""Conversation resolution: direct find-or-create, groups and listings."""

from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

import structlog

from ..domain.errors import InvalidRequestError
from ..domain.models import Conversation, ConversationView, Message
from ..repositories.base import ConversationStore, MessageStore
from .membership import Action, MembershipGuard
from .presentation import Presenter

logger = structlog.get_logger()


class ConversationService:
    """Creates and looks up conversations on behalf of a requester."""

    def __init__(
        self,
        conversations: ConversationStore,
        messages: MessageStore,
        guard: MembershipGuard,
        presenter: Presenter,
    ) -> None:
        self._conversations = conversations
        self._messages = messages
        self._guard = guard
        self._presenter = presenter

    async def create(
        self,
        requester: str,
        participant_ids: Sequence[str],
        is_group: bool = False,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Tuple[ConversationView, bool]:
        """Dispatch a creation request. The flag is False when an existing direct conversation was returned."""
        if is_group:
            view = await self.create_group(requester, participant_ids, name, description)
            return view, True
        if len(participant_ids) != 1:
            raise InvalidRequestError("A direct conversation needs exactly one other participant")
        return await self.create_or_get_direct(requester, participant_ids[0])

    async def create_or_get_direct(self, requester: str, other_id: str) -> Tuple[ConversationView, bool]:
        """Return the 1:1 conversation between the two users, creating it on first contact."""
        if not other_id:
            raise InvalidRequestError("Participant id is required")
        if other_id == requester:
            raise InvalidRequestError("Cannot start a direct conversation with yourself")

        candidate = Conversation(participants=[requester, other_id], is_group=False, admin=requester)
        conversation, created = await self._conversations.get_or_create_direct(candidate)
        if not created:
            logger.info("direct_conversation_reused", conversation_id=str(conversation.id), requester=requester)
        return await self._view(requester, conversation), created

    async def create_group(
        self,
        requester: str,
        participant_ids: Sequence[str],
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ConversationView:
        """Create a fresh group conversation administered by the requester."""
        participants = list(dict.fromkeys([requester, *participant_ids]))
        if any(not p for p in participants):
            raise InvalidRequestError("Participant ids must not be empty")
        conversation = Conversation(
            participants=participants,
            is_group=True,
            name=name.strip() if name else None,
            description=description.strip() if description else None,
            admin=requester,
        )
        stored = await self._conversations.create_conversation(conversation)
        return await self._presenter.conversation(stored)

    async def list_for_user(
        self, user_id: str, limit: Optional[int] = None, offset: int = 0
    ) -> List[ConversationView]:
        """The user's conversations, most recently active first."""
        conversations = await self._conversations.list_conversations(user_id, limit=limit, offset=offset)
        unread = await self._messages.count_unread(user_id, [c.id for c in conversations])
        last_messages = await self._last_messages(conversations)
        return await self._presenter.conversations(conversations, last_messages, unread)

    async def get_for_user(self, user_id: str, conversation_id: UUID) -> ConversationView:
        """A single conversation, visible only to its participants."""
        conversation = await self._guard.authorize(user_id, conversation_id, Action.READ)
        return await self._view(user_id, conversation)

    async def _view(self, user_id: str, conversation: Conversation) -> ConversationView:
        unread = await self._messages.count_unread(user_id, [conversation.id])
        last_messages = await self._last_messages([conversation])
        return await self._presenter.conversation(
            conversation, last_messages.get(conversation.id), unread[conversation.id]
        )

    async def _last_messages(self, conversations: List[Conversation]) -> Dict[UUID, Message]:
        found: Dict[UUID, Message] = {}
        for conversation in conversations:
            if conversation.last_message_id is None:
                continue
            message = await self._messages.get_message(conversation.last_message_id)
            # A dangling pointer is shown as no last message.
            if message is not None:
                found[conversation.id] = message
        return found
