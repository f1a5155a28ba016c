"""Resolve stored user references into display-ready views."""

from typing import Dict, Iterable, List, Optional
from uuid import UUID

from ..domain.models import Conversation, ConversationView, Message, MessageView, UserSummary
from ..repositories.directory import UserDirectory


class Presenter:
    """Joins conversations and messages with the user directory.

    Lookups are batched per call so a page of conversations costs one
    directory round trip.
    """

    def __init__(self, directory: UserDirectory) -> None:
        self._directory = directory

    async def message(self, message: Message) -> MessageView:
        users = await self._directory.resolve([message.sender])
        return self._message_view(message, users)

    async def messages(self, messages: List[Message]) -> List[MessageView]:
        users = await self._directory.resolve({m.sender for m in messages})
        return [self._message_view(m, users) for m in messages]

    async def conversation(
        self,
        conversation: Conversation,
        last_message: Optional[Message] = None,
        unread_count: int = 0,
    ) -> ConversationView:
        views = await self.conversations(
            [conversation],
            {conversation.id: last_message} if last_message else {},
            {conversation.id: unread_count},
        )
        return views[0]

    async def conversations(
        self,
        conversations: Iterable[Conversation],
        last_messages: Dict[UUID, Message],
        unread_counts: Dict[UUID, int],
    ) -> List[ConversationView]:
        conversations = list(conversations)
        user_ids = {p for c in conversations for p in c.participants}
        user_ids.update(m.sender for m in last_messages.values())
        users = await self._directory.resolve(user_ids)

        views = []
        for conversation in conversations:
            last = last_messages.get(conversation.id)
            views.append(
                ConversationView(
                    id=conversation.id,
                    participants=[users[p] for p in conversation.participants],
                    is_group=conversation.is_group,
                    name=conversation.name,
                    description=conversation.description,
                    admin=conversation.admin,
                    last_message=self._message_view(last, users) if last else None,
                    unread_count=unread_counts.get(conversation.id, 0),
                    created_at=conversation.created_at,
                    updated_at=conversation.updated_at,
                )
            )
        return views

    @staticmethod
    def _message_view(message: Message, users: Dict[str, UserSummary]) -> MessageView:
        return MessageView(
            id=message.id,
            conversation_id=message.conversation_id,
            sender=users.get(message.sender) or UserSummary(id=message.sender),
            content=message.content,
            attachments=message.attachments,
            read_by=message.read_by,
            created_at=message.created_at,
        )
