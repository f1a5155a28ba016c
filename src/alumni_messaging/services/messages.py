"""Message operations: send, history, read receipts and deletion."""

from typing import Collection, List, Optional, Sequence
from uuid import UUID

import structlog

from ..domain.errors import ForbiddenError, InvalidRequestError, NotFoundError
from ..domain.models import Attachment, Identity, Message, MessageView, utcnow
from ..metrics import MESSAGES_SENT
from ..repositories.base import MessageStore
from .broadcaster import DeliveryBroadcaster
from .membership import Action, MembershipGuard
from .presentation import Presenter
from .send_queue import ConversationSendQueue

logger = structlog.get_logger()


class MessageService:
    """Message use cases. Every conversation access goes through the membership guard first."""

    def __init__(
        self,
        messages: MessageStore,
        guard: MembershipGuard,
        presenter: Presenter,
        broadcaster: DeliveryBroadcaster,
        send_queue: ConversationSendQueue,
        admin_roles: Collection[str] = ("admin",),
        repair_last_message: bool = True,
    ) -> None:
        self._messages = messages
        self._guard = guard
        self._presenter = presenter
        self._broadcaster = broadcaster
        self._send_queue = send_queue
        self._admin_roles = frozenset(admin_roles)
        self._repair_last_message = repair_last_message

    async def send_message(
        self,
        identity: Identity,
        conversation_id: UUID,
        content: str,
        attachments: Optional[Sequence[Attachment]] = None,
    ) -> MessageView:
        """Persist a message, then push it to the conversation's room.

        Sends to one conversation are serialized, so the room sees
        ``newMessage`` events in commit order and the last message pointer
        ends on the message committed last.
        """
        if content is None or not content.strip():
            raise InvalidRequestError("Please add content")
        await self._guard.authorize(identity.user_id, conversation_id, Action.WRITE)

        message = Message(
            conversation_id=conversation_id,
            sender=identity.user_id,
            content=content,
            attachments=list(attachments or []),
        )
        return await self._send_queue.enqueue(conversation_id, self._commit, message)

    async def _commit(self, message: Message) -> MessageView:
        stored = await self._messages.append_message(message)
        MESSAGES_SENT.inc()
        view = await self._presenter.message(stored)
        try:
            delivered = await self._broadcaster.publish_message(stored.conversation_id, view)
            logger.debug(
                "message_published",
                message_id=str(stored.id),
                delivered=delivered,
                room_size=self._broadcaster.room_size(stored.conversation_id),
            )
        except Exception as e:
            logger.error(
                "message_publish_failed",
                conversation_id=str(stored.conversation_id),
                message_id=str(stored.id),
                error=str(e),
            )
        return view

    async def list_messages(
        self,
        identity: Identity,
        conversation_id: UUID,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[MessageView]:
        """Conversation transcript, oldest first."""
        await self._guard.authorize(identity.user_id, conversation_id, Action.READ)
        messages = await self._messages.list_messages(conversation_id, limit=limit, offset=offset)
        return await self._presenter.messages(messages)

    async def mark_read(self, identity: Identity, conversation_id: UUID) -> int:
        """Mark everything others sent in the conversation as read by the caller."""
        await self._guard.authorize(identity.user_id, conversation_id, Action.WRITE)
        return await self._messages.mark_read(conversation_id, identity.user_id, utcnow())

    async def delete_message(self, identity: Identity, conversation_id: UUID, message_id: UUID) -> None:
        """Remove a message. Only its sender or an administrator may do so."""
        message = await self._messages.get_message(message_id)
        if message is None or message.conversation_id != conversation_id:
            raise NotFoundError("Message not found")
        if message.sender != identity.user_id and identity.role not in self._admin_roles:
            logger.warning(
                "message_delete_denied",
                message_id=str(message_id),
                user_id=identity.user_id,
                role=identity.role,
            )
            raise ForbiddenError("Not authorized to delete this message")

        deleted = await self._messages.delete_message(message_id, repair_last_message=self._repair_last_message)
        if deleted is None:
            # Lost a race with another delete.
            raise NotFoundError("Message not found")
