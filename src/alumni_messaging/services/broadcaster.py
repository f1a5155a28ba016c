"""Room-based live delivery of messages and typing events."""

import asyncio
from typing import Any, Dict, Optional, Protocol, Set
from uuid import UUID

import structlog

from ..domain.models import MessageView
from ..metrics import DELIVERIES

logger = structlog.get_logger()

NEW_MESSAGE = "newMessage"
USER_TYPING = "userTyping"
USER_STOPPED_TYPING = "userStoppedTyping"


class Connection(Protocol):
    """A live client connection that can receive pushed events."""

    id: str
    user_id: str

    async def send(self, event: str, data: Any) -> None:
        ...


class DeliveryBroadcaster:
    """Fans events out to the connections joined to a conversation's room.

    Rooms live in this process only. They are not persisted and are not
    replayed after a reconnect; a client must join again and will not see
    what was published while it was away.
    """

    def __init__(self, send_timeout: Optional[float] = None) -> None:
        # Upper bound on a single connection's send; None waits indefinitely.
        self._send_timeout = send_timeout
        self._rooms: Dict[UUID, Dict[str, Connection]] = {}
        self._memberships: Dict[str, Set[UUID]] = {}

    def join(self, connection: Connection, conversation_id: UUID) -> None:
        """Add the connection to the conversation's room."""
        self._rooms.setdefault(conversation_id, {})[connection.id] = connection
        self._memberships.setdefault(connection.id, set()).add(conversation_id)
        logger.info(
            "room_joined",
            conversation_id=str(conversation_id),
            connection_id=connection.id,
            user_id=connection.user_id,
        )

    def leave(self, connection: Connection, conversation_id: UUID) -> None:
        """Remove the connection from the conversation's room."""
        self._remove(connection.id, conversation_id)
        rooms = self._memberships.get(connection.id)
        if rooms is not None:
            rooms.discard(conversation_id)
            if not rooms:
                del self._memberships[connection.id]
        logger.info("room_left", conversation_id=str(conversation_id), connection_id=connection.id)

    def disconnect(self, connection: Connection) -> None:
        """Drop every room association of a closed connection."""
        rooms = self._memberships.pop(connection.id, set())
        for conversation_id in rooms:
            self._remove(connection.id, conversation_id)
        logger.info("connection_rooms_dropped", connection_id=connection.id, rooms=len(rooms))

    def room_size(self, conversation_id: UUID) -> int:
        return len(self._rooms.get(conversation_id, {}))

    async def publish_message(self, conversation_id: UUID, message: MessageView) -> int:
        """Push ``newMessage`` to everyone in the room. Returns the number of successful deliveries."""
        payload = message.model_dump(mode="json", by_alias=True)
        return await self._emit(conversation_id, NEW_MESSAGE, payload)

    async def publish_typing(
        self,
        conversation_id: UUID,
        sender: Connection,
        user_id: str,
        is_typing: bool,
    ) -> int:
        """Tell the rest of the room that ``user_id`` started or stopped typing."""
        event = USER_TYPING if is_typing else USER_STOPPED_TYPING
        payload = {"conversationId": str(conversation_id), "userId": user_id}
        return await self._emit(conversation_id, event, payload, exclude=sender.id)

    def close(self) -> None:
        """Forget all rooms. Called on shutdown."""
        connections = len(self._memberships)
        self._rooms.clear()
        self._memberships.clear()
        logger.info("broadcaster_closed", connections=connections)

    async def _emit(
        self,
        conversation_id: UUID,
        event: str,
        payload: Any,
        exclude: Optional[str] = None,
    ) -> int:
        # Snapshot so joins and leaves during delivery do not affect this fan-out.
        targets = [
            conn for conn_id, conn in self._rooms.get(conversation_id, {}).items() if conn_id != exclude
        ]
        if not targets:
            return 0
        results = await asyncio.gather(
            *(self._deliver(conn, event, payload) for conn in targets), return_exceptions=True
        )
        delivered = 0
        for conn, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "broadcast_delivery_failed",
                    conversation_id=str(conversation_id),
                    connection_id=conn.id,
                    event_name=event,
                    error=str(result) or type(result).__name__,
                )
            else:
                delivered += 1
        DELIVERIES.labels(event=event).inc(delivered)
        logger.debug("broadcast_sent", conversation_id=str(conversation_id), event_name=event, delivered=delivered)
        return delivered

    async def _deliver(self, connection: Connection, event: str, payload: Any) -> None:
        if self._send_timeout is None:
            await connection.send(event, payload)
        else:
            await asyncio.wait_for(connection.send(event, payload), self._send_timeout)

    def _remove(self, connection_id: str, conversation_id: UUID) -> None:
        room = self._rooms.get(conversation_id)
        if room is None:
            return
        room.pop(connection_id, None)
        if not room:
            del self._rooms[conversation_id]
