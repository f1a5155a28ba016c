"""WebSocket event channel for live messaging."""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import UUID, uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from structlog import get_logger

from ..domain.errors import InvalidRequestError, MessagingError, UnauthenticatedError
from ..domain.models import Identity
from ..metrics import OPEN_SOCKETS
from ..services.membership import Action
from .dependencies import Messaging, identity_from_headers
from .schemas import SocketMessage

logger = get_logger()

router = APIRouter()

# Close code for a handshake without identity.
UNAUTHENTICATED_CLOSE_CODE = 4401


class WebSocketConnection:
    """Adapts a FastAPI WebSocket to the broadcaster's connection interface.

    Frames go through a bounded outbox drained by one writer task, so
    ``send`` never waits on the network and frames keep their order. A
    client too slow to drain its outbox loses further frames.
    """

    def __init__(self, websocket: WebSocket, user_id: str, max_pending: int = 256) -> None:
        self.id = uuid4().hex
        self.user_id = user_id
        self._websocket = websocket
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._writer: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Start the writer task. Call once the socket is accepted."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_frames())

    async def send(self, event: str, data: Any) -> None:
        """Queue one ``{"event", "data"}`` frame."""
        try:
            self._outbox.put_nowait({"event": event, "data": data})
        except asyncio.QueueFull:
            raise ConnectionError(f"Outbox full for connection {self.id}")

    async def close(self) -> None:
        """Stop the writer task, dropping frames not yet written."""
        if self._writer is None:
            return
        self._writer.cancel()
        try:
            await self._writer
        except asyncio.CancelledError:
            pass
        self._writer = None

    async def _write_frames(self) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                await self._websocket.send_json(frame)
            except Exception as e:
                logger.warning("socket_write_failed", connection_id=self.id, error=str(e))
                return


def _conversation_id(data: Any) -> UUID:
    # Clients send either the bare id or {"conversationId": id}.
    raw = data.get("conversationId") if isinstance(data, dict) else data
    if not raw:
        raise InvalidRequestError("conversationId is required")
    try:
        return UUID(str(raw))
    except ValueError:
        raise InvalidRequestError(f"Invalid conversation id: {raw}")


class SocketSession:
    """Handles the client events of one connection."""

    def __init__(self, messaging: Messaging, connection: WebSocketConnection, identity: Identity) -> None:
        self._messaging = messaging
        self._connection = connection
        self._identity = identity
        self._handlers: Dict[str, Callable[[Any], Awaitable[None]]] = {
            "joinConversation": self.join_conversation,
            "leaveConversation": self.leave_conversation,
            "sendMessage": self.send_message,
            "typing": self.typing,
            "stopTyping": self.stop_typing,
        }

    async def handle(self, raw: str) -> None:
        """Dispatch one inbound frame. Failures are reported back as an ``error`` event."""
        event = None
        try:
            try:
                frame = json.loads(raw)
            except ValueError:
                raise InvalidRequestError("Frame is not valid JSON")
            if not isinstance(frame, dict):
                raise InvalidRequestError("Frame must be an object")
            event = frame.get("event")
            handler = self._handlers.get(event)
            if handler is None:
                raise InvalidRequestError(f"Unknown event: {event}")
            await handler(frame.get("data"))
        except MessagingError as e:
            await self._error(event, e.kind, e.message)
        except Exception as e:
            logger.error("socket_event_error", socket_event=event, connection_id=self._connection.id, error=str(e))
            await self._error(event, "InternalError", "Failed to handle event")

    async def join_conversation(self, data: Any) -> None:
        conversation_id = _conversation_id(data)
        if self._messaging.settings.authorize_room_join:
            await self._messaging.guard.authorize(self._identity.user_id, conversation_id, Action.READ)
        self._messaging.broadcaster.join(self._connection, conversation_id)
        await self._connection.send("joinedConversation", {"conversationId": str(conversation_id)})

    async def leave_conversation(self, data: Any) -> None:
        conversation_id = _conversation_id(data)
        self._messaging.broadcaster.leave(self._connection, conversation_id)
        await self._connection.send("leftConversation", {"conversationId": str(conversation_id)})

    async def send_message(self, data: Any) -> None:
        """Socket sends take the same persisted path as HTTP sends."""
        try:
            payload = SocketMessage.model_validate(data)
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid message payload: {e.error_count()} error(s)")
        message = await self._messaging.messages.send_message(
            self._identity, payload.conversation_id, payload.content, payload.attachments
        )
        await self._connection.send("messageSent", message.model_dump(mode="json", by_alias=True))

    async def typing(self, data: Any) -> None:
        await self._typing(data, True)

    async def stop_typing(self, data: Any) -> None:
        await self._typing(data, False)

    async def _typing(self, data: Any, is_typing: bool) -> None:
        conversation_id = _conversation_id(data)
        if self._messaging.settings.authorize_room_join:
            await self._messaging.guard.authorize(self._identity.user_id, conversation_id, Action.READ)
        await self._messaging.broadcaster.publish_typing(
            conversation_id, self._connection, self._identity.user_id, is_typing
        )

    async def _error(self, event: Any, kind: str, message: str) -> None:
        await self._connection.send("error", {"event": event, "error": kind, "message": message})


@router.websocket("/ws")
async def messaging_socket(websocket: WebSocket):
    """Live channel: room membership, socket sends and typing indicators"""
    messaging: Messaging = websocket.app.state.messaging
    try:
        identity = identity_from_headers(websocket.headers, messaging.settings)
    except UnauthenticatedError:
        logger.warning("socket_rejected", reason="unauthenticated")
        await websocket.close(code=UNAUTHENTICATED_CLOSE_CODE)
        return

    await websocket.accept()
    connection = WebSocketConnection(websocket, identity.user_id, max_pending=messaging.settings.socket_queue_size)
    connection.start()
    session = SocketSession(messaging, connection, identity)
    OPEN_SOCKETS.inc()
    logger.info("socket_connected", connection_id=connection.id, user_id=identity.user_id)
    try:
        while True:
            raw = await websocket.receive_text()
            await session.handle(raw)
    except WebSocketDisconnect:
        pass
    except ConnectionError as e:
        # The client stopped draining its frames.
        logger.warning("socket_dropped", connection_id=connection.id, error=str(e))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
    finally:
        messaging.broadcaster.disconnect(connection)
        await connection.close()
        OPEN_SOCKETS.dec()
        logger.info("socket_disconnected", connection_id=connection.id, user_id=identity.user_id)
