"""HTTP endpoints of the messaging API."""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from structlog import get_logger

from ..domain.errors import MessagingError
from ..domain.models import ConversationView, Identity, MessageView
from .dependencies import Messaging, get_identity, get_messaging
from .schemas import (
    ConversationCreate,
    ItemResponse,
    ListResponse,
    MarkReadResult,
    MessageCreate,
    UnreadSummary,
)

logger = get_logger()

router = APIRouter(tags=["messaging"])


@router.get("/conversations", response_model=ListResponse[ConversationView])
async def list_conversations(
    limit: Optional[int] = Query(None, ge=1, le=200),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(get_identity),
    messaging: Messaging = Depends(get_messaging),
):
    """Lists the caller's conversations, most recent activity first"""
    try:
        conversations = await messaging.conversations.list_for_user(
            identity.user_id, limit=limit, offset=offset
        )
        return ListResponse[ConversationView](count=len(conversations), data=conversations)
    except MessagingError:
        raise
    except Exception as e:
        logger.error("list_conversations_error", user_id=identity.user_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to list conversations")


@router.post(
    "/conversations",
    response_model=ItemResponse[ConversationView],
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    body: ConversationCreate,
    response: Response,
    identity: Identity = Depends(get_identity),
    messaging: Messaging = Depends(get_messaging),
):
    """Opens a group conversation, or finds or opens the direct one with a single participant"""
    try:
        conversation, created = await messaging.conversations.create(
            identity.user_id,
            body.participant_ids,
            is_group=body.is_group,
            name=body.name,
            description=body.description,
        )
        if not created:
            response.status_code = status.HTTP_200_OK
        return ItemResponse[ConversationView](data=conversation)
    except MessagingError:
        raise
    except Exception as e:
        logger.error("create_conversation_error", user_id=identity.user_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to create conversation")


@router.get("/conversations/{conversation_id}", response_model=ItemResponse[ConversationView])
async def get_conversation(
    conversation_id: UUID,
    identity: Identity = Depends(get_identity),
    messaging: Messaging = Depends(get_messaging),
):
    """Retrieves a conversation the caller participates in"""
    try:
        conversation = await messaging.conversations.get_for_user(identity.user_id, conversation_id)
        return ItemResponse[ConversationView](data=conversation)
    except MessagingError:
        raise
    except Exception as e:
        logger.error("get_conversation_error", conversation_id=str(conversation_id), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to get conversation")


@router.get("/conversations/{conversation_id}/messages", response_model=ListResponse[MessageView])
async def get_messages(
    conversation_id: UUID,
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(get_identity),
    messaging: Messaging = Depends(get_messaging),
):
    """Gets the conversation transcript, oldest message first"""
    try:
        messages = await messaging.messages.list_messages(
            identity, conversation_id, limit=limit, offset=offset
        )
        return ListResponse[MessageView](count=len(messages), data=messages)
    except MessagingError:
        raise
    except Exception as e:
        logger.error("get_messages_error", conversation_id=str(conversation_id), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to get messages")


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=ItemResponse[MessageView],
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: UUID,
    body: MessageCreate,
    identity: Identity = Depends(get_identity),
    messaging: Messaging = Depends(get_messaging),
):
    """Stores a message and pushes it to everyone watching the conversation"""
    try:
        message = await messaging.messages.send_message(
            identity, conversation_id, body.content, body.attachments
        )
        logger.info(
            "message_sent",
            conversation_id=str(conversation_id),
            message_id=str(message.id),
            content_length=len(body.content),
        )
        return ItemResponse[MessageView](data=message)
    except MessagingError:
        raise
    except Exception as e:
        logger.error("send_message_error", conversation_id=str(conversation_id), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to send message")


@router.post("/conversations/{conversation_id}/read", response_model=ItemResponse[MarkReadResult])
async def mark_messages_read(
    conversation_id: UUID,
    identity: Identity = Depends(get_identity),
    messaging: Messaging = Depends(get_messaging),
):
    """Marks every message others sent in the conversation as read by the caller"""
    try:
        marked = await messaging.messages.mark_read(identity, conversation_id)
        return ItemResponse[MarkReadResult](data=MarkReadResult(marked=marked))
    except MessagingError:
        raise
    except Exception as e:
        logger.error("mark_read_error", conversation_id=str(conversation_id), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to mark messages as read")


@router.delete(
    "/conversations/{conversation_id}/messages/{message_id}",
    response_model=ItemResponse[Dict[str, Any]],
)
async def delete_message(
    conversation_id: UUID,
    message_id: UUID,
    identity: Identity = Depends(get_identity),
    messaging: Messaging = Depends(get_messaging),
):
    """Deletes a message; allowed for its sender and administrators"""
    try:
        await messaging.messages.delete_message(identity, conversation_id, message_id)
        return ItemResponse[Dict[str, Any]](data={})
    except MessagingError:
        raise
    except Exception as e:
        logger.error("delete_message_error", message_id=str(message_id), error=str(e))
        raise HTTPException(status_code=500, detail="Failed to delete message")


@router.get("/unread-count", response_model=ItemResponse[UnreadSummary])
async def get_unread_count(
    identity: Identity = Depends(get_identity),
    messaging: Messaging = Depends(get_messaging),
):
    """Counts messages the caller has not read yet, in total and per conversation"""
    try:
        by_conversation = await messaging.unread.unread_by_conversation(identity.user_id)
        summary = UnreadSummary(
            unread_count=sum(by_conversation.values()),
            by_conversation={str(cid): count for cid, count in by_conversation.items()},
        )
        return ItemResponse[UnreadSummary](data=summary)
    except MessagingError:
        raise
    except Exception as e:
        logger.error("unread_count_error", user_id=identity.user_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to count unread messages")
