"""Dependency wiring for routes and sockets."""

from dataclasses import dataclass
from typing import Mapping

from fastapi import Depends, Request

from ..config import Settings
from ..domain.errors import UnauthenticatedError
from ..domain.models import Identity
from ..repositories.base import Repository
from ..repositories.directory import UserDirectory
from ..services.broadcaster import DeliveryBroadcaster
from ..services.conversations import ConversationService
from ..services.membership import MembershipGuard
from ..services.messages import MessageService
from ..services.presentation import Presenter
from ..services.send_queue import ConversationSendQueue
from ..services.unread import UnreadAccounting


@dataclass
class Messaging:
    """Every component of the messaging subsystem, scoped to one app instance."""

    settings: Settings
    repository: Repository
    directory: UserDirectory
    guard: MembershipGuard
    broadcaster: DeliveryBroadcaster
    send_queue: ConversationSendQueue
    conversations: ConversationService
    messages: MessageService
    unread: UnreadAccounting

    @classmethod
    def build(cls, settings: Settings, repository: Repository, directory: UserDirectory) -> "Messaging":
        """Wire the components together."""
        guard = MembershipGuard(repository)
        presenter = Presenter(directory)
        broadcaster = DeliveryBroadcaster(send_timeout=settings.delivery_timeout)
        send_queue = ConversationSendQueue()
        return cls(
            settings=settings,
            repository=repository,
            directory=directory,
            guard=guard,
            broadcaster=broadcaster,
            send_queue=send_queue,
            conversations=ConversationService(repository, repository, guard, presenter),
            messages=MessageService(
                repository,
                guard,
                presenter,
                broadcaster,
                send_queue,
                admin_roles=settings.admin_roles,
                repair_last_message=settings.repair_last_message,
            ),
            unread=UnreadAccounting(repository, repository),
        )

    async def shutdown(self) -> None:
        """Release live state held by the process."""
        await self.send_queue.cleanup()
        self.broadcaster.close()


def identity_from_headers(headers: Mapping[str, str], settings: Settings) -> Identity:
    """Read the identity the authentication layer attached to the request."""
    user_id = (headers.get(settings.user_id_header) or "").strip()
    if not user_id:
        raise UnauthenticatedError("Not authenticated")
    role = (headers.get(settings.user_role_header) or "").strip() or "user"
    return Identity(user_id=user_id, role=role)


def get_messaging(request: Request) -> Messaging:
    """Returns the app's messaging components"""
    return request.app.state.messaging


def get_identity(request: Request, messaging: Messaging = Depends(get_messaging)) -> Identity:
    """Returns the verified caller identity"""
    return identity_from_headers(request.headers, messaging.settings)
