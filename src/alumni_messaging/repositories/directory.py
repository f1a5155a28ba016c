"""User directory lookups for display identities."""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

import structlog

from ..domain.models import UserSummary

logger = structlog.get_logger()


class UserDirectory(ABC):
    """Source of display names and avatars, owned by the user service."""

    @abstractmethod
    async def resolve(self, user_ids: Iterable[str]) -> Dict[str, UserSummary]:
        """Map every requested id to a summary. Unknown ids get an empty summary."""
        pass


class InMemoryUserDirectory(UserDirectory):
    """Directory backed by a dict, for local runs and tests."""

    def __init__(self, users: Optional[Iterable[UserSummary]] = None) -> None:
        self._users: Dict[str, UserSummary] = {}
        for user in users or ():
            self.add(user)

    def add(self, user: UserSummary) -> None:
        """Register or replace a user's display identity."""
        self._users[user.id] = user

    async def resolve(self, user_ids: Iterable[str]) -> Dict[str, UserSummary]:
        resolved: Dict[str, UserSummary] = {}
        for user_id in user_ids:
            user = self._users.get(user_id)
            if user is None:
                logger.debug("directory_user_unknown", user_id=user_id)
                user = UserSummary(id=user_id)
            resolved[user_id] = user.model_copy()
        return resolved
