"""Shared fixtures for the messaging test suite."""

import asyncio
from typing import Any, List, Tuple
from uuid import uuid4

import pytest

from alumni_messaging.api.app import create_app
from alumni_messaging.api.dependencies import Messaging
from alumni_messaging.config import Settings
from alumni_messaging.domain.models import Identity, UserSummary
from alumni_messaging.repositories.directory import InMemoryUserDirectory
from alumni_messaging.repositories.memory import InMemoryRepository

USERS = [
    UserSummary(id="alice", name="Alice Moreno", profile_photo="https://cdn.example.org/alice.png"),
    UserSummary(id="bob", name="Bob Okafor", profile_photo="https://cdn.example.org/bob.png"),
    UserSummary(id="carol", name="Carol Lindqvist"),
    UserSummary(id="dave", name="Dave Ito"),
]


class FakeConnection:
    """Connection double that records pushed events."""

    def __init__(self, user_id: str, fail: bool = False) -> None:
        self.id = uuid4().hex
        self.user_id = user_id
        self.fail = fail
        self.events: List[Tuple[str, Any]] = []

    async def send(self, event: str, data: Any) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.events.append((event, data))

    def names(self) -> List[str]:
        return [event for event, _ in self.events]


class StalledConnection(FakeConnection):
    """Connection whose sends never complete."""

    async def send(self, event: str, data: Any) -> None:
        await asyncio.Event().wait()


@pytest.fixture
def settings() -> Settings:
    return Settings(tracing_enabled=False)


@pytest.fixture
def directory() -> InMemoryUserDirectory:
    return InMemoryUserDirectory(USERS)


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def messaging(settings, repository, directory) -> Messaging:
    return Messaging.build(settings, repository, directory)


@pytest.fixture
def app(settings, repository, directory):
    return create_app(settings, repository, directory)


@pytest.fixture
def as_user():
    """Headers the authentication layer would attach for a user."""

    def _headers(user_id: str, role: str = "user") -> dict:
        return {"X-User-Id": user_id, "X-User-Role": role}

    return _headers


@pytest.fixture
def alice() -> Identity:
    return Identity(user_id="alice")


@pytest.fixture
def bob() -> Identity:
    return Identity(user_id="bob")


@pytest.fixture
def carol() -> Identity:
    return Identity(user_id="carol")
