"""Test suite for the API endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

PREFIX = "/api/messaging"


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _direct(client, as_user, requester="alice", other="bob") -> str:
    response = await client.post(
        f"{PREFIX}/conversations",
        json={"participantIds": [other], "isGroup": False},
        headers=as_user(requester),
    )
    assert response.status_code in (200, 201)
    return response.json()["data"]["id"]


@pytest.mark.asyncio
async def test_create_direct_conversation(app, as_user):
    """Test creating a direct conversation and getting it back on repeat."""
    async with _client(app) as client:
        response = await client.post(
            f"{PREFIX}/conversations",
            json={"participantIds": ["bob"], "isGroup": False},
            headers=as_user("alice"),
        )
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["isGroup"] is False
        assert data["admin"] == "alice"
        assert [p["id"] for p in data["participants"]] == ["alice", "bob"]
        assert data["participants"][1]["name"] == "Bob Okafor"
        assert data["lastMessage"] is None
        assert "createdAt" in data
        assert "updatedAt" in data

        # Same pair, other direction
        response = await client.post(
            f"{PREFIX}/conversations",
            json={"participantIds": ["alice"]},
            headers=as_user("bob"),
        )
        assert response.status_code == 200
        assert response.json()["data"]["id"] == data["id"]


@pytest.mark.asyncio
async def test_create_group_conversation(app, as_user):
    """Test creating a group conversation."""
    async with _client(app) as client:
        response = await client.post(
            f"{PREFIX}/conversations",
            json={
                "participantIds": ["bob", "carol"],
                "isGroup": True,
                "name": "Class of 2012",
                "description": "Reunion planning",
            },
            headers=as_user("alice"),
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["isGroup"] is True
        assert data["name"] == "Class of 2012"
        assert data["description"] == "Reunion planning"
        assert len(data["participants"]) == 3


@pytest.mark.asyncio
async def test_error_handling(app, as_user):
    """Test validation and identity errors."""
    async with _client(app) as client:
        # No identity attached
        response = await client.get(f"{PREFIX}/conversations")
        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": "Unauthenticated",
            "message": "Not authenticated",
        }

        # Missing participant list
        response = await client.post(f"{PREFIX}/conversations", json={}, headers=as_user("alice"))
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"

        # Direct conversation with two others
        response = await client.post(
            f"{PREFIX}/conversations",
            json={"participantIds": ["bob", "carol"], "isGroup": False},
            headers=as_user("alice"),
        )
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"

        # Invalid conversation ID format
        response = await client.get(f"{PREFIX}/conversations/invalid-uuid", headers=as_user("alice"))
        assert response.status_code == 422

        conversation_id = await _direct(client, as_user)

        # Missing content
        response = await client.post(
            f"{PREFIX}/conversations/{conversation_id}/messages",
            json={},
            headers=as_user("alice"),
        )
        assert response.status_code == 422

        # Blank content
        response = await client.post(
            f"{PREFIX}/conversations/{conversation_id}/messages",
            json={"content": "   "},
            headers=as_user("alice"),
        )
        assert response.status_code == 422
        assert response.json()["message"] == "Please add content"


@pytest.mark.asyncio
async def test_get_nonexistent_conversation(app, as_user):
    """Test getting a nonexistent conversation."""
    async with _client(app) as client:
        response = await client.get(
            f"{PREFIX}/conversations/00000000-0000-0000-0000-000000000000",
            headers=as_user("alice"),
        )
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

        response = await client.get(
            f"{PREFIX}/conversations/00000000-0000-0000-0000-000000000000/messages",
            headers=as_user("alice"),
        )
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_membership_enforced(app, as_user):
    """Test that only participants can read or write a conversation."""
    async with _client(app) as client:
        conversation_id = await _direct(client, as_user)

        for user in ("alice", "bob"):
            response = await client.get(f"{PREFIX}/conversations/{conversation_id}", headers=as_user(user))
            assert response.status_code == 200

        outsider = as_user("carol")
        requests = [
            client.get(f"{PREFIX}/conversations/{conversation_id}", headers=outsider),
            client.get(f"{PREFIX}/conversations/{conversation_id}/messages", headers=outsider),
            client.post(
                f"{PREFIX}/conversations/{conversation_id}/messages",
                json={"content": "hello?"},
                headers=outsider,
            ),
            client.post(f"{PREFIX}/conversations/{conversation_id}/read", headers=outsider),
        ]
        for request in requests:
            response = await request
            assert response.status_code == 403
            assert response.json()["error"] == "Forbidden"

        # Nothing was written by the rejected send
        response = await client.get(f"{PREFIX}/conversations/{conversation_id}/messages", headers=as_user("alice"))
        assert response.json()["count"] == 0


@pytest.mark.asyncio
async def test_create_and_get_messages(app, as_user):
    """Test sending messages and reading the transcript."""
    async with _client(app) as client:
        conversation_id = await _direct(client, as_user)

        response = await client.post(
            f"{PREFIX}/conversations/{conversation_id}/messages",
            json={
                "content": "Here is my resume for the referral",
                "attachments": [
                    {
                        "filename": "resume.pdf",
                        "url": "https://files.example.org/resume.pdf",
                        "size": 48213,
                        "mimetype": "application/pdf",
                    }
                ],
            },
            headers=as_user("alice"),
        )
        assert response.status_code == 201
        message = response.json()["data"]
        assert message["content"] == "Here is my resume for the referral"
        assert message["sender"] == {
            "id": "alice",
            "name": "Alice Moreno",
            "profilePhoto": "https://cdn.example.org/alice.png",
        }
        assert message["attachments"][0]["filename"] == "resume.pdf"
        assert message["readBy"] == []

        for text in ["Thanks!", "I'll forward it today"]:
            await client.post(
                f"{PREFIX}/conversations/{conversation_id}/messages",
                json={"content": text},
                headers=as_user("bob"),
            )

        response = await client.get(f"{PREFIX}/conversations/{conversation_id}/messages", headers=as_user("bob"))
        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 3
        assert [m["content"] for m in body["data"]] == [
            "Here is my resume for the referral",
            "Thanks!",
            "I'll forward it today",
        ]

        response = await client.get(
            f"{PREFIX}/conversations/{conversation_id}/messages?limit=1&offset=1",
            headers=as_user("bob"),
        )
        assert [m["content"] for m in response.json()["data"]] == ["Thanks!"]

        response = await client.get(f"{PREFIX}/conversations/{conversation_id}", headers=as_user("alice"))
        assert response.json()["data"]["lastMessage"]["content"] == "I'll forward it today"


@pytest.mark.asyncio
async def test_unread_flow(app, as_user):
    """Test unread counts, marking as read and self-sent messages."""
    async with _client(app) as client:
        conversation_id = await _direct(client, as_user)

        for i in range(3):
            await client.post(
                f"{PREFIX}/conversations/{conversation_id}/messages",
                json={"content": f"Message {i}"},
                headers=as_user("bob"),
            )
        await client.post(
            f"{PREFIX}/conversations/{conversation_id}/messages",
            json={"content": "My reply"},
            headers=as_user("alice"),
        )

        response = await client.get(f"{PREFIX}/unread-count", headers=as_user("alice"))
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["unreadCount"] == 3
        assert data["byConversation"] == {conversation_id: 3}

        response = await client.get(f"{PREFIX}/conversations", headers=as_user("alice"))
        assert response.json()["data"][0]["unreadCount"] == 3

        response = await client.post(f"{PREFIX}/conversations/{conversation_id}/read", headers=as_user("alice"))
        assert response.status_code == 200
        assert response.json()["data"] == {"marked": 3}

        response = await client.post(f"{PREFIX}/conversations/{conversation_id}/read", headers=as_user("alice"))
        assert response.json()["data"] == {"marked": 0}

        response = await client.get(f"{PREFIX}/unread-count", headers=as_user("alice"))
        assert response.json()["data"]["unreadCount"] == 0

        response = await client.get(f"{PREFIX}/unread-count", headers=as_user("bob"))
        assert response.json()["data"]["unreadCount"] == 1

        response = await client.get(f"{PREFIX}/conversations/{conversation_id}/messages", headers=as_user("bob"))
        read_by = [m["readBy"] for m in response.json()["data"] if m["sender"]["id"] == "bob"]
        assert all([r["user"] for r in receipts] == ["alice"] for receipts in read_by)


@pytest.mark.asyncio
async def test_list_conversations(app, as_user):
    """Test listing conversations in order of activity."""
    async with _client(app) as client:
        with_bob = await _direct(client, as_user, "alice", "bob")
        with_carol = await _direct(client, as_user, "alice", "carol")
        await _direct(client, as_user, "bob", "carol")

        await client.post(
            f"{PREFIX}/conversations/{with_bob}/messages",
            json={"content": "Bump"},
            headers=as_user("bob"),
        )

        response = await client.get(f"{PREFIX}/conversations", headers=as_user("alice"))
        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 2
        assert [c["id"] for c in body["data"]] == [with_bob, with_carol]
        assert body["data"][0]["lastMessage"]["content"] == "Bump"

        response = await client.get(f"{PREFIX}/conversations?limit=1&offset=1", headers=as_user("alice"))
        assert [c["id"] for c in response.json()["data"]] == [with_carol]


@pytest.mark.asyncio
async def test_delete_message(app, as_user):
    """Test delete permissions and last message repair."""
    async with _client(app) as client:
        conversation_id = await _direct(client, as_user)
        first = (
            await client.post(
                f"{PREFIX}/conversations/{conversation_id}/messages",
                json={"content": "first"},
                headers=as_user("alice"),
            )
        ).json()["data"]
        second = (
            await client.post(
                f"{PREFIX}/conversations/{conversation_id}/messages",
                json={"content": "second"},
                headers=as_user("alice"),
            )
        ).json()["data"]

        url = f"{PREFIX}/conversations/{conversation_id}/messages/{second['id']}"
        response = await client.delete(url, headers=as_user("bob"))
        assert response.status_code == 403

        response = await client.delete(url, headers=as_user("alice"))
        assert response.status_code == 200
        assert response.json() == {"success": True, "data": {}}

        response = await client.delete(url, headers=as_user("alice"))
        assert response.status_code == 404

        response = await client.get(f"{PREFIX}/conversations/{conversation_id}", headers=as_user("bob"))
        assert response.json()["data"]["lastMessage"]["id"] == first["id"]

        response = await client.delete(
            f"{PREFIX}/conversations/{conversation_id}/messages/{first['id']}",
            headers=as_user("moderator", role="admin"),
        )
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_health_and_metrics(app, as_user):
    """Test operational endpoints."""
    async with _client(app) as client:
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"message": "Server is running"}

        conversation_id = await _direct(client, as_user)
        await client.post(
            f"{PREFIX}/conversations/{conversation_id}/messages",
            json={"content": "counted"},
            headers=as_user("alice"),
        )

        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "messaging_requests_total" in response.text
        assert "messaging_messages_sent_total" in response.text


@pytest.mark.asyncio
async def test_attachment_fields_are_optional(app, as_user):
    """Test that partial attachment descriptors are accepted."""
    async with _client(app) as client:
        conversation_id = await _direct(client, as_user)

        response = await client.post(
            f"{PREFIX}/conversations/{conversation_id}/messages",
            json={"content": "Photos from homecoming", "attachments": [{"url": "https://files.example.org/1.jpg"}, {}]},
            headers=as_user("alice"),
        )
        assert response.status_code == 201
        attachments = response.json()["data"]["attachments"]
        assert attachments[0]["url"] == "https://files.example.org/1.jpg"
        assert attachments[0]["filename"] is None
        assert attachments[1] == {"filename": None, "url": None, "size": None, "mimetype": None}
