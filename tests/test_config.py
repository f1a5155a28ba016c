"""Test suite for environment settings."""

from alumni_messaging.config import Settings


def test_defaults():
    settings = Settings.from_env({})

    assert settings.api_prefix == "/api/messaging"
    assert settings.cors_origins == ["http://localhost:5173"]
    assert settings.user_id_header == "X-User-Id"
    assert settings.admin_roles == ["admin"]
    assert settings.authorize_room_join is False
    assert settings.repair_last_message is True


def test_overrides():
    settings = Settings.from_env(
        {
            "MESSAGING_API_PREFIX": "/chat/",
            "FRONTEND_URL": "https://alumni.example.org, https://admin.example.org",
            "MESSAGING_ADMIN_ROLES": "admin,moderator",
            "MESSAGING_AUTHORIZE_ROOM_JOIN": "true",
            "MESSAGING_REPAIR_LAST_MESSAGE": "0",
            "MESSAGING_TRACING": "off",
        }
    )

    assert settings.api_prefix == "/chat"
    assert settings.cors_origins == ["https://alumni.example.org", "https://admin.example.org"]
    assert settings.admin_roles == ["admin", "moderator"]
    assert settings.authorize_room_join is True
    assert settings.repair_last_message is False
    assert settings.tracing_enabled is False


def test_blank_values_fall_back():
    settings = Settings.from_env({"FRONTEND_URL": " ", "MESSAGING_AUTHORIZE_ROOM_JOIN": ""})

    assert settings.cors_origins == ["http://localhost:5173"]
    assert settings.authorize_room_join is False


def test_delivery_limits():
    settings = Settings.from_env({"MESSAGING_DELIVERY_TIMEOUT": "0.5", "MESSAGING_SOCKET_QUEUE_SIZE": "32"})

    assert settings.delivery_timeout == 0.5
    assert settings.socket_queue_size == 32
    assert Settings.from_env({}).delivery_timeout == 5.0
