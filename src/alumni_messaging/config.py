"""Environment-driven settings."""

import os
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field

_TRUE = ("1", "true", "yes", "on")


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE


def _csv(value: Optional[str], default: List[str]) -> List[str]:
    if value is None or not value.strip():
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    """Runtime configuration of the messaging service."""

    api_prefix: str = "/api/messaging"
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    # Set by the upstream authentication layer.
    user_id_header: str = "X-User-Id"
    user_role_header: str = "X-User-Role"
    admin_roles: List[str] = Field(default_factory=lambda: ["admin"])
    authorize_room_join: bool = False
    repair_last_message: bool = True
    tracing_enabled: bool = True
    # Seconds a single socket delivery may take before it counts as failed.
    delivery_timeout: float = Field(default=5.0, gt=0)
    # Frames buffered per socket before further deliveries to it are dropped.
    socket_queue_size: int = Field(default=256, ge=1)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            api_prefix=env.get("MESSAGING_API_PREFIX", defaults.api_prefix).rstrip("/"),
            cors_origins=_csv(env.get("FRONTEND_URL"), defaults.cors_origins),
            user_id_header=env.get("MESSAGING_USER_HEADER", defaults.user_id_header),
            user_role_header=env.get("MESSAGING_ROLE_HEADER", defaults.user_role_header),
            admin_roles=_csv(env.get("MESSAGING_ADMIN_ROLES"), defaults.admin_roles),
            authorize_room_join=_flag(env.get("MESSAGING_AUTHORIZE_ROOM_JOIN"), defaults.authorize_room_join),
            repair_last_message=_flag(env.get("MESSAGING_REPAIR_LAST_MESSAGE"), defaults.repair_last_message),
            tracing_enabled=_flag(env.get("MESSAGING_TRACING"), defaults.tracing_enabled),
            delivery_timeout=env.get("MESSAGING_DELIVERY_TIMEOUT") or defaults.delivery_timeout,
            socket_queue_size=env.get("MESSAGING_SOCKET_QUEUE_SIZE") or defaults.socket_queue_size,
        )
