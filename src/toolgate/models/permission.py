"""Identity, server, and permission domain models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class AccessLevel(str, Enum):
    """Access granted to one identity on one server."""

    READ_ONLY = "read_only"
    READ_WRITE = "read_write"
    ADMIN = "admin"


class PermissionStatus(str, Enum):
    """Lifecycle state of a permission grant."""

    PENDING = "pending"
    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"


class Identity(BaseModel):
    """Authenticated caller supplied by the identity provider."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str | None = None


class Server(BaseModel):
    """Remote tool server reachable through the gateway."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    description: str | None = None
    server_key: str
    status: str = "active"
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ServerPermission(BaseModel):
    """One grant row tying an email to a server."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    server_id: str
    allowed_email: str
    access_level: AccessLevel = AccessLevel.READ_ONLY
    status: PermissionStatus = PermissionStatus.PENDING
    granted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    activated_at: datetime | None = None
    expires_at: datetime | None = None


class ServerAccess(BaseModel):
    """Permission row joined with its server metadata."""

    id: str
    name: str
    description: str | None = None
    server_key: str
    status: str
    access_level: AccessLevel
    permission_status: PermissionStatus
    granted_at: datetime
    activated_at: datetime | None = None
    expires_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.permission_status is PermissionStatus.ACTIVE
