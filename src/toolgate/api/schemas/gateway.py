"""Gateway API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from toolgate.gateway.errors import ErrorKind
from toolgate.models.catalog import Service, Tool
from toolgate.models.permission import ServerAccess


class ServersResponse(BaseModel):
    """Servers visible to the caller."""

    items: list[ServerAccess]


class HealthCheckRequest(BaseModel):
    """Optional explicit key set for a health round."""

    server_keys: list[str] | None = None


class HealthRecordResponse(BaseModel):
    """Liveness of one server."""

    server_key: str
    online: bool
    last_checked: datetime
    error: str | None = None


class HealthCheckResponse(BaseModel):
    """One health round and whether it became the caller's snapshot."""

    sequence: int
    skipped: bool
    applied: bool
    items: list[HealthRecordResponse]


class HealthSnapshotResponse(BaseModel):
    """Records from the caller's latest applied round."""

    sequence: int
    items: list[HealthRecordResponse]


class ServicesResponse(BaseModel):
    """Services hosted by one server."""

    server_key: str
    items: list[Service]


class ToolsResponse(BaseModel):
    """Tools of one service."""

    server_key: str
    service: str
    items: list[Tool]


class ServiceListingResponse(BaseModel):
    """Service discovery outcome for one server in a batch."""

    server_key: str
    success: bool
    items: list[Service] = Field(default_factory=list)
    error: str | None = None
    error_kind: ErrorKind | None = None


class ServiceListingsResponse(BaseModel):
    """Batch service discovery across servers."""

    items: list[ServiceListingResponse]


class CallToolRequest(BaseModel):
    """Tool invocation payload."""

    tool: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class CallToolResponse(BaseModel):
    """Normalized tool invocation outcome."""

    success: bool
    payload: Any = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    status_code: int | None = None
