"""Service and tool records advertised by remote servers."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ServiceStatus(str, Enum):
    """Declared availability of one hosted service."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class ServiceEndpoints(BaseModel):
    """Relative endpoints a service advertises."""

    tools: str | None = None
    call: str | None = None


class Service(BaseModel):
    """Named capability group hosted by one server.

    Only ``name`` is required. Unknown fields and statuses are kept as sent.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    description: str | None = None
    status: ServiceStatus | str = Field(default=ServiceStatus.ACTIVE, union_mode="left_to_right")
    endpoints: ServiceEndpoints | None = None


class Tool(BaseModel):
    """Invocable operation within one service."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    description: str | None = None
    input_schema: dict[str, Any] | None = Field(default=None, alias="inputSchema")
