"""Per-user gateway session wiring permissions, health, discovery, and invocation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, Self

from toolgate.core.permission_resolver import PermissionResolver
from toolgate.gateway.client import GatewayClient
from toolgate.gateway.errors import GatewayError, error_from_exception
from toolgate.gateway.health import HealthMonitor, HealthRecord, HealthRound
from toolgate.gateway.normalize import InvocationResult
from toolgate.models.catalog import Service, Tool
from toolgate.models.permission import Identity, ServerAccess

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceListing:
    """Service discovery outcome for one server in a batch."""

    server_key: str
    services: list[Service] = field(default_factory=list)
    error: GatewayError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class GatewaySession:
    """Gateway access for one identity and one bearer credential.

    Entering the session resolves the identity's servers and starts health
    polling for them; leaving it stops the polling task.
    """

    def __init__(
        self,
        identity: Identity,
        credential: str,
        *,
        resolver: PermissionResolver,
        client: GatewayClient,
        monitor: HealthMonitor | None = None,
    ) -> None:
        self.identity = identity
        self._credential = credential
        self._resolver = resolver
        self._client = client
        self.monitor = monitor or HealthMonitor(client.ping)
        self._servers: list[ServerAccess] = []

    @property
    def servers(self) -> list[ServerAccess]:
        """Servers from the latest resolution."""
        return list(self._servers)

    @property
    def health(self) -> Mapping[str, HealthRecord]:
        return self.monitor.snapshot

    async def resolve_servers(self, *, active_only: bool = False) -> list[ServerAccess]:
        servers = await self._resolver.resolve(self.identity, active_only=active_only)
        self._servers = servers
        self.monitor.watch([server.server_key for server in servers], self._credential)
        return list(servers)

    async def start(self) -> list[ServerAccess]:
        servers = await self.resolve_servers()
        self.monitor.start([server.server_key for server in servers], self._credential)
        logger.info("Session for %s watching %d servers", self.identity.id, len(servers))
        return servers

    async def close(self) -> None:
        await self.monitor.stop()

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def refresh_health(self) -> HealthRound:
        return await self.monitor.refresh(
            [server.server_key for server in self._servers],
            self._credential,
        )

    async def list_services(self, server_key: str) -> list[Service]:
        return await self._client.list_services(server_key, self._credential)

    async def list_tools(self, server_key: str, service_name: str) -> list[Tool]:
        return await self._client.list_tools(server_key, service_name, self._credential)

    async def invoke(
        self,
        server_key: str,
        service_name: str,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
    ) -> InvocationResult:
        return await self._client.invoke(
            server_key,
            service_name,
            tool_name,
            arguments,
            self._credential,
        )

    async def discover_services(
        self,
        server_keys: Iterable[str] | None = None,
    ) -> dict[str, ServiceListing]:
        """List services on many servers at once; every key gets an entry."""
        keys = (
            sorted(set(server_keys))
            if server_keys is not None
            else [server.server_key for server in self._servers]
        )
        listings = await asyncio.gather(*(self._listing(key) for key in keys))
        return {listing.server_key: listing for listing in listings}

    async def _listing(self, server_key: str) -> ServiceListing:
        try:
            services = await self.list_services(server_key)
        except Exception as exc:  # noqa: BLE001
            error = error_from_exception(exc, server_key=server_key)
            logger.warning("Service discovery failed for %s: %s", server_key, error.message)
            return ServiceListing(server_key=server_key, error=error)
        return ServiceListing(server_key=server_key, services=services)
