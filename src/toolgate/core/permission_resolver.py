"""Resolve which gateway servers an identity may reach."""

from __future__ import annotations

import logging

import aiosqlite

from toolgate.db.store import SQLiteStore
from toolgate.gateway.errors import BackendUnavailableError, UnauthenticatedError
from toolgate.models.permission import Identity, ServerAccess

logger = logging.getLogger(__name__)


class PermissionResolver:
    """Read-only view of the permission store keyed by requester email."""

    def __init__(self, store: SQLiteStore) -> None:
        self._store = store

    async def resolve(
        self,
        identity: Identity,
        *,
        active_only: bool = False,
    ) -> list[ServerAccess]:
        """Return the servers granted to ``identity`` joined with their metadata.

        Non-active grants are returned unless ``active_only`` is set; the
        gateway enforces authorization on every call regardless.
        """
        email = (identity.email or "").strip()
        if not email:
            raise UnauthenticatedError("Not authenticated")

        try:
            servers = await self._store.list_server_access(email)
        except (aiosqlite.Error, OSError) as exc:
            logger.warning("Permission store query failed for %s: %s", identity.id, exc)
            raise BackendUnavailableError(f"Permission store unavailable: {exc}") from exc

        if active_only:
            servers = [server for server in servers if server.is_active]
        logger.debug("Identity %s resolved %d servers", identity.id, len(servers))
        return servers

    async def server_keys(self, identity: Identity, *, active_only: bool = False) -> list[str]:
        servers = await self.resolve(identity, active_only=active_only)
        return [server.server_key for server in servers]
