"""Async SQLite persistence for servers and permission grants."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

import aiosqlite

from toolgate.db.migrations import apply_migrations
from toolgate.models.permission import (
    AccessLevel,
    PermissionStatus,
    Server,
    ServerAccess,
    ServerPermission,
)


class SQLiteStore:
    """Data access layer for servers and the permissions granted on them."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self._db_path)
        conn.row_factory = aiosqlite.Row
        try:
            await conn.execute("PRAGMA foreign_keys = ON")
            await apply_migrations(conn)
            yield conn
        finally:
            await conn.close()

    async def upsert_server(self, server: Server) -> None:
        async with self.connection() as conn:
            await conn.execute(
                """
                INSERT INTO mcp_servers(id, name, description, server_key, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name,
                    description=excluded.description,
                    server_key=excluded.server_key,
                    status=excluded.status
                """,
                (
                    server.id,
                    server.name,
                    server.description,
                    server.server_key,
                    server.status,
                    server.created_at.isoformat(),
                ),
            )
            await conn.commit()

    async def get_server_by_key(self, server_key: str) -> Server | None:
        async with self.connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM mcp_servers WHERE server_key = ?",
                (server_key,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._server_from_row(row)

    async def list_servers(self) -> list[Server]:
        async with self.connection() as conn:
            cursor = await conn.execute("SELECT * FROM mcp_servers ORDER BY created_at ASC")
            rows = await cursor.fetchall()
        return [self._server_from_row(row) for row in rows]

    async def upsert_permission(self, permission: ServerPermission) -> None:
        async with self.connection() as conn:
            await conn.execute(
                """
                INSERT INTO mcp_server_permissions(
                    id,
                    server_id,
                    allowed_email,
                    access_level,
                    status,
                    granted_at,
                    activated_at,
                    expires_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(server_id, allowed_email) DO UPDATE SET
                    access_level=excluded.access_level,
                    status=excluded.status,
                    activated_at=excluded.activated_at,
                    expires_at=excluded.expires_at
                """,
                (
                    permission.id,
                    permission.server_id,
                    permission.allowed_email,
                    permission.access_level.value,
                    permission.status.value,
                    permission.granted_at.isoformat(),
                    _iso(permission.activated_at),
                    _iso(permission.expires_at),
                ),
            )
            await conn.commit()

    async def delete_permission(self, server_id: str, allowed_email: str) -> None:
        async with self.connection() as conn:
            await conn.execute(
                "DELETE FROM mcp_server_permissions WHERE server_id = ? AND allowed_email = ?",
                (server_id, allowed_email),
            )
            await conn.commit()

    async def list_server_access(self, email: str) -> list[ServerAccess]:
        """Join permission rows for one email with their server records."""
        async with self.connection() as conn:
            cursor = await conn.execute(
                """
                SELECT
                    s.id AS id,
                    s.name AS name,
                    s.description AS description,
                    s.server_key AS server_key,
                    s.status AS status,
                    p.access_level AS access_level,
                    p.status AS permission_status,
                    p.granted_at AS granted_at,
                    p.activated_at AS activated_at,
                    p.expires_at AS expires_at
                FROM mcp_server_permissions AS p
                INNER JOIN mcp_servers AS s ON s.id = p.server_id
                WHERE p.allowed_email = ?
                """,
                (email,),
            )
            rows = await cursor.fetchall()
        return [self._access_from_row(row) for row in rows]

    @staticmethod
    def _server_from_row(row: aiosqlite.Row) -> Server:
        return Server(
            id=str(row["id"]),
            name=str(row["name"]),
            description=str(row["description"]) if row["description"] else None,
            server_key=str(row["server_key"]),
            status=str(row["status"]),
            created_at=datetime.fromisoformat(str(row["created_at"])),
        )

    @staticmethod
    def _access_from_row(row: aiosqlite.Row) -> ServerAccess:
        return ServerAccess(
            id=str(row["id"]),
            name=str(row["name"]),
            description=str(row["description"]) if row["description"] else None,
            server_key=str(row["server_key"]),
            status=str(row["status"]),
            access_level=AccessLevel(str(row["access_level"])),
            permission_status=PermissionStatus(str(row["permission_status"])),
            granted_at=datetime.fromisoformat(str(row["granted_at"])),
            activated_at=_parse_iso(row["activated_at"]),
            expires_at=_parse_iso(row["expires_at"]),
        )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_iso(value: object) -> datetime | None:
    return datetime.fromisoformat(str(value)) if value else None
