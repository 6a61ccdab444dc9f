"""SQLite migrations for the permission store."""

from __future__ import annotations

import aiosqlite

SCHEMA_VERSION = 1


async def apply_migrations(conn: aiosqlite.Connection) -> None:
    """Create server and permission tables if missing and set schema version."""
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY
        )
        """
    )

    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS mcp_servers (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            description TEXT,
            server_key TEXT NOT NULL UNIQUE,
            status TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """
    )

    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS mcp_server_permissions (
            id TEXT PRIMARY KEY,
            server_id TEXT NOT NULL,
            allowed_email TEXT NOT NULL,
            access_level TEXT NOT NULL,
            status TEXT NOT NULL,
            granted_at TEXT NOT NULL,
            activated_at TEXT,
            expires_at TEXT,
            UNIQUE(server_id, allowed_email),
            FOREIGN KEY(server_id) REFERENCES mcp_servers(id) ON DELETE CASCADE
        )
        """
    )

    await conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_permissions_email
        ON mcp_server_permissions(allowed_email)
        """
    )

    await conn.execute("DELETE FROM schema_migrations")
    await conn.execute("INSERT INTO schema_migrations(version) VALUES (?)", (SCHEMA_VERSION,))
    await conn.commit()
