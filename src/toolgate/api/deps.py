"""Shared API dependency providers."""

from __future__ import annotations

from fastapi import Depends, Header

from toolgate.config import Settings, get_settings
from toolgate.core.permission_resolver import PermissionResolver
from toolgate.db.store import SQLiteStore
from toolgate.gateway.client import GatewayClient
from toolgate.gateway.health import HealthMonitor, HealthMonitorRegistry
from toolgate.models.permission import Identity

_HEALTH_MONITORS = HealthMonitorRegistry()


def get_store(settings: Settings = Depends(get_settings)) -> SQLiteStore:
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    return SQLiteStore(db_path=settings.db_path)


def get_permission_resolver(store: SQLiteStore = Depends(get_store)) -> PermissionResolver:
    return PermissionResolver(store=store)


def get_gateway_client(settings: Settings = Depends(get_settings)) -> GatewayClient:
    return GatewayClient(
        settings.gateway_base_url,
        request_timeout_seconds=settings.request_timeout_seconds,
        default_service=settings.default_service,
    )


def get_identity(
    x_user_email: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
) -> Identity:
    return Identity(id=x_user_id or x_user_email or "anonymous", email=x_user_email)


def get_credential(authorization: str | None = Header(default=None)) -> str:
    if not authorization:
        return ""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def get_health_monitor_registry() -> HealthMonitorRegistry:
    return _HEALTH_MONITORS


def get_health_monitor(
    identity: Identity = Depends(get_identity),
    settings: Settings = Depends(get_settings),
    client: GatewayClient = Depends(get_gateway_client),
    registry: HealthMonitorRegistry = Depends(get_health_monitor_registry),
) -> HealthMonitor:
    """Monitor owned by the caller; its snapshot persists between requests."""
    return registry.monitor_for(
        identity.id,
        lambda: HealthMonitor(
            client.ping,
            timeout_seconds=settings.health_timeout_seconds,
            interval_seconds=settings.health_interval_seconds,
        ),
    )
