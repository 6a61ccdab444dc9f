"""Gateway access routes."""

from __future__ import annotations

from collections.abc import Mapping

from fastapi import APIRouter, Body, Depends, HTTPException, status

from toolgate.api.deps import (
    get_credential,
    get_gateway_client,
    get_health_monitor,
    get_identity,
    get_permission_resolver,
)
from toolgate.api.schemas.gateway import (
    CallToolRequest,
    CallToolResponse,
    HealthCheckRequest,
    HealthCheckResponse,
    HealthRecordResponse,
    HealthSnapshotResponse,
    ServersResponse,
    ServiceListingResponse,
    ServiceListingsResponse,
    ServicesResponse,
    ToolsResponse,
)
from toolgate.core.permission_resolver import PermissionResolver
from toolgate.core.session import GatewaySession
from toolgate.gateway.client import GatewayClient
from toolgate.gateway.errors import GatewayError
from toolgate.gateway.health import HealthMonitor, HealthRecord
from toolgate.gateway.normalize import InvocationFailure, InvocationSuccess
from toolgate.models.permission import Identity

router = APIRouter(prefix="/api/v1/servers", tags=["gateway"])

_STATUS_BY_KIND = {
    "unauthenticated": status.HTTP_401_UNAUTHORIZED,
    "auth_error": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "timeout": status.HTTP_504_GATEWAY_TIMEOUT,
    "backend_unavailable": status.HTTP_502_BAD_GATEWAY,
    "malformed_response": status.HTTP_502_BAD_GATEWAY,
}


def _http_error(exc: GatewayError) -> HTTPException:
    return HTTPException(
        status_code=_STATUS_BY_KIND.get(exc.kind, status.HTTP_502_BAD_GATEWAY),
        detail=exc.message,
    )


def _require_credential(credential: str) -> None:
    if not credential:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")


@router.get("", response_model=ServersResponse)
async def list_servers(
    active_only: bool = False,
    identity: Identity = Depends(get_identity),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> ServersResponse:
    try:
        servers = await resolver.resolve(identity, active_only=active_only)
    except GatewayError as exc:
        raise _http_error(exc) from exc
    return ServersResponse(items=servers)


def _record_items(records: Mapping[str, HealthRecord]) -> list[HealthRecordResponse]:
    return [
        HealthRecordResponse(
            server_key=record.server_key,
            online=record.online,
            last_checked=record.last_checked,
            error=record.error,
        )
        for record in sorted(records.values(), key=lambda item: item.server_key)
    ]


@router.get("/health", response_model=HealthSnapshotResponse)
async def current_health(
    monitor: HealthMonitor = Depends(get_health_monitor),
) -> HealthSnapshotResponse:
    """Latest applied round for the caller, without probing."""
    return HealthSnapshotResponse(
        sequence=monitor.applied_sequence,
        items=_record_items(monitor.snapshot),
    )


@router.post("/health-check", response_model=HealthCheckResponse)
async def check_servers(
    request: HealthCheckRequest | None = Body(default=None),
    identity: Identity = Depends(get_identity),
    credential: str = Depends(get_credential),
    resolver: PermissionResolver = Depends(get_permission_resolver),
    monitor: HealthMonitor = Depends(get_health_monitor),
) -> HealthCheckResponse:
    """Run one round on the caller's monitor.

    Rounds run on demand; no polling task is started from a request.
    """
    if request is not None and request.server_keys is not None:
        server_keys = request.server_keys
    else:
        try:
            server_keys = await resolver.server_keys(identity)
        except GatewayError as exc:
            raise _http_error(exc) from exc
    health_round = await monitor.refresh(server_keys, credential)
    return HealthCheckResponse(
        sequence=health_round.sequence,
        skipped=health_round.skipped,
        applied=health_round.applied,
        items=_record_items(health_round.records),
    )


@router.post("/services", response_model=ServiceListingsResponse)
async def discover_services(
    identity: Identity = Depends(get_identity),
    credential: str = Depends(get_credential),
    resolver: PermissionResolver = Depends(get_permission_resolver),
    client: GatewayClient = Depends(get_gateway_client),
) -> ServiceListingsResponse:
    _require_credential(credential)
    session = GatewaySession(identity, credential, resolver=resolver, client=client)
    try:
        await session.resolve_servers()
    except GatewayError as exc:
        raise _http_error(exc) from exc
    listings = await session.discover_services()
    return ServiceListingsResponse(
        items=[
            ServiceListingResponse(
                server_key=key,
                success=listing.ok,
                items=listing.services,
                error=listing.error.message if listing.error is not None else None,
                error_kind=listing.error.kind if listing.error is not None else None,
            )
            for key, listing in sorted(listings.items())
        ]
    )


@router.get("/{server_key}/services", response_model=ServicesResponse)
async def list_services(
    server_key: str,
    credential: str = Depends(get_credential),
    client: GatewayClient = Depends(get_gateway_client),
) -> ServicesResponse:
    try:
        services = await client.list_services(server_key, credential)
    except GatewayError as exc:
        raise _http_error(exc) from exc
    return ServicesResponse(server_key=server_key, items=services)


@router.get("/{server_key}/services/{service}/tools", response_model=ToolsResponse)
async def list_tools(
    server_key: str,
    service: str,
    credential: str = Depends(get_credential),
    client: GatewayClient = Depends(get_gateway_client),
) -> ToolsResponse:
    try:
        tools = await client.list_tools(server_key, service, credential)
    except GatewayError as exc:
        raise _http_error(exc) from exc
    return ToolsResponse(server_key=server_key, service=service, items=tools)


@router.post("/{server_key}/services/{service}/tools/call", response_model=CallToolResponse)
async def call_tool(
    server_key: str,
    service: str,
    request: CallToolRequest,
    credential: str = Depends(get_credential),
    client: GatewayClient = Depends(get_gateway_client),
) -> CallToolResponse:
    result = await client.invoke(server_key, service, request.tool, request.arguments, credential)
    match result:
        case InvocationSuccess(payload=payload):
            return CallToolResponse(success=True, payload=payload)
        case InvocationFailure(message=message, kind=kind, status_code=status_code):
            return CallToolResponse(
                success=False,
                error=message,
                error_kind=kind,
                status_code=status_code,
            )
