"""HTTP client for tool servers fronted by the tunnel gateway."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from toolgate.gateway.errors import (
    MalformedResponseError,
    UnauthenticatedError,
    error_for_status,
    error_from_exception,
)
from toolgate.gateway.normalize import (
    InvocationFailure,
    InvocationResult,
    JSONObject,
    JSONValue,
    error_message,
    normalize_body,
)
from toolgate.models.catalog import Service, Tool

logger = logging.getLogger(__name__)

DEFAULT_SERVICE = "filesystem"


class GatewayClient:
    """Stateless access to ``/t/{server_key}/...`` gateway routes.

    Every operation takes the caller's bearer credential explicitly; the
    client never stores or refreshes it.
    """

    def __init__(
        self,
        base_url: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        request_timeout_seconds: float = 10.0,
        default_service: str = DEFAULT_SERVICE,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._transport = transport
        self._request_timeout_seconds = request_timeout_seconds
        self.default_service = default_service

    @property
    def base_url(self) -> str:
        return self._base_url

    def route(self, server_key: str, *segments: str) -> str:
        """Build the gateway URL for one server and optional path segments."""
        parts = [quote(server_key, safe="")]
        parts.extend(quote(segment, safe="") for segment in segments)
        path = "/".join(parts)
        if not segments:
            path += "/"
        return f"{self._base_url}/t/{path}"

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self._request_timeout_seconds,
        ) as client:
            yield client

    @staticmethod
    def _headers(credential: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {credential}"}

    async def ping(self, server_key: str, credential: str) -> tuple[bool, str | None]:
        """Liveness probe; returns (online, error_message)."""
        async with self._http() as client:
            response = await client.get(
                self.route(server_key, "ping"),
                headers=self._headers(credential),
            )
        if response.is_success:
            return True, None
        return False, f"HTTP {response.status_code}"

    async def list_services(self, server_key: str, credential: str) -> list[Service]:
        """List services hosted by one server."""
        payload = await self._get_json(self.route(server_key), credential, server_key=server_key)
        if not isinstance(payload, dict) or payload.get("success") is not True:
            raise MalformedResponseError("Invalid response format", server_key=server_key)
        servers = payload.get("servers")
        if not isinstance(servers, list):
            raise MalformedResponseError("Invalid response format", server_key=server_key)
        try:
            services = [Service.model_validate(item) for item in servers]
        except ValidationError as exc:
            msg = f"Invalid service record: {exc.errors()[0]['msg']}"
            raise MalformedResponseError(msg, server_key=server_key) from exc
        logger.debug("Server %s declares %d services", server_key, len(services))
        return services

    async def list_tools(
        self,
        server_key: str,
        service_name: str,
        credential: str,
    ) -> list[Tool]:
        """List tools of one service. The body must be a bare JSON array."""
        payload = await self._get_json(
            self.route(server_key, service_name, "tools"),
            credential,
            server_key=server_key,
        )
        if not isinstance(payload, list):
            msg = "Invalid response format - expected array of tools"
            raise MalformedResponseError(msg, server_key=server_key)
        try:
            tools = [Tool.model_validate(item) for item in payload]
        except ValidationError as exc:
            msg = f"Invalid tool record: {exc.errors()[0]['msg']}"
            raise MalformedResponseError(msg, server_key=server_key) from exc
        logger.debug("Service %s/%s declares %d tools", server_key, service_name, len(tools))
        return tools

    async def invoke(
        self,
        server_key: str,
        service_name: str,
        tool_name: str,
        arguments: Mapping[str, Any] | None,
        credential: str,
    ) -> InvocationResult:
        """Call one tool and normalize its response. Never raises for remote failures."""
        if not credential:
            return InvocationFailure(message="Not authenticated", kind="unauthenticated")

        request: JSONObject = {"tool": tool_name, "arguments": dict(arguments or {})}
        try:
            content = json.dumps(request, allow_nan=False)
        except (TypeError, ValueError) as exc:
            logger.warning("Arguments for %s on %s are not JSON: %s", tool_name, server_key, exc)
            return InvocationFailure(
                message=f"Arguments are not JSON serializable: {exc}",
                kind="malformed_response",
            )

        try:
            async with self._http() as client:
                response = await client.post(
                    self.route(server_key, service_name, "tools", "call"),
                    headers={**self._headers(credential), "Content-Type": "application/json"},
                    content=content,
                )
        except httpx.HTTPError as exc:
            error = error_from_exception(exc, server_key=server_key)
            logger.warning("Tool %s on %s failed: %s", tool_name, server_key, error.message)
            return InvocationFailure(message=error.message, kind=error.kind)

        if not response.is_success:
            try:
                message = error_message(response.json())
            except ValueError:
                message = None
            status_error = error_for_status(
                response.status_code,
                message or f"HTTP {response.status_code}: {response.reason_phrase}",
                server_key=server_key,
            )
            logger.warning(
                "Tool %s on %s returned HTTP %d",
                tool_name,
                server_key,
                response.status_code,
            )
            return InvocationFailure(
                message=status_error.message,
                kind=status_error.kind,
                status_code=response.status_code,
            )

        try:
            body: JSONValue = response.json()
        except ValueError:
            return InvocationFailure(
                message="Invalid JSON response",
                kind="malformed_response",
                status_code=response.status_code,
            )
        return normalize_body(body)

    async def invoke_with_identity(
        self,
        server_key: str,
        service_name: str,
        tool_name: str,
        arguments: Mapping[str, Any] | None,
        credential: str,
        *,
        email: str | None,
    ) -> InvocationResult:
        """Invoke a tool that scopes its data by the caller's email."""
        if not email:
            return InvocationFailure(message="User email not available", kind="unauthenticated")
        enriched = {**dict(arguments or {}), "user_email": email}
        return await self.invoke(server_key, service_name, tool_name, enriched, credential)

    async def list_directory(
        self,
        server_key: str,
        credential: str,
        path: str = "/",
    ) -> InvocationResult:
        return await self.invoke(
            server_key,
            self.default_service,
            "fs_list_directory",
            {"path": path},
            credential,
        )

    async def read_file(self, server_key: str, credential: str, path: str) -> InvocationResult:
        return await self.invoke(
            server_key,
            self.default_service,
            "fs_read_file",
            {"path": path},
            credential,
        )

    async def get_file_info(
        self,
        server_key: str,
        credential: str,
        path: str,
    ) -> InvocationResult:
        return await self.invoke(
            server_key,
            self.default_service,
            "fs_get_file_info",
            {"path": path},
            credential,
        )

    async def _get_json(self, url: str, credential: str, *, server_key: str) -> JSONValue:
        if not credential:
            raise UnauthenticatedError("Not authenticated", server_key=server_key)
        try:
            async with self._http() as client:
                response = await client.get(url, headers=self._headers(credential))
        except httpx.HTTPError as exc:
            raise error_from_exception(exc, server_key=server_key) from exc

        if not response.is_success:
            message = f"HTTP {response.status_code}: {response.reason_phrase}"
            raise error_for_status(response.status_code, message, server_key=server_key)

        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError("Invalid JSON response", server_key=server_key) from exc
