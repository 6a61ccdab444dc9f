"""Typed failures for gateway access."""

from __future__ import annotations

from typing import ClassVar, Literal

import httpx

type ErrorKind = Literal[
    "unauthenticated",
    "auth_error",
    "not_found",
    "timeout",
    "backend_unavailable",
    "malformed_response",
    "tool_error",
]


class GatewayError(RuntimeError):
    """Base failure raised by gateway discovery and permission lookups."""

    kind: ClassVar[ErrorKind] = "backend_unavailable"

    def __init__(
        self,
        message: str,
        *,
        server_key: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.server_key = server_key
        self.status_code = status_code


class UnauthenticatedError(GatewayError):
    """No usable identity or credential was supplied."""

    kind = "unauthenticated"


class AuthError(GatewayError):
    """The gateway rejected the credential (401/403)."""

    kind = "auth_error"


class NotFoundError(GatewayError):
    """Unknown server key or service."""

    kind = "not_found"


class BackendUnavailableError(GatewayError):
    """Transport failure, 5xx, or unreachable permission store."""

    kind = "backend_unavailable"


class GatewayTimeoutError(BackendUnavailableError):
    """A call exceeded its time bound."""

    kind = "timeout"


class MalformedResponseError(GatewayError):
    """Payload does not have the shape the endpoint promises."""

    kind = "malformed_response"


def error_for_status(
    status_code: int,
    message: str,
    *,
    server_key: str | None = None,
) -> GatewayError:
    """Map a non-2xx status code onto the error taxonomy."""
    if status_code in {401, 403}:
        return AuthError(message, server_key=server_key, status_code=status_code)
    if status_code == 404:
        return NotFoundError(message, server_key=server_key, status_code=status_code)
    return BackendUnavailableError(message, server_key=server_key, status_code=status_code)


def error_from_exception(exc: Exception, *, server_key: str | None = None) -> GatewayError:
    """Map a transport-level exception onto the error taxonomy."""
    if isinstance(exc, GatewayError):
        return exc
    if isinstance(exc, httpx.TimeoutException | TimeoutError):
        return GatewayTimeoutError("Timeout", server_key=server_key)
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        return error_for_status(status_code, f"HTTP {status_code}", server_key=server_key)
    return BackendUnavailableError(str(exc) or type(exc).__name__, server_key=server_key)
