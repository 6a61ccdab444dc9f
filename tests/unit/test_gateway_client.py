from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import httpx
import pytest

from toolgate.gateway.errors import (
    AuthError,
    BackendUnavailableError,
    GatewayTimeoutError,
    MalformedResponseError,
    NotFoundError,
    UnauthenticatedError,
)
from toolgate.gateway.normalize import InvocationFailure, InvocationSuccess
from toolgate.models.catalog import ServiceStatus
from tests.support.gateway_helpers import FakeGateway

SERVICES_BODY = {
    "success": True,
    "message": "ok",
    "version": "1.2.0",
    "servers": [
        {
            "name": "filesystem",
            "description": "Local files",
            "status": "active",
            "endpoints": {"tools": "/filesystem/tools", "call": "/filesystem/tools/call"},
        },
        {"name": "conversations", "description": "Chat history", "status": "inactive"},
    ],
    "totalServers": 2,
}


@pytest.mark.asyncio
async def test_list_services_returns_declared_services_with_bearer_header() -> None:
    gateway = FakeGateway()
    gateway.json("GET", "/t/srv-1/", SERVICES_BODY)

    services = await gateway.client().list_services("srv-1", "token-123")

    assert [service.name for service in services] == ["filesystem", "conversations"]
    assert services[1].status is ServiceStatus.INACTIVE
    assert services[0].endpoints is not None
    assert services[0].endpoints.call == "/filesystem/tools/call"
    assert gateway.requests[0].headers["Authorization"] == "Bearer token-123"


@pytest.mark.asyncio
async def test_list_services_empty_list_is_not_an_error() -> None:
    gateway = FakeGateway()
    gateway.json("GET", "/t/srv-1/", {"success": True, "servers": []})

    assert await gateway.client().list_services("srv-1", "token") == []


@pytest.mark.asyncio
async def test_list_services_keeps_records_as_declared() -> None:
    gateway = FakeGateway()
    gateway.json(
        "GET",
        "/t/srv-1/",
        {
            "success": True,
            "servers": [
                {"name": "filesystem", "description": None, "version": "2.1"},
                {"name": "backup", "description": "Snapshots", "status": "maintenance"},
            ],
        },
    )

    services = await gateway.client().list_services("srv-1", "token")

    assert [service.name for service in services] == ["filesystem", "backup"]
    assert services[0].description is None
    assert services[0].status is ServiceStatus.ACTIVE
    assert services[0].model_extra == {"version": "2.1"}
    assert services[0].model_dump()["version"] == "2.1"
    assert services[1].status == "maintenance"


@pytest.mark.asyncio
async def test_list_tools_keeps_extra_fields() -> None:
    gateway = FakeGateway()
    gateway.json(
        "GET",
        "/t/srv-1/filesystem/tools",
        [{"name": "fs_read_file", "description": None, "annotations": {"readOnly": True}}],
    )

    [tool] = await gateway.client().list_tools("srv-1", "filesystem", "token")

    assert tool.model_extra == {"annotations": {"readOnly": True}}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "error_type"),
    [
        (401, AuthError),
        (403, AuthError),
        (404, NotFoundError),
        (500, BackendUnavailableError),
        (503, BackendUnavailableError),
    ],
)
async def test_list_services_maps_status_codes(status_code: int, error_type: type) -> None:
    gateway = FakeGateway()
    gateway.json("GET", "/t/srv-1/", {"error": "nope"}, status_code=status_code)

    with pytest.raises(error_type) as exc_info:
        await gateway.client().list_services("srv-1", "token")

    assert exc_info.value.status_code == status_code
    assert exc_info.value.server_key == "srv-1"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"success": False, "servers": []},
        {"success": True},
        {"success": True, "servers": {"name": "filesystem"}},
        [{"name": "filesystem"}],
    ],
)
async def test_list_services_rejects_malformed_payloads(body: object) -> None:
    gateway = FakeGateway()
    gateway.json("GET", "/t/srv-1/", body)

    with pytest.raises(MalformedResponseError):
        await gateway.client().list_services("srv-1", "token")


@pytest.mark.asyncio
async def test_list_services_rejects_non_json_body() -> None:
    gateway = FakeGateway()
    gateway.add("GET", "/t/srv-1/", httpx.Response(200, text="<html>tunnel</html>"))

    with pytest.raises(MalformedResponseError):
        await gateway.client().list_services("srv-1", "token")


@pytest.mark.asyncio
async def test_list_services_requires_credential() -> None:
    gateway = FakeGateway()

    with pytest.raises(UnauthenticatedError):
        await gateway.client().list_services("srv-1", "")
    assert gateway.requests == []


@pytest.mark.asyncio
async def test_list_services_transport_failures() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def stall(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    gateway = FakeGateway()
    gateway.add("GET", "/t/down/", refuse)
    gateway.add("GET", "/t/slow/", stall)
    client = gateway.client()

    with pytest.raises(BackendUnavailableError) as down:
        await client.list_services("down", "token")
    assert "connection refused" in down.value.message

    with pytest.raises(GatewayTimeoutError) as slow:
        await client.list_services("slow", "token")
    assert slow.value.kind == "timeout"


@pytest.mark.asyncio
async def test_list_tools_accepts_bare_array() -> None:
    gateway = FakeGateway()
    gateway.json(
        "GET",
        "/t/srv-1/filesystem/tools",
        [
            {
                "name": "fs_read_file",
                "description": "Read a file",
                "inputSchema": {
                    "type": "object",
                    "properties": {"path": {"type": "string"}},
                    "required": ["path"],
                },
            },
            {"name": "fs_list_directory"},
        ],
    )

    tools = await gateway.client().list_tools("srv-1", "filesystem", "token")

    assert [tool.name for tool in tools] == ["fs_read_file", "fs_list_directory"]
    assert tools[0].input_schema is not None
    assert tools[0].input_schema["required"] == ["path"]
    assert tools[1].description is None


@pytest.mark.asyncio
async def test_list_tools_rejects_enveloped_object() -> None:
    gateway = FakeGateway()
    gateway.json(
        "GET",
        "/t/srv-1/filesystem/tools",
        {"success": True, "tools": [{"name": "fs_read_file"}]},
    )

    with pytest.raises(MalformedResponseError):
        await gateway.client().list_tools("srv-1", "filesystem", "token")


@pytest.mark.asyncio
async def test_list_tools_unknown_service_is_not_found() -> None:
    gateway = FakeGateway()

    with pytest.raises(NotFoundError):
        await gateway.client().list_tools("srv-1", "missing", "token")


@pytest.mark.asyncio
async def test_list_tools_rejects_records_without_name() -> None:
    gateway = FakeGateway()
    gateway.json("GET", "/t/srv-1/filesystem/tools", [{"description": "nameless"}])

    with pytest.raises(MalformedResponseError):
        await gateway.client().list_tools("srv-1", "filesystem", "token")


@pytest.mark.asyncio
async def test_invoke_posts_tool_and_arguments() -> None:
    gateway = FakeGateway()
    gateway.json(
        "POST",
        "/t/srv-1/sheets/tools/call",
        {"success": True, "result": {"content": [{"type": "text", "text": '{"rows": 3}'}]}},
    )

    result = await gateway.client().invoke(
        "srv-1",
        "sheets",
        "sheet_read",
        {"range": "A1:B3"},
        "token",
    )

    assert result == InvocationSuccess(payload={"content": {"rows": 3}})
    assert gateway.last_json() == {"tool": "sheet_read", "arguments": {"range": "A1:B3"}}
    assert gateway.requests[-1].headers["Authorization"] == "Bearer token"


@pytest.mark.asyncio
async def test_invoke_error_body_message_then_error() -> None:
    gateway = FakeGateway()
    gateway.json(
        "POST",
        "/t/srv-1/filesystem/tools/call",
        {"message": "Path outside sandbox", "error": "E_PATH"},
        status_code=400,
    )
    gateway.json(
        "POST",
        "/t/srv-2/filesystem/tools/call",
        {"error": "Forbidden tool"},
        status_code=403,
    )
    client = gateway.client()

    first = await client.invoke("srv-1", "filesystem", "fs_read_file", {}, "token")
    second = await client.invoke("srv-2", "filesystem", "fs_read_file", {}, "token")

    assert first == InvocationFailure(
        message="Path outside sandbox",
        kind="backend_unavailable",
        status_code=400,
    )
    assert second == InvocationFailure(message="Forbidden tool", kind="auth_error", status_code=403)


@pytest.mark.asyncio
async def test_invoke_non_json_error_body_falls_back_to_status_text() -> None:
    gateway = FakeGateway()
    gateway.add("POST", "/t/srv-1/filesystem/tools/call", httpx.Response(502, text="bad gateway"))

    result = await gateway.client().invoke("srv-1", "filesystem", "fs_read_file", {}, "token")

    assert isinstance(result, InvocationFailure)
    assert result.message == "HTTP 502: Bad Gateway"
    assert result.status_code == 502


@pytest.mark.asyncio
async def test_invoke_unknown_server_is_not_found_failure() -> None:
    gateway = FakeGateway()

    result = await gateway.client().invoke("ghost", "filesystem", "fs_read_file", {}, "token")

    assert isinstance(result, InvocationFailure)
    assert result.kind == "not_found"
    assert result.message == "not found"


@pytest.mark.asyncio
async def test_invoke_success_false_is_failure() -> None:
    gateway = FakeGateway()
    gateway.json(
        "POST",
        "/t/srv-1/filesystem/tools/call",
        {"success": False, "error": "disk full"},
    )

    result = await gateway.client().invoke("srv-1", "filesystem", "fs_write_file", {}, "token")

    assert isinstance(result, InvocationFailure)
    assert result.message == "disk full"
    assert result.kind == "tool_error"


@pytest.mark.asyncio
async def test_invoke_without_credential_makes_no_request() -> None:
    gateway = FakeGateway()

    result = await gateway.client().invoke("srv-1", "filesystem", "fs_read_file", {}, "")

    assert result == InvocationFailure(message="Not authenticated", kind="unauthenticated")
    assert gateway.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "arguments",
    [
        {"when": datetime(2026, 1, 1, tzinfo=UTC)},
        {"tags": {"a", "b"}},
        {"path": Path("/tmp")},
        {"ratio": float("nan")},
    ],
)
async def test_invoke_unserializable_arguments_are_failures(arguments: dict[str, object]) -> None:
    gateway = FakeGateway()
    client = gateway.client()

    result = await client.invoke("srv-1", "filesystem", "fs_write_file", arguments, "token")
    listing = await client.list_directory("srv-1", "token", path=Path("/tmp"))  # type: ignore[arg-type]

    assert isinstance(result, InvocationFailure)
    assert result.kind == "malformed_response"
    assert result.message.startswith("Arguments are not JSON serializable")
    assert isinstance(listing, InvocationFailure)
    assert gateway.requests == []


@pytest.mark.asyncio
async def test_invoke_transport_error_is_failure() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    gateway = FakeGateway()
    gateway.add("POST", "/t/srv-1/filesystem/tools/call", refuse)

    result = await gateway.client().invoke("srv-1", "filesystem", "fs_read_file", {}, "token")

    assert result == InvocationFailure(message="connection refused", kind="backend_unavailable")


@pytest.mark.asyncio
async def test_invoke_non_json_success_body_is_malformed() -> None:
    gateway = FakeGateway()
    gateway.add("POST", "/t/srv-1/filesystem/tools/call", httpx.Response(200, text="ok"))

    result = await gateway.client().invoke("srv-1", "filesystem", "fs_read_file", {}, "token")

    assert isinstance(result, InvocationFailure)
    assert result.kind == "malformed_response"


@pytest.mark.asyncio
async def test_filesystem_helpers_fix_tool_name_and_arguments() -> None:
    gateway = FakeGateway()
    gateway.json("POST", "/t/srv-1/filesystem/tools/call", {"entries": []})
    client = gateway.client()

    await client.list_directory("srv-1", "token")
    assert gateway.last_json() == {"tool": "fs_list_directory", "arguments": {"path": "/"}}

    await client.read_file("srv-1", "token", "/notes.txt")
    assert gateway.last_json() == {"tool": "fs_read_file", "arguments": {"path": "/notes.txt"}}

    await client.get_file_info("srv-1", "token", "/notes.txt")
    assert gateway.last_json() == {
        "tool": "fs_get_file_info",
        "arguments": {"path": "/notes.txt"},
    }


@pytest.mark.asyncio
async def test_filesystem_helpers_use_configured_default_service() -> None:
    gateway = FakeGateway()
    gateway.json("POST", "/t/srv-1/files/tools/call", {"entries": []})

    result = await gateway.client(default_service="files").list_directory("srv-1", "token", "/tmp")

    assert result == InvocationSuccess(payload={"entries": []})
    assert gateway.requests[-1].url.path == "/t/srv-1/files/tools/call"


@pytest.mark.asyncio
async def test_invoke_with_identity_adds_user_email() -> None:
    gateway = FakeGateway()
    gateway.json("POST", "/t/srv-1/conversations/tools/call", {"content": [{"text": "[]"}]})
    client = gateway.client()

    result = await client.invoke_with_identity(
        "srv-1",
        "conversations",
        "conversation_list",
        {"limit": 20},
        "token",
        email="ada@example.com",
    )
    missing = await client.invoke_with_identity(
        "srv-1",
        "conversations",
        "conversation_list",
        {},
        "token",
        email=None,
    )

    assert result == InvocationSuccess(payload={"content": []})
    assert gateway.last_json()["arguments"] == {"limit": 20, "user_email": "ada@example.com"}
    assert isinstance(missing, InvocationFailure)
    assert len(gateway.requests) == 1


@pytest.mark.asyncio
async def test_ping_reports_status() -> None:
    gateway = FakeGateway()
    gateway.json("GET", "/t/up/ping", {"ok": True})
    gateway.json("GET", "/t/broken/ping", {}, status_code=500)
    client = gateway.client()

    assert await client.ping("up", "token") == (True, None)
    assert await client.ping("broken", "token") == (False, "HTTP 500")


def test_route_quotes_segments() -> None:
    client = FakeGateway().client()

    assert client.route("srv 1") == "http://gateway.test/t/srv%201/"
    assert client.route("srv", "a/b", "tools") == "http://gateway.test/t/srv/a%2Fb/tools"
