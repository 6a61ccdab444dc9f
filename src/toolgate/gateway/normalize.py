"""Normalization of tool-call responses returned through the gateway.

The gateway sometimes wraps a server's native reply in ``{success, result}``
and sometimes passes it straight through, and servers return results either
as plain objects or as a single ``content[0].text`` block that may hold JSON
or prose. The body is classified into a closed set of shapes and each shape
is handled in a fixed order.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Literal

from toolgate.gateway.errors import ErrorKind

type JSONValue = None | bool | int | float | str | list[JSONValue] | dict[str, JSONValue]
type JSONObject = dict[str, JSONValue]

PROSE_MARKERS: tuple[str, ...] = (
    "File downloaded:",
    "File uploaded successfully",
    "successfully",
)


@dataclass(slots=True, frozen=True)
class InvocationSuccess:
    """Normalized payload of a successful tool call."""

    payload: JSONValue
    ok: Literal[True] = True


@dataclass(slots=True, frozen=True)
class InvocationFailure:
    """Human-readable failure of a tool call."""

    message: str
    kind: ErrorKind = "backend_unavailable"
    status_code: int | None = None
    ok: Literal[False] = False


type InvocationResult = InvocationSuccess | InvocationFailure


@dataclass(slots=True, frozen=True)
class EnvelopedResult:
    """Gateway wrapper whose ``result`` holds the server reply."""

    envelope: JSONObject
    result: JSONValue


@dataclass(slots=True, frozen=True)
class DirectObject:
    """Payload with no recognizable text block."""

    payload: JSONValue


@dataclass(slots=True, frozen=True)
class ContentTextBlock:
    """Payload whose first content item carries a ``text`` string."""

    payload: JSONObject
    text: str


type BodyShape = EnvelopedResult | DirectObject
type PayloadShape = ContentTextBlock | DirectObject


def classify_body(body: JSONValue) -> BodyShape:
    """Detect one level of gateway envelope."""
    if isinstance(body, dict):
        result = body.get("result")
        if result:
            return EnvelopedResult(envelope=body, result=result)
    return DirectObject(payload=body)


def classify_payload(payload: JSONValue) -> PayloadShape:
    """Detect the single-text-block encoding inside an effective payload."""
    if isinstance(payload, dict):
        content = payload.get("content")
        if isinstance(content, list) and content:
            first = content[0]
            if isinstance(first, dict):
                text = first.get("text")
                if isinstance(text, str) and text:
                    return ContentTextBlock(payload=payload, text=text)
    return DirectObject(payload=payload)


def is_prose(text: str) -> bool:
    return any(marker in text for marker in PROSE_MARKERS)


def body_failure(body: JSONValue) -> InvocationFailure | None:
    """Return a failure when a 2xx body reports ``success: false`` with an error."""
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if body.get("success") or not error:
        return None
    message = error if isinstance(error, str) else json.dumps(error)
    return InvocationFailure(message=message, kind="tool_error")


def error_message(body: JSONValue) -> str | None:
    """Extract ``message`` then ``error`` from a non-2xx JSON body."""
    if not isinstance(body, dict):
        return None
    for field in ("message", "error"):
        value = body.get(field)
        if isinstance(value, str) and value:
            return value
    return None


def normalize_body(body: JSONValue) -> InvocationResult:
    """Normalize a parsed 2xx tool-call body."""
    failure = body_failure(body)
    if failure is not None:
        return failure

    match classify_body(body):
        case EnvelopedResult(result=result):
            effective = result
        case DirectObject(payload=payload):
            effective = payload

    match classify_payload(effective):
        case ContentTextBlock(payload=payload, text=text) if is_prose(text):
            return InvocationSuccess(payload=payload)
        case ContentTextBlock(payload=payload, text=text):
            try:
                parsed = json.loads(text)
            except ValueError:
                return InvocationSuccess(payload=payload)
            return InvocationSuccess(payload={"content": parsed})
        case DirectObject(payload=payload):
            return InvocationSuccess(payload=payload)
