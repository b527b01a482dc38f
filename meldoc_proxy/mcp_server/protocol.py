"""JSON-RPC 2.0 message helpers and the stdout response writer."""

import json
import logging
import sys
from typing import Any, BinaryIO

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"

RequestId = str | int

_DECODER = json.JSONDecoder(strict=False)
_WHITESPACE = " \t\r\n"


class OutputClosedError(Exception):
    """stdout is gone (client disconnected)."""


def is_notification(message: dict[str, Any]) -> bool:
    """A message whose id is absent or null."""
    return message.get("id") is None


def validate_request(message: Any) -> str | None:
    """Return a reason if ``message`` is not a valid request/notification."""
    if not isinstance(message, dict):
        return "Request must be an object"

    # Some MCP clients omit jsonrpc, so only a wrong value is rejected
    if "jsonrpc" in message and message["jsonrpc"] != JSONRPC_VERSION:
        return 'jsonrpc must be "2.0"'

    method = message.get("method")
    if method is None:
        if not is_notification(message):
            return "Request must have a method"
    elif not isinstance(method, str) or not method:
        return "method must be a non-empty string"

    return None


def _skip_whitespace(raw: str, pos: int) -> int:
    while pos < len(raw) and raw[pos] in _WHITESPACE:
        pos += 1
    return pos


def _read_id_value(raw: str, pos: int) -> RequestId | None:
    """Decode the id value at ``pos`` if it is complete and well-formed."""
    pos = _skip_whitespace(raw, pos)
    try:
        value, end = _DECODER.raw_decode(raw, pos)
    except json.JSONDecodeError:
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return None

    end = _skip_whitespace(raw, end)
    if end < len(raw) and raw[end] not in ",}":
        return None
    return value


def salvage_id(raw: str) -> RequestId | None:
    """Best-effort recovery of the id from a line that is not valid JSON.

    Only an ``"id"`` member of the outermost object counts; ids inside
    params are skipped. Returns None when the id is missing, malformed or
    appears more than once at the top level.
    """
    containers: list[str] = []
    candidates: list[RequestId | None] = []
    pos = 0
    while pos < len(raw):
        char = raw[pos]
        if char == '"':
            try:
                text, end = _DECODER.raw_decode(raw, pos)
            except json.JSONDecodeError:
                # Unterminated string
                break
            if containers == ["{"] and text == "id":
                after_key = _skip_whitespace(raw, end)
                if after_key < len(raw) and raw[after_key] == ":":
                    candidates.append(_read_id_value(raw, after_key + 1))
            pos = end
            continue
        if char in "{[":
            containers.append(char)
        elif char in "}]":
            if not containers:
                break
            containers.pop()
        pos += 1

    if len(candidates) != 1:
        return None
    return candidates[0]


def make_response(request_id: RequestId, result: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def make_error_response(
    request_id: RequestId,
    code: int,
    message: str,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if data:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}


class ResponseWriter:
    """Writes one JSON-RPC message per line to stdout.

    Messages without an id are never written: clients reject ``"id": null``.
    """

    def __init__(self, stream: BinaryIO | None = None):
        self.stream = stream if stream is not None else sys.stdout.buffer

    def write(self, message: dict[str, Any]) -> bool:
        """Write ``message``; returns False if it was skipped."""
        if message.get("id") is None:
            logger.debug("Not writing a response without id")
            return False

        line = json.dumps(message, ensure_ascii=False, separators=(",", ":")) + "\n"
        try:
            self.stream.write(line.encode("utf-8"))
            self.stream.flush()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise OutputClosedError("stdout closed") from e
        except ValueError as e:
            # Writing to a closed file object
            raise OutputClosedError(str(e)) from e
        return True


__all__ = [
    "JSONRPC_VERSION",
    "RequestId",
    "OutputClosedError",
    "is_notification",
    "validate_request",
    "salvage_id",
    "make_response",
    "make_error_response",
    "ResponseWriter",
]
