"""JSON-RPC error codes and recognition of the backend's special errors.

Only two backend signals are rewritten: authentication required and
workspace required. Every other backend error reaches the client unchanged.
"""

from typing import Any

from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
)

from meldoc_proxy.mcp_server.protocol import RequestId, make_error_response

# Implementation-defined range -32000..-32099
SERVER_ERROR = -32000
AUTH_REQUIRED = -32001
NOT_FOUND = -32002
RATE_LIMIT = -32003
WORKSPACE_REQUIRED = -32004

ERROR_NAMES = {
    PARSE_ERROR: "PARSE_ERROR",
    INVALID_REQUEST: "INVALID_REQUEST",
    METHOD_NOT_FOUND: "METHOD_NOT_FOUND",
    INVALID_PARAMS: "INVALID_PARAMS",
    INTERNAL_ERROR: "INTERNAL_ERROR",
    SERVER_ERROR: "SERVER_ERROR",
    AUTH_REQUIRED: "AUTH_REQUIRED",
    NOT_FOUND: "NOT_FOUND",
    RATE_LIMIT: "RATE_LIMIT",
    WORKSPACE_REQUIRED: "WORKSPACE_REQUIRED",
}

LOGIN_COMMAND = "meldoc-mcp auth login"
WORKSPACE_AGNOSTIC_TOOLS = frozenset({"list_workspaces"})

_WORKSPACE_MESSAGES = ("Multiple workspaces available", "Specify workspace")
_HTTP_WORKSPACE_MESSAGES = _WORKSPACE_MESSAGES + (
    "workspace selection",
    "workspace slug",
)


def error_name(code: Any) -> str:
    return ERROR_NAMES.get(code, "UNKNOWN_ERROR")


class ProxyError(Exception):
    """An error the proxy answers with itself."""

    def __init__(
        self,
        code: int,
        message: str,
        data: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.data = data or {}
        super().__init__(message)

    def to_response(self, request_id: RequestId) -> dict[str, Any]:
        return make_error_response(request_id, self.code, self.message, self.data)

    def __repr__(self) -> str:
        return f"ProxyError({error_name(self.code)}, {self.message!r})"


def _error_data(code: str, hint: str | None = None, **extra: Any) -> dict[str, Any]:
    data = {"code": code, **extra}
    if hint:
        data["hint"] = hint
    return data


def auth_required_error(message: str | None = None) -> ProxyError:
    return ProxyError(
        AUTH_REQUIRED,
        message or f"Authentication required. Run: {LOGIN_COMMAND}",
        _error_data(
            "AUTH_REQUIRED", "Use auth_login_instructions tool to get login command"
        ),
    )


def token_not_found_error() -> ProxyError:
    return auth_required_error(
        "Meldoc token not found. Set MELDOC_ACCESS_TOKEN environment variable "
        f"or run: {LOGIN_COMMAND}"
    )


def workspace_required_error(tool_name: str | None) -> ProxyError:
    """Workspace-required error; ``list_workspaces`` gets its own wording."""
    if tool_name in WORKSPACE_AGNOSTIC_TOOLS:
        return ProxyError(
            WORKSPACE_REQUIRED,
            f"Backend requires workspace selection even for {tool_name}. "
            "Please set a default workspace using set_workspace tool first, "
            "or contact support if this persists.",
            _error_data(
                "WORKSPACE_REQUIRED",
                "Try setting a default workspace first using set_workspace tool, "
                "or specify workspaceAlias/workspaceId in the tool call arguments.",
            ),
        )

    return ProxyError(
        WORKSPACE_REQUIRED,
        "Multiple workspaces available. Use list_workspaces tool to get list, "
        "then use set_workspace to set default workspace, or specify "
        "workspaceAlias or workspaceId parameter in tool call.",
        _error_data(
            "WORKSPACE_REQUIRED",
            "Use list_workspaces tool to get available workspaces, then use "
            "set_workspace to set default, or specify workspaceAlias or "
            "workspaceId in tool call.",
        ),
    )


def internal_error(message: str, code: str = "INTERNAL_ERROR") -> ProxyError:
    return ProxyError(INTERNAL_ERROR, message, _error_data(code))


def invalid_params_error(message: str) -> ProxyError:
    return ProxyError(INVALID_PARAMS, message, _error_data("INVALID_PARAMS"))


def _nested_codes(error: dict[str, Any]) -> list[Any]:
    codes = [error.get("code")]
    for key in ("data", "details"):
        nested = error.get(key)
        if isinstance(nested, dict):
            codes.append(nested.get("code"))
    return codes


def is_auth_required_error(error: Any) -> bool:
    if not isinstance(error, dict):
        return False
    return "AUTH_REQUIRED" in _nested_codes(error)


def is_workspace_required_error(error: Any, http_error: bool = False) -> bool:
    """Recognize the backend's "pick a workspace" signal.

    Inside a JSON-RPC body the message is only trusted on a server error;
    HTTP error bodies are matched on the message alone.
    """
    if not isinstance(error, dict):
        return False
    if "WORKSPACE_REQUIRED" in _nested_codes(error):
        return True

    message = str(error.get("message") or "")
    if http_error:
        return any(phrase in message for phrase in _HTTP_WORKSPACE_MESSAGES)
    return error.get("code") == SERVER_ERROR and any(
        phrase in message for phrase in _WORKSPACE_MESSAGES
    )


def remap_backend_error(
    error: Any, tool_name: str | None, http_error: bool = False
) -> ProxyError | None:
    """The proxy's own error for a recognized backend error, else None."""
    if is_workspace_required_error(error, http_error=http_error):
        return workspace_required_error(tool_name)
    if is_auth_required_error(error):
        return auth_required_error()
    return None


__all__ = [
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
    "SERVER_ERROR",
    "AUTH_REQUIRED",
    "NOT_FOUND",
    "RATE_LIMIT",
    "WORKSPACE_REQUIRED",
    "LOGIN_COMMAND",
    "WORKSPACE_AGNOSTIC_TOOLS",
    "error_name",
    "ProxyError",
    "auth_required_error",
    "token_not_found_error",
    "workspace_required_error",
    "internal_error",
    "invalid_params_error",
    "is_auth_required_error",
    "is_workspace_required_error",
    "remap_backend_error",
]
