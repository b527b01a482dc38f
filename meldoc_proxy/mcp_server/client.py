"""HTTP client for the Meldoc JSON-RPC endpoint."""

import logging
from typing import Any

import httpx

from meldoc_proxy.mcp_server.config import Config
from meldoc_proxy.mcp_server.errors import (
    AUTH_REQUIRED,
    NOT_FOUND,
    RATE_LIMIT,
    SERVER_ERROR,
    remap_backend_error,
)
from meldoc_proxy.mcp_server.protocol import JSONRPC_VERSION, make_error_response

logger = logging.getLogger(__name__)

WORKSPACE_HEADER = "X-Workspace-Alias"

_STATUS_ERROR_CODES = {
    401: AUTH_REQUIRED,
    404: NOT_FOUND,
    429: RATE_LIMIT,
}


class BackendError(Exception):
    """The backend could not be reached or did not answer in time."""

    def __init__(self, message: str, code: str = "NETWORK_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


def tool_name_of(request: dict[str, Any]) -> str | None:
    params = request.get("params")
    if isinstance(params, dict) and isinstance(params.get("name"), str):
        return params["name"]
    return None


def _backfill(body: dict[str, Any], request: dict[str, Any]) -> dict[str, Any]:
    """Fill in jsonrpc and pin the id to the one the client sent."""
    body.setdefault("jsonrpc", JSONRPC_VERSION)
    if request.get("id") is not None:
        body["id"] = request["id"]
    return body


def _error_message(body: dict[str, Any], error: dict[str, Any], response: httpx.Response) -> str:
    for candidate in (error.get("message"), body.get("message"), body.get("detail")):
        if isinstance(candidate, str) and candidate:
            return candidate
    return f"HTTP {response.status_code}: {response.reason_phrase}"


def normalize_response(
    response: httpx.Response, request: dict[str, Any]
) -> dict[str, Any]:
    """Turn an HTTP response into the JSON-RPC message for the client."""
    request_id = request.get("id")
    tool_name = tool_name_of(request)

    try:
        body = response.json()
    except ValueError:
        body = None

    if response.is_success:
        if not isinstance(body, dict):
            return make_error_response(
                request_id,
                SERVER_ERROR,
                "Invalid JSON-RPC response from backend",
                {"code": "INVALID_RESPONSE", "status": response.status_code},
            )

        body = _backfill(body, request)
        error = body.get("error")
        if error is not None:
            logger.debug(
                f"Backend error for {tool_name or request.get('method')}: {error}"
            )
            remapped = remap_backend_error(error, tool_name)
            if remapped is not None:
                return remapped.to_response(request_id)
        return body

    logger.debug(f"Backend returned HTTP {response.status_code}")
    body = body if isinstance(body, dict) else {}
    error = body.get("error") if isinstance(body.get("error"), dict) else body

    remapped = remap_backend_error(error, tool_name, http_error=True)
    if remapped is not None:
        return remapped.to_response(request_id)

    if body.get("jsonrpc") and isinstance(body.get("error"), dict):
        return _backfill(body, request)

    status = response.status_code
    data: dict[str, Any] = {
        "status": status,
        "code": error.get("code") or f"HTTP_{status}",
    }
    details = body.get("details")
    if details:
        data["details"] = details
    return make_error_response(
        request_id,
        _STATUS_ERROR_CODES.get(status, SERVER_ERROR),
        _error_message(body, error, response),
        data,
    )


class BackendClient:
    """Forwards JSON-RPC requests to the Meldoc API.

    No retries: whether an operation is safe to repeat is the backend's call.
    """

    def __init__(
        self,
        config: Config,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client with configuration."""
        self.config = config
        self.transport = transport

    def build_headers(self, token: str, workspace_alias: str | None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "User-Agent": self.config.user_agent,
        }
        if workspace_alias:
            headers[WORKSPACE_HEADER] = workspace_alias
        return headers

    async def post(
        self, request: dict[str, Any], token: str, workspace_alias: str | None = None
    ) -> httpx.Response:
        """POST the request as-is (plus ``jsonrpc``) to the RPC endpoint."""
        url = self.config.rpc_url
        payload = {**request, "jsonrpc": JSONRPC_VERSION}
        logger.debug(
            f"Forwarding {request.get('method')} to {url}"
            + (f" (workspace {workspace_alias})" if workspace_alias else "")
        )

        try:
            async with httpx.AsyncClient(
                timeout=self.config.request_timeout, transport=self.transport
            ) as client:
                return await client.post(
                    url,
                    json=payload,
                    headers=self.build_headers(token, workspace_alias),
                )
        except httpx.TimeoutException as e:
            timeout_ms = int(self.config.request_timeout * 1000)
            logger.warning(f"Request timeout after {timeout_ms}ms: {url}")
            raise BackendError(f"Request timeout after {timeout_ms}ms", "TIMEOUT") from e
        except httpx.HTTPError as e:
            detail = str(e) or "No response from server"
            logger.error(f"Network error calling {url}: {detail}")
            raise BackendError(f"Network error: {detail}", "NETWORK_ERROR") from e

    async def call(
        self, request: dict[str, Any], token: str, workspace_alias: str | None = None
    ) -> dict[str, Any]:
        """Forward a request and return the response message for the client.

        Raises:
            BackendError: On timeout or when no response was received.
        """
        response = await self.post(request, token, workspace_alias)
        return normalize_response(response, request)


__all__ = [
    "WORKSPACE_HEADER",
    "BackendError",
    "BackendClient",
    "normalize_response",
    "tool_name_of",
]
