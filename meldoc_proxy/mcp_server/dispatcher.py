"""Routes each incoming JSON-RPC message to a local handler or the backend."""

import json
import logging
from typing import Any

import httpx

from meldoc_proxy.core.auth import TokenResolver
from meldoc_proxy.core.store import CredentialStore, GlobalConfigStore
from meldoc_proxy.core.workspace import WorkspaceResolver
from meldoc_proxy.mcp_server.client import BackendClient, BackendError
from meldoc_proxy.mcp_server.config import Config
from meldoc_proxy.mcp_server.errors import (
    INVALID_REQUEST,
    PARSE_ERROR,
    WORKSPACE_AGNOSTIC_TOOLS,
    ProxyError,
    internal_error,
    token_not_found_error,
)
from meldoc_proxy.mcp_server.handlers import ProtocolHandlers
from meldoc_proxy.mcp_server.protocol import (
    make_error_response,
    make_response,
    salvage_id,
    validate_request,
)
from meldoc_proxy.mcp_server.tools import LocalTools

logger = logging.getLogger(__name__)


def tool_arguments(params: Any) -> dict[str, Any] | None:
    """Tool arguments from ``params.arguments`` (or the older ``params.args``)."""
    if not isinstance(params, dict):
        return None
    for key in ("arguments", "args"):
        arguments = params.get(key)
        if isinstance(arguments, dict):
            return arguments
    return None


class Dispatcher:
    """One instance per process; safe to share between concurrent lines."""

    def __init__(
        self,
        config: Config,
        token_resolver: TokenResolver,
        workspace_resolver: WorkspaceResolver,
        backend_client: BackendClient,
        local_tools: LocalTools,
    ):
        self.config = config
        self.token_resolver = token_resolver
        self.workspace_resolver = workspace_resolver
        self.backend_client = backend_client
        self.local_tools = local_tools
        self.handlers = ProtocolHandlers(config)

    @classmethod
    def create(
        cls,
        config: Config,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "Dispatcher":
        """Wire the stores and resolvers from the settings in ``config``."""
        settings = config.settings
        credential_store = CredentialStore(settings.credentials_path)
        config_store = GlobalConfigStore(settings.global_config_path)
        token_resolver = TokenResolver.from_settings(
            settings, store=credential_store, transport=transport
        )
        workspace_resolver = WorkspaceResolver.create(config_store)
        return cls(
            config,
            token_resolver,
            workspace_resolver,
            BackendClient(config, transport=transport),
            LocalTools(token_resolver, workspace_resolver, config_store),
        )

    async def handle_line(self, line: str | bytes) -> list[dict[str, Any]]:
        """Handle one input line; returns the responses to write, in order."""
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        line = line.strip()
        if not line:
            return []

        try:
            message = json.loads(line)
        except ValueError as e:
            request_id = salvage_id(line)
            logger.error(f"Failed to parse JSON-RPC message: {e}")
            if request_id is None:
                return []
            return [
                make_error_response(
                    request_id, PARSE_ERROR, "Parse error", {"code": "PARSE_ERROR"}
                )
            ]

        if isinstance(message, list):
            return await self.handle_batch(message)

        response = await self.dispatch(message)
        return [response] if response is not None else []

    async def handle_batch(self, messages: list[Any]) -> list[dict[str, Any]]:
        if not messages:
            logger.warning("Dropping empty batch")
            return []

        responses = []
        for member in messages:
            if not isinstance(member, dict):
                logger.warning("Dropping batch member that is not an object")
                continue
            response = await self.dispatch(member)
            if response is not None:
                responses.append(response)
        return responses

    async def dispatch(self, message: Any) -> dict[str, Any] | None:
        """Handle a single message; None when nothing must be written."""
        request_id = message.get("id") if isinstance(message, dict) else None

        reason = validate_request(message)
        if reason is not None:
            logger.warning(f"Invalid request: {reason}")
            if request_id is None:
                return None
            return make_error_response(
                request_id, INVALID_REQUEST, reason, {"code": "INVALID_REQUEST"}
            )

        method = message.get("method")
        if method is None:
            logger.debug("Ignoring notification without method")
            return None

        try:
            response = await self.route(message)
        except ProxyError as e:
            response = e.to_response(request_id)
        except Exception as e:
            logger.exception(f"Unhandled error while handling {method}")
            response = internal_error(str(e) or "Internal error").to_response(
                request_id
            )

        if request_id is None:
            return None
        return response

    async def route(self, message: dict[str, Any]) -> dict[str, Any]:
        method = message["method"]
        request_id = message.get("id")

        if self.handlers.handles(method):
            return make_response(request_id, self.handlers.handle(method))

        if method == "tools/call":
            params = message.get("params")
            name = params.get("name") if isinstance(params, dict) else None
            if self.local_tools.handles(name):
                result = await self.local_tools.call(name, tool_arguments(params) or {})
                return make_response(request_id, result)
            return await self.proxy(message, name)

        return await self.proxy(message)

    async def proxy(
        self, message: dict[str, Any], tool_name: str | None = None
    ) -> dict[str, Any]:
        """Forward to the backend with the resolved token and workspace."""
        token_info = await self.token_resolver.get_access_token()
        if token_info is None:
            raise token_not_found_error()

        workspace_alias = None
        if tool_name not in WORKSPACE_AGNOSTIC_TOOLS:
            workspace_alias = self.workspace_resolver.resolve_alias(
                tool_arguments(message.get("params"))
            )

        try:
            return await self.backend_client.call(
                message, token_info.token, workspace_alias
            )
        except BackendError as e:
            raise internal_error(e.message, e.code) from e


__all__ = ["Dispatcher", "tool_arguments"]
