"""MCP protocol methods the proxy answers itself."""

from typing import Any

from meldoc_proxy.mcp_server.config import Config
from meldoc_proxy.mcp_server.tools import tool_catalog

LIFECYCLE_NOTIFICATIONS = frozenset(
    {"initialized", "notifications/initialized", "notifications/cancelled"}
)


class ProtocolHandlers:
    """``initialize``, ``ping``, ``resources/list``, ``tools/list`` and lifecycle."""

    def __init__(self, config: Config):
        self.config = config

    def handles(self, method: str) -> bool:
        return method in self._methods() or method in LIFECYCLE_NOTIFICATIONS

    def _methods(self) -> dict[str, Any]:
        return {
            "initialize": self.initialize,
            "ping": self.ping,
            "resources/list": self.list_resources,
            "tools/list": self.list_tools,
        }

    def handle(self, method: str) -> dict[str, Any]:
        """Result for ``method``; lifecycle notifications get an empty result."""
        handler = self._methods().get(method)
        if handler is None:
            return {}
        return handler()

    def initialize(self) -> dict[str, Any]:
        return {
            "protocolVersion": self.config.protocol_version,
            "capabilities": {"tools": {}},
            "serverInfo": {
                "name": self.config.mcp_server_name,
                "version": self.config.mcp_server_version,
            },
        }

    def ping(self) -> dict[str, Any]:
        return {}

    def list_resources(self) -> dict[str, Any]:
        return {"resources": []}

    def list_tools(self) -> dict[str, Any]:
        return {"tools": tool_catalog()}


__all__ = ["LIFECYCLE_NOTIFICATIONS", "ProtocolHandlers"]
