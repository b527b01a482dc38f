"""Configuration for the MCP server."""

from meldoc_proxy import __version__
from meldoc_proxy.models.config import ProxySettings

MCP_PROTOCOL_VERSION = "2024-11-05"

# Default configuration
DEFAULT_CONFIG = {
    "mcp_server_name": "meldoc-mcp-proxy",
    "mcp_server_version": __version__,
    "protocol_version": MCP_PROTOCOL_VERSION,
    "rpc_path": "/mcp/v1/rpc",
}


class Config:
    """MCP server configuration."""

    def __init__(self, settings: ProxySettings | None = None, **overrides: str):
        """Initialize configuration from settings with optional overrides."""
        self.settings = settings or ProxySettings()
        self.api_url = self.settings.api_url
        self.request_timeout = self.settings.request_timeout
        self.log_level = self.settings.log_level
        self.mcp_server_name = overrides.get(
            "mcp_server_name", DEFAULT_CONFIG["mcp_server_name"]
        )
        self.mcp_server_version = overrides.get(
            "mcp_server_version", DEFAULT_CONFIG["mcp_server_version"]
        )
        self.protocol_version = overrides.get(
            "protocol_version", DEFAULT_CONFIG["protocol_version"]
        )
        self.rpc_path = overrides.get("rpc_path", DEFAULT_CONFIG["rpc_path"])

    @property
    def rpc_url(self) -> str:
        return f"{self.api_url}{self.rpc_path}"

    @property
    def user_agent(self) -> str:
        return f"{self.mcp_server_name}/{self.mcp_server_version}"

    def __repr__(self) -> str:
        return f"Config(api_url='{self.api_url}')"
