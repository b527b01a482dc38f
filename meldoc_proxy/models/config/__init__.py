"""Configuration models for Meldoc MCP Proxy."""

from meldoc_proxy.models.config.settings import *

__all__ = ["ProxySettings", "DEFAULT_API_URL", "DEFAULT_APP_URL"]
