"""Command-line interface for the Meldoc MCP proxy."""

from meldoc_proxy import __version__

__all__ = ["__version__"]
