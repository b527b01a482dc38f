"""Data models for Meldoc MCP Proxy."""
