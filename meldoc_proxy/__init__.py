"""
Meldoc MCP Proxy: stdio JSON-RPC bridge to the Meldoc documentation API.

A local process that speaks the Model Context Protocol over stdin/stdout and
forwards tool calls to the remote Meldoc API with the user's credentials and
workspace context attached.
"""

__version__ = "0.1.0"
