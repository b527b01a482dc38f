"""MCP stdio proxy for the Meldoc documentation API.

Reads JSON-RPC messages from stdin, answers protocol methods and local tools
itself, and forwards everything else to the Meldoc API over HTTP.
"""
