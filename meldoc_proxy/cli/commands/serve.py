"""Run the stdio proxy from the CLI."""

import click

from meldoc_proxy.mcp_server.main import cli_main


@click.command()
def serve():
    """Run the MCP proxy on stdin/stdout.

    Point your MCP client at ``meldoc-mcp serve`` (or ``meldoc-mcp-proxy``).
    """
    cli_main()
