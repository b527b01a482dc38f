"""Main CLI entry point for the Meldoc MCP proxy."""

import click
from rich.console import Console

from meldoc_proxy.cli.commands.auth import auth
from meldoc_proxy.cli.commands.config import config
from meldoc_proxy.cli.commands.serve import serve
from meldoc_proxy.cli.config import get_settings
from meldoc_proxy.core.logging import setup_logging

console = Console()


@click.group(invoke_without_command=True)
@click.option("-v", "--version", is_flag=True, help="Show version information")
@click.pass_context
def cli(ctx, version):
    """Meldoc MCP - connect AI assistants to your Meldoc documentation.

    Examples:
        meldoc-mcp auth login                     # Log in through the browser
        meldoc-mcp config set-workspace my-team   # Pick the default workspace
        meldoc-mcp serve                          # Run the stdio proxy
    """
    if version:
        from meldoc_proxy import __version__

        console.print(f"Meldoc MCP proxy v{__version__}")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        ctx.exit()

    if ctx.invoked_subcommand != "serve":
        setup_logging(get_settings().log_level)


cli.add_command(auth)
cli.add_command(config)
cli.add_command(serve)


if __name__ == "__main__":
    cli()
