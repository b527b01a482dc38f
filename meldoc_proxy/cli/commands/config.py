"""Workspace configuration commands for the Meldoc CLI."""

import asyncio
import json
import sys

import click
from rich.console import Console

from meldoc_proxy.cli.config import get_config_store, get_credential_store, get_settings
from meldoc_proxy.cli.utils import (
    echo_error,
    echo_info,
    echo_success,
    echo_warning,
    print_table,
)
from meldoc_proxy.core.auth import TokenResolver
from meldoc_proxy.core.store import StoreError
from meldoc_proxy.core.workspace import WorkspaceResolver, WorkspaceSource
from meldoc_proxy.mcp_server.client import BackendClient, BackendError
from meldoc_proxy.mcp_server.config import Config

console = Console()


@click.group()
def config():
    """Choose which workspace requests go to.

    A ``meldoc.config.yml`` with ``workspaceAlias`` in the project
    directory (or any parent) takes precedence over the default set here.

    Examples:
        meldoc-mcp config list-workspaces         # Show available workspaces
        meldoc-mcp config set-workspace my-team   # Set the default workspace
        meldoc-mcp config get-workspace           # Show the workspace in use
    """
    pass


@config.command("set-workspace")
@click.argument("alias")
def set_workspace(alias):
    """Set the default workspace alias."""
    alias = alias.strip()
    if not alias:
        echo_error("Workspace alias cannot be empty")
        sys.exit(1)

    try:
        get_config_store().set_workspace_alias(alias)
    except StoreError as e:
        echo_error(f"Failed to set workspace: {e.message}")
        sys.exit(1)
    echo_success(f"Workspace alias set to: {alias}")


@config.command("get-workspace")
def get_workspace():
    """Show the workspace the next request would use."""
    resolution = WorkspaceResolver.create(get_config_store()).resolve()
    if resolution.source is WorkspaceSource.NOT_FOUND:
        echo_warning("No workspace set")
        echo_info("Run: meldoc-mcp config set-workspace <alias>")
        return

    source = (
        "project file" if resolution.source is WorkspaceSource.REPO else "global config"
    )
    echo_info(f"Current workspace: {resolution.alias} (from {source})")


def extract_workspaces(response: dict) -> list[dict]:
    """Workspace rows from a ``list_workspaces`` tool result."""
    result = response.get("result")
    if not isinstance(result, dict):
        return []
    if isinstance(result.get("workspaces"), list):
        return result["workspaces"]

    for block in result.get("content") or []:
        if block.get("type") != "text":
            continue
        try:
            payload = json.loads(block.get("text") or "")
        except ValueError:
            continue
        if isinstance(payload, dict) and isinstance(payload.get("workspaces"), list):
            return payload["workspaces"]
        if isinstance(payload, list):
            return payload
    return []


@config.command("list-workspaces")
def list_workspaces():
    """List the workspaces available to the current token."""
    settings = get_settings()

    async def fetch():
        resolver = TokenResolver.from_settings(settings, store=get_credential_store())
        token_info = await resolver.get_access_token()
        if token_info is None:
            return None
        client = BackendClient(Config(settings))
        return await client.call(
            {
                "jsonrpc": "2.0",
                "id": 1,
                "method": "tools/call",
                "params": {"name": "list_workspaces", "arguments": {}},
            },
            token_info.token,
        )

    try:
        response = asyncio.run(fetch())
    except BackendError as e:
        echo_error(e.message)
        sys.exit(1)

    if response is None:
        echo_error("Not authenticated. Run: meldoc-mcp auth login")
        sys.exit(1)
    if "error" in response:
        echo_error(response["error"].get("message", "Request failed"))
        sys.exit(1)

    workspaces = extract_workspaces(response)
    current = get_config_store().get_workspace_alias()
    rows = [
        {
            "alias": workspace.get("alias"),
            "name": workspace.get("name"),
            "role": workspace.get("role"),
            "default": "*" if current and workspace.get("alias") == current else "",
        }
        for workspace in workspaces
        if isinstance(workspace, dict)
    ]
    print_table(rows, title="Workspaces")
