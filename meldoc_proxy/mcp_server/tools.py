"""Tool catalog and the tools answered without calling the API."""

import json
import logging
from typing import Any

import mcp.types as types

from meldoc_proxy.core.auth import TokenResolver
from meldoc_proxy.core.store import GlobalConfigStore, StoreError
from meldoc_proxy.core.workspace import (
    PROJECT_CONFIG_FILENAME,
    WorkspaceResolver,
    WorkspaceSource,
)
from meldoc_proxy.mcp_server.errors import (
    LOGIN_COMMAND,
    internal_error,
    invalid_params_error,
)

logger = logging.getLogger(__name__)

_WORKSPACE_PROPERTIES = {
    "workspaceAlias": {
        "type": "string",
        "description": "Workspace alias (auto-selected if user has only one workspace)",
    },
    "workspaceId": {
        "type": "string",
        "description": "Workspace UUID (auto-selected if user has only one workspace)",
    },
}


def _schema(
    properties: dict[str, Any] | None = None,
    required: list[str] | None = None,
    workspace: bool = True,
) -> dict[str, Any]:
    schema: dict[str, Any] = {
        "type": "object",
        "properties": {**(_WORKSPACE_PROPERTIES if workspace else {}), **(properties or {})},
    }
    if required:
        schema["required"] = required
    return schema


def get_tools_list() -> list[types.Tool]:
    """Every tool the proxy advertises, local and remote."""
    return [
        # Document tools (proxied)
        types.Tool(
            name="docs_list",
            description="List documents in workspace/project. For public tokens, only shows published public documents.",
            inputSchema=_schema(
                {
                    "projectId": {
                        "type": "string",
                        "description": "UUID of the project to list documents from",
                    },
                    "cursor": {"type": "string", "description": "Pagination cursor"},
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of documents to return (default: 50, max: 100)",
                    },
                }
            ),
        ),
        types.Tool(
            name="docs_get",
            description="Get a specific document by ID or path. For public tokens, allows access to public and unlisted documents.",
            inputSchema=_schema(
                {
                    "docId": {
                        "type": "string",
                        "description": "UUID of the document (alias: id)",
                    },
                    "id": {
                        "type": "string",
                        "description": "UUID of the document (alias for docId)",
                    },
                    "path": {"type": "string", "description": "Path of the document"},
                },
                required=["docId"],
            ),
        ),
        types.Tool(
            name="docs_tree",
            description="Get the document tree structure for a project. For public tokens, only includes published public documents.",
            inputSchema=_schema(
                {
                    "projectId": {"type": "string", "description": "UUID of the project"},
                    "project_alias": {
                        "type": "string",
                        "description": "Alias of the project (alternative to projectId)",
                    },
                },
                required=["projectId"],
            ),
        ),
        types.Tool(
            name="docs_search",
            description="Search documents by text query. For public tokens, only searches published public documents.",
            inputSchema=_schema(
                {
                    "query": {"type": "string", "description": "Search query text"},
                    "projectId": {
                        "type": "string",
                        "description": "UUID of the project to search in",
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of results (default: 20, max: 50)",
                    },
                },
                required=["query"],
            ),
        ),
        types.Tool(
            name="docs_update",
            description="Update a document's content and/or metadata. Requires update permission (internal tokens only).",
            inputSchema=_schema(
                {
                    "docId": {
                        "type": "string",
                        "description": "UUID of the document to update",
                    },
                    "contentMd": {
                        "type": "string",
                        "description": "New markdown content for the document (optional, can update individual fields without content)",
                    },
                    "title": {"type": "string", "description": "New title for the document"},
                    "alias": {"type": "string", "description": "New alias for the document"},
                    "parentAlias": {
                        "type": "string",
                        "description": "Alias of the parent document (set to empty string to remove parent)",
                    },
                    "workflow": {
                        "type": "string",
                        "enum": ["published", "draft"],
                        "description": "Workflow status: 'published' or 'draft'",
                    },
                    "visibility": {
                        "type": "string",
                        "enum": ["visible", "hidden"],
                        "description": "Visibility: 'visible' or 'hidden'",
                    },
                    "exposure": {
                        "type": "string",
                        "enum": ["private", "unlisted", "public", "inherit"],
                        "description": "Exposure level: 'private', 'unlisted', 'public', or 'inherit'",
                    },
                    "expectedUpdatedAt": {
                        "type": "string",
                        "description": "Expected updatedAt timestamp for optimistic locking (RFC3339 format)",
                    },
                },
                required=["docId"],
            ),
        ),
        types.Tool(
            name="docs_create",
            description="Create a new document. Requires create permission (internal tokens only).",
            inputSchema=_schema(
                {
                    "projectId": {
                        "type": "string",
                        "description": "UUID of the project to create the document in",
                    },
                    "title": {"type": "string", "description": "Title of the document"},
                    "contentMd": {
                        "type": "string",
                        "description": "Markdown content for the document",
                    },
                    "alias": {
                        "type": "string",
                        "description": "Alias for the document (will be auto-generated from title if not provided)",
                    },
                    "parentAlias": {
                        "type": "string",
                        "description": "Alias of the parent document",
                    },
                },
                required=["projectId", "title", "contentMd"],
            ),
        ),
        types.Tool(
            name="docs_delete",
            description="Delete a document. Requires delete permission (internal tokens only).",
            inputSchema=_schema(
                {
                    "docId": {
                        "type": "string",
                        "description": "UUID of the document to delete",
                    }
                },
                required=["docId"],
            ),
        ),
        types.Tool(
            name="docs_links",
            description="Get all outgoing links from a document (links that point from this document to other documents).",
            inputSchema=_schema(
                {"docId": {"type": "string", "description": "UUID of the document"}},
                required=["docId"],
            ),
        ),
        types.Tool(
            name="docs_backlinks",
            description="Get all backlinks to a document (links from other documents that point to this document).",
            inputSchema=_schema(
                {"docId": {"type": "string", "description": "UUID of the document"}},
                required=["docId"],
            ),
        ),
        types.Tool(
            name="projects_list",
            description="List projects accessible by this token. For public tokens, only shows public projects.",
            inputSchema=_schema(),
        ),
        types.Tool(
            name="server_info",
            description="Get information about this MCP server's configuration, capabilities, and accessible projects.",
            inputSchema=_schema(),
        ),
        types.Tool(
            name="list_workspaces",
            description="List all workspaces accessible by the current user or integration token. For integration tokens, returns the workspace from token scope. Works without a workspace selected.",
            inputSchema=_schema(workspace=False),
        ),
        # Local tools
        types.Tool(
            name="get_workspace",
            description="Get the workspace alias the next request will use, from the project config (meldoc.config.yml) or the global config.",
            inputSchema=_schema(workspace=False),
        ),
        types.Tool(
            name="set_workspace",
            description="Set the default workspace alias in the global config (~/.meldoc/config.json). Used automatically when the user has multiple workspaces.",
            inputSchema=_schema(
                {"alias": {"type": "string", "description": "Workspace alias to set"}},
                required=["alias"],
                workspace=False,
            ),
        ),
        types.Tool(
            name="auth_status",
            description="Check authentication status. Returns whether user is logged in and authentication details.",
            inputSchema=_schema(workspace=False),
        ),
        types.Tool(
            name="auth_login_instructions",
            description="Get instructions for logging in. Returns the command to run for authentication.",
            inputSchema=_schema(workspace=False),
        ),
    ]


def tool_catalog() -> list[dict[str, Any]]:
    """The catalog as JSON-ready dicts for ``tools/list``."""
    return [
        tool.model_dump(by_alias=True, exclude_none=True) for tool in get_tools_list()
    ]


def text_result(text: str) -> dict[str, Any]:
    """MCP tool result with a single text block."""
    result = types.CallToolResult(content=[types.TextContent(type="text", text=text)])
    return result.model_dump(by_alias=True, exclude_none=True)


def json_result(payload: dict[str, Any]) -> dict[str, Any]:
    return text_result(json.dumps(payload, indent=2, ensure_ascii=False))


class LocalTools:
    """Tools answered entirely by the proxy."""

    NAMES = frozenset(
        {"set_workspace", "get_workspace", "auth_status", "auth_login_instructions"}
    )

    def __init__(
        self,
        token_resolver: TokenResolver,
        workspace_resolver: WorkspaceResolver,
        config_store: GlobalConfigStore,
    ):
        self.token_resolver = token_resolver
        self.workspace_resolver = workspace_resolver
        self.config_store = config_store

    def handles(self, name: Any) -> bool:
        return name in self.NAMES

    async def call(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Run a local tool.

        Raises:
            ProxyError: For invalid arguments or when the tool fails.
        """
        logger.debug(f"Local tool call: {name}")
        if name == "set_workspace":
            return self.set_workspace(arguments)
        if name == "get_workspace":
            return self.get_workspace()
        if name == "auth_status":
            return await self.auth_status()
        if name == "auth_login_instructions":
            return self.auth_login_instructions()
        raise internal_error(f"Unknown local tool '{name}'")

    def set_workspace(self, arguments: dict[str, Any]) -> dict[str, Any]:
        alias = arguments.get("alias")
        if not isinstance(alias, str) or not alias.strip():
            raise invalid_params_error("alias parameter is required and must be a string")

        alias = alias.strip()
        try:
            self.config_store.set_workspace_alias(alias)
        except StoreError as e:
            raise internal_error(f"Failed to set workspace alias: {e.message}") from e
        return text_result(f"Workspace alias set to: {alias}")

    def get_workspace(self) -> dict[str, Any]:
        resolution = self.workspace_resolver.resolve()
        if resolution.source is WorkspaceSource.REPO:
            message = f"Current workspace: {resolution.alias} (from {PROJECT_CONFIG_FILENAME})"
        elif resolution.alias:
            message = f"Current workspace: {resolution.alias}"
        else:
            message = "No workspace set in config"
        return json_result(
            {
                "workspaceAlias": resolution.alias,
                "source": resolution.source.value,
                "message": message,
            }
        )

    async def auth_status(self) -> dict[str, Any]:
        status = await self.token_resolver.get_auth_status()
        if not status.authenticated:
            status.message = f"Not authenticated. Run: {LOGIN_COMMAND}"
        return json_result(status.to_payload())

    def auth_login_instructions(self) -> dict[str, Any]:
        return text_result(
            "To authenticate, run the following command:\n\n"
            f"```bash\n{LOGIN_COMMAND}\n```"
        )


__all__ = [
    "get_tools_list",
    "tool_catalog",
    "text_result",
    "json_result",
    "LocalTools",
]
