"""
Unit tests for message routing.
"""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from meldoc_proxy.core.auth import TokenResolver
from meldoc_proxy.core.store import GlobalConfigStore
from meldoc_proxy.core.workspace import WorkspaceResolver
from meldoc_proxy.mcp_server.client import WORKSPACE_HEADER, BackendClient
from meldoc_proxy.mcp_server.config import Config
from meldoc_proxy.mcp_server.dispatcher import Dispatcher, tool_arguments
from meldoc_proxy.mcp_server.errors import (
    AUTH_REQUIRED,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    PARSE_ERROR,
)
from meldoc_proxy.mcp_server.tools import LocalTools
from meldoc_proxy.models.config import ProxySettings


def line(message) -> bytes:
    return (json.dumps(message) + "\n").encode("utf-8")


def tool_call(request_id, name, arguments=None, key="arguments"):
    message = {
        "jsonrpc": "2.0",
        "method": "tools/call",
        "params": {"name": name, key: arguments or {}},
    }
    if request_id is not None:
        message["id"] = request_id
    return message


class TestDispatcher:
    """Test routing against a mocked backend."""

    def setup_method(self):
        self.requests: list[httpx.Request] = []
        self.backend_status = 200

    def backend(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = json.loads(request.content)
        return httpx.Response(
            self.backend_status,
            json={"jsonrpc": "2.0", "id": body.get("id"), "result": {"echo": body}},
        )

    def make_dispatcher(self, tmp_path, access_token="tok-1", handler=None):
        project = tmp_path / "project"
        project.mkdir(exist_ok=True)
        self.project = project

        settings = ProxySettings(
            api_url="https://api.test.meldoc.io",
            config_dir=tmp_path / ".meldoc",
            access_token=access_token,
        )
        config = Config(settings)
        transport = httpx.MockTransport(handler or self.backend)
        self.config_store = GlobalConfigStore(settings.global_config_path)
        token_resolver = TokenResolver.from_settings(settings, transport=transport)
        workspace_resolver = WorkspaceResolver.create(
            self.config_store, cwd=lambda: project
        )
        return Dispatcher(
            config,
            token_resolver,
            workspace_resolver,
            BackendClient(config, transport=transport),
            LocalTools(token_resolver, workspace_resolver, self.config_store),
        )

    @pytest.mark.asyncio
    async def test_initialize_is_local_and_idempotent(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)
        message = {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}}

        first = await dispatcher.handle_line(line(message))
        second = await dispatcher.handle_line(line(message))

        assert first == second
        result = first[0]["result"]
        assert result["protocolVersion"] == "2024-11-05"
        assert result["capabilities"] == {"tools": {}}
        assert result["serverInfo"]["name"] == "meldoc-mcp-proxy"
        assert self.requests == []

    @pytest.mark.asyncio
    async def test_tools_list_works_offline(self, tmp_path):
        """Test tools/list never reaches the backend, even without a token."""
        dispatcher = self.make_dispatcher(tmp_path, access_token=None)

        responses = await dispatcher.handle_line(
            line({"jsonrpc": "2.0", "id": "t", "method": "tools/list"})
        )

        names = {tool["name"] for tool in responses[0]["result"]["tools"]}
        assert {"docs_get", "list_workspaces", "set_workspace", "auth_status"} <= names
        assert len(names) == 16
        assert self.requests == []

    @pytest.mark.asyncio
    async def test_ping_and_resources(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)

        ping = await dispatcher.handle_line(line({"jsonrpc": "2.0", "id": 1, "method": "ping"}))
        resources = await dispatcher.handle_line(
            line({"jsonrpc": "2.0", "id": 2, "method": "resources/list"})
        )

        assert ping == [{"jsonrpc": "2.0", "id": 1, "result": {}}]
        assert resources[0]["result"] == {"resources": []}

    @pytest.mark.asyncio
    async def test_notifications_produce_no_output(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)

        for method in ("notifications/initialized", "initialized", "notifications/cancelled"):
            assert await dispatcher.handle_line(line({"jsonrpc": "2.0", "method": method})) == []
        assert self.requests == []

    @pytest.mark.asyncio
    async def test_lifecycle_notification_with_id_is_answered(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)

        responses = await dispatcher.handle_line(
            line({"jsonrpc": "2.0", "id": 9, "method": "notifications/initialized"})
        )

        assert responses == [{"jsonrpc": "2.0", "id": 9, "result": {}}]

    @pytest.mark.asyncio
    async def test_proxied_request_keeps_id(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)

        responses = await dispatcher.handle_line(line(tool_call(42, "docs_list")))

        assert len(responses) == 1
        assert responses[0]["id"] == 42
        assert responses[0]["result"]["echo"]["params"]["name"] == "docs_list"
        assert self.requests[0].headers["Authorization"] == "Bearer tok-1"

    @pytest.mark.asyncio
    async def test_proxied_notification_is_forwarded_silently(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)

        responses = await dispatcher.handle_line(
            line({"jsonrpc": "2.0", "method": "notifications/progress", "params": {}})
        )

        assert responses == []
        assert len(self.requests) == 1

    @pytest.mark.asyncio
    async def test_missing_token_is_auth_required(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path, access_token=None)

        responses = await dispatcher.handle_line(line(tool_call(3, "docs_get")))

        error = responses[0]["error"]
        assert responses[0]["id"] == 3
        assert error["code"] == AUTH_REQUIRED
        assert error["data"]["code"] == "AUTH_REQUIRED"
        assert self.requests == []

    @pytest.mark.asyncio
    async def test_explicit_workspace_header(self, tmp_path):
        """Test explicit alias beats the project binding for one call only."""
        dispatcher = self.make_dispatcher(tmp_path)
        (self.project / "meldoc.config.yml").write_text("workspaceAlias: alpha\n")

        await dispatcher.handle_line(line(tool_call(1, "docs_get", {"workspaceAlias": "beta"})))
        await dispatcher.handle_line(line(tool_call(2, "docs_get", {})))

        assert self.requests[0].headers[WORKSPACE_HEADER] == "beta"
        assert self.requests[1].headers[WORKSPACE_HEADER] == "alpha"
        assert self.config_store.get_workspace_alias() is None

    @pytest.mark.asyncio
    async def test_legacy_args_key(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)

        await dispatcher.handle_line(
            line(tool_call(1, "docs_get", {"workspaceAlias": "beta"}, key="args"))
        )

        assert self.requests[0].headers[WORKSPACE_HEADER] == "beta"

    @pytest.mark.asyncio
    async def test_list_workspaces_has_no_workspace_header(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)
        self.config_store.set_workspace_alias("team")

        await dispatcher.handle_line(line(tool_call(1, "list_workspaces")))

        assert WORKSPACE_HEADER not in self.requests[0].headers

    @pytest.mark.asyncio
    async def test_backend_timeout_is_internal_error(self, tmp_path):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        dispatcher = self.make_dispatcher(tmp_path, handler=handler)

        responses = await dispatcher.handle_line(line(tool_call(5, "docs_search")))

        error = responses[0]["error"]
        assert error["code"] == INTERNAL_ERROR
        assert error["message"] == "Request timeout after 25000ms"
        assert error["data"]["code"] == "TIMEOUT"

    @pytest.mark.asyncio
    async def test_parse_error_with_salvaged_id(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)

        responses = await dispatcher.handle_line(b'{"jsonrpc":"2.0","id":11,"method":\n')

        assert responses[0]["id"] == 11
        assert responses[0]["error"]["code"] == PARSE_ERROR

    @pytest.mark.asyncio
    async def test_parse_error_with_only_nested_id_is_silent(self, tmp_path):
        """Test an id inside tool arguments is never answered to."""
        dispatcher = self.make_dispatcher(tmp_path)
        line = (
            b'{"jsonrpc":"2.0","method":"tools/call",'
            b'"params":{"name":"docs_get","arguments":{"id":"doc-1"}'
        )

        assert await dispatcher.handle_line(line) == []

    @pytest.mark.asyncio
    async def test_parse_error_without_id_is_silent(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)
        assert await dispatcher.handle_line(b"not json at all\n") == []

    @pytest.mark.asyncio
    async def test_blank_line_ignored(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)
        assert await dispatcher.handle_line(b"   \n") == []

    @pytest.mark.asyncio
    async def test_invalid_request(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)

        with_id = await dispatcher.handle_line(line({"jsonrpc": "1.0", "id": 4, "method": "ping"}))
        without_method = await dispatcher.handle_line(line({"jsonrpc": "2.0", "id": 5}))
        without_id = await dispatcher.handle_line(line({"jsonrpc": "1.0", "method": "ping"}))

        assert with_id[0]["error"]["code"] == INVALID_REQUEST
        assert without_method[0]["id"] == 5
        assert without_method[0]["error"]["code"] == INVALID_REQUEST
        assert without_id == []

    @pytest.mark.asyncio
    async def test_batch_order_and_notifications(self, tmp_path):
        """Test batch responses match member order and skip notifications."""
        dispatcher = self.make_dispatcher(tmp_path)
        batch = [
            {"jsonrpc": "2.0", "id": "a", "method": "ping"},
            {"jsonrpc": "2.0", "method": "notifications/initialized"},
            tool_call("b", "docs_list"),
            "not an object",
            {"jsonrpc": "2.0", "id": "c", "method": "tools/list"},
        ]

        responses = await dispatcher.handle_line(line(batch))

        assert [r["id"] for r in responses] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_empty_batch_is_dropped(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)
        assert await dispatcher.handle_line(b"[]\n") == []

    @pytest.mark.asyncio
    async def test_local_tool_invalid_params(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)

        responses = await dispatcher.handle_line(line(tool_call(1, "set_workspace", {})))

        assert responses[0]["error"]["code"] == INVALID_PARAMS
        assert self.requests == []

    @pytest.mark.asyncio
    async def test_local_tool_result(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)

        responses = await dispatcher.handle_line(
            line(tool_call(1, "set_workspace", {"alias": "team"}))
        )

        assert responses[0]["result"]["content"][0]["text"] == "Workspace alias set to: team"
        assert self.config_store.get_workspace_alias() == "team"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_internal_error(self, tmp_path):
        dispatcher = self.make_dispatcher(tmp_path)
        dispatcher.local_tools.call = AsyncMock(side_effect=RuntimeError("boom"))

        responses = await dispatcher.handle_line(line(tool_call(8, "auth_status")))

        assert responses[0]["id"] == 8
        assert responses[0]["error"]["code"] == INTERNAL_ERROR
        assert responses[0]["error"]["message"] == "boom"


class TestToolArguments:
    """Test argument extraction from tools/call params."""

    def test_prefers_arguments(self):
        assert tool_arguments({"arguments": {"a": 1}, "args": {"b": 2}}) == {"a": 1}

    def test_falls_back_to_args(self):
        assert tool_arguments({"args": {"b": 2}}) == {"b": 2}

    def test_missing(self):
        assert tool_arguments({"name": "x"}) is None
        assert tool_arguments(None) is None
