"""
Unit tests for the meldoc-mcp CLI.
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from meldoc_proxy import __version__
from meldoc_proxy.cli.config import set_settings
from meldoc_proxy.cli.main import cli
from meldoc_proxy.core.device_flow import DeviceFlowDenied
from meldoc_proxy.core.store import CredentialStore, GlobalConfigStore
from meldoc_proxy.models.config import ProxySettings
from meldoc_proxy.models.domain import (
    Credentials,
    DeviceFlowSession,
    PendingAuthentication,
    TokenSet,
    UserInfo,
)


class TestCli:
    """Test CLI commands against a temporary config directory."""

    @pytest.fixture(autouse=True)
    def setup_env(self, tmp_path, monkeypatch):
        self.config_dir = tmp_path / ".meldoc"
        self.project = tmp_path / "project"
        self.project.mkdir()
        monkeypatch.chdir(self.project)
        self.runner = CliRunner()
        self.use_settings()

    def use_settings(self, **kwargs):
        set_settings(
            ProxySettings(
                api_url="https://api.test.meldoc.io",
                config_dir=self.config_dir,
                **kwargs,
            )
        )

    def save_session(self):
        store = CredentialStore(self.config_dir / "credentials.json")
        store.save(
            Credentials(
                user=UserInfo(id="u1", email="ada@example.com"),
                tokens=TokenSet(
                    access_token="session-token",
                    access_expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
                    refresh_token="refresh-1",
                ),
            )
        )
        return store

    def test_version(self):
        result = self.runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_command_shows_help(self):
        result = self.runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "auth" in result.output
        assert "config" in result.output

    def test_set_and_get_workspace(self):
        result = self.runner.invoke(cli, ["config", "set-workspace", "team"])
        assert result.exit_code == 0
        assert "team" in result.output

        on_disk = json.loads((self.config_dir / "config.json").read_text())
        assert on_disk == {"workspaceAlias": "team"}

        result = self.runner.invoke(cli, ["config", "get-workspace"])
        assert "team" in result.output
        assert "global config" in result.output

    def test_get_workspace_from_project_file(self):
        (self.project / "meldoc.config.yml").write_text("workspaceAlias: alpha\n")

        result = self.runner.invoke(cli, ["config", "get-workspace"])

        assert "alpha" in result.output
        assert "project file" in result.output

    def test_get_workspace_not_set(self):
        result = self.runner.invoke(cli, ["config", "get-workspace"])
        assert "No workspace set" in result.output

    def test_auth_status_not_authenticated(self):
        result = self.runner.invoke(cli, ["auth", "status"])
        assert result.exit_code == 1
        assert "meldoc-mcp auth login" in result.output

    def test_auth_status_env_token(self):
        self.use_settings(access_token="override")

        result = self.runner.invoke(cli, ["auth", "status"])

        assert result.exit_code == 0
        assert "env" in result.output

    def test_auth_status_session(self):
        self.save_session()

        result = self.runner.invoke(cli, ["auth", "status"])

        assert result.exit_code == 0
        assert "ada@example.com" in result.output

    def test_logout(self):
        store = self.save_session()

        result = self.runner.invoke(cli, ["auth", "logout"])

        assert result.exit_code == 0
        assert not store.path.exists()

        result = self.runner.invoke(cli, ["auth", "logout"])
        assert "No stored session" in result.output

    def test_login_success(self):
        pending = PendingAuthentication(
            session=DeviceFlowSession(
                device_code="device-123",
                user_code="ABCD-1234",
                verification_url="https://app.meldoc.io/auth/device",
                expires_in=600,
                interval=5,
                started_at=0.0,
            ),
            display_url="https://app.meldoc.io/auth/device/ABCD-1234",
        )
        credentials = Credentials(
            user=UserInfo(email="ada@example.com"),
            tokens=TokenSet(access_token="access-1"),
        )
        authenticator = MagicMock()
        authenticator.start = AsyncMock(return_value=pending)
        authenticator.wait_for_approval = AsyncMock(return_value=credentials)

        with patch(
            "meldoc_proxy.cli.commands.auth.DeviceFlowAuthenticator",
            return_value=authenticator,
        ) as factory, patch("meldoc_proxy.cli.commands.auth.open_browser") as browser:
            result = self.runner.invoke(
                cli, ["auth", "login", "--no-browser", "--no-clipboard"]
            )

        assert result.exit_code == 0
        assert "ABCD-1234" in result.output
        assert "Logged in as ada@example.com" in result.output
        browser.assert_not_called()
        authenticator.wait_for_approval.assert_awaited_once_with(pending.session)
        assert factory.call_args.kwargs["app_url"] == "https://app.meldoc.io"

    def test_login_denied(self):
        authenticator = MagicMock()
        authenticator.start = AsyncMock(side_effect=DeviceFlowDenied("denied"))

        with patch(
            "meldoc_proxy.cli.commands.auth.DeviceFlowAuthenticator",
            return_value=authenticator,
        ):
            result = self.runner.invoke(cli, ["auth", "login", "--no-browser"])

        assert result.exit_code == 1
        assert "denied" in result.output

    def test_list_workspaces(self):
        self.use_settings(access_token="override")
        GlobalConfigStore(self.config_dir / "config.json").set_workspace_alias("team")
        response = {
            "jsonrpc": "2.0",
            "id": 1,
            "result": {
                "content": [
                    {
                        "type": "text",
                        "text": json.dumps(
                            {
                                "workspaces": [
                                    {"alias": "team", "name": "Team", "role": "owner"},
                                    {"alias": "other", "name": "Other", "role": "member"},
                                ]
                            }
                        ),
                    }
                ]
            },
        }
        client = MagicMock()
        client.call = AsyncMock(return_value=response)

        with patch("meldoc_proxy.cli.commands.config.BackendClient", return_value=client):
            result = self.runner.invoke(cli, ["config", "list-workspaces"])

        assert result.exit_code == 0
        assert "team" in result.output
        assert "other" in result.output
        request = client.call.call_args.args[0]
        assert request["params"]["name"] == "list_workspaces"
        assert client.call.call_args.args[1] == "override"

    def test_list_workspaces_requires_auth(self):
        result = self.runner.invoke(cli, ["config", "list-workspaces"])
        assert result.exit_code == 1
        assert "Not authenticated" in result.output
