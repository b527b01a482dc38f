"""Shared fixtures for the Meldoc MCP proxy tests."""

import pytest

from meldoc_proxy.cli.config import set_settings
from meldoc_proxy.models.config import ProxySettings

ENV_VARS = (
    "MELDOC_ACCESS_TOKEN",
    "MELDOC_MCP_TOKEN",
    "MELDOC_API_URL",
    "MELDOC_APP_URL",
    "MELDOC_CONFIG_DIR",
    "MELDOC_REQUEST_TIMEOUT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's real Meldoc environment out of the tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    set_settings(None)
    yield
    set_settings(None)


@pytest.fixture
def settings(tmp_path):
    return ProxySettings(
        api_url="https://api.test.meldoc.io",
        config_dir=tmp_path / ".meldoc",
    )
