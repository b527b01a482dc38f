"""Settings and stores shared by the CLI commands."""

from meldoc_proxy.core.store import CredentialStore, GlobalConfigStore
from meldoc_proxy.models.config import ProxySettings

# Global settings instance
_settings: ProxySettings | None = None


def get_settings() -> ProxySettings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = ProxySettings()
    return _settings


def set_settings(settings: ProxySettings | None) -> None:
    """Set the global settings instance (None reloads from the environment)."""
    global _settings
    _settings = settings


def get_credential_store() -> CredentialStore:
    return CredentialStore(get_settings().credentials_path)


def get_config_store() -> GlobalConfigStore:
    return GlobalConfigStore(get_settings().global_config_path)
