"""Core domain models for the proxy: credentials, tokens and the device flow."""

from meldoc_proxy.models.domain.auth import *
from meldoc_proxy.models.domain.credentials import *
from meldoc_proxy.models.domain.device_flow import *

__all__ = [
    # Credential models
    "CredentialsKind",
    "UserInfo",
    "TokenSet",
    "Credentials",
    "REFRESH_WINDOW",
    # Token resolution
    "TokenSource",
    "TokenInfo",
    "AuthStatus",
    # Device flow
    "DeviceFlowSession",
    "PollStatus",
    "PollResult",
    "PendingAuthentication",
]
