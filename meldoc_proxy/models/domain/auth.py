"""Token resolution results."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from meldoc_proxy.models.domain.credentials import UserInfo


class TokenSource(str, Enum):
    """Where a bearer token came from."""

    ENV = "env"
    USER_SESSION = "user_session"
    INTEGRATION = "integration"


class TokenInfo(BaseModel):
    """A usable bearer token."""

    token: str
    source: TokenSource

    def __repr__(self) -> str:
        return f"TokenInfo(source={self.source.value!r}, token='[REDACTED]')"


class AuthStatus(BaseModel):
    """Authentication summary shown by ``auth_status`` and ``auth status``."""

    authenticated: bool
    type: TokenSource | None = None
    user: UserInfo | None = None
    expires_at: datetime | None = None
    message: str | None = None

    def to_payload(self) -> dict:
        payload = {"authenticated": self.authenticated}
        if self.type is not None:
            payload["type"] = self.type.value
        if self.user is not None:
            payload["user"] = self.user.model_dump(exclude_none=True)
        if self.type is TokenSource.USER_SESSION and self.user is not None:
            payload["expiresAt"] = (
                self.expires_at.isoformat() if self.expires_at else None
            )
        if self.message:
            payload["message"] = self.message
        return payload


__all__ = ["TokenSource", "TokenInfo", "AuthStatus"]
