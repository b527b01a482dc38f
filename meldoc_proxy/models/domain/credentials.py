"""Persisted user-session credentials."""

from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Sessions expiring inside this window are refreshed before use
REFRESH_WINDOW = timedelta(minutes=5)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CredentialsKind(str, Enum):
    """Kinds of credentials that are written to disk."""

    USER_SESSION = "user_session"


class UserInfo(BaseModel):
    """Identity of the logged-in user as reported by the API."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    email: str | None = None


class TokenSet(BaseModel):
    """Access/refresh token pair with the access token expiry."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken", min_length=1)
    access_expires_at: datetime | None = Field(default=None, alias="accessExpiresAt")
    # None means the server never issued one: expiry forces a new login
    refresh_token: str | None = Field(default=None, alias="refreshToken")

    @field_validator("access_expires_at")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)


class Credentials(BaseModel):
    """Credentials file contents (``~/.meldoc/credentials.json``)."""

    model_config = ConfigDict(populate_by_name=True)

    type: CredentialsKind = CredentialsKind.USER_SESSION
    api_base_url: str | None = Field(default=None, alias="apiBaseUrl")
    user: UserInfo | None = None
    tokens: TokenSet
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")

    @field_validator("updated_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @property
    def access_token(self) -> str:
        return self.tokens.access_token

    @property
    def can_refresh(self) -> bool:
        return bool(self.tokens.refresh_token)

    def needs_refresh(self, now: datetime | None = None) -> bool:
        """True when the access token is expired or expires within the window.

        A missing expiry counts as already expired.
        """
        expires_at = self.tokens.access_expires_at
        if expires_at is None:
            return True
        now = now or utcnow()
        return expires_at <= now + REFRESH_WINDOW

    def to_json_dict(self) -> dict:
        """Serialize using the on-disk camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)


__all__ = [
    "CredentialsKind",
    "UserInfo",
    "TokenSet",
    "Credentials",
    "REFRESH_WINDOW",
    "utcnow",
]
