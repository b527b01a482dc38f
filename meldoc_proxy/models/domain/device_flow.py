"""Device-flow session state."""

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field

from meldoc_proxy.models.domain.credentials import UserInfo


class PollStatus(str, Enum):
    """Status values returned by the poll endpoint."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"


class DeviceFlowSession(BaseModel):
    """One login attempt, as returned by the start endpoint."""

    device_code: str = Field(min_length=1)
    user_code: str = Field(min_length=1)
    verification_url: str = Field(min_length=1)
    expires_in: int = Field(gt=0, description="Seconds until the codes expire")
    interval: float = Field(gt=0, description="Seconds between polls")
    started_at: float = Field(description="Monotonic clock reading at start")

    @property
    def deadline(self) -> float:
        return self.started_at + self.expires_in


class PollResult(BaseModel):
    """Normalized poll response."""

    status: str
    access_token: str | None = None
    expires_at: datetime | None = None
    refresh_token: str | None = None
    user: UserInfo | None = None

    @property
    def is_approved(self) -> bool:
        return self.status == PollStatus.APPROVED.value

    def __repr__(self) -> str:
        token = "[REDACTED]" if self.access_token else None
        return f"PollResult(status={self.status!r}, access_token={token!r})"


class PendingAuthentication(BaseModel):
    """A started device flow waiting for the user to approve it."""

    session: DeviceFlowSession
    display_url: str

    @property
    def user_code(self) -> str:
        return self.session.user_code

    @property
    def expires_in(self) -> timedelta:
        return timedelta(seconds=self.session.expires_in)


__all__ = [
    "DeviceFlowSession",
    "PollStatus",
    "PollResult",
    "PendingAuthentication",
]
