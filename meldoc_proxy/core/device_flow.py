"""OAuth2 device-authorization flow.

The authenticator does not talk to the user. ``start()`` returns a
:class:`PendingAuthentication` that the caller shows however it likes, then
``wait_for_approval()`` polls until the flow reaches a terminal state::

    pending = await authenticator.start()
    show(pending.display_url, pending.user_code)
    credentials = await authenticator.wait_for_approval(pending.session)
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import parse_qs, urlsplit

import httpx
from pydantic import ValidationError

from meldoc_proxy import __version__
from meldoc_proxy.core.store import CredentialStore
from meldoc_proxy.models.domain.credentials import (
    Credentials,
    CredentialsKind,
    TokenSet,
    UserInfo,
    utcnow,
)
from meldoc_proxy.models.domain.device_flow import (
    DeviceFlowSession,
    PendingAuthentication,
    PollResult,
    PollStatus,
)

logger = logging.getLogger(__name__)

DEVICE_FLOW_TIMEOUT = 10.0
CLIENT_NAME = "mcp-stdio-proxy"

# Used when the poll response omits expiresAt
DEFAULT_SESSION_LIFETIME = timedelta(hours=1)


class DeviceFlowError(Exception):
    """Device flow failed."""

    def __init__(self, message: str, status: str | None = None):
        self.message = message
        self.status = status
        super().__init__(message)


class DeviceFlowDenied(DeviceFlowError):
    """The user rejected the login request."""


class DeviceFlowExpired(DeviceFlowError):
    """The server reports that the device code expired."""


class DeviceFlowTimeout(DeviceFlowError):
    """The client-side deadline passed without a terminal status."""


class DeviceFlowProtocolError(DeviceFlowError):
    """The server answered with a response that breaks the protocol."""


class _TransientPollError(Exception):
    """A poll attempt failed in a way that is worth retrying."""


def _first(data: dict, *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def decode_start_response(data: Any, started_at: float) -> DeviceFlowSession:
    """Normalize the start response (camelCase or snake_case) into a session."""
    if not isinstance(data, dict):
        raise DeviceFlowProtocolError(f"Invalid start response: {data!r}")

    fields = {
        "device_code": _first(data, "deviceCode", "device_code"),
        "user_code": _first(data, "userCode", "user_code"),
        "verification_url": _first(
            data,
            "verificationUrl",
            "verification_url",
            "verificationUri",
            "verification_uri",
        ),
        "expires_in": _first(data, "expiresIn", "expires_in"),
        "interval": _first(data, "interval"),
    }
    missing = [name for name, value in fields.items() if value is None]
    if missing:
        raise DeviceFlowProtocolError(
            f"Invalid response from server: missing {', '.join(missing)}"
        )

    try:
        return DeviceFlowSession(**fields, started_at=started_at)
    except ValidationError as e:
        raise DeviceFlowProtocolError(f"Invalid response from server: {e}") from e


def decode_poll_response(data: Any) -> PollResult:
    """Normalize a poll response.

    Token fields may sit at the top level or inside ``auth_response``.
    """
    if not isinstance(data, dict) or not data.get("status"):
        raise DeviceFlowProtocolError("Invalid poll response: missing status field")

    auth_data = data.get("auth_response") or data.get("authResponse") or data
    if not isinstance(auth_data, dict):
        auth_data = data

    user = auth_data.get("user") or data.get("user")
    try:
        result = PollResult(
            status=str(data["status"]).lower(),
            access_token=_first(auth_data, "accessToken", "access_token"),
            expires_at=_first(auth_data, "expiresAt", "expires_at"),
            refresh_token=_first(data, "refreshToken", "refresh_token")
            or _first(auth_data, "refreshToken", "refresh_token"),
            user=UserInfo.model_validate(user) if isinstance(user, dict) else None,
        )
    except ValidationError as e:
        raise DeviceFlowProtocolError(f"Invalid poll response: {e}") from e

    if result.is_approved and not result.access_token:
        raise DeviceFlowProtocolError("Invalid approved response: missing accessToken")
    return result


def build_display_url(
    verification_url: str, user_code: str, app_url: str | None = None
) -> str:
    """URL shown to the user.

    The configured app origin replaces the server's origin, and the user code
    is appended as a path segment unless the URL already carries ``?code=``.
    """
    parts = urlsplit(verification_url)
    has_code = "code" in parse_qs(parts.query)

    display_url = verification_url
    if app_url:
        app_parts = urlsplit(app_url)
        if app_parts.scheme and app_parts.netloc:
            query = f"?{parts.query}" if parts.query else ""
            display_url = f"{app_parts.scheme}://{app_parts.netloc}{parts.path}{query}"

    if has_code:
        return display_url
    if display_url.endswith("/"):
        return f"{display_url}{user_code}"
    return f"{display_url}/{user_code}"


class DeviceFlowAuthenticator:
    """Runs the device flow against the API and stores the resulting session."""

    def __init__(
        self,
        api_url: str,
        store: CredentialStore,
        app_url: str | None = None,
        timeout: float = DEVICE_FLOW_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = utcnow,
    ):
        self.api_url = api_url.rstrip("/")
        self.store = store
        self.app_url = app_url
        self.timeout = timeout
        self.transport = transport
        self.clock = clock
        self.sleep = sleep
        self.now = now

    async def _post(self, path: str, payload: dict) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport
        ) as client:
            return await client.post(f"{self.api_url}{path}", json=payload)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if body.get("message"):
                return str(body["message"])
        return f"HTTP {response.status_code}: {response.reason_phrase}"

    async def start(self) -> PendingAuthentication:
        """Request a device code.

        Raises:
            DeviceFlowError: If the server is unreachable or the response is incomplete.
        """
        try:
            response = await self._post(
                "/api/auth/device/start",
                {"client": CLIENT_NAME, "client_version": __version__},
            )
        except httpx.HTTPError as e:
            raise DeviceFlowError(
                f"Device flow start failed: no response from server at {self.api_url}"
            ) from e

        if not response.is_success:
            raise DeviceFlowError(
                f"Device flow start failed: {self._error_message(response)}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise DeviceFlowProtocolError("Device flow start returned invalid JSON") from e

        session = decode_start_response(payload, started_at=self.clock())
        logger.debug(
            f"Device flow started, expires in {session.expires_in}s, "
            f"interval {session.interval}s"
        )
        return PendingAuthentication(
            session=session,
            display_url=build_display_url(
                session.verification_url, session.user_code, self.app_url
            ),
        )

    async def poll_once(self, session: DeviceFlowSession) -> PollResult:
        """Ask the server for the current status of the flow."""
        try:
            response = await self._post(
                "/api/auth/device/poll",
                # Both spellings: servers disagree on which one they read
                {"deviceCode": session.device_code, "device_code": session.device_code},
            )
        except httpx.HTTPError as e:
            raise _TransientPollError(str(e) or type(e).__name__) from e

        if response.status_code >= 500:
            raise _TransientPollError(f"HTTP {response.status_code}")
        if not response.is_success:
            raise DeviceFlowError(
                f"Device flow poll failed: {self._error_message(response)}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise DeviceFlowProtocolError("Device flow poll returned invalid JSON") from e
        return decode_poll_response(payload)

    async def wait_for_approval(self, session: DeviceFlowSession) -> Credentials:
        """Poll every ``interval`` seconds until a terminal state or the deadline.

        The last wait is shortened so no poll happens after the deadline.

        Raises:
            DeviceFlowDenied: The user rejected the request.
            DeviceFlowExpired: The server expired the device code.
            DeviceFlowTimeout: The deadline passed while still pending.
            DeviceFlowProtocolError: The server broke the protocol.
        """
        while True:
            remaining = session.deadline - self.clock()
            if remaining <= 0:
                break
            await self.sleep(min(session.interval, remaining))

            try:
                result = await self.poll_once(session)
            except _TransientPollError as e:
                logger.warning(f"Device flow poll failed, retrying: {e}")
                continue

            logger.debug(f"Device flow poll status: {result.status}")

            if result.is_approved:
                return self._persist(result)
            if result.status == PollStatus.DENIED.value:
                raise DeviceFlowDenied("Login denied by user", status=result.status)
            if result.status == PollStatus.EXPIRED.value:
                raise DeviceFlowExpired("Device code expired", status=result.status)

        raise DeviceFlowTimeout("Timed out waiting for login approval")

    def _persist(self, result: PollResult) -> Credentials:
        now = self.now()
        credentials = Credentials(
            type=CredentialsKind.USER_SESSION,
            api_base_url=self.api_url,
            user=result.user,
            tokens=TokenSet(
                access_token=result.access_token,
                access_expires_at=result.expires_at or now + DEFAULT_SESSION_LIFETIME,
                refresh_token=result.refresh_token,
            ),
            updated_at=now,
        )
        self.store.save(credentials)
        if credentials.tokens.refresh_token is None:
            logger.info("Server issued no refresh token; session expiry will need a new login")
        return credentials


__all__ = [
    "DeviceFlowError",
    "DeviceFlowDenied",
    "DeviceFlowExpired",
    "DeviceFlowTimeout",
    "DeviceFlowProtocolError",
    "decode_start_response",
    "decode_poll_response",
    "build_display_url",
    "DeviceFlowAuthenticator",
]
