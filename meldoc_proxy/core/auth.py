"""Bearer-token resolution with silent session refresh.

Tokens are looked up through an ordered list of strategies, the first one
that yields a token wins:

1. ``MELDOC_ACCESS_TOKEN`` override, used as-is
2. the persisted user session, refreshed when it is about to expire
3. ``MELDOC_MCP_TOKEN`` integration token, used as-is
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, ValidationError

from meldoc_proxy.core.store import CredentialStore, StoreError
from meldoc_proxy.models.domain.auth import AuthStatus, TokenInfo, TokenSource
from meldoc_proxy.models.domain.credentials import Credentials, TokenSet, utcnow

logger = logging.getLogger(__name__)

REFRESH_TIMEOUT = 10.0

# Used when the refresh response omits expiresAt
DEFAULT_ACCESS_LIFETIME = timedelta(hours=1)


class TokenRefreshError(Exception):
    """Raised when a session cannot be refreshed."""


class RefreshedTokens(BaseModel):
    """Canonical shape of the refresh endpoint response."""

    access_token: str
    expires_at: datetime | None = None
    refresh_token: str | None = None


def decode_refresh_response(data: Any) -> RefreshedTokens:
    """Normalize a refresh response that may use camelCase or snake_case."""
    if not isinstance(data, dict):
        raise TokenRefreshError("Refresh response is not a JSON object")

    access_token = data.get("accessToken") or data.get("access_token")
    if not access_token:
        raise TokenRefreshError("Refresh response is missing accessToken")

    try:
        return RefreshedTokens(
            access_token=access_token,
            expires_at=data.get("expiresAt") or data.get("expires_at"),
            refresh_token=data.get("refreshToken") or data.get("refresh_token"),
        )
    except ValidationError as e:
        raise TokenRefreshError(f"Invalid refresh response: {e}") from e


class TokenRefresher:
    """Exchanges a refresh token for a new access token."""

    def __init__(
        self,
        store: CredentialStore,
        default_api_url: str,
        timeout: float = REFRESH_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.default_api_url = default_api_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.now = now

    async def refresh(self, credentials: Credentials) -> Credentials:
        """Refresh the session and persist the result.

        Raises:
            TokenRefreshError: If the server rejects or cannot be reached.
        """
        refresh_token = credentials.tokens.refresh_token
        if not refresh_token:
            raise TokenRefreshError("Session has no refresh token")

        api_url = (credentials.api_base_url or self.default_api_url).rstrip("/")
        url = f"{api_url}/api/auth/refresh"

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(url, json={"refreshToken": refresh_token})
        except httpx.TimeoutException as e:
            raise TokenRefreshError(f"Refresh request timed out: {url}") from e
        except httpx.HTTPError as e:
            raise TokenRefreshError(f"Refresh request failed: {e}") from e

        if not response.is_success:
            raise TokenRefreshError(f"Refresh rejected with HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise TokenRefreshError("Refresh response is not valid JSON") from e

        tokens = decode_refresh_response(payload)
        updated = credentials.model_copy(
            update={
                "tokens": TokenSet(
                    access_token=tokens.access_token,
                    access_expires_at=tokens.expires_at
                    or self.now() + DEFAULT_ACCESS_LIFETIME,
                    refresh_token=tokens.refresh_token or refresh_token,
                ),
                "updated_at": self.now(),
            }
        )
        try:
            self.store.save(updated)
        except StoreError as e:
            # The new token is still usable for this process
            logger.warning(f"Could not persist refreshed session: {e.message}")

        logger.info("Refreshed user session token")
        return updated


class TokenStrategy(Protocol):
    """One step of the token priority chain."""

    async def resolve(self) -> TokenInfo | None: ...


class StaticTokenStrategy:
    """A fixed token from the environment. Never refreshed."""

    def __init__(self, token: str | None, source: TokenSource):
        self.token = token
        self.source = source

    async def resolve(self) -> TokenInfo | None:
        if self.token:
            return TokenInfo(token=self.token, source=self.source)
        return None


class SessionTokenStrategy:
    """The persisted user session, refreshed when close to expiry.

    Refreshes are single-flight per process: concurrent callers wait for the
    refresh in progress and then reuse the session it saved.
    """

    def __init__(
        self,
        store: CredentialStore,
        refresher: TokenRefresher,
        now: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.refresher = refresher
        self.now = now
        self._refresh_lock = asyncio.Lock()

    def _usable(self, credentials: Credentials | None) -> TokenInfo | None:
        if credentials is None or credentials.needs_refresh(self.now()):
            return None
        return TokenInfo(token=credentials.access_token, source=TokenSource.USER_SESSION)

    async def resolve(self) -> TokenInfo | None:
        credentials = self.store.load()
        if credentials is None:
            return None

        token_info = self._usable(credentials)
        if token_info is not None:
            return token_info

        async with self._refresh_lock:
            # Another caller may have refreshed while this one waited
            credentials = self.store.load()
            if credentials is None:
                return None
            token_info = self._usable(credentials)
            if token_info is not None:
                return token_info

            if not credentials.can_refresh:
                logger.info("Session expired and has no refresh token; login required")
                return None

            try:
                refreshed = await self.refresher.refresh(credentials)
            except TokenRefreshError as e:
                logger.warning(f"Session refresh failed: {e}")
                self._discard(credentials.tokens.refresh_token)
                return None

        return TokenInfo(token=refreshed.access_token, source=TokenSource.USER_SESSION)

    def _discard(self, failed_refresh_token: str | None) -> None:
        """Delete the credentials only if they still hold the rejected token."""
        current = self.store.load()
        if current is None:
            return
        if current.tokens.refresh_token != failed_refresh_token:
            logger.info("Credentials changed during refresh, keeping them")
            return
        try:
            self.store.delete()
        except StoreError as e:
            logger.error(e.message)


class TokenResolver:
    """Walks the token strategies in priority order."""

    def __init__(self, strategies: list[TokenStrategy], store: CredentialStore):
        self.strategies = strategies
        self.store = store

    @classmethod
    def from_settings(
        cls,
        settings,
        store: CredentialStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        now: Callable[[], datetime] = utcnow,
    ) -> "TokenResolver":
        store = store or CredentialStore(settings.credentials_path)
        refresher = TokenRefresher(
            store, settings.api_url, transport=transport, now=now
        )
        return cls(
            [
                StaticTokenStrategy(settings.access_token, TokenSource.ENV),
                SessionTokenStrategy(store, refresher, now=now),
                StaticTokenStrategy(settings.mcp_token, TokenSource.INTEGRATION),
            ],
            store,
        )

    async def get_access_token(self) -> TokenInfo | None:
        for strategy in self.strategies:
            token_info = await strategy.resolve()
            if token_info is not None:
                logger.debug(f"Using {token_info.source.value} token")
                return token_info
        return None

    async def get_auth_status(self) -> AuthStatus:
        token_info = await self.get_access_token()
        if token_info is None:
            return AuthStatus(authenticated=False)

        if token_info.source is TokenSource.USER_SESSION:
            credentials = self.store.load()
            if credentials is not None and credentials.user is not None:
                return AuthStatus(
                    authenticated=True,
                    type=TokenSource.USER_SESSION,
                    user=credentials.user,
                    expires_at=credentials.tokens.access_expires_at,
                )

        return AuthStatus(authenticated=True, type=token_info.source)


__all__ = [
    "TokenRefreshError",
    "decode_refresh_response",
    "TokenRefresher",
    "TokenStrategy",
    "StaticTokenStrategy",
    "SessionTokenStrategy",
    "TokenResolver",
]
