"""OAuth device-code authorization against the Yandex OAuth server."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any

import httpx

from .config import ConfigurationError
from .const import OAUTH_DEVICE_CODE_URL, OAUTH_TOKEN_URL
from .storage import JsonStore

_LOGGER = logging.getLogger(__name__)

REFRESH_OFFSET = 60


class NotAuthorizedError(ConfigurationError):
    """Raised when no access token is available yet."""


class AuthorizationPendingError(RuntimeError):
    """Raised while the user has not confirmed the device code."""


@dataclass(frozen=True)
class DeviceCode:
    """Verification details returned by the device code endpoint."""

    device_code: str
    user_code: str
    verification_url: str
    interval: int = 5
    expires_in: int = 300

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> DeviceCode:
        return cls(
            device_code=payload["device_code"],
            user_code=payload["user_code"],
            verification_url=payload["verification_url"],
            interval=int(payload.get("interval", 5)),
            expires_in=int(payload.get("expires_in", 300)),
        )


@dataclass(frozen=True)
class TokenDetails:
    """Application credentials and the tokens issued for them."""

    client_id: str
    client_secret: str
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: float | None = None

    @classmethod
    def from_storage(cls, data: dict[str, Any]) -> TokenDetails:
        """Create token details from the persisted JSON document."""

        expires_at = data.get("expires_at")
        return cls(
            client_id=data.get("client_id", ""),
            client_secret=data.get("client_secret", ""),
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            expires_at=float(expires_at) if expires_at is not None else None,
        )

    def as_storage(self) -> dict[str, Any]:
        """Serialize for storage, omitting tokens that were never issued."""

        data: dict[str, Any] = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self.access_token is not None:
            data["access_token"] = self.access_token
        if self.refresh_token is not None:
            data["refresh_token"] = self.refresh_token
        if self.expires_at is not None:
            data["expires_at"] = self.expires_at
        return data

    @property
    def is_authorized(self) -> bool:
        return bool(self.access_token)

    def should_refresh(self, now: float | None = None) -> bool:
        """Return True when the token expires within the refresh offset."""

        if self.expires_at is None or not self.refresh_token:
            return False
        if now is None:
            now = time.time()
        return now >= self.expires_at - REFRESH_OFFSET

    def with_tokens(self, payload: dict[str, Any]) -> TokenDetails:
        """Return a copy carrying the tokens from an OAuth token response."""

        return replace(
            self,
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token", self.refresh_token),
            expires_at=time.time() + int(payload.get("expires_in", 0)),
        )


class YandexAuthManager:
    """Own the OAuth tokens and keep them fresh."""

    def __init__(
        self,
        store: JsonStore,
        *,
        client_id: str,
        client_secret: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the manager with the configured application credentials."""

        self._store = store
        self._client = client
        self._tokens = TokenDetails(client_id=client_id, client_secret=client_secret)
        self._lock = asyncio.Lock()

    @property
    def tokens(self) -> TokenDetails:
        return self._tokens

    @property
    def is_authorized(self) -> bool:
        return self._tokens.is_authorized

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30)
        return self._client

    async def async_close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def async_initialize(self) -> None:
        """Load stored tokens, discarding them if the credentials changed."""

        data = await self._store.async_load()
        if not isinstance(data, dict):
            await self._async_store(self._tokens)
            return
        stored = TokenDetails.from_storage(data)
        if (
            stored.client_id != self._tokens.client_id
            or stored.client_secret != self._tokens.client_secret
        ):
            _LOGGER.info("Client credentials changed; stored tokens discarded")
            await self._async_store(self._tokens)
            return
        self._tokens = stored

    async def async_request_device_code(self) -> DeviceCode:
        """Start the device-code flow and return what the user must enter."""

        response = await self._require_client().post(
            OAUTH_DEVICE_CODE_URL, data={"client_id": self._tokens.client_id}
        )
        response.raise_for_status()
        return DeviceCode.from_payload(response.json())

    async def async_complete_device_code(self, device_code: str) -> TokenDetails:
        """Exchange a confirmed device code for tokens.

        Raises :class:`AuthorizationPendingError` while the user has not
        entered the code yet.
        """

        response = await self._require_client().post(
            OAUTH_TOKEN_URL,
            data={
                "grant_type": "device_code",
                "code": device_code,
                "client_id": self._tokens.client_id,
                "client_secret": self._tokens.client_secret,
            },
        )
        if response.status_code == 400:
            error = _error_code(response)
            if error in ("authorization_pending", "slow_down"):
                raise AuthorizationPendingError(error)
        response.raise_for_status()
        return await self._async_store(self._tokens.with_tokens(response.json()))

    async def async_refresh(self) -> TokenDetails:
        """Refresh the access token using the refresh token."""

        async with self._lock:
            if not self._tokens.refresh_token:
                raise NotAuthorizedError("No refresh token; authorize the bridge first")
            _LOGGER.debug("Refreshing Yandex access token")
            response = await self._require_client().post(
                OAUTH_TOKEN_URL,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self._tokens.refresh_token,
                    "client_id": self._tokens.client_id,
                    "client_secret": self._tokens.client_secret,
                },
            )
            response.raise_for_status()
            return await self._async_store(self._tokens.with_tokens(response.json()))

    async def async_get_access_token(self) -> str:
        """Return a valid access token, refreshing it when close to expiry."""

        if not self._tokens.is_authorized:
            raise NotAuthorizedError("Bridge is not authorized; run the authorize command")
        if self._tokens.should_refresh():
            await self.async_refresh()
        assert self._tokens.access_token is not None
        return self._tokens.access_token

    async def _async_store(self, tokens: TokenDetails) -> TokenDetails:
        await self._store.async_save(tokens.as_storage())
        self._tokens = tokens
        return tokens


def _error_code(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        return payload.get("error")
    return None
