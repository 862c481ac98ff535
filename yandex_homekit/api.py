"""HTTP client for the Yandex smart home API."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import httpx

from .const import API_BASE_URL, DEVICE_ACTIONS_PATH, USER_INFO_PATH
from .models import UserInfo

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .auth import YandexAuthManager

_LOGGER = logging.getLogger(__name__)


class YandexApiError(RuntimeError):
    """Raised when the API answers with a non-``ok`` status."""


def _create_http_client() -> httpx.AsyncClient:
    """Return an httpx async client configured for the REST API."""

    return httpx.AsyncClient(base_url=API_BASE_URL, timeout=30)


class YandexApiClient:
    """Thin wrapper over the ``user/info`` and ``devices/actions`` endpoints.

    Every request carries the current bearer token. A 401 answer triggers
    one token refresh and one retry of the same request; a second failure
    propagates as :class:`httpx.HTTPStatusError`.
    """

    def __init__(
        self, auth: YandexAuthManager, client: httpx.AsyncClient | None = None
    ) -> None:
        """Initialise the client with the auth manager and optional transport."""

        self._auth = auth
        self._client = client

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = _create_http_client()
        return self._client

    async def async_close(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def _async_request(
        self, method: str, path: str, **kwargs: Any
    ) -> dict[str, Any]:
        token = await self._auth.async_get_access_token()
        response = await self.http_client.request(
            method, path, headers={"Authorization": f"Bearer {token}"}, **kwargs
        )
        if response.status_code == httpx.codes.UNAUTHORIZED:
            _LOGGER.debug("Received 401 for %s; refreshing token", path)
            tokens = await self._auth.async_refresh()
            response = await self.http_client.request(
                method,
                path,
                headers={"Authorization": f"Bearer {tokens.access_token}"},
                **kwargs,
            )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise YandexApiError(f"Unexpected response for {path}")
        status = payload.get("status")
        if status is not None and status != "ok":
            message = payload.get("message") or status
            raise YandexApiError(f"{path} failed: {message}")
        return payload

    async def async_get_user_info(self) -> UserInfo:
        """Fetch households, rooms, devices, groups and scenarios."""

        payload = await self._async_request("GET", USER_INFO_PATH)
        return UserInfo.model_validate(payload)

    async def async_post_actions(
        self, devices: Sequence[dict[str, Any]]
    ) -> dict[str, Any]:
        """Post a batch of ``{id, actions: [{type, state}]}`` entries."""

        payload = await self._async_request(
            "POST", DEVICE_ACTIONS_PATH, json={"devices": list(devices)}
        )
        for device in payload.get("devices", []):
            for capability in device.get("capabilities", []):
                result = (capability.get("state") or {}).get("action_result") or {}
                if result.get("status") == "ERROR":
                    _LOGGER.warning(
                        "Action %s on %s failed: %s %s",
                        capability.get("type"),
                        device.get("id"),
                        result.get("error_code"),
                        result.get("error_message", ""),
                    )
        return payload
