"""Tests for the OAuth device-code auth manager."""

from __future__ import annotations

import json
import time
from urllib.parse import parse_qs

import httpx
import pytest

from yandex_homekit.auth import (
    AuthorizationPendingError,
    NotAuthorizedError,
    TokenDetails,
    YandexAuthManager,
)
from yandex_homekit.config import ConfigurationError
from yandex_homekit.const import OAUTH_DEVICE_CODE_URL, OAUTH_TOKEN_URL
from yandex_homekit.storage import JsonStore


def form(request: httpx.Request) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


def make_manager(tmp_path, handler, **kwargs) -> tuple[YandexAuthManager, JsonStore]:
    store = JsonStore(tmp_path / "yandex.json", private=True)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    manager = YandexAuthManager(
        store,
        client_id=kwargs.get("client_id", "app-id"),
        client_secret=kwargs.get("client_secret", "app-secret"),
        client=client,
    )
    return manager, store


def write_tokens(tmp_path, **tokens) -> None:
    data = {"client_id": "app-id", "client_secret": "app-secret", **tokens}
    (tmp_path / "yandex.json").write_text(json.dumps(data), encoding="utf-8")


def test_should_refresh_window() -> None:
    """Tokens are refreshed a minute before they expire."""

    tokens = TokenDetails("id", "secret", "access", "refresh", expires_at=1000)
    assert not tokens.should_refresh(now=900)
    assert tokens.should_refresh(now=940)
    assert tokens.should_refresh(now=2000)
    assert not TokenDetails("id", "secret", "access", None, 1000).should_refresh(2000)
    assert not TokenDetails("id", "secret", "access", "refresh").should_refresh(2000)


def test_storage_omits_missing_tokens() -> None:
    tokens = TokenDetails("id", "secret")

    assert tokens.as_storage() == {"client_id": "id", "client_secret": "secret"}
    assert TokenDetails.from_storage(tokens.as_storage()) == tokens
    assert not tokens.is_authorized


@pytest.mark.asyncio
async def test_initialize_persists_credentials(tmp_path) -> None:
    manager, store = make_manager(tmp_path, lambda _: httpx.Response(500))

    await manager.async_initialize()

    assert await store.async_load() == {
        "client_id": "app-id",
        "client_secret": "app-secret",
    }
    assert (tmp_path / "yandex.json").stat().st_mode & 0o777 == 0o600
    with pytest.raises(NotAuthorizedError):
        await manager.async_get_access_token()


@pytest.mark.asyncio
async def test_changed_credentials_discard_tokens(tmp_path) -> None:
    """Tokens issued for another application are dropped."""

    write_tokens(tmp_path, access_token="old", refresh_token="old-refresh")
    manager, store = make_manager(
        tmp_path, lambda _: httpx.Response(500), client_id="other-app"
    )

    await manager.async_initialize()

    assert not manager.is_authorized
    assert await store.async_load() == {
        "client_id": "other-app",
        "client_secret": "app-secret",
    }


@pytest.mark.asyncio
async def test_matching_credentials_keep_tokens(tmp_path) -> None:
    write_tokens(
        tmp_path,
        access_token="access",
        refresh_token="refresh",
        expires_at=time.time() + 3600,
    )
    manager, _store = make_manager(tmp_path, lambda _: httpx.Response(500))

    await manager.async_initialize()

    assert await manager.async_get_access_token() == "access"


@pytest.mark.asyncio
async def test_device_code_flow(tmp_path) -> None:
    """The device code is exchanged once the user confirmed it."""

    attempts: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == OAUTH_DEVICE_CODE_URL:
            assert form(request) == {"client_id": "app-id"}
            return httpx.Response(
                200,
                json={
                    "device_code": "dev-code",
                    "user_code": "ABCD-1234",
                    "verification_url": "https://ya.ru/device",
                    "interval": 2,
                    "expires_in": 300,
                },
            )
        assert str(request.url) == OAUTH_TOKEN_URL
        attempts.append(form(request))
        if len(attempts) == 1:
            return httpx.Response(400, json={"error": "authorization_pending"})
        return httpx.Response(
            200,
            json={
                "access_token": "access",
                "refresh_token": "refresh",
                "expires_in": 3600,
            },
        )

    manager, store = make_manager(tmp_path, handler)
    await manager.async_initialize()

    code = await manager.async_request_device_code()
    assert code.user_code == "ABCD-1234"
    assert code.interval == 2

    with pytest.raises(AuthorizationPendingError):
        await manager.async_complete_device_code(code.device_code)
    tokens = await manager.async_complete_device_code(code.device_code)

    assert attempts[0]["grant_type"] == "device_code"
    assert attempts[0]["code"] == "dev-code"
    assert tokens.access_token == "access"
    assert manager.is_authorized
    saved = await store.async_load()
    assert saved["refresh_token"] == "refresh"
    assert saved["expires_at"] == pytest.approx(time.time() + 3600, abs=5)


@pytest.mark.asyncio
async def test_device_code_rejection_raises(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "expired_token"})

    manager, _store = make_manager(tmp_path, handler)

    with pytest.raises(httpx.HTTPStatusError):
        await manager.async_complete_device_code("dev-code")


@pytest.mark.asyncio
async def test_expiring_token_is_refreshed(tmp_path) -> None:
    """An access token close to expiry is refreshed before use."""

    seen: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(form(request))
        return httpx.Response(
            200, json={"access_token": "new-access", "expires_in": 3600}
        )

    write_tokens(
        tmp_path,
        access_token="old-access",
        refresh_token="refresh",
        expires_at=time.time() + 10,
    )
    manager, store = make_manager(tmp_path, handler)
    await manager.async_initialize()

    assert await manager.async_get_access_token() == "new-access"
    assert seen == [
        {
            "grant_type": "refresh_token",
            "refresh_token": "refresh",
            "client_id": "app-id",
            "client_secret": "app-secret",
        }
    ]
    assert manager.tokens.refresh_token == "refresh"
    assert (await store.async_load())["access_token"] == "new-access"


@pytest.mark.asyncio
async def test_refresh_without_refresh_token_fails(tmp_path) -> None:
    manager, _store = make_manager(tmp_path, lambda _: httpx.Response(500))

    with pytest.raises(ConfigurationError):
        await manager.async_refresh()


@pytest.mark.asyncio
async def test_close_releases_http_client(tmp_path) -> None:
    manager, _ = make_manager(tmp_path, lambda _: httpx.Response(500))
    client = manager._require_client()

    await manager.async_close()
    await manager.async_close()

    assert client.is_closed
    assert manager._require_client() is not client
    await manager.async_close()
