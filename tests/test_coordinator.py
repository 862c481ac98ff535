"""Tests for the device registry and fetch loop."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest
from fakes import FakeDriver

from yandex_homekit.accessory import Category, CharacteristicKind, ServiceKind
from yandex_homekit.api import YandexApiError
from yandex_homekit.coordinator import ReconciliationController, bridge_publish_info
from yandex_homekit.models import UserInfo
from yandex_homekit.storage import DeviceStore, JsonStore


def device_payload(device_id: str, name: str, value: bool = True, room: str | None = None):
    return {
        "id": device_id,
        "name": name,
        "type": "devices.types.light",
        "room": room,
        "capabilities": [
            {
                "type": "devices.capabilities.on_off",
                "last_updated": 1,
                "state": {"instance": "on", "value": value},
            }
        ],
        "properties": [],
    }


class FakeApi:
    """Serve queued user info payloads and record posted actions."""

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.posted: list[list[dict[str, Any]]] = []

    async def async_get_user_info(self) -> UserInfo:
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return UserInfo.model_validate(response)

    async def async_post_actions(self, devices: list[dict[str, Any]]) -> dict[str, Any]:
        self.posted.append(devices)
        return {"status": "ok", "devices": []}


def make_controller(
    tmp_path, api: FakeApi, driver: FakeDriver | None = None, **kwargs: Any
) -> ReconciliationController:
    store = DeviceStore(JsonStore(tmp_path / "devices.json"))
    kwargs.setdefault("fetch_interval", 0.01)
    return ReconciliationController(api, store, driver or FakeDriver(), **kwargs)


def read_saved(tmp_path) -> list[dict[str, Any]]:
    return json.loads((tmp_path / "devices.json").read_text(encoding="utf-8"))


@pytest.mark.asyncio
async def test_refresh_adds_updates_and_removes(tmp_path) -> None:
    """The registry mirrors the account across fetches."""

    api = FakeApi(
        {
            "status": "ok",
            "rooms": [{"id": "r1", "name": "Kitchen"}],
            "devices": [
                device_payload("lamp", "Lamp", room="r1"),
                device_payload("strip", "Strip"),
            ],
        },
        {"status": "ok", "devices": [device_payload("lamp", "Lamp", value=False)]},
    )
    controller = make_controller(tmp_path, api)

    await controller.async_refresh()
    assert set(controller.devices) == {"lamp", "strip"}
    assert controller.devices["lamp"].name == "Lamp - Kitchen"
    assert len(controller.bridge.accessories) == 2

    lamp = controller.devices["lamp"]
    await controller.async_refresh()

    assert set(controller.devices) == {"lamp"}
    assert controller.devices["lamp"] is lamp
    assert len(controller.bridge.accessories) == 1
    saved = read_saved(tmp_path)
    assert [entry["device"]["id"] for entry in saved] == ["lamp"]
    assert saved[0]["device"]["capabilities"][0]["state"]["value"] is False


@pytest.mark.asyncio
async def test_explicit_mutations_persist(tmp_path) -> None:
    api = FakeApi({"status": "ok"})
    controller = make_controller(tmp_path, api)
    device = UserInfo.model_validate(
        {"devices": [device_payload("lamp", "Lamp")]}
    ).devices[0]

    await controller.async_add(device)
    assert [entry["device"]["id"] for entry in read_saved(tmp_path)] == ["lamp"]

    await controller.async_update(device.model_copy(update={"name": "Desk"}))
    assert controller.devices["lamp"].name == "Desk"
    assert read_saved(tmp_path)[0]["device"]["name"] == "Desk"

    await controller.async_remove("lamp")
    await controller.async_remove("missing")
    assert controller.devices == {}
    assert read_saved(tmp_path) == []


@pytest.mark.asyncio
async def test_load_restores_persisted_devices(tmp_path) -> None:
    """A restart exposes persisted accessories before the first fetch."""

    api = FakeApi({"status": "ok", "devices": [device_payload("lamp", "Lamp")]})
    first = make_controller(tmp_path, api)
    await first.async_refresh()

    second = make_controller(tmp_path, FakeApi(YandexApiError("down")))
    await second.async_load()

    assert set(second.devices) == {"lamp"}
    assert second.devices["lamp"].accessory.accessory_id in second.bridge.accessories


@pytest.mark.asyncio
async def test_set_state_saves_then_posts(tmp_path) -> None:
    api = FakeApi({"status": "ok", "devices": [device_payload("lamp", "Lamp")]})
    controller = make_controller(tmp_path, api)
    await controller.async_refresh()
    binding = controller.devices["lamp"].bindings[("devices.capabilities.on_off", None)]

    await binding.characteristic.async_handle_set(False)

    assert api.posted == [
        [
            {
                "id": "lamp",
                "actions": [
                    {
                        "type": "devices.capabilities.on_off",
                        "state": {"instance": "on", "value": False},
                    }
                ],
            }
        ]
    ]
    assert read_saved(tmp_path)[0]["device"]["capabilities"][0]["state"]["value"] is False


@pytest.mark.asyncio
async def test_fetch_loop_survives_failures(tmp_path) -> None:
    """Transport and API errors are logged and the loop keeps going."""

    api = FakeApi(
        httpx.ConnectError("offline"),
        YandexApiError("user/info failed: ERROR"),
        {"status": "ok", "devices": [device_payload("lamp", "Lamp")]},
    )
    controller = make_controller(tmp_path, api)

    task = controller.start()
    assert controller.start() is task
    for _ in range(200):
        if controller.devices:
            break
        await asyncio.sleep(0.01)
    await controller.async_stop()

    assert set(controller.devices) == {"lamp"}
    assert task.done()



@pytest.mark.asyncio
async def test_publish_serves_bridge_and_announces_layout_changes(tmp_path) -> None:
    """Controllers learn about new accessories but not about state changes."""

    api = FakeApi(
        {"status": "ok", "devices": [device_payload("lamp", "Lamp")]},
        {"status": "ok", "devices": [device_payload("lamp", "Lamp", value=False)]},
        {
            "status": "ok",
            "devices": [device_payload("lamp", "Lamp"), device_payload("strip", "Strip")],
        },
    )
    driver = FakeDriver()
    controller = make_controller(tmp_path, api, driver)
    await controller.async_refresh()
    assert not controller.is_published

    await controller.async_publish()
    assert controller.is_published
    assert driver.started
    assert driver.accessory is controller.bridge.hap

    await controller.async_refresh()
    assert driver.config_changes == 0
    lamp_aid = controller.devices["lamp"].accessory.aid
    assert {"aid": lamp_aid, "value": False}.items() <= driver.published[-1].items()

    await controller.async_refresh()
    assert driver.config_changes == 1
    assert len(controller.bridge.hap.accessories) == 2

    await controller.async_stop()
    assert driver.stopped
    assert not controller.is_published


def test_bridge_pairing_details(tmp_path) -> None:
    info = bridge_publish_info(port=51000)

    assert info.port == 51000
    assert info.category is Category.BRIDGE
    assert len(info.username.split(":")) == 6
    assert info.pincode == bridge_publish_info().pincode
    assert bridge_publish_info(pincode="111-22-333").pincode == "111-22-333"

    controller = make_controller(tmp_path, FakeApi({}), bridge_name="Home")
    controller.setup_bridge(info)

    information = controller.bridge.get_service(ServiceKind.ACCESSORY_INFORMATION)
    serial = information.get_characteristic(CharacteristicKind.SERIAL_NUMBER)
    assert serial.value == info.username
    assert controller.bridge.name == "Home"
