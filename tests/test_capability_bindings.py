"""Tests for capability bindings and their outbound writes."""

from __future__ import annotations

import time
from typing import Any

import httpx
import pytest
from fakes import FakeDriver

from yandex_homekit.accessory import Active, CharacteristicKind, ServiceKind
from yandex_homekit.api import YandexApiError
from yandex_homekit.auth import NotAuthorizedError
from yandex_homekit.bindings.capabilities import (
    ColorSettingBinding,
    OnOffBinding,
    RangeBinding,
    capability_binding_for,
)
from yandex_homekit.device import DeviceSynchronizer
from yandex_homekit.models import ApiDevice, Capability, CapabilityState


class FakeController:
    """Record outbound actions instead of posting them."""

    def __init__(self, error: Exception | None = None) -> None:
        self.debounce_wait = 0.05
        self.debounce_max_wait = 0.1
        self.error = error
        self.calls: list[tuple[str, list[dict[str, Any]]]] = []

    async def async_set_state(self, device_id: str, actions: list[dict[str, Any]]) -> None:
        self.calls.append((device_id, actions))
        if self.error is not None:
            raise self.error


def make_device(
    device_type: str = "devices.types.light", controller: FakeController | None = None
) -> DeviceSynchronizer:
    return DeviceSynchronizer(
        FakeDriver(),
        ApiDevice(id="lamp-1", name="Lamp", type=device_type),
        None,
        controller or FakeController(),
    )


def on_off(value: bool | None, timestamp: float = 0) -> Capability:
    return Capability(
        type="devices.capabilities.on_off",
        last_updated=timestamp,
        state=CapabilityState(instance="on", value=value) if value is not None else None,
    )


def brightness(value: float, timestamp: float = 0, **range_: Any) -> Capability:
    return Capability(
        type="devices.capabilities.range",
        last_updated=timestamp,
        parameters={
            "instance": "brightness",
            "unit": "unit.percent",
            "range": range_ or {"min": 1, "max": 100, "precision": 1},
        },
        state=CapabilityState(instance="brightness", value=value),
    )


def color_setting(
    state: CapabilityState | None, timestamp: float = 0, color_model: str = "hsv"
) -> Capability:
    return Capability(
        type="devices.capabilities.color_setting",
        last_updated=timestamp,
        parameters={
            "color_model": color_model,
            "temperature_k": {"min": 2700, "max": 6500},
        },
        state=state,
    )


def test_on_off_uses_active_for_air_conditioners() -> None:
    """Air conditioners expose ``Active`` instead of a raw boolean."""

    device = make_device("devices.types.thermostat.ac")
    OnOffBinding(on_off(True), device)

    service = device.accessory.get_service(ServiceKind.HEATER_COOLER)
    assert service is not None
    assert CharacteristicKind.ON not in service.characteristics
    assert service.get_characteristic(CharacteristicKind.ACTIVE).value is Active.ACTIVE


@pytest.mark.parametrize(
    ("device_type", "service"),
    [
        ("devices.types.light", ServiceKind.LIGHTBULB),
        ("devices.types.socket", ServiceKind.OUTLET),
        ("devices.types.other", ServiceKind.SWITCH),
    ],
)
def test_on_off_service_follows_device_type(device_type, service) -> None:
    device = make_device(device_type)
    OnOffBinding(on_off(False), device)

    found = device.accessory.get_service(service)
    assert found is not None
    assert found.get_characteristic(CharacteristicKind.ON).value is False


@pytest.mark.asyncio
async def test_on_off_write_is_sent_immediately() -> None:
    """A local write posts one action and updates the held state."""

    controller = FakeController()
    device = make_device(controller=controller)
    binding = OnOffBinding(on_off(False), device)
    power = binding.characteristic

    await power.async_handle_set(True)

    assert controller.calls == [
        (
            "lamp-1",
            [
                {
                    "type": "devices.capabilities.on_off",
                    "state": {"instance": "on", "value": True},
                }
            ],
        )
    ]
    assert binding.item.state.value is True
    assert await power.async_handle_get() is True


@pytest.mark.asyncio
async def test_on_off_write_without_state_defaults_instance() -> None:
    controller = FakeController()
    device = make_device("devices.types.purifier", controller)
    binding = OnOffBinding(on_off(None), device)

    await binding.characteristic.async_handle_set(Active.ACTIVE)

    action = controller.calls[0][1][0]
    assert action["state"] == {"instance": "on", "value": True}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        httpx.ConnectError("offline"),
        YandexApiError("devices/actions failed: ERROR"),
        NotAuthorizedError("no refresh token"),
        OSError("disk full"),
    ],
)
async def test_outbound_failures_keep_optimistic_state(error) -> None:
    """Failed writes are logged and the local value is kept."""

    controller = FakeController(error)
    device = make_device(controller=controller)
    binding = OnOffBinding(on_off(False), device)

    await binding.characteristic.async_handle_set(True)

    assert len(controller.calls) == 1
    assert binding.item.state.value is True
    assert binding.characteristic.value is True


def test_on_off_update_pushes_changes_only() -> None:
    device = make_device()
    binding = OnOffBinding(on_off(False, 1), device)
    pushed: list[Any] = []
    binding.characteristic.subscribe(pushed.append)

    binding.update(on_off(False, 2), 2)
    binding.update(on_off(True, 3), 3)

    assert pushed == [True]


@pytest.mark.asyncio
async def test_brightness_is_scaled_and_rounded() -> None:
    """Brightness is scaled to the declared range at its precision."""

    controller = FakeController()
    device = make_device(controller=controller)
    binding = RangeBinding(brightness(50.5, 1, min=1, max=100, precision=1), device)

    assert binding.characteristic.value == pytest.approx(50)
    await binding.characteristic.async_handle_set(25)

    state = controller.calls[0][1][0]["state"]
    assert state == {"instance": "brightness", "value": 26}
    read_back = await binding.characteristic.async_handle_get()
    assert read_back == 25
    assert isinstance(read_back, int)


def test_range_binding_only_supports_brightness() -> None:
    volume = Capability(
        type="devices.capabilities.range",
        parameters={"instance": "volume", "range": {"min": 0, "max": 100}},
    )
    assert capability_binding_for(volume) is None
    assert capability_binding_for(brightness(10)) is RangeBinding
    assert capability_binding_for(Capability(type="devices.capabilities.mode")) is None


def test_range_binding_on_tv_uses_television_service() -> None:
    device = make_device("devices.types.media_device.tv")
    binding = RangeBinding(brightness(10), device)

    assert binding.service_kind is ServiceKind.TELEVISION


def test_color_setting_seeds_from_hsv_state() -> None:
    device = make_device()
    binding = ColorSettingBinding(
        color_setting(
            CapabilityState(instance="hsv", value={"h": 120, "s": 60, "v": 100}), 5
        ),
        device,
    )

    assert binding.hue.value == 120
    assert binding.saturation.value == 60
    assert binding.value.updated_at == 5
    assert binding.value.mode == "color"


def test_color_setting_seeds_from_temperature_state() -> None:
    device = make_device()
    binding = ColorSettingBinding(
        color_setting(CapabilityState(instance="temperature_k", value=6500), 5),
        device,
    )

    assert binding.temperature.value == 500
    assert binding.value.mode == "temperature_k"
    assert 20 < binding.hue.value < 40


@pytest.mark.asyncio
async def test_color_writes_are_debounced_into_one_action() -> None:
    """Hue then saturation from a color picker produce a single action."""

    controller = FakeController()
    device = make_device(controller=controller)
    binding = ColorSettingBinding(
        color_setting(CapabilityState(instance="hsv", value={"h": 0, "s": 0, "v": 100})),
        device,
    )

    await binding.hue.async_handle_set(240)
    await binding.saturation.async_handle_set(50)
    await binding.hue.async_handle_set(200)
    assert controller.calls == []
    await binding.debouncer.async_wait()

    assert controller.calls == [
        (
            "lamp-1",
            [
                {
                    "type": "devices.capabilities.color_setting",
                    "state": {"instance": "hsv", "value": {"h": 200, "s": 50, "v": 100}},
                }
            ],
        )
    ]
    assert binding.item.state.instance == "hsv"


@pytest.mark.asyncio
async def test_debounced_color_failure_is_logged(caplog) -> None:
    """Errors raised while flushing a color write never escape the binding."""

    controller = FakeController(OSError("disk full"))
    device = make_device(controller=controller)
    binding = ColorSettingBinding(color_setting(None), device)

    await binding.hue.async_handle_set(120)
    await binding.debouncer.async_wait()
    await binding.async_send_state()

    assert len(controller.calls) == 2
    assert "Unexpected error sending devices.capabilities.color_setting" in caplog.text
    assert binding.value.hue == 120


@pytest.mark.asyncio
async def test_rgb_lamp_receives_packed_color() -> None:
    controller = FakeController()
    device = make_device(controller=controller)
    binding = ColorSettingBinding(color_setting(None, color_model="rgb"), device)

    await binding.hue.async_handle_set(0)
    await binding.saturation.async_handle_set(100)
    await binding.debouncer.async_wait()

    state = controller.calls[-1][1][0]["state"]
    assert state == {"instance": "rgb", "value": 0xFF0000}


@pytest.mark.asyncio
async def test_last_written_mode_decides_payload() -> None:
    """A temperature written after a color sends the temperature."""

    controller = FakeController()
    device = make_device(controller=controller)
    binding = ColorSettingBinding(color_setting(None), device)

    await binding.hue.async_handle_set(100)
    await binding.temperature.async_handle_set(320)
    await binding.debouncer.async_wait()

    state = controller.calls[-1][1][0]["state"]
    assert state == {"instance": "temperature_k", "value": 4600}


@pytest.mark.asyncio
async def test_stale_remote_color_is_ignored_after_local_write() -> None:
    """Remote states older than the last local write do not override it."""

    controller = FakeController()
    device = make_device(controller=controller)
    binding = ColorSettingBinding(
        color_setting(CapabilityState(instance="hsv", value={"h": 10, "s": 10, "v": 100}), 1),
        device,
    )

    await binding.hue.async_handle_set(180)
    stale = time.time() - 60
    binding.update(
        color_setting(CapabilityState(instance="hsv", value={"h": 10, "s": 10, "v": 100}), stale),
        stale,
    )
    assert binding.value.hue == 180

    fresh = time.time() + 60
    binding.update(
        color_setting(CapabilityState(instance="hsv", value={"h": 90, "s": 30, "v": 100}), fresh),
        fresh,
    )
    assert binding.value.hue == 90
    assert binding.hue.value == 90
    assert binding.value.updated_at == fresh
    await binding.debouncer.async_wait()


def test_remote_temperature_updates_temperature_characteristic() -> None:
    device = make_device()
    binding = ColorSettingBinding(
        color_setting(CapabilityState(instance="hsv", value={"h": 10, "s": 10, "v": 100}), 1),
        device,
    )
    pushed: list[Any] = []
    binding.temperature.subscribe(pushed.append)

    binding.update(
        color_setting(CapabilityState(instance="temperature_k", value=6500), 2), 2
    )

    assert pushed == [500]
    assert binding.value.mode == "temperature_k"


@pytest.mark.asyncio
async def test_destroyed_color_binding_still_flushes_pending_send() -> None:
    controller = FakeController()
    device = make_device(controller=controller)
    binding = ColorSettingBinding(color_setting(None), device)

    await binding.hue.async_handle_set(30)
    binding.destroy()
    await binding.debouncer.async_wait()

    assert len(controller.calls) == 1
    assert not binding.hue.has_set_callback
    assert device.accessory.get_service(ServiceKind.LIGHTBULB) is None
