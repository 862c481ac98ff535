"""Bindings for controllable device capabilities."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

import httpx

from ..accessory import Characteristic, CharacteristicKind, ServiceKind
from ..adapters import (
    ActiveAdapter,
    BooleanAdapter,
    ColorModelAdapter,
    ColorTemperatureAdapter,
    RangeAdapter,
)
from ..api import YandexApiError
from ..color import mired_to_hs
from ..const import LOCAL_MIRED_MIN, CapabilityType, DeviceType
from ..models import Capability, CapabilityState
from .base import Binding, resolve_override
from .debounce import Debouncer

_LOGGER = logging.getLogger(__name__)

MODE_TEMPERATURE = "temperature_k"
MODE_COLOR = "color"


class CapabilityBinding(Binding[Capability]):
    """Base class for capability bindings that write back to the remote."""

    async def async_send(self, state: CapabilityState) -> None:
        """Record ``state`` optimistically and post it as a single action.

        Failures are logged and dropped; the next fetch resynchronizes the
        local value.
        """

        self.apply_outbound(state)
        action = {"type": self._item.type, "state": state.model_dump()}
        try:
            await self._device.async_set_state([action])
        except (httpx.HTTPError, YandexApiError) as err:
            _LOGGER.warning(
                "Failed to send %s to %s: %s", self._item.type, self._device.id, err
            )
        except Exception:
            _LOGGER.exception(
                "Unexpected error sending %s to %s", self._item.type, self._device.id
            )


class ImmediateCapabilityBinding(CapabilityBinding):
    """Single characteristic capability written through without delay."""

    default_characteristic: CharacteristicKind
    characteristic_kinds: Mapping[str, CharacteristicKind] = {}
    default_instance: str

    def initialize(self) -> None:
        """Bind the characteristic and its read/write callbacks."""

        kind = resolve_override(
            self.characteristic_kinds, self._device.type, self.default_characteristic
        )
        self.characteristic = self.service.get_characteristic(kind)
        if self._item.state is not None:
            self.characteristic.set_value(self._local_value(self._item.state.value))
        self.characteristic.on_get(self._handle_get)
        self.characteristic.on_set(self.async_handle_set)

    @property
    def characteristics(self) -> tuple[Characteristic, ...]:
        return (self.characteristic,)

    def _handle_get(self) -> Any:
        if self._item.state is None:
            return None
        return self._local_value(self._item.state.value)

    def _instance(self) -> str:
        if self._item.state is not None:
            return self._item.state.instance
        return self._item.instance or self.default_instance

    def _local_value(self, value: Any) -> Any:
        return self.adapter.to_local(value)

    def _remote_value(self, value: Any) -> Any:
        return self.adapter.to_remote(value)

    async def async_handle_set(self, value: Any) -> None:
        """Forward a local write to the remote platform."""

        state = CapabilityState(instance=self._instance(), value=self._remote_value(value))
        await self.async_send(state)

    def update(self, item: Capability, updated_at: float) -> None:
        """Apply a fetched state, pushing it only when the local value differs."""

        if item.state is None:
            return
        self.apply_inbound(item)
        value = self._local_value(item.state.value)
        if value != self.characteristic.value:
            self.characteristic.update_value(value)


class OnOffBinding(ImmediateCapabilityBinding):
    """Power state mapped onto ``On`` or ``Active``."""

    default_instance = "on"
    default_service = ServiceKind.SWITCH
    services = {
        DeviceType.THERMOSTAT_AC.value: ServiceKind.HEATER_COOLER,
        DeviceType.TV.value: ServiceKind.TELEVISION,
        DeviceType.SOCKET.value: ServiceKind.OUTLET,
        DeviceType.LIGHT.value: ServiceKind.LIGHTBULB,
        DeviceType.PURIFIER.value: ServiceKind.AIR_PURIFIER,
    }
    default_adapter = BooleanAdapter
    adapters = {
        DeviceType.THERMOSTAT_AC.value: ActiveAdapter,
        DeviceType.TV.value: ActiveAdapter,
        DeviceType.PURIFIER.value: ActiveAdapter,
    }
    default_characteristic = CharacteristicKind.ON
    characteristic_kinds = {
        DeviceType.THERMOSTAT_AC.value: CharacteristicKind.ACTIVE,
        DeviceType.TV.value: CharacteristicKind.ACTIVE,
        DeviceType.PURIFIER.value: CharacteristicKind.ACTIVE,
    }


class RangeBinding(ImmediateCapabilityBinding):
    """Brightness range mapped onto the local 0..100 scale."""

    default_instance = "brightness"
    default_service = ServiceKind.LIGHTBULB
    services = {DeviceType.TV.value: ServiceKind.TELEVISION}
    default_adapter = RangeAdapter
    default_characteristic = CharacteristicKind.BRIGHTNESS

    @classmethod
    def supports(cls, item: Capability) -> bool:
        return item.instance == "brightness"

    def _local_value(self, value: Any) -> int:
        return round(self.adapter.to_local(value))

    def _remote_value(self, value: Any) -> Any:
        remote = self.adapter.to_remote(value)
        precision = (self.params.get("range") or {}).get("precision")
        if not precision:
            return remote
        remote = round(remote / precision) * precision
        if float(precision).is_integer():
            return int(remote)
        return remote


@dataclass(slots=True)
class ColorState:
    """Locally held color, reconciled between hue/saturation and temperature."""

    temp: float = 0
    hue: float = 0
    saturation: float = 0
    updated_at: float = 0
    mode: str = MODE_COLOR


class ColorSettingBinding(CapabilityBinding):
    """Hue, saturation and color temperature of a light.

    The remote reports either a color or a color temperature, never both,
    so the binding keeps its own :class:`ColorState` and remembers which of
    the two was written last. Local writes are debounced; the payload is
    built when the debouncer flushes.
    """

    default_service = ServiceKind.LIGHTBULB
    default_adapter = ColorModelAdapter

    def initialize(self) -> None:
        """Bind the three color characteristics and the debounced sender."""

        self.temperature_adapter = ColorTemperatureAdapter(self.params)
        self.hue = self.service.get_characteristic(CharacteristicKind.HUE)
        self.saturation = self.service.get_characteristic(CharacteristicKind.SATURATION)
        self.temperature = self.service.get_characteristic(
            CharacteristicKind.COLOR_TEMPERATURE
        )
        self.value = ColorState()
        derived = self._derive(self._item.state)
        if derived is not None:
            self.value = replace(derived, updated_at=self._item.last_updated)
            if self.value.temp:
                self.temperature.set_value(self.value.temp)
            self.hue.set_value(self.value.hue)
            self.saturation.set_value(self.value.saturation)

        self.debouncer = Debouncer(
            self.async_send_state,
            wait=self._device.debounce_wait,
            max_wait=self._device.debounce_max_wait,
        )

        self.temperature.on_get(lambda: self.value.temp or LOCAL_MIRED_MIN)
        self.temperature.on_set(self._handle_set_temperature)
        self.hue.on_get(lambda: self.value.hue)
        self.hue.on_set(self._handle_set_hue)
        self.saturation.on_get(lambda: self.value.saturation)
        self.saturation.on_set(self._handle_set_saturation)

    @property
    def characteristics(self) -> tuple[Characteristic, ...]:
        return (self.hue, self.saturation, self.temperature)

    def _derive(self, state: CapabilityState | None) -> ColorState | None:
        if state is None:
            return None
        if state.instance == MODE_TEMPERATURE:
            temp = self.temperature_adapter.to_local(state.value)
            hue, saturation = mired_to_hs(temp)
            return ColorState(
                temp=temp, hue=hue, saturation=saturation, mode=MODE_TEMPERATURE
            )
        if state.instance in ("rgb", "hsv"):
            local = self.adapter.to_local(
                {"instance": state.instance, "value": state.value}
            )
            return ColorState(
                temp=self.value.temp,
                hue=local["hue"],
                saturation=local["saturation"],
                mode=MODE_COLOR,
            )
        return None

    def _handle_set_temperature(self, value: float) -> None:
        hue, saturation = mired_to_hs(value)
        self.value = ColorState(
            temp=value,
            hue=hue,
            saturation=saturation,
            updated_at=time.time(),
            mode=MODE_TEMPERATURE,
        )
        self.debouncer()

    def _handle_set_hue(self, value: float) -> None:
        self.value = replace(
            self.value, hue=value, updated_at=time.time(), mode=MODE_COLOR
        )
        self.debouncer()

    def _handle_set_saturation(self, value: float) -> None:
        self.value = replace(
            self.value, saturation=value, updated_at=time.time(), mode=MODE_COLOR
        )
        self.debouncer()

    def outbound_state(self) -> CapabilityState:
        """Build the remote state from the most recent local intent."""

        if self.value.mode == MODE_TEMPERATURE:
            return CapabilityState(
                instance=MODE_TEMPERATURE,
                value=self.temperature_adapter.to_remote(self.value.temp),
            )
        return CapabilityState.model_validate(
            self.adapter.to_remote(
                {"hue": self.value.hue, "saturation": self.value.saturation}
            )
        )

    async def async_send_state(self) -> None:
        """Send the debounced color to the remote platform."""

        _LOGGER.debug("Sending debounced color to %s", self._device.id)
        await self.async_send(self.outbound_state())

    def update(self, item: Capability, updated_at: float) -> None:
        """Apply a fetched color unless a newer local write is held."""

        if item.state is None or updated_at <= self.value.updated_at:
            return
        derived = self._derive(item.state)
        if derived is None:
            return
        self.apply_inbound(item)
        self.value = replace(derived, updated_at=updated_at)
        if self.value.mode == MODE_TEMPERATURE:
            self.temperature.update_value(self.value.temp)
        self.hue.update_value(self.value.hue)
        self.saturation.update_value(self.value.saturation)


CAPABILITY_BINDINGS: dict[str, type[CapabilityBinding]] = {
    CapabilityType.ON_OFF.value: OnOffBinding,
    CapabilityType.RANGE.value: RangeBinding,
    CapabilityType.COLOR_SETTING.value: ColorSettingBinding,
}


def capability_binding_for(item: Capability) -> type[CapabilityBinding] | None:
    """Return the binding class for ``item`` or None when unsupported."""

    binding_cls = CAPABILITY_BINDINGS.get(item.type)
    if binding_cls is None or not binding_cls.supports(item):
        return None
    return binding_cls
