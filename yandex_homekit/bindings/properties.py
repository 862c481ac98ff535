"""Bindings for read-mostly device properties (measurements and events)."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pyhap.characteristic import PROP_MAX_VALUE, PROP_MIN_VALUE

from ..accessory import Characteristic, CharacteristicKind, ServiceKind
from ..adapters import (
    AirQualityAdapter,
    EventStateAdapter,
    LowBatteryAdapter,
    MotionAdapter,
    NumberAdapter,
    SwitchEventAdapter,
    TemperatureAdapter,
)
from ..const import DeviceType, PropertyType
from ..models import Property
from .base import Binding

_LOGGER = logging.getLogger(__name__)


class PropertyBinding(Binding[Property]):
    """Bind one property instance to a single local characteristic."""

    characteristic_kind: CharacteristicKind
    characteristic_properties: Mapping[str, Any] = {}

    def initialize(self) -> None:
        """Seed the characteristic and serve reads from the owned record."""

        self.characteristic = self.service.get_characteristic(self.characteristic_kind)
        if self.characteristic_properties:
            self.characteristic.override_properties(self.characteristic_properties)
        if self._item.state is not None:
            self.characteristic.set_value(self._local_value(self._item.state.value))
        self.characteristic.on_get(self._handle_get)

    @property
    def characteristics(self) -> tuple[Characteristic, ...]:
        return (self.characteristic,)

    def _local_value(self, value: Any) -> Any:
        return self.adapter.to_local(value)

    def _handle_get(self) -> Any:
        if self._item.state is None:
            return None
        return self._local_value(self._item.state.value)


class FloatPropertyBinding(PropertyBinding):
    """Measurement property; pushes a value only when it changes."""

    def update(self, item: Property, updated_at: float) -> None:
        """Apply a fetched measurement."""

        if item.state is None:
            return
        # Compared against the held reading: HAP-python rounds stored values
        # to the characteristic's minStep.
        previous = self._handle_get()
        self.apply_inbound(item)
        value = self._local_value(item.state.value)
        if value != previous:
            self.characteristic.update_value(value)


class EventPropertyBinding(PropertyBinding):
    """Discrete event property.

    An event is reported when either the value differs from the previously
    held one or the remote timestamp moved past the last seen event. The
    last seen timestamp advances on every update so repeats are not
    replayed and same-value events are not missed.
    """

    def initialize(self) -> None:
        """Remember the timestamp of the event already reflected locally."""

        self.last_event = (self._item.state_changed_at or 0) if self._item.state else 0
        super().initialize()

    def _local_value(self, value: Any, changed: bool = True) -> Any:
        return self.adapter.to_local(value, changed)

    def update(self, item: Property, updated_at: float) -> None:
        """Apply a fetched event, emitting it at most once."""

        if item.state is not None:
            previous = self._item.state.value if self._item.state is not None else None
            changed = item.state.value != previous or updated_at > self.last_event
            value = self._local_value(item.state.value, changed)
            self.apply_inbound(item)
            self.characteristic.update_value(value)
        self.last_event = updated_at


class TemperatureBinding(FloatPropertyBinding):
    characteristic_kind = CharacteristicKind.CURRENT_TEMPERATURE
    characteristic_properties = {PROP_MIN_VALUE: -273.1, PROP_MAX_VALUE: 1000}
    default_service = ServiceKind.TEMPERATURE_SENSOR
    services = {
        DeviceType.SENSOR_CLIMATE.value: ServiceKind.TEMPERATURE_SENSOR,
        DeviceType.THERMOSTAT.value: ServiceKind.THERMOSTAT,
        DeviceType.THERMOSTAT_AC.value: ServiceKind.HEATER_COOLER,
    }
    default_adapter = TemperatureAdapter


class HumidityBinding(FloatPropertyBinding):
    characteristic_kind = CharacteristicKind.CURRENT_RELATIVE_HUMIDITY
    default_service = ServiceKind.HUMIDITY_SENSOR
    services = {
        DeviceType.SENSOR_CLIMATE.value: ServiceKind.HUMIDITY_SENSOR,
        DeviceType.THERMOSTAT.value: ServiceKind.THERMOSTAT,
        DeviceType.THERMOSTAT_AC.value: ServiceKind.HEATER_COOLER,
        DeviceType.HUMIDIFIER.value: ServiceKind.HUMIDIFIER_DEHUMIDIFIER,
    }
    default_adapter = NumberAdapter


class IlluminationBinding(FloatPropertyBinding):
    characteristic_kind = CharacteristicKind.CURRENT_AMBIENT_LIGHT_LEVEL
    default_service = ServiceKind.LIGHT_SENSOR


class PM25Binding(FloatPropertyBinding):
    characteristic_kind = CharacteristicKind.PM2_5_DENSITY
    default_service = ServiceKind.AIR_QUALITY_SENSOR


class PM10Binding(FloatPropertyBinding):
    characteristic_kind = CharacteristicKind.PM10_DENSITY
    default_service = ServiceKind.AIR_QUALITY_SENSOR


class TVOCBinding(FloatPropertyBinding):
    characteristic_kind = CharacteristicKind.VOC_DENSITY
    default_service = ServiceKind.AIR_QUALITY_SENSOR


class AirQualityBinding(FloatPropertyBinding):
    characteristic_kind = CharacteristicKind.AIR_QUALITY
    default_service = ServiceKind.AIR_QUALITY_SENSOR
    default_adapter = AirQualityAdapter


class BatteryLevelBinding(FloatPropertyBinding):
    characteristic_kind = CharacteristicKind.BATTERY_LEVEL
    default_service = ServiceKind.BATTERY


class ButtonBinding(EventPropertyBinding):
    characteristic_kind = CharacteristicKind.PROGRAMMABLE_SWITCH_EVENT
    default_service = ServiceKind.STATELESS_PROGRAMMABLE_SWITCH
    default_adapter = SwitchEventAdapter


class MotionBinding(EventPropertyBinding):
    characteristic_kind = CharacteristicKind.MOTION_DETECTED
    default_service = ServiceKind.MOTION_SENSOR
    default_adapter = MotionAdapter


class LowBatteryBinding(EventPropertyBinding):
    characteristic_kind = CharacteristicKind.STATUS_LOW_BATTERY
    default_service = ServiceKind.BATTERY
    services = {
        DeviceType.SENSOR_SMOKE.value: ServiceKind.SMOKE_SENSOR,
        DeviceType.SENSOR_MOTION.value: ServiceKind.MOTION_SENSOR,
        DeviceType.SENSOR_ILLUMINATION.value: ServiceKind.LIGHT_SENSOR,
        DeviceType.SENSOR_WATER_LEAK.value: ServiceKind.LEAK_SENSOR,
        DeviceType.SENSOR_OPEN.value: ServiceKind.CONTACT_SENSOR,
    }
    default_adapter = LowBatteryAdapter


class ContactBinding(EventPropertyBinding):
    characteristic_kind = CharacteristicKind.CONTACT_SENSOR_STATE
    default_service = ServiceKind.CONTACT_SENSOR
    default_adapter = EventStateAdapter


class WaterLeakBinding(EventPropertyBinding):
    characteristic_kind = CharacteristicKind.LEAK_DETECTED
    default_service = ServiceKind.LEAK_SENSOR
    default_adapter = EventStateAdapter


class SmokeBinding(EventPropertyBinding):
    characteristic_kind = CharacteristicKind.SMOKE_DETECTED
    default_service = ServiceKind.SMOKE_SENSOR
    default_adapter = EventStateAdapter


class GasBinding(EventPropertyBinding):
    characteristic_kind = CharacteristicKind.CARBON_MONOXIDE_DETECTED
    default_service = ServiceKind.CARBON_MONOXIDE_SENSOR
    default_adapter = EventStateAdapter


PROPERTY_BINDINGS: dict[tuple[str, str], type[PropertyBinding]] = {
    (PropertyType.FLOAT.value, "temperature"): TemperatureBinding,
    (PropertyType.FLOAT.value, "humidity"): HumidityBinding,
    (PropertyType.FLOAT.value, "illumination"): IlluminationBinding,
    (PropertyType.FLOAT.value, "pm2.5_density"): PM25Binding,
    (PropertyType.FLOAT.value, "pm10_density"): PM10Binding,
    (PropertyType.FLOAT.value, "tvoc"): TVOCBinding,
    (PropertyType.FLOAT.value, "air_quality"): AirQualityBinding,
    (PropertyType.FLOAT.value, "battery_level"): BatteryLevelBinding,
    (PropertyType.EVENT.value, "button"): ButtonBinding,
    (PropertyType.EVENT.value, "motion"): MotionBinding,
    (PropertyType.EVENT.value, "battery_level"): LowBatteryBinding,
    (PropertyType.EVENT.value, "open"): ContactBinding,
    (PropertyType.EVENT.value, "water_leak"): WaterLeakBinding,
    (PropertyType.EVENT.value, "smoke"): SmokeBinding,
    (PropertyType.EVENT.value, "gas"): GasBinding,
}


def property_binding_for(item: Property) -> type[PropertyBinding] | None:
    """Return the binding class for ``item`` or None when unsupported."""

    binding_cls = PROPERTY_BINDINGS.get((item.type, item.instance or ""))
    if binding_cls is None or not binding_cls.supports(item):
        return None
    return binding_cls
