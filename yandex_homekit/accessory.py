"""Accessory handles consumed by the bridge bindings, backed by HAP-python.

The bindings only ever talk to the narrow surface defined here: an accessory
hands out services, a service hands out characteristics, and a characteristic
stores a value plus optional read/write callbacks. Each handle wraps the
matching :mod:`pyhap` object, so values live in the HAP-python
characteristics and pushed updates reach paired controllers once the bridge
is added to an :class:`~pyhap.accessory_driver.AccessoryDriver`.
"""

from __future__ import annotations

import asyncio
import hashlib
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum, IntEnum
from typing import Any

from pyhap.accessory import Accessory as HAPAccessory
from pyhap.accessory import Bridge as HAPBridge
from pyhap.accessory_driver import AccessoryDriver
from pyhap.characteristic import Characteristic as HAPCharacteristic
from pyhap.const import (
    CATEGORY_AIR_PURIFIER,
    CATEGORY_BRIDGE,
    CATEGORY_CAMERA,
    CATEGORY_HUMIDIFIER,
    CATEGORY_LIGHTBULB,
    CATEGORY_OTHER,
    CATEGORY_OUTLET,
    CATEGORY_PROGRAMMABLE_SWITCH,
    CATEGORY_SENSOR,
    CATEGORY_SWITCH,
    CATEGORY_TELEVISION,
    CATEGORY_THERMOSTAT,
    CATEGORY_WINDOW_COVERING,
    STANDALONE_AID,
)
from pyhap.service import Service as HAPService

from .const import DeviceType

_LOGGER = logging.getLogger(__name__)

_ACCESSORY_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "yandex-homekit")

GetCallback = Callable[[], Any]
SetCallback = Callable[[Any], Awaitable[None] | None]
Topology = dict[int, tuple[tuple[str, tuple[str, ...]], ...]]


class ServiceKind(str, Enum):
    """HAP services the bindings attach characteristics to."""

    ACCESSORY_INFORMATION = "AccessoryInformation"
    AIR_PURIFIER = "AirPurifier"
    AIR_QUALITY_SENSOR = "AirQualitySensor"
    BATTERY = "BatteryService"
    CONTACT_SENSOR = "ContactSensor"
    HEATER_COOLER = "HeaterCooler"
    HUMIDIFIER_DEHUMIDIFIER = "HumidifierDehumidifier"
    HUMIDITY_SENSOR = "HumiditySensor"
    LEAK_SENSOR = "LeakSensor"
    LIGHT_SENSOR = "LightSensor"
    LIGHTBULB = "Lightbulb"
    MOTION_SENSOR = "MotionSensor"
    OUTLET = "Outlet"
    SMOKE_SENSOR = "SmokeSensor"
    CARBON_MONOXIDE_SENSOR = "CarbonMonoxideSensor"
    STATELESS_PROGRAMMABLE_SWITCH = "StatelessProgrammableSwitch"
    SWITCH = "Switch"
    TELEVISION = "Television"
    TEMPERATURE_SENSOR = "TemperatureSensor"
    THERMOSTAT = "Thermostat"


class CharacteristicKind(str, Enum):
    """HAP characteristics exposed by the services above."""

    ACTIVE = "Active"
    AIR_QUALITY = "AirQuality"
    BATTERY_LEVEL = "BatteryLevel"
    BRIGHTNESS = "Brightness"
    CARBON_MONOXIDE_DETECTED = "CarbonMonoxideDetected"
    COLOR_TEMPERATURE = "ColorTemperature"
    CONTACT_SENSOR_STATE = "ContactSensorState"
    CURRENT_AMBIENT_LIGHT_LEVEL = "CurrentAmbientLightLevel"
    CURRENT_RELATIVE_HUMIDITY = "CurrentRelativeHumidity"
    CURRENT_TEMPERATURE = "CurrentTemperature"
    FIRMWARE_REVISION = "FirmwareRevision"
    HUE = "Hue"
    LEAK_DETECTED = "LeakDetected"
    MANUFACTURER = "Manufacturer"
    MODEL = "Model"
    MOTION_DETECTED = "MotionDetected"
    NAME = "Name"
    ON = "On"
    PM10_DENSITY = "PM10Density"
    PM2_5_DENSITY = "PM2.5Density"
    PROGRAMMABLE_SWITCH_EVENT = "ProgrammableSwitchEvent"
    SATURATION = "Saturation"
    SERIAL_NUMBER = "SerialNumber"
    SMOKE_DETECTED = "SmokeDetected"
    STATUS_LOW_BATTERY = "StatusLowBattery"
    VOC_DENSITY = "VOCDensity"


class Active(IntEnum):
    """Values of the ``Active`` characteristic."""

    INACTIVE = 0
    ACTIVE = 1


class ProgrammableSwitchEvent(IntEnum):
    """Values of the ``ProgrammableSwitchEvent`` characteristic."""

    SINGLE_PRESS = 0
    DOUBLE_PRESS = 1
    LONG_PRESS = 2


class StatusLowBattery(IntEnum):
    """Values of the ``StatusLowBattery`` characteristic."""

    BATTERY_LEVEL_NORMAL = 0
    BATTERY_LEVEL_LOW = 1


class ContactSensorState(IntEnum):
    """Values of the ``ContactSensorState`` characteristic."""

    CONTACT_DETECTED = 0
    CONTACT_NOT_DETECTED = 1


class LeakDetected(IntEnum):
    """Values of the ``LeakDetected`` characteristic."""

    LEAK_NOT_DETECTED = 0
    LEAK_DETECTED = 1


class SmokeDetected(IntEnum):
    """Values of the ``SmokeDetected`` characteristic."""

    SMOKE_NOT_DETECTED = 0
    SMOKE_DETECTED = 1


class CarbonMonoxideDetected(IntEnum):
    """Values of the ``CarbonMonoxideDetected`` characteristic."""

    CO_LEVELS_NORMAL = 0
    CO_LEVELS_ABNORMAL = 1


class AirQuality(IntEnum):
    """Values of the ``AirQuality`` characteristic."""

    UNKNOWN = 0
    EXCELLENT = 1
    GOOD = 2
    FAIR = 3
    INFERIOR = 4
    POOR = 5


class Category(IntEnum):
    """Accessory categories announced to controllers."""

    OTHER = CATEGORY_OTHER
    BRIDGE = CATEGORY_BRIDGE
    LIGHTBULB = CATEGORY_LIGHTBULB
    OUTLET = CATEGORY_OUTLET
    SWITCH = CATEGORY_SWITCH
    THERMOSTAT = CATEGORY_THERMOSTAT
    SENSOR = CATEGORY_SENSOR
    WINDOW_COVERING = CATEGORY_WINDOW_COVERING
    PROGRAMMABLE_SWITCH = CATEGORY_PROGRAMMABLE_SWITCH
    CAMERA = CATEGORY_CAMERA
    AIR_PURIFIER = CATEGORY_AIR_PURIFIER
    HUMIDIFIER = CATEGORY_HUMIDIFIER
    TELEVISION = CATEGORY_TELEVISION


_CATEGORIES: dict[str, Category] = {
    DeviceType.LIGHT.value: Category.LIGHTBULB,
    DeviceType.SOCKET.value: Category.OUTLET,
    DeviceType.SWITCH.value: Category.SWITCH,
    DeviceType.THERMOSTAT.value: Category.THERMOSTAT,
    DeviceType.THERMOSTAT_AC.value: Category.THERMOSTAT,
    DeviceType.HUMIDIFIER.value: Category.HUMIDIFIER,
    DeviceType.PURIFIER.value: Category.AIR_PURIFIER,
    DeviceType.TV.value: Category.TELEVISION,
    DeviceType.CAMERA.value: Category.CAMERA,
    DeviceType.CURTAIN.value: Category.WINDOW_COVERING,
    DeviceType.SENSOR_BUTTON.value: Category.PROGRAMMABLE_SWITCH,
}


def category_for(device_type: str) -> Category:
    """Return the accessory category announced for ``device_type``.

    Remote hubs are announced as plain accessories: only the bridge itself
    may carry the bridge category.
    """

    category = _CATEGORIES.get(device_type)
    if category is not None:
        return category
    if device_type.startswith(DeviceType.SENSOR.value):
        return Category.SENSOR
    return Category.OTHER


def accessory_uuid(device_id: str) -> str:
    """Return a stable accessory UUID for a remote device identifier."""

    return str(uuid.uuid5(_ACCESSORY_NAMESPACE, f"yhk.accessory.{device_id}"))


def accessory_aid(device_id: str) -> int:
    """Return a stable 32-bit accessory id that never clashes with the bridge."""

    aid = uuid.UUID(accessory_uuid(device_id)).int & 0xFFFFFFFF
    if aid <= STANDALONE_AID:
        aid += STANDALONE_AID + 1
    return aid


def text_to_pin(text: str) -> str:
    """Derive a deterministic ``XXX-XX-XXX`` setup code from ``text``."""

    digest = int(hashlib.sha1(text.encode("utf-8")).hexdigest(), 16)
    digits = str(digest % 100_000_000).rjust(8, "0")
    return f"{digits[:3]}-{digits[3:5]}-{digits[5:]}"


class Characteristic:
    """Binding-facing handle on a HAP-python characteristic."""

    def __init__(self, kind: CharacteristicKind, hap: HAPCharacteristic) -> None:
        """Wrap ``hap`` as a characteristic of ``kind``."""

        self.kind = kind
        self.hap = hap
        self._get_callback: GetCallback | None = None
        self._set_callback: SetCallback | None = None
        self._subscribers: list[Callable[[Any], None]] = []
        self._writes: set[asyncio.Task[None]] = set()

    @property
    def value(self) -> Any:
        return self.hap.value

    @property
    def has_get_callback(self) -> bool:
        """Return True when a read callback is registered."""

        return self._get_callback is not None

    @property
    def has_set_callback(self) -> bool:
        """Return True when a write callback is registered."""

        return self._set_callback is not None

    def override_properties(self, properties: Mapping[str, Any]) -> None:
        """Replace HAP metadata such as ``minValue`` and ``maxValue``."""

        self.hap.override_properties(properties=dict(properties))

    def set_value(self, value: Any) -> None:
        """Store ``value`` without notifying controllers."""

        if value is None:
            return
        self.hap.set_value(value, should_notify=False)

    def update_value(self, value: Any) -> None:
        """Store ``value`` and push it to subscribers and paired controllers.

        ``None`` means "nothing to report" and is ignored.
        """

        if value is None:
            return
        self.hap.set_value(value)
        for subscriber in list(self._subscribers):
            subscriber(value)

    def subscribe(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register ``callback`` for pushed values and return an unsubscriber."""

        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def on_get(self, callback: GetCallback) -> None:
        self._get_callback = callback
        self.hap.getter_callback = self._read

    def on_set(self, callback: SetCallback) -> None:
        self._set_callback = callback
        self.hap.setter_callback = self._handle_controller_write

    def remove_on_get(self) -> None:
        self._get_callback = None
        self.hap.getter_callback = None

    def remove_on_set(self) -> None:
        self._set_callback = None
        self.hap.setter_callback = None

    def _read(self) -> Any:
        value = self._get_callback() if self._get_callback is not None else None
        return self.hap.value if value is None else value

    def _handle_controller_write(self, value: Any) -> None:
        # HAP-python has already stored the value and calls this from the
        # event loop serving the controller.
        task = asyncio.get_running_loop().create_task(self._async_call_set(value))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def _async_call_set(self, value: Any) -> None:
        if self._set_callback is None:
            return
        result = self._set_callback(value)
        if inspect.isawaitable(result):
            await result

    async def async_handle_get(self) -> Any:
        """Serve a read, refreshing the value from the read callback."""

        if self._get_callback is not None:
            self.set_value(self._get_callback())
        return self.hap.value

    async def async_handle_set(self, value: Any) -> None:
        """Apply a write and run the write callback."""

        self.hap.set_value(value, should_notify=False)
        await self._async_call_set(value)


class Service:
    """Binding-facing handle on a HAP-python service."""

    def __init__(self, kind: ServiceKind, hap: HAPService, accessory: Accessory) -> None:
        """Wrap ``hap``, a service attached to ``accessory``."""

        self.kind = kind
        self.hap = hap
        self._accessory = accessory
        self._characteristics: dict[CharacteristicKind, Characteristic] = {}

    @property
    def characteristics(self) -> dict[CharacteristicKind, Characteristic]:
        """Return the characteristics handed out so far."""

        return dict(self._characteristics)

    def get_characteristic(self, kind: CharacteristicKind) -> Characteristic:
        """Return the characteristic of ``kind``, adding it on first use."""

        characteristic = self._characteristics.get(kind)
        if characteristic is not None:
            return characteristic
        hap_char = next(
            (char for char in self.hap.characteristics if char.display_name == kind.value),
            None,
        )
        if hap_char is None:
            hap_char = self._accessory.loader.get_char(kind.value)
            self.hap.add_characteristic(hap_char)
            self._accessory.register_characteristic(hap_char)
        characteristic = Characteristic(kind, hap_char)
        self._characteristics[kind] = characteristic
        return characteristic


class Accessory:
    """Binding-facing handle on a HAP-python accessory."""

    def __init__(
        self,
        driver: AccessoryDriver,
        name: str,
        accessory_id: str,
        *,
        aid: int | None = None,
        category: Category = Category.OTHER,
    ) -> None:
        """Create the HAP accessory and wrap its information service."""

        self.accessory_id = accessory_id
        self.hap = self._create(driver, name, aid)
        self.hap.category = int(category)
        info = ServiceKind.ACCESSORY_INFORMATION
        self._services: dict[ServiceKind, Service] = {
            info: Service(info, self.hap.get_service(info.value), self)
        }

    def _create(
        self, driver: AccessoryDriver, name: str, aid: int | None
    ) -> HAPAccessory:
        return HAPAccessory(driver, name, aid=aid)

    @property
    def name(self) -> str:
        return self.hap.display_name

    @property
    def aid(self) -> int | None:
        return self.hap.aid

    @property
    def category(self) -> Category:
        return Category(self.hap.category)

    @property
    def loader(self) -> Any:
        return self.hap.driver.loader

    @property
    def services(self) -> dict[ServiceKind, Service]:
        """Return the services currently attached."""

        return dict(self._services)

    def get_service(self, kind: ServiceKind) -> Service | None:
        return self._services.get(kind)

    def set_service(self, kind: ServiceKind) -> Service:
        """Return the service of ``kind``, adding it when missing."""

        service = self._services.get(kind)
        if service is None:
            hap_service = self.loader.get_service(kind.value)
            self.hap.add_service(hap_service)
            service = Service(kind, hap_service, self)
            self._services[kind] = service
            _LOGGER.debug("Added %s service to %s", kind.value, self.name)
        return service

    def remove_service(self, kind: ServiceKind) -> None:
        """Detach the service of ``kind`` if present."""

        service = self._services.pop(kind, None)
        if service is None:
            return
        self.hap.services.remove(service.hap)
        for hap_char in service.hap.characteristics:
            self.hap.iid_manager.remove_obj(hap_char)
        self.hap.iid_manager.remove_obj(service.hap)
        _LOGGER.debug("Removed %s service from %s", kind.value, self.name)

    def register_characteristic(self, hap_char: HAPCharacteristic) -> None:
        """Give a characteristic added after its service an id and a broker."""

        hap_char.broker = self.hap
        self.hap.iid_manager.assign(hap_char)

    def set_information(self, **values: Any) -> None:
        """Populate the accessory information service.

        Keyword names map onto characteristic kinds, for example
        ``serial_number="abc"`` sets ``SerialNumber``.
        """

        service = self._services[ServiceKind.ACCESSORY_INFORMATION]
        for key, value in values.items():
            kind = CharacteristicKind[key.upper()]
            service.get_characteristic(kind).set_value(value)
        if "name" in values:
            self.hap.display_name = values["name"]

    def topology(self) -> tuple[tuple[str, tuple[str, ...]], ...]:
        """Return the services and characteristics controllers can see."""

        return tuple(
            (
                service.display_name,
                tuple(char.display_name for char in service.characteristics),
            )
            for service in self.hap.services
        )


class Bridge(Accessory):
    """Accessory bridging many child accessories behind one pairing."""

    def __init__(
        self, driver: AccessoryDriver, name: str, accessory_id: str, **kwargs: Any
    ) -> None:
        """Create the HAP bridge with no bridged accessories."""

        kwargs.setdefault("category", Category.BRIDGE)
        super().__init__(driver, name, accessory_id, **kwargs)
        self._accessories: dict[str, Accessory] = {}

    def _create(
        self, driver: AccessoryDriver, name: str, aid: int | None
    ) -> HAPAccessory:
        return HAPBridge(driver, name)

    @property
    def accessories(self) -> dict[str, Accessory]:
        """Return the bridged accessories keyed by accessory id."""

        return dict(self._accessories)

    def add_bridged_accessory(self, accessory: Accessory) -> None:
        """Attach ``accessory``, moving its aid past any already taken."""

        while (
            accessory.hap.aid is not None
            and (
                accessory.hap.aid == self.hap.aid
                or accessory.hap.aid in self.hap.accessories
            )
        ):
            accessory.hap.aid += 1
        self.hap.add_accessory(accessory.hap)
        self._accessories[accessory.accessory_id] = accessory
        _LOGGER.debug("Bridged accessory %s (aid %s)", accessory.name, accessory.aid)

    def remove_bridged_accessory(self, accessory: Accessory) -> None:
        if self._accessories.pop(accessory.accessory_id, None) is None:
            return
        self.hap.accessories.pop(accessory.hap.aid, None)
        _LOGGER.debug("Unbridged accessory %s", accessory.name)

    def bridged_topology(self) -> Topology:
        """Return the layout of every bridged accessory keyed by aid."""

        return {
            accessory.hap.aid: accessory.topology()
            for accessory in self._accessories.values()
        }
