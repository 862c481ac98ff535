"""Per-device synchronization between a remote device and its accessory."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from pyhap.accessory_driver import AccessoryDriver

from .accessory import (
    Accessory,
    Service,
    ServiceKind,
    accessory_aid,
    accessory_uuid,
    category_for,
)
from .bindings import (
    Binding,
    BindingKey,
    capability_binding_for,
    property_binding_for,
)
from .const import (
    AIR_QUALITY_COMPONENTS,
    AIR_QUALITY_INSTANCE,
    DEFAULT_DEBOUNCE_MAX_WAIT,
    DEFAULT_DEBOUNCE_WAIT,
    DEFAULT_MANUFACTURER,
    UNIT_PERCENT,
    PropertyType,
)
from .models import (
    ApiDevice,
    ApiRoom,
    Capability,
    DeviceSnapshot,
    Property,
    PropertyState,
)

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .coordinator import ReconciliationController

_LOGGER = logging.getLogger(__name__)


def synthesize_air_quality(properties: Iterable[Property]) -> Property | None:
    """Derive an air quality property from gas and particulate readings.

    Returns None when the device already reports air quality or has no
    component readings. The value is the mean of the components scaled
    down by 1000 and the timestamp is the newest among them.
    """

    values: list[float] = []
    last_updated = 0.0
    for item in properties:
        if item.instance == AIR_QUALITY_INSTANCE:
            return None
        if item.instance not in AIR_QUALITY_COMPONENTS or item.state is None:
            continue
        if not isinstance(item.state.value, int | float):
            continue
        values.append(item.state.value / 1000)
        last_updated = max(last_updated, item.updated_at)

    if not values:
        return None
    return Property(
        type=PropertyType.FLOAT.value,
        reportable=True,
        retrievable=False,
        last_updated=last_updated,
        parameters={"instance": AIR_QUALITY_INSTANCE, "unit": UNIT_PERCENT},
        state=PropertyState(
            instance=AIR_QUALITY_INSTANCE, value=sum(values) / len(values)
        ),
    )


class DeviceSynchronizer:
    """Keep one accessory and its bindings in step with a remote device."""

    def __init__(
        self,
        driver: AccessoryDriver,
        device: ApiDevice,
        room: ApiRoom | None = None,
        controller: ReconciliationController | None = None,
    ) -> None:
        """Create the accessory on ``driver`` and bind every supported item."""

        self._device = device.model_copy(deep=True)
        self._room = room.model_copy(deep=True) if room is not None else None
        self._controller = controller
        self._service_refs: dict[ServiceKind, int] = {}
        self.bindings: dict[BindingKey, Binding[Any]] = {}

        self.accessory = Accessory(
            driver,
            self.name,
            accessory_uuid(device.id),
            aid=accessory_aid(device.id),
            category=category_for(device.type),
        )
        self._set_accessory_info()
        self.add_all()

    @property
    def id(self) -> str:
        return self._device.id

    @property
    def type(self) -> str:
        return self._device.type

    @property
    def room(self) -> ApiRoom | None:
        return self._room

    @property
    def name(self) -> str:
        """Return the accessory name, suffixed with the room when known."""

        if self._room is not None and self._room.name:
            return f"{self._device.name} - {self._room.name}"
        return self._device.name

    @property
    def debounce_wait(self) -> float:
        if self._controller is None:
            return DEFAULT_DEBOUNCE_WAIT
        return self._controller.debounce_wait

    @property
    def debounce_max_wait(self) -> float:
        if self._controller is None:
            return DEFAULT_DEBOUNCE_MAX_WAIT
        return self._controller.debounce_max_wait

    def _set_accessory_info(self) -> None:
        self.accessory.set_information(
            name=self.name,
            serial_number=self._device.external_id,
            manufacturer=self._device.skill_id or DEFAULT_MANUFACTURER,
            model="Device",
            firmware_revision="1.0",
        )

    def device_properties(self) -> list[Property]:
        """Return the remote properties plus a synthesized air quality reading."""

        properties = list(self._device.properties)
        air_quality = synthesize_air_quality(properties)
        if air_quality is not None:
            properties.append(air_quality)
        return properties

    def attach_service(self, kind: ServiceKind) -> Service:
        """Return the service of ``kind`` and count one more binding on it."""

        self._service_refs[kind] = self._service_refs.get(kind, 0) + 1
        return self.accessory.set_service(kind)

    def release_service(self, kind: ServiceKind) -> None:
        """Drop one binding from ``kind``; the last one removes the service."""

        count = self._service_refs.get(kind, 0) - 1
        if count > 0:
            self._service_refs[kind] = count
            return
        self._service_refs.pop(kind, None)
        self.accessory.remove_service(kind)

    def _bind(
        self,
        item: Capability | Property,
        resolver: Callable[[Any], type[Binding[Any]] | None],
    ) -> Binding[Any] | None:
        binding_cls = resolver(item)
        if binding_cls is None:
            _LOGGER.debug(
                "Skipping unsupported %s/%s on %s", item.type, item.instance, self.id
            )
            return None
        binding = binding_cls(item, self)
        self.bindings[binding.key] = binding
        _LOGGER.debug("Bound %s on %s", binding.key, self.id)
        return binding

    def add_all(self) -> None:
        """Create one binding per supported capability and property."""

        for capability in self._device.capabilities:
            self._bind(capability, capability_binding_for)
        for prop in self.device_properties():
            self._bind(prop, property_binding_for)

    def reconcile(self, device: ApiDevice, room: ApiRoom | None = None) -> None:
        """Apply a fresh remote snapshot of this device.

        Existing bindings receive the new record, new capabilities and
        properties get bindings, and bindings whose key disappeared are
        destroyed.
        """

        self._device = device.model_copy(deep=True)
        self._room = room.model_copy(deep=True) if room is not None else None
        self._set_accessory_info()

        seen: set[BindingKey] = set()
        for capability in self._device.capabilities:
            key = (capability.type, capability.instance)
            seen.add(key)
            binding = self.bindings.get(key)
            if binding is not None:
                binding.update(capability, capability.last_updated)
            else:
                self._bind(capability, capability_binding_for)

        for prop in self.device_properties():
            key = (prop.type, prop.instance)
            seen.add(key)
            binding = self.bindings.get(key)
            if binding is not None:
                binding.update(prop, prop.updated_at)
            else:
                self._bind(prop, property_binding_for)

        for key in set(self.bindings) - seen:
            self.bindings.pop(key).destroy()

    def destroy(self) -> None:
        """Destroy every binding of the device."""

        for binding in self.bindings.values():
            binding.destroy()
        self.bindings.clear()

    def snapshot(self) -> DeviceSnapshot:
        """Return the persistence record, reflecting the bindings' state."""

        device = self._device.model_copy(deep=True)
        device.capabilities = [
            self._owned(capability) for capability in device.capabilities
        ]
        device.properties = [self._owned(prop) for prop in device.properties]
        room = self._room.model_copy(deep=True) if self._room is not None else None
        return DeviceSnapshot(device=device, room=room)

    def _owned(self, item: Any) -> Any:
        binding = self.bindings.get((item.type, item.instance))
        if binding is None:
            return item
        return binding.item

    async def async_set_state(self, actions: list[dict[str, Any]]) -> None:
        """Send capability actions for this device through the controller."""

        if self._controller is None:
            raise RuntimeError(f"Device {self.id} is not attached to a controller")
        await self._controller.async_set_state(self.id, actions)
