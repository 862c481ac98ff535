"""Registry of bridged devices and the fetch/reconcile loop."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any

import httpx
from pyhap.accessory_driver import AccessoryDriver
from pydantic import ValidationError

from . import __version__
from .accessory import Bridge, Category, Topology, text_to_pin
from .api import YandexApiClient, YandexApiError
from .config import BridgeSettings
from .const import (
    DEFAULT_BRIDGE_NAME,
    DEFAULT_DEBOUNCE_MAX_WAIT,
    DEFAULT_DEBOUNCE_WAIT,
    DEFAULT_FETCH_INTERVAL,
    DEFAULT_PORT,
)
from .device import DeviceSynchronizer
from .models import ApiDevice, ApiRoom
from .storage import DeviceStore

_LOGGER = logging.getLogger(__name__)

BRIDGE_MANUFACTURER = "Yandex HomeKit Bridge"
BRIDGE_MODEL = "Yandex Bridge"


def _host_mac() -> str:
    node = uuid.getnode()
    return ":".join(f"{(node >> shift) & 0xFF:02X}" for shift in range(40, -8, -8))


@dataclass(frozen=True)
class PublishInfo:
    """Pairing details handed to the accessory driver."""

    username: str
    pincode: str
    port: int
    category: Category = Category.BRIDGE


def bridge_publish_info(
    *, pincode: str | None = None, port: int = DEFAULT_PORT
) -> PublishInfo:
    """Return the bridge pairing details, deriving the pin from the host MAC."""

    mac = _host_mac()
    return PublishInfo(username=mac, pincode=pincode or text_to_pin(mac), port=port)


class ReconciliationController:
    """Own the device registry and mirror the remote account into it.

    The registry maps remote device ids to :class:`DeviceSynchronizer`
    instances whose accessories hang off a single :class:`Bridge` served by
    the HAP-python driver. It is persisted through the :class:`DeviceStore`
    after every mutation so a restart can expose the accessories before the
    first fetch completes.
    """

    def __init__(
        self,
        api: YandexApiClient,
        store: DeviceStore,
        driver: AccessoryDriver,
        *,
        bridge_name: str = DEFAULT_BRIDGE_NAME,
        fetch_interval: float = DEFAULT_FETCH_INTERVAL,
        debounce_wait: float = DEFAULT_DEBOUNCE_WAIT,
        debounce_max_wait: float = DEFAULT_DEBOUNCE_MAX_WAIT,
    ) -> None:
        """Initialise the controller with its collaborators and timings."""

        self._api = api
        self._store = store
        self.driver = driver
        self.fetch_interval = fetch_interval
        self.debounce_wait = debounce_wait
        self.debounce_max_wait = debounce_max_wait
        self.bridge = Bridge(
            driver, bridge_name, str(uuid.uuid5(uuid.NAMESPACE_DNS, "yth.bridge"))
        )
        self.devices: dict[str, DeviceSynchronizer] = {}
        self._task: asyncio.Task[None] | None = None
        self._published: Topology | None = None

    @classmethod
    def from_settings(
        cls,
        settings: BridgeSettings,
        api: YandexApiClient,
        store: DeviceStore,
        driver: AccessoryDriver,
    ) -> ReconciliationController:
        """Build a controller configured from validated settings."""

        return cls(
            api,
            store,
            driver,
            bridge_name=settings.bridge_name,
            fetch_interval=settings.fetch_interval,
            debounce_wait=settings.debounce_wait,
            debounce_max_wait=settings.debounce_max_wait,
        )

    def setup_bridge(self, info: PublishInfo) -> None:
        """Fill in the bridge information service."""

        self.bridge.set_information(
            manufacturer=BRIDGE_MANUFACTURER,
            model=BRIDGE_MODEL,
            serial_number=info.username,
            firmware_revision=__version__,
        )

    @property
    def is_published(self) -> bool:
        return self._published is not None

    async def async_publish(self) -> None:
        """Hand the bridge to the driver and start serving controllers."""

        self.driver.add_accessory(self.bridge.hap)
        await self.driver.async_start()
        self._published = self.bridge.bridged_topology()
        _LOGGER.info(
            "Publishing %s with %d accessories", self.bridge.name, len(self.devices)
        )

    def _announce_changes(self) -> None:
        if self._published is None:
            return
        topology = self.bridge.bridged_topology()
        if topology == self._published:
            return
        self._published = topology
        self.driver.config_changed()
        _LOGGER.debug("Accessory layout changed; configuration announced")

    async def async_load(self) -> None:
        """Restore the registry from the persisted snapshot."""

        snapshots = await self._store.async_get() or []
        for snapshot in snapshots:
            self._add(snapshot.device, snapshot.room)
        _LOGGER.info("Restored %d devices", len(snapshots))

    def _add(self, device: ApiDevice, room: ApiRoom | None) -> DeviceSynchronizer:
        synchronizer = DeviceSynchronizer(self.driver, device, room, self)
        self.devices[device.id] = synchronizer
        self.bridge.add_bridged_accessory(synchronizer.accessory)
        _LOGGER.info("Added device %s (%s)", synchronizer.name, device.id)
        return synchronizer

    def _update(self, device: ApiDevice, room: ApiRoom | None) -> None:
        synchronizer = self.devices.get(device.id)
        if synchronizer is not None:
            synchronizer.reconcile(device, room)

    def _remove(self, device_id: str) -> None:
        synchronizer = self.devices.pop(device_id, None)
        if synchronizer is None:
            return
        synchronizer.destroy()
        self.bridge.remove_bridged_accessory(synchronizer.accessory)
        _LOGGER.info("Removed device %s (%s)", synchronizer.name, device_id)

    async def async_add(
        self, device: ApiDevice, room: ApiRoom | None = None
    ) -> DeviceSynchronizer:
        """Register a newly seen device and persist the registry."""

        synchronizer = self._add(device, room)
        self._announce_changes()
        await self.async_save()
        return synchronizer

    async def async_update(self, device: ApiDevice, room: ApiRoom | None = None) -> None:
        """Reconcile a known device and persist the registry."""

        self._update(device, room)
        self._announce_changes()
        await self.async_save()

    async def async_remove(self, device_id: str) -> None:
        """Drop a device from the registry and persist the registry."""

        self._remove(device_id)
        self._announce_changes()
        await self.async_save()

    async def async_refresh(self) -> None:
        """Fetch the account once and reconcile the registry with it."""

        info = await self._api.async_get_user_info()
        rooms = info.rooms_by_id()
        seen: set[str] = set()
        for device in info.devices:
            seen.add(device.id)
            room = rooms.get(device.room) if device.room else None
            if device.id in self.devices:
                self._update(device, room)
            else:
                self._add(device, room)

        for device_id in set(self.devices) - seen:
            self._remove(device_id)

        self._announce_changes()
        await self.async_save()

    async def async_run(self) -> None:
        """Refresh forever, sleeping ``fetch_interval`` between cycles."""

        while True:
            try:
                await self.async_refresh()
            except (httpx.HTTPError, YandexApiError, ValidationError) as err:
                _LOGGER.warning("Fetching devices failed: %s", err)
            except Exception:  # pragma: no cover - unexpected failure logging
                _LOGGER.exception("Unexpected error while reconciling devices")
            await asyncio.sleep(self.fetch_interval)

    def start(self) -> asyncio.Task[None]:
        """Start the fetch loop in the background and return its task."""

        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.async_run())
        return self._task

    async def async_stop(self) -> None:
        """Cancel the fetch loop and stop serving controllers."""

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._published is not None:
            self._published = None
            await self.driver.async_stop()

    async def async_save(self) -> None:
        """Persist the registry snapshot."""

        await self._store.async_set(
            [synchronizer.snapshot() for synchronizer in self.devices.values()]
        )

    async def async_set_state(
        self, device_id: str, actions: list[dict[str, Any]]
    ) -> dict[str, Any]:
        """Persist the registry, then post ``actions`` for ``device_id``."""

        await self.async_save()
        return await self._api.async_post_actions(
            [{"id": device_id, "actions": actions}]
        )
