"""Shared plumbing for capability and property bindings."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from ..accessory import Characteristic, ServiceKind
from ..adapters import Adapter, NumberAdapter
from ..models import Capability, Property

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..device import DeviceSynchronizer

_LOGGER = logging.getLogger(__name__)

ItemT = TypeVar("ItemT", Capability, Property)
V = TypeVar("V")

BindingKey = tuple[str, str | None]


def resolve_override(table: Mapping[str, V], device_type: str, default: V) -> V:
    """Return the per-device-type override from ``table`` or ``default``."""

    return table.get(device_type, default)


class Binding(Generic[ItemT]):
    """Own one capability or property and its local representation.

    The binding keeps a private copy of the upstream record. Inbound
    updates from the fetch loop go through :meth:`apply_inbound` and local
    writes go through :meth:`apply_outbound`; nothing else mutates it.
    """

    default_service: ServiceKind
    services: Mapping[str, ServiceKind] = {}
    default_adapter: type[Adapter[Any, Any]] = NumberAdapter
    adapters: Mapping[str, type[Adapter[Any, Any]]] = {}

    def __init__(self, item: ItemT, device: DeviceSynchronizer) -> None:
        """Attach to the device service and configure the adapter."""

        self._item: ItemT = item.model_copy(deep=True)
        self._device = device
        self._destroyed = False
        self.service_kind = resolve_override(
            self.services, device.type, self.default_service
        )
        self.service = device.attach_service(self.service_kind)
        adapter_cls = resolve_override(self.adapters, device.type, self.default_adapter)
        self.adapter = adapter_cls(self._item.parameters)
        self.initialize()

    @classmethod
    def supports(cls, item: ItemT) -> bool:
        """Return True when the binding can represent ``item``."""

        return True

    @property
    def key(self) -> BindingKey:
        """Return the ``(type, instance)`` key the binding is registered under."""

        return (self._item.type, self._item.instance)

    @property
    def item(self) -> ItemT:
        """Return a copy of the owned record."""

        return self._item.model_copy(deep=True)

    @property
    def params(self) -> dict[str, Any]:
        return self._item.parameters

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    @property
    def characteristics(self) -> tuple[Characteristic, ...]:
        """Return the characteristics whose callbacks this binding owns."""

        return ()

    def apply_inbound(self, item: ItemT) -> None:
        """Adopt the state and timestamps reported by the remote platform."""

        self._item.state = (
            item.state.model_copy(deep=True) if item.state is not None else None
        )
        self._item.last_updated = item.last_updated
        if isinstance(item, Property):
            self._item.state_changed_at = item.state_changed_at

    def apply_outbound(self, state: Any) -> None:
        """Record a locally written state ahead of the remote confirmation."""

        self._item.state = state

    def initialize(self) -> None:  # pragma: no cover - override hook
        """Bind characteristics and seed their values."""

    def update(self, item: ItemT, updated_at: float) -> None:  # pragma: no cover
        """Apply a freshly fetched record."""

    def destroy(self) -> None:
        """Detach callbacks and release the service."""

        if self._destroyed:
            return
        self._destroyed = True
        for characteristic in self.characteristics:
            characteristic.remove_on_get()
            characteristic.remove_on_set()
        self._device.release_service(self.service_kind)
        _LOGGER.debug("Destroyed %s binding on %s", self.key, self._device.id)
