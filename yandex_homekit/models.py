"""Data models for the Yandex smart home API payloads."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _ApiModel(BaseModel):
    """Base model keeping unknown upstream fields for persistence."""

    model_config = ConfigDict(extra="allow")


class Range(_ApiModel):
    """Numeric bounds advertised by a capability."""

    min: float | None = None
    max: float | None = None
    precision: float | None = None

    @property
    def is_bounded(self) -> bool:
        """Return True when both bounds are known and distinct."""

        return self.min is not None and self.max is not None and self.min != self.max


class CapabilityState(_ApiModel):
    """Current value of a capability for a given instance."""

    instance: str
    value: Any = None


class Capability(_ApiModel):
    """Controllable facet of a device."""

    type: str
    reportable: bool = False
    retrievable: bool = True
    last_updated: float = 0
    parameters: dict[str, Any] = Field(default_factory=dict)
    state: CapabilityState | None = None

    @property
    def instance(self) -> str | None:
        """Return the parameter instance, when the capability declares one."""

        return self.parameters.get("instance")


class PropertyState(_ApiModel):
    """Current value of a reported property."""

    instance: str
    value: Any = None


class Property(_ApiModel):
    """Reported measurement or discrete event of a device."""

    type: str
    reportable: bool = True
    retrievable: bool = True
    last_updated: float = 0
    state_changed_at: float = 0
    parameters: dict[str, Any] = Field(default_factory=dict)
    state: PropertyState | None = None

    @property
    def instance(self) -> str | None:
        """Return the property instance."""

        return self.parameters.get("instance")

    @property
    def updated_at(self) -> float:
        """Return the newest of the two upstream timestamps."""

        return max(self.last_updated or 0, self.state_changed_at or 0)


class ApiHouse(_ApiModel):
    """Household grouping rooms and devices."""

    id: str
    name: str = ""
    type: str | None = None


class ApiRoom(_ApiModel):
    """Room a device may be placed in."""

    id: str
    name: str = ""
    household_id: str | None = None
    devices: list[str] = Field(default_factory=list)


class ApiDevice(_ApiModel):
    """Device as returned by ``user/info``."""

    id: str
    name: str
    type: str
    aliases: list[str] = Field(default_factory=list)
    external_id: str = ""
    skill_id: str = ""
    household_id: str | None = None
    room: str | None = None
    groups: list[str] = Field(default_factory=list)
    capabilities: list[Capability] = Field(default_factory=list)
    properties: list[Property] = Field(default_factory=list)


class ApiGroup(_ApiModel):
    """Device group; carried for completeness, not bridged."""

    id: str
    name: str = ""
    type: str | None = None
    household_id: str | None = None
    devices: list[str] = Field(default_factory=list)
    capabilities: list[Capability] = Field(default_factory=list)


class ApiScenario(_ApiModel):
    """Scenario defined in the Yandex app."""

    id: str
    name: str = ""
    is_active: bool = False


class UserInfo(_ApiModel):
    """Full account listing returned by the ``user/info`` endpoint."""

    status: str | None = None
    request_id: str | None = None
    households: list[ApiHouse] = Field(default_factory=list)
    rooms: list[ApiRoom] = Field(default_factory=list)
    devices: list[ApiDevice] = Field(default_factory=list)
    groups: list[ApiGroup] = Field(default_factory=list)
    scenarios: list[ApiScenario] = Field(default_factory=list)

    def rooms_by_id(self) -> dict[str, ApiRoom]:
        """Index rooms by identifier."""

        return {room.id: room for room in self.rooms}


class DeviceSnapshot(_ApiModel):
    """Persisted pairing of a device with the room it was last seen in."""

    device: ApiDevice
    room: ApiRoom | None = None
